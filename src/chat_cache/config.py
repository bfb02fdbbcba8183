import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()

DEFAULT_SYSTEM_PROMPT = """You are Bangladesh AI, a helpful assistant optimized for both Bangla and English speakers.

## Language Adaptation
- Respond in the same language the user is using (Bangla or English)
- If the user switches languages, adapt accordingly
- For mixed language queries, respond in the predominant language

## Knowledge Focus
- Specialize in Bangladesh's culture, history, geography, economy, and current affairs
- Provide accurate information about local customs, traditions, and practices
- Stay neutral on sensitive political topics while providing factual information

## Response Style
- Use clear, concise language appropriate for the user's proficiency level
- Format responses with Markdown for readability (headings, lists, bold for emphasis)
- Be respectful of cultural values and religious sensitivities"""


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment variables."""

    # Upstream (DeepSeek, OpenAI-compatible)
    deepseek_api_key: str | None = os.getenv("DEEPSEEK_API_KEY")
    deepseek_base_url: str = os.getenv("DEEPSEEK_BASE_URL", "https://api.deepseek.com")
    deepseek_model: str = os.getenv("DEEPSEEK_MODEL", "deepseek-chat")
    upstream_timeout: float = float(os.getenv("UPSTREAM_TIMEOUT", "60"))

    # Generation
    temperature: float = float(os.getenv("CHAT_TEMPERATURE", "0.7"))
    max_tokens: int = int(os.getenv("CHAT_MAX_TOKENS", "2048"))
    system_prompt: str = os.getenv("CHAT_SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT)

    # Rate limiting
    rate_limit_count: int = int(os.getenv("RATE_LIMIT_COUNT", "10"))
    rate_limit_window: float = float(os.getenv("RATE_LIMIT_WINDOW", "60"))

    # Cache
    cache_ttl: float = float(os.getenv("CACHE_TTL", "3600"))  # 1 hour default
    cache_capacity: int = int(os.getenv("CACHE_CAPACITY", "100"))

    # Per-request wall-clock budget in seconds
    request_timeout: float = float(os.getenv("REQUEST_TIMEOUT", "60"))

    # Prefetch
    prefetch_enabled: bool = os.getenv("PREFETCH_ENABLED", "true").lower() == "true"
    prefetch_max: int = int(os.getenv("PREFETCH_MAX", "2"))
    prefetch_candidate_ceiling: int = int(os.getenv("PREFETCH_CANDIDATE_CEILING", "100"))

    # Housekeeping interval for rate windows and prefetch candidates
    sweep_interval: float = float(os.getenv("SWEEP_INTERVAL", "60"))

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # API
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_reload: bool = os.getenv("API_RELOAD", "false").lower() == "true"

    @property
    def has_api_key(self) -> bool:
        """Check whether an upstream credential is configured."""
        return bool(self.deepseek_api_key)

    def __post_init__(self) -> None:
        """Validate settings after initialization."""
        if self.rate_limit_count < 1:
            raise ValueError("RATE_LIMIT_COUNT must be at least 1")
        if self.rate_limit_window <= 0:
            raise ValueError("RATE_LIMIT_WINDOW must be positive")
        if self.cache_ttl <= 0:
            raise ValueError("CACHE_TTL must be positive")
        if self.cache_capacity < 1:
            raise ValueError("CACHE_CAPACITY must be at least 1")
        if self.request_timeout <= 0:
            raise ValueError("REQUEST_TIMEOUT must be positive")
        if not 0 <= self.temperature <= 2:
            raise ValueError(f"CHAT_TEMPERATURE must be between 0 and 2, got {self.temperature}")
        if self.max_tokens < 1:
            raise ValueError("CHAT_MAX_TOKENS must be at least 1")
        if self.prefetch_max < 0:
            raise ValueError("PREFETCH_MAX must not be negative")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
