"""DeepSeek chat-completions client.

Talks to DeepSeek's OpenAI-compatible API over httpx. Both the blocking
and the streaming method send the same payload apart from the ``stream``
flag, so cached (non-streaming origin) and live (streaming origin)
answers come from the same model with the same parameters.

Endpoints used:
    - POST {base_url}/chat/completions
    - GET  {base_url}/models (health check)
"""

import json
import logging
from collections.abc import AsyncIterator

import httpx

from chat_cache.config import settings
from chat_cache.entities import Conversation
from chat_cache.errors import ConfigurationError, UpstreamError
from chat_cache.models import GenerationParams

logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


class DeepSeekClient:
    """DeepSeek implementation of the UpstreamGenerator protocol.

    This class satisfies the UpstreamGenerator protocol through structural
    typing - no explicit inheritance needed.

    Example:
        ```python
        client = DeepSeekClient.create()
        answer = await client.generate(conversation, params)

        async for chunk in client.generate_stream(conversation, params):
            print(chunk, end="")
        ```
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the DeepSeek client.

        Args:
            api_key: DeepSeek API key. Defaults to settings.deepseek_api_key.
            base_url: API base URL. Defaults to settings.deepseek_base_url.
            timeout: HTTP timeout in seconds. Defaults to settings.upstream_timeout.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        self._api_key = api_key if api_key is not None else settings.deepseek_api_key
        self._base_url = (settings.deepseek_base_url if base_url is None else base_url).rstrip("/")
        self._timeout = settings.upstream_timeout if timeout is None else timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def create(
        cls,
        api_key: str | None = None,
        base_url: str | None = None,
    ) -> "DeepSeekClient":
        """Factory method to create DeepSeekClient with defaults.

        Args:
            api_key: API key. If None, uses settings.
            base_url: API URL. If None, uses settings.

        Returns:
            Configured DeepSeekClient
        """
        return cls(api_key=api_key, base_url=base_url)

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-load the async HTTP client.

        Returns:
            The httpx.AsyncClient instance
        """
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
                limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
            )
        return self._client

    def ensure_configured(self) -> None:
        """Check that an API key is present.

        Raises:
            ConfigurationError: If no API key is configured
        """
        if not self._api_key:
            raise ConfigurationError("DeepSeek API key is not configured")

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _build_payload(
        self, conversation: Conversation, params: GenerationParams, stream: bool
    ) -> dict:
        messages = [{"role": "system", "content": params.system_prompt}]
        messages.extend(m.to_dict() for m in conversation)
        return {
            "model": params.model,
            "messages": messages,
            "temperature": params.temperature,
            "max_tokens": params.max_tokens,
            "stream": stream,
        }

    async def generate(self, conversation: Conversation, params: GenerationParams) -> str:
        """Generate a complete answer.

        Args:
            conversation: The messages to answer
            params: Generation parameters

        Returns:
            The answer text

        Raises:
            ConfigurationError: If no API key is configured
            UpstreamError: If the request fails or the response is malformed
        """
        self.ensure_configured()
        payload = self._build_payload(conversation, params, stream=False)

        try:
            response = await self.client.post(
                "/chat/completions", json=payload, headers=self._headers()
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamError(
                f"DeepSeek API error: {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"DeepSeek request failed: {e}") from e
        except json.JSONDecodeError as e:
            raise UpstreamError("DeepSeek returned invalid JSON") from e

        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamError(f"Unexpected response format: {data}") from e

    async def generate_stream(
        self, conversation: Conversation, params: GenerationParams
    ) -> AsyncIterator[str]:
        """Generate an answer as server-sent-event chunks.

        Yields:
            Non-empty text deltas in order

        Raises:
            ConfigurationError: If no API key is configured
            UpstreamError: If the request fails or a chunk is malformed
        """
        self.ensure_configured()
        payload = self._build_payload(conversation, params, stream=True)

        try:
            async with self.client.stream(
                "POST", "/chat/completions", json=payload, headers=self._headers()
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise UpstreamError(
                        f"DeepSeek API error: {response.status_code}",
                        status_code=response.status_code,
                    )

                async for raw_line in response.aiter_lines():
                    line = raw_line.strip()
                    if not line.startswith(SSE_DATA_PREFIX):
                        continue
                    data = line[len(SSE_DATA_PREFIX):].strip()
                    if data == SSE_DONE:
                        break

                    try:
                        event = json.loads(data)
                        delta = event["choices"][0].get("delta") or {}
                    except (json.JSONDecodeError, KeyError, IndexError, TypeError) as e:
                        raise UpstreamError(f"Malformed stream chunk: {data[:100]}") from e

                    text = delta.get("content")
                    if text:
                        yield text
        except httpx.HTTPError as e:
            raise UpstreamError(f"DeepSeek stream failed: {e}") from e

    async def is_available(self) -> bool:
        """Check if the API is reachable with the configured key.

        Returns:
            True if the models endpoint answers 200, False otherwise
        """
        if not self._api_key:
            return False
        try:
            response = await self.client.get("/models", headers=self._headers())
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning("DeepSeek health check failed: %s", e)
            return False

    async def close(self) -> None:
        """Close the async HTTP client.

        Should be called when shutting down the application.
        """
        if self._client is not None:
            await self._client.aclose()
            self._client = None
