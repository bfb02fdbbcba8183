"""Speculative follow-up prefetching.

After an answer is produced, the prefetcher guesses a couple of questions
the user is likely to ask next, derived from keywords in their last
message, and generates answers for them in the background. Results land in
the response store under the fingerprint of a single-message conversation,
so they are served if the user asks exactly that question.

Prefetching is best-effort: failures are logged and never reach the
request that triggered them.
"""

import logging
import random
import re

from chat_cache.config import settings
from chat_cache.entities import Message, PrefetchCandidate
from chat_cache.errors import PrefetchError, UpstreamError
from chat_cache.fingerprint import fingerprint
from chat_cache.models import GenerationParams
from chat_cache.protocols import ResponseStore, UpstreamGenerator
from chat_cache.services.coalescer import ChunkRelay, InFlightCoalescer, InFlightEntry
from chat_cache.utils import PeriodicTask

logger = logging.getLogger(__name__)

# Word characters plus the Bengali block, whose vowel signs are not \w
TOKEN_PATTERN = re.compile(r"[\w\u0980-\u09FF]+")
BENGALI_PATTERN = re.compile(r"[\u0980-\u09FF]")

MIN_KEYWORD_LENGTH = 4
MAX_KEYWORDS = 5

STOPWORDS = frozenset(
    {
        # English
        "about", "after", "again", "also", "been", "before", "being", "could",
        "does", "doing", "from", "have", "having", "here", "into", "just",
        "like", "more", "most", "much", "only", "other", "over", "please",
        "should", "some", "such", "tell", "than", "that", "their", "them",
        "then", "there", "these", "they", "this", "those", "very", "want",
        "were", "what", "when", "where", "which", "while", "with", "would",
        "your", "explain", "know", "give",
        # Bangla
        "একটি", "এবং", "কিন্তু", "অথবা", "কেন", "কীভাবে", "কোথায়", "সম্পর্কে",
        "আমাকে", "আমার", "আপনি", "বলুন", "দয়া", "করে",
    }
)

ENGLISH_TEMPLATES = (
    "Explain {topic} in more detail",
    "Summarize the key facts about {topic}",
    "What is the history of {topic}?",
)

BANGLA_TEMPLATES = (
    "{topic} সম্পর্কে বিস্তারিত ব্যাখ্যা করুন",
    "{topic} এর মূল তথ্যগুলো সংক্ষেপে বলুন",
    "{topic} এর ইতিহাস কী?",
)


def detect_language(text: str) -> str:
    """Return "bn" if the text contains Bengali script, else "en"."""
    return "bn" if BENGALI_PATTERN.search(text) else "en"


def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> list[str]:
    """Pick candidate topics from a message.

    Tokens shorter than MIN_KEYWORD_LENGTH, numbers and stopwords are
    dropped; the rest are de-duplicated (case-insensitively) and ranked
    longest first, ties kept in order of appearance.
    """
    seen: set[str] = set()
    keywords: list[str] = []
    for token in TOKEN_PATTERN.findall(text):
        normalized = token.lower()
        if len(normalized) < MIN_KEYWORD_LENGTH or normalized.isdigit():
            continue
        if normalized in STOPWORDS or normalized in seen:
            continue
        seen.add(normalized)
        keywords.append(token)

    keywords.sort(key=len, reverse=True)
    return keywords[:limit]


def build_questions(text: str) -> list[str]:
    """Combine the message's keywords with language-matched templates.

    Questions are ordered template-major so the first few cover different
    topics.
    """
    templates = BANGLA_TEMPLATES if detect_language(text) == "bn" else ENGLISH_TEMPLATES
    keywords = extract_keywords(text)
    return [template.format(topic=kw) for template in templates for kw in keywords]


class FollowUpPrefetcher:
    """Generate and cache answers for likely follow-up questions.

    Example:
        ```python
        prefetcher = FollowUpPrefetcher(store, coalescer, upstream, params)
        scheduled = prefetcher.schedule(key, "Tell me about the Sundarbans")
        ```
    """

    def __init__(
        self,
        store: ResponseStore,
        coalescer: InFlightCoalescer,
        upstream: UpstreamGenerator,
        params: GenerationParams,
        max_prefetch: int | None = None,
        candidate_ceiling: int | None = None,
        enabled: bool | None = None,
        sweep_interval: float | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the prefetcher.

        Args:
            store: Where prefetched answers are written.
            coalescer: Shared with the orchestrator so prefetches and live
                requests for the same key never run twice.
            upstream: Model used for the background calls.
            params: Generation parameters for the background calls.
            max_prefetch: Questions executed per trigger. Defaults to settings.
            candidate_ceiling: Size of the diagnostic candidate map before
                trimming. Defaults to settings.
            enabled: Turn prefetching on or off. Defaults to settings.
            sweep_interval: Seconds between periodic trims. Defaults to settings.
            rng: Random source for trimming, injectable for tests.
        """
        self._store = store
        self._coalescer = coalescer
        self._upstream = upstream
        self._params = params
        self._max_prefetch = settings.prefetch_max if max_prefetch is None else max_prefetch
        self._ceiling = (
            settings.prefetch_candidate_ceiling if candidate_ceiling is None else candidate_ceiling
        )
        self._enabled = settings.prefetch_enabled if enabled is None else enabled
        self._rng = rng or random.Random()
        self._candidates: dict[str, PrefetchCandidate] = {}
        self._trimmer = PeriodicTask(
            settings.sweep_interval if sweep_interval is None else sweep_interval,
            self.trim,
            name="prefetch-trim",
        )

        self._scheduled = 0
        self._skipped = 0
        self._completed = 0
        self._failed = 0

    def schedule(self, source_key: str, last_user_message: str) -> list[str]:
        """Start background generation for likely follow-up questions.

        Must be called from the event loop. Never raises for prefetch
        problems; they are logged instead.

        Args:
            source_key: Fingerprint of the conversation just answered
            last_user_message: Latest user message of that conversation

        Returns:
            The questions for which a background call was started
        """
        if not self._enabled or self._max_prefetch == 0 or not last_user_message.strip():
            return []

        questions = build_questions(last_user_message)
        if not questions:
            return []

        scheduled: list[str] = []
        for question in questions[: self._max_prefetch]:
            try:
                if self._start(question):
                    scheduled.append(question)
            except PrefetchError:
                logger.exception("Failed to schedule prefetch")
                self._failed += 1

        self._candidates[source_key] = PrefetchCandidate(
            source_key=source_key,
            candidate_questions=frozenset(questions),
            scheduled=tuple(scheduled),
        )
        self.trim()

        if scheduled:
            logger.info("Scheduled %d prefetches for key=%s", len(scheduled), source_key[:12])
        return scheduled

    def _start(self, question: str) -> bool:
        conversation = (Message(role="user", content=question),)
        key = fingerprint(conversation)

        if key in self._store or key in self._coalescer:
            self._skipped += 1
            return False

        async def compute(relay: ChunkRelay) -> str:
            answer = await self._upstream.generate(conversation, self._params)
            if not answer:
                raise UpstreamError("Upstream returned an empty answer")
            self._store.put(key, answer)
            return answer

        try:
            entry, joined = self._coalescer.begin_or_join(key, compute)
        except RuntimeError as e:
            raise PrefetchError(f"Cannot start prefetch for {question!r}") from e
        if joined:
            self._skipped += 1
            return False

        entry.task.add_done_callback(lambda t: self._on_done(entry, question))
        self._scheduled += 1
        return True

    def _on_done(self, entry: InFlightEntry, question: str) -> None:
        task = entry.task
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            self._completed += 1
            logger.debug("Prefetched answer for %r", question)
            return

        self._failed += 1
        if isinstance(error, UpstreamError):
            logger.warning("Prefetch failed for %r: %s", question, error)
        else:
            logger.error("Prefetch failed for %r", question, exc_info=error)

    def trim(self) -> int:
        """Randomly drop diagnostic candidates above the ceiling.

        Returns:
            Number of candidates removed
        """
        excess = len(self._candidates) - self._ceiling
        if excess <= 0:
            return 0
        for key in self._rng.sample(list(self._candidates), excess):
            del self._candidates[key]
        return excess

    def start(self) -> None:
        """Start the periodic trim on the running event loop."""
        self._trimmer.start()

    async def stop(self) -> None:
        """Stop the periodic trim."""
        await self._trimmer.stop()

    @property
    def candidates(self) -> dict[str, PrefetchCandidate]:
        """Diagnostic map of recent candidate sets, keyed by source fingerprint."""
        return dict(self._candidates)

    @property
    def enabled(self) -> bool:
        return self._enabled

    def get_stats(self) -> dict:
        return {
            "enabled": self._enabled,
            "max_prefetch": self._max_prefetch,
            "candidates": len(self._candidates),
            "scheduled": self._scheduled,
            "skipped": self._skipped,
            "completed": self._completed,
            "failed": self._failed,
        }
