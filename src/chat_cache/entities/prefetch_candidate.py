"""Prefetch candidate domain entity."""

from dataclasses import dataclass


@dataclass(frozen=True)
class PrefetchCandidate:
    """Follow-up questions generated for one answered conversation.

    Attributes:
        source_key: Fingerprint of the conversation that triggered the prefetch
        candidate_questions: Every question derived from the last user message
        scheduled: The subset actually sent upstream
    """

    source_key: str
    candidate_questions: frozenset[str]
    scheduled: tuple[str, ...] = ()
