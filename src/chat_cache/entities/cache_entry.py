"""Cache entry domain entity."""

from dataclasses import dataclass


@dataclass(frozen=True)
class CacheEntryEntity:
    """Domain entity for a cached answer.

    Created once when an upstream call completes and never mutated;
    the store replaces or drops it as a whole.

    Attributes:
        key: Fingerprint of the conversation that produced the answer
        answer: The complete generated text
        created_at: Store clock reading at insertion (monotonic seconds)
    """

    key: str
    answer: str
    created_at: float
