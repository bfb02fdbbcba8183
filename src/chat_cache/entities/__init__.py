"""Domain entities for internal representation.

These are pure dataclasses used internally by services and repositories.
They are NOT used for API contracts - use DTOs from the dto package for that.
"""

from .cache_entry import CacheEntryEntity
from .message import ROLES, Conversation, Message, last_user_message, to_conversation
from .prefetch_candidate import PrefetchCandidate
from .rate_window import RateWindow

__all__ = [
    "CacheEntryEntity",
    "Conversation",
    "Message",
    "PrefetchCandidate",
    "RateWindow",
    "ROLES",
    "last_user_message",
    "to_conversation",
]
