"""Conversation fingerprinting.

A cache key is the SHA-256 hex digest of the canonical JSON form of a
conversation: a list of ``{"role", "content"}`` objects in message order,
compact separators, UTF-8 without ASCII escaping. Content is hashed
verbatim, so whitespace differences produce different keys.
"""

import hashlib
import json

from chat_cache.entities import Conversation
from chat_cache.errors import ValidationError

KEY_LENGTH = 64


def canonical_json(conversation: Conversation) -> str:
    """Serialize a conversation with a fixed field order."""
    payload = [{"role": m.role, "content": m.content} for m in conversation]
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def fingerprint(conversation: Conversation) -> str:
    """Compute the cache key for a conversation.

    Args:
        conversation: Non-empty ordered sequence of messages

    Returns:
        64-character lowercase hex digest

    Raises:
        ValidationError: If the conversation is empty
    """
    if not conversation:
        raise ValidationError("Cannot fingerprint an empty conversation")
    return hashlib.sha256(canonical_json(conversation).encode("utf-8")).hexdigest()
