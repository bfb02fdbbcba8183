"""Chat message domain entity."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from chat_cache.errors import ValidationError

ROLES = frozenset({"user", "assistant", "system"})


@dataclass(frozen=True)
class Message:
    """A single role-tagged chat message.

    Attributes:
        role: One of "user", "assistant" or "system"
        content: The message text, kept verbatim (whitespace is significant)
    """

    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


# Ordered, immutable once sent
Conversation = tuple[Message, ...]


def to_conversation(messages: Iterable[Message | Mapping[str, object]]) -> Conversation:
    """Validate raw messages and freeze them into a Conversation.

    Accepts Message instances or mappings with "role" and "content" keys.

    Raises:
        ValidationError: If the list is empty, a role is unknown or content is not text
    """
    conversation = []
    for index, item in enumerate(messages):
        if isinstance(item, Message):
            role, content = item.role, item.content
        elif isinstance(item, Mapping):
            role, content = item.get("role"), item.get("content")
        else:
            raise ValidationError(f"Message {index} must be an object with role and content")

        if role not in ROLES:
            raise ValidationError(f"Message {index} has invalid role: {role!r}")
        if not isinstance(content, str):
            raise ValidationError(f"Message {index} content must be a string")
        conversation.append(Message(role=role, content=content))

    if not conversation:
        raise ValidationError("Conversation must contain at least one message")
    return tuple(conversation)


def last_user_message(conversation: Conversation) -> str | None:
    """Return the content of the latest user message, if any."""
    for message in reversed(conversation):
        if message.role == "user":
            return message.content
    return None
