"""Request DTOs for API endpoints."""

from typing import Literal

from pydantic import BaseModel, Field

from chat_cache.entities import Message


class MessageItem(BaseModel):
    """A single chat message as sent by the UI."""

    role: Literal["user", "assistant", "system"] = Field(..., description="Who wrote the message")
    content: str = Field(..., description="Message text, used verbatim for fingerprinting")

    def to_entity(self) -> Message:
        return Message(role=self.role, content=self.content)


class ChatRequest(BaseModel):
    """Request DTO for the chat endpoint.

    The handler will convert this to internal calls to the service layer.
    """

    messages: list[MessageItem] = Field(
        ...,
        description="The whole conversation, oldest message first",
        min_length=1,
    )
    stream: bool = Field(
        False,
        description="Stream the answer as plain-text chunks instead of one JSON payload",
    )

    def to_entities(self) -> list[Message]:
        return [item.to_entity() for item in self.messages]
