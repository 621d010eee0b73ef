"""Message request/response schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Sender = Literal["user", "admin"]


class MessageCreate(BaseModel):
    """Single message payload; body and attachment are checked by the store."""

    body: str | None = Field(default=None, max_length=10_000)
    attachment_ref: str | None = Field(default=None, max_length=1024)


class MessageRead(BaseModel):
    """Serialized message."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    conversation_key: int = Field(validation_alias="user_id")
    sender: Sender
    body: str
    attachment_ref: str | None
    is_read: bool
    created_at: datetime


class MarkReadResult(BaseModel):
    """Outcome of marking a conversation read."""

    conversation_key: int
    marked_read: int


class ConversationHistory(BaseModel):
    """Full ordered history for one conversation."""

    conversation_key: int
    messages: list[MessageRead]
    marked_read: int = 0
