"""Realtime channel event payloads."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.schemas.message import MessageRead, Sender


class _Event(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterEvent(_Event):
    """First frame a client sends after connecting."""

    type: Literal["register"]
    participant_id: int
    role: Literal["admin", "user"]


class SendMessageEvent(_Event):
    """Client request to append and fan out one message."""

    type: Literal["sendMessage"]
    conversation_key: int
    sender: Sender
    body: str | None = None
    attachment_ref: str | None = None
    client_message_id: str | None = Field(default=None, max_length=128)


class RegisteredEvent(_Event):
    type: Literal["registered"] = "registered"
    participant_id: int
    role: Literal["admin", "user"]
    connection_id: str
    refresh_after_seconds: int


class MessageAcceptedEvent(_Event):
    """Sent back to the originating connection once the store write succeeded."""

    type: Literal["messageAccepted"] = "messageAccepted"
    client_message_id: str | None = None
    message: MessageRead


class MessageCreatedEvent(_Event):
    type: Literal["messageCreated"] = "messageCreated"
    message: MessageRead


class ErrorEvent(_Event):
    type: Literal["error"] = "error"
    detail: str
    client_message_id: str | None = None
