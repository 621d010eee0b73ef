"""Schemas for the admin inbox endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field


class ConversationListItem(BaseModel):
    """Inbox row with unread counter and last activity."""

    conversation_key: int
    display_name: str
    message_count: int
    unread_count: int
    last_activity: datetime


class ConversationsListResponse(BaseModel):
    """Paginated inbox payload."""

    items: list[ConversationListItem]
    total: int
    limit: int
    offset: int
    refresh_after_seconds: int | None = None


class UnreadSummary(BaseModel):
    """Admin badge totals."""

    unread_messages: int
    unread_conversations: int


class ConversationDeleteResult(BaseModel):
    """Conversation delete response payload."""

    conversation_key: int
    deleted_messages: int


class BulkDeleteRequest(BaseModel):
    """Keys of conversations to remove."""

    keys: list[int] = Field(min_length=1, max_length=500)


class BulkDeleteFailure(BaseModel):
    """One key that could not be deleted."""

    conversation_key: int
    detail: str


class BulkDeleteResult(BaseModel):
    """Per-key outcome of a bulk delete."""

    deleted: list[ConversationDeleteResult]
    failed: list[BulkDeleteFailure]
