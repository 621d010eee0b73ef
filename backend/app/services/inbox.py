"""Admin inbox: listing, selecting and deleting conversations."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.schemas.conversation import (
    BulkDeleteFailure,
    BulkDeleteResult,
    ConversationDeleteResult,
    ConversationsListResponse,
)
from app.schemas.message import ConversationHistory, MessageRead
from app.services import messages as message_store
from app.services.conversations import list_conversations
from app.services.errors import MessagingError

logger = logging.getLogger(__name__)


def load_inbox(
    db: Session,
    *,
    limit: int,
    offset: int,
    query: str | None = None,
    refresh_after_seconds: int = 15,
) -> ConversationsListResponse:
    """Return the inbox page along with the client re-poll interval.

    The realtime channel only pushes new-message events, so the list itself is
    reconciled by polling on ``refresh_after_seconds`` and after local mutations.
    """

    payload = list_conversations(db, limit=limit, offset=offset, query=query)
    payload.refresh_after_seconds = refresh_after_seconds
    return payload


def select_conversation(db: Session, conversation_key: int) -> ConversationHistory:
    """Load a conversation for viewing and clear its user-authored unread backlog."""

    history = [MessageRead.model_validate(message) for message in message_store.list_messages(db, conversation_key)]
    if not history:
        return ConversationHistory(conversation_key=conversation_key, messages=[], marked_read=0)
    last_seen_id = max(message.id for message in history)
    marked = message_store.mark_read(db, conversation_key, "admin", up_to_id=last_seen_id)
    for message in history:
        if message.sender != "admin":
            message.is_read = True
    return ConversationHistory(conversation_key=conversation_key, messages=history, marked_read=marked)


def delete_conversation(db: Session, conversation_key: int) -> ConversationDeleteResult:
    """Delete one conversation; deleting a missing conversation is a no-op."""

    removed = message_store.delete_conversation(db, conversation_key)
    return ConversationDeleteResult(conversation_key=conversation_key, deleted_messages=removed)


def bulk_delete(db: Session, conversation_keys: list[int]) -> BulkDeleteResult:
    """Delete each conversation independently and report the keys that failed."""

    deleted: list[ConversationDeleteResult] = []
    failed: list[BulkDeleteFailure] = []
    for key in dict.fromkeys(conversation_keys):
        try:
            deleted.append(delete_conversation(db, key))
        except MessagingError as exc:
            logger.warning("chat.bulk_delete_failed conversation_key=%s error=%s", key, exc)
            failed.append(BulkDeleteFailure(conversation_key=key, detail=str(exc)))
    return BulkDeleteResult(deleted=deleted, failed=failed)
