"""Message store: append, ordered retrieval, read state and conversation deletion."""

from __future__ import annotations

import logging

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.message import Message
from app.models.user import User
from app.services.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

SENDERS = frozenset({"user", "admin"})


def append_message(
    db: Session,
    conversation_key: int,
    sender: str,
    body: str | None = None,
    attachment_ref: str | None = None,
) -> Message:
    """Persist one message at the end of a conversation."""

    if sender not in SENDERS:
        raise ValidationError(f"Unknown sender {sender!r}.")
    clean_body = (body or "").strip()
    clean_attachment = (attachment_ref or "").strip() or None
    if not clean_body and clean_attachment is None:
        raise ValidationError("A message needs a body or an attachment.")

    try:
        owner = db.get(User, conversation_key)
        if owner is None:
            raise ValidationError(f"Conversation {conversation_key} has no matching user.")
        if owner.role != "user":
            raise ValidationError(f"Conversation {conversation_key} does not belong to a customer.")
        message = Message(
            user_id=conversation_key,
            sender=sender,
            body=clean_body,
            attachment_ref=clean_attachment,
            is_read=False,
        )
        db.add(message)
        db.commit()
        db.refresh(message)
    except SQLAlchemyError as exc:
        db.rollback()
        raise StorageError("Failed to store message.") from exc

    logger.info(
        "chat.message_appended conversation_key=%s message_id=%d sender=%s has_attachment=%s",
        conversation_key,
        message.id,
        sender,
        clean_attachment is not None,
    )
    return message


def list_messages(db: Session, conversation_key: int, *, after_id: int | None = None) -> list[Message]:
    """Return messages for a conversation ordered oldest first."""

    stmt = select(Message).where(Message.user_id == conversation_key)
    if after_id is not None:
        stmt = stmt.where(Message.id > after_id)
    stmt = stmt.order_by(Message.created_at.asc(), Message.id.asc())
    try:
        return list(db.scalars(stmt).all())
    except SQLAlchemyError as exc:
        db.rollback()
        raise StorageError("Failed to load conversation history.") from exc


def mark_read(db: Session, conversation_key: int, reader_role: str, *, up_to_id: int | None = None) -> int:
    """Flag messages not authored by ``reader_role`` as read; returns rows changed.

    With ``up_to_id`` only messages the reader has already been shown are flagged,
    so a message stored after the history was loaded stays unread.
    """

    if reader_role not in SENDERS:
        raise ValidationError(f"Unknown reader role {reader_role!r}.")
    stmt = (
        update(Message)
        .where(
            Message.user_id == conversation_key,
            Message.sender != reader_role,
            Message.is_read.is_(False),
        )
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    if up_to_id is not None:
        stmt = stmt.where(Message.id <= up_to_id)
    try:
        result = db.execute(stmt)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise StorageError("Failed to mark conversation read.") from exc

    changed = int(result.rowcount or 0)
    if changed:
        logger.info(
            "chat.marked_read conversation_key=%s reader_role=%s rows=%d",
            conversation_key,
            reader_role,
            changed,
        )
    return changed


def delete_conversation(db: Session, conversation_key: int) -> int:
    """Remove every message of a conversation; returns rows removed."""

    stmt = (
        delete(Message)
        .where(Message.user_id == conversation_key)
        .execution_options(synchronize_session=False)
    )
    try:
        result = db.execute(stmt)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise StorageError("Failed to delete conversation.") from exc

    removed = int(result.rowcount or 0)
    logger.info("chat.conversation_deleted conversation_key=%s rows=%d", conversation_key, removed)
    return removed
