"""Conversation aggregation for the admin inbox."""

from __future__ import annotations

from sqlalchemy import and_, case, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.message import Message
from app.models.user import User
from app.schemas.conversation import ConversationListItem, ConversationsListResponse, UnreadSummary
from app.services.errors import StorageError

_IS_UNREAD = and_(Message.sender != "admin", Message.is_read.is_(False))


def list_conversations(
    db: Session,
    *,
    limit: int,
    offset: int,
    query: str | None = None,
) -> ConversationsListResponse:
    """Return conversations ordered by unread count, then display name."""

    unread_count = func.coalesce(func.sum(case((_IS_UNREAD, 1), else_=0)), 0).label("unread_count")
    stats = (
        select(
            Message.user_id.label("conversation_key"),
            func.count(Message.id).label("message_count"),
            unread_count,
            func.max(Message.created_at).label("last_activity"),
        )
        .group_by(Message.user_id)
        .subquery()
    )

    base = select(stats.c.conversation_key).join(User, User.id == stats.c.conversation_key)
    filter_term = (query or "").strip()
    if filter_term:
        base = base.where(User.email.ilike(f"%{filter_term}%"))

    stmt = (
        select(
            stats.c.conversation_key,
            User.email.label("display_name"),
            stats.c.message_count,
            stats.c.unread_count,
            stats.c.last_activity,
        )
        .join(User, User.id == stats.c.conversation_key)
        .order_by(stats.c.unread_count.desc(), User.email.asc(), stats.c.conversation_key.asc())
        .limit(limit)
        .offset(offset)
    )
    if filter_term:
        stmt = stmt.where(User.email.ilike(f"%{filter_term}%"))

    try:
        total = int(db.scalar(select(func.count()).select_from(base.subquery())) or 0)
        rows = db.execute(stmt).all()
    except SQLAlchemyError as exc:
        db.rollback()
        raise StorageError("Failed to aggregate conversations.") from exc

    return ConversationsListResponse(
        items=[
            ConversationListItem(
                conversation_key=row.conversation_key,
                display_name=row.display_name,
                message_count=int(row.message_count),
                unread_count=int(row.unread_count),
                last_activity=row.last_activity,
            )
            for row in rows
        ],
        total=total,
        limit=limit,
        offset=offset,
    )


def count_unread(db: Session) -> UnreadSummary:
    """Return the unread totals shown on the admin badge."""

    stmt = select(
        func.count(Message.id),
        func.count(func.distinct(Message.user_id)),
    ).where(_IS_UNREAD)
    try:
        unread_messages, unread_conversations = db.execute(stmt).one()
    except SQLAlchemyError as exc:
        db.rollback()
        raise StorageError("Failed to count unread messages.") from exc
    return UnreadSummary(
        unread_messages=int(unread_messages or 0),
        unread_conversations=int(unread_conversations or 0),
    )
