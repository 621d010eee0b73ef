"""Support conversation routes for customers and the admin inbox."""

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.config import Settings
from app.db.dependencies import get_db
from app.schemas.common import ERROR_RESPONSES, ApiResponse
from app.schemas.conversation import (
    BulkDeleteRequest,
    BulkDeleteResult,
    ConversationDeleteResult,
    ConversationsListResponse,
    UnreadSummary,
)
from app.schemas.message import ConversationHistory, MarkReadResult, MessageCreate, MessageRead
from app.services import inbox, user_chat
from app.services.conversations import count_unread
from app.services.identity import Identity, get_app_settings, get_current_identity, require_admin, require_user
from app.services.messages import append_message, list_messages, mark_read
from app.services.realtime import ChatChannel

ConversationKeyParam = Path(..., ge=1)
AfterIdParam = Query(default=None, ge=0)

router = APIRouter(prefix="/conversations", responses=ERROR_RESPONSES)


def get_chat_channel(request: Request) -> ChatChannel:
    return request.app.state.chat_channel


@router.get("", response_model=ApiResponse[ConversationsListResponse])
def get_inbox(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    q: str | None = Query(default=None, max_length=255),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    _: Identity = Depends(require_admin),
) -> ApiResponse[ConversationsListResponse]:
    """List conversations with unread messages first."""

    payload = inbox.load_inbox(
        db,
        limit=limit,
        offset=offset,
        query=q,
        refresh_after_seconds=settings.inbox_refresh_seconds,
    )
    return ApiResponse(data=payload)


@router.get("/unread-count", response_model=ApiResponse[UnreadSummary])
def get_unread_count(
    db: Session = Depends(get_db),
    _: Identity = Depends(require_admin),
) -> ApiResponse[UnreadSummary]:
    """Return totals for the admin notification badge."""

    return ApiResponse(data=count_unread(db))


@router.get("/mine/messages", response_model=ApiResponse[list[MessageRead]])
def get_my_messages(
    after_id: int | None = AfterIdParam,
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_user),
) -> ApiResponse[list[MessageRead]]:
    """Return the caller's own conversation, oldest first."""

    records = user_chat.load_history(db, identity, after_id=after_id)
    return ApiResponse(data=[MessageRead.model_validate(message) for message in records])


@router.post("/mine/messages", response_model=ApiResponse[MessageRead], status_code=201)
async def post_my_message(
    payload: MessageCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_user),
    channel: ChatChannel = Depends(get_chat_channel),
) -> ApiResponse[MessageRead]:
    """Send a message to the admin pool from the caller's conversation."""

    stored = await run_in_threadpool(
        user_chat.send_message,
        db,
        identity,
        payload.body,
        payload.attachment_ref,
    )
    message = MessageRead.model_validate(stored)
    await channel.publish(message)
    return ApiResponse(data=message)


@router.post("/bulk-delete", response_model=ApiResponse[BulkDeleteResult])
def bulk_delete_conversations(
    payload: BulkDeleteRequest,
    db: Session = Depends(get_db),
    _: Identity = Depends(require_admin),
) -> ApiResponse[BulkDeleteResult]:
    """Delete several conversations; failures are reported per key."""

    return ApiResponse(data=inbox.bulk_delete(db, payload.keys))


@router.get("/{conversation_key}", response_model=ApiResponse[ConversationHistory])
def select_conversation(
    conversation_key: int = ConversationKeyParam,
    db: Session = Depends(get_db),
    _: Identity = Depends(require_admin),
) -> ApiResponse[ConversationHistory]:
    """Open a conversation in the inbox, which marks the customer's messages read."""

    return ApiResponse(data=inbox.select_conversation(db, conversation_key))


@router.get("/{conversation_key}/messages", response_model=ApiResponse[list[MessageRead]])
def get_messages(
    conversation_key: int = ConversationKeyParam,
    after_id: int | None = AfterIdParam,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> ApiResponse[list[MessageRead]]:
    """List messages for a conversation without touching read state."""

    _ensure_can_access(identity, conversation_key)
    records = list_messages(db, conversation_key, after_id=after_id)
    return ApiResponse(data=[MessageRead.model_validate(message) for message in records])


@router.post("/{conversation_key}/messages", response_model=ApiResponse[MessageRead], status_code=201)
async def post_message(
    payload: MessageCreate,
    conversation_key: int = ConversationKeyParam,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
    channel: ChatChannel = Depends(get_chat_channel),
) -> ApiResponse[MessageRead]:
    """Append a message as the caller's role and push it to connected peers."""

    _ensure_can_access(identity, conversation_key)
    stored = await run_in_threadpool(
        append_message,
        db,
        conversation_key,
        identity.role,
        payload.body,
        payload.attachment_ref,
    )
    message = MessageRead.model_validate(stored)
    await channel.publish(message)
    return ApiResponse(data=message)


@router.post("/{conversation_key}/read", response_model=ApiResponse[MarkReadResult])
def post_mark_read(
    conversation_key: int = ConversationKeyParam,
    db: Session = Depends(get_db),
    _: Identity = Depends(require_admin),
) -> ApiResponse[MarkReadResult]:
    """Mark the customer's messages in a conversation as read."""

    changed = mark_read(db, conversation_key, "admin")
    return ApiResponse(data=MarkReadResult(conversation_key=conversation_key, marked_read=changed))


@router.delete("/{conversation_key}", response_model=ApiResponse[ConversationDeleteResult])
def remove_conversation(
    conversation_key: int = ConversationKeyParam,
    db: Session = Depends(get_db),
    _: Identity = Depends(require_admin),
) -> ApiResponse[ConversationDeleteResult]:
    """Delete every message of a conversation."""

    return ApiResponse(data=inbox.delete_conversation(db, conversation_key))


def _ensure_can_access(identity: Identity, conversation_key: int) -> None:
    if not identity.is_admin and identity.participant_id != conversation_key:
        raise HTTPException(status_code=403, detail="Not your conversation")
