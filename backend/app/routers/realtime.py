"""WebSocket endpoint for live support chat."""

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PayloadError

from app.schemas.realtime import ErrorEvent, RegisterEvent, SendMessageEvent
from app.services.errors import AuthenticationError, ChannelDeliveryFailure
from app.services.identity import identity_from_websocket
from app.services.realtime import ChatChannel

logger = logging.getLogger(__name__)

router = APIRouter()

CLOSE_BAD_PAYLOAD = 4400
CLOSE_UNAUTHENTICATED = 4401
CLOSE_FORBIDDEN = 4403


@router.websocket("/ws/chat")
async def chat_socket(websocket: WebSocket) -> None:
    """Register the caller, then relay ``sendMessage`` events until disconnect."""

    channel: ChatChannel = websocket.app.state.chat_channel
    try:
        identity = identity_from_websocket(websocket)
    except AuthenticationError as exc:
        logger.info("chat.socket_rejected reason=%s", exc)
        await websocket.close(code=CLOSE_UNAUTHENTICATED)
        return

    await websocket.accept()
    try:
        register = RegisterEvent.model_validate_json(await websocket.receive_text())
    except WebSocketDisconnect:
        return
    except PayloadError:
        await websocket.send_json(ErrorEvent(detail="First frame must be a register event").model_dump(by_alias=True))
        await websocket.close(code=CLOSE_BAD_PAYLOAD)
        return

    try:
        connection = await channel.register(websocket, identity, register)
    except AuthenticationError as exc:
        logger.info("chat.socket_rejected participant_id=%s reason=%s", identity.participant_id, exc)
        await websocket.send_json(ErrorEvent(detail=str(exc)).model_dump(by_alias=True))
        await websocket.close(code=CLOSE_FORBIDDEN)
        return
    except ChannelDeliveryFailure as exc:
        logger.info("chat.socket_lost participant_id=%s reason=%s", identity.participant_id, exc.__cause__ or exc)
        return

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                event = SendMessageEvent.model_validate_json(raw)
            except PayloadError as exc:
                await connection.send_event(ErrorEvent(detail=f"Invalid sendMessage payload: {exc.error_count()} error(s)"))
                continue
            await channel.send_message(connection, event)
    except WebSocketDisconnect:
        pass
    finally:
        channel.disconnect(connection)
