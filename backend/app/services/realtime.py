"""Realtime fan-out of newly stored chat messages over WebSockets."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from uuid import uuid4

from fastapi import WebSocket
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from sqlalchemy.orm import Session, sessionmaker

from app.schemas.message import MessageRead
from app.schemas.realtime import (
    ErrorEvent,
    MessageAcceptedEvent,
    MessageCreatedEvent,
    RegisteredEvent,
    RegisterEvent,
    SendMessageEvent,
)
from app.services.errors import AuthenticationError, ChannelDeliveryFailure, MessagingError, ValidationError
from app.services.identity import Identity
from app.services.messages import append_message

logger = logging.getLogger(__name__)


@dataclass(eq=False, slots=True)
class Connection:
    """One live socket together with the identity it registered as."""

    websocket: WebSocket
    identity: Identity
    connection_id: str = field(default_factory=lambda: uuid4().hex)

    async def send_event(self, event: BaseModel) -> None:
        await self.websocket.send_json(event.model_dump(mode="json", by_alias=True))


class ConnectionRegistry:
    """Participant-to-connection map plus the shared admin broadcast group."""

    def __init__(self) -> None:
        self._by_participant: dict[int, list[Connection]] = {}
        self._admins: list[Connection] = []

    def add(self, connection: Connection) -> None:
        participant_id = connection.identity.participant_id
        self._by_participant.setdefault(participant_id, []).append(connection)
        if connection.identity.is_admin:
            self._admins.append(connection)

    def remove(self, connection: Connection) -> None:
        participant_id = connection.identity.participant_id
        connections = self._by_participant.get(participant_id)
        if connections is not None:
            if connection in connections:
                connections.remove(connection)
            if not connections:
                del self._by_participant[participant_id]
        if connection in self._admins:
            self._admins.remove(connection)

    def recipients(self, conversation_key: int, *, exclude: Connection | None = None) -> list[Connection]:
        """Connections of the conversation's user and every admin, each once."""

        targets: dict[str, Connection] = {}
        for connection in [*self._by_participant.get(conversation_key, []), *self._admins]:
            if connection is exclude:
                continue
            targets.setdefault(connection.connection_id, connection)
        return list(targets.values())

    @property
    def admin_count(self) -> int:
        return len(self._admins)

    def __len__(self) -> int:
        return sum(len(connections) for connections in self._by_participant.values())


class ChatChannel:
    """Accepts socket events, stores messages and pushes them to connected peers.

    Delivery is best effort. The store is the source of truth, and a peer that
    misses a push reconciles by re-fetching history.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        refresh_after_seconds: int = 15,
        registry: ConnectionRegistry | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.refresh_after_seconds = refresh_after_seconds
        self.registry = registry or ConnectionRegistry()
        self._fanout_locks: dict[int, asyncio.Lock] = {}

    async def register(self, websocket: WebSocket, identity: Identity, event: RegisterEvent) -> Connection:
        """Attach an accepted socket once its announced identity matches the verified one."""

        if event.participant_id != identity.participant_id or event.role != identity.role:
            raise AuthenticationError("Registration does not match the authenticated caller")
        connection = Connection(websocket=websocket, identity=identity)
        self.registry.add(connection)
        logger.info(
            "chat.connection_registered participant_id=%s role=%s connection_id=%s",
            identity.participant_id,
            identity.role,
            connection.connection_id,
        )
        try:
            await self._push(
                connection,
                RegisteredEvent(
                    participant_id=identity.participant_id,
                    role=identity.role,
                    connection_id=connection.connection_id,
                    refresh_after_seconds=self.refresh_after_seconds,
                ),
            )
        except ChannelDeliveryFailure:
            self.registry.remove(connection)
            raise
        return connection

    def disconnect(self, connection: Connection) -> None:
        self.registry.remove(connection)
        logger.info(
            "chat.connection_closed participant_id=%s connection_id=%s",
            connection.identity.participant_id,
            connection.connection_id,
        )

    async def send_message(self, connection: Connection, event: SendMessageEvent) -> MessageRead | None:
        """Store a message sent over the socket and fan it out to the other side."""

        try:
            self._authorize(connection.identity, event)
            message = await run_in_threadpool(
                self._append,
                event.conversation_key,
                event.sender,
                event.body,
                event.attachment_ref,
            )
        except MessagingError as exc:
            await self._send_quietly(
                connection,
                ErrorEvent(detail=str(exc), client_message_id=event.client_message_id),
            )
            return None

        await self.publish(message, exclude=connection)
        await self._send_quietly(
            connection,
            MessageAcceptedEvent(client_message_id=event.client_message_id, message=message),
        )
        return message

    async def publish(self, message: MessageRead, *, exclude: Connection | None = None) -> int:
        """Push ``messageCreated`` to the conversation's user and the admin group.

        Must be awaited straight after the append returns. Publishes for one
        conversation are serialized in the order their appends completed.
        """

        event = MessageCreatedEvent(message=message)
        delivered = 0
        async with self._fanout_lock(message.conversation_key):
            for target in self.registry.recipients(message.conversation_key, exclude=exclude):
                try:
                    await self._push(target, event)
                except ChannelDeliveryFailure as exc:
                    logger.warning(
                        "chat.delivery_failed message_id=%d connection_id=%s error=%s",
                        message.id,
                        target.connection_id,
                        exc.__cause__ or exc,
                    )
                    self.registry.remove(target)
                    continue
                delivered += 1
        logger.debug("chat.fanout message_id=%d delivered=%d", message.id, delivered)
        return delivered

    def _fanout_lock(self, conversation_key: int) -> asyncio.Lock:
        lock = self._fanout_locks.get(conversation_key)
        if lock is None:
            lock = self._fanout_locks[conversation_key] = asyncio.Lock()
        return lock

    def _append(self, conversation_key: int, sender: str, body: str | None, attachment_ref: str | None) -> MessageRead:
        with self.session_factory() as db:
            stored = append_message(db, conversation_key, sender, body=body, attachment_ref=attachment_ref)
            return MessageRead.model_validate(stored)

    @staticmethod
    def _authorize(identity: Identity, event: SendMessageEvent) -> None:
        if event.sender != identity.role:
            raise ValidationError("Sender does not match the connection role.")
        if not identity.is_admin and event.conversation_key != identity.participant_id:
            raise ValidationError("Customers can only write to their own conversation.")

    @staticmethod
    async def _push(connection: Connection, event: BaseModel) -> None:
        try:
            await connection.send_event(event)
        except Exception as exc:
            raise ChannelDeliveryFailure(f"Push to {connection.connection_id} failed") from exc

    async def _send_quietly(self, connection: Connection, event: BaseModel) -> None:
        try:
            await self._push(connection, event)
        except ChannelDeliveryFailure as exc:
            logger.warning("chat.reply_failed connection_id=%s error=%s", connection.connection_id, exc.__cause__ or exc)
            self.registry.remove(connection)
