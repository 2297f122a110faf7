"""Broadcast coordinator: the single serialization point of the chat room."""

from __future__ import annotations

import asyncio
import itertools
import logging
from enum import Enum
from typing import Any, Callable, Dict, Protocol

from .exceptions import ChatRelayError, DuplicateConnection, InvalidState, ParticipantNotFound
from .gateway import TransformationGateway
from .history import HistoryBuffer
from .models import ChatMessage, OutboundEvent, OutboundEventName, Participant, QuotaSnapshot, utcnow
from .registry import SessionRegistry

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    JOINING = "joining"  # nickname transformation in flight
    JOINED = "joined"
    DISCONNECTED = "disconnected"


class Outbox(Protocol):
    """Per-connection outbound channel. ``push`` must not block."""

    def push(self, event: OutboundEvent) -> None:
        ...


class BroadcastCoordinator:
    """Accepts join/send/disconnect events and emits room state in commit order.

    Transformation calls run outside the commit lock, so a slow provider only
    delays the operation that issued it. Everything that touches the registry,
    the history or the outboxes happens under ``_lock`` without awaiting,
    which makes every commit and its emissions atomic with respect to other
    commits. Broadcast order therefore equals the order of history appends.
    """

    def __init__(
        self,
        *,
        gateway: TransformationGateway,
        registry: SessionRegistry | None = None,
        history: HistoryBuffer | None = None,
        clock: Callable[[], Any] = utcnow,
    ) -> None:
        self._gateway = gateway
        self._registry = registry or SessionRegistry()
        self._history = history or HistoryBuffer()
        self._clock = clock
        self._lock = asyncio.Lock()
        self._states: Dict[str, ConnectionState] = {}
        self._outboxes: Dict[str, Outbox] = {}
        self._commit_seq = itertools.count(1)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def connect(self, connection_id: str, outbox: Outbox) -> None:
        """Register a transport connection in ``CONNECTED`` state."""

        if connection_id in self._states:
            raise DuplicateConnection(connection_id)
        self._states[connection_id] = ConnectionState.CONNECTED
        self._outboxes[connection_id] = outbox
        logger.debug("Connection %s registered", connection_id)

    async def join(self, connection_id: str, nickname: str, style: str | None = None) -> Participant | None:
        async with self._lock:
            try:
                self._begin_join(connection_id)
            except ChatRelayError as exc:
                self._emit_error(connection_id, str(exc))
                return None

        resolved_style = self._gateway.styles.resolve(style)
        display_nickname = await self._gateway.transform_nickname(nickname, resolved_style)
        participant = Participant(
            connection_id=connection_id,
            display_nickname=display_nickname,
            original_nickname=nickname,
            style=resolved_style,
        )

        async with self._lock:
            try:
                return self._commit_join(participant)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Join failed for %s", connection_id)
                self._emit_error(connection_id, "Internal error")
                return None

    async def send(self, connection_id: str, content: str) -> ChatMessage | None:
        async with self._lock:
            try:
                author = self._joined_participant(connection_id)
            except ChatRelayError as exc:
                self._emit_error(connection_id, str(exc))
                return None

        display_content = await self._gateway.transform_message(content, author.style)

        # A disconnect during the transformation does not retract the message.
        async with self._lock:
            try:
                return self._commit_message(author, display_content, content)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Send failed for %s", connection_id)
                self._emit_error(connection_id, "Internal error")
                return None

    async def disconnect(self, connection_id: str) -> Participant | None:
        """Drop the connection; broadcast departure if it had joined. Idempotent."""

        async with self._lock:
            state = self._states.pop(connection_id, None)
            self._outboxes.pop(connection_id, None)
            if state is None:
                return None
            participant = self._registry.remove(connection_id)
            if participant is None:
                logger.debug("Connection %s closed before joining", connection_id)
                return None
            self._broadcast("user-left", participant)
            self._broadcast("users-list", self._registry.list_all())
            logger.info("User %s disconnected", participant.display_nickname)
            return participant

    def request_quota(self, connection_id: str) -> QuotaSnapshot:
        snapshot = self._gateway.quota_snapshot()
        self._emit(connection_id, "quota-update", snapshot)
        return snapshot

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def participants(self) -> list[Participant]:
        return self._registry.list_all()

    def history(self) -> list[ChatMessage]:
        return self._history.snapshot()

    def quota_snapshot(self) -> QuotaSnapshot:
        return self._gateway.quota_snapshot()

    def connection_state(self, connection_id: str) -> ConnectionState | None:
        return self._states.get(connection_id)

    @property
    def connection_count(self) -> int:
        return len(self._outboxes)

    # ------------------------------------------------------------------
    # Commit steps, called with ``_lock`` held
    # ------------------------------------------------------------------

    def _begin_join(self, connection_id: str) -> None:
        state = self._states.get(connection_id)
        if state is None:
            raise InvalidState("Unknown connection")
        if state is not ConnectionState.CONNECTED:
            raise InvalidState("Already joined")
        self._states[connection_id] = ConnectionState.JOINING

    def _commit_join(self, participant: Participant) -> Participant | None:
        connection_id = participant.connection_id
        if self._states.get(connection_id) is not ConnectionState.JOINING:
            logger.info("Join abandoned, connection %s closed during transformation", connection_id)
            return None
        try:
            self._registry.add(participant)
        except DuplicateConnection as exc:
            logger.error("Registry rejected join: %s", exc)
            self._states[connection_id] = ConnectionState.CONNECTED
            self._emit_error(connection_id, "Failed to join chat")
            return None

        self._states[connection_id] = ConnectionState.JOINED
        participants = self._registry.list_all()
        self._emit(connection_id, "user-joined", participant)
        self._emit(connection_id, "users-list", participants)
        self._emit(connection_id, "messages-history", self._history.snapshot())
        self._broadcast("user-joined", participant, exclude=connection_id)
        self._broadcast("users-list", participants, exclude=connection_id)
        logger.info("User %s joined as %s", participant.original_nickname, participant.display_nickname)
        return participant

    def _joined_participant(self, connection_id: str) -> Participant:
        if self._states.get(connection_id) is not ConnectionState.JOINED:
            raise ParticipantNotFound("Participant not found")
        participant = self._registry.get(connection_id)
        if participant is None:
            logger.error("Connection %s is joined but missing from the registry", connection_id)
            raise ParticipantNotFound("Participant not found")
        return participant

    def _commit_message(self, author: Participant, display_content: str, original_content: str) -> ChatMessage:
        sent_at = self._clock()
        message = ChatMessage(
            id=f"{int(sent_at.timestamp() * 1000)}-{next(self._commit_seq)}-{author.connection_id}",
            author=author,
            display_content=display_content,
            original_content=original_content,
            sent_at=sent_at,
        )
        self._history.append(message)
        self._broadcast("new-message", message)
        logger.info("Message from %s: %s", author.display_nickname, display_content)
        return message

    # ------------------------------------------------------------------
    # Emission
    # ------------------------------------------------------------------

    def _emit(self, connection_id: str, event: OutboundEventName, data: Any) -> None:
        outbox = self._outboxes.get(connection_id)
        if outbox is None:
            return
        self._push(connection_id, outbox, OutboundEvent(event=event, data=data))

    def _emit_error(self, connection_id: str, message: str) -> None:
        logger.debug("Rejected operation from %s: %s", connection_id, message)
        self._emit(connection_id, "error", {"message": message})

    def _broadcast(self, event: OutboundEventName, data: Any, *, exclude: str | None = None) -> None:
        envelope = OutboundEvent(event=event, data=data)
        for connection_id, outbox in list(self._outboxes.items()):
            if connection_id == exclude:
                continue
            self._push(connection_id, outbox, envelope)

    @staticmethod
    def _push(connection_id: str, outbox: Outbox, envelope: OutboundEvent) -> None:
        try:
            outbox.push(envelope)
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Failed to queue %s for %s: %s", envelope.event, connection_id, exc)
