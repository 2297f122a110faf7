"""WebSocket adapter between clients and the broadcast coordinator."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Dict
from uuid import uuid4

from fastapi import WebSocket
from fastapi.websockets import WebSocketDisconnect
from pydantic import ValidationError

from .config import Settings
from .coordinator import BroadcastCoordinator
from .gateway import TransformationGateway
from .models import InboundEvent, OutboundEvent
from .rate_limit import ConnectionRateLimiter
from .runtime import create_coordinator, create_gateway
from .schemas import InboundValidator, InvalidPayload

logger = logging.getLogger(__name__)


class ConnectionOutbox:
    """FIFO of outbound events drained to one WebSocket by a writer task."""

    def __init__(self, websocket: WebSocket, connection_id: str) -> None:
        self._websocket = websocket
        self._connection_id = connection_id
        self._queue: asyncio.Queue[OutboundEvent] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._drain(), name=f"outbox-{self._connection_id}")

    def push(self, event: OutboundEvent) -> None:
        self._queue.put_nowait(event)

    async def close(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _drain(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._websocket.send_json(event.to_wire())
            except (RuntimeError, WebSocketDisconnect) as exc:
                logger.warning("Failed to send %s to %s: %s", event.event, self._connection_id, exc)
                await self._safe_close()
                return
            except Exception as exc:  # pylint: disable=broad-except
                logger.exception("Unexpected error sending %s to %s: %s", event.event, self._connection_id, exc)
                await self._safe_close(code=1011)
                return

    async def _safe_close(self, code: int = 1000) -> None:
        try:
            await self._websocket.close(code=code)
        except RuntimeError:
            logger.debug("Ignored error while closing websocket", exc_info=True)


class ChatHub:
    """Owns the room coordinator and runs one receive loop per WebSocket."""

    def __init__(self, settings: Settings, *, gateway: TransformationGateway | None = None) -> None:
        self._settings = settings
        self._gateway = gateway or create_gateway(settings)
        self._coordinator = create_coordinator(settings, self._gateway)
        self._validator = InboundValidator(
            styles=self._gateway.styles.ids(),
            nickname_max_length=settings.nickname_input_max_length,
            content_max_length=settings.content_input_max_length,
        )
        self._limiter = ConnectionRateLimiter(settings)
        self._outboxes: Dict[str, ConnectionOutbox] = {}

    @property
    def coordinator(self) -> BroadcastCoordinator:
        return self._coordinator

    @property
    def gateway(self) -> TransformationGateway:
        return self._gateway

    async def start(self) -> None:
        logger.info(
            "Chat hub started (transformation %s, styles=%s, history=%d)",
            "enabled" if self._gateway.configured else "disabled",
            ",".join(self._gateway.styles.ids()),
            self._settings.history_limit,
        )

    async def stop(self) -> None:
        outboxes = list(self._outboxes.values())
        self._outboxes.clear()
        for outbox in outboxes:
            await outbox.close()

    async def handle_connection(self, websocket: WebSocket) -> None:
        """Main loop for websocket connection."""

        await websocket.accept()
        connection_id = uuid4().hex
        outbox = ConnectionOutbox(websocket, connection_id)
        self._coordinator.connect(connection_id, outbox)
        self._outboxes[connection_id] = outbox
        outbox.start()
        logger.debug("WebSocket connected id=%s", connection_id)

        try:
            while True:
                raw = await websocket.receive_text()
                # Events of one connection are handled strictly in arrival order.
                await self._dispatch(connection_id, outbox, raw)
        except WebSocketDisconnect:
            logger.debug("Client %s disconnected", connection_id)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unexpected error in websocket loop: %s", exc)
            try:
                await websocket.close(code=1011, reason="Internal error")
            except RuntimeError:
                logger.debug("Ignored error while closing websocket", exc_info=True)
        finally:
            await self._coordinator.disconnect(connection_id)
            self._limiter.forget(connection_id)
            self._outboxes.pop(connection_id, None)
            await outbox.close()

    async def _dispatch(self, connection_id: str, outbox: ConnectionOutbox, raw: str) -> None:
        try:
            envelope = InboundEvent.model_validate(json.loads(raw))
            data = self._validator.validate(envelope)
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.warning("Invalid message from %s: %s", connection_id, exc)
            _reject(outbox, "Invalid payload")
            return
        except InvalidPayload as exc:
            logger.warning("Rejected message from %s: %s", connection_id, exc)
            _reject(outbox, str(exc))
            return

        if envelope.event == "join":
            await self._coordinator.join(connection_id, data["nickname"], data.get("style"))
        elif envelope.event == "send-message":
            if not self._limiter.allow(connection_id):
                _reject(outbox, "Rate limit exceeded")
                return
            await self._coordinator.send(connection_id, data["content"])
        elif envelope.event == "request-quota":
            self._coordinator.request_quota(connection_id)


def _reject(outbox: ConnectionOutbox, message: str) -> None:
    outbox.push(OutboundEvent(event="error", data={"message": message}))
