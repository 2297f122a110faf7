from __future__ import annotations

import asyncio
from typing import Any

import pytest

from chat_relay.hub import ConnectionOutbox
from chat_relay.models import OutboundEvent


class FakeWebSocket:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.sent: list[dict[str, Any]] = []
        self.close_codes: list[int] = []
        self.closed = asyncio.Event()

    async def send_json(self, data: dict[str, Any]) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.close_codes.append(code)
        self.closed.set()


@pytest.mark.asyncio
async def test_outbox_delivers_events_in_push_order() -> None:
    websocket = FakeWebSocket()
    outbox = ConnectionOutbox(websocket, "a")  # type: ignore[arg-type]
    outbox.start()

    outbox.push(OutboundEvent(event="error", data={"message": "one"}))
    outbox.push(OutboundEvent(event="error", data={"message": "two"}))
    for _ in range(10):
        if len(websocket.sent) == 2:
            break
        await asyncio.sleep(0)
    await outbox.close()

    assert [item["data"]["message"] for item in websocket.sent] == ["one", "two"]
    assert websocket.close_codes == []


@pytest.mark.asyncio
async def test_outbox_closes_socket_when_client_is_gone() -> None:
    websocket = FakeWebSocket(RuntimeError("socket closed"))
    outbox = ConnectionOutbox(websocket, "a")  # type: ignore[arg-type]
    outbox.start()

    outbox.push(OutboundEvent(event="users-list", data=[]))
    await asyncio.wait_for(websocket.closed.wait(), timeout=1.0)
    await outbox.close()

    assert websocket.close_codes == [1000]


@pytest.mark.asyncio
async def test_outbox_closes_socket_on_unexpected_send_error() -> None:
    websocket = FakeWebSocket(ValueError("not serialisable"))
    outbox = ConnectionOutbox(websocket, "a")  # type: ignore[arg-type]
    outbox.start()

    outbox.push(OutboundEvent(event="users-list", data=[]))
    await asyncio.wait_for(websocket.closed.wait(), timeout=1.0)
    await outbox.close()
    outbox.push(OutboundEvent(event="users-list", data=[]))

    assert websocket.close_codes == [1011]
    assert websocket.sent == []
