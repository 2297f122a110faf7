"""API routes for the chat relay service."""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, WebSocket

from ..config import HealthPayload, Settings, get_settings
from ..hub import ChatHub

logger = logging.getLogger(__name__)
router = APIRouter()


def _get_hub_from_app(app) -> ChatHub:  # type: ignore[no-untyped-def]
    hub = getattr(app.state, "hub", None)
    if hub is None:
        raise RuntimeError("ChatHub is not initialised")
    return hub


def get_hub(request: Request) -> ChatHub:
    """Fetch chat hub from HTTP request context."""

    return _get_hub_from_app(request.app)


def get_hub_for_ws(websocket: WebSocket) -> ChatHub:
    """Fetch chat hub for WebSocket connections."""

    return _get_hub_from_app(websocket.app)


@router.get("/health", response_model=HealthPayload, tags=["system"])
async def read_health(settings: Annotated[Settings, Depends(get_settings)]) -> HealthPayload:
    """Return service health information."""

    return HealthPayload(status="ok", api_version=settings.api_version)


@router.get("/v1/quota", tags=["chat"])
async def read_quota(hub: Annotated[ChatHub, Depends(get_hub)]) -> dict[str, Any]:
    """Return the transformation service quota snapshot."""

    return hub.coordinator.quota_snapshot().model_dump(mode="json", by_alias=True)


@router.websocket("/ws")
async def chat_ws(websocket: WebSocket) -> None:
    """Handle a chat client connection."""

    hub = get_hub_for_ws(websocket)
    await hub.handle_connection(websocket)
