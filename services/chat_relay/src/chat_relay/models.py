"""Domain models for the chat relay."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

OutboundEventName = Literal[
    "user-joined",
    "users-list",
    "messages-history",
    "new-message",
    "user-left",
    "error",
    "quota-update",
]


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class Participant(BaseModel):
    """Joined chat member as seen by everyone in the room."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    connection_id: str = Field(..., alias="connectionId", description="Stable id of the owning connection.")
    display_nickname: str = Field(..., alias="displayNickname", description="Nickname after transformation.")
    original_nickname: str = Field(..., alias="originalNickname", description="Nickname as typed by the user.")
    style: str = Field(..., description="Style identifier applied to this participant.")


class ChatMessage(BaseModel):
    """Committed chat line."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(..., description="Time-ordered identifier, unique per process.")
    author: Participant = Field(..., description="Participant snapshot at send time.")
    display_content: str = Field(..., alias="displayContent")
    original_content: str = Field(..., alias="originalContent")
    sent_at: datetime = Field(default_factory=utcnow, alias="sentAt")


class QuotaSnapshot(BaseModel):
    """Read-only view of the transformation service rate limit state."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    is_exceeded: bool = Field(False, alias="isExceeded")
    reset_at: datetime | None = Field(default=None, alias="resetAt")
    last_error: str | None = Field(default=None, alias="lastError")
    requests_remaining: int | None = Field(default=None, alias="requestsRemaining")
    requests_limit: int | None = Field(default=None, alias="requestsLimit")
    checked_at: datetime = Field(default_factory=utcnow, alias="checkedAt")


class OutboundEvent(BaseModel):
    """Envelope pushed to WebSocket clients."""

    event: OutboundEventName
    data: Any = None

    def to_wire(self) -> dict[str, Any]:
        return {"event": self.event, "data": _dump(self.data)}


class InboundEvent(BaseModel):
    """Envelope received from WebSocket clients."""

    event: str = Field(..., min_length=1)
    data: dict[str, Any] | None = None


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, (list, tuple)):
        return [_dump(item) for item in value]
    return value
