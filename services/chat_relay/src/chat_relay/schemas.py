"""JSON Schema validation for inbound chat events."""

from __future__ import annotations

from typing import Any, Iterable

from jsonschema import Draft7Validator, ValidationError

from .exceptions import ChatRelayError
from .models import InboundEvent


class InvalidPayload(ChatRelayError):
    """Inbound event failed validation."""


def build_schemas(*, styles: Iterable[str], nickname_max_length: int, content_max_length: int) -> dict[str, dict]:
    return {
        "join": {
            "type": "object",
            "required": ["nickname"],
            "properties": {
                "nickname": {
                    "type": "string",
                    "minLength": 1,
                    "maxLength": nickname_max_length,
                    "pattern": "\\S",
                },
                "style": {"type": "string", "enum": sorted(styles)},
            },
        },
        "send-message": {
            "type": "object",
            "required": ["content"],
            "properties": {
                "content": {
                    "type": "string",
                    "minLength": 1,
                    "maxLength": content_max_length,
                    "pattern": "\\S",
                },
            },
        },
        "request-quota": {"type": ["object", "null"]},
    }


class InboundValidator:
    """Validates envelopes against per-event schemas."""

    def __init__(self, *, styles: Iterable[str], nickname_max_length: int, content_max_length: int) -> None:
        schemas = build_schemas(
            styles=styles,
            nickname_max_length=nickname_max_length,
            content_max_length=content_max_length,
        )
        self._validators = {name: Draft7Validator(schema) for name, schema in schemas.items()}

    def validate(self, envelope: InboundEvent) -> dict[str, Any]:
        """Return the event payload or raise ``InvalidPayload``."""

        validator = self._validators.get(envelope.event)
        if validator is None:
            raise InvalidPayload(f"Unknown event: {envelope.event}")
        try:
            validator.validate(envelope.data)
        except ValidationError as exc:
            raise InvalidPayload(f"Invalid payload: {exc.message}", cause=exc) from exc
        return dict(envelope.data or {})
