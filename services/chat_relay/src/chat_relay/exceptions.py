"""Exceptions raised by chat_relay."""

from __future__ import annotations


class ChatRelayError(RuntimeError):
    """Base error of the chat relay."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause


class DuplicateConnection(ChatRelayError):
    """Connection id is already registered."""

    def __init__(self, connection_id: str) -> None:
        super().__init__(f"Connection {connection_id} is already registered")
        self.connection_id = connection_id


class InvalidState(ChatRelayError):
    """Operation not allowed in the current connection state."""


class ParticipantNotFound(ChatRelayError):
    """Connection has not completed a join."""


class StyleConfigError(ChatRelayError):
    """Invalid style catalog."""


class TransformationError(ChatRelayError):
    """Transformation provider cannot be created."""
