"""Session registry: who is online."""

from __future__ import annotations

from typing import Dict

from .exceptions import DuplicateConnection
from .models import Participant


class SessionRegistry:
    """Maps connection ids to joined participants in join order."""

    def __init__(self) -> None:
        self._participants: Dict[str, Participant] = {}

    def add(self, participant: Participant) -> None:
        if participant.connection_id in self._participants:
            raise DuplicateConnection(participant.connection_id)
        self._participants[participant.connection_id] = participant

    def remove(self, connection_id: str) -> Participant | None:
        return self._participants.pop(connection_id, None)

    def get(self, connection_id: str) -> Participant | None:
        return self._participants.get(connection_id)

    def list_all(self) -> list[Participant]:
        return list(self._participants.values())

    def __len__(self) -> int:
        return len(self._participants)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._participants
