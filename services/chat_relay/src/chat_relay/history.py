"""Bounded in-memory message history."""

from __future__ import annotations

from collections import deque

from .models import ChatMessage


class HistoryBuffer:
    """FIFO store of the most recent messages; the oldest entry is evicted first."""

    def __init__(self, capacity: int = 100) -> None:
        if capacity < 1:
            raise ValueError("History capacity must be positive")
        self._messages: deque[ChatMessage] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        assert self._messages.maxlen is not None
        return self._messages.maxlen

    def append(self, message: ChatMessage) -> None:
        self._messages.append(message)

    def snapshot(self) -> list[ChatMessage]:
        """Return a copy safe to hold across later appends."""

        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)
