"""Transformation gateway: gated, quota-aware calls to the restyling provider."""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Literal

from .models import QuotaSnapshot, utcnow
from .providers import (
    StyleHandle,
    TransformationProvider,
    TransformFailed,
    TransformOk,
    TransformOutcome,
    TransformRateLimited,
)
from .styles import StyleCatalog

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
TextKind = Literal["nickname", "message"]

_QUOTES = "\"'"


class RateLimitState:
    """Process-wide quota state of the transformation service.

    Expiry is lazy: the exceeded flag is cleared by the first ``check`` or
    ``snapshot`` made after ``reset_at``. Every mutation happens under a lock,
    so concurrent failures never lose an update; the last failure wins.
    """

    def __init__(self, *, clock: Clock = utcnow, default_cooldown: float = 60.0) -> None:
        self._clock = clock
        self._default_cooldown = default_cooldown
        self._lock = threading.Lock()
        self._is_exceeded = False
        self._reset_at: datetime | None = None
        self._last_error: str | None = None
        self._requests_remaining: int | None = None
        self._requests_limit: int | None = None

    def check(self) -> bool:
        """Return ``True`` while calls must be skipped."""

        with self._lock:
            self._expire(self._clock())
            return self._is_exceeded

    def record_exceeded(self, retry_after: float | None, detail: str | None) -> None:
        delay = retry_after if retry_after is not None else self._default_cooldown
        with self._lock:
            self._is_exceeded = True
            self._reset_at = self._clock() + timedelta(seconds=delay)
            self._last_error = detail or "Rate limit exceeded"
            reset_at = self._reset_at
        logger.warning("Transformation rate limit exceeded until %s: %s", reset_at.isoformat(), detail)

    def record_usage(self, remaining: int | None, limit: int | None) -> None:
        if remaining is None and limit is None:
            return
        with self._lock:
            if remaining is not None:
                self._requests_remaining = remaining
            if limit is not None:
                self._requests_limit = limit

    def snapshot(self) -> QuotaSnapshot:
        with self._lock:
            now = self._clock()
            self._expire(now)
            return QuotaSnapshot(
                is_exceeded=self._is_exceeded,
                reset_at=self._reset_at,
                last_error=self._last_error,
                requests_remaining=self._requests_remaining,
                requests_limit=self._requests_limit,
                checked_at=now,
            )

    def _expire(self, now: datetime) -> None:
        # Called with _lock held.
        if self._reset_at is not None and now >= self._reset_at:
            self._is_exceeded = False
            self._reset_at = None
            self._last_error = None
            logger.info("Transformation rate limit reset")


def sanitize(text: str, *, max_length: int) -> str | None:
    """Trim quotes around a provider reply; ``None`` when the reply is unusable."""

    cleaned = text.strip()
    if cleaned[:1] and cleaned[0] in _QUOTES:
        cleaned = cleaned[1:]
    if cleaned[-1:] and cleaned[-1] in _QUOTES:
        cleaned = cleaned[:-1]
    if not cleaned or len(cleaned) > max_length:
        return None
    return cleaned


class TransformationGateway:
    """Restyles nicknames and messages, degrading to the original text.

    The gateway never raises: a missing provider, an exhausted quota, a
    timeout, a provider error or an unusable reply all yield the input
    unchanged.
    """

    def __init__(
        self,
        *,
        provider: TransformationProvider | None,
        styles: StyleCatalog,
        rate_limit: RateLimitState | None = None,
        timeout: float = 15.0,
        max_concurrency: int = 4,
        nickname_max_length: int = 30,
        message_max_length: int = 500,
    ) -> None:
        self._provider = provider
        self._styles = styles
        self._rate_limit = rate_limit or RateLimitState()
        self._timeout = timeout
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._max_length: dict[TextKind, int] = {
            "nickname": nickname_max_length,
            "message": message_max_length,
        }
        self._handles: dict[str, StyleHandle] = {}

    @property
    def configured(self) -> bool:
        return self._provider is not None

    @property
    def styles(self) -> StyleCatalog:
        return self._styles

    async def transform_nickname(self, original: str, style: str) -> str:
        return await self._transform("nickname", original, style)

    async def transform_message(self, original: str, style: str) -> str:
        return await self._transform("message", original, style)

    def quota_snapshot(self) -> QuotaSnapshot:
        return self._rate_limit.snapshot()

    def _handle(self, style: str) -> StyleHandle:
        assert self._provider is not None
        resolved = self._styles.resolve(style)
        handle = self._handles.get(resolved)
        if handle is None:
            handle = self._provider.bind(style=resolved, instructions=self._styles.instructions(resolved))
            self._handles[resolved] = handle
        return handle

    async def _transform(self, kind: TextKind, original: str, style: str) -> str:
        if self._provider is None:
            logger.debug("Transformation provider not configured, returning original %s", kind)
            return original
        if self._rate_limit.check():
            logger.warning("Rate limit exceeded, returning original %s", kind)
            return original

        prompt = f"TRANSFORM {kind.upper()}: {original}"
        try:
            async with self._semaphore:
                outcome: TransformOutcome = await asyncio.wait_for(
                    self._handle(style).generate(prompt),
                    timeout=self._timeout,
                )
        except asyncio.TimeoutError:
            outcome = TransformFailed(detail=f"timed out after {self._timeout}s")
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unexpected transformation failure")
            outcome = TransformFailed(detail=str(exc))

        if isinstance(outcome, TransformOk):
            self._rate_limit.record_usage(outcome.requests_remaining, outcome.requests_limit)
            cleaned = sanitize(outcome.text, max_length=self._max_length[kind])
            if cleaned is None:
                logger.warning("Discarded unusable %s transformation (len=%d)", kind, len(outcome.text))
                return original
            logger.info("Transformed %s style=%s: %r -> %r", kind, style, original, cleaned)
            return cleaned
        if isinstance(outcome, TransformRateLimited):
            self._rate_limit.record_exceeded(outcome.retry_after, outcome.detail)
            return original
        logger.warning("Error transforming %s: %s", kind, outcome.detail)
        return original
