from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from chat_relay.gateway import RateLimitState, TransformationGateway, sanitize
from chat_relay.providers import (
    StyleHandle,
    TransformFailed,
    TransformOk,
    TransformOutcome,
    TransformRateLimited,
)
from chat_relay.styles import DEFAULT_INSTRUCTIONS, StyleCatalog


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class StubHandle:
    def __init__(self, provider: "StubProvider", style: str) -> None:
        self._provider = provider
        self._style = style

    async def generate(self, prompt: str) -> TransformOutcome:
        self._provider.prompts.append((self._style, prompt))
        if self._provider.outcomes:
            outcome = self._provider.outcomes.pop(0)
        else:
            outcome = TransformOk(text=prompt.split(": ", 1)[1].upper())
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class StubProvider:
    name = "stub"

    def __init__(self, outcomes: list[object] | None = None) -> None:
        self.outcomes = list(outcomes or [])
        self.prompts: list[tuple[str, str]] = []
        self.bound: list[tuple[str, str]] = []

    def bind(self, *, style: str, instructions: str) -> StyleHandle:
        self.bound.append((style, instructions))
        return StubHandle(self, style)


class HangingProvider:
    name = "hanging"

    def bind(self, *, style: str, instructions: str) -> StyleHandle:
        return self

    async def generate(self, prompt: str) -> TransformOutcome:  # type: ignore[override]
        await asyncio.sleep(3600)
        return TransformOk(text="never")


def make_gateway(provider: object | None, clock: FakeClock | None = None, **kwargs: object) -> TransformationGateway:
    return TransformationGateway(
        provider=provider,  # type: ignore[arg-type]
        styles=StyleCatalog(DEFAULT_INSTRUCTIONS, default_style="uwu"),
        rate_limit=RateLimitState(clock=clock or FakeClock()),
        **kwargs,  # type: ignore[arg-type]
    )


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["Kasia", "", "  spaced  ", "\"quoted\"", "x" * 600])
async def test_unconfigured_gateway_returns_input_unchanged(text: str) -> None:
    gateway = make_gateway(None)

    assert await gateway.transform_nickname(text, "uwu") == text
    assert await gateway.transform_message(text, "caveman") == text
    assert gateway.configured is False


@pytest.mark.asyncio
async def test_prompts_carry_kind_and_style_instructions() -> None:
    provider = StubProvider()
    gateway = make_gateway(provider)

    assert await gateway.transform_nickname("kasia", "victorian") == "KASIA"
    assert await gateway.transform_message("hello", "victorian") == "HELLO"

    assert provider.prompts == [
        ("victorian", "TRANSFORM NICKNAME: kasia"),
        ("victorian", "TRANSFORM MESSAGE: hello"),
    ]
    assert provider.bound == [("victorian", DEFAULT_INSTRUCTIONS["victorian"])]


@pytest.mark.asyncio
async def test_style_handle_is_created_once_per_style() -> None:
    provider = StubProvider()
    gateway = make_gateway(provider)

    for _ in range(3):
        await gateway.transform_message("hi", "uwu")
    await gateway.transform_message("hi", "caveman")
    await gateway.transform_message("hi", "no-such-style")

    assert [style for style, _ in provider.bound] == ["uwu", "caveman"]


@pytest.mark.asyncio
async def test_reply_is_stripped_of_surrounding_quotes() -> None:
    provider = StubProvider([TransformOk(text='  "Kasia-chan"  '), TransformOk(text="'hewwo'")])
    gateway = make_gateway(provider)

    assert await gateway.transform_nickname("Kasia", "uwu") == "Kasia-chan"
    assert await gateway.transform_message("hello", "uwu") == "hewwo"


@pytest.mark.asyncio
async def test_oversized_or_empty_replies_fall_back_to_original() -> None:
    provider = StubProvider(
        [
            TransformOk(text="n" * 31),
            TransformOk(text='""'),
            TransformOk(text="m" * 501),
            TransformOk(text="   "),
        ]
    )
    gateway = make_gateway(provider)

    assert await gateway.transform_nickname("Kasia", "uwu") == "Kasia"
    assert await gateway.transform_nickname("Kasia", "uwu") == "Kasia"
    assert await gateway.transform_message("hello", "uwu") == "hello"
    assert await gateway.transform_message("hello", "uwu") == "hello"


@pytest.mark.asyncio
async def test_replies_at_the_cap_are_accepted() -> None:
    provider = StubProvider([TransformOk(text="n" * 30), TransformOk(text="m" * 500)])
    gateway = make_gateway(provider)

    assert await gateway.transform_nickname("Kasia", "uwu") == "n" * 30
    assert await gateway.transform_message("hello", "uwu") == "m" * 500


@pytest.mark.asyncio
async def test_rate_limit_blocks_until_reset_then_retries() -> None:
    clock = FakeClock()
    provider = StubProvider([TransformRateLimited(retry_after=30.0, detail="Quota exceeded: requests")])
    gateway = make_gateway(provider, clock)

    assert await gateway.transform_message("hi", "uwu") == "hi"
    snapshot = gateway.quota_snapshot()
    assert snapshot.is_exceeded is True
    assert snapshot.last_error == "Quota exceeded: requests"
    assert snapshot.reset_at == clock.now + timedelta(seconds=30)

    clock.advance(10)
    assert await gateway.transform_message("still", "uwu") == "still"
    assert len(provider.prompts) == 1

    clock.advance(30)
    assert await gateway.transform_message("again", "uwu") == "AGAIN"
    assert len(provider.prompts) == 2
    snapshot = gateway.quota_snapshot()
    assert snapshot.is_exceeded is False
    assert snapshot.reset_at is None
    assert snapshot.last_error is None


@pytest.mark.asyncio
async def test_rate_limit_without_delay_uses_default_cooldown() -> None:
    clock = FakeClock()
    provider = StubProvider([TransformRateLimited()])
    gateway = TransformationGateway(
        provider=provider,
        styles=StyleCatalog(DEFAULT_INSTRUCTIONS, default_style="uwu"),
        rate_limit=RateLimitState(clock=clock, default_cooldown=5.0),
    )

    await gateway.transform_message("hi", "uwu")
    snapshot = gateway.quota_snapshot()

    assert snapshot.is_exceeded is True
    assert snapshot.reset_at == clock.now + timedelta(seconds=5)
    assert snapshot.last_error == "Rate limit exceeded"


@pytest.mark.asyncio
async def test_provider_failures_fall_back_to_original() -> None:
    provider = StubProvider([TransformFailed(detail="boom"), RuntimeError("sdk bug")])
    gateway = make_gateway(provider)

    assert await gateway.transform_message("hello", "uwu") == "hello"
    assert await gateway.transform_nickname("Kasia", "uwu") == "Kasia"
    assert gateway.quota_snapshot().is_exceeded is False


@pytest.mark.asyncio
async def test_slow_provider_times_out_to_original() -> None:
    gateway = make_gateway(HangingProvider(), timeout=0.05)

    assert await gateway.transform_message("hello", "uwu") == "hello"


@pytest.mark.asyncio
async def test_usage_headers_are_recorded() -> None:
    provider = StubProvider([TransformOk(text="ok", requests_remaining=41, requests_limit=50)])
    gateway = make_gateway(provider)

    await gateway.transform_message("hello", "uwu")
    snapshot = gateway.quota_snapshot()

    assert snapshot.requests_remaining == 41
    assert snapshot.requests_limit == 50


def test_snapshot_is_a_copy() -> None:
    clock = FakeClock()
    state = RateLimitState(clock=clock)
    before = state.snapshot()

    state.record_exceeded(30.0, "Rate limit exceeded")

    assert before.is_exceeded is False
    assert state.snapshot().is_exceeded is True
    assert state.snapshot().model_dump(mode="json", by_alias=True)["resetAt"] == "2026-01-01T12:00:30Z"


def test_last_failure_wins() -> None:
    clock = FakeClock()
    state = RateLimitState(clock=clock)

    state.record_exceeded(30.0, "first")
    clock.advance(1)
    state.record_exceeded(5.0, "second")

    snapshot = state.snapshot()
    assert snapshot.last_error == "second"
    assert snapshot.reset_at == clock.now + timedelta(seconds=5)


def test_sanitize_strips_a_single_quote_layer() -> None:
    assert sanitize('""nested""', max_length=30) == '"nested"'
    assert sanitize("'mixed\"", max_length=30) == "mixed"
    assert sanitize("'", max_length=30) is None


def test_snapshot_reports_reset_once_delay_has_passed() -> None:
    clock = FakeClock()
    state = RateLimitState(clock=clock)
    state.record_exceeded(30.0, "Quota exceeded: requests")

    clock.advance(40)
    snapshot = state.snapshot()

    assert snapshot.is_exceeded is False
    assert snapshot.reset_at is None
    assert snapshot.last_error is None
    assert snapshot.checked_at == clock.now
    assert state.check() is False
