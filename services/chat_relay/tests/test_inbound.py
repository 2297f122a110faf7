from __future__ import annotations

import pytest

from chat_relay.config import Settings
from chat_relay.models import InboundEvent
from chat_relay.rate_limit import ConnectionRateLimiter
from chat_relay.runtime import create_gateway
from chat_relay.schemas import InboundValidator, InvalidPayload


@pytest.fixture
def validator() -> InboundValidator:
    return InboundValidator(styles=["uwu", "caveman"], nickname_max_length=50, content_max_length=2000)


def test_valid_events_return_payload(validator: InboundValidator) -> None:
    join = InboundEvent(event="join", data={"nickname": "Kasia", "style": "caveman"})
    send = InboundEvent(event="send-message", data={"content": "hello"})
    quota = InboundEvent(event="request-quota")

    assert validator.validate(join) == {"nickname": "Kasia", "style": "caveman"}
    assert validator.validate(send) == {"content": "hello"}
    assert validator.validate(quota) == {}


@pytest.mark.parametrize(
    ("event", "data"),
    [
        ("join", None),
        ("join", {"nickname": ""}),
        ("join", {"nickname": "   "}),
        ("join", {"nickname": "x" * 51}),
        ("join", {"nickname": "Kasia", "style": "klingon"}),
        ("join", {"nickname": 42}),
        ("send-message", {}),
        ("send-message", {"content": "\n\t"}),
        ("send-message", {"content": "y" * 2001}),
    ],
)
def test_invalid_payloads(validator: InboundValidator, event: str, data: dict | None) -> None:
    with pytest.raises(InvalidPayload, match="^Invalid payload"):
        validator.validate(InboundEvent(event=event, data=data))


def test_unknown_event(validator: InboundValidator) -> None:
    with pytest.raises(InvalidPayload, match="Unknown event: typing"):
        validator.validate(InboundEvent(event="typing", data={}))


class TickClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_rate_limiter_disabled_allows_everything() -> None:
    limiter = ConnectionRateLimiter(Settings(RATE_LIMIT_ENABLED=False, RATE_LIMIT_BURST=1))

    assert all(limiter.allow("a") for _ in range(20))


def test_rate_limiter_refills_per_connection() -> None:
    clock = TickClock()
    limiter = ConnectionRateLimiter(
        Settings(RATE_LIMIT_ENABLED=True, RATE_LIMIT_BURST=2, RATE_LIMIT_RPS=1.0),
        clock=clock,
    )

    assert limiter.allow("a")
    assert limiter.allow("a")
    assert not limiter.allow("a")
    assert limiter.allow("b")

    clock.now += 1.0
    assert limiter.allow("a")
    assert not limiter.allow("a")

    limiter.forget("a")
    assert limiter.allow("a")


@pytest.mark.parametrize("raw", [None, "", "   ", "***REDACTED***"])
def test_unusable_keys_are_ignored(raw: str | None) -> None:
    settings = Settings(OPENAI_API_KEY=raw)

    assert settings.transform_api_key() is None


def test_key_follows_selected_provider() -> None:
    settings = Settings(TRANSFORM_PROVIDER="gemini", OPENAI_API_KEY="sk-openai", GEMINI_API_KEY="g-key")

    assert settings.transform_api_key() == "g-key"


def test_gateway_without_key_is_unconfigured() -> None:
    gateway = create_gateway(Settings(DEFAULT_STYLE="victorian"))

    assert gateway.configured is False
    assert gateway.styles.default_style == "victorian"
