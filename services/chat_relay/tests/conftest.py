from __future__ import annotations

from typing import Iterator

import pytest

from chat_relay.config import get_settings

_ENV_KEYS = (
    "OPENAI_API_KEY",
    "GEMINI_API_KEY",
    "TRANSFORM_PROVIDER",
    "STYLES_PATH",
    "DEFAULT_STYLE",
    "RATE_LIMIT_ENABLED",
    "HISTORY_LIMIT",
)


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Isolate tests from the developer's keys and environment."""

    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("LOG_CONFIG_PATH", "does-not-exist.json")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
