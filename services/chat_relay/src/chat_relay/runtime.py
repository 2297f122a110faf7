"""Builders for the gateway and coordinator from settings."""

from __future__ import annotations

import logging

from .config import Settings
from .coordinator import BroadcastCoordinator
from .gateway import Clock, RateLimitState, TransformationGateway
from .history import HistoryBuffer
from .models import utcnow
from .providers import GeminiProvider, OpenAIChatProvider, TransformationProvider
from .styles import load_style_catalog

logger = logging.getLogger(__name__)


def create_gateway(
    settings: Settings,
    *,
    provider: TransformationProvider | None = None,
    clock: Clock = utcnow,
) -> TransformationGateway:
    """Build the transformation gateway for the configured provider."""

    styles = load_style_catalog(settings.styles_path, default_style=settings.default_style)
    lm_provider = provider or _create_provider(settings)
    return TransformationGateway(
        provider=lm_provider,
        styles=styles,
        rate_limit=RateLimitState(clock=clock, default_cooldown=settings.rate_limit_cooldown_seconds),
        timeout=settings.transform_timeout_seconds,
        max_concurrency=settings.transform_concurrency,
        nickname_max_length=settings.nickname_max_length,
        message_max_length=settings.message_max_length,
    )


def create_coordinator(settings: Settings, gateway: TransformationGateway) -> BroadcastCoordinator:
    """Build the room coordinator with a history buffer of the configured size."""

    return BroadcastCoordinator(gateway=gateway, history=HistoryBuffer(settings.history_limit))


def _create_provider(settings: Settings) -> TransformationProvider | None:
    api_key = settings.transform_api_key()
    if api_key is None:
        logger.warning(
            "No API key for provider %s, text is relayed unchanged",
            settings.transform_provider,
        )
        return None
    logger.debug(
        "Initialising provider %s model=%s",
        settings.transform_provider,
        settings.transform_model,
    )
    if settings.transform_provider == "gemini":
        return GeminiProvider(
            model=settings.transform_model,
            api_key=api_key,
            temperature=settings.transform_temperature,
        )
    return OpenAIChatProvider(
        model=settings.transform_model,
        api_key=api_key,
        temperature=settings.transform_temperature,
    )
