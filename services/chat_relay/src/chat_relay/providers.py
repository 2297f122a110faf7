"""Text transformation providers for chat_relay.

Errors of the external service are mapped here, at the provider boundary, to one
of ``TransformOk``, ``TransformRateLimited`` or ``TransformFailed``.
Nothing else inspects SDK error formats.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Union, runtime_checkable

from .exceptions import TransformationError

logger = logging.getLogger(__name__)

try:  # pragma: no cover - depends on installed extras
    from openai import APIError as OpenAIAPIError
    from openai import AsyncOpenAI, RateLimitError
except ModuleNotFoundError:  # pragma: no cover - openai missing
    AsyncOpenAI = None  # type: ignore[assignment,misc]

try:  # pragma: no cover - depends on installed extras
    from google import genai
    from google.genai import errors as genai_errors
    from google.genai import types as genai_types
except ModuleNotFoundError:  # pragma: no cover - google-genai missing
    genai = None  # type: ignore[assignment]

DEFAULT_OPENAI_MODEL = "gpt-4.1-mini"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash-lite"

_RETRY_INFO_TYPE = "type.googleapis.com/google.rpc.RetryInfo"
_QUOTA_FAILURE_TYPE = "type.googleapis.com/google.rpc.QuotaFailure"
_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


@dataclass(frozen=True)
class TransformOk:
    """Provider reply."""

    text: str
    requests_remaining: int | None = None
    requests_limit: int | None = None


@dataclass(frozen=True)
class TransformRateLimited:
    """Provider reported exhausted quota."""

    retry_after: float | None = None
    detail: str | None = None


@dataclass(frozen=True)
class TransformFailed:
    """Any other call failure."""

    detail: str


TransformOutcome = Union[TransformOk, TransformRateLimited, TransformFailed]


@runtime_checkable
class StyleHandle(Protocol):
    """Reusable call context bound to one style."""

    async def generate(self, prompt: str) -> TransformOutcome:
        """Run a single transformation."""


@runtime_checkable
class TransformationProvider(Protocol):
    """Transformation provider contract."""

    name: str

    def bind(self, *, style: str, instructions: str) -> StyleHandle:
        """Create a call context for a style and its system instruction."""


def parse_retry_delay(value: Any) -> float | None:
    """Convert a delay (``"30s"``, ``"250ms"``, ``"6m0s"``, ``12``) to seconds."""

    if value is None:
        return None
    if isinstance(value, (int, float)):
        return max(0.0, float(value))
    text = str(value).strip().lower()
    if not text:
        return None
    try:
        return max(0.0, float(text))
    except ValueError:
        pass
    parts = _DURATION_PART.findall(text)
    if not parts or "".join(num + unit for num, unit in parts) != text:
        return None
    return sum(float(num) * _UNIT_SECONDS[unit] for num, unit in parts)


def _int_header(headers: Mapping[str, str], name: str) -> int | None:
    raw = headers.get(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _retry_after_from_headers(headers: Mapping[str, str]) -> float | None:
    raw_ms = headers.get("retry-after-ms")
    if raw_ms is not None:
        delay = parse_retry_delay(raw_ms)
        if delay is not None:
            return delay / 1000
    for name in ("retry-after", "x-ratelimit-reset-requests"):
        delay = parse_retry_delay(headers.get(name))
        if delay is not None:
            return delay
    return None


class OpenAIStyleHandle:
    """OpenAI Chat Completions context with the style system instruction."""

    def __init__(self, *, client: Any, model: str, instructions: str, temperature: float) -> None:
        self._client = client
        self._model = model
        self._instructions = instructions
        self._temperature = temperature

    async def generate(self, prompt: str) -> TransformOutcome:
        try:
            raw = await self._client.chat.completions.with_raw_response.create(
                model=self._model,
                temperature=self._temperature,
                messages=[
                    {"role": "system", "content": self._instructions},
                    {"role": "user", "content": prompt},
                ],
            )
        except RateLimitError as exc:
            code = getattr(exc, "code", None)
            detail = f"Quota exceeded: {code}" if code else "Rate limit exceeded"
            return TransformRateLimited(retry_after=_retry_after_from_headers(exc.response.headers), detail=detail)
        except OpenAIAPIError as exc:
            return TransformFailed(detail=f"OpenAI error: {exc}")

        completion = raw.parse()
        text = completion.choices[0].message.content if completion.choices else None
        if text is None:
            return TransformFailed(detail="OpenAI returned an empty reply.")
        return TransformOk(
            text=text,
            requests_remaining=_int_header(raw.headers, "x-ratelimit-remaining-requests"),
            requests_limit=_int_header(raw.headers, "x-ratelimit-limit-requests"),
        )


class OpenAIChatProvider:
    """Provider backed by OpenAI Chat Completions."""

    name = "openai"

    def __init__(
        self,
        *,
        model: str | None = None,
        api_key: str | None = None,
        client: Any | None = None,
        temperature: float = 0.9,
    ) -> None:
        if client is None and AsyncOpenAI is None:
            raise TransformationError("OpenAI SDK is not installed or misconfigured")
        self._model = model or DEFAULT_OPENAI_MODEL
        self._temperature = temperature
        # The gateway owns timeouts and retries.
        self._client = client or AsyncOpenAI(api_key=api_key, max_retries=0)

    def bind(self, *, style: str, instructions: str) -> StyleHandle:
        logger.debug("OpenAI handle style=%s model=%s", style, self._model)
        return OpenAIStyleHandle(
            client=self._client,
            model=self._model,
            instructions=instructions,
            temperature=self._temperature,
        )


def _google_error_details(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, dict):
        inner = payload.get("error", payload)
        details = inner.get("details") if isinstance(inner, dict) else None
    else:
        details = payload
    if not isinstance(details, list):
        return []
    return [item for item in details if isinstance(item, dict)]


def describe_google_rate_limit(payload: Any) -> TransformRateLimited:
    """Decode Gemini 429 error details (RetryInfo, QuotaFailure)."""

    retry_after: float | None = None
    detail = "Rate limit exceeded"
    for item in _google_error_details(payload):
        kind = item.get("@type")
        if kind == _RETRY_INFO_TYPE and retry_after is None:
            retry_after = parse_retry_delay(item.get("retryDelay"))
        elif kind == _QUOTA_FAILURE_TYPE:
            violations = item.get("violations") or []
            metric = violations[0].get("quotaMetric") if violations and isinstance(violations[0], dict) else None
            if metric:
                detail = f"Quota exceeded: {metric}"
    return TransformRateLimited(retry_after=retry_after, detail=detail)


class GeminiStyleHandle:
    """Gemini context with the style system instruction."""

    def __init__(self, *, client: Any, model: str, instructions: str, temperature: float) -> None:
        self._client = client
        self._model = model
        self._config = genai_types.GenerateContentConfig(
            system_instruction=instructions,
            temperature=temperature,
        )

    async def generate(self, prompt: str) -> TransformOutcome:
        try:
            response = await self._client.aio.models.generate_content(
                model=self._model,
                contents=prompt,
                config=self._config,
            )
        except genai_errors.APIError as exc:
            if exc.code == 429:
                return describe_google_rate_limit(exc.details)
            return TransformFailed(detail=f"Gemini error {exc.code}: {exc.message}")

        text = response.text
        if text is None:
            return TransformFailed(detail="Gemini returned an empty reply.")
        return TransformOk(text=text)


class GeminiProvider:
    """Provider backed by Google Gemini (google-genai)."""

    name = "gemini"

    def __init__(
        self,
        *,
        model: str | None = None,
        api_key: str | None = None,
        client: Any | None = None,
        temperature: float = 0.9,
    ) -> None:
        if genai is None:
            raise TransformationError("google-genai SDK is not installed or misconfigured")
        self._model = model or DEFAULT_GEMINI_MODEL
        self._temperature = temperature
        self._client = client or genai.Client(api_key=api_key)

    def bind(self, *, style: str, instructions: str) -> StyleHandle:
        logger.debug("Gemini handle style=%s model=%s", style, self._model)
        return GeminiStyleHandle(
            client=self._client,
            model=self._model,
            instructions=instructions,
            temperature=self._temperature,
        )
