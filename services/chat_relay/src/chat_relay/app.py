"""Factory for Chat Relay FastAPI application."""

from __future__ import annotations

import json
import logging
import logging.config
import time
from contextlib import asynccontextmanager
from pathlib import Path
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import router
from .config import Settings, get_settings
from .gateway import TransformationGateway
from .hub import ChatHub
from .observability import setup_observability
from .version import __version__

logger = logging.getLogger(__name__)


def create_app(*, gateway: TransformationGateway | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        gateway: Pre-built transformation gateway; built from settings when omitted.
    """

    settings = get_settings()

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        _setup_logging(settings)
        hub = ChatHub(settings=settings, gateway=gateway)
        await hub.start()
        app.state.hub = hub
        try:
            yield
        finally:
            await hub.stop()

    app = FastAPI(
        title="Chat Relay",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=_lifespan,
    )
    setup_observability(app, settings=settings, service_name="chat-relay")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.middleware("http")
    async def inject_trace_id(request: Request, call_next):  # type: ignore[override]
        """Attach `trace_id` to request and response headers for correlation."""

        incoming = request.headers.get("x-trace-id") or request.headers.get("x-request-id")
        trace_id = incoming or uuid4().hex
        request.state.trace_id = trace_id
        response: Response = await call_next(request)
        response.headers["X-Trace-Id"] = trace_id
        response.headers.setdefault("X-Request-Id", trace_id)
        return response

    @app.get("/config", tags=["system"])
    def read_config(request: Request) -> dict[str, object]:
        """Return service config snapshot for diagnostics."""

        hub: ChatHub = request.app.state.hub
        return {
            "apiVersion": settings.api_version,
            "traceId": getattr(request.state, "trace_id", ""),
            "historyLimit": settings.history_limit,
            "defaultStyle": hub.gateway.styles.default_style,
            "styles": hub.gateway.styles.ids(),
            "transformConfigured": hub.gateway.configured,
        }

    @app.middleware("http")
    async def http_logger(request: Request, call_next):  # type: ignore[override]
        """Log method, path, status and elapsedMs with traceId."""

        start = time.perf_counter()
        response: Response | None = None
        try:
            response = await call_next(request)
            return response
        finally:
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            logging.getLogger("http").info(
                "method=%s path=%s status=%s elapsedMs=%s traceId=%s",
                request.method,
                request.url.path,
                response.status_code if response else 500,
                elapsed_ms,
                getattr(request.state, "trace_id", ""),
            )

    logger.info("Chat Relay service initialised with API version %s", settings.api_version)
    return app


def _setup_logging(settings: Settings) -> None:
    """Load JSON logging config if present."""

    config_path = Path(settings.log_config_path)
    if not config_path.is_absolute():
        config_path = Path.cwd() / config_path
    if not config_path.exists():
        return
    try:
        with config_path.open("r", encoding="utf-8") as fh:
            cfg = json.load(fh)
        logging.config.dictConfig(cfg)
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring logging config %s: %s", config_path, exc)
