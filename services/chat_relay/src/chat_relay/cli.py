"""Command line tools for running and inspecting chat_relay."""

from __future__ import annotations

import asyncio
import json
import logging

import httpx
import typer

from .config import get_settings
from .exceptions import ChatRelayError
from .runtime import create_gateway

logger = logging.getLogger(__name__)

app = typer.Typer(help="Chat relay service tools.")


@app.callback()
def main_callback() -> None:
    """Root callback; a subcommand is required."""


@app.command(name="serve")
def serve(  # pragma: no cover - starts a server
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind."),
    port: int = typer.Option(3001, "--port", min=1, max=65535, help="HTTP/WebSocket port."),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes."),
) -> None:
    """Run uvicorn with the application factory."""

    import uvicorn

    uvicorn.run("chat_relay.app:create_app", factory=True, host=host, port=port, reload=reload)


@app.command(name="quota")
def quota(
    base_url: str = typer.Option("http://127.0.0.1:3001", "--base-url", help="Base URL of a running relay."),
    timeout: float = typer.Option(5.0, "--timeout", min=0.1, help="Request timeout in seconds."),
) -> None:
    """Print the transformation service quota reported by a running relay."""

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s - %(message)s")
    url = f"{base_url.rstrip('/')}/v1/quota"
    try:
        response = httpx.get(url, timeout=timeout)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.error("Failed to fetch quota: %s", exc)
        raise typer.Exit(code=1) from exc

    typer.echo(json.dumps(response.json(), ensure_ascii=False, indent=2))


@app.command(name="transform")
def transform(
    text: str = typer.Option(..., "--text", help="Text to transform."),
    style: str | None = typer.Option(None, "--style", help="Style id (DEFAULT_STYLE when omitted)."),
    nickname: bool = typer.Option(False, "--nickname", help="Transform as a nickname instead of a message."),
) -> None:
    """Run text through the transformation gateway and print the result."""

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s - %(message)s")
    try:
        gateway = create_gateway(get_settings())
    except ChatRelayError as exc:
        logger.error("Failed to build gateway: %s", exc)
        raise typer.Exit(code=1) from exc

    resolved = gateway.styles.resolve(style)
    if nickname:
        result = asyncio.run(gateway.transform_nickname(text, resolved))
    else:
        result = asyncio.run(gateway.transform_message(text, resolved))
    typer.echo(result)


def main() -> None:
    """Entry point for python -m chat_relay.cli."""

    app()


if __name__ == "__main__":  # pragma: no cover - manual run
    main()
