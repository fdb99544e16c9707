"""Command line entry point for the Gemini relay server."""

from __future__ import annotations

import json
import logging
from typing import Optional

import typer
import uvicorn

from .app import create_app
from .config import RelayConfig
from .config_loader import (
    ConfigError,
    list_env_overrides,
    load_relay_config,
    require_api_key,
)
from .logging_utils import configure_logging

logger = logging.getLogger(__name__)

app = typer.Typer(help="Relay Gemini streaming responses as a normalised SSE feed.")


def _load_or_exit() -> RelayConfig:
    try:
        return load_relay_config()
    except ConfigError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Interface to bind."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to listen on."),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Root log level (default: [logging] log_level)."
    ),
    console: bool = typer.Option(
        True, "--console/--no-console", help="Also log to stderr."
    ),
) -> None:
    """Start the relay (refuses to start without an API key)."""
    cfg = _load_or_exit()
    try:
        require_api_key(cfg)
    except ConfigError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)
    if host:
        cfg.host = host
    if port:
        cfg.port = port

    log_path = configure_logging(cfg, level=log_level, include_console=console)
    logger.info("Gemini relay logging initialised → %s", log_path or "stderr")
    logger.info(
        "Streaming server: http://%s:%s/api/gemini (models: %s, default '%s')",
        cfg.host,
        cfg.port,
        ", ".join(sorted(cfg.models)),
        cfg.default_model,
    )
    uvicorn.run(create_app(cfg), host=cfg.host, port=cfg.port)


@app.command("show-config")
def show_config() -> None:
    """Print the resolved configuration with the credential masked."""
    cfg = _load_or_exit()
    overrides = {
        key: ("***" if key.endswith("API_KEY") else value)
        for key, value in list_env_overrides().items()
    }
    typer.echo(
        json.dumps({"config": cfg.masked(), "env_overrides": overrides}, indent=2)
    )


def main():  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
