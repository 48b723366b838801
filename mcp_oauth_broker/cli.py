"""CLI entry point for the MCP OAuth broker."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path

import click
import uvicorn

from . import __version__
from .app import create_app
from .config import BrokerConfig, load_config

logger = logging.getLogger("mcp_oauth_broker")


@click.group()
@click.option("--env-file", "env_path", type=click.Path(exists=True), help="Path to .env file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, env_path: str | None, verbose: bool) -> None:
    """MCP OAuth Broker - authenticate a browser against a remote MCP server."""
    ctx.ensure_object(dict)
    ctx.obj["env_path"] = Path(env_path) if env_path else None
    ctx.obj["verbose"] = verbose

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def get_config(ctx: click.Context) -> BrokerConfig:
    """Load config for the current invocation, turning errors into usage errors."""
    try:
        return load_config(ctx.obj["env_path"])
    except ValueError as e:
        raise click.UsageError(str(e)) from e


@main.command()
@click.option("--host", default=None, help="Interface to bind (default from MCP_BROKER_HOST)")
@click.option("--port", type=int, default=None, help="Port to bind (default from MCP_BROKER_PORT)")
@click.option("--server-url", default=None, help="SSE endpoint of the MCP server")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None, server_url: str | None) -> None:
    """Run the broker's HTTP server."""
    config = get_config(ctx)

    overrides: dict[str, object] = {}
    if host:
        overrides["host"] = host
    if port:
        overrides["port"] = port
    if server_url:
        overrides["server_url"] = server_url
    config = replace(config, **overrides)

    click.echo(f"Serving on http://{config.host}:{config.port} for {config.server_url}")
    logger.debug(f"Connection timeout: {config.connection_timeout:g}s")

    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level="debug" if ctx.obj["verbose"] else "info",
    )


@main.command()
@click.pass_context
def config(ctx: click.Context) -> None:
    """Show the effective configuration."""
    cfg = get_config(ctx)
    click.secho("Server URL: ", bold=True, nl=False)
    click.echo(cfg.server_url)
    click.secho("Client name: ", bold=True, nl=False)
    click.echo(cfg.client_name)
    click.secho("Public URL: ", bold=True, nl=False)
    click.echo(cfg.public_url or "(derived from each request)")
    click.secho("Listen: ", bold=True, nl=False)
    click.echo(f"{cfg.host}:{cfg.port}")
    click.secho("Connection timeout: ", bold=True, nl=False)
    click.echo(f"{cfg.connection_timeout:g}s")
    if cfg.env_path:
        click.secho("Env file: ", bold=True, nl=False)
        click.echo(str(cfg.env_path))


if __name__ == "__main__":
    main()
