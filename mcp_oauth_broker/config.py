"""Configuration loading for the MCP OAuth broker."""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "MCP_BROKER_"

DEFAULT_SERVER_URL = "https://mcp.sentry.dev/sse"
DEFAULT_CLIENT_NAME = "MCP OAuth Broker"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8787
DEFAULT_CONNECTION_TIMEOUT = 45.0
DEFAULT_SSE_READ_TIMEOUT = 300.0

# Env file search paths in priority order
ENV_SEARCH_PATHS = [
    Path(".env"),
]


@dataclass
class BrokerConfig:
    """Complete broker configuration.

    Attributes:
        server_url: SSE endpoint of the remote MCP server
        client_name: Display name used for Dynamic Client Registration
        public_url: Externally visible base URL; derived per request when unset
        host: Interface the HTTP server binds to
        port: Port the HTTP server binds to
        connection_timeout: Seconds allowed for opening and using a connection
        sse_read_timeout: Seconds to wait for an SSE event before giving up
        env_path: The .env file that was loaded, if any
    """

    server_url: str = DEFAULT_SERVER_URL
    client_name: str = DEFAULT_CLIENT_NAME
    public_url: str | None = None
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    connection_timeout: float = DEFAULT_CONNECTION_TIMEOUT
    sse_read_timeout: float = DEFAULT_SSE_READ_TIMEOUT
    env_path: Path | None = None

    def resolve_base_url(self, request_base_url: str) -> str:
        """Pick the base URL sessions and redirect URIs are built from."""
        return (self.public_url or request_base_url).rstrip("/")


def find_env_file(explicit_path: Path | None = None) -> Path | None:
    """Find the .env file to load, preferring an explicit path."""
    if explicit_path:
        if explicit_path.exists():
            return explicit_path
        return None

    for path in ENV_SEARCH_PATHS:
        if path.exists():
            return path
    return None


def _env(name: str) -> str | None:
    value = os.environ.get(f"{ENV_PREFIX}{name}", "").strip()
    return value or None


def _env_number(name: str, default: float, cast: type) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(
            f"Invalid value for {ENV_PREFIX}{name}: {raw!r} (expected a number)"
        ) from None
    if value <= 0:
        raise ValueError(f"{ENV_PREFIX}{name} must be positive, got {raw!r}")
    return value


def load_config(env_path: Path | None = None) -> BrokerConfig:
    """Load broker configuration from a .env file and the environment.

    Variables already set in the environment take precedence over the
    .env file.

    Args:
        env_path: Explicit path to .env file (optional)

    Raises:
        ValueError: If a numeric setting cannot be parsed
    """
    env_file = find_env_file(env_path)
    if env_file:
        load_dotenv(env_file)

    return BrokerConfig(
        server_url=_env("SERVER_URL") or DEFAULT_SERVER_URL,
        client_name=_env("CLIENT_NAME") or DEFAULT_CLIENT_NAME,
        public_url=_env("PUBLIC_URL"),
        host=_env("HOST") or DEFAULT_HOST,
        port=int(_env_number("PORT", DEFAULT_PORT, int)),
        connection_timeout=_env_number("CONNECTION_TIMEOUT", DEFAULT_CONNECTION_TIMEOUT, float),
        sse_read_timeout=_env_number("SSE_READ_TIMEOUT", DEFAULT_SSE_READ_TIMEOUT, float),
        env_path=env_file,
    )
