"""Connection bootstrapping for the remote MCP server.

The bootstrapper is what the HTTP layer calls. It never raises for
expected outcomes; it returns a tagged result instead:

- ``connect()`` -> Connected | RedirectRequired | ConnectionFailed
- ``complete_authorization(code)`` -> Authenticated | ExchangeFailed
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Union

from mcp.types import Tool

from .config import BrokerConfig
from .oauth.session import AuthorizationRedirectRequired, OAuthSession
from .transport import AuthenticatedTransport

logger = logging.getLogger(__name__)


@dataclass
class ToolInfo:
    """Lightweight tool information returned to the browser."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }

    @classmethod
    def from_tool(cls, tool: Tool) -> "ToolInfo":
        """Create from an MCP tool definition."""
        return cls(
            name=tool.name,
            description=tool.description or "",
            input_schema=tool.inputSchema or {},
        )


@dataclass(frozen=True)
class Connected:
    tools: list[ToolInfo]


@dataclass(frozen=True)
class RedirectRequired:
    url: str


@dataclass(frozen=True)
class ConnectionFailed:
    message: str


@dataclass(frozen=True)
class Authenticated:
    pass


@dataclass(frozen=True)
class ExchangeFailed:
    message: str


ConnectResult = Union[Connected, RedirectRequired, ConnectionFailed]
AuthCompletion = Union[Authenticated, ExchangeFailed]

TransportFactory = Callable[[OAuthSession], AuthenticatedTransport]


def find_redirect(exc: BaseException) -> AuthorizationRedirectRequired | None:
    """Find a redirect signal in ``exc``, looking inside exception groups."""
    if isinstance(exc, AuthorizationRedirectRequired):
        return exc
    if isinstance(exc, BaseExceptionGroup):
        for inner in exc.exceptions:
            found = find_redirect(inner)
            if found is not None:
                return found
    return None


def describe_error(exc: BaseException) -> str:
    """Human-readable message for ``exc``, unwrapping single-error groups."""
    while isinstance(exc, BaseExceptionGroup) and len(exc.exceptions) == 1:
        exc = exc.exceptions[0]
    return str(exc) or type(exc).__name__


class SessionRegistry:
    """Owns the OAuth sessions of a running broker.

    One session per externally visible base URL, shared by every browser
    that reaches the broker through that URL. There is no per-user keying.
    """

    def __init__(self, config: BrokerConfig):
        self.config = config
        self._sessions: dict[str, OAuthSession] = {}

    def get_or_create(self, request_base_url: str) -> OAuthSession:
        base_url = self.config.resolve_base_url(request_base_url)
        session = self._sessions.get(base_url)
        if session is None:
            session = OAuthSession(base_url, self.config.client_name)
            self._sessions[base_url] = session
            logger.info(f"Created OAuth session for {base_url}")
        return session

    def close(self) -> None:
        """Drop all sessions and the credentials they hold."""
        if self._sessions:
            logger.info(f"Discarding {len(self._sessions)} OAuth session(s)")
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)


class ConnectionBootstrapper:
    """Connects to the remote MCP server on behalf of one session."""

    def __init__(
        self,
        config: BrokerConfig,
        session: OAuthSession,
        transport_factory: TransportFactory | None = None,
    ):
        self.config = config
        self.session = session
        self._transport_factory = transport_factory or self._default_transport

    def _default_transport(self, session: OAuthSession) -> AuthenticatedTransport:
        return AuthenticatedTransport(
            self.config.server_url,
            session,
            timeout=self.config.connection_timeout,
            sse_read_timeout=self.config.sse_read_timeout,
            on_unauthorized=session.mark_unauthorized,
        )

    async def connect(self) -> ConnectResult:
        """Open a connection, list the server's tools and release it."""
        transport = self._transport_factory(self.session)
        try:
            tools = await transport.list_tools()
        except Exception as e:
            redirect = find_redirect(e)
            if redirect is not None:
                logger.info("Authorization required, returning redirect to the browser")
                return RedirectRequired(redirect.url)

            message = describe_error(e)
            logger.error(f"Connection error: {message}")
            return ConnectionFailed(message)

        infos = [ToolInfo.from_tool(tool) for tool in tools]
        logger.info(f"Available tools: {', '.join(t.name for t in infos) or '(none)'}")
        return Connected(infos)

    async def complete_authorization(self, authorization_code: str) -> AuthCompletion:
        """Exchange ``authorization_code`` and validate it with one connection.

        The validation connection is closed right away; it is not kept for
        later requests.
        """
        transport = self._transport_factory(self.session)
        try:
            await transport.finish_auth(authorization_code)
            async with transport.connect():
                pass
        except Exception as e:
            self.session.mark_exchange_failed()
            message = describe_error(e)
            logger.error(f"OAuth callback error: {message}")
            return ExchangeFailed(message)

        logger.info("Authorization completed")
        return Authenticated()
