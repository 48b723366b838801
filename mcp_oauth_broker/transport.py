"""Authenticated SSE transport to the remote MCP server.

The transport owns the OAuth handshake: it asks the auth provider for
tokens, runs the authorization flow when there are none (or when the
server answers 401), and opens an MCP ``ClientSession`` over SSE with the
bearer token attached. A redirect signal raised by the provider during the
handshake propagates out of ``connect()`` untouched, possibly wrapped in
an exception group by the SSE client's task group.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable

import httpx
from mcp import ClientSession
from mcp.client.sse import sse_client
from mcp.types import Tool

from .oauth.flow import authorize
from .oauth.session import OAuthClientProvider

logger = logging.getLogger(__name__)


class BearerAuth(httpx.Auth):
    """httpx auth hook that attaches the provider's token and reacts to 401s.

    On a 401 the rejected token is reported through ``on_unauthorized`` and
    the authorization flow is restarted using the server's WWW-Authenticate
    challenge. With an ``OAuthSession`` provider that ends in a redirect
    signal; a provider that obtains tokens some other way gets the request
    retried once with the new token.
    """

    def __init__(
        self,
        server_url: str,
        provider: OAuthClientProvider,
        on_unauthorized: Callable[[], None] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.server_url = server_url
        self.provider = provider
        self.on_unauthorized = on_unauthorized
        self._http_client = http_client

    async def _apply_token(self, request: httpx.Request) -> bool:
        tokens = await self.provider.tokens()
        if tokens is None:
            return False
        request.headers["Authorization"] = tokens.authorization_header()
        return True

    async def async_auth_flow(
        self, request: httpx.Request
    ) -> AsyncGenerator[httpx.Request, httpx.Response]:
        await self._apply_token(request)
        response = yield request

        if response.status_code != 401:
            return

        logger.debug(f"{self.server_url} answered 401, restarting authorization")
        if self.on_unauthorized:
            self.on_unauthorized()

        await authorize(
            self.provider,
            self.server_url,
            www_authenticate=response.headers.get("WWW-Authenticate"),
            http_client=self._http_client,
        )

        if await self._apply_token(request):
            yield request


class AuthenticatedTransport:
    """Opens authenticated MCP sessions to one remote server.

    Usage:
        transport = AuthenticatedTransport(server_url, session)
        async with transport.connect() as client:
            result = await client.list_tools()
    """

    def __init__(
        self,
        server_url: str,
        provider: OAuthClientProvider,
        *,
        timeout: float = 45.0,
        sse_read_timeout: float = 300.0,
        on_unauthorized: Callable[[], None] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the transport.

        Args:
            server_url: SSE endpoint of the MCP server
            provider: Auth provider holding OAuth state
            timeout: Seconds allowed for the whole connection lifetime
            sse_read_timeout: Seconds to wait for an SSE event
            on_unauthorized: Called when the server rejects the stored token
            http_client: Optional HTTP client for OAuth requests
        """
        self.server_url = server_url
        self.provider = provider
        self.timeout = timeout
        self.sse_read_timeout = sse_read_timeout
        self.on_unauthorized = on_unauthorized
        self._http_client = http_client

    async def finish_auth(self, authorization_code: str) -> None:
        """Exchange an authorization code for tokens via the provider."""
        await authorize(
            self.provider,
            self.server_url,
            authorization_code=authorization_code,
            http_client=self._http_client,
        )

    @asynccontextmanager
    async def connect(self) -> AsyncGenerator[ClientSession, None]:
        """Open an initialized MCP session; closed when the block exits.

        Raises:
            AuthorizationRedirectRequired: The user has to authorize first
            TimeoutError: The connection did not complete in time
        """
        if await self.provider.tokens() is None:
            logger.debug("No tokens stored, starting authorization")
            await authorize(self.provider, self.server_url, http_client=self._http_client)

        auth = BearerAuth(
            self.server_url,
            self.provider,
            on_unauthorized=self.on_unauthorized,
            http_client=self._http_client,
        )

        try:
            async with asyncio.timeout(self.timeout):
                async with sse_client(
                    self.server_url,
                    auth=auth,
                    timeout=self.timeout,
                    sse_read_timeout=self.sse_read_timeout,
                ) as (read, write):
                    async with ClientSession(read, write) as session:
                        await session.initialize()
                        logger.info(f"Connected to MCP server {self.server_url}")
                        yield session
        except TimeoutError as e:
            raise TimeoutError(
                f"Connection to {self.server_url} timed out after {self.timeout:g}s"
            ) from e

    async def list_tools(self) -> list[Tool]:
        """Connect, list the server's tools and disconnect."""
        async with self.connect() as session:
            result = await session.list_tools()
            return list(result.tools)
