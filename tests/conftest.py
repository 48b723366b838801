"""Shared fixtures and fakes for MCP OAuth broker tests."""

import functools
import json
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from types import SimpleNamespace
from typing import Any, AsyncGenerator
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from mcp.client.sse import sse_client
from mcp.types import Tool

from mcp_oauth_broker.config import BrokerConfig
from mcp_oauth_broker.oauth.pkce import generate_code_challenge
from mcp_oauth_broker.oauth.session import OAuthSession
from mcp_oauth_broker.oauth.tokens import ClientRegistration, TokenPair

MCP_URL = "https://mcp.example.com/sse"
MCP_ORIGIN = "https://mcp.example.com"
AUTH_ORIGIN = "https://auth.example.com"
BROKER_BASE_URL = "http://testserver"

ACCESS_TOKEN = "access-abc"

# First event of an MCP SSE stream: where to POST client messages
SSE_ENDPOINT_EVENT = b"event: endpoint\ndata: /messages/?session_id=test-session\n\n"


# ============================================================================
# Fake remote services
# ============================================================================


class FakeAuthServer:
    """Stands in for the MCP server and its authorization server.

    Serves RFC 9728 / RFC 8414 metadata, dynamic client registration, a
    PKCE-checking token endpoint, and an SSE endpoint that answers 401
    unless the request carries a token it issued.
    """

    def __init__(self, publish_resource_metadata: bool = True):
        self.publish_resource_metadata = publish_resource_metadata
        self.requests: list[httpx.Request] = []
        self.registrations: list[dict[str, Any]] = []
        self.token_requests: list[dict[str, str]] = []
        self.valid_tokens: set[str] = {ACCESS_TOKEN}
        self._codes: dict[str, str] = {}  # code -> code_challenge
        self.clients: list[httpx.AsyncClient] = []

    @property
    def issuer(self) -> str:
        return AUTH_ORIGIN if self.publish_resource_metadata else MCP_ORIGIN

    def approve(self, authorization_url: str) -> str:
        """Play the user consenting: issue a code bound to the URL's challenge."""
        params = parse_qs(urlparse(authorization_url).query)
        code = f"code-{len(self._codes) + 1}"
        self._codes[code] = params["code_challenge"][0]
        return code

    def client(self) -> httpx.AsyncClient:
        """OAuth-side client; closed by ``aclose``."""
        client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        self.clients.append(client)
        return client

    def client_factory(
        self,
        headers: dict[str, str] | None = None,
        timeout: httpx.Timeout | None = None,
        auth: httpx.Auth | None = None,
    ) -> httpx.AsyncClient:
        """``httpx_client_factory`` for the SDK's SSE client, which closes it itself."""
        return httpx.AsyncClient(
            transport=httpx.MockTransport(self.handler),
            headers=headers,
            timeout=timeout,
            auth=auth,
        )

    async def aclose(self) -> None:
        for client in self.clients:
            await client.aclose()
        self.clients.clear()

    def _metadata(self, origin: str) -> dict[str, Any]:
        return {
            "issuer": origin,
            "authorization_endpoint": f"{origin}/authorize",
            "token_endpoint": f"{origin}/token",
            "registration_endpoint": f"{origin}/register",
            "code_challenge_methods_supported": ["S256"],
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        origin = f"{request.url.scheme}://{request.url.host}"
        path = request.url.path

        if origin == MCP_ORIGIN and path == "/.well-known/oauth-protected-resource":
            if not self.publish_resource_metadata:
                return httpx.Response(404)
            return httpx.Response(
                200, json={"resource": MCP_URL, "authorization_servers": [AUTH_ORIGIN]}
            )

        if path == "/.well-known/oauth-authorization-server" and origin == self.issuer:
            return httpx.Response(200, json=self._metadata(origin))

        if path == "/register" and request.method == "POST":
            body = json.loads(request.content)
            self.registrations.append(body)
            return httpx.Response(201, json={"client_id": "client-123", **body})

        if path == "/token" and request.method == "POST":
            form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            self.token_requests.append(form)
            challenge = self._codes.pop(form.get("code", ""), None)
            verifier = form.get("code_verifier", "")
            if challenge is None or generate_code_challenge(verifier) != challenge:
                return httpx.Response(
                    400,
                    json={"error": "invalid_grant", "error_description": "Invalid authorization code"},
                )
            return httpx.Response(
                200,
                json={
                    "access_token": ACCESS_TOKEN,
                    "token_type": "bearer",
                    "expires_in": 3600,
                    "refresh_token": "refresh-xyz",
                },
            )

        if origin == MCP_ORIGIN and path == "/sse":
            header = request.headers.get("Authorization", "")
            if header.removeprefix("Bearer ") in self.valid_tokens:
                return httpx.Response(
                    200,
                    headers={"Content-Type": "text/event-stream"},
                    content=SSE_ENDPOINT_EVENT,
                )
            return httpx.Response(
                401,
                headers={
                    "WWW-Authenticate": (
                        f'Bearer resource_metadata="{MCP_ORIGIN}/.well-known/oauth-protected-resource"'
                    )
                },
            )

        return httpx.Response(404)


SAMPLE_TOOLS = [
    Tool(
        name="search_issues",
        description="Search for issues",
        inputSchema={"type": "object", "properties": {"query": {"type": "string"}}},
    ),
    Tool(name="whoami", description=None, inputSchema={"type": "object"}),
]


class FakeClientSession:
    """Replaces mcp.ClientSession; records that it was opened."""

    opened = 0

    def __init__(self, read: Any, write: Any):
        self.read = read
        self.write = write

    async def __aenter__(self) -> "FakeClientSession":
        FakeClientSession.opened += 1
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None

    async def initialize(self) -> None:
        return None

    async def list_tools(self) -> SimpleNamespace:
        return SimpleNamespace(tools=list(SAMPLE_TOOLS))


@pytest.fixture
def auth_server() -> FakeAuthServer:
    """Fake MCP + authorization server publishing RFC 9728 metadata."""
    return FakeAuthServer()


@pytest.fixture
def fake_sse(
    auth_server: FakeAuthServer, monkeypatch: pytest.MonkeyPatch
) -> FakeAuthServer:
    """Route the transport's SSE connection through the fake server.

    The opening GET goes through the real auth hook, so 401 handling and
    bearer headers are exercised; the MCP session itself is faked.
    """
    FakeClientSession.opened = 0

    @asynccontextmanager
    async def fake_sse_client(
        url: str, auth: httpx.Auth | None = None, **kwargs: Any
    ) -> AsyncGenerator[tuple[None, None], None]:
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(auth_server.handler), auth=auth
        ) as client:
            response = await client.get(url)
            response.raise_for_status()
        yield None, None

    monkeypatch.setattr("mcp_oauth_broker.transport.sse_client", fake_sse_client)
    monkeypatch.setattr("mcp_oauth_broker.transport.ClientSession", FakeClientSession)
    return auth_server


@pytest.fixture
def sdk_sse(
    auth_server: FakeAuthServer, monkeypatch: pytest.MonkeyPatch
) -> FakeAuthServer:
    """Use the SDK's own SSE client, with HTTP served by the fake server.

    Only the MCP session on top of the stream is faked.
    """
    FakeClientSession.opened = 0
    monkeypatch.setattr(
        "mcp_oauth_broker.transport.sse_client",
        functools.partial(sse_client, httpx_client_factory=auth_server.client_factory),
    )
    monkeypatch.setattr("mcp_oauth_broker.transport.ClientSession", FakeClientSession)
    return auth_server


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def broker_config() -> BrokerConfig:
    """Broker configuration pointing at the fake MCP server."""
    return BrokerConfig(server_url=MCP_URL, client_name="Test Broker", connection_timeout=5.0)


@pytest.fixture
def session() -> OAuthSession:
    """A fresh session bound to the test client's base URL."""
    return OAuthSession(BROKER_BASE_URL, "Test Broker")


@pytest.fixture
def sample_registration() -> ClientRegistration:
    return ClientRegistration(
        client_id="client-123",
        redirect_uris=[f"{BROKER_BASE_URL}/oauth/callback"],
        client_name="Test Broker",
        client_uri=BROKER_BASE_URL,
    )


@pytest.fixture
def sample_tokens() -> TokenPair:
    return TokenPair(access_token=ACCESS_TOKEN, token_type="Bearer", expires_in=3600)


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Temporarily clear broker environment variables."""
    old_env = os.environ.copy()
    for key in list(os.environ.keys()):
        if key.startswith("MCP_BROKER_"):
            del os.environ[key]
    yield
    os.environ.clear()
    os.environ.update(old_env)
