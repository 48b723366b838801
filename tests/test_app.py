"""End-to-end tests for the broker's HTTP routes."""

import pytest
from starlette.testclient import TestClient

from mcp_oauth_broker.app import create_app
from mcp_oauth_broker.transport import AuthenticatedTransport

from .conftest import AUTH_ORIGIN, MCP_URL, FakeAuthServer


@pytest.fixture
def client(broker_config, fake_sse: FakeAuthServer):
    """Test client whose transports talk to the fake servers."""

    def transport_factory(session):
        return AuthenticatedTransport(
            MCP_URL,
            session,
            timeout=5,
            on_unauthorized=session.mark_unauthorized,
            http_client=fake_sse.client(),
        )

    app = create_app(broker_config, transport_factory=transport_factory)
    with TestClient(app) as test_client:
        yield test_client
        test_client.portal.call(fake_sse.aclose)


def authenticate(client: TestClient, server: FakeAuthServer) -> None:
    """Drive the browser side of the handshake."""
    redirect = client.post("/api/connect").json()["redirect"]
    response = client.get("/oauth/callback", params={"code": server.approve(redirect)})
    assert "Authentication Successful" in response.text


class TestIndex:
    """Tests for the UI shell."""

    def test_index(self, client):
        """Test the page names the client and the server."""
        response = client.get("/")
        assert response.status_code == 200
        assert "Test Broker" in response.text
        assert MCP_URL in response.text
        assert "/api/connect" in response.text


class TestConnect:
    """Tests for POST /api/connect."""

    def test_unauthenticated_returns_redirect(self, client, fake_sse):
        """Test a fresh broker answers with a redirect to the authorization server."""
        response = client.post("/api/connect")

        assert response.status_code == 200
        assert response.json()["redirect"].startswith(AUTH_ORIGIN)
        assert len(fake_sse.registrations) == 1

    def test_connected_after_authentication(self, client, fake_sse):
        """Test tools are listed once the handshake completed."""
        authenticate(client, fake_sse)

        response = client.post("/api/connect")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert [tool["name"] for tool in data["tools"]] == ["search_issues", "whoami"]
        assert data["tools"][0]["inputSchema"]["type"] == "object"
        assert len(fake_sse.registrations) == 1

    def test_connection_error(self, broker_config):
        """Test unexpected failures are reported as 500 with a message."""

        class BrokenTransport:
            async def list_tools(self):
                raise ConnectionError("Connection refused")

        app = create_app(broker_config, transport_factory=lambda session: BrokenTransport())
        with TestClient(app) as test_client:
            response = test_client.post("/api/connect")

        assert response.status_code == 500
        assert response.json() == {"error": "Connection refused"}

    def test_get_not_allowed(self, client):
        """Test the connect endpoint only accepts POST."""
        assert client.get("/api/connect").status_code == 405


class TestCallback:
    """Tests for GET /oauth/callback."""

    def test_missing_code(self, client, fake_sse):
        """Test a callback without a code does not touch the network."""
        response = client.get("/oauth/callback")

        assert response.status_code == 200
        assert "No authorization code provided." in response.text
        assert fake_sse.requests == []

    def test_code_without_verifier(self, client, fake_sse):
        """Test a callback before any connection attempt."""
        response = client.get("/oauth/callback", params={"code": "abc123"})

        assert "Failed to complete authentication" in response.text
        assert "No code verifier found" in response.text
        assert fake_sse.token_requests == []

    def test_invalid_code(self, client, fake_sse):
        """Test a code the authorization server rejects."""
        client.post("/api/connect")

        response = client.get("/oauth/callback", params={"code": "bogus"})

        assert "Failed to complete authentication" in response.text
        assert client.get("/api/status").json()["state"] == "registered_no_token"

    def test_successful_callback(self, client, fake_sse):
        """Test the success page after a valid code."""
        authenticate(client, fake_sse)
        assert len(fake_sse.token_requests) == 1

    def test_authorization_denied(self, client, fake_sse):
        """Test the error parameter from the authorization server."""
        response = client.get(
            "/oauth/callback",
            params={"error": "access_denied", "error_description": "<b>User said no</b>"},
        )

        assert "Authorization was denied" in response.text
        assert "access_denied" in response.text
        assert "&lt;b&gt;User said no&lt;/b&gt;" in response.text
        assert fake_sse.token_requests == []


class TestStatus:
    """Tests for GET /api/status."""

    def test_lifecycle(self, client, fake_sse):
        """Test the reported state follows the handshake."""
        assert client.get("/api/status").json() == {
            "state": "unregistered",
            "server_url": MCP_URL,
        }

        client.post("/api/connect")
        assert client.get("/api/status").json()["state"] == "awaiting_authorization"

        authenticate(client, fake_sse)
        assert client.get("/api/status").json()["state"] == "authenticated"
