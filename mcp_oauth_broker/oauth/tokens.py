"""OAuth data structures shared by the session, handshake and transport.

This module provides the dataclasses for the dynamically registered client
identity and the token pair returned by the token endpoint, along with
helpers that build them from server responses.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ClientMetadata:
    """Client metadata sent in a Dynamic Client Registration request (RFC 7591).

    Public client: no secret is requested and the token endpoint is called
    with ``token_endpoint_auth_method=none``.
    """

    client_name: str
    redirect_uris: list[str]
    client_uri: str
    grant_types: list[str] = field(
        default_factory=lambda: ["authorization_code", "refresh_token"]
    )
    response_types: list[str] = field(default_factory=lambda: ["code"])
    token_endpoint_auth_method: str = "none"

    def to_registration_request(self) -> dict[str, Any]:
        """Build the JSON body for the registration endpoint."""
        return {
            "client_name": self.client_name,
            "redirect_uris": list(self.redirect_uris),
            "client_uri": self.client_uri,
            "grant_types": list(self.grant_types),
            "response_types": list(self.response_types),
            "token_endpoint_auth_method": self.token_endpoint_auth_method,
        }


@dataclass
class ClientRegistration:
    """Client identity issued by the authorization server.

    Attributes:
        client_id: Identifier assigned by the authorization server
        client_secret: Secret for confidential clients (None for public ones)
        redirect_uris: Redirect URIs bound to this client
        client_name: Display name sent at registration
        client_uri: Home page of the client
        client_id_issued_at: Unix time the id was issued, if reported
        client_secret_expires_at: Unix time the secret expires (0 = never)
    """

    client_id: str
    client_secret: str | None = None
    redirect_uris: list[str] = field(default_factory=list)
    client_name: str | None = None
    client_uri: str | None = None
    client_id_issued_at: int | None = None
    client_secret_expires_at: int | None = None

    def is_confidential(self) -> bool:
        """Check if this is a confidential client (has a secret)."""
        return bool(self.client_secret)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClientRegistration":
        """Deserialize from a dictionary or a registration endpoint response."""
        return cls(
            client_id=data["client_id"],
            client_secret=data.get("client_secret"),
            redirect_uris=list(data.get("redirect_uris", [])),
            client_name=data.get("client_name"),
            client_uri=data.get("client_uri"),
            client_id_issued_at=data.get("client_id_issued_at"),
            client_secret_expires_at=data.get("client_secret_expires_at"),
        )

    @classmethod
    def from_registration_response(
        cls, response: dict[str, Any], metadata: ClientMetadata
    ) -> "ClientRegistration":
        """Create from a registration response, filling gaps from the request.

        Servers are allowed to echo back only part of the metadata, so
        anything they omit is taken from what we sent.
        """
        merged = {
            "client_name": metadata.client_name,
            "client_uri": metadata.client_uri,
            "redirect_uris": list(metadata.redirect_uris),
            **response,
        }
        return cls.from_dict(merged)


@dataclass
class TokenPair:
    """Access/refresh token pair from the token endpoint.

    Attributes:
        access_token: The access token string
        token_type: Token type as reported by the server (typically "Bearer")
        expires_in: Lifetime in seconds at issuance, if reported
        refresh_token: Optional refresh token
        scope: Space-separated list of granted scopes
    """

    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None
    refresh_token: str | None = None
    scope: str | None = None

    def authorization_header(self) -> str:
        """Get the Authorization header value for this token."""
        # Always "Bearer" per RFC 6750; some servers report lowercase types
        return f"Bearer {self.access_token}"

    @classmethod
    def from_token_response(cls, response: dict[str, Any]) -> "TokenPair":
        """Create a TokenPair from a token endpoint JSON response."""
        expires_in = response.get("expires_in")
        return cls(
            access_token=response["access_token"],
            token_type=response.get("token_type", "Bearer"),
            expires_in=int(expires_in) if expires_in is not None else None,
            refresh_token=response.get("refresh_token"),
            scope=response.get("scope"),
        )
