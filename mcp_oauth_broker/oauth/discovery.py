"""OAuth metadata discovery per RFC 9728 and RFC 8414.

Given the MCP server URL (and, after a 401, its WWW-Authenticate header)
this module finds the authorization server that guards it and fetches
that server's endpoints.

Servers that predate RFC 9728 publish no protected-resource metadata. For
those the MCP server's own origin is treated as the authorization server
issuer, matching what MCP clients have historically done.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin, urlparse

import httpx

logger = logging.getLogger(__name__)

PROTECTED_RESOURCE_PATH = "/.well-known/oauth-protected-resource"
AUTH_SERVER_METADATA_PATHS = (
    "/.well-known/oauth-authorization-server",
    "/.well-known/openid-configuration",
)


class DiscoveryError(Exception):
    """Error during OAuth metadata discovery."""

    pass


def _require_https(url: str, context: str) -> None:
    """Raise DiscoveryError unless ``url`` uses HTTPS."""
    if urlparse(url).scheme != "https":
        raise DiscoveryError(f"{context} must use HTTPS for security, got: {url}")


def _origin(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


@dataclass
class ProtectedResourceMetadata:
    """OAuth 2.0 Protected Resource Metadata (RFC 9728)."""

    resource: str
    authorization_servers: list[str]
    scopes_supported: list[str] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], resource_url: str) -> "ProtectedResourceMetadata":
        return cls(
            resource=data.get("resource", resource_url),
            authorization_servers=data.get("authorization_servers", []),
            scopes_supported=data.get("scopes_supported"),
        )


@dataclass
class AuthServerMetadata:
    """OAuth 2.0 Authorization Server Metadata (RFC 8414)."""

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    registration_endpoint: str | None = None
    scopes_supported: list[str] | None = None
    code_challenge_methods_supported: list[str] = field(default_factory=lambda: ["S256"])

    def supports_pkce(self) -> bool:
        """Check if the server supports PKCE with S256."""
        return "S256" in self.code_challenge_methods_supported

    def supports_dcr(self) -> bool:
        """Check if the server supports Dynamic Client Registration."""
        return self.registration_endpoint is not None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuthServerMetadata":
        """Create from a metadata document.

        Raises:
            DiscoveryError: If any advertised endpoint is not HTTPS
            KeyError: If a required field is missing
        """
        authorization_endpoint = data["authorization_endpoint"]
        token_endpoint = data["token_endpoint"]
        registration_endpoint = data.get("registration_endpoint")

        _require_https(authorization_endpoint, "Authorization endpoint")
        _require_https(token_endpoint, "Token endpoint")
        if registration_endpoint:
            _require_https(registration_endpoint, "Registration endpoint")

        return cls(
            issuer=data["issuer"],
            authorization_endpoint=authorization_endpoint,
            token_endpoint=token_endpoint,
            registration_endpoint=registration_endpoint,
            scopes_supported=data.get("scopes_supported"),
            code_challenge_methods_supported=data.get(
                "code_challenge_methods_supported", ["S256"]
            ),
        )


@dataclass
class OAuthConfig:
    """Everything the handshake needs to know about the remote OAuth setup."""

    auth_server_metadata: AuthServerMetadata
    resource_uri: str  # RFC 8707 resource indicator
    resource_metadata: ProtectedResourceMetadata | None = None

    @property
    def resource_indicator(self) -> str | None:
        """The ``resource`` parameter to send, only when the server published RFC 9728 metadata."""
        return self.resource_uri if self.resource_metadata is not None else None

    @property
    def scopes(self) -> list[str] | None:
        if self.resource_metadata and self.resource_metadata.scopes_supported:
            return self.resource_metadata.scopes_supported
        return self.auth_server_metadata.scopes_supported


def parse_www_authenticate(header: str) -> dict[str, str]:
    """Parse the parameters of a ``Bearer`` WWW-Authenticate header.

    Raises:
        DiscoveryError: If the header is empty or not a Bearer challenge
    """
    if not header:
        raise DiscoveryError("Empty WWW-Authenticate header")
    if not header.lower().startswith("bearer"):
        raise DiscoveryError(f"Expected Bearer auth scheme, got: {header}")

    params: dict[str, str] = {}
    for match in re.finditer(r'(\w+)=(?:"([^"]*)"|([^\s,]+))', header):
        params[match.group(1).lower()] = match.group(2) or match.group(3) or ""
    return params


def compute_resource_uri(server_url: str) -> str:
    """Canonical resource URI: scheme, host and path without trailing slash."""
    parsed = urlparse(server_url)
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path.rstrip('/')}"


async def fetch_protected_resource_metadata(
    url: str,
    http_client: httpx.AsyncClient,
) -> ProtectedResourceMetadata | None:
    """Fetch RFC 9728 metadata, or None if the server does not publish any.

    ``url`` is either an explicit metadata URL (from WWW-Authenticate) or
    the MCP server URL, in which case the well-known path on its origin is
    used.

    Raises:
        DiscoveryError: On network failure or an unusable document
    """
    if PROTECTED_RESOURCE_PATH not in url:
        url = urljoin(_origin(url), PROTECTED_RESOURCE_PATH)
    _require_https(url, "Protected resource metadata URL")

    logger.debug(f"Fetching protected resource metadata from {url}")
    try:
        response = await http_client.get(url)
    except httpx.RequestError as e:
        raise DiscoveryError(f"Network error fetching resource metadata from {url}: {e}") from e

    if response.status_code == 404:
        logger.debug(f"No protected resource metadata at {url}")
        return None
    if response.status_code != 200:
        raise DiscoveryError(
            f"Failed to fetch protected resource metadata from {url}: "
            f"HTTP {response.status_code}"
        )

    try:
        data = response.json()
    except ValueError as e:
        raise DiscoveryError(f"Protected resource metadata from {url} was not valid JSON: {e}") from e

    return ProtectedResourceMetadata.from_dict(data, url)


async def fetch_auth_server_metadata(
    issuer: str,
    http_client: httpx.AsyncClient,
) -> AuthServerMetadata:
    """Fetch authorization server metadata, trying OAuth then OIDC paths.

    Raises:
        DiscoveryError: If no endpoint yields a usable document
    """
    _require_https(issuer, "Authorization server issuer")

    errors: list[tuple[str, str]] = []
    for path in AUTH_SERVER_METADATA_PATHS:
        endpoint = urljoin(_origin(issuer), path)
        logger.debug(f"Trying auth server metadata endpoint: {endpoint}")
        try:
            response = await http_client.get(endpoint)
        except httpx.RequestError as e:
            errors.append((endpoint, f"Network error: {e}"))
            continue

        if response.status_code != 200:
            errors.append((endpoint, f"HTTP {response.status_code}"))
            continue

        try:
            return AuthServerMetadata.from_dict(response.json())
        except ValueError as e:
            errors.append((endpoint, f"Invalid JSON response: {e}"))
        except KeyError as e:
            errors.append((endpoint, f"Missing required field: {e}"))

    details = "\n".join(f"  - {ep}: {err}" for ep, err in errors)
    raise DiscoveryError(
        f"Failed to fetch auth server metadata from {issuer}.\n"
        f"Tried the following endpoints:\n{details}"
    )


async def discover_oauth_config(
    server_url: str,
    http_client: httpx.AsyncClient,
    www_authenticate: str | None = None,
) -> OAuthConfig:
    """Discover the OAuth configuration guarding ``server_url``.

    Args:
        server_url: The MCP server URL
        http_client: HTTP client used for all metadata requests
        www_authenticate: WWW-Authenticate header from a 401, if any

    Raises:
        DiscoveryError: If discovery fails at any step
    """
    metadata_url = server_url
    if www_authenticate:
        params = parse_www_authenticate(www_authenticate)
        metadata_url = params.get("resource_metadata") or server_url

    resource_metadata = await fetch_protected_resource_metadata(metadata_url, http_client)

    if resource_metadata is not None:
        if not resource_metadata.authorization_servers:
            raise DiscoveryError(
                f"Resource metadata for {server_url} does not list any authorization servers"
            )
        issuer = resource_metadata.authorization_servers[0]
        resource_uri = resource_metadata.resource or compute_resource_uri(server_url)
    else:
        issuer = _origin(server_url)
        resource_uri = compute_resource_uri(server_url)

    auth_server_metadata = await fetch_auth_server_metadata(issuer, http_client)
    if not auth_server_metadata.supports_pkce():
        raise DiscoveryError(
            f"Authorization server {issuer} does not support PKCE with S256"
        )

    logger.debug(f"Authorization server for {server_url}: {auth_server_metadata.issuer}")
    return OAuthConfig(
        auth_server_metadata=auth_server_metadata,
        resource_uri=resource_uri,
        resource_metadata=resource_metadata,
    )
