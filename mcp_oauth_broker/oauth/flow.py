"""OAuth authorization code flow with PKCE, driven through an auth provider.

The handshake is split across two HTTP requests to the broker, so it runs
in two halves rather than as one blocking call:

Start (no authorization code):
1. Discover OAuth configuration
2. Register the client dynamically (if not yet registered)
3. Generate a PKCE pair and save the verifier
4. Build the authorization URL and hand it to
   ``provider.redirect_to_authorization``, which raises

Finish (authorization code from the callback):
1. Load the saved verifier
2. Discover OAuth configuration
3. Exchange the code for tokens and save them
"""

import logging
from typing import Any
from urllib.parse import urlencode

import httpx

from .discovery import AuthServerMetadata, DiscoveryError, OAuthConfig, discover_oauth_config
from .pkce import CHALLENGE_METHOD, generate_pkce_pair
from .session import OAuthClientProvider
from .tokens import ClientMetadata, ClientRegistration, TokenPair

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class OAuthFlowError(Exception):
    """Error during OAuth flow."""

    pass


class ClientRegistrationError(OAuthFlowError):
    """Error during Dynamic Client Registration."""

    pass


class TokenExchangeError(OAuthFlowError):
    """Error during token exchange."""

    pass


def _oauth_error_detail(response: httpx.Response) -> str:
    """Extract the standard error fields from an OAuth error response.

    Raw bodies are never echoed back; they may carry secrets.
    """
    try:
        data = response.json()
    except ValueError:
        return ""
    if not isinstance(data, dict):
        return ""
    return f": {data.get('error', '')} - {data.get('error_description', '')}"


async def register_client(
    auth_server_metadata: AuthServerMetadata,
    client_metadata: ClientMetadata,
    http_client: httpx.AsyncClient,
) -> ClientRegistration:
    """Register a client using Dynamic Client Registration (RFC 7591).

    Raises:
        ClientRegistrationError: If the server does not support DCR or rejects it
    """
    if not auth_server_metadata.supports_dcr():
        raise ClientRegistrationError(
            f"Authorization server {auth_server_metadata.issuer} does not support "
            f"Dynamic Client Registration"
        )

    try:
        response = await http_client.post(
            auth_server_metadata.registration_endpoint,  # type: ignore[arg-type]
            json=client_metadata.to_registration_request(),
        )
    except httpx.RequestError as e:
        raise ClientRegistrationError(f"Network error during DCR: {e}") from e

    if response.status_code not in (200, 201):
        raise ClientRegistrationError(
            f"Dynamic Client Registration failed (HTTP {response.status_code})"
            f"{_oauth_error_detail(response)}"
        )

    try:
        data = response.json()
    except ValueError as e:
        raise ClientRegistrationError(f"DCR response was not valid JSON: {e}") from e

    if "client_id" not in data:
        raise ClientRegistrationError("DCR response missing client_id")

    return ClientRegistration.from_registration_response(data, client_metadata)


def build_authorization_url(
    auth_server_metadata: AuthServerMetadata,
    client_id: str,
    redirect_uri: str,
    code_challenge: str,
    resource: str | None = None,
    scopes: list[str] | None = None,
    code_challenge_method: str = CHALLENGE_METHOD,
) -> str:
    """Build the URL the user's browser is sent to."""
    params: dict[str, str] = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "code_challenge": code_challenge,
        "code_challenge_method": code_challenge_method,
    }
    if resource:
        params["resource"] = resource
    if scopes:
        params["scope"] = " ".join(scopes)

    return f"{auth_server_metadata.authorization_endpoint}?{urlencode(params)}"


async def exchange_code_for_tokens(
    auth_server_metadata: AuthServerMetadata,
    client: ClientRegistration,
    code: str,
    redirect_uri: str,
    code_verifier: str,
    http_client: httpx.AsyncClient,
    resource: str | None = None,
) -> dict[str, Any]:
    """Exchange an authorization code for tokens.

    Returns:
        Token endpoint response as dictionary

    Raises:
        TokenExchangeError: If the token endpoint rejects the request
    """
    token_request: dict[str, str] = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
        "code_verifier": code_verifier,
        "client_id": client.client_id,
    }
    if resource:
        token_request["resource"] = resource
    if client.is_confidential():
        token_request["client_secret"] = client.client_secret  # type: ignore[assignment]

    try:
        response = await http_client.post(
            auth_server_metadata.token_endpoint,
            data=token_request,
            headers={"Accept": "application/json"},
        )
    except httpx.RequestError as e:
        raise TokenExchangeError(f"Network error during token exchange: {e}") from e

    if response.status_code != 200:
        raise TokenExchangeError(
            f"Token exchange failed (HTTP {response.status_code})"
            f"{_oauth_error_detail(response)}"
        )

    try:
        result: dict[str, Any] = response.json()
    except ValueError as e:
        raise TokenExchangeError(f"Token response was not valid JSON: {e}") from e

    if "access_token" not in result:
        raise TokenExchangeError("Token response missing access_token")
    return result


async def _discover(
    server_url: str,
    http_client: httpx.AsyncClient,
    www_authenticate: str | None,
) -> OAuthConfig:
    try:
        return await discover_oauth_config(
            server_url, http_client, www_authenticate=www_authenticate
        )
    except DiscoveryError as e:
        raise OAuthFlowError(str(e)) from e


async def _finish(
    provider: OAuthClientProvider,
    server_url: str,
    authorization_code: str,
    http_client: httpx.AsyncClient,
    www_authenticate: str | None,
) -> TokenPair:
    # Before any network I/O: no verifier means nothing to exchange
    verifier = await provider.code_verifier()

    oauth_config = await _discover(server_url, http_client, www_authenticate)

    client = await provider.client_information()
    if client is None:
        raise OAuthFlowError(
            "Existing OAuth client information is required when exchanging an authorization code"
        )

    logger.debug("Exchanging authorization code for tokens")
    token_response = await exchange_code_for_tokens(
        oauth_config.auth_server_metadata,
        client,
        authorization_code,
        provider.redirect_url,
        verifier,
        http_client,
        resource=oauth_config.resource_indicator,
    )
    tokens = TokenPair.from_token_response(token_response)
    await provider.save_tokens(tokens)
    return tokens


async def _start(
    provider: OAuthClientProvider,
    server_url: str,
    http_client: httpx.AsyncClient,
    www_authenticate: str | None,
) -> None:
    oauth_config = await _discover(server_url, http_client, www_authenticate)
    metadata = oauth_config.auth_server_metadata

    client = await provider.client_information()
    if client is None:
        logger.info(f"Registering client with {metadata.issuer}")
        client = await register_client(metadata, provider.client_metadata, http_client)
        await provider.save_client_information(client)

    pkce = generate_pkce_pair()
    await provider.save_code_verifier(pkce.verifier)

    auth_url = build_authorization_url(
        metadata,
        client.client_id,
        provider.redirect_url,
        pkce.challenge,
        resource=oauth_config.resource_indicator,
        scopes=oauth_config.scopes,
        code_challenge_method=pkce.method,
    )
    await provider.redirect_to_authorization(auth_url)


async def authorize(
    provider: OAuthClientProvider,
    server_url: str,
    *,
    authorization_code: str | None = None,
    www_authenticate: str | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> TokenPair | None:
    """Run one half of the authorization code flow for ``server_url``.

    Args:
        provider: Auth provider that stores state and signals redirects
        server_url: The MCP server URL being authorized
        authorization_code: Code from the callback; selects the finish half
        www_authenticate: WWW-Authenticate header from a 401, if any
        http_client: Optional HTTP client for the OAuth requests

    Returns:
        The saved tokens after a successful exchange. The start half ends
        in ``provider.redirect_to_authorization`` and returns None only for
        providers that do not raise there.

    Raises:
        AuthorizationRedirectRequired: From the provider, on the start half
        CodeVerifierNotFoundError: Finish half without a saved verifier
        OAuthFlowError: Discovery, registration or exchange failed
    """
    http = http_client or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)
    should_close = http_client is None

    try:
        if authorization_code is not None:
            return await _finish(
                provider, server_url, authorization_code, http, www_authenticate
            )
        await _start(provider, server_url, http, www_authenticate)
        return None
    finally:
        if should_close:
            await http.aclose()
