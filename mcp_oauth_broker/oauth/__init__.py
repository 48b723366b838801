"""OAuth 2.1 authorization code + PKCE support for the broker.

Main Components:
    OAuthSession: In-memory auth provider and session state machine
    authorize: Drives the authorization code flow through a provider
    TokenPair / ClientRegistration: Token and client data structures

Quick Start:
    from mcp_oauth_broker.oauth import AuthorizationRedirectRequired, OAuthSession, authorize

    session = OAuthSession(base_url, "MCP OAuth Broker")
    try:
        await authorize(session, server_url)
    except AuthorizationRedirectRequired as e:
        # send the browser to e.url; the callback later calls
        await authorize(session, server_url, authorization_code=code)
"""

from .discovery import (
    AuthServerMetadata,
    DiscoveryError,
    OAuthConfig,
    ProtectedResourceMetadata,
    discover_oauth_config,
    parse_www_authenticate,
)
from .flow import (
    ClientRegistrationError,
    OAuthFlowError,
    TokenExchangeError,
    authorize,
)
from .pkce import PKCEPair, generate_code_challenge, generate_code_verifier, generate_pkce_pair
from .session import (
    AuthorizationRedirectRequired,
    OAuthClientProvider,
    OAuthSession,
    OAuthSessionError,
    SessionState,
)
from .store import ClientRegistrationCache, CodeVerifierNotFoundError, TokenStore, VerifierStore
from .tokens import ClientMetadata, ClientRegistration, TokenPair

__all__ = [
    # Session (main entry point)
    "OAuthSession",
    "OAuthClientProvider",
    "SessionState",
    "OAuthSessionError",
    "AuthorizationRedirectRequired",
    "CodeVerifierNotFoundError",
    # Flow
    "authorize",
    "OAuthFlowError",
    "ClientRegistrationError",
    "TokenExchangeError",
    # Discovery
    "discover_oauth_config",
    "parse_www_authenticate",
    "OAuthConfig",
    "AuthServerMetadata",
    "ProtectedResourceMetadata",
    "DiscoveryError",
    # Data
    "TokenPair",
    "ClientRegistration",
    "ClientMetadata",
    # Storage
    "VerifierStore",
    "ClientRegistrationCache",
    "TokenStore",
    # PKCE
    "generate_pkce_pair",
    "generate_code_verifier",
    "generate_code_challenge",
    "PKCEPair",
]
