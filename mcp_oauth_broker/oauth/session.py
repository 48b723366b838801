"""OAuth session controller.

``OAuthSession`` is the auth provider the authenticated transport talks
to during its OAuth handshake. It stores what the handshake produces
(client registration, PKCE verifier, tokens) and turns the handshake's
"send the user to the authorization server" step into a structured
signal, because nothing at this layer can redirect a browser.

State is held per process, for a single cooperating user. Two browsers
authorizing at the same time share one verifier slot and one token slot.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum

from .store import (
    ClientRegistrationCache,
    CodeVerifierNotFoundError,
    TokenStore,
    VerifierStore,
)
from .tokens import ClientMetadata, ClientRegistration, TokenPair

logger = logging.getLogger(__name__)

__all__ = [
    "AuthorizationRedirectRequired",
    "CodeVerifierNotFoundError",
    "OAuthClientProvider",
    "OAuthSession",
    "OAuthSessionError",
    "SessionState",
]


class OAuthSessionError(Exception):
    """Base class for session-level OAuth signals."""

    pass


class AuthorizationRedirectRequired(OAuthSessionError):
    """The user must visit ``url`` to authorize this client.

    Raised instead of performing a redirect. Callers above the transport
    catch it and hand the URL to whoever can actually navigate the browser.
    """

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Authorization required, redirect to: {url}")


class SessionState(str, Enum):
    """Where a session is in the authorization lifecycle."""

    UNREGISTERED = "unregistered"
    REGISTERED_NO_TOKEN = "registered_no_token"
    AWAITING_AUTHORIZATION = "awaiting_authorization"
    AUTHENTICATED = "authenticated"


class OAuthClientProvider(ABC):
    """Capability set the transport's OAuth handshake depends on."""

    @property
    @abstractmethod
    def redirect_url(self) -> str:
        """Callback URL registered with the authorization server."""
        pass

    @property
    @abstractmethod
    def client_metadata(self) -> ClientMetadata:
        """Metadata sent when registering a client."""
        pass

    @abstractmethod
    async def client_information(self) -> ClientRegistration | None:
        """Return the registered client, if any."""
        pass

    @abstractmethod
    async def save_client_information(self, info: ClientRegistration) -> None:
        """Persist a newly registered client."""
        pass

    @abstractmethod
    async def tokens(self) -> TokenPair | None:
        """Return the current tokens, if any."""
        pass

    @abstractmethod
    async def save_tokens(self, tokens: TokenPair) -> None:
        """Persist tokens from a successful exchange."""
        pass

    @abstractmethod
    async def redirect_to_authorization(self, url: str) -> None:
        """Send the user to ``url``. Must never return normally."""
        pass

    @abstractmethod
    async def save_code_verifier(self, verifier: str) -> None:
        """Persist the PKCE verifier for the attempt being started."""
        pass

    @abstractmethod
    async def code_verifier(self) -> str:
        """Return the saved PKCE verifier."""
        pass


class OAuthSession(OAuthClientProvider):
    """In-memory auth provider bound to one externally visible base URL.

    Usage:
        session = OAuthSession("https://broker.example.com", "MCP OAuth Broker")
        transport = AuthenticatedTransport(server_url, session)
        try:
            async with transport.connect() as client:
                ...
        except AuthorizationRedirectRequired as e:
            send_browser_to(e.url)
    """

    def __init__(
        self,
        base_url: str,
        client_name: str,
        *,
        verifiers: VerifierStore | None = None,
        clients: ClientRegistrationCache | None = None,
        token_store: TokenStore | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._verifiers = verifiers or VerifierStore()
        self._clients = clients or ClientRegistrationCache(self.base_url, client_name)
        self._tokens = token_store or TokenStore()
        self._awaiting_authorization = False

    @property
    def redirect_url(self) -> str:
        return self._clients.redirect_url

    @property
    def client_metadata(self) -> ClientMetadata:
        return self._clients.client_metadata

    @property
    def state(self) -> SessionState:
        if self._tokens.get() is not None:
            return SessionState.AUTHENTICATED
        if self._clients.get() is None:
            return SessionState.UNREGISTERED
        if self._awaiting_authorization:
            return SessionState.AWAITING_AUTHORIZATION
        return SessionState.REGISTERED_NO_TOKEN

    async def client_information(self) -> ClientRegistration | None:
        return self._clients.get()

    async def save_client_information(self, info: ClientRegistration) -> None:
        self._clients.save(info)
        logger.info(f"Client information saved (client_id={info.client_id})")

    async def tokens(self) -> TokenPair | None:
        return self._tokens.get()

    async def save_tokens(self, tokens: TokenPair) -> None:
        self._tokens.save(tokens)
        self._awaiting_authorization = False
        logger.info("Tokens saved")

    async def redirect_to_authorization(self, url: str) -> None:
        self._awaiting_authorization = True
        logger.debug(f"Authorization redirect required: {url}")
        raise AuthorizationRedirectRequired(url)

    async def save_code_verifier(self, verifier: str) -> None:
        self._verifiers.save(verifier)
        logger.debug("Code verifier saved")

    async def code_verifier(self) -> str:
        return self._verifiers.get()

    def mark_exchange_failed(self) -> None:
        """Return to REGISTERED_NO_TOKEN after a failed code exchange."""
        self._awaiting_authorization = False

    def mark_unauthorized(self) -> None:
        """Drop tokens the remote server rejected."""
        if self._tokens.get() is not None:
            logger.warning("Stored access token was rejected, clearing it")
        self._tokens.clear()
        self._awaiting_authorization = False
