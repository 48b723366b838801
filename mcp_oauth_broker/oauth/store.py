"""In-memory storage for one OAuth session.

Three small stores back an ``OAuthSession``:
- VerifierStore: the PKCE code verifier of the in-flight attempt
- ClientRegistrationCache: the dynamically registered client identity
- TokenStore: the current access/refresh token pair

Nothing here survives a process restart, and nothing is keyed per user.
There is no locking: the last write wins, which is fine as long as only
one authorization attempt is in flight at a time. Concurrent attempts
interleave unpredictably.
"""

import logging

from .tokens import ClientMetadata, ClientRegistration, TokenPair

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/oauth/callback"


class CodeVerifierNotFoundError(Exception):
    """No PKCE code verifier has been saved for the current attempt."""

    def __init__(self, message: str = "No code verifier found"):
        super().__init__(message)


class VerifierStore:
    """Holds at most one PKCE code verifier."""

    def __init__(self) -> None:
        self._verifier: str | None = None

    def save(self, verifier: str) -> None:
        if self._verifier is not None:
            logger.debug("Replacing code verifier of a previous authorization attempt")
        self._verifier = verifier

    def get(self) -> str:
        """Return the saved verifier.

        Raises:
            CodeVerifierNotFoundError: If no verifier was ever saved
        """
        if self._verifier is None:
            raise CodeVerifierNotFoundError()
        return self._verifier


class ClientRegistrationCache:
    """Holds the client registration and the fixed metadata used to obtain it.

    The redirect URI is derived from the base URL given at construction
    time; it is never stored as state.
    """

    def __init__(self, base_url: str, client_name: str):
        self.base_url = base_url.rstrip("/")
        self.client_name = client_name
        self._registration: ClientRegistration | None = None

    @property
    def redirect_url(self) -> str:
        return f"{self.base_url}{CALLBACK_PATH}"

    @property
    def client_metadata(self) -> ClientMetadata:
        return ClientMetadata(
            client_name=self.client_name,
            redirect_uris=[self.redirect_url],
            client_uri=self.base_url,
        )

    def get(self) -> ClientRegistration | None:
        return self._registration

    def save(self, registration: ClientRegistration) -> None:
        # Overwrite allowed: the server may have discarded the old client
        self._registration = registration


class TokenStore:
    """Holds the current token pair. No expiry checks happen here."""

    def __init__(self) -> None:
        self._tokens: TokenPair | None = None

    def get(self) -> TokenPair | None:
        return self._tokens

    def save(self, tokens: TokenPair) -> None:
        self._tokens = tokens

    def clear(self) -> None:
        self._tokens = None
