"""PKCE (Proof Key for Code Exchange) helpers per RFC 7636.

A fresh verifier is generated for every authorization attempt. Only the
S256 challenge leaves the process with the authorization URL; the verifier
itself is kept in the session's verifier store until the code exchange.
"""

import base64
import hashlib
import secrets
from dataclasses import dataclass


# RFC 7636 Section 4.1 bounds on the verifier length
MIN_VERIFIER_LENGTH = 43
MAX_VERIFIER_LENGTH = 128
DEFAULT_VERIFIER_LENGTH = 64

CHALLENGE_METHOD = "S256"


@dataclass(frozen=True)
class PKCEPair:
    """A code verifier together with the challenge derived from it."""

    verifier: str
    challenge: str
    method: str = CHALLENGE_METHOD


def generate_code_verifier(length: int = DEFAULT_VERIFIER_LENGTH) -> str:
    """Generate a random code verifier of ``length`` characters.

    The alphabet is the URL-safe base64 set, which is a subset of the
    unreserved characters RFC 7636 allows.

    Raises:
        ValueError: If length is outside 43..128
    """
    if not MIN_VERIFIER_LENGTH <= length <= MAX_VERIFIER_LENGTH:
        raise ValueError(
            f"Code verifier length must be between {MIN_VERIFIER_LENGTH} "
            f"and {MAX_VERIFIER_LENGTH}, got {length}"
        )

    # token_urlsafe yields ~1.3 chars per byte; over-generate then cut
    return secrets.token_urlsafe(length)[:length]


def generate_code_challenge(verifier: str) -> str:
    """Return BASE64URL(SHA256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def generate_pkce_pair(length: int = DEFAULT_VERIFIER_LENGTH) -> PKCEPair:
    """Generate a verifier and its S256 challenge in one step."""
    verifier = generate_code_verifier(length)
    return PKCEPair(verifier=verifier, challenge=generate_code_challenge(verifier))
