import base64
import hashlib
import secrets
from dataclasses import dataclass

VERIFIER_LENGTH = 64
STATE_BYTES = 32


def _base64url_no_pad(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def code_challenge_from_verifier(verifier: str) -> str:
    """Compute PKCE S256 code_challenge from code_verifier."""

    digest = hashlib.sha256((verifier or "").encode("utf-8")).digest()
    return _base64url_no_pad(digest)


def generate_code_verifier(length: int = VERIFIER_LENGTH) -> str:
    # RFC 7636: 43-128 chars from the URL-safe alphabet.
    length = max(43, min(128, int(length)))
    return _base64url_no_pad(secrets.token_bytes(length))[:length]


def generate_state() -> str:
    """Random anti-CSRF state token (32 bytes of entropy, URL-safe)."""

    return _base64url_no_pad(secrets.token_bytes(STATE_BYTES))


@dataclass(frozen=True)
class PKCEPair:
    code_verifier: str
    code_challenge: str


def generate_pkce_pair() -> PKCEPair:
    verifier = generate_code_verifier()
    return PKCEPair(code_verifier=verifier, code_challenge=code_challenge_from_verifier(verifier))
