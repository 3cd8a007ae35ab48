"""PKCE (RFC 7636) verifier and challenge generation."""

import base64
import hashlib
import secrets

MIN_VERIFIER_BYTES = 32
MAX_VERIFIER_BYTES = 96


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def generate_code_verifier(num_bytes: int = MIN_VERIFIER_BYTES) -> str:
    """
    Generate a cryptographically random code verifier.

    32 random bytes encode to 43 characters, the shortest verifier allowed;
    96 bytes encode to 128, the longest.
    """
    if not MIN_VERIFIER_BYTES <= num_bytes <= MAX_VERIFIER_BYTES:
        raise ValueError(
            f"Verifier entropy must be between {MIN_VERIFIER_BYTES} and {MAX_VERIFIER_BYTES} bytes"
        )
    return _b64url(secrets.token_bytes(num_bytes))


def derive_code_challenge(verifier: str) -> str:
    """S256 challenge: base64url(SHA-256(ascii(verifier))) without padding."""
    try:
        raw = verifier.encode("ascii")
    except UnicodeEncodeError as e:
        raise ValueError("Code verifier must be ASCII") from e
    return _b64url(hashlib.sha256(raw).digest())


def generate_state() -> str:
    """Anti-forgery token echoed back by the IdP."""
    return secrets.token_urlsafe(32)


def generate_session_id() -> str:
    return secrets.token_urlsafe(32)
