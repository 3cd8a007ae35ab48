"""Access token validation against the IdP's published signing keys."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable

import httpx
from jose import jwt, JWTError
from pydantic import ValidationError

from bff_gateway.config import Settings, ValidatorMode
from bff_gateway.auth.errors import (
    TokenAudienceMismatchError,
    TokenExpiredError,
    TokenIssuerMismatchError,
    TokenMalformedError,
    TokenSignatureInvalidError,
)
from bff_gateway.auth.models import TokenClaims, display_name_from_claims, email_from_claims

logger = logging.getLogger(__name__)

# Only the signature is checked by jose; claims are checked below in a fixed order
_SIGNATURE_ONLY = {
    "verify_signature": True,
    "verify_aud": False,
    "verify_iat": False,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iss": False,
    "verify_sub": False,
    "verify_jti": False,
    "verify_at_hash": False,
}

__all__ = [
    "JwksCache",
    "JwksUnavailableError",
    "TokenValidator",
    "RemoteJwksValidator",
    "FixedClaimsTestValidator",
    "build_token_validator",
    "split_token",
    "display_name_from_claims",
    "email_from_claims",
]


class JwksUnavailableError(Exception):
    """The key discovery endpoint could not be reached and nothing is cached."""


class JwksCache:
    """
    Cached JSON Web Key Set.

    Keys are reused for ``cache_seconds``. Concurrent refreshes collapse into a
    single fetch; while one is in flight, other callers keep the stale keys
    instead of waiting. Fetches are bounded by ``timeout_seconds``. An unknown
    key id triggers at most one refresh per ``min_refresh_interval`` seconds.
    """

    def __init__(
        self,
        jwks_url: str,
        cache_seconds: int = 3600,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        min_refresh_interval: float = 30.0,
    ):
        self.jwks_url = jwks_url
        self.cache_seconds = cache_seconds
        self.timeout_seconds = timeout_seconds
        self.min_refresh_interval = min_refresh_interval
        self._client = httpx.AsyncClient(timeout=timeout_seconds, transport=transport)
        self._jwks: dict | None = None
        self._fetched_at: float | None = None
        self._generation = 0
        self._lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        return (
            self._jwks is not None
            and self._fetched_at is not None
            and (time.monotonic() - self._fetched_at) < self.cache_seconds
        )

    async def get_jwks(self, force_refresh: bool = False) -> dict:
        if self._is_fresh() and not force_refresh:
            return self._jwks

        if self._jwks is not None and self._lock.locked() and not force_refresh:
            return self._jwks

        generation = self._generation
        async with self._lock:
            if self._generation != generation:
                # Someone else refreshed while we waited
                return self._jwks
            return await self._refresh()

    async def _refresh(self) -> dict:
        try:
            jwks = await asyncio.wait_for(self._fetch(), timeout=self.timeout_seconds)
        except (httpx.HTTPError, asyncio.TimeoutError, ValueError) as e:
            if self._jwks is not None:
                logger.warning(f"JWKS refresh failed ({e!r}); serving cached keys")
                return self._jwks
            raise JwksUnavailableError(f"Could not fetch JWKS from {self.jwks_url}: {e!r}") from e

        self._jwks = jwks
        self._fetched_at = time.monotonic()
        self._generation += 1
        logger.info(f"Loaded {len(jwks['keys'])} signing keys from {self.jwks_url}")
        return jwks

    async def _fetch(self) -> dict:
        resp = await self._client.get(self.jwks_url)
        resp.raise_for_status()
        jwks = resp.json()
        if not isinstance(jwks, dict) or not isinstance(jwks.get("keys"), list):
            raise ValueError("Invalid JWKS response: missing 'keys' field")
        return jwks

    async def find_key(self, kid: str) -> dict | None:
        """Find a key by id, refreshing once if it is unknown (key rotation)."""
        jwks = await self.get_jwks()
        key = _match_kid(jwks, kid)
        if key is None and self._may_force_refresh():
            jwks = await self.get_jwks(force_refresh=True)
            key = _match_kid(jwks, kid)
        return key

    def _may_force_refresh(self) -> bool:
        if self._fetched_at is None:
            return True
        if time.monotonic() - self._fetched_at < self.min_refresh_interval:
            logger.debug("Unknown key id; skipping JWKS refresh during cooldown")
            return False
        return True

    async def aclose(self) -> None:
        await self._client.aclose()


def _match_kid(jwks: dict, kid: str) -> dict | None:
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key
    return None


def split_token(raw_token: str | None) -> list[str]:
    """Structural check: exactly three non-empty dot-separated segments."""
    if not raw_token or not isinstance(raw_token, str):
        raise TokenMalformedError("Token is empty")
    segments = raw_token.split(".")
    if len(segments) != 3 or not all(segments):
        raise TokenMalformedError(f"Expected 3 token segments, got {len(segments)}")
    return segments


class TokenValidator(ABC):
    """Turns a raw bearer token into TokenClaims or raises TokenValidationError."""

    @abstractmethod
    async def validate(self, raw_token: str) -> TokenClaims:
        pass

    async def aclose(self) -> None:
        return None


class RemoteJwksValidator(TokenValidator):
    """Production validator: JWKS signature, then expiry, issuer, audience."""

    def __init__(
        self,
        settings: Settings,
        jwks_cache: JwksCache | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.jwks = jwks_cache or JwksCache(
            settings.oidc_jwks_url,
            cache_seconds=settings.jwks_cache_seconds,
            timeout_seconds=settings.http_timeout_seconds,
            min_refresh_interval=settings.jwks_refresh_cooldown_seconds,
        )
        self._clock = clock
        self.accepted_audiences = {settings.azure_client_id, *settings.allowed_audiences}

    async def validate(self, raw_token: str) -> TokenClaims:
        split_token(raw_token)
        payload = await self._verify_signature(raw_token)
        self._check_expiry(payload)
        self._check_issuer(payload)
        self._check_audience(payload)
        try:
            return TokenClaims.from_payload(payload)
        except ValidationError as e:
            raise TokenMalformedError(f"Token claims cannot be represented: {e.error_count()} invalid") from e

    async def _verify_signature(self, raw_token: str) -> dict[str, Any]:
        try:
            header = jwt.get_unverified_header(raw_token)
        except JWTError as e:
            raise TokenMalformedError(f"Invalid token header: {e}") from e

        kid = header.get("kid")
        if not kid:
            raise TokenSignatureInvalidError("Token header missing 'kid'")

        try:
            key = await self.jwks.find_key(kid)
        except JwksUnavailableError as e:
            logger.error(f"Signing keys unavailable: {e}")
            raise TokenSignatureInvalidError("Signing keys unavailable") from e

        if key is None:
            raise TokenSignatureInvalidError("Unable to find matching key for token validation")

        try:
            payload = jwt.decode(
                raw_token,
                key,
                algorithms=self.settings.jwt_algorithms,
                options=_SIGNATURE_ONLY,
            )
        except JWTError as e:
            raise TokenSignatureInvalidError(f"Signature verification failed: {e}") from e

        if not isinstance(payload, dict):
            raise TokenMalformedError("Token payload is not a JSON object")
        return payload

    def _check_expiry(self, payload: dict[str, Any]) -> None:
        exp = payload.get("exp")
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            raise TokenExpiredError("Token has no usable 'exp' claim")
        if exp <= self._clock():
            raise TokenExpiredError("Token has expired")

    def _check_issuer(self, payload: dict[str, Any]) -> None:
        issuer = payload.get("iss")
        if issuer != self.settings.oidc_issuer:
            raise TokenIssuerMismatchError(f"Unexpected issuer: {issuer}")

    def _check_audience(self, payload: dict[str, Any]) -> None:
        aud = payload.get("aud")
        audiences = aud if isinstance(aud, list) else [aud]
        if not any(isinstance(a, str) and a in self.accepted_audiences for a in audiences):
            raise TokenAudienceMismatchError(f"Unexpected audience: {aud}")

    async def aclose(self) -> None:
        await self.jwks.aclose()


class FixedClaimsTestValidator(TokenValidator):
    """
    Development-only validator that ignores the token and returns fixed claims.

    Never reachable from a signature failure; it is only built when
    TOKEN_VALIDATOR=fixed_claims, ALLOW_INSECURE_TEST_VALIDATOR=true and the
    environment is not production.
    """

    def __init__(self, settings: Settings, claims: dict[str, Any] | None = None):
        self.settings = settings
        self._claims = claims or {
            "sub": "test-user",
            "name": "Test User",
            "email": "test@example.com",
        }

    async def validate(self, raw_token: str) -> TokenClaims:
        if not raw_token:
            raise TokenMalformedError("Token is empty")
        now = int(time.time())
        payload = {
            "iss": self.settings.oidc_issuer,
            "aud": self.settings.azure_client_id,
            "iat": now,
            "exp": now + 3600,
            **self._claims,
        }
        return TokenClaims.from_payload(payload)


def build_token_validator(
    settings: Settings, transport: httpx.AsyncBaseTransport | None = None
) -> TokenValidator:
    """Select the validator variant configured for this process."""
    if settings.token_validator is ValidatorMode.FIXED_CLAIMS:
        if settings.is_production or not settings.allow_insecure_test_validator:
            raise RuntimeError("Fixed-claims token validator is not allowed in this environment")
        logger.warning("Using FIXED-CLAIMS token validator - signatures are NOT verified")
        return FixedClaimsTestValidator(settings)

    cache = JwksCache(
        settings.oidc_jwks_url,
        cache_seconds=settings.jwks_cache_seconds,
        timeout_seconds=settings.http_timeout_seconds,
        min_refresh_interval=settings.jwks_refresh_cooldown_seconds,
        transport=transport,
    )
    return RemoteJwksValidator(settings, jwks_cache=cache)
