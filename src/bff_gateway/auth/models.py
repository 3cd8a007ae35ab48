"""Authentication data models."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp(value: Any) -> datetime | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _first_claim(claims: dict[str, Any], names: tuple[str, ...]) -> str | None:
    for name in names:
        value = claims.get(name)
        if isinstance(value, str) and value:
            return value
    return None


def display_name_from_claims(claims: dict[str, Any]) -> str:
    """First of name, preferred_username, upn, sub."""
    return _first_claim(claims, ("name", "preferred_username", "upn", "sub")) or ""


def email_from_claims(claims: dict[str, Any]) -> str | None:
    """First of email, preferred_username."""
    return _first_claim(claims, ("email", "preferred_username"))


class LoginSession(BaseModel):
    """Server-side state bridging /auth/login and /auth/callback."""

    session_id: str
    code_verifier: str
    state: str
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime

    @classmethod
    def create(
        cls, session_id: str, code_verifier: str, state: str, ttl_seconds: int
    ) -> "LoginSession":
        now = utcnow()
        return cls(
            session_id=session_id,
            code_verifier=code_verifier,
            state=state,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    @property
    def ttl_seconds(self) -> int:
        return max(0, int((self.expires_at - utcnow()).total_seconds()))


class TokenClaims(BaseModel):
    """Normalized claims of a token that passed every validation check."""

    subject: str = Field(..., description="Subject (user ID)")
    display_name: str = Field(..., description="name / preferred_username / upn / sub")
    email: str | None = Field(None, description="email / preferred_username")
    issuer: str
    audience: str | list[str]
    issued_at: datetime | None = None
    expires_at: datetime
    raw_claims: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "TokenClaims":
        return cls(
            subject=str(payload.get("sub") or payload.get("oid") or ""),
            display_name=display_name_from_claims(payload),
            email=email_from_claims(payload),
            issuer=payload.get("iss", ""),
            audience=payload.get("aud", ""),
            issued_at=_timestamp(payload.get("iat")),
            expires_at=_timestamp(payload.get("exp")),
            raw_claims=dict(payload),
        )

    @property
    def is_expired(self) -> bool:
        return utcnow() >= self.expires_at


class AuthenticatedPrincipal(BaseModel):
    """Identity attached to a single request by the cookie middleware."""

    identity_name: str
    claims: TokenClaims


class TokenExchangeResult(BaseModel):
    """Result of redeeming an authorization code at the token endpoint."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    expires_at: datetime
    id_token: str | None = None
    scope: str | None = None


@dataclass(frozen=True)
class AuthCookie:
    """Wire representation of the authentication cookie."""

    name: str
    value: str
    max_age: int
    secure: bool = True
    http_only: bool = True
    same_site: Literal["lax", "strict", "none"] = "strict"
    path: str = "/"


class ApiResponse(BaseModel):
    """Envelope for JSON responses on non-redirect endpoints."""

    success: bool
    message: str
    data: Any = None
