"""Authentication error types.

Flow errors end in the single "login failed" redirect; validation and cookie
errors end in an anonymous request. The specific ``kind`` is only ever used
for server-side diagnostics.
"""

from enum import Enum


class FailureKind(str, Enum):
    SESSION_NOT_FOUND = "SessionNotFound"
    STATE_MISMATCH = "StateMismatch"
    AUTHORIZATION_DENIED = "AuthorizationDenied"
    EXCHANGE_FAILURE = "ExchangeFailure"
    TOKEN_MALFORMED = "TokenMalformed"
    TOKEN_SIGNATURE_INVALID = "TokenSignatureInvalid"
    TOKEN_EXPIRED = "TokenExpired"
    TOKEN_ISSUER_MISMATCH = "TokenIssuerMismatch"
    TOKEN_AUDIENCE_MISMATCH = "TokenAudienceMismatch"
    COOKIE_DECODE_FAILURE = "CookieDecodeFailure"


class AuthError(Exception):
    """Base exception for authentication failures."""

    kind: FailureKind

    def __init__(self, message: str | None = None):
        super().__init__(message or self.kind.value)
        self.message = message or self.kind.value


# Login flow


class AuthFlowError(AuthError):
    pass


class SessionNotFoundError(AuthFlowError):
    kind = FailureKind.SESSION_NOT_FOUND


class StateMismatchError(AuthFlowError):
    kind = FailureKind.STATE_MISMATCH


class AuthorizationDeniedError(AuthFlowError):
    kind = FailureKind.AUTHORIZATION_DENIED


class ExchangeFailureError(AuthFlowError):
    kind = FailureKind.EXCHANGE_FAILURE


# Token validation


class TokenValidationError(AuthError):
    pass


class TokenMalformedError(TokenValidationError):
    kind = FailureKind.TOKEN_MALFORMED


class TokenSignatureInvalidError(TokenValidationError):
    kind = FailureKind.TOKEN_SIGNATURE_INVALID


class TokenExpiredError(TokenValidationError):
    kind = FailureKind.TOKEN_EXPIRED


class TokenIssuerMismatchError(TokenValidationError):
    kind = FailureKind.TOKEN_ISSUER_MISMATCH


class TokenAudienceMismatchError(TokenValidationError):
    kind = FailureKind.TOKEN_AUDIENCE_MISMATCH


class CookieDecodeError(AuthError):
    kind = FailureKind.COOKIE_DECODE_FAILURE
