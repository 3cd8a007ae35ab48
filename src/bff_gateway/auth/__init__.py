"""Authentication module for the BFF auth gateway."""

from bff_gateway.auth.models import (
    AuthCookie,
    AuthenticatedPrincipal,
    LoginSession,
    TokenClaims,
    TokenExchangeResult,
)
from bff_gateway.auth.errors import AuthError, FailureKind
from bff_gateway.auth.oidc import TokenExchangeClient
from bff_gateway.auth.session import (
    InMemoryLoginSessionStore,
    LoginSessionManager,
    RedisLoginSessionStore,
)
from bff_gateway.auth.validation import (
    FixedClaimsTestValidator,
    RemoteJwksValidator,
    TokenValidator,
    build_token_validator,
)
from bff_gateway.auth.cookies import SessionCookieManager
from bff_gateway.auth.flow import AuthenticationFlow, FlowState
from bff_gateway.auth.middleware import (
    CookieAuthenticationMiddleware,
    require_authenticated,
    AuthenticatedUser,
)
from bff_gateway.auth.routes import router as auth_router

__all__ = [
    # Models
    "AuthCookie",
    "AuthenticatedPrincipal",
    "LoginSession",
    "TokenClaims",
    "TokenExchangeResult",
    # Errors
    "AuthError",
    "FailureKind",
    # IdP client
    "TokenExchangeClient",
    # Login sessions
    "InMemoryLoginSessionStore",
    "LoginSessionManager",
    "RedisLoginSessionStore",
    # Validation
    "FixedClaimsTestValidator",
    "RemoteJwksValidator",
    "TokenValidator",
    "build_token_validator",
    # Cookies & flow
    "SessionCookieManager",
    "AuthenticationFlow",
    "FlowState",
    # Middleware
    "CookieAuthenticationMiddleware",
    "require_authenticated",
    "AuthenticatedUser",
    # Routes
    "auth_router",
]
