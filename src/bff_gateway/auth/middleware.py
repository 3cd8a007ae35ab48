"""Cookie authentication middleware and dependencies for FastAPI."""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from starlette.types import ASGIApp, Receive, Scope, Send

from bff_gateway.auth.cookies import SessionCookieManager
from bff_gateway.auth.errors import AuthError
from bff_gateway.auth.models import AuthenticatedPrincipal
from bff_gateway.auth.validation import TokenValidator

logger = logging.getLogger(__name__)

PRINCIPAL_KEY = "principal"


class CookieAuthenticationMiddleware:
    """
    Attach an AuthenticatedPrincipal to each request carrying a valid auth cookie.

    Runs before routing. Requests under the auth path prefix skip the cookie
    entirely. This middleware never rejects a request; protected routes decide
    on 401 by looking for the principal.
    """

    def __init__(
        self,
        app: ASGIApp,
        validator: TokenValidator,
        cookie_manager: SessionCookieManager,
        auth_path_prefix: str = "/auth",
    ):
        self.app = app
        self.validator = validator
        self.cookie_manager = cookie_manager
        self.auth_path_prefix = auth_path_prefix.rstrip("/")

    def is_auth_path(self, path: str) -> bool:
        return path == self.auth_path_prefix or path.startswith(self.auth_path_prefix + "/")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        request.state.principal = None

        if not self.is_auth_path(request.url.path):
            request.state.principal = await self.authenticate(request)

        await self.app(scope, receive, send)

    async def authenticate(self, request: Request) -> AuthenticatedPrincipal | None:
        try:
            token = self.cookie_manager.read_token(request.cookies)
            if token is None:
                return None
            claims = await self.validator.validate(token)
        except AuthError as e:
            logger.info(f"Auth cookie rejected: {e.kind.value} - {e.message}")
            return None
        except Exception as e:
            logger.error(f"Error authenticating request cookie: {e}", exc_info=True)
            return None

        return AuthenticatedPrincipal(
            identity_name=claims.display_name or claims.subject,
            claims=claims,
        )


def get_principal(request: Request) -> AuthenticatedPrincipal | None:
    """The principal established by the middleware for this request, if any."""
    return getattr(request.state, PRINCIPAL_KEY, None)


async def require_authenticated(
    principal: Annotated[AuthenticatedPrincipal | None, Depends(get_principal)]
) -> AuthenticatedPrincipal:
    """Require a principal on the request."""
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return principal


# Type alias for dependency injection
AuthenticatedUser = Annotated[AuthenticatedPrincipal, Depends(require_authenticated)]
