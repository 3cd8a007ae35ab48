"""Login flow orchestration: login -> IdP -> callback -> exchange -> validate."""

import hmac
import logging
from dataclasses import dataclass
from enum import Enum

from bff_gateway.config import Settings
from bff_gateway.auth.errors import (
    AuthError,
    AuthorizationDeniedError,
    StateMismatchError,
)
from bff_gateway.auth.cookies import SessionCookieManager
from bff_gateway.auth.models import AuthCookie, LoginSession, TokenClaims, TokenExchangeResult
from bff_gateway.auth.oidc import TokenExchangeClient
from bff_gateway.auth.pkce import derive_code_challenge
from bff_gateway.auth.session import LoginSessionManager
from bff_gateway.auth.validation import TokenValidator

logger = logging.getLogger(__name__)


class FlowState(str, Enum):
    UNSTARTED = "UNSTARTED"
    LOGIN_INITIATED = "LOGIN_INITIATED"
    CALLBACK_RECEIVED = "CALLBACK_RECEIVED"
    TOKEN_EXCHANGED = "TOKEN_EXCHANGED"
    AUTHENTICATED = "AUTHENTICATED"
    ERROR = "ERROR"


@dataclass
class LoginRedirect:
    authorization_url: str
    session: LoginSession
    state: FlowState = FlowState.LOGIN_INITIATED


@dataclass
class CallbackResult:
    state: FlowState
    redirect_url: str
    token: TokenExchangeResult | None = None
    claims: TokenClaims | None = None
    failure: AuthError | None = None

    @property
    def authenticated(self) -> bool:
        return self.state is FlowState.AUTHENTICATED


class AuthenticationFlow:
    """Drives the PKCE login sequence. Holds no per-request state itself."""

    def __init__(
        self,
        settings: Settings,
        sessions: LoginSessionManager,
        exchange_client: TokenExchangeClient,
        validator: TokenValidator,
        cookies: SessionCookieManager | None = None,
    ):
        self.settings = settings
        self.sessions = sessions
        self.exchange_client = exchange_client
        self.validator = validator
        self.cookies = cookies or SessionCookieManager(settings)

    async def begin_login(self) -> LoginRedirect:
        """Create a login session and the IdP authorization URL for it."""
        session = await self.sessions.begin()
        url = self.exchange_client.build_authorization_url(
            state=session.state,
            code_challenge=derive_code_challenge(session.code_verifier),
        )
        return LoginRedirect(authorization_url=url, session=session)

    async def complete_login(
        self,
        session_id: str | None,
        code: str | None = None,
        state: str | None = None,
        error: str | None = None,
        error_description: str | None = None,
    ) -> CallbackResult:
        """
        Handle the IdP callback.

        Never raises for flow failures: every failure is returned as an ERROR
        result pointing at the frontend failure URL, with the specific error
        kept for logging.
        """
        flow_state = FlowState.CALLBACK_RECEIVED
        try:
            if error:
                await self.sessions.discard(session_id)
                raise AuthorizationDeniedError(f"IdP returned {error}: {error_description or ''}".strip())

            if not code:
                await self.sessions.discard(session_id)
                raise AuthorizationDeniedError("Callback is missing the authorization code")

            session = await self.sessions.consume(session_id)

            if not state or not hmac.compare_digest(state.encode(), session.state.encode()):
                raise StateMismatchError("State parameter does not match the login session")

            token = await self.exchange_client.exchange_code(code, session.code_verifier)
            flow_state = FlowState.TOKEN_EXCHANGED

            claims = await self.validator.validate(token.access_token)
        except AuthError as e:
            logger.warning(f"Login failed in state {flow_state.value}: {e.kind.value} - {e.message}")
            return self._failed(e)
        except Exception as e:
            logger.error(f"Unexpected error during login in state {flow_state.value}: {e}", exc_info=True)
            return self._failed()

        logger.info(f"User {claims.display_name} logged in successfully")
        return CallbackResult(
            state=FlowState.AUTHENTICATED,
            redirect_url=self.settings.login_success_url,
            token=token,
            claims=claims,
        )

    def _failed(self, failure: AuthError | None = None) -> CallbackResult:
        return CallbackResult(
            state=FlowState.ERROR,
            redirect_url=self.settings.login_failure_url,
            failure=failure,
        )

    async def logout(self) -> AuthCookie:
        """
        Expire the auth cookie. Nothing is held server-side, so this succeeds
        whether or not the browser still has a cookie.
        """
        logger.info("Clearing authentication cookie")
        return self.cookies.build_cleared_cookie()


__all__ = [
    "AuthenticationFlow",
    "CallbackResult",
    "FlowState",
    "LoginRedirect",
]
