"""Authentication and pre-authentication cookie handling."""

import logging
from typing import Mapping

from starlette.responses import Response

from bff_gateway.config import Settings
from bff_gateway.auth.errors import CookieDecodeError
from bff_gateway.auth.models import AuthCookie, LoginSession

logger = logging.getLogger(__name__)

# Browsers reject cookies above ~4KB; anything close is not a token we issued
MAX_COOKIE_VALUE_LENGTH = 4096


class SessionCookieManager:
    """Encodes the auth cookie on responses and reads it back from requests."""

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def cookie_name(self) -> str:
        return self.settings.cookie_name

    def build_auth_cookie(self, token: str, expires_in: int | None = None) -> AuthCookie:
        max_age = self.settings.cookie_max_age
        if expires_in is not None and 0 < expires_in < max_age:
            # No point keeping the cookie after the token inside it has expired
            max_age = expires_in
        return AuthCookie(
            name=self.settings.cookie_name,
            value=token,
            max_age=max_age,
            secure=self.settings.cookie_secure,
            http_only=self.settings.cookie_http_only,
            same_site=self.settings.cookie_same_site,
        )

    def build_cleared_cookie(self) -> AuthCookie:
        return AuthCookie(
            name=self.settings.cookie_name,
            value="",
            max_age=0,
            secure=self.settings.cookie_secure,
            http_only=self.settings.cookie_http_only,
            same_site=self.settings.cookie_same_site,
        )

    def set_auth_cookie(self, response: Response, token: str, expires_in: int | None = None) -> AuthCookie:
        cookie = self.build_auth_cookie(token, expires_in)
        _apply(response, cookie)
        return cookie

    def clear_auth_cookie(self, response: Response) -> AuthCookie:
        cookie = self.build_cleared_cookie()
        _apply(response, cookie)
        return cookie

    def apply_cookie(self, response: Response, cookie: AuthCookie) -> None:
        _apply(response, cookie)

    def read_token(self, cookies: Mapping[str, str]) -> str | None:
        """Return the raw token from the auth cookie, None when absent."""
        if self.settings.cookie_name not in cookies:
            return None

        value = cookies[self.settings.cookie_name].strip().strip('"')
        if not value:
            raise CookieDecodeError("Auth cookie is empty")
        if len(value) > MAX_COOKIE_VALUE_LENGTH:
            raise CookieDecodeError("Auth cookie is too large")
        return value

    # Pre-authentication cookie correlating /auth/login with /auth/callback.
    # SameSite=Lax so it survives the cross-site redirect back from the IdP.

    def set_login_session_cookie(self, response: Response, session: LoginSession) -> None:
        response.set_cookie(
            key=self.settings.login_session_cookie_name,
            value=session.session_id,
            max_age=self.settings.login_session_ttl_seconds,
            path=self.settings.auth_path_prefix,
            secure=self.settings.cookie_secure,
            httponly=True,
            samesite="lax",
        )

    def read_login_session_id(self, cookies: Mapping[str, str]) -> str | None:
        return cookies.get(self.settings.login_session_cookie_name) or None

    def clear_login_session_cookie(self, response: Response) -> None:
        response.set_cookie(
            key=self.settings.login_session_cookie_name,
            value="",
            max_age=0,
            path=self.settings.auth_path_prefix,
            secure=self.settings.cookie_secure,
            httponly=True,
            samesite="lax",
        )


def _apply(response: Response, cookie: AuthCookie) -> None:
    response.set_cookie(
        key=cookie.name,
        value=cookie.value,
        max_age=cookie.max_age,
        path=cookie.path,
        secure=cookie.secure,
        httponly=cookie.http_only,
        samesite=cookie.same_site,
    )
