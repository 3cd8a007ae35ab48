"""Authentication routes for the PKCE login/logout flow."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from bff_gateway.auth.cookies import SessionCookieManager
from bff_gateway.auth.flow import AuthenticationFlow
from bff_gateway.auth.models import ApiResponse

logger = logging.getLogger(__name__)

# Mounted under Settings.auth_path_prefix by create_app
router = APIRouter(tags=["authentication"])


def get_auth_flow(request: Request) -> AuthenticationFlow:
    return request.app.state.auth_flow


def get_cookie_manager(request: Request) -> SessionCookieManager:
    return request.app.state.cookie_manager


@router.get("/login")
async def login(
    flow: Annotated[AuthenticationFlow, Depends(get_auth_flow)],
    cookies: Annotated[SessionCookieManager, Depends(get_cookie_manager)],
):
    """
    Initiate the login flow.
    Redirects to Microsoft Entra ID with a PKCE challenge.
    """
    login_redirect = await flow.begin_login()

    response = RedirectResponse(url=login_redirect.authorization_url, status_code=status.HTTP_302_FOUND)
    cookies.set_login_session_cookie(response, login_redirect.session)
    return response


@router.get("/callback", name="auth_callback")
async def auth_callback(
    request: Request,
    flow: Annotated[AuthenticationFlow, Depends(get_auth_flow)],
    cookies: Annotated[SessionCookieManager, Depends(get_cookie_manager)],
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
):
    """
    IdP callback handler.
    Exchanges the authorization code and sets the auth cookie. Always
    redirects to the frontend, which reads ?login=success|error.
    """
    result = await flow.complete_login(
        session_id=cookies.read_login_session_id(request.cookies),
        code=code,
        state=state,
        error=error,
        error_description=error_description,
    )

    response = RedirectResponse(url=result.redirect_url, status_code=status.HTTP_302_FOUND)
    cookies.clear_login_session_cookie(response)

    if result.authenticated:
        cookies.set_auth_cookie(response, result.token.access_token, result.token.expires_in)

    return response


@router.post("/logout")
async def logout(
    flow: Annotated[AuthenticationFlow, Depends(get_auth_flow)],
    cookies: Annotated[SessionCookieManager, Depends(get_cookie_manager)],
):
    """Log out by expiring the auth cookie. Succeeds with or without a cookie."""
    cleared = await flow.logout()

    response = JSONResponse(
        content=ApiResponse(success=True, message="Logged out successfully").model_dump()
    )
    cookies.apply_cookie(response, cleared)
    return response
