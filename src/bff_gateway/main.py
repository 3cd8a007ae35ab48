"""Main FastAPI application for the BFF auth gateway."""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bff_gateway.config import Settings, configure_logging, get_settings
from bff_gateway.auth.cookies import SessionCookieManager
from bff_gateway.auth.flow import AuthenticationFlow
from bff_gateway.auth.middleware import CookieAuthenticationMiddleware
from bff_gateway.auth.oidc import TokenExchangeClient
from bff_gateway.auth.routes import router as auth_router
from bff_gateway.auth.session import (
    LoginSessionManager,
    LoginSessionStore,
    create_login_session_store,
    sweep_expired_sessions,
)
from bff_gateway.auth.validation import TokenValidator, build_token_validator
from bff_gateway.routes import router as api_router

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    validator: TokenValidator | None = None,
    exchange_client: TokenExchangeClient | None = None,
    session_store: LoginSessionStore | None = None,
) -> FastAPI:
    """Wire the authentication components into a FastAPI application."""
    settings = settings or get_settings()

    validator = validator or build_token_validator(settings)
    exchange_client = exchange_client or TokenExchangeClient(settings)
    sessions = LoginSessionManager(
        session_store or create_login_session_store(settings),
        ttl_seconds=settings.login_session_ttl_seconds,
    )
    cookie_manager = SessionCookieManager(settings)
    auth_flow = AuthenticationFlow(settings, sessions, exchange_client, validator, cookie_manager)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info("Starting BFF auth gateway...")
        logger.info(f"OIDC configured for tenant: {settings.azure_tenant_id}")
        logger.info(f"Redirect URI: {settings.azure_redirect_uri}")
        logger.info(f"Token validator: {settings.token_validator.value}")

        sweeper = None
        if settings.login_session_sweep_seconds > 0:
            sweeper = asyncio.create_task(
                sweep_expired_sessions(sessions, settings.login_session_sweep_seconds)
            )

        yield

        logger.info("Shutting down BFF auth gateway...")
        if sweeper is not None:
            sweeper.cancel()
            with suppress(asyncio.CancelledError):
                await sweeper
        await exchange_client.aclose()
        await validator.aclose()
        await sessions.store.close()

    app = FastAPI(
        title="BFF Auth Gateway",
        description="Backend-for-frontend authentication with Microsoft Entra ID and HTTP-only cookies",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.auth_flow = auth_flow
    app.state.cookie_manager = cookie_manager
    app.state.login_sessions = sessions
    app.state.token_validator = validator

    app.add_middleware(
        CookieAuthenticationMiddleware,
        validator=validator,
        cookie_manager=cookie_manager,
        auth_path_prefix=settings.auth_path_prefix,
    )

    # Added last so it wraps the cookie middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(auth_router, prefix=settings.auth_path_prefix)
    app.include_router(api_router)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Custom HTTP exception handler."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail, "status_code": exc.status_code},
            headers=getattr(exc, "headers", None),
        )

    return app


def run(host: str | None = None, port: int | None = None, reload: bool = False) -> None:
    """Run with Uvicorn (create_app is used as an application factory)."""
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(
        "bff_gateway.main:create_app",
        factory=True,
        host=host or settings.server_host,
        port=port or settings.server_port,
        reload=reload,
    )


if __name__ == "__main__":
    run()
