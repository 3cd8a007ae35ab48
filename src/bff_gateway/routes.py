"""Protected API endpoints and public health check."""

import logging

from fastapi import APIRouter

from bff_gateway.auth.middleware import AuthenticatedUser
from bff_gateway.auth.models import ApiResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return ApiResponse(success=True, message="Service is healthy", data="OK")


@router.get("/api/hello")
async def hello(user: AuthenticatedUser):
    """Greeting for the authenticated user."""
    logger.info(f"Served hello endpoint for user: {user.identity_name}")
    return ApiResponse(
        success=True,
        message="Request successful",
        data=f"Hello authenticated user: {user.identity_name}!",
    )


@router.get("/api/userinfo")
async def userinfo(user: AuthenticatedUser):
    """Information about the currently authenticated user. Never includes the token."""
    claims = user.claims
    return ApiResponse(
        success=True,
        message="User information retrieved",
        data={
            "name": claims.display_name,
            "email": claims.email,
            "subject": claims.subject,
            "expires_at": claims.expires_at.isoformat(),
        },
    )
