"""Authorization and token endpoint client for Microsoft Entra ID."""

import logging
from datetime import timedelta
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from bff_gateway.config import Settings
from bff_gateway.auth.errors import ExchangeFailureError
from bff_gateway.auth.models import TokenExchangeResult, utcnow

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 3600


class TokenExchangeClient:
    """Builds authorize URLs and redeems authorization codes (confidential client + PKCE)."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self._client = httpx.AsyncClient(
            timeout=settings.http_timeout_seconds,
            transport=transport,
        )

    def build_authorization_url(self, state: str, code_challenge: str) -> str:
        """Build the Microsoft Entra ID authorization URL."""
        params = {
            "client_id": self.settings.azure_client_id,
            "response_type": "code",
            "redirect_uri": self.settings.azure_redirect_uri,
            "response_mode": "query",
            "scope": " ".join(self.settings.scopes),
            "state": state,
            "prompt": "select_account",
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{self.settings.authorization_endpoint}?{urlencode(params)}"

    async def exchange_code(self, code: str, code_verifier: str) -> TokenExchangeResult:
        """Exchange an authorization code for tokens."""
        data = {
            "client_id": self.settings.azure_client_id,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.settings.azure_redirect_uri,
            "scope": " ".join(self.settings.scopes),
            "code_verifier": code_verifier,
        }
        if self.settings.azure_client_secret:
            data["client_secret"] = self.settings.azure_client_secret

        try:
            resp = await self._client.post(
                self.settings.token_endpoint,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.TimeoutException as e:
            raise ExchangeFailureError("Token endpoint timed out") from e
        except httpx.HTTPError as e:
            raise ExchangeFailureError(f"Token endpoint unreachable: {e}") from e

        if resp.status_code != 200:
            raise ExchangeFailureError(f"Token exchange failed: {_error_description(resp)}")

        try:
            body = resp.json()
        except ValueError as e:
            raise ExchangeFailureError("Token endpoint returned a non-JSON body") from e

        access_token = body.get("access_token") if isinstance(body, dict) else None
        if not access_token:
            raise ExchangeFailureError("Token response missing access_token")

        try:
            expires_in = int(body.get("expires_in", DEFAULT_EXPIRES_IN))
        except (TypeError, ValueError):
            expires_in = DEFAULT_EXPIRES_IN

        try:
            result = TokenExchangeResult(
                access_token=access_token,
                token_type=body.get("token_type", "Bearer"),
                expires_in=expires_in,
                expires_at=utcnow() + timedelta(seconds=expires_in),
                id_token=body.get("id_token"),
                scope=body.get("scope"),
            )
        except (ValidationError, OverflowError) as e:
            raise ExchangeFailureError(f"Token response has unexpected field types: {e}") from e

        logger.info(f"Exchanged authorization code for tokens, expires in {expires_in}s")
        return result

    async def aclose(self) -> None:
        await self._client.aclose()


def _error_description(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}"
    if not isinstance(body, dict):
        return f"HTTP {resp.status_code}"
    return body.get("error_description") or body.get("error") or f"HTTP {resp.status_code}"
