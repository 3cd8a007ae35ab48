"""Configuration management for the BFF auth gateway."""

import json
import logging
from enum import Enum
from functools import lru_cache
from typing import Annotated, Literal

import boto3
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Microsoft Graph, accepted alongside our own client id
GRAPH_AUDIENCES = [
    "00000003-0000-0000-c000-000000000000",
    "https://graph.microsoft.com",
]


class ValidatorMode(str, Enum):
    """Token validator variants selectable at startup."""

    REMOTE_JWKS = "remote_jwks"
    FIXED_CLAIMS = "fixed_claims"


def get_aws_secret(secret_name: str, region_name: str) -> dict:
    """Fetch a JSON secret from AWS Secrets Manager."""
    session = boto3.session.Session()
    client = session.client(service_name="secretsmanager", region_name=region_name)
    response = client.get_secret_value(SecretId=secret_name)
    return json.loads(response["SecretString"])


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Azure Entra ID Configuration
    azure_tenant_id: str = Field(..., description="Azure AD Tenant ID")
    azure_client_id: str = Field(..., description="Azure AD Application (Client) ID")
    azure_client_secret: str | None = Field(None, description="Azure AD Client Secret")
    azure_redirect_uri: str = Field(
        default="http://localhost:8080/auth/callback",
        description="Callback URL registered with the app registration",
    )
    azure_api_scope: str | None = Field(
        None, description="Resource scope requested at login (defaults to api://<client id>/access)"
    )
    idp_authority_host: str = Field(default="https://login.microsoftonline.com")

    # Optional AWS Secrets Manager source for the client secret
    use_secrets_manager: bool = Field(default=False)
    aws_secret_name: str = Field(default="bff_gateway")
    aws_secret_client_secret_key: str = Field(default="entra_client_secret")
    aws_region: str = Field(default="us-east-2")

    # Token validation
    token_validator: ValidatorMode = Field(default=ValidatorMode.REMOTE_JWKS)
    allow_insecure_test_validator: bool = Field(default=False)
    allowed_audiences: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(GRAPH_AUDIENCES)
    )
    jwt_algorithms: Annotated[list[str], NoDecode] = Field(default=["RS256"])
    jwks_cache_seconds: int = Field(default=3600, ge=0)
    jwks_refresh_cooldown_seconds: float = Field(default=30.0, ge=0)
    http_timeout_seconds: float = Field(default=10.0, gt=0)

    # Login sessions
    login_session_ttl_seconds: int = Field(default=600, gt=0, le=3600)
    login_session_cookie_name: str = Field(default="BFF_LOGIN_SESSION")
    login_session_sweep_seconds: int = Field(default=60, ge=0)
    redis_url: str | None = Field(default=None)

    # Auth cookie
    cookie_name: str = Field(default="AUTH_TOKEN")
    cookie_max_age: int = Field(default=3600, gt=0)
    cookie_secure: bool = Field(default=True)
    cookie_same_site: Literal["lax", "strict", "none"] = Field(default="strict")
    cookie_http_only: bool = Field(default=True)

    # Frontend & routing
    frontend_url: str = Field(default="http://localhost:3000")
    auth_path_prefix: str = Field(default="/auth")

    # Server Configuration
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=8080)
    server_env: str = Field(default="development")

    # CORS Configuration
    cors_origins: Annotated[list[str], NoDecode] = Field(default=["http://localhost:3000"])

    # Logging
    log_level: str = Field(default="INFO")

    @field_validator("cors_origins", "allowed_audiences", "jwt_algorithms", mode="before")
    @classmethod
    def parse_comma_list(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("cookie_same_site", mode="before")
    @classmethod
    def normalize_same_site(cls, v: str) -> str:
        return v.lower() if isinstance(v, str) else v

    @field_validator("frontend_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("auth_path_prefix")
    @classmethod
    def normalize_prefix(cls, v: str) -> str:
        stripped = v.strip().strip("/")
        if not stripped:
            # A root prefix would exempt every path from cookie authentication
            raise ValueError("AUTH_PATH_PREFIX must name a sub-path such as /auth")
        return "/" + stripped

    @model_validator(mode="after")
    def check_hardening(self) -> "Settings":
        if self.cookie_same_site == "none" and not self.cookie_secure:
            raise ValueError("COOKIE_SAME_SITE=none requires COOKIE_SECURE=true")

        if self.token_validator is ValidatorMode.FIXED_CLAIMS and not self.allow_insecure_test_validator:
            raise ValueError(
                "TOKEN_VALIDATOR=fixed_claims requires ALLOW_INSECURE_TEST_VALIDATOR=true"
            )

        if self.is_production:
            if not self.cookie_http_only:
                raise ValueError("COOKIE_HTTP_ONLY cannot be disabled in production")
            if not self.cookie_secure:
                raise ValueError("COOKIE_SECURE cannot be disabled in production")
            if self.token_validator is not ValidatorMode.REMOTE_JWKS:
                raise ValueError("Only the remote_jwks token validator is allowed in production")
        return self

    @property
    def oidc_authority(self) -> str:
        return f"{self.idp_authority_host.rstrip('/')}/{self.azure_tenant_id}"

    @property
    def oidc_issuer(self) -> str:
        return f"{self.oidc_authority}/v2.0"

    @property
    def authorization_endpoint(self) -> str:
        return f"{self.oidc_authority}/oauth2/v2.0/authorize"

    @property
    def token_endpoint(self) -> str:
        return f"{self.oidc_authority}/oauth2/v2.0/token"

    @property
    def oidc_jwks_url(self) -> str:
        return f"{self.oidc_authority}/discovery/v2.0/keys"

    @property
    def scopes(self) -> list[str]:
        return [
            "openid",
            "profile",
            "email",
            self.azure_api_scope or f"api://{self.azure_client_id}/access",
        ]

    @property
    def login_success_url(self) -> str:
        return f"{self.frontend_url}/?login=success"

    @property
    def login_failure_url(self) -> str:
        return f"{self.frontend_url}/?login=error"

    @property
    def is_production(self) -> bool:
        return self.server_env.lower() == "production"


def configure_logging(level: str = "INFO") -> None:
    """Apply the process-wide logging format."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()

    if settings.use_secrets_manager and not settings.azure_client_secret:
        try:
            secrets = get_aws_secret(settings.aws_secret_name, settings.aws_region)
        except Exception as e:
            logger.warning(f"Failed to fetch AWS secrets: {e}. Continuing without a client secret.")
        else:
            settings = settings.model_copy(
                update={"azure_client_secret": secrets.get(settings.aws_secret_client_secret_key)}
            )

    return settings
