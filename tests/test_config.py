from unittest.mock import patch

import pytest
from pydantic import ValidationError

from bff_gateway.config import GRAPH_AUDIENCES, Settings, ValidatorMode, get_settings
from tests.conftest import TEST_CLIENT_ID, TEST_ISSUER, TEST_JWKS_URL, TEST_TENANT_ID


def test_derived_endpoints(settings):
    assert settings.oidc_issuer == TEST_ISSUER
    assert settings.oidc_jwks_url == TEST_JWKS_URL
    assert settings.token_endpoint.endswith(f"/{TEST_TENANT_ID}/oauth2/v2.0/token")
    assert settings.scopes == ["openid", "profile", "email", f"api://{TEST_CLIENT_ID}/access"]


def test_defaults(settings):
    assert settings.token_validator is ValidatorMode.REMOTE_JWKS
    assert settings.allowed_audiences == GRAPH_AUDIENCES
    assert settings.cookie_name == "AUTH_TOKEN"
    assert settings.cookie_http_only is True
    assert settings.login_success_url == "http://localhost:3000/?login=success"
    assert settings.login_failure_url == "http://localhost:3000/?login=error"


def test_values_normalized(settings_factory):
    settings = settings_factory(
        frontend_url="https://app.example.com/",
        auth_path_prefix="bff/auth/",
        cookie_same_site="LAX",
        azure_api_scope="api://custom/scope",
    )
    assert settings.login_success_url == "https://app.example.com/?login=success"
    assert settings.auth_path_prefix == "/bff/auth"
    assert settings.cookie_same_site == "lax"
    assert settings.scopes[-1] == "api://custom/scope"


def test_comma_separated_lists_from_env(monkeypatch):
    monkeypatch.setenv("AZURE_TENANT_ID", TEST_TENANT_ID)
    monkeypatch.setenv("AZURE_CLIENT_ID", TEST_CLIENT_ID)
    monkeypatch.setenv("ALLOWED_AUDIENCES", "api://one, api://two")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example.com,https://b.example.com")

    settings = Settings(_env_file=None)

    assert settings.allowed_audiences == ["api://one", "api://two"]
    assert settings.cors_origins == ["https://a.example.com", "https://b.example.com"]


def test_same_site_none_requires_secure(settings_factory):
    with pytest.raises(ValidationError):
        settings_factory(cookie_same_site="none", cookie_secure=False)


@pytest.mark.parametrize(
    "overrides",
    [
        {"cookie_http_only": False},
        {"cookie_secure": False},
    ],
)
def test_production_hardening(settings_factory, overrides):
    with pytest.raises(ValidationError):
        settings_factory(server_env="production", **overrides)


def test_development_may_relax_cookie_flags(settings_factory):
    settings = settings_factory(cookie_secure=False, cookie_http_only=False)
    assert settings.cookie_secure is False


def test_client_secret_from_secrets_manager(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("AZURE_TENANT_ID", TEST_TENANT_ID)
    monkeypatch.setenv("AZURE_CLIENT_ID", TEST_CLIENT_ID)
    monkeypatch.setenv("USE_SECRETS_MANAGER", "true")
    monkeypatch.delenv("AZURE_CLIENT_SECRET", raising=False)
    get_settings.cache_clear()

    with patch(
        "bff_gateway.config.get_aws_secret", return_value={"entra_client_secret": "from-aws"}
    ) as mock_secret:
        settings = get_settings()

    get_settings.cache_clear()
    assert settings.azure_client_secret == "from-aws"
    mock_secret.assert_called_once_with("bff_gateway", "us-east-2")


@pytest.mark.parametrize("prefix", ["/", "", "//", "  "])
def test_root_auth_prefix_rejected(settings_factory, prefix):
    with pytest.raises(ValidationError):
        settings_factory(auth_path_prefix=prefix)
