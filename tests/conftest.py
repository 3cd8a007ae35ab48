from __future__ import annotations

import base64
import time
from urllib.parse import parse_qs

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwt
from starlette.testclient import TestClient

from bff_gateway.config import Settings
from bff_gateway.auth.oidc import TokenExchangeClient
from bff_gateway.auth.session import InMemoryLoginSessionStore
from bff_gateway.auth.validation import build_token_validator
from bff_gateway.main import create_app

TEST_TENANT_ID = "test-tenant-00000000-0000-0000-0000-000000000000"
TEST_CLIENT_ID = "test-client-00000000-0000-0000-0000-000000000000"
TEST_ISSUER = f"https://login.microsoftonline.com/{TEST_TENANT_ID}/v2.0"
TEST_JWKS_URL = f"https://login.microsoftonline.com/{TEST_TENANT_ID}/discovery/v2.0/keys"
TEST_TOKEN_URL = f"https://login.microsoftonline.com/{TEST_TENANT_ID}/oauth2/v2.0/token"
TEST_KID = "test-kid-1"


def _int_to_base64url(value: int) -> str:
    byte_length = (value.bit_length() + 7) // 8
    return base64.urlsafe_b64encode(value.to_bytes(byte_length, byteorder="big")).rstrip(b"=").decode("ascii")


def generate_signing_key(kid: str) -> tuple[str, dict]:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode("utf-8")

    pub = private_key.public_key().public_numbers()
    jwk_dict = {
        "kty": "RSA",
        "kid": kid,
        "use": "sig",
        "alg": "RS256",
        "n": _int_to_base64url(pub.n),
        "e": _int_to_base64url(pub.e),
    }
    return private_pem, jwk_dict


def make_settings(**overrides) -> Settings:
    values = {
        "azure_tenant_id": TEST_TENANT_ID,
        "azure_client_id": TEST_CLIENT_ID,
        "azure_client_secret": "test-secret",
        "azure_redirect_uri": "https://testserver/auth/callback",
        "frontend_url": "http://localhost:3000",
        "login_session_sweep_seconds": 0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FakeIdentityProvider:
    """In-process Entra ID stand-in: signing keys, JWKS and token endpoints."""

    def __init__(self):
        self.private_pem, jwk = generate_signing_key(TEST_KID)
        self.kid = TEST_KID
        self.keys = [jwk]
        self.jwks_calls = 0
        self.token_calls = 0
        self.token_requests: list[dict] = []
        self.jwks_available = True
        self.token_status = 200
        self.token_body: dict | None = None

    def rotate(self, kid: str = "test-kid-2") -> None:
        self.private_pem, jwk = generate_signing_key(kid)
        self.kid = kid
        self.keys.append(jwk)

    def make_token(self, *, private_pem: str | None = None, kid: str | None = None, **claims) -> str:
        now = int(time.time())
        payload = {
            "oid": "test-oid-123",
            "sub": "test-sub-123",
            "name": "Test User",
            "preferred_username": "test@example.com",
            "iss": TEST_ISSUER,
            "aud": TEST_CLIENT_ID,
            "exp": now + 3600,
            "iat": now - 60,
            "nbf": now - 60,
        }
        payload.update(claims)
        payload = {k: v for k, v in payload.items() if v is not None}
        return jwt.encode(
            payload,
            private_pem or self.private_pem,
            algorithm="RS256",
            headers={"kid": kid or self.kid},
        )

    def handle(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url == TEST_JWKS_URL:
            self.jwks_calls += 1
            if not self.jwks_available:
                raise httpx.ConnectError("JWKS endpoint unreachable", request=request)
            return httpx.Response(200, json={"keys": list(self.keys)})

        if url == TEST_TOKEN_URL:
            self.token_calls += 1
            form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            self.token_requests.append(form)
            if self.token_status != 200:
                return httpx.Response(
                    self.token_status,
                    json={"error": "invalid_grant", "error_description": "AADSTS70008: code expired"},
                )
            body = self.token_body or {
                "access_token": self.make_token(),
                "token_type": "Bearer",
                "expires_in": 3599,
                "scope": f"api://{TEST_CLIENT_ID}/access",
            }
            return httpx.Response(200, json=body)

        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def idp():
    return FakeIdentityProvider()


@pytest.fixture
def validator(settings, idp):
    return build_token_validator(settings, transport=idp.transport)


@pytest.fixture
def exchange_client(settings, idp):
    return TokenExchangeClient(settings, transport=idp.transport)


@pytest.fixture
def session_store():
    return InMemoryLoginSessionStore()


@pytest.fixture
def app(settings, validator, exchange_client, session_store):
    return create_app(
        settings,
        validator=validator,
        exchange_client=exchange_client,
        session_store=session_store,
    )


@pytest.fixture
def client(app):
    # Cookies are Secure, so the test client must speak https
    with TestClient(app, base_url="https://testserver", follow_redirects=False) as c:
        yield c
