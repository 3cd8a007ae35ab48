from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from bff_gateway.auth.errors import ExchangeFailureError
from bff_gateway.auth.oidc import TokenExchangeClient
from tests.conftest import TEST_CLIENT_ID, TEST_TENANT_ID


def _client_with(settings, handler):
    return TokenExchangeClient(settings, transport=httpx.MockTransport(handler))


def test_authorization_url(settings):
    client = TokenExchangeClient(settings)

    url = urlparse(client.build_authorization_url(state="st", code_challenge="ch"))
    params = {k: v[0] for k, v in parse_qs(url.query).items()}

    assert url.netloc == "login.microsoftonline.com"
    assert url.path == f"/{TEST_TENANT_ID}/oauth2/v2.0/authorize"
    assert params == {
        "client_id": TEST_CLIENT_ID,
        "response_type": "code",
        "redirect_uri": "https://testserver/auth/callback",
        "response_mode": "query",
        "scope": f"openid profile email api://{TEST_CLIENT_ID}/access",
        "state": "st",
        "prompt": "select_account",
        "code_challenge": "ch",
        "code_challenge_method": "S256",
    }


async def test_exchange_posts_verifier_and_secret(exchange_client, idp):
    result = await exchange_client.exchange_code("the-code", "the-verifier")

    form = idp.token_requests[0]
    assert form["grant_type"] == "authorization_code"
    assert form["code"] == "the-code"
    assert form["code_verifier"] == "the-verifier"
    assert form["client_secret"] == "test-secret"
    assert form["redirect_uri"] == "https://testserver/auth/callback"
    assert result.token_type == "Bearer"
    assert result.expires_in == 3599


async def test_exchange_without_secret_omits_it(settings_factory, idp):
    client = TokenExchangeClient(settings_factory(azure_client_secret=None), transport=idp.transport)
    await client.exchange_code("the-code", "the-verifier")

    assert "client_secret" not in idp.token_requests[0]


async def test_exchange_defaults_expires_in(settings, idp):
    idp.token_body = {"access_token": "a.b.c"}
    client = TokenExchangeClient(settings, transport=idp.transport)

    result = await client.exchange_code("code", "verifier")
    assert result.expires_in == 3600


async def test_exchange_error_response(exchange_client, idp):
    idp.token_status = 400
    with pytest.raises(ExchangeFailureError) as exc_info:
        await exchange_client.exchange_code("code", "verifier")
    assert "AADSTS70008" in exc_info.value.message


async def test_exchange_timeout(settings):
    def handler(request):
        raise httpx.ReadTimeout("slow IdP", request=request)

    with pytest.raises(ExchangeFailureError):
        await _client_with(settings, handler).exchange_code("code", "verifier")


async def test_exchange_connection_error(settings):
    def handler(request):
        raise httpx.ConnectError("no route", request=request)

    with pytest.raises(ExchangeFailureError):
        await _client_with(settings, handler).exchange_code("code", "verifier")


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>oops</html>"),
        httpx.Response(200, json={"token_type": "Bearer"}),
        httpx.Response(500, text="upstream error"),
    ],
)
async def test_exchange_unusable_responses(settings, response):
    with pytest.raises(ExchangeFailureError):
        await _client_with(settings, lambda request: response).exchange_code("code", "verifier")


@pytest.mark.parametrize(
    "extra",
    [
        {"scope": ["openid", "profile"]},
        {"token_type": 7},
        {"expires_in": 10**20},
    ],
)
async def test_exchange_rejects_wrong_field_types(settings, idp, extra):
    idp.token_body = {"access_token": "a.b.c", **extra}
    client = TokenExchangeClient(settings, transport=idp.transport)

    with pytest.raises(ExchangeFailureError):
        await client.exchange_code("code", "verifier")
