import base64
from typing import List
from urllib.parse import parse_qs

import httpx
import pytest

from helpers import mock_client
from ocesync.config import OAuthConfig
from ocesync.connectors.auth import resolve_authorization
from ocesync.exceptions import AuthenticationError


def make_oauth() -> OAuthConfig:
    return OAuthConfig(
        client_id="client",
        client_secret="s3cret",
        client_scope_url="https://oce.example.com:443/urn:opc:cec:all",
        idp_url="https://idcs.example.com",
    )


@pytest.mark.asyncio
async def test_no_credentials_yields_empty_string() -> None:
    assert await resolve_authorization(None, None) == ""
    assert await resolve_authorization("", OAuthConfig()) == ""


@pytest.mark.asyncio
async def test_fixed_auth_string_is_passed_through() -> None:
    assert await resolve_authorization("Bearer fixed", None) == "Bearer fixed"


@pytest.mark.asyncio
async def test_incomplete_oauth_settings_fall_back_to_auth_string() -> None:
    oauth = OAuthConfig(client_id="client", idp_url="https://idcs.example.com")
    assert oauth.is_complete is False
    assert await resolve_authorization("Bearer fixed", oauth) == "Bearer fixed"


@pytest.mark.asyncio
async def test_oauth_client_credentials_exchange_overrides_auth_string() -> None:
    seen: List[httpx.Request] = []

    def responder(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"access_token": "tok-123", "token_type": "Bearer"})

    async with mock_client(responder) as client:
        value = await resolve_authorization("Bearer fixed", make_oauth(), client=client)

    assert value == "Bearer tok-123"
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "https://idcs.example.com/oauth2/v1/token"
    expected = base64.b64encode(b"client:s3cret").decode("ascii")
    assert request.headers["Authorization"] == f"Basic {expected}"
    assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
    body = request.content.decode("utf-8")
    assert body.startswith("grant_type=client_credentials&scope=")
    assert "https%3A%2F%2Foce.example.com%3A443%2Furn%3Aopc%3Acec%3Aall" in body
    assert parse_qs(body)["scope"] == ["https://oce.example.com:443/urn:opc:cec:all"]


@pytest.mark.asyncio
async def test_oauth_failure_raises_authentication_error() -> None:
    def responder(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "invalid_client"})

    async with mock_client(responder) as client:
        with pytest.raises(AuthenticationError):
            await resolve_authorization(None, make_oauth(), client=client)


@pytest.mark.asyncio
async def test_oauth_response_without_token_raises() -> None:
    def responder(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"token_type": "Bearer"})

    async with mock_client(responder) as client:
        with pytest.raises(AuthenticationError):
            await resolve_authorization(None, make_oauth(), client=client)
