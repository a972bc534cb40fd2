"""Tests for Google sign-in: authorization URL and code exchange."""

from __future__ import annotations

import asyncio
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from marutham.core.errors import ConfigurationError, NetworkError, UpstreamError
from marutham.core.identity.google import TOKEN_URL, USERINFO_URL, GoogleIdentity


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _identity(handler=None, **overrides) -> GoogleIdentity:
    handler = handler or (lambda r: httpx.Response(500))
    kwargs = dict(
        client_id="client-id",
        client_secret="client-secret",
        redirect_uri="http://127.0.0.1:8001/auth/callback",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    kwargs.update(overrides)
    return GoogleIdentity(**kwargs)


def _google(token_status=200, userinfo=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == TOKEN_URL:
            if token_status >= 400:
                return httpx.Response(token_status, json={"error": "invalid_grant", "error_description": "Bad Request"})
            return httpx.Response(200, json={"access_token": "at", "id_token": "x"})
        if str(request.url) == USERINFO_URL:
            return httpx.Response(200, json=userinfo or {
                "sub": "1", "email": "ana@example.com", "name": "Ana", "picture": "https://p/1.png",
            })
        return httpx.Response(404)

    return handler


class TestAuthorizationUrl:
    def test_contains_client_scope_and_state(self):
        url = _identity().authorization_url("state-123")
        parsed = urlparse(url)
        query = parse_qs(parsed.query)
        assert parsed.netloc == "accounts.google.com"
        assert query["client_id"] == ["client-id"]
        assert query["scope"] == ["openid email profile"]
        assert query["state"] == ["state-123"]
        assert query["response_type"] == ["code"]

    def test_requires_configuration(self):
        with pytest.raises(ConfigurationError):
            _identity(client_id="").authorization_url("s")

    def test_states_are_unique(self):
        assert GoogleIdentity.new_state() != GoogleIdentity.new_state()


class TestExchangeCode:
    def test_returns_session_user(self):
        user = _run(_identity(_google()).exchange_code("auth-code"))
        assert user.user_id == "ana@example.com"
        assert user.email == "ana@example.com"
        assert user.name == "Ana"

    def test_rejected_code(self):
        with pytest.raises(UpstreamError, match="Bad Request") as exc_info:
            _run(_identity(_google(token_status=400)).exchange_code("bad"))
        assert exc_info.value.status_code == 400

    def test_account_without_email(self):
        with pytest.raises(UpstreamError, match="no email"):
            _run(_identity(_google(userinfo={"sub": "1"})).exchange_code("code"))

    def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        with pytest.raises(NetworkError):
            _run(_identity(handler).exchange_code("code"))
