"""Google sign-in: authorization URL and authorization-code exchange.

Only the request/response contract of the identity provider is used; the
signed-in user's email address doubles as the record-store user id.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

from marutham.core.errors import (
    ConfigurationError,
    NetworkError,
    UpstreamError,
    provider_error_message,
)

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
SIGNIN_SCOPES = "openid email profile"


@dataclass
class SessionUser:
    """The signed-in user as reported by Google."""

    user_id: str
    email: str
    name: str = ""
    picture: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "name": self.name,
            "picture": self.picture,
        }


class GoogleIdentity:
    """OAuth 2.0 web-server flow against Google."""

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    @staticmethod
    def new_state() -> str:
        return secrets.token_urlsafe(24)

    def _require_config(self) -> None:
        if not self._client_id or not self._client_secret:
            raise ConfigurationError("Google OAuth credentials are not properly configured")

    def authorization_url(self, state: str) -> str:
        """URL the browser is redirected to for Google sign-in."""
        self._require_config()
        query = urlencode({
            "client_id": self._client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": SIGNIN_SCOPES,
            "state": state,
            "access_type": "online",
            "prompt": "select_account",
        })
        return f"{AUTHORIZE_URL}?{query}"

    async def exchange_code(self, code: str) -> SessionUser:
        """Trade an authorization code for the user's identity.

        Raises:
            ConfigurationError: OAuth client id/secret missing.
            UpstreamError: Google rejected the code or the token.
            NetworkError: Google could not be reached.
        """
        self._require_config()
        token_response = await self._call(
            "POST",
            TOKEN_URL,
            data={
                "code": code,
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            },
        )
        access_token = token_response.get("access_token")
        if not access_token:
            raise UpstreamError("Token response did not contain an access token", response=token_response)

        info = await self._call(
            "GET", USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
        )
        email = info.get("email")
        if not isinstance(email, str) or not email:
            raise UpstreamError("Google account has no email address", response=info)

        logger.info("Signed in user from domain %s", email.rpartition("@")[2])
        return SessionUser(
            user_id=email,
            email=email,
            name=str(info.get("name") or ""),
            picture=str(info.get("picture") or ""),
        )

    async def _call(self, method: str, url: str, **kwargs) -> dict:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise NetworkError(f"Network error contacting Google: {exc}") from exc
        if response.status_code >= 400:
            raise UpstreamError(
                provider_error_message(response),
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError(f"Invalid JSON from Google: {exc}") from exc
        if not isinstance(payload, dict):
            raise UpstreamError("Unexpected response from Google", response=payload)
        return payload
