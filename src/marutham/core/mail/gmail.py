"""Gmail API client: refresh-token exchange and ``users.messages.send``.

One ``GmailMailer`` is built per process from the injected settings; no
OAuth client lives at module level.
"""

from __future__ import annotations

import base64
import logging
import time
from email.header import Header
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Any

import httpx

from marutham.core.errors import (
    ConfigurationError,
    NetworkError,
    UpstreamError,
    provider_error_message,
)

logger = logging.getLogger(__name__)

TOKEN_URL = "https://oauth2.googleapis.com/token"
SEND_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages/send"
GMAIL_SCOPES = (
    "https://www.googleapis.com/auth/gmail.send "
    "https://www.googleapis.com/auth/gmail.compose"
)

# Refresh a cached access token this many seconds before Google expires it.
_EXPIRY_MARGIN_S = 60.0


def build_raw_message(
    *,
    sender_email: str,
    sender_name: str,
    to: str,
    subject: str,
    html: str,
) -> str:
    """Build an HTML MIME message and return it base64url-encoded without padding."""
    message = MIMEText(html, "html", "utf-8")
    message["From"] = formataddr((sender_name, sender_email))
    message["To"] = to
    message["Subject"] = Header(subject, "utf-8")
    return base64.urlsafe_b64encode(message.as_bytes()).decode("ascii").rstrip("=")


class GmailMailer:
    """Sends HTML mail from the configured sender mailbox.

    Usage::

        mailer = GmailMailer(
            client_id="...", client_secret="...", refresh_token="...",
            sender_email="care@example.com",
        )
        message_id = await mailer.send("ana@example.com", "Your summary", "<p>...</p>")
    """

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        sender_email: str,
        sender_name: str = "Marutham Care",
        client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
        transport_retries: int = 3,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_token = refresh_token
        self.sender_email = sender_email
        self.sender_name = sender_name
        # httpx retries failed connects only; a request that reached Gmail is never resent.
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            transport=httpx.AsyncHTTPTransport(retries=transport_retries),
        )
        self._access_token: str | None = None
        self._token_expires_at = 0.0

    async def aclose(self) -> None:
        await self._client.aclose()

    def check_configured(self) -> None:
        """Raise ConfigurationError naming the first missing credential."""
        if not self._client_id or not self._client_secret:
            raise ConfigurationError("Google OAuth credentials are not properly configured")
        if not self._refresh_token:
            raise ConfigurationError("GOOGLE_REFRESH_TOKEN is not configured")
        if not self.sender_email:
            raise ConfigurationError("GMAIL_SENDER_EMAIL is not configured")

    async def send(self, to: str, subject: str, html: str) -> str:
        """Send one message and return the Gmail message id.

        Raises:
            ConfigurationError: Credentials are missing.
            UpstreamError: Google answered with a non-2xx status.
            NetworkError: The request never completed.
        """
        self.check_configured()
        token = await self._get_access_token()
        raw = build_raw_message(
            sender_email=self.sender_email,
            sender_name=self.sender_name,
            to=to,
            subject=subject,
            html=html,
        )

        logger.info("Sending email to %s (%d bytes)", _recipient_domain(to), len(raw))
        response = await self._post(
            SEND_URL,
            json={"raw": raw},
            headers={"Authorization": f"Bearer {token}"},
        )
        payload = _json_or_none(response)
        if response.status_code >= 400:
            error = payload.get("error") if isinstance(payload, dict) else None
            code = error.get("code") if isinstance(error, dict) else response.status_code
            raise UpstreamError(
                provider_error_message(response),
                status_code=response.status_code,
                code=code,
                response=payload,
            )

        message_id = payload.get("id", "") if isinstance(payload, dict) else ""
        logger.info("Email sent: id=%s", message_id)
        return message_id

    async def _get_access_token(self) -> str:
        if self._access_token and time.monotonic() < self._token_expires_at:
            return self._access_token

        response = await self._post(
            TOKEN_URL,
            data={
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "refresh_token": self._refresh_token,
                "grant_type": "refresh_token",
                "scope": GMAIL_SCOPES,
            },
        )
        payload = _json_or_none(response)
        if response.status_code >= 400:
            # Token endpoint errors are {"error": "invalid_grant", "error_description": "..."}
            if isinstance(payload, dict) and isinstance(payload.get("error"), str):
                message = payload["error"]
                if payload.get("error_description"):
                    message = f"{message}: {payload['error_description']}"
            else:
                message = provider_error_message(response)
            raise UpstreamError(
                message,
                status_code=response.status_code,
                code=response.status_code,
                response=payload,
            )

        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise UpstreamError("Token response did not contain an access token", response=payload)

        self._access_token = payload["access_token"]
        expires_in = float(payload.get("expires_in", 3600))
        self._token_expires_at = time.monotonic() + max(expires_in - _EXPIRY_MARGIN_S, 0.0)
        return self._access_token

    async def _post(self, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.post(url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("Gmail request to %s failed: %s", url, exc)
            raise NetworkError(f"Network error contacting Google: {exc}") from exc


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _recipient_domain(address: str) -> str:
    return "*@" + address.rpartition("@")[2] if "@" in address else "<invalid>"
