"""Error taxonomy shared by the upstream clients.

Every operation catches these at its own boundary (route handler, tool,
flow or view) and turns them into a user-visible message. Nothing is
retried automatically.
"""

from __future__ import annotations

from typing import Any


class DashboardError(Exception):
    """Base exception for Marutham Care errors."""


class ConfigurationError(DashboardError):
    """Missing or invalid credentials. Fatal to the operation, shown verbatim."""


class UpstreamError(DashboardError):
    """A remote service answered with a non-2xx status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | int | None = None,
        response: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code if code is not None else status_code
        self.response = response


class NetworkError(DashboardError):
    """The request never completed (DNS, connect, timeout)."""


def provider_error_message(response: Any) -> str:
    """Pull the most specific error message out of an httpx response.

    Google, PostgREST and most JSON APIs nest it as ``{"error": {"message"}}``,
    ``{"error_description"}`` or ``{"message"}``.
    """
    message = response.text.strip()
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict):
            msg = err.get("message")
            if isinstance(msg, str) and msg.strip():
                return msg.strip()
        for key in ("error_description", "message"):
            msg = payload.get(key)
            if isinstance(msg, str) and msg.strip():
                return msg.strip()
        if isinstance(err, str) and err.strip():
            return err.strip()
    return message or f"HTTP {response.status_code}"
