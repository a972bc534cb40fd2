"""Mail relay: validates a send request, calls Gmail once, reports the outcome.

There is no idempotency key: if the response to a successful send is lost,
a caller retry sends the message again.
"""

from __future__ import annotations

import logging
from email.errors import MessageError
from email.utils import parseaddr
from typing import TYPE_CHECKING, Any

from marutham.core.errors import ConfigurationError, NetworkError, UpstreamError

if TYPE_CHECKING:
    from marutham.core.audit.logger import AuditLogger
    from marutham.core.mail.gmail import GmailMailer

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("to", "subject", "content")

# Provider message fragments with a friendlier explanation.
_KNOWN_FAILURES = (
    (
        "unauthorized_client",
        "OAuth client is not authorized. Please check your Google Cloud Console configuration.",
    ),
    (
        "invalid_grant",
        "Refresh token is invalid or expired. Please update your refresh token.",
    ),
)


def describe_mail_error(message: str) -> str:
    """Map a provider error message to the user-facing failure text."""
    for fragment, text in _KNOWN_FAILURES:
        if fragment in message:
            return text
    return "Failed to send email"


class MailRelay:
    """Backs ``POST /api/send-email``.

    ``relay`` never raises for expected failures: it returns a JSON-ready
    body and an HTTP status instead.
    """

    def __init__(self, mailer: GmailMailer, audit_logger: AuditLogger | None = None) -> None:
        self.mailer = mailer
        self.audit_logger = audit_logger

    async def relay(self, payload: Any) -> tuple[dict[str, Any], int]:
        problems = _validate(payload)
        if problems:
            return {
                "error": "Invalid email request",
                "details": "; ".join(problems),
                "code": "validation_error",
            }, 400

        to, subject, content = (payload[key] for key in _REQUIRED_FIELDS)
        try:
            message_id = await self.mailer.send(to, subject, content)
        except ConfigurationError as exc:
            logger.error("Email not sent, configuration problem: %s", exc)
            self._audit(to, "failure", type(exc).__name__)
            return {
                "error": str(exc),
                "details": str(exc),
                "code": "configuration_error",
                "response": None,
            }, 500
        except UpstreamError as exc:
            logger.error("Gmail rejected the message (status=%s): %s", exc.status_code, exc)
            self._audit(to, "failure", type(exc).__name__)
            return {
                "error": describe_mail_error(str(exc)),
                "details": str(exc),
                "code": exc.code,
                "response": exc.response,
            }, 500
        except NetworkError as exc:
            logger.error("Email not sent, network failure: %s", exc)
            self._audit(to, "failure", type(exc).__name__)
            return {
                "error": "Failed to send email",
                "details": str(exc),
                "code": "network_error",
                "response": None,
            }, 500
        except MessageError as exc:
            logger.warning("Email not sent, message could not be built: %s", exc)
            self._audit(to, "failure", type(exc).__name__)
            return {
                "error": "Invalid email request",
                "details": str(exc),
                "code": "validation_error",
                "response": None,
            }, 400

        self._audit(to, "success", None, message_id)
        return {"success": True, "messageId": message_id}, 200

    def _audit(
        self,
        to: str,
        status: str,
        error_type: str | None,
        message_id: str | None = None,
    ) -> None:
        if self.audit_logger is not None:
            self.audit_logger.log_email(
                recipient=to, status=status, error_type=error_type, message_id=message_id
            )


def _validate(payload: Any) -> list[str]:
    if not isinstance(payload, dict):
        return ["request body must be a JSON object"]
    problems = []
    for key in _REQUIRED_FIELDS:
        value = payload.get(key)
        if not isinstance(value, str) or not value.strip():
            problems.append(f"'{key}' is required")
    to = payload.get("to")
    if isinstance(to, str) and to.strip() and not is_single_recipient(to):
        problems.append("'to' must be a single email address")
    subject = payload.get("subject")
    if isinstance(subject, str) and ("\r" in subject or "\n" in subject):
        problems.append("'subject' must be a single line")
    return problems


def is_single_recipient(value: str) -> bool:
    """True for one plain address with no header-breaking characters."""
    if "\r" in value or "\n" in value or "," in value:
        return False
    _, address = parseaddr(value)
    local, at, domain = address.partition("@")
    return bool(local and at and "." in domain)
