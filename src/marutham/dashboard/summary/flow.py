"""Summary-generation flow: records -> prompt -> one LLM call -> optional email."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from marutham.core.errors import ConfigurationError, NetworkError
from marutham.core.storage.models import BackendError
from marutham.dashboard.summary.mail_body import render_summary_email
from marutham.dashboard.summary.prompt import build_summary_prompt
from marutham.dashboard.summary.template import SummaryTemplate, load_summary_template

if TYPE_CHECKING:
    from marutham.core.audit.logger import AuditLogger
    from marutham.core.llm.client import SummaryLLMClient
    from marutham.core.mail.relay import MailRelay
    from marutham.core.storage import RecordStore

logger = logging.getLogger(__name__)

FAILURE_PREFIX = "Failed to generate summary. "
NO_HISTORY_MESSAGE = "No profile history available. Please update your profile to see history."


class SummaryFailure(str, Enum):
    MISSING_CONFIGURATION = "missing_configuration"
    QUOTA_EXCEEDED = "quota_exceeded"
    NETWORK = "network"
    PROVIDER = "provider"
    BACKEND = "backend"
    NO_HISTORY = "no_history"


def classify_summary_error(exc: Exception) -> tuple[SummaryFailure, str]:
    """Map an LLM failure to a failure kind and a user-visible message.

    Providers share no structured error contract, so this matches on the
    message text (after the two error types raised by this package).
    """
    message = str(exc)
    lowered = message.lower()
    if isinstance(exc, ConfigurationError) or "api key" in lowered or "api_key" in lowered:
        return SummaryFailure.MISSING_CONFIGURATION, FAILURE_PREFIX + "API key is not configured correctly."
    if "quota" in lowered or "rate limit" in lowered or "429" in lowered:
        return SummaryFailure.QUOTA_EXCEEDED, FAILURE_PREFIX + "API quota exceeded. Please try again later."
    if isinstance(exc, NetworkError) or any(
        word in lowered for word in ("network", "connect", "timeout", "timed out")
    ):
        return SummaryFailure.NETWORK, FAILURE_PREFIX + "Network error. Please check your connection."
    return SummaryFailure.PROVIDER, FAILURE_PREFIX + (message or "Please try again later.")


@dataclass
class SummaryResult:
    """Outcome of one summary request. A mail failure does not void the summary."""

    ok: bool
    content: str = ""
    error: str | None = None
    failure: SummaryFailure | None = None
    email_to: str | None = None
    email_sent: bool = False
    email_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "content": self.content,
            "error": self.error,
            "failure": self.failure.value if self.failure else None,
            "email_to": self.email_to,
            "email_sent": self.email_sent,
            "email_error": self.email_error,
        }


class SummaryFlow:
    """Builds and requests the narrative summary for one user.

    ``llm_client`` is None when the configured provider has no API key; the
    flow then fails every request with a missing-configuration error.
    """

    def __init__(
        self,
        store: RecordStore,
        llm_client: SummaryLLMClient | None,
        *,
        template: SummaryTemplate | None = None,
        mail_relay: MailRelay | None = None,
        audit_logger: AuditLogger | None = None,
        missing_key_message: str = "LLM API key is not configured",
    ) -> None:
        self.store = store
        self.llm_client = llm_client
        self.template = template or load_summary_template()
        self.mail_relay = mail_relay
        self.audit_logger = audit_logger
        self._missing_key_message = missing_key_message

    async def generate(
        self,
        user_id: str,
        *,
        email: str | None = None,
        name: str = "",
        send_email: bool = False,
    ) -> SummaryResult:
        """Generate a summary; email it to ``email`` when ``send_email`` is set."""
        try:
            profiles = await self.store.list_profile_history(user_id)
            if not profiles:
                return SummaryResult(ok=False, error=NO_HISTORY_MESSAGE, failure=SummaryFailure.NO_HISTORY)
            visits = await self.store.list_visits(user_id)
            vitals = await self.store.list_vitals()
        except BackendError as exc:
            logger.warning("Summary aborted, records unavailable: %s", exc)
            return SummaryResult(
                ok=False,
                error=FAILURE_PREFIX + str(exc),
                failure=SummaryFailure.BACKEND,
            )

        prompt = build_summary_prompt(self.template, profiles, visits, vitals)
        provider_name = self.llm_client.provider_name if self.llm_client else "unconfigured"
        start = time.monotonic()
        try:
            if self.llm_client is None:
                raise ConfigurationError(self._missing_key_message)
            response = await self.llm_client.invoke(
                prompt,
                system_message=self.template.system_message,
                max_tokens=self.template.max_output_tokens,
                temperature=self.template.temperature,
            )
        except Exception as exc:
            failure, message = classify_summary_error(exc)
            logger.warning("Summary generation failed (%s): %s", failure.value, exc)
            self._audit(user_id, provider_name, start, "failure", type(exc).__name__)
            return SummaryResult(ok=False, error=message, failure=failure)

        self._audit(user_id, provider_name, start, "success", None)
        result = SummaryResult(ok=True, content=response.content)

        if send_email:
            await self._deliver(result, email, name)
        return result

    async def _deliver(self, result: SummaryResult, email: str | None, name: str) -> None:
        result.email_to = email
        if not email:
            result.email_error = "Failed to send email: no email address on file"
            return
        if self.mail_relay is None:
            result.email_error = "Failed to send email: email delivery is not configured"
            return

        body, status = await self.mail_relay.relay({
            "to": email,
            "subject": self.template.email.subject,
            "content": render_summary_email(self.template, result.content, name),
        })
        if status == 200:
            result.email_sent = True
        else:
            result.email_error = f"Failed to send email: {body.get('details') or body.get('error')}"

    def _audit(
        self,
        user_id: str,
        provider_name: str,
        start: float,
        status: str,
        error_type: str | None,
    ) -> None:
        if self.audit_logger is None:
            return
        self.audit_logger.log_summary(
            llm_provider=provider_name,
            user_id=user_id,
            duration_ms=(time.monotonic() - start) * 1000,
            status=status,
            error_type=error_type,
            metadata={"template": self.template.id, "template_version": self.template.version},
        )
