"""Tests for the summary-generation flow and its failure taxonomy."""

from __future__ import annotations

import asyncio
import base64
import email
import json
from email.header import decode_header, make_header

import httpx
import pytest

from marutham.core.errors import ConfigurationError, NetworkError
from marutham.core.llm.client import SummaryLLMClient
from marutham.core.llm.providers.mock import MockProvider
from marutham.core.mail.gmail import SEND_URL, GmailMailer
from marutham.core.mail.relay import MailRelay
from marutham.core.storage.models import BackendError
from marutham.core.storage.repository import SQLiteRecordStore
from marutham.dashboard.summary.flow import (
    NO_HISTORY_MESSAGE,
    SummaryFailure,
    SummaryFlow,
    classify_summary_error,
)

USER = "ana@example.com"


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _relay(send_status: int = 200, sent: list | None = None) -> MailRelay:
    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == SEND_URL:
            if sent is not None:
                sent.append(json.loads(request.content)["raw"])
            if send_status >= 400:
                return httpx.Response(send_status, json={"error": {"code": send_status, "message": "Mail quota"}})
            return httpx.Response(200, json={"id": "msg-7"})
        return httpx.Response(200, json={"access_token": "at", "expires_in": 3600})

    mailer = GmailMailer(
        client_id="id",
        client_secret="secret",
        refresh_token="refresh",
        sender_email="care@example.com",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    return MailRelay(mailer)


@pytest.fixture
def seeded_store(record_store, sample_profile, desktop_client):
    async def _seed():
        await record_store.upsert_profile(USER, sample_profile)
        await record_store.record_visit(USER, desktop_client)

    _run(_seed())
    return record_store


class TestClassifySummaryError:
    @pytest.mark.parametrize(
        ("exc", "failure", "text"),
        [
            (ConfigurationError("GEMINI_API_KEY is not configured"), SummaryFailure.MISSING_CONFIGURATION,
             "API key is not configured correctly."),
            (RuntimeError("400 API key not valid. Please pass a valid API key."),
             SummaryFailure.MISSING_CONFIGURATION, "API key is not configured correctly."),
            (RuntimeError("429 RESOURCE_EXHAUSTED: quota exceeded"), SummaryFailure.QUOTA_EXCEEDED,
             "API quota exceeded. Please try again later."),
            (RuntimeError("Rate limit reached"), SummaryFailure.QUOTA_EXCEEDED,
             "API quota exceeded. Please try again later."),
            (NetworkError("unreachable"), SummaryFailure.NETWORK, "Network error. Please check your connection."),
            (RuntimeError("Request timed out"), SummaryFailure.NETWORK, "Network error. Please check your connection."),
            (RuntimeError("Model overloaded"), SummaryFailure.PROVIDER, "Model overloaded"),
        ],
    )
    def test_mapping(self, exc, failure, text):
        kind, message = classify_summary_error(exc)
        assert kind is failure
        assert message.startswith("Failed to generate summary.")
        assert message.endswith(text)


class TestGenerate:
    def test_refuses_without_profile_history(self, record_store):
        provider = MockProvider()
        result = _run(SummaryFlow(record_store, SummaryLLMClient(provider)).generate(USER))
        assert not result.ok
        assert result.failure is SummaryFailure.NO_HISTORY
        assert result.error == NO_HISTORY_MESSAGE
        assert provider.call_count == 0

    def test_success_calls_llm_once(self, seeded_store, sample_profile, audit_logger):
        provider = MockProvider(response_content="  Your headaches are the main concern.  ")
        flow = SummaryFlow(seeded_store, SummaryLLMClient(provider, "gemini"), audit_logger=audit_logger)
        result = _run(flow.generate(USER))

        assert result.ok
        assert result.content == "Your headaches are the main concern."
        assert provider.call_count == 1
        assert sample_profile["title"] in provider.last_user_message
        assert "Visit History:" in provider.last_user_message
        assert result.email_sent is False

        event = audit_logger.get_events(action="summary_generated")[0]
        assert event["status"] == "success"
        assert event["llm_disclosed"] == 1

    def test_missing_llm_client_is_configuration_failure(self, seeded_store, audit_logger):
        flow = SummaryFlow(seeded_store, None, audit_logger=audit_logger)
        result = _run(flow.generate(USER))
        assert result.failure is SummaryFailure.MISSING_CONFIGURATION
        assert result.error == "Failed to generate summary. API key is not configured correctly."
        assert audit_logger.get_events()[0]["error_type"] == "ConfigurationError"

    def test_provider_error_is_classified(self, seeded_store):
        provider = MockProvider(error=RuntimeError("429 Too Many Requests"))
        result = _run(SummaryFlow(seeded_store, SummaryLLMClient(provider)).generate(USER))
        assert result.failure is SummaryFailure.QUOTA_EXCEEDED
        assert provider.call_count == 1

    def test_backend_failure(self, dashboard_db, clock):
        class _Broken(SQLiteRecordStore):
            async def list_profile_history(self, user_id):
                raise BackendError("permission denied for table user_profiles", status_code=403)

        result = _run(SummaryFlow(_Broken(dashboard_db, clock=clock), SummaryLLMClient(MockProvider())).generate(USER))
        assert result.failure is SummaryFailure.BACKEND
        assert "permission denied" in result.error


class TestEmailHandOff:
    def test_summary_is_emailed(self, seeded_store):
        sent: list[str] = []
        flow = SummaryFlow(seeded_store, SummaryLLMClient(MockProvider()), mail_relay=_relay(sent=sent))
        result = _run(flow.generate(USER, email="ana@example.com", name="Ana", send_email=True))

        assert result.ok and result.email_sent
        assert result.email_to == "ana@example.com"
        raw = sent[0] + "=" * (-len(sent[0]) % 4)
        message = email.message_from_bytes(base64.urlsafe_b64decode(raw))
        assert str(make_header(decode_header(message["Subject"]))) == flow.template.email.subject
        assert "Dear Ana," in message.get_payload(decode=True).decode("utf-8")

    def test_mail_failure_keeps_summary(self, seeded_store):
        flow = SummaryFlow(seeded_store, SummaryLLMClient(MockProvider()), mail_relay=_relay(send_status=429))
        result = _run(flow.generate(USER, email="ana@example.com", send_email=True))
        assert result.ok
        assert result.content
        assert result.email_sent is False
        assert result.email_error == "Failed to send email: Mail quota"

    def test_recipient_with_injected_header_keeps_summary(self, seeded_store, audit_logger):
        sent: list[str] = []
        flow = SummaryFlow(
            seeded_store,
            SummaryLLMClient(MockProvider()),
            mail_relay=_relay(sent=sent),
            audit_logger=audit_logger,
        )
        result = _run(flow.generate(USER, email="a@b.co\nBcc: x@y.z", send_email=True))
        assert result.ok
        assert result.content
        assert result.email_sent is False
        assert result.email_error.startswith("Failed to send email:")
        assert "single email address" in result.email_error
        assert sent == []
        assert audit_logger.get_events(action="summary_generated")[0]["status"] == "success"

    def test_no_address(self, seeded_store):
        flow = SummaryFlow(seeded_store, SummaryLLMClient(MockProvider()), mail_relay=_relay())
        result = _run(flow.generate(USER, send_email=True))
        assert result.ok
        assert "no email address" in result.email_error

    def test_email_not_sent_when_not_requested(self, seeded_store):
        sent: list[str] = []
        flow = SummaryFlow(seeded_store, SummaryLLMClient(MockProvider()), mail_relay=_relay(sent=sent))
        _run(flow.generate(USER, email="ana@example.com"))
        assert sent == []
