"""Tests for the profile dashboard: mount, history previews, summary action."""

from __future__ import annotations

import asyncio

import pytest

from marutham.core.identity.google import SessionUser
from marutham.core.llm.client import SummaryLLMClient
from marutham.core.llm.providers.mock import MockProvider
from marutham.core.storage.models import BackendError
from marutham.core.storage.repository import SQLiteRecordStore
from marutham.dashboard.summary.flow import SummaryFlow
from marutham.dashboard.views.profile_view import (
    SAVE_FAILED_MESSAGE,
    SAVE_OK_MESSAGE,
    ProfileDashboard,
)

USER = SessionUser(user_id="ana@example.com", email="ana@example.com", name="Ana")


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class _VisitsDownStore(SQLiteRecordStore):
    async def list_visits(self, user_id):
        raise BackendError("relation \"user_visits\" does not exist", status_code=404)


@pytest.fixture
def provider():
    return MockProvider(response_content="You reported headaches.")


@pytest.fixture
def dashboard(record_store, provider):
    flow = SummaryFlow(record_store, SummaryLLMClient(provider))
    return ProfileDashboard(record_store, USER, flow)


class TestMount:
    def test_mount_records_exactly_one_visit(self, dashboard, record_store, desktop_client):
        async def _check():
            assert await dashboard.mount(desktop_client) is True
            assert await dashboard.mount(desktop_client) is False
            dashboard.render()
            dashboard.render()
            return await record_store.list_visits(USER.user_id)

        assert len(_run(_check())) == 1

    def test_remount_after_unmount_records_again(self, dashboard, record_store, desktop_client):
        async def _check():
            await dashboard.mount(desktop_client)
            dashboard.unmount()
            await dashboard.mount(desktop_client)
            return await record_store.list_visits(USER.user_id)

        assert len(_run(_check())) == 2

    def test_mount_loads_profile_and_history(self, dashboard, record_store, sample_profile, desktop_client):
        async def _check():
            await record_store.upsert_profile(USER.user_id, sample_profile)
            await dashboard.mount(desktop_client)

        _run(_check())
        view = dashboard.render()
        assert view["profile"]["title"] == sample_profile["title"]
        assert view["profile_history"]["total"] == 1
        assert view["loading"] is False
        assert view["error"] is None

    def test_load_failure_keeps_other_sections(self, dashboard_db, sample_profile, desktop_client, clock):
        store = _VisitsDownStore(dashboard_db, clock=clock)
        dashboard = ProfileDashboard(store, USER)

        async def _check():
            await store.upsert_profile(USER.user_id, sample_profile)
            await dashboard.mount(desktop_client)

        _run(_check())
        view = dashboard.render()
        assert "user_visits" in view["error"]
        assert view["profile"]["title"] == sample_profile["title"]
        assert view["visit_history"]["total"] == 1


class TestSaveProfile:
    def test_success_reloads_history(self, dashboard, sample_profile):
        assert _run(dashboard.save_profile(sample_profile)) is True
        assert dashboard.message == SAVE_OK_MESSAGE
        assert dashboard.profile.fields() == sample_profile
        assert len(dashboard.profile_history) == 1

    def test_invalid_input(self, dashboard, sample_profile):
        assert _run(dashboard.save_profile({**sample_profile, "category": "?"})) is False
        assert dashboard.message.startswith(SAVE_FAILED_MESSAGE)
        assert dashboard.profile_history == []


class TestHistoryPreview:
    def test_preview_shows_two_and_toggles(self, dashboard, sample_profile):
        async def _check():
            for title in ("A", "B", "C"):
                await dashboard.save_profile({**sample_profile, "title": title})

        _run(_check())
        assert [p.title for p in dashboard.visible_profile_history] == ["C", "B"]
        assert dashboard.can_expand_profile_history
        dashboard.toggle_profile_history()
        assert len(dashboard.visible_profile_history) == 3
        dashboard.toggle_profile_history()
        assert len(dashboard.visible_profile_history) == 2

    def test_toggle_not_offered_for_short_lists(self, dashboard, sample_profile):
        _run(dashboard.save_profile(sample_profile))
        assert not dashboard.can_expand_profile_history
        dashboard.toggle_profile_history()
        assert dashboard.show_all_profile_history is False

    def test_visit_preview(self, dashboard, record_store, desktop_client):
        async def _check():
            for _ in range(3):
                await record_store.record_visit(USER.user_id, desktop_client)
            await dashboard.mount(desktop_client)

        _run(_check())
        view = dashboard.render()
        assert view["visit_history"]["total"] == 4
        assert len(view["visit_history"]["items"]) == 2
        dashboard.toggle_visit_history()
        assert len(dashboard.render()["visit_history"]["items"]) == 4


class TestSummaryAction:
    def test_not_offered_without_history(self, dashboard, provider, desktop_client):
        _run(dashboard.mount(desktop_client))
        assert dashboard.summary_available is False
        assert _run(dashboard.generate_summary()) is None
        assert provider.call_count == 0

    def test_generate_after_saving_profile(self, dashboard, provider, sample_profile):
        _run(dashboard.save_profile(sample_profile))
        assert dashboard.summary_available
        result = _run(dashboard.generate_summary(send_email=False))
        assert result.ok
        assert result.content == "You reported headaches."
        assert provider.call_count == 1
        assert dashboard.render()["summary"]["content"] == "You reported headaches."
        dashboard.clear_summary()
        assert dashboard.render()["summary"] is None
