"""Shared test fixtures for the Marutham Care dashboard tests."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LLM_PROVIDER", "mock")
    monkeypatch.setenv("STORE_BACKEND", "sqlite")
    monkeypatch.setenv("DB_PATH", ":memory:")
    monkeypatch.setenv("LIFI_POLLING", "false")
    monkeypatch.setenv("SESSION_SECRET", "test-session-secret")
    for name in (
        "GEMINI_API_KEY",
        "ANTHROPIC_API_KEY",
        "OPENAI_API_KEY",
        "GOOGLE_CLIENT_ID",
        "GOOGLE_CLIENT_SECRET",
        "GOOGLE_REFRESH_TOKEN",
        "GMAIL_SENDER_EMAIL",
        "DATABASE_URL",
        "DATABASE_KEY",
        "ENCRYPTION_KEY",
    ):
        monkeypatch.setenv(name, "")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from marutham.core.storage.models import ClientMetadata  # noqa: E402

DESKTOP_AGENT = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 Chrome/120.0 Safari/537.36"


def make_clock(start: int = 0) -> Callable[[], str]:
    """A clock that returns strictly increasing ISO timestamps."""
    ticks = iter(range(start, start + 3600))

    def clock() -> str:
        tick = next(ticks)
        return f"2026-03-01T10:{tick // 60:02d}:{tick % 60:02d}+00:00"

    return clock


# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_profile() -> dict[str, str]:
    return {
        "title": "Persistent headache",
        "description": "Headache most mornings for two weeks",
        "category": "female",
        "notes": "Takes ibuprofen occasionally",
    }


@pytest.fixture
def raw_feed_items() -> list[dict[str, Any]]:
    """Items as the LiFi sensor proxy returns them."""
    return [
        {"-1": 72, "-1.1": 98, "Critical": "Normal", "False": False, "PD01": "PD01", "RAHUL": "Rahul"},
        {"-1": 131, "-1.1": 88, "Critical": "Critical", "False": True, "PD01": "PD02", "RAHUL": "Meena"},
    ]


@pytest.fixture
def desktop_client() -> ClientMetadata:
    return ClientMetadata.from_user_agent(DESKTOP_AGENT, "http://127.0.0.1:8001/dashboard")


@pytest.fixture
def clock() -> Callable[[], str]:
    return make_clock()


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def dashboard_db():
    """Create an in-memory DashboardDatabase for testing."""
    from marutham.core.storage.database import DashboardDatabase

    db = DashboardDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def field_encryptor():
    """Create a FieldEncryptor with a test key."""
    from cryptography.fernet import Fernet

    from marutham.core.storage.encryption import FieldEncryptor

    return FieldEncryptor(Fernet.generate_key().decode())


@pytest.fixture
def record_store(dashboard_db, field_encryptor, clock):
    """Create a SQLiteRecordStore backed by in-memory SQLite."""
    from marutham.core.storage.repository import SQLiteRecordStore

    return SQLiteRecordStore(dashboard_db, field_encryptor, clock=clock)


@pytest.fixture
def audit_logger(dashboard_db):
    """Create an AuditLogger backed by in-memory SQLite."""
    from marutham.core.audit.logger import AuditLogger

    return AuditLogger(dashboard_db)
