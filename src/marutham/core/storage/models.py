"""Record types for the dashboard collections.

Rows coming back from either backend are validated here before anything
else sees them: a row with a missing or wrongly typed field raises
``RecordValidationError`` instead of being passed through half-filled.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

PROFILE_CATEGORIES = ("male", "female", "other")
PROFILE_FIELDS = ("title", "description", "category", "notes")

_MOBILE_AGENT = re.compile(r"Mobile|Android|iPhone|iPad|iPod", re.IGNORECASE)

# Keys used by the raw sensor feed, mapped to canonical field names.
VITALS_FEED_ALIASES = {
    "-1": "heart_rate",
    "-1.1": "spo2",
    "Critical": "condition",
    "False": "flagged",
    "PD01": "subject_id",
    "RAHUL": "display_name",
}


class BackendError(Exception):
    """Raised when a data-access operation fails.

    Carries the remote error message; callers surface it as-is.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RecordValidationError(BackendError):
    """Raised when a row or an input payload does not match its schema."""


# ---------------------------------------------------------------------------
# Field validators
# ---------------------------------------------------------------------------

def _require_str(data: dict[str, Any], key: str, *, allow_empty: bool = False) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise RecordValidationError(f"Field {key!r} must be a string, got {type(value).__name__}")
    if not allow_empty and not value.strip():
        raise RecordValidationError(f"Field {key!r} must not be empty")
    return value


def _require_number(data: dict[str, Any], key: str) -> float:
    value = data.get(key)
    # bool is an int subclass; a flag in a numeric slot is a malformed row.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RecordValidationError(f"Field {key!r} must be a number, got {type(value).__name__}")
    return float(value)


def _require_int(data: dict[str, Any], key: str) -> int:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        if isinstance(value, float) and value.is_integer():
            return int(value)
        raise RecordValidationError(f"Field {key!r} must be an integer, got {type(value).__name__}")
    return value


def _require_bool(data: dict[str, Any], key: str) -> bool:
    value = data.get(key)
    if isinstance(value, bool):
        return value
    # SQLite stores booleans as 0/1
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise RecordValidationError(f"Field {key!r} must be a boolean, got {type(value).__name__}")


def _require_timestamp(data: dict[str, Any], key: str) -> str:
    value = _require_str(data, key)
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise RecordValidationError(f"Field {key!r} is not an ISO 8601 timestamp: {value!r}") from exc
    return value


def validate_profile_fields(fields: dict[str, Any]) -> dict[str, str]:
    """Validate an intake form submission and return the four profile fields."""
    if not isinstance(fields, dict):
        raise RecordValidationError("Profile fields must be an object")
    clean = {key: _require_str(fields, key).strip() for key in PROFILE_FIELDS}
    if clean["category"] not in PROFILE_CATEGORIES:
        raise RecordValidationError(
            f"Field 'category' must be one of {', '.join(PROFILE_CATEGORIES)}"
        )
    return clean


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass
class ProfileRecord:
    """One version of a user's intake form. Append-only history."""

    user_id: str
    title: str
    description: str
    category: str  # 'male' | 'female' | 'other'
    notes: str
    updated_at: str  # ISO 8601, UTC
    id: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProfileRecord:
        if not isinstance(data, dict):
            raise RecordValidationError("Profile row must be an object")
        return cls(
            user_id=_require_str(data, "user_id"),
            title=_require_str(data, "title", allow_empty=True),
            description=_require_str(data, "description", allow_empty=True),
            category=_require_str(data, "category", allow_empty=True),
            notes=_require_str(data, "notes", allow_empty=True),
            updated_at=_require_timestamp(data, "updated_at"),
            id=str(data.get("id") or ""),
        )

    def fields(self) -> dict[str, str]:
        return {key: getattr(self, key) for key in PROFILE_FIELDS}

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ClientMetadata:
    """What the browser reported about itself on a page load."""

    user_agent: str
    device: str  # 'Mobile' | 'Desktop'
    url: str = ""

    @classmethod
    def from_user_agent(cls, user_agent: str, url: str = "") -> ClientMetadata:
        device = "Mobile" if _MOBILE_AGENT.search(user_agent or "") else "Desktop"
        return cls(user_agent=user_agent or "", device=device, url=url or "")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClientMetadata:
        if not isinstance(data, dict):
            raise RecordValidationError("Visit metadata must be an object")
        # Rows written by the browser client use browser/location keys.
        return cls(
            user_agent=str(data.get("user_agent", data.get("browser", ""))),
            device=_require_str(data, "device"),
            url=str(data.get("url", data.get("location", ""))),
        )


@dataclass
class VisitRecord:
    """An immutable log entry for one page load."""

    user_id: str
    visit_time: str  # ISO 8601, UTC
    client: ClientMetadata
    id: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VisitRecord:
        if not isinstance(data, dict):
            raise RecordValidationError("Visit row must be an object")
        return cls(
            user_id=_require_str(data, "user_id"),
            visit_time=_require_timestamp(data, "visit_time"),
            client=ClientMetadata.from_dict(data.get("visit_data")),
            id=str(data.get("id") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "visit_time": self.visit_time,
            "visit_data": asdict(self.client),
        }


@dataclass
class VitalsReading:
    """A single device data point. Read-only from the dashboard's side."""

    id: int
    subject_id: str
    display_name: str
    heart_rate: float
    spo2: float
    flagged: bool
    timestamp: int  # Unix seconds
    condition: str  # e.g. 'Normal', 'Critical'

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VitalsReading:
        """Parse a stored row or a feed item. Feed keys are translated first."""
        if not isinstance(data, dict):
            raise RecordValidationError("Vitals row must be an object")
        data = {VITALS_FEED_ALIASES.get(k, k): v for k, v in data.items()}
        return cls(
            id=_require_int(data, "id"),
            subject_id=_require_str(data, "subject_id"),
            display_name=_require_str(data, "display_name", allow_empty=True),
            heart_rate=_require_number(data, "heart_rate"),
            spo2=_require_number(data, "spo2"),
            flagged=_require_bool(data, "flagged"),
            timestamp=_require_int(data, "timestamp"),
            condition=_require_str(data, "condition"),
        )

    @property
    def is_normal(self) -> bool:
        return self.condition == "Normal"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "subject_id": self.subject_id,
            "display_name": self.display_name,
            "heart_rate": self.heart_rate,
            "spo2": self.spo2,
            "flagged": self.flagged,
            "timestamp": self.timestamp,
            "condition": self.condition,
        }
