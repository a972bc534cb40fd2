"""Tests for record validation at the data-access boundary."""

from __future__ import annotations

import pytest

from marutham.core.storage.models import (
    BackendError,
    ClientMetadata,
    ProfileRecord,
    RecordValidationError,
    VisitRecord,
    VitalsReading,
    validate_profile_fields,
)


class TestProfileFields:
    def test_valid_fields_are_stripped(self, sample_profile):
        clean = validate_profile_fields({**sample_profile, "title": "  Headache  "})
        assert clean["title"] == "Headache"
        assert set(clean) == {"title", "description", "category", "notes"}

    def test_extra_keys_are_dropped(self, sample_profile):
        clean = validate_profile_fields({**sample_profile, "is_admin": True})
        assert "is_admin" not in clean

    @pytest.mark.parametrize("missing", ["title", "description", "category", "notes"])
    def test_missing_field_rejected(self, sample_profile, missing):
        fields = dict(sample_profile)
        del fields[missing]
        with pytest.raises(RecordValidationError, match=missing):
            validate_profile_fields(fields)

    def test_blank_field_rejected(self, sample_profile):
        with pytest.raises(RecordValidationError, match="must not be empty"):
            validate_profile_fields({**sample_profile, "notes": "   "})

    def test_unknown_category_rejected(self, sample_profile):
        with pytest.raises(RecordValidationError, match="category"):
            validate_profile_fields({**sample_profile, "category": "unknown"})

    def test_validation_error_is_backend_error(self):
        assert issubclass(RecordValidationError, BackendError)


class TestProfileRecord:
    def test_from_dict(self, sample_profile):
        record = ProfileRecord.from_dict({
            **sample_profile,
            "user_id": "ana@example.com",
            "updated_at": "2026-03-01T10:00:00Z",
            "id": "p1",
        })
        assert record.fields() == sample_profile
        assert record.id == "p1"

    def test_bad_timestamp_rejected(self, sample_profile):
        with pytest.raises(RecordValidationError, match="ISO 8601"):
            ProfileRecord.from_dict({**sample_profile, "user_id": "u", "updated_at": "yesterday"})

    def test_non_string_field_rejected(self, sample_profile):
        with pytest.raises(RecordValidationError, match="must be a string"):
            ProfileRecord.from_dict({
                **sample_profile,
                "title": 42,
                "user_id": "u",
                "updated_at": "2026-03-01T10:00:00Z",
            })


class TestClientMetadata:
    def test_desktop_agent(self):
        client = ClientMetadata.from_user_agent("Mozilla/5.0 (Windows NT 10.0; Win64; x64)")
        assert client.device == "Desktop"

    def test_mobile_agent(self):
        client = ClientMetadata.from_user_agent("Mozilla/5.0 (Linux; Android 14) Mobile")
        assert client.device == "Mobile"

    def test_browser_keys_accepted(self):
        client = ClientMetadata.from_dict(
            {"browser": "Firefox", "device": "Desktop", "location": "https://care.example/profile"}
        )
        assert client.user_agent == "Firefox"
        assert client.url == "https://care.example/profile"


class TestVisitRecord:
    def test_round_trip_through_visit_data(self, desktop_client):
        visit = VisitRecord("ana@example.com", "2026-03-01T10:00:00+00:00", desktop_client, id="v1")
        assert VisitRecord.from_dict(visit.to_dict()) == visit

    def test_missing_visit_data_rejected(self):
        with pytest.raises(RecordValidationError):
            VisitRecord.from_dict({"user_id": "u", "visit_time": "2026-03-01T10:00:00Z"})


class TestVitalsReading:
    def test_raw_feed_keys_translated(self, raw_feed_items):
        reading = VitalsReading.from_dict({**raw_feed_items[0], "id": 1, "timestamp": 1700000000})
        assert reading.heart_rate == 72.0
        assert reading.spo2 == 98.0
        assert reading.subject_id == "PD01"
        assert reading.display_name == "Rahul"
        assert reading.flagged is False
        assert reading.is_normal

    def test_critical_reading_is_not_normal(self, raw_feed_items):
        reading = VitalsReading.from_dict({**raw_feed_items[1], "id": 2, "timestamp": 1700000000})
        assert not reading.is_normal
        assert reading.flagged is True

    def test_sqlite_integer_flag_accepted(self):
        reading = VitalsReading.from_dict({
            "id": 3, "subject_id": "PD03", "display_name": "", "heart_rate": 60,
            "spo2": 97.5, "flagged": 1, "timestamp": 1700000000, "condition": "Normal",
        })
        assert reading.flagged is True

    def test_string_heart_rate_rejected(self, raw_feed_items):
        with pytest.raises(RecordValidationError, match="heart_rate"):
            VitalsReading.from_dict({**raw_feed_items[0], "-1": "72", "id": 1, "timestamp": 0})

    def test_bool_heart_rate_rejected(self, raw_feed_items):
        with pytest.raises(RecordValidationError, match="heart_rate"):
            VitalsReading.from_dict({**raw_feed_items[0], "-1": True, "id": 1, "timestamp": 0})
