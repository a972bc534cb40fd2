"""Summary prompt assembly from the three record collections."""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import datetime, timezone

from marutham.core.storage.models import ProfileRecord, VisitRecord, VitalsReading
from marutham.dashboard.summary.template import SummaryTemplate


def format_timestamp(value: str | int) -> str:
    """Render an ISO string or Unix seconds as 'YYYY-MM-DD HH:MM UTC'."""
    if isinstance(value, int):
        moment = datetime.fromtimestamp(value, tz=timezone.utc)
    else:
        try:
            moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def _profile_entries(profiles: Sequence[ProfileRecord]) -> list[dict]:
    return [
        {
            "date": format_timestamp(p.updated_at),
            "problem_title": p.title,
            "problem_description": p.description,
            "gender": p.category,
            "more_information": p.notes,
        }
        for p in profiles
    ]


def _visit_entries(visits: Sequence[VisitRecord]) -> list[dict]:
    return [
        {"date": format_timestamp(v.visit_time), "device": v.client.device}
        for v in visits
    ]


def _vitals_entries(vitals: Sequence[VitalsReading]) -> list[dict]:
    return [
        {
            "time": format_timestamp(r.timestamp),
            "heart_rate_bpm": r.heart_rate,
            "spo2_pct": r.spo2,
            "condition": r.condition,
            "flagged": r.flagged,
        }
        for r in vitals
    ]


def build_summary_prompt(
    template: SummaryTemplate,
    profiles: Sequence[ProfileRecord],
    visits: Sequence[VisitRecord],
    vitals: Sequence[VitalsReading],
) -> str:
    """Serialize the records into the user message sent to the LLM.

    Collections are expected newest first; visits and vitals are cut to
    the template limits, the full profile history is always included.
    """
    sections = [
        ("Profile History", _profile_entries(profiles)),
        ("Visit History", _visit_entries(visits[: template.max_visits])),
        ("Device Vitals", _vitals_entries(vitals[: template.max_vitals])),
    ]
    parts = [template.opening, ""]
    for title, entries in sections:
        parts.append(f"{title}:")
        parts.append(json.dumps(entries, indent=2, ensure_ascii=False))
        parts.append("")

    parts.append("Please provide:")
    parts.extend(f"{i}. {point}" for i, point in enumerate(template.analysis_points, start=1))
    if template.format_guidance:
        parts.append("")
        parts.append(template.format_guidance)
    return "\n".join(parts)
