"""Summary template loader: reads the prompt and email wording from YAML."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_PATH = Path(__file__).resolve().parent / "summary.yaml"


class TemplateError(Exception):
    """Raised when a summary template is missing required fields."""


@dataclass
class EmailWording:
    subject: str
    heading: str
    intro: str
    sign_off: str
    team: str


@dataclass
class SummaryTemplate:
    """Prompt and email wording for the health summary."""

    id: str
    version: str
    system_message: str
    opening: str
    analysis_points: list[str]
    format_guidance: str
    email: EmailWording
    max_visits: int = 20
    max_vitals: int = 20
    temperature: float = 0.7
    max_output_tokens: int = 1024
    description: str = ""


def load_summary_template(path: str | Path = DEFAULT_TEMPLATE_PATH) -> SummaryTemplate:
    """Parse a YAML file into a SummaryTemplate."""
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        data: dict[str, Any] = yaml.safe_load(f) or {}

    missing = [
        key for key in ("id", "version", "opening", "analysis_points", "email")
        if not data.get(key)
    ]
    if missing:
        raise TemplateError(f"Summary template {path.name} is missing: {', '.join(missing)}")

    email_data = data["email"]
    limits = data.get("limits", {})
    generation = data.get("generation", {})

    template = SummaryTemplate(
        id=data["id"],
        version=str(data["version"]),
        description=str(data.get("description", "")).strip(),
        system_message=str(data.get("system_message", "")).strip(),
        opening=str(data["opening"]).strip(),
        analysis_points=[str(p) for p in data["analysis_points"]],
        format_guidance=str(data.get("format_guidance", "")).strip(),
        email=EmailWording(
            subject=email_data.get("subject", "Your Health Summary"),
            heading=email_data.get("heading", "Health Summary"),
            intro=email_data.get("intro", ""),
            sign_off=email_data.get("sign_off", "Best regards,"),
            team=email_data.get("team", ""),
        ),
        max_visits=int(limits.get("max_visits", 20)),
        max_vitals=int(limits.get("max_vitals", 20)),
        temperature=float(generation.get("temperature", 0.7)),
        max_output_tokens=int(generation.get("max_output_tokens", 1024)),
    )
    logger.info("Loaded summary template %s (v%s)", template.id, template.version)
    return template
