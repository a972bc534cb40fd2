"""HTML body of the summary email."""

from __future__ import annotations

from html import escape

from marutham.dashboard.summary.template import SummaryTemplate


def render_summary_email(template: SummaryTemplate, content: str, name: str = "") -> str:
    """Wrap the generated summary in the email layout. All text is HTML-escaped."""
    wording = template.email
    greeting = f"Dear {escape(name)}," if name else "Hello,"
    paragraphs = "".join(
        f"<p>{escape(line)}</p>" for line in content.splitlines() if line.strip()
    )
    sign_off = escape(wording.sign_off)
    if wording.team:
        sign_off += f"<br>{escape(wording.team)}"
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f'<h2 style="color: #2563eb;">{escape(wording.heading)}</h2>'
        f"<p>{greeting}</p>"
        f"<p>{escape(wording.intro)}</p>"
        '<div style="background-color: #f3f4f6; padding: 20px; border-radius: 8px; margin: 20px 0;">'
        f"{paragraphs}"
        "</div>"
        f"<p>{sign_off}</p>"
        "</div>"
    )
