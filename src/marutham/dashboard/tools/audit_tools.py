"""MCP tools for viewing the audit trail.

The audit log never stores profile text or summaries, only hashed input
references, the LLM provider and whether records were sent to it.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from marutham.core.audit.logger import AuditLogger

logger = logging.getLogger(__name__)


def register_audit_tools(mcp: FastMCP, audit_logger: AuditLogger) -> None:
    """Register audit trail tools on the MCP server."""

    @mcp.tool
    async def audit_summary(
        ctx: Context,
        days: int = 30,
        action: str = "",
    ) -> str:
        """View recent summary generations, email sends and profile saves.

        Args:
            days: Number of days to look back (default: 30).
            action: Only show one kind of event ('summary_generated',
                'email_sent' or 'profile_saved').
        """
        since = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()

        recent = audit_logger.get_events(action=action or None, since=since, limit=20)
        events = [
            {
                "timestamp": event.get("timestamp"),
                "action": event.get("action"),
                "tool_name": event.get("tool_name"),
                "llm_provider": event.get("llm_provider"),
                "llm_disclosed": bool(event.get("llm_disclosed")),
                "status": event.get("status"),
                "error_type": event.get("error_type"),
                "duration_ms": event.get("duration_ms"),
            }
            for event in recent
        ]

        return json.dumps({
            "status": "ok",
            "period_days": days,
            "total_events": audit_logger.count_events(since=since),
            "llm_disclosures": audit_logger.count_disclosures(since=since),
            "recent_events": events,
        }, indent=2)
