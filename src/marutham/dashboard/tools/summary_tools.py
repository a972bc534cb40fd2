"""MCP tool for the AI-generated health summary.

The user's profile history, visits and device readings are sent to the
configured LLM provider; every call is recorded in the audit trail.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from marutham.dashboard.summary.flow import SummaryFlow

logger = logging.getLogger(__name__)


def register_summary_tools(mcp: FastMCP, summary_flow: SummaryFlow) -> None:
    """Register summary generation tools on the MCP server."""

    @mcp.tool
    async def generate_health_summary(
        ctx: Context,
        user_id: str,
        email: str = "",
        name: str = "",
        send_email: bool = False,
    ) -> str:
        """Generate a narrative summary of a user's health records.

        Requires at least one saved profile. When ``send_email`` is set the
        summary is also mailed to ``email``; a failed send is reported next
        to the summary rather than replacing it.

        Args:
            user_id: The signed-in user's id.
            email: Address the summary is mailed to.
            name: Name used in the email greeting.
            send_email: Mail the summary after generating it.
        """
        result = await summary_flow.generate(
            user_id,
            email=email or None,
            name=name,
            send_email=send_email,
        )
        payload = result.to_dict()
        payload["status"] = "ok" if result.ok else "error"
        return json.dumps(payload, indent=2)
