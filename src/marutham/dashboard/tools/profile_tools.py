"""MCP tools for the intake profile and visit history.

Profiles are append-only: ``save_profile`` adds a new version and the
history keeps every earlier one.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from marutham.core.storage.models import BackendError, RecordValidationError

if TYPE_CHECKING:
    from marutham.core.server.services import DashboardServices

logger = logging.getLogger(__name__)


def _error(exc: Exception) -> str:
    return json.dumps({"status": "error", "error": str(exc)})


def register_profile_tools(mcp: FastMCP, services: DashboardServices) -> None:
    """Register profile and visit tools on the MCP server."""
    store = services.store

    @mcp.tool
    async def save_profile(
        ctx: Context,
        user_id: str,
        title: str,
        description: str,
        category: str,
        notes: str,
    ) -> str:
        """Save a new version of a user's intake profile.

        Args:
            user_id: The signed-in user's id (their email address).
            title: Short title of the health problem.
            description: Description of the problem.
            category: One of 'male', 'female', 'other'.
            notes: Any further information for the care team.
        """
        fields = {"title": title, "description": description, "category": category, "notes": notes}
        try:
            record = await store.upsert_profile(user_id, fields)
        except RecordValidationError as exc:
            return json.dumps({"status": "invalid", "error": str(exc)})
        except BackendError as exc:
            logger.warning("save_profile failed: %s", exc)
            return _error(exc)

        services.record_profile_saved(user_id)
        return json.dumps({"status": "saved", "profile": record.to_dict()})

    @mcp.tool
    async def get_profile(ctx: Context, user_id: str) -> str:
        """Return the user's current profile (the newest version), or null.

        Args:
            user_id: The signed-in user's id.
        """
        try:
            record = await store.current_profile(user_id)
        except BackendError as exc:
            return _error(exc)
        return json.dumps({
            "status": "ok",
            "profile": record.to_dict() if record else None,
        })

    @mcp.tool
    async def get_profile_history(ctx: Context, user_id: str, limit: int = 0) -> str:
        """List every saved profile version, newest first.

        Args:
            user_id: The signed-in user's id.
            limit: Return at most this many versions (0 = all).
        """
        try:
            history = await store.list_profile_history(user_id)
        except BackendError as exc:
            return _error(exc)
        items = history[:limit] if limit > 0 else history
        return json.dumps({
            "status": "ok",
            "total": len(history),
            "profiles": [p.to_dict() for p in items],
        }, indent=2)

    @mcp.tool
    async def get_visit_history(ctx: Context, user_id: str, limit: int = 0) -> str:
        """List the user's dashboard visits, newest first.

        Args:
            user_id: The signed-in user's id.
            limit: Return at most this many visits (0 = all).
        """
        try:
            visits = await store.list_visits(user_id)
        except BackendError as exc:
            return _error(exc)
        items = visits[:limit] if limit > 0 else visits
        return json.dumps({
            "status": "ok",
            "total": len(visits),
            "visits": [v.to_dict() for v in items],
        }, indent=2)
