"""MCP tool for the device vitals feed."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from marutham.core.errors import DashboardError
from marutham.core.storage.models import BackendError

if TYPE_CHECKING:
    from marutham.core.server.services import DashboardServices

logger = logging.getLogger(__name__)


def register_vitals_tools(mcp: FastMCP, services: DashboardServices) -> None:
    """Register the device vitals tool on the MCP server."""

    @mcp.tool
    async def get_device_vitals(ctx: Context, refresh: bool = False) -> str:
        """Read the latest device readings (heart rate, SpO2, condition, flag).

        Args:
            refresh: Pull the sensor feed before reading. Without it the
                last stored readings are returned.
        """
        try:
            if refresh:
                readings = await services.refresh_vitals()
            else:
                readings = await services.store.list_vitals()
        except (BackendError, DashboardError) as exc:
            logger.warning("get_device_vitals failed: %s", exc)
            return json.dumps({"status": "error", "error": str(exc)})

        return json.dumps({
            "status": "ok",
            "count": len(readings),
            "alerts": sum(1 for r in readings if r.flagged or not r.is_normal),
            "readings": [r.to_dict() for r in readings],
        }, indent=2)
