"""Dependencies shared by the HTTP routes and the MCP tools."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from marutham.core.audit.logger import AuditLogger
    from marutham.core.config.settings import Settings
    from marutham.core.feeds.lifi import DeviceFeedClient
    from marutham.core.identity.google import GoogleIdentity
    from marutham.core.mail.gmail import GmailMailer
    from marutham.core.mail.relay import MailRelay
    from marutham.core.storage import RecordStore
    from marutham.core.storage.database import DashboardDatabase
    from marutham.core.storage.models import VitalsReading
    from marutham.dashboard.summary.flow import SummaryFlow
    from marutham.dashboard.views.vitals_view import VitalsPanel

logger = logging.getLogger(__name__)


@dataclass
class DashboardServices:
    """Everything ``create_app`` builds once and hands to each handler."""

    settings: Settings
    database: DashboardDatabase
    store: RecordStore
    audit_logger: AuditLogger
    summary_flow: SummaryFlow
    mail_relay: MailRelay
    mailer: GmailMailer
    feed_client: DeviceFeedClient
    identity: GoogleIdentity
    vitals_panel: VitalsPanel

    @property
    def caches_vitals(self) -> bool:
        """Only the local store keeps its own copy of the device feed."""
        return hasattr(self.store, "save_vitals")

    async def refresh_vitals(self) -> list[VitalsReading]:
        """Pull the device feed into the local cache and return the stored readings.

        With the hosted store the ``device_vitals`` table is filled by the
        device side, so this only reads it.
        """
        if self.caches_vitals:
            readings = await self.feed_client.fetch_readings()
            saved = await self.store.save_vitals(readings)
            logger.debug("Cached %d device readings", saved)
        return await self.store.list_vitals()

    def record_profile_saved(self, user_id: str) -> None:
        self.audit_logger.log_profile_saved(user_id=user_id, backend=self.store.backend_name)

    async def start(self) -> None:
        """Start background work. Must run inside the server's event loop."""
        if self.settings.lifi_polling:
            self.vitals_panel.mount()
            logger.info(
                "Polling device feed every %d ms", self.vitals_panel.poller.interval_ms
            )

    async def stop(self) -> None:
        """Stop polling, let in-flight fetches finish, then close every HTTP client."""
        self.vitals_panel.unmount()
        await self.vitals_panel.poller.wait_idle()
        clients = [self.mailer, self.feed_client, self.identity]
        if hasattr(self.store, "aclose"):
            clients.append(self.store)
        for client in clients:
            await client.aclose()
        logger.info("Closed %d outbound HTTP clients", len(clients))
