"""Profile dashboard: intake form, profile history, visit history, summary action."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from marutham.core.storage.models import (
    BackendError,
    ClientMetadata,
    ProfileRecord,
    RecordValidationError,
    VisitRecord,
)

if TYPE_CHECKING:
    from marutham.core.identity.google import SessionUser
    from marutham.core.storage import RecordStore
    from marutham.dashboard.summary.flow import SummaryFlow, SummaryResult

logger = logging.getLogger(__name__)

PROFILE_HISTORY_PREVIEW = 2
VISIT_HISTORY_PREVIEW = 2

SAVE_OK_MESSAGE = "Profile updated successfully!"
SAVE_FAILED_MESSAGE = "Error updating profile. Please try again."


class ProfileDashboard:
    """State for one user's dashboard page.

    ``mount`` loads everything and records exactly one visit; mounting again
    without ``unmount`` does nothing. ``render`` never touches the store.
    """

    def __init__(
        self,
        store: RecordStore,
        user: SessionUser,
        summary_flow: SummaryFlow | None = None,
    ) -> None:
        self.store = store
        self.user = user
        self.summary_flow = summary_flow

        self.loading = False
        self.error: str | None = None
        self.message = ""
        self.profile: ProfileRecord | None = None
        self.profile_history: list[ProfileRecord] = []
        self.visits: list[VisitRecord] = []
        self.show_all_profile_history = False
        self.show_all_visits = False
        self.last_summary: SummaryResult | None = None
        self._mounted = False

    @property
    def mounted(self) -> bool:
        return self._mounted

    async def mount(self, client: ClientMetadata) -> bool:
        """Load the page data and log the visit. Returns False if already mounted."""
        if self._mounted:
            return False
        self._mounted = True
        self.loading = True
        self.error = None

        await self._load_profile()
        await self._load_visits()
        try:
            visit = await self.store.record_visit(self.user.user_id, client)
            self.visits.insert(0, visit)
        except BackendError as exc:
            logger.warning("Visit not recorded: %s", exc)
            self.error = str(exc)

        self.loading = False
        return True

    def unmount(self) -> None:
        self._mounted = False

    async def _load_profile(self) -> None:
        try:
            self.profile = await self.store.current_profile(self.user.user_id)
            self.profile_history = await self.store.list_profile_history(self.user.user_id)
        except BackendError as exc:
            logger.warning("Profile history unavailable: %s", exc)
            self.error = str(exc)

    async def _load_visits(self) -> None:
        try:
            self.visits = await self.store.list_visits(self.user.user_id)
        except BackendError as exc:
            logger.warning("Visit history unavailable: %s", exc)
            self.error = str(exc)

    async def save_profile(self, fields: dict[str, Any]) -> bool:
        """Submit the intake form. Sets ``message`` for the form banner."""
        try:
            await self.store.upsert_profile(self.user.user_id, fields)
        except RecordValidationError as exc:
            self.message = f"{SAVE_FAILED_MESSAGE} ({exc})"
            return False
        except BackendError as exc:
            logger.warning("Profile save failed: %s", exc)
            self.message = SAVE_FAILED_MESSAGE
            return False
        self.message = SAVE_OK_MESSAGE
        await self._load_profile()
        return True

    # ------------------------------------------------------------------
    # Expand / collapse
    # ------------------------------------------------------------------

    @property
    def can_expand_profile_history(self) -> bool:
        return len(self.profile_history) > PROFILE_HISTORY_PREVIEW

    @property
    def can_expand_visits(self) -> bool:
        return len(self.visits) > VISIT_HISTORY_PREVIEW

    def toggle_profile_history(self) -> None:
        if self.can_expand_profile_history:
            self.show_all_profile_history = not self.show_all_profile_history

    def toggle_visit_history(self) -> None:
        if self.can_expand_visits:
            self.show_all_visits = not self.show_all_visits

    @property
    def visible_profile_history(self) -> list[ProfileRecord]:
        if self.show_all_profile_history:
            return list(self.profile_history)
        return self.profile_history[:PROFILE_HISTORY_PREVIEW]

    @property
    def visible_visits(self) -> list[VisitRecord]:
        if self.show_all_visits:
            return list(self.visits)
        return self.visits[:VISIT_HISTORY_PREVIEW]

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    @property
    def summary_available(self) -> bool:
        """The generate action is only offered once a profile has been saved."""
        return self.summary_flow is not None and bool(self.profile_history)

    async def generate_summary(self, *, send_email: bool = True) -> SummaryResult | None:
        if not self.summary_available:
            return None
        self.last_summary = await self.summary_flow.generate(
            self.user.user_id,
            email=self.user.email,
            name=self.user.name,
            send_email=send_email,
        )
        return self.last_summary

    def clear_summary(self) -> None:
        self.last_summary = None

    def render(self) -> dict[str, Any]:
        return {
            "user": self.user.to_dict(),
            "loading": self.loading,
            "error": self.error,
            "message": self.message,
            "profile": self.profile.to_dict() if self.profile else None,
            "profile_history": {
                "items": [p.to_dict() for p in self.visible_profile_history],
                "total": len(self.profile_history),
                "expanded": self.show_all_profile_history,
                "can_expand": self.can_expand_profile_history,
            },
            "visit_history": {
                "items": [v.to_dict() for v in self.visible_visits],
                "total": len(self.visits),
                "expanded": self.show_all_visits,
                "can_expand": self.can_expand_visits,
            },
            "summary_available": self.summary_available,
            "summary": self.last_summary.to_dict() if self.last_summary else None,
        }
