"""Per-view state machine: LOADING -> READY | FAILED, and back to LOADING on refresh."""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ViewStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass
class ViewState(Generic[T]):
    """Local UI state of one view.

    Data from the last successful load stays in ``data`` while a new load
    runs and after a failed one, so the rest of the view keeps rendering.
    """

    status: ViewStatus = ViewStatus.LOADING
    data: T | None = None
    error: str | None = None
    updated_at: float | None = None

    def begin_loading(self) -> None:
        self.status = ViewStatus.LOADING

    def succeed(self, data: T) -> None:
        self.status = ViewStatus.READY
        self.data = data
        self.error = None
        self.updated_at = time.time()

    def fail(self, message: str) -> None:
        self.status = ViewStatus.FAILED
        self.error = message

    @property
    def can_retry(self) -> bool:
        return self.status is ViewStatus.FAILED

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "error": self.error,
            "updated_at": self.updated_at,
        }
