"""Booking data models — work items, observed overlay state, and results.

``WorkItem`` is identified by a stable key (the date) and is re-resolved
against the remote UI at every step boundary; nothing here holds a handle
to a remote node.  ``OverlayState`` is observed, never stored.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class Stage(str, Enum):
    """Pipeline stage a per-item failure is attributed to."""

    RESOLVE_CONTEXT = "resolve_context"
    SUB_FORM = "sub_form"
    FILL_TIMES = "fill_times"
    OPEN_OVERLAY = "open_overlay"
    SELECT_CATEGORY = "select_category"
    APPLY = "apply"
    SAVE = "save"
    WATCHDOG = "watchdog"


class OverlayStatus(str, Enum):
    """Observable states of the selection overlay."""

    CLOSED = "closed"
    OPEN_EMPTY = "open_empty"
    OPEN_WITH_SELECTION = "open_with_selection"


@dataclass(frozen=True)
class OverlayState:
    """One observation of the overlay; re-query before acting on it."""

    status: OverlayStatus
    selection: str = ""

    @property
    def is_open(self) -> bool:
        return self.status != OverlayStatus.CLOSED


@dataclass(frozen=True)
class WorkItem:
    """One unit of batch work: a day key plus the category to book for it."""

    item_id: str
    category: str

    @property
    def day(self) -> date | None:
        """The calendar day encoded in ``item_id`` (``YYYY-MM-DD``), if any."""
        try:
            return date.fromisoformat(self.item_id)
        except ValueError:
            return None


@dataclass
class AttemptRecord:
    """Per-item attempt counters, kept only for the duration of a batch."""

    attempts: int = 0
    last_error: str = ""

    def record_failure(self, exc: BaseException) -> None:
        self.attempts += 1
        self.last_error = f"{type(exc).__name__}: {exc}"

    def reset(self) -> None:
        self.attempts = 0
        self.last_error = ""


@dataclass(frozen=True)
class StrategyResult:
    """Outcome of one overlay discovery heuristic."""

    strategy: str
    success: bool
    detail: str = ""


@dataclass(frozen=True)
class SelectionOutcome:
    """What the category selector observed and did."""

    category: str
    selected_text: str
    already_selected: bool
    actions: int = 0


class ItemStatus(str, Enum):
    """Final status of one work item."""

    BOOKED = "booked"
    ALREADY_BOOKED = "already_booked"
    DRY_RUN = "dry_run"
    FAILED = "failed"


class ItemResult(BaseModel):
    """Structured outcome of processing a single work item."""

    item_id: str
    category: str
    status: ItemStatus
    stage: Stage | None = None
    error: str = ""
    attempts: int = 1
    overlay_strategy: str = ""
    selected_text: str = ""
    duration_sec: float = 0.0

    @property
    def success(self) -> bool:
        return self.status != ItemStatus.FAILED


class BatchSummary(BaseModel):
    """Aggregated outcome of a batch run."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    results: list[ItemResult] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None

    def add(self, result: ItemResult) -> None:
        self.results.append(result)
        self.total += 1
        if result.success:
            self.succeeded += 1
        else:
            self.failed += 1

    def result_for(self, item_id: str) -> ItemResult | None:
        for result in self.results:
            if result.item_id == item_id:
                return result
        return None
