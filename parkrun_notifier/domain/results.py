"""
parkrun_notifier/domain/results.py

Domain models for events, scraped finisher results and scan outcomes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class AdvanceResult(str, Enum):
    """
    Outcome of a conditional cursor advance.
    """

    SUCCESS = "success"
    CONFLICT = "conflict"


class DispatchStatus(str, Enum):
    """
    Outcome of one batched notification send for a finisher.
    """

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


class ScanStatus(str, Enum):
    """
    Terminal state reached by one event's scan.
    """

    NO_NEW_RESULTS = "no_new_results"
    FETCH_FAILED = "fetch_failed"
    MALFORMED_PAGE = "malformed_page"
    STORE_UNAVAILABLE = "store_unavailable"
    CURSOR_CONFLICT = "cursor_conflict"
    NO_SUBSCRIBERS = "no_subscribers"
    DISPATCHED = "dispatched"
    FAILED = "failed"


@dataclass(frozen=True)
class Event:
    """
    One event as read from the cursor store.
    """

    event_id: str
    display_name: str
    next_run_number: int
    last_modified: int = 0
    is_deleted: bool = False


@dataclass(frozen=True)
class EventRef:
    """
    The concrete event run a finisher result was scraped from.
    """

    event_id: str
    name: str
    date: str
    run_number: int


@dataclass(frozen=True)
class FinisherResult:
    """
    One finisher row from a results page.
    """

    finisher_id: str
    position: str
    name: str
    time: str
    event: EventRef


@dataclass(frozen=True)
class EventScanSummary:
    """
    Summary for one event's pass through the pipeline.
    """

    event_id: str
    run_number: int
    status: ScanStatus
    results_found: int = 0
    finishers_matched: int = 0
    notifications: dict[str, DispatchStatus] = field(default_factory=dict)
    error: str | None = None

    @property
    def notifications_failed(self) -> int:
        return sum(1 for status in self.notifications.values() if status is DispatchStatus.FAILURE)


@dataclass(frozen=True)
class PipelineRunSummary:
    """
    Summary for one pipeline invocation.
    """

    as_of: int
    events: list[EventScanSummary] = field(default_factory=list)
    error: str | None = None

    @property
    def no_due_events(self) -> bool:
        return self.error is None and not self.events

    def count(self, status: ScanStatus) -> int:
        return sum(1 for summary in self.events if summary.status is status)
