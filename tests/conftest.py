"""
Shared fixtures: SQLite-backed session factory, results page builder and
in-memory fakes for the pipeline's collaborators.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Sequence

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

import db.models  # noqa: F401  registers all ORM models on Base.metadata
from db.base import Base
from db.session import build_session_factory
from parkrun_notifier.config import ResultsSiteSettings
from parkrun_notifier.domain import AdvanceResult, Event
from parkrun_notifier.errors import DispatchError, TransientFetchError
from parkrun_notifier.notifications import EmailGateway, EmailMessage, SendReceipt
from parkrun_notifier.stores import EventCursorStore, SubscriptionStore


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture()
def session_factory():
    """Fresh in-memory SQLite database shared by every session and thread."""
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield build_session_factory(engine)
    finally:
        engine.dispose()


# ---------------------------------------------------------------------------
# Results page markup
# ---------------------------------------------------------------------------


def _row(finisher_id: str | None, position: str, name: str, time: str) -> str:
    if finisher_id is None:
        name_cell = f'<div class="compact">{name}</div>'
    else:
        name_cell = (
            '<div class="compact">'
            f'<a href="https://www.parkrun.co.nz/hagleypark/parkrunner/{finisher_id}">{name}</a>'
            "</div>"
            '<div class="detailed">M30-34</div>'
        )
    return (
        '<tr class="Results-table-row">'
        f'<td class="Results-table-td Results-table-td--position">{position}</td>'
        f'<td class="Results-table-td Results-table-td--name">{name_cell}</td>'
        '<td class="Results-table-td Results-table-td--time">'
        f'<div class="compact">{time}</div><div class="detailed">New PB!</div>'
        "</td>"
        "</tr>"
    )


def build_results_page(
    rows: Sequence[tuple[str | None, str, str, str]],
    *,
    date: str | None = "14 June 2025",
    include_table: bool = True,
) -> str:
    header = '<div class="Results-header"><h1>Hagley parkrun</h1>'
    if date is not None:
        header += f'<h3><span class="format-date">{date}</span><span class="spacer">|</span><span>#42</span></h3>'
    header += "</div>"
    if not include_table:
        return f"<html><body>{header}<p>Results not found</p></body></html>"

    body_rows = "".join(_row(*row) for row in rows)
    table = (
        '<table class="Results-table">'
        "<thead><tr><th>Position</th><th>parkrunner</th><th>Time</th></tr></thead>"
        f"<tbody>{body_rows}</tbody>"
        "</table>"
    )
    return f"<html><body>{header}{table}</body></html>"


@pytest.fixture()
def results_page() -> Callable[..., str]:
    return build_results_page


@pytest.fixture()
def site() -> ResultsSiteSettings:
    return ResultsSiteSettings(base_url="https://www.parkrun.co.nz", rate_limit_per_second=100.0)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeCursorStore(EventCursorStore):
    """Dict-backed cursor store with the same conditional advance semantics."""

    def __init__(self, events: Iterable[Event] = ()) -> None:
        self.events = {event.event_id: event for event in events}
        self.advance_calls: list[tuple[str, int]] = []
        self._lock = threading.Lock()

    def list_due_events(self, as_of: int) -> list[Event]:
        return [
            event
            for event in self.events.values()
            if event.last_modified < as_of and not event.is_deleted
        ]

    def advance(self, event_id: str, expected_run_number: int) -> AdvanceResult:
        with self._lock:
            self.advance_calls.append((event_id, expected_run_number))
            event = self.events[event_id]
            if event.next_run_number != expected_run_number:
                return AdvanceResult.CONFLICT
            self.events[event_id] = Event(
                event_id=event.event_id,
                display_name=event.display_name,
                next_run_number=expected_run_number + 1,
                last_modified=event.last_modified + 1,
                is_deleted=event.is_deleted,
            )
            return AdvanceResult.SUCCESS


class FakeSubscriptionStore(SubscriptionStore):
    def __init__(self, subscriptions: dict[str, list[str]] | None = None) -> None:
        self.subscriptions = subscriptions or {}
        self.lookups: list[set[str]] = []

    def find_subscribers(self, finisher_ids: Iterable[str]) -> dict[str, list[str]]:
        ids = set(finisher_ids)
        self.lookups.append(ids)
        return {
            finisher_id: list(addresses)
            for finisher_id, addresses in self.subscriptions.items()
            if finisher_id in ids and addresses
        }


class FakeFetcher:
    def __init__(self, pages: dict[tuple[str, int], str | Exception] | None = None) -> None:
        self.pages = pages or {}
        self.calls: list[tuple[str, int]] = []

    def fetch(self, event_id: str, run_number: int) -> str:
        self.calls.append((event_id, run_number))
        page = self.pages.get((event_id, run_number))
        if page is None:
            raise TransientFetchError(f"404 for {event_id}/{run_number}")
        if isinstance(page, Exception):
            raise page
        return page


class RecordingGateway(EmailGateway):
    """Records every message; fails sends whose subject contains a marker."""

    def __init__(self, fail_when_subject_contains: str | None = None) -> None:
        self.messages: list[EmailMessage] = []
        self._fail_marker = fail_when_subject_contains
        self._lock = threading.Lock()

    def send(self, message: EmailMessage) -> SendReceipt:
        with self._lock:
            self.messages.append(message)
        if self._fail_marker and self._fail_marker in message.subject:
            raise DispatchError("gateway rejected message")
        return SendReceipt(accepted=message.recipients)


@pytest.fixture()
def gateway() -> RecordingGateway:
    return RecordingGateway()
