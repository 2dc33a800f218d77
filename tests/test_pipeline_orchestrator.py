"""
tests/test_pipeline_orchestrator.py

PipelineOrchestrator state machine with in-memory fakes (and, in the last
class, the real SQLAlchemy stores on SQLite).

Coverage
--------
- Results found: cursor advances by one, one batched email per finisher
- No new results: cursor unchanged, nothing sent
- No subscribers: cursor advanced, nothing sent
- Conflicting advance: nothing sent
- Shared subscriber: one email per finisher
- Fetch / parse / store failures isolated per event
- Dispatch failures isolated per finisher
- No due events, unknown timezone
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from conftest import (
    FakeCursorStore,
    FakeFetcher,
    FakeSubscriptionStore,
    RecordingGateway,
    build_results_page,
)

from db.models import EventRecord
from parkrun_notifier.config import PipelineSettings
from parkrun_notifier.domain import AdvanceResult, DispatchStatus, Event, ScanStatus
from parkrun_notifier.errors import StoreUnavailableError
from parkrun_notifier.notifications import NotificationDispatcher
from parkrun_notifier.pipeline import PipelineOrchestrator
from parkrun_notifier.pipeline.orchestrator import start_of_local_day
from parkrun_notifier.scraping import ResultParser
from parkrun_notifier.stores import SQLAlchemyEventCursorStore, SQLAlchemySubscriptionStore

FIXED_NOW = datetime(2025, 6, 14, 0, 30, tzinfo=timezone.utc)
HAGLEY = Event(event_id="hagley-park", display_name="Hagley", next_run_number=42)


def _orchestrator(
    *,
    cursor_store,
    subscription_store,
    fetcher,
    gateway,
    site,
    event_concurrency: int = 4,
) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        cursor_store=cursor_store,
        subscription_store=subscription_store,
        fetcher=fetcher,
        parser=ResultParser(),
        dispatcher=NotificationDispatcher(
            gateway=gateway,
            site=site,
            unsubscribe_address="unsubscribe@example.com",
        ),
        settings=PipelineSettings(
            event_concurrency=event_concurrency,
            dispatch_concurrency=4,
            timezone="Pacific/Auckland",
        ),
        clock=lambda: FIXED_NOW,
    )


class TestResultsFound:
    def test_hagley_park_run_42(self, gateway: RecordingGateway, site) -> None:
        cursor_store = FakeCursorStore([HAGLEY])
        fetcher = FakeFetcher(
            {("hagley-park", 42): build_results_page([("A123", "1", "Jane Doe", "18:32")])}
        )
        subscriptions = FakeSubscriptionStore({"A123": ["alice@example.com"]})

        summary = _orchestrator(
            cursor_store=cursor_store,
            subscription_store=subscriptions,
            fetcher=fetcher,
            gateway=gateway,
            site=site,
        ).run()

        assert cursor_store.events["hagley-park"].next_run_number == 43
        (message,) = gateway.messages
        assert message.recipients == ("alice@example.com",)
        assert "#42" in message.html_body
        assert "<strong>Position:</strong> 1<br>" in message.html_body
        assert "<strong>Time:</strong> 18:32<br>" in message.html_body
        assert "14 June 2025" in message.html_body

        (event_summary,) = summary.events
        assert event_summary.status is ScanStatus.DISPATCHED
        assert event_summary.notifications == {"A123": DispatchStatus.SUCCESS}

    def test_shared_subscriber_gets_one_email_per_finisher(self, gateway: RecordingGateway, site) -> None:
        cursor_store = FakeCursorStore([HAGLEY])
        fetcher = FakeFetcher(
            {
                ("hagley-park", 42): build_results_page(
                    [("A1", "1", "Runner One", "17:00"), ("A2", "2", "Runner Two", "17:30")]
                )
            }
        )
        subscriptions = FakeSubscriptionStore(
            {"A1": ["bob@example.com"], "A2": ["bob@example.com"]}
        )

        _orchestrator(
            cursor_store=cursor_store,
            subscription_store=subscriptions,
            fetcher=fetcher,
            gateway=gateway,
            site=site,
        ).run()

        assert len(gateway.messages) == 2
        by_subject = {message.subject: message for message in gateway.messages}
        one = by_subject["New parkrun result for Runner One"]
        two = by_subject["New parkrun result for Runner Two"]
        assert one.recipients == two.recipients == ("bob@example.com",)
        assert "17:00" in one.html_body and "17:30" not in one.html_body
        assert "17:30" in two.html_body and "17:00" not in two.html_body

    def test_unsubscribed_finishers_are_not_notified(self, gateway: RecordingGateway, site) -> None:
        cursor_store = FakeCursorStore([HAGLEY])
        fetcher = FakeFetcher(
            {
                ("hagley-park", 42): build_results_page(
                    [("A1", "1", "Runner One", "17:00"), ("A2", "2", "Runner Two", "17:30")]
                )
            }
        )
        subscriptions = FakeSubscriptionStore({"A2": ["carol@example.com", "dan@example.com"]})

        summary = _orchestrator(
            cursor_store=cursor_store,
            subscription_store=subscriptions,
            fetcher=fetcher,
            gateway=gateway,
            site=site,
        ).run()

        (message,) = gateway.messages
        assert message.subject == "New parkrun result for Runner Two"
        assert message.recipients == ("carol@example.com", "dan@example.com")
        assert subscriptions.lookups == [{"A1", "A2"}]
        assert summary.events[0].finishers_matched == 1

    def test_no_subscribers_advances_but_sends_nothing(self, gateway: RecordingGateway, site) -> None:
        cursor_store = FakeCursorStore([HAGLEY])
        fetcher = FakeFetcher(
            {("hagley-park", 42): build_results_page([("A1", "1", "Runner One", "17:00")])}
        )

        summary = _orchestrator(
            cursor_store=cursor_store,
            subscription_store=FakeSubscriptionStore(),
            fetcher=fetcher,
            gateway=gateway,
            site=site,
        ).run()

        assert cursor_store.events["hagley-park"].next_run_number == 43
        assert gateway.messages == []
        assert summary.events[0].status is ScanStatus.NO_SUBSCRIBERS

    def test_one_failed_send_does_not_block_others(self, site) -> None:
        gateway = RecordingGateway(fail_when_subject_contains="Runner One")
        cursor_store = FakeCursorStore([HAGLEY])
        fetcher = FakeFetcher(
            {
                ("hagley-park", 42): build_results_page(
                    [("A1", "1", "Runner One", "17:00"), ("A2", "2", "Runner Two", "17:30")]
                )
            }
        )
        subscriptions = FakeSubscriptionStore({"A1": ["bob@example.com"], "A2": ["bob@example.com"]})

        summary = _orchestrator(
            cursor_store=cursor_store,
            subscription_store=subscriptions,
            fetcher=fetcher,
            gateway=gateway,
            site=site,
        ).run()

        assert len(gateway.messages) == 2
        assert summary.events[0].notifications == {
            "A1": DispatchStatus.FAILURE,
            "A2": DispatchStatus.SUCCESS,
        }
        assert summary.events[0].notifications_failed == 1
        assert cursor_store.events["hagley-park"].next_run_number == 43


class TestNothingToSend:
    def test_empty_table_leaves_cursor_unchanged(self, gateway: RecordingGateway, site) -> None:
        cursor_store = FakeCursorStore([HAGLEY])
        fetcher = FakeFetcher({("hagley-park", 42): build_results_page([])})
        subscriptions = FakeSubscriptionStore({"A123": ["alice@example.com"]})

        summary = _orchestrator(
            cursor_store=cursor_store,
            subscription_store=subscriptions,
            fetcher=fetcher,
            gateway=gateway,
            site=site,
        ).run()

        assert cursor_store.events["hagley-park"] == HAGLEY
        assert cursor_store.advance_calls == []
        assert subscriptions.lookups == []
        assert gateway.messages == []
        assert summary.events[0].status is ScanStatus.NO_NEW_RESULTS

    def test_unpublished_run_page_is_no_new_results(self, gateway: RecordingGateway, site) -> None:
        cursor_store = FakeCursorStore([HAGLEY])
        fetcher = FakeFetcher({("hagley-park", 42): build_results_page([], include_table=False)})

        summary = _orchestrator(
            cursor_store=cursor_store,
            subscription_store=FakeSubscriptionStore(),
            fetcher=fetcher,
            gateway=gateway,
            site=site,
        ).run()

        assert summary.events[0].status is ScanStatus.NO_NEW_RESULTS
        assert cursor_store.advance_calls == []
        assert gateway.messages == []

    def test_conflicting_advance_sends_nothing(self, gateway: RecordingGateway, site) -> None:
        class _AlreadyAdvanced(FakeCursorStore):
            def advance(self, event_id: str, expected_run_number: int) -> AdvanceResult:
                return AdvanceResult.CONFLICT

        subscriptions = FakeSubscriptionStore({"A123": ["alice@example.com"]})
        fetcher = FakeFetcher(
            {("hagley-park", 42): build_results_page([("A123", "1", "Jane Doe", "18:32")])}
        )

        summary = _orchestrator(
            cursor_store=_AlreadyAdvanced([HAGLEY]),
            subscription_store=subscriptions,
            fetcher=fetcher,
            gateway=gateway,
            site=site,
        ).run()

        assert gateway.messages == []
        assert subscriptions.lookups == []
        assert summary.events[0].status is ScanStatus.CURSOR_CONFLICT

    def test_no_due_events(self, gateway: RecordingGateway, site) -> None:
        scanned_today = Event(
            event_id="hagley-park",
            display_name="Hagley",
            next_run_number=42,
            last_modified=start_of_local_day(FIXED_NOW, "Pacific/Auckland"),
        )
        fetcher = FakeFetcher()

        summary = _orchestrator(
            cursor_store=FakeCursorStore([scanned_today]),
            subscription_store=FakeSubscriptionStore(),
            fetcher=fetcher,
            gateway=gateway,
            site=site,
        ).run()

        assert summary.no_due_events
        assert fetcher.calls == []


class TestFailureIsolation:
    def test_failures_in_one_event_do_not_stop_others(self, gateway: RecordingGateway, site) -> None:
        events = [
            Event(event_id="offline", display_name="Offline", next_run_number=3),
            Event(event_id="redesigned", display_name="Redesigned", next_run_number=8),
            HAGLEY,
        ]
        cursor_store = FakeCursorStore(events)
        fetcher = FakeFetcher(
            {
                ("redesigned", 8): build_results_page([("A9", "1", "Runner", "20:00")], date=None),
                ("hagley-park", 42): build_results_page([("A123", "1", "Jane Doe", "18:32")]),
            }
        )
        subscriptions = FakeSubscriptionStore({"A123": ["alice@example.com"]})

        summary = _orchestrator(
            cursor_store=cursor_store,
            subscription_store=subscriptions,
            fetcher=fetcher,
            gateway=gateway,
            site=site,
            event_concurrency=2,
        ).run()

        statuses = {event.event_id: event.status for event in summary.events}
        assert statuses == {
            "offline": ScanStatus.FETCH_FAILED,
            "redesigned": ScanStatus.MALFORMED_PAGE,
            "hagley-park": ScanStatus.DISPATCHED,
        }
        assert cursor_store.events["offline"].next_run_number == 3
        assert cursor_store.events["redesigned"].next_run_number == 8
        assert cursor_store.events["hagley-park"].next_run_number == 43
        assert len(gateway.messages) == 1

    def test_subscription_store_outage_is_contained(self, gateway: RecordingGateway, site) -> None:
        class _DownSubscriptions(FakeSubscriptionStore):
            def find_subscribers(self, finisher_ids):
                raise StoreUnavailableError("subscriptions unreachable")

        cursor_store = FakeCursorStore([HAGLEY])
        fetcher = FakeFetcher(
            {("hagley-park", 42): build_results_page([("A123", "1", "Jane Doe", "18:32")])}
        )

        summary = _orchestrator(
            cursor_store=cursor_store,
            subscription_store=_DownSubscriptions(),
            fetcher=fetcher,
            gateway=gateway,
            site=site,
        ).run()

        assert summary.events[0].status is ScanStatus.STORE_UNAVAILABLE
        assert gateway.messages == []

    def test_cursor_store_outage_ends_run_quietly(self, gateway: RecordingGateway, site) -> None:
        class _DownCursor(FakeCursorStore):
            def list_due_events(self, as_of: int):
                raise StoreUnavailableError("cursor store unreachable")

        summary = _orchestrator(
            cursor_store=_DownCursor(),
            subscription_store=FakeSubscriptionStore(),
            fetcher=FakeFetcher(),
            gateway=gateway,
            site=site,
        ).run()

        assert summary.error == "cursor store unreachable"
        assert summary.events == []
        assert not summary.no_due_events

    def test_unknown_timezone_ends_run_quietly(self, gateway: RecordingGateway, site) -> None:
        fetcher = FakeFetcher()
        orchestrator = PipelineOrchestrator(
            cursor_store=FakeCursorStore([HAGLEY]),
            subscription_store=FakeSubscriptionStore(),
            fetcher=fetcher,
            parser=ResultParser(),
            dispatcher=NotificationDispatcher(
                gateway=gateway,
                site=site,
                unsubscribe_address="unsubscribe@example.com",
            ),
            settings=PipelineSettings(timezone="Mars/Olympus_Mons"),
            clock=lambda: FIXED_NOW,
        )

        summary = orchestrator.run()

        assert summary.error == "invalid timezone 'Mars/Olympus_Mons'"
        assert summary.events == []
        assert fetcher.calls == []

    def test_unexpected_error_is_contained(self, gateway: RecordingGateway, site) -> None:
        other = Event(event_id="other", display_name="Other", next_run_number=1)
        fetcher = FakeFetcher(
            {
                ("hagley-park", 42): RuntimeError("boom"),
                ("other", 1): build_results_page([]),
            }
        )

        summary = _orchestrator(
            cursor_store=FakeCursorStore([HAGLEY, other]),
            subscription_store=FakeSubscriptionStore(),
            fetcher=fetcher,
            gateway=gateway,
            site=site,
        ).run()

        statuses = {event.event_id: event.status for event in summary.events}
        assert statuses == {"hagley-park": ScanStatus.FAILED, "other": ScanStatus.NO_NEW_RESULTS}


class TestWithSQLAlchemyStores:
    def test_concurrent_runs_notify_once(self, session_factory, gateway: RecordingGateway, site) -> None:
        with session_factory() as session, session.begin():
            session.add(
                EventRecord(event_id="hagley-park", display_name="Hagley", next_run_number=42, last_modified=0)
            )
        subscriptions = SQLAlchemySubscriptionStore(session_factory=session_factory)
        subscriptions.add_subscriptions("alice@example.com", ["A123"])
        cursor_store = SQLAlchemyEventCursorStore(session_factory=session_factory)
        page = {("hagley-park", 42): build_results_page([("A123", "1", "Jane Doe", "18:32")])}

        def make() -> PipelineOrchestrator:
            return _orchestrator(
                cursor_store=cursor_store,
                subscription_store=subscriptions,
                fetcher=FakeFetcher(dict(page)),
                gateway=gateway,
                site=site,
            )

        first, second = make(), make()
        # Both runs read the event as due before either advances it.
        event = cursor_store.list_due_events(start_of_local_day(FIXED_NOW, "Pacific/Auckland"))[0]
        outcomes = [first.process_event(event), second.process_event(event)]

        assert sorted(outcome.status.value for outcome in outcomes) == ["cursor_conflict", "dispatched"]
        assert len(gateway.messages) == 1
        with session_factory() as session:
            assert session.get(EventRecord, "hagley-park").next_run_number == 43


@pytest.mark.parametrize(
    ("now", "expected"),
    [
        # 00:30 UTC on 14 June is 12:30 NZST, so local midnight is 12:00 UTC on 13 June.
        (datetime(2025, 6, 14, 0, 30, tzinfo=timezone.utc), datetime(2025, 6, 13, 12, 0, tzinfo=timezone.utc)),
        # 13:00 UTC on 14 June is already 01:00 on 15 June in Auckland.
        (datetime(2025, 6, 14, 13, 0, tzinfo=timezone.utc), datetime(2025, 6, 14, 12, 0, tzinfo=timezone.utc)),
    ],
)
def test_start_of_local_day(now: datetime, expected: datetime) -> None:
    assert start_of_local_day(now, "Pacific/Auckland") == int(expected.timestamp() * 1000)
