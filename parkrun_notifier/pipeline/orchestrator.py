"""
parkrun_notifier/pipeline/orchestrator.py

Incremental results scan: due events -> fetch -> parse -> advance cursor ->
match subscribers -> notify.

Per-event state machine
-----------------------
  Due -> Fetched -> Parsed -> NoNewResults                       (terminal)
                           -> ResultsFound -> CursorAdvanced -> NoSubscribers  (terminal)
                                                             -> Dispatched     (terminal)

The conditional cursor advance is the only state change, and it happens
before any notification. A conflicting advance means another run already
owns this event/run number, so nothing is sent. Any failure ends that event's
machine for this cycle and leaves every other event untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import requests
from sqlalchemy.orm import sessionmaker

from parkrun_notifier.config import NotifierSettings, PipelineSettings
from parkrun_notifier.domain import (
    AdvanceResult,
    DispatchStatus,
    Event,
    EventScanSummary,
    FinisherResult,
    PipelineRunSummary,
    ScanStatus,
)
from parkrun_notifier.errors import (
    MalformedPageError,
    StoreUnavailableError,
    TransientFetchError,
)
from parkrun_notifier.logging_utils import log_event
from parkrun_notifier.notifications import MailjetGateway, NotificationDispatcher
from parkrun_notifier.scraping import ResultFetcher, ResultParser
from parkrun_notifier.stores import (
    EventCursorStore,
    SQLAlchemyEventCursorStore,
    SQLAlchemySubscriptionStore,
    SubscriptionStore,
)

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def start_of_local_day(now: datetime, tz_name: str) -> int:
    """
    Epoch millis of local midnight for ``now`` in ``tz_name``.
    """

    local_now = now.astimezone(ZoneInfo(tz_name))
    midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    return int(midnight.timestamp() * 1000)


class PipelineOrchestrator:
    """
    Runs one pass of the scrape-and-notify pipeline over every due event.
    """

    def __init__(
        self,
        *,
        cursor_store: EventCursorStore,
        subscription_store: SubscriptionStore,
        fetcher: ResultFetcher,
        parser: ResultParser,
        dispatcher: NotificationDispatcher,
        settings: PipelineSettings,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._cursor_store = cursor_store
        self._subscription_store = subscription_store
        self._fetcher = fetcher
        self._parser = parser
        self._dispatcher = dispatcher
        self._settings = settings
        self._clock = clock

    def run(self) -> PipelineRunSummary:
        """
        Scan all due events. Never raises; failures are logged and summarised.
        """

        try:
            as_of = start_of_local_day(self._clock(), self._settings.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            log_event(
                logger,
                logging.ERROR,
                "pipeline_timezone_invalid",
                timezone=self._settings.timezone,
                error=str(exc),
            )
            return PipelineRunSummary(as_of=0, error=f"invalid timezone {self._settings.timezone!r}")

        try:
            events = list(self._cursor_store.list_due_events(as_of))
        except StoreUnavailableError as exc:
            log_event(logger, logging.ERROR, "due_events_unavailable", as_of=as_of, error=str(exc))
            return PipelineRunSummary(as_of=as_of, error=str(exc))

        if not events:
            log_event(logger, logging.INFO, "no_due_events", as_of=as_of)
            return PipelineRunSummary(as_of=as_of)

        log_event(logger, logging.INFO, "pipeline_run_started", as_of=as_of, due_events=len(events))
        workers = min(self._settings.event_concurrency, len(events))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="event-scan") as executor:
            futures = [executor.submit(self.process_event, event) for event in events]
            summaries = [
                self._collect_event(event, future.result)
                for event, future in zip(events, futures)
            ]

        summary = PipelineRunSummary(as_of=as_of, events=summaries)
        log_event(
            logger,
            logging.INFO,
            "pipeline_run_completed",
            as_of=as_of,
            due_events=len(events),
            statuses={status.value: summary.count(status) for status in ScanStatus if summary.count(status)},
        )
        return summary

    def process_event(self, event: Event) -> EventScanSummary:
        """
        Drive one event's state machine to a terminal state.
        """

        run_number = event.next_run_number
        try:
            return self._scan(event)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected failure scanning event=%r run=%s", event.event_id, run_number)
            return EventScanSummary(
                event_id=event.event_id,
                run_number=run_number,
                status=ScanStatus.FAILED,
                error=str(exc),
            )

    def _scan(self, event: Event) -> EventScanSummary:
        event_id = event.event_id
        run_number = event.next_run_number

        def terminal(status: ScanStatus, **extra: object) -> EventScanSummary:
            return EventScanSummary(event_id=event_id, run_number=run_number, status=status, **extra)

        # Due -> Fetched
        try:
            markup = self._fetcher.fetch(event_id, run_number)
        except TransientFetchError as exc:
            return terminal(ScanStatus.FETCH_FAILED, error=str(exc))

        # Fetched -> Parsed
        try:
            results = self._parser.parse(markup, event_id, event.display_name, run_number)
        except MalformedPageError as exc:
            log_event(
                logger,
                logging.WARNING,
                "results_page_malformed",
                event_id=event_id,
                run_number=run_number,
                error=str(exc),
            )
            return terminal(ScanStatus.MALFORMED_PAGE, error=str(exc))

        if not results:
            log_event(
                logger,
                logging.INFO,
                "event_scan_no_new_results",
                event_id=event_id,
                run_number=run_number,
                message=f"No new updates found for event '{event_id}' ({run_number})",
            )
            return terminal(ScanStatus.NO_NEW_RESULTS)

        # ResultsFound -> CursorAdvanced
        try:
            advanced = self._cursor_store.advance(event_id, run_number)
        except StoreUnavailableError as exc:
            log_event(
                logger,
                logging.ERROR,
                "event_cursor_unavailable",
                event_id=event_id,
                run_number=run_number,
                error=str(exc),
            )
            return terminal(ScanStatus.STORE_UNAVAILABLE, results_found=len(results), error=str(exc))

        if advanced is AdvanceResult.CONFLICT:
            log_event(logger, logging.WARNING, "event_cursor_conflict", event_id=event_id, run_number=run_number)
            return terminal(ScanStatus.CURSOR_CONFLICT, results_found=len(results))

        log_event(
            logger,
            logging.INFO,
            "event_cursor_advanced",
            event_id=event_id,
            run_number=run_number,
            next_run_number=run_number + 1,
            results_found=len(results),
        )

        # CursorAdvanced -> SubscribersMatched
        by_finisher: dict[str, FinisherResult] = {}
        for result in results:
            by_finisher.setdefault(result.finisher_id, result)

        try:
            matches = self._subscription_store.find_subscribers(by_finisher.keys())
        except StoreUnavailableError as exc:
            log_event(
                logger,
                logging.ERROR,
                "subscriptions_unavailable",
                event_id=event_id,
                run_number=run_number,
                error=str(exc),
            )
            return terminal(ScanStatus.STORE_UNAVAILABLE, results_found=len(results), error=str(exc))

        matches = {finisher_id: addresses for finisher_id, addresses in matches.items() if addresses}
        if not matches:
            log_event(logger, logging.INFO, "event_scan_no_subscribers", event_id=event_id, run_number=run_number)
            return terminal(ScanStatus.NO_SUBSCRIBERS, results_found=len(results))

        # SubscribersMatched -> Dispatched
        outcomes = self._dispatch(by_finisher, matches)
        return terminal(
            ScanStatus.DISPATCHED,
            results_found=len(results),
            finishers_matched=len(outcomes),
            notifications=outcomes,
        )

    def _dispatch(
        self,
        results: dict[str, FinisherResult],
        matches: dict[str, list[str]],
    ) -> dict[str, DispatchStatus]:
        """
        Notify each matched finisher concurrently and gather every outcome.
        """

        jobs: list[tuple[FinisherResult, Sequence[str]]] = []
        for finisher_id, addresses in matches.items():
            result = results.get(finisher_id)
            if result is None:
                logger.warning("No scraped result for matched finisher_id=%r", finisher_id)
                continue
            jobs.append((result, addresses))

        if not jobs:
            return {}

        outcomes: dict[str, DispatchStatus] = {}
        workers = min(self._settings.dispatch_concurrency, len(jobs))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="notify") as executor:
            futures = {
                result.finisher_id: executor.submit(self._dispatcher.notify, result, addresses)
                for result, addresses in jobs
            }
            for finisher_id, future in futures.items():
                try:
                    outcomes[finisher_id] = future.result()
                except Exception:  # noqa: BLE001
                    logger.exception("Unexpected failure notifying finisher_id=%r", finisher_id)
                    outcomes[finisher_id] = DispatchStatus.FAILURE
        return outcomes

    @staticmethod
    def _collect_event(event: Event, result: Callable[[], EventScanSummary]) -> EventScanSummary:
        try:
            return result()
        except Exception as exc:  # noqa: BLE001
            logger.exception("Event worker crashed event=%r", event.event_id)
            return EventScanSummary(
                event_id=event.event_id,
                run_number=event.next_run_number,
                status=ScanStatus.FAILED,
                error=str(exc),
            )


def build_pipeline(
    settings: NotifierSettings,
    *,
    session_factory: sessionmaker,
    http_session: requests.Session,
) -> PipelineOrchestrator:
    """
    Wire the production stores, fetcher and Mailjet dispatcher.

    The caller owns ``http_session`` and closes it once the run is done.
    """

    gateway = MailjetGateway(settings=settings.mailjet, session=http_session)
    return PipelineOrchestrator(
        cursor_store=SQLAlchemyEventCursorStore(session_factory=session_factory),
        subscription_store=SQLAlchemySubscriptionStore(
            session_factory=session_factory,
            batch_size=settings.stores.subscription_lookup_batch_size,
        ),
        fetcher=ResultFetcher(settings=settings.results_site, session=http_session),
        parser=ResultParser(),
        dispatcher=NotificationDispatcher(
            gateway=gateway,
            site=settings.results_site,
            unsubscribe_address=settings.mailjet.unsubscribe_address,
        ),
        settings=settings.pipeline,
    )
