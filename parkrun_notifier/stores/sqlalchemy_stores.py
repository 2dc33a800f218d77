"""
SQLAlchemy-backed cursor and subscription stores.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from db.models import EventRecord, SubscriptionRecord
from parkrun_notifier.domain import AdvanceResult, Event
from parkrun_notifier.errors import StoreUnavailableError
from parkrun_notifier.stores.base import EventCursorStore, SubscriptionStore

logger = logging.getLogger(__name__)

_DEFAULT_LOOKUP_BATCH_SIZE = 500


def _epoch_millis() -> int:
    return int(time.time() * 1000)


class SQLAlchemyEventCursorStore(EventCursorStore):
    """
    Event cursors in the events table. Each call uses its own short session,
    so one store instance is safe to share between worker threads.
    """

    def __init__(
        self,
        *,
        session_factory: sessionmaker,
        clock: Callable[[], int] = _epoch_millis,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def list_due_events(self, as_of: int) -> list[Event]:
        statement = select(EventRecord).where(
            EventRecord.last_modified < as_of,
            EventRecord.is_deleted.is_(False),
        )
        try:
            with self._session_factory() as session:
                records = session.scalars(statement).all()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Failed to list due events: {exc}") from exc

        return [
            Event(
                event_id=record.event_id,
                display_name=record.display_name,
                next_run_number=record.next_run_number,
                last_modified=record.last_modified,
                is_deleted=record.is_deleted,
            )
            for record in records
        ]

    def advance(self, event_id: str, expected_run_number: int) -> AdvanceResult:
        statement = (
            update(EventRecord)
            .where(
                EventRecord.event_id == event_id,
                EventRecord.next_run_number == expected_run_number,
            )
            .values(
                next_run_number=expected_run_number + 1,
                last_modified=self._clock(),
            )
            .execution_options(synchronize_session=False)
        )
        try:
            with self._session_factory() as session, session.begin():
                result = session.execute(statement)
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Failed to advance event {event_id!r}: {exc}") from exc

        if result.rowcount == 1:
            return AdvanceResult.SUCCESS
        return AdvanceResult.CONFLICT

    def known_event_ids(self) -> set[str]:
        """
        Ids of every stored event, deleted ones included.
        """

        try:
            with self._session_factory() as session:
                return set(session.scalars(select(EventRecord.event_id)).all())
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Failed to list known events: {exc}") from exc

    def add_event(self, event_id: str, display_name: str) -> bool:
        """
        Register a new event with a fresh cursor. Returns False if it already exists.
        """

        try:
            with self._session_factory() as session, session.begin():
                if session.get(EventRecord, event_id) is not None:
                    return False
                session.add(
                    EventRecord(
                        event_id=event_id,
                        display_name=display_name,
                        next_run_number=1,
                        last_modified=0,
                        is_deleted=False,
                    )
                )
        except IntegrityError:
            return False
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Failed to add event {event_id!r}: {exc}") from exc
        return True


class SQLAlchemySubscriptionStore(SubscriptionStore):
    """
    Subscriptions in the subscriptions table.
    """

    def __init__(
        self,
        *,
        session_factory: sessionmaker,
        batch_size: int = _DEFAULT_LOOKUP_BATCH_SIZE,
    ) -> None:
        self._session_factory = session_factory
        self._batch_size = max(1, batch_size)

    def find_subscribers(self, finisher_ids: Iterable[str]) -> dict[str, list[str]]:
        unique_ids = sorted(set(finisher_ids))
        if not unique_ids:
            return {}

        matches: dict[str, list[str]] = {}
        try:
            with self._session_factory() as session:
                for start in range(0, len(unique_ids), self._batch_size):
                    chunk = unique_ids[start : start + self._batch_size]
                    rows = session.execute(
                        select(
                            SubscriptionRecord.finisher_id,
                            SubscriptionRecord.subscriber_address,
                        )
                        .where(SubscriptionRecord.finisher_id.in_(chunk))
                        .order_by(
                            SubscriptionRecord.finisher_id,
                            SubscriptionRecord.subscriber_address,
                        )
                    ).all()
                    for finisher_id, subscriber_address in rows:
                        addresses = matches.setdefault(finisher_id, [])
                        if subscriber_address not in addresses:
                            addresses.append(subscriber_address)
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Failed to look up subscribers: {exc}") from exc

        return matches

    def add_subscriptions(self, subscriber_address: str, finisher_ids: Sequence[str]) -> int:
        """
        Subscribe an address to each finisher; existing pairs are left alone.
        Returns the number of new subscriptions.
        """

        added = 0
        try:
            with self._session_factory() as session:
                for finisher_id in dict.fromkeys(finisher_ids):
                    key = (finisher_id, subscriber_address)
                    if session.get(SubscriptionRecord, key) is not None:
                        continue
                    session.add(
                        SubscriptionRecord(
                            finisher_id=finisher_id,
                            subscriber_address=subscriber_address,
                        )
                    )
                    try:
                        session.commit()
                        added += 1
                    except IntegrityError:
                        # Inserted concurrently by another request.
                        session.rollback()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(
                f"Failed to add subscriptions for {subscriber_address!r}: {exc}"
            ) from exc
        return added

    def remove_subscriptions(self, subscriber_address: str, finisher_ids: Sequence[str]) -> int:
        """
        Remove an address's subscriptions to the given finishers; returns rows removed.
        """

        if not finisher_ids:
            return 0

        statement = delete(SubscriptionRecord).where(
            SubscriptionRecord.subscriber_address == subscriber_address,
            SubscriptionRecord.finisher_id.in_(list(finisher_ids)),
        )
        try:
            with self._session_factory() as session, session.begin():
                result = session.execute(statement)
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(
                f"Failed to remove subscriptions for {subscriber_address!r}: {exc}"
            ) from exc
        return result.rowcount or 0
