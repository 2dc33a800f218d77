"""
Storage interfaces for event cursors and subscriptions.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence

from parkrun_notifier.domain import AdvanceResult, Event


class EventCursorStore(ABC):
    """
    Durable event id -> scan cursor mapping.
    """

    @abstractmethod
    def list_due_events(self, as_of: int) -> Sequence[Event]:
        """
        Return non-deleted events last modified strictly before ``as_of`` (epoch millis).
        """

    @abstractmethod
    def advance(self, event_id: str, expected_run_number: int) -> AdvanceResult:
        """
        Move the cursor to ``expected_run_number + 1`` if it still equals
        ``expected_run_number``; report CONFLICT otherwise.
        """


class SubscriptionStore(ABC):
    """
    Durable finisher id -> subscriber addresses mapping.
    """

    @abstractmethod
    def find_subscribers(self, finisher_ids: Iterable[str]) -> dict[str, list[str]]:
        """
        Return subscribers keyed by finisher id, omitting finishers with none.
        """
