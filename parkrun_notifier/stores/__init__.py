"""
Storage layer exports.
"""

from parkrun_notifier.stores.base import EventCursorStore, SubscriptionStore
from parkrun_notifier.stores.sqlalchemy_stores import (
    SQLAlchemyEventCursorStore,
    SQLAlchemySubscriptionStore,
)

__all__ = [
    "EventCursorStore",
    "SQLAlchemyEventCursorStore",
    "SQLAlchemySubscriptionStore",
    "SubscriptionStore",
]
