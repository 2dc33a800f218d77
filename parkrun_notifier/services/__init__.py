"""
Service layer exports.
"""

from parkrun_notifier.services.event_sync_service import EventCatalogSync, EventSyncSummary
from parkrun_notifier.services.subscription_service import (
    InboundEmail,
    SubscriptionCommandResult,
    SubscriptionService,
    parse_finisher_ids,
)

__all__ = [
    "EventCatalogSync",
    "EventSyncSummary",
    "InboundEmail",
    "SubscriptionCommandResult",
    "SubscriptionService",
    "parse_finisher_ids",
]
