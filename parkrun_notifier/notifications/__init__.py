"""
Notification rendering and email delivery.
"""

from parkrun_notifier.notifications.dispatcher import NotificationDispatcher
from parkrun_notifier.notifications.gateway import (
    EmailGateway,
    EmailMessage,
    MailjetGateway,
    SendReceipt,
)

__all__ = [
    "EmailGateway",
    "EmailMessage",
    "MailjetGateway",
    "NotificationDispatcher",
    "SendReceipt",
]
