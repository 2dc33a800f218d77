"""
parkrun_notifier/services/subscription_service.py

Handles subscribe/unsubscribe requests received as inbound emails.

The command is the local part of the address the email was sent to
(``subscribe@...`` or ``unsubscribe@...``); the subject carries a
comma-separated list of finisher ids, e.g. ``A123456, 7891011``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from parkrun_notifier.config import ResultsSiteSettings
from parkrun_notifier.errors import DispatchError
from parkrun_notifier.logging_utils import log_event
from parkrun_notifier.notifications import EmailGateway, EmailMessage
from parkrun_notifier.notifications.templates import render_subscribed, render_unsubscribed
from parkrun_notifier.stores import SQLAlchemySubscriptionStore

logger = logging.getLogger(__name__)

CONFIRMATION_SUBJECT = "Subscription confirmation"
_NON_DIGITS = re.compile(r"[^0-9]")


@dataclass(frozen=True)
class InboundEmail:
    sender: str
    recipient: str
    subject: str


@dataclass(frozen=True)
class SubscriptionCommandResult:
    command: str
    status: str
    finisher_ids: list[str] = field(default_factory=list)


def parse_finisher_ids(subject: str) -> list[str]:
    """
    Digits of each comma-separated subject token, empties dropped, order kept.
    """

    ids = (_NON_DIGITS.sub("", token) for token in subject.split(","))
    return list(dict.fromkeys(finisher_id for finisher_id in ids if finisher_id))


class SubscriptionService:
    """
    Applies subscription commands and sends a confirmation email.
    """

    def __init__(
        self,
        *,
        store: SQLAlchemySubscriptionStore,
        gateway: EmailGateway,
        site: ResultsSiteSettings,
        unsubscribe_address: str,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._site = site
        self._unsubscribe_address = unsubscribe_address

    def handle(self, email: InboundEmail) -> SubscriptionCommandResult:
        command = email.recipient.split("@", 1)[0].strip().lower()
        finisher_ids = parse_finisher_ids(email.subject)
        sender = email.sender.strip()

        if command not in {"subscribe", "unsubscribe"} or not finisher_ids or not sender:
            logger.info(
                "Command '%s' is not recognised or has no parkrunner ids. sender=%r subject=%r",
                command,
                sender,
                email.subject,
            )
            return SubscriptionCommandResult(command=command, status="ignored", finisher_ids=finisher_ids)

        if command == "subscribe":
            added = self._store.add_subscriptions(sender, finisher_ids)
            log_event(
                logger,
                logging.INFO,
                "subscriptions_added",
                subscriber=sender,
                finisher_ids=finisher_ids,
                added=added,
            )
            html_body = render_subscribed(
                finisher_ids,
                site=self._site,
                unsubscribe_address=self._unsubscribe_address,
            )
            status = "subscribed"
        else:
            removed = self._store.remove_subscriptions(sender, finisher_ids)
            log_event(
                logger,
                logging.INFO,
                "subscriptions_removed",
                subscriber=sender,
                finisher_ids=finisher_ids,
                removed=removed,
            )
            html_body = render_unsubscribed(finisher_ids, site=self._site)
            status = "unsubscribed"

        self._confirm(sender, html_body)
        return SubscriptionCommandResult(command=command, status=status, finisher_ids=finisher_ids)

    def _confirm(self, sender: str, html_body: str) -> None:
        message = EmailMessage(recipients=(sender,), subject=CONFIRMATION_SUBJECT, html_body=html_body)
        try:
            self._gateway.send(message)
        except DispatchError as exc:
            log_event(logger, logging.ERROR, "subscription_confirmation_failed", subscriber=sender, error=str(exc))
