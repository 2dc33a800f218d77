"""
Per-finisher notification dispatch.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from parkrun_notifier.config import ResultsSiteSettings
from parkrun_notifier.domain import DispatchStatus, FinisherResult
from parkrun_notifier.errors import DispatchError
from parkrun_notifier.logging_utils import log_event
from parkrun_notifier.notifications.gateway import EmailGateway, EmailMessage
from parkrun_notifier.notifications.templates import render_result, result_subject

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Renders one result notification and sends it to all of a finisher's
    subscribers in a single gateway call. Failures are returned, never raised.
    """

    def __init__(
        self,
        *,
        gateway: EmailGateway,
        site: ResultsSiteSettings,
        unsubscribe_address: str,
    ) -> None:
        self._gateway = gateway
        self._site = site
        self._unsubscribe_address = unsubscribe_address

    def notify(self, result: FinisherResult, subscribers: Sequence[str]) -> DispatchStatus:
        recipients = tuple(dict.fromkeys(subscribers))
        if not recipients:
            return DispatchStatus.SUCCESS

        message = EmailMessage(
            recipients=recipients,
            subject=result_subject(result),
            html_body=render_result(
                result,
                site=self._site,
                unsubscribe_address=self._unsubscribe_address,
            ),
        )
        try:
            receipt = self._gateway.send(message)
        except DispatchError as exc:
            log_event(
                logger,
                logging.ERROR,
                "finisher_notify_failed",
                event_id=result.event.event_id,
                run_number=result.event.run_number,
                finisher_id=result.finisher_id,
                recipients=len(recipients),
                error=str(exc),
            )
            return DispatchStatus.FAILURE

        accepted = set(receipt.accepted)
        status = DispatchStatus.SUCCESS
        if accepted and not accepted.issuperset(recipients):
            status = DispatchStatus.PARTIAL
        log_event(
            logger,
            logging.INFO if status is DispatchStatus.SUCCESS else logging.WARNING,
            "finisher_notified",
            event_id=result.event.event_id,
            run_number=result.event.run_number,
            finisher_id=result.finisher_id,
            position=result.position,
            time=result.time,
            recipients=len(recipients),
            accepted=len(accepted),
            status=status.value,
        )
        return status
