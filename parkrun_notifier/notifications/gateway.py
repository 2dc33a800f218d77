"""
parkrun_notifier/notifications/gateway.py

Email gateway abstraction and the Mailjet Send API v3.1 implementation.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import requests

from parkrun_notifier.config import MailjetSettings
from parkrun_notifier.errors import DispatchError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailMessage:
    """
    One HTML message addressed to one or more recipients.
    """

    recipients: tuple[str, ...]
    subject: str
    html_body: str


@dataclass(frozen=True)
class SendReceipt:
    """
    Recipients the gateway accepted for delivery.
    """

    accepted: tuple[str, ...]


class EmailGateway(ABC):
    """
    Batch email delivery interface.
    """

    @abstractmethod
    def send(self, message: EmailMessage) -> SendReceipt:
        """
        Deliver the message to each recipient individually and return the
        recipients that were accepted. Raises DispatchError when none were.
        """


class MailjetGateway(EmailGateway):
    """
    Sends through Mailjet's Send API v3.1 with HTTP basic auth.
    """

    def __init__(
        self,
        *,
        settings: MailjetSettings,
        session: requests.Session | None = None,
    ) -> None:
        if not settings.api_key_public or not settings.api_key_private:
            raise ValueError("Mailjet API keys are not configured.")
        self._settings = settings
        self._session = session or requests.Session()
        self._auth = (settings.api_key_public, settings.api_key_private)

    def send(self, message: EmailMessage) -> SendReceipt:
        """
        One API call with one ``Messages`` entry per recipient, so no
        recipient sees another's address. Returns the recipients whose entry
        Mailjet accepted; raises DispatchError when none were accepted.
        """

        if not message.recipients:
            return SendReceipt(accepted=())

        payload = {
            "Messages": [self._message_payload(message, recipient) for recipient in message.recipients]
        }
        try:
            response = self._session.post(
                self._settings.api_url,
                json=payload,
                auth=self._auth,
                timeout=self._settings.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise DispatchError(f"Mailjet request failed: {exc}") from exc

        body = self._json_body(response)
        statuses = body.get("Messages") or []
        if not statuses:
            if response.status_code >= 400:
                raise DispatchError(
                    f"Mailjet rejected send status={response.status_code} "
                    f"errors={self._errors(body)}"
                )
            raise DispatchError("Mailjet response did not include message statuses.")

        # Response entries are in request order.
        accepted = tuple(
            recipient
            for recipient, status in zip(message.recipients, statuses)
            if str((status or {}).get("Status", "")).lower() == "success"
        )
        if not accepted:
            raise DispatchError(
                f"Mailjet accepted no messages status={response.status_code} "
                f"errors={self._errors(body)}"
            )
        if len(accepted) < len(message.recipients):
            logger.warning(
                "Mailjet accepted %d of %d messages errors=%s",
                len(accepted),
                len(message.recipients),
                self._errors(body),
            )
        return SendReceipt(accepted=accepted)

    def _message_payload(self, message: EmailMessage, recipient: str) -> dict[str, Any]:
        return {
            "From": {
                "Email": self._settings.sender_email,
                "Name": self._settings.sender_name,
            },
            "To": [{"Email": recipient}],
            "Subject": message.subject,
            "HTMLPart": message.html_body,
        }

    @staticmethod
    def _json_body(response: requests.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise DispatchError(
                f"Mailjet response was not valid JSON status={response.status_code}"
            ) from exc
        return body if isinstance(body, dict) else {}

    @staticmethod
    def _errors(body: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        for item in body.get("Messages") or []:
            for error in item.get("Errors") or []:
                errors.append(str(error.get("ErrorMessage") or error))
        if not errors and body.get("ErrorMessage"):
            errors.append(str(body["ErrorMessage"]))
        return errors
