"""
parkrun_notifier/api/routers/inbound_email.py

Inbound email webhook for subscribe/unsubscribe commands.
"""

from __future__ import annotations

from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException, status

from db.session import get_session_factory
from parkrun_notifier.config import get_settings
from parkrun_notifier.errors import StoreUnavailableError
from parkrun_notifier.notifications import MailjetGateway
from parkrun_notifier.schemas.inbound_email import InboundEmailPayload, InboundEmailResponse
from parkrun_notifier.services import InboundEmail, SubscriptionService
from parkrun_notifier.stores import SQLAlchemySubscriptionStore

router = APIRouter(tags=["subscriptions"])


@lru_cache(maxsize=1)
def get_subscription_service() -> SubscriptionService:
    """
    Build and cache the subscription service.
    """

    settings = get_settings()
    return SubscriptionService(
        store=SQLAlchemySubscriptionStore(session_factory=get_session_factory()),
        gateway=MailjetGateway(settings=settings.mailjet),
        site=settings.results_site,
        unsubscribe_address=settings.mailjet.unsubscribe_address,
    )


@router.post("/inbound-email", response_model=InboundEmailResponse)
def inbound_email(
    payload: InboundEmailPayload,
    service: SubscriptionService = Depends(get_subscription_service),
) -> InboundEmailResponse:
    """
    Apply a subscribe/unsubscribe command sent by email.
    """

    try:
        result = service.handle(
            InboundEmail(
                sender=payload.sender,
                recipient=payload.recipient,
                subject=payload.subject,
            )
        )
    except StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Subscription store unavailable.",
        ) from exc

    return InboundEmailResponse(
        command=result.command,
        status=result.status,
        finisher_ids=result.finisher_ids,
    )
