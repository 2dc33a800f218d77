"""
parkrun_notifier/schemas/inbound_email.py

Schemas for the inbound email (subscription) webhook.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class InboundEmailPayload(BaseModel):
    """
    Subset of Mailjet's parse API payload used for subscription commands.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    sender: str = Field(..., alias="Sender", min_length=1)
    recipient: str = Field(..., alias="Recipient", min_length=1)
    subject: str = Field(default="", alias="Subject")


class InboundEmailResponse(BaseModel):
    """
    Outcome of one subscription command.
    """

    command: str
    status: Literal["subscribed", "unsubscribed", "ignored"]
    finisher_ids: list[str] = Field(default_factory=list)
