"""
db/models/subscription.py

Subscriber address watching one finisher.
"""

from __future__ import annotations

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base
from db.config import get_store_settings


class SubscriptionRecord(Base):
    """
    Composite primary key (finisher_id, subscriber_address) keeps each pair unique.
    """

    __tablename__ = get_store_settings().subscriptions_table

    finisher_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    subscriber_address: Mapped[str] = mapped_column(String(320), primary_key=True)

    __table_args__ = (
        Index(f"ix_{__tablename__}_subscriber_address", "subscriber_address"),
    )

    def __repr__(self) -> str:
        return (
            f"<SubscriptionRecord finisher_id={self.finisher_id!r} "
            f"subscriber_address={self.subscriber_address!r}>"
        )
