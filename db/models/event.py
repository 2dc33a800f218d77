"""
db/models/event.py

One parkrun event and its scan cursor.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, Boolean, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base
from db.config import get_store_settings


class EventRecord(Base):
    """
    Cursor row for one event.

    ``next_run_number`` is only changed by the conditional advance in
    ``SQLAlchemyEventCursorStore``; ``last_modified`` is epoch milliseconds of
    the last successful advance (0 for never scanned).
    """

    __tablename__ = get_store_settings().events_table

    event_id: Mapped[str] = mapped_column(String(120), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    next_run_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        comment="Next run number to scan",
    )
    last_modified: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
        comment="Epoch millis of the last cursor advance",
    )
    is_deleted: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Soft-delete flag; deleted events are never scanned",
    )

    __table_args__ = (
        Index(f"ix_{__tablename__}_last_modified", "last_modified"),
    )

    def __repr__(self) -> str:
        return (
            f"<EventRecord event_id={self.event_id!r} "
            f"next_run_number={self.next_run_number} is_deleted={self.is_deleted}>"
        )
