"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.event import EventRecord
from db.models.subscription import SubscriptionRecord

__all__ = [
    "EventRecord",
    "SubscriptionRecord",
]
