"""
db/base.py

Declarative base for the notifier's SQLAlchemy models.
"""

from typing import Any

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Project-wide declarative base. Alembic reads ``Base.metadata``.
    """

    type_annotation_map: dict[type, Any] = {}
