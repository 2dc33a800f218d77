"""create parkrun events and subscriptions tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

from db.config import get_store_settings

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    tables = get_store_settings()

    op.create_table(
        tables.events_table,
        sa.Column("event_id", sa.String(length=120), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("next_run_number", sa.Integer(), nullable=False, comment="Next run number to scan"),
        sa.Column(
            "last_modified",
            sa.BigInteger(),
            nullable=False,
            comment="Epoch millis of the last cursor advance",
        ),
        sa.Column(
            "is_deleted",
            sa.Boolean(),
            nullable=False,
            comment="Soft-delete flag; deleted events are never scanned",
        ),
        sa.PrimaryKeyConstraint("event_id"),
    )
    op.create_index(
        f"ix_{tables.events_table}_last_modified",
        tables.events_table,
        ["last_modified"],
        unique=False,
    )

    op.create_table(
        tables.subscriptions_table,
        sa.Column("finisher_id", sa.String(length=32), nullable=False),
        sa.Column("subscriber_address", sa.String(length=320), nullable=False),
        sa.PrimaryKeyConstraint("finisher_id", "subscriber_address"),
    )
    op.create_index(
        f"ix_{tables.subscriptions_table}_subscriber_address",
        tables.subscriptions_table,
        ["subscriber_address"],
        unique=False,
    )


def downgrade() -> None:
    tables = get_store_settings()

    op.drop_index(
        f"ix_{tables.subscriptions_table}_subscriber_address",
        table_name=tables.subscriptions_table,
    )
    op.drop_table(tables.subscriptions_table)
    op.drop_index(f"ix_{tables.events_table}_last_modified", table_name=tables.events_table)
    op.drop_table(tables.events_table)
