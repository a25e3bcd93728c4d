"""Initial schema

Revision ID: 001
Revises:
Create Date: 2024-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_PREDICATE = sa.text("status IN ('waiting', 'notified')")
OPEN_PREDICATE = sa.text("completed_at IS NULL")


def upgrade() -> None:
    # Queue entries
    op.create_table(
        "queue_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("customer_id", sa.String(64), nullable=False, index=True),
        sa.Column("party_size", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="waiting"),
        sa.Column("admission_token", sa.String(64), nullable=False, unique=True, index=True),
        sa.Column("position", sa.Integer(), nullable=True),
        sa.Column("estimated_wait_minutes", sa.Integer(), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirm_by", sa.DateTime(timezone=True), nullable=True),
        sa.Column("seated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("no_show_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        "uq_queue_entries_active_position",
        "queue_entries",
        ["position"],
        unique=True,
        sqlite_where=ACTIVE_PREDICATE,
        postgresql_where=ACTIVE_PREDICATE,
    )
    op.create_index("ix_queue_entries_status_joined", "queue_entries", ["status", "joined_at"])

    # Dining tables
    op.create_table(
        "dining_tables",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("label", sa.String(50), nullable=False, unique=True),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="available", index=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("capacity IN (2, 4, 6)", name="ck_dining_tables_capacity"),
    )

    # Reservations (one per seating)
    op.create_table(
        "reservations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("queue_entry_id", sa.Integer(), sa.ForeignKey("queue_entries.id"), nullable=False, index=True),
        sa.Column(
            "table_id",
            sa.Integer(),
            sa.ForeignKey("dining_tables.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("customer_id", sa.String(64), nullable=False),
        sa.Column("staff_id", sa.String(64), nullable=True),
        sa.Column("party_size", sa.Integer(), nullable=False),
        sa.Column("seated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
    )
    op.create_index(
        "uq_reservations_open_table",
        "reservations",
        ["table_id"],
        unique=True,
        sqlite_where=OPEN_PREDICATE,
        postgresql_where=OPEN_PREDICATE,
    )

    # Wait time samples
    op.create_table(
        "wait_time_samples",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("queue_entry_id", sa.Integer(), sa.ForeignKey("queue_entries.id"), nullable=False, index=True),
        sa.Column("predicted_wait_minutes", sa.Integer(), nullable=False),
        sa.Column("queue_length", sa.Integer(), nullable=False),
        sa.Column("available_tables", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("hour_of_day", sa.Integer(), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("actual_wait_minutes", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, index=True),
    )

    # Activity records (append-only audit trail)
    op.create_table(
        "activity_records",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("actor_id", sa.String(64), nullable=False, index=True),
        sa.Column("action", sa.String(50), nullable=False, index=True),
        sa.Column("entity_type", sa.String(50), nullable=False, index=True),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, index=True),
    )

    # Notification outbox
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("recipient", sa.String(64), nullable=False, index=True),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("subject", sa.String(200), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("queue_entry_id", sa.Integer(), sa.ForeignKey("queue_entries.id"), nullable=True, index=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    # Serialisation lock rows
    op.create_table(
        "queue_locks",
        sa.Column("name", sa.String(50), primary_key=True),
        sa.Column("touched_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.execute("INSERT INTO queue_locks (name) VALUES ('active_set')")


def downgrade() -> None:
    op.drop_table("queue_locks")
    op.drop_table("notifications")
    op.drop_table("activity_records")
    op.drop_table("wait_time_samples")
    op.drop_index("uq_reservations_open_table", table_name="reservations")
    op.drop_table("reservations")
    op.drop_table("dining_tables")
    op.drop_index("ix_queue_entries_status_joined", table_name="queue_entries")
    op.drop_index("uq_queue_entries_active_position", table_name="queue_entries")
    op.drop_table("queue_entries")
