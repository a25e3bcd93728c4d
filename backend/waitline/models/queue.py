"""Queue, table and history models for the walk-in queue."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from waitline.db.base import Base, TimestampMixin, VersionMixin


class QueueStatus(str, Enum):
    WAITING = "waiting"
    NOTIFIED = "notified"
    SEATED = "seated"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


ACTIVE_STATUSES = (QueueStatus.WAITING.value, QueueStatus.NOTIFIED.value)
_ACTIVE_PREDICATE = text("status IN ('waiting', 'notified')")


class TableStatus(str, Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"


# Table sizes the venue stocks
CAPACITY_TIERS = (2, 4, 6)


class NotificationKind(str, Enum):
    TABLE_READY = "table_ready"
    SEATED = "seated"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class QueueEntry(Base, TimestampMixin, VersionMixin):
    """A party's place in the walk-in line."""

    __tablename__ = "queue_entries"

    id: Mapped[int] = mapped_column(primary_key=True)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    party_size: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=QueueStatus.WAITING.value)
    admission_token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # NULL once terminal
    estimated_wait_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    confirm_by: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    seated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    no_show_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    reservations: Mapped[list["Reservation"]] = relationship("Reservation", back_populates="queue_entry")

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        # Two active parties can never share a position
        Index(
            "uq_queue_entries_active_position",
            "position",
            unique=True,
            sqlite_where=_ACTIVE_PREDICATE,
            postgresql_where=_ACTIVE_PREDICATE,
        ),
        Index("ix_queue_entries_status_joined", "status", "joined_at"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class DiningTable(Base, TimestampMixin, VersionMixin):
    """Physical table on the floor."""

    __tablename__ = "dining_tables"

    id: Mapped[int] = mapped_column(primary_key=True)
    label: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TableStatus.AVAILABLE.value, index=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    reservations: Mapped[list["Reservation"]] = relationship("Reservation", back_populates="table")

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint("capacity IN (2, 4, 6)", name="ck_dining_tables_capacity"),
    )


class Reservation(Base):
    """Historical record of one seating, open until the party leaves."""

    __tablename__ = "reservations"

    id: Mapped[int] = mapped_column(primary_key=True)
    queue_entry_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("queue_entries.id"), nullable=False, index=True
    )
    table_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("dining_tables.id", ondelete="SET NULL"), nullable=True
    )
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    staff_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    party_size: Mapped[int] = mapped_column(Integer, nullable=False)
    seated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    queue_entry: Mapped["QueueEntry"] = relationship("QueueEntry", back_populates="reservations")
    table: Mapped[Optional["DiningTable"]] = relationship("DiningTable", back_populates="reservations")

    __table_args__ = (
        # At most one open reservation per table
        Index(
            "uq_reservations_open_table",
            "table_id",
            unique=True,
            sqlite_where=text("completed_at IS NULL"),
            postgresql_where=text("completed_at IS NULL"),
        ),
    )

    @property
    def is_open(self) -> bool:
        return self.completed_at is None


class WaitTimeSample(Base):
    """Prediction made at join time, later paired with the observed wait."""

    __tablename__ = "wait_time_samples"

    id: Mapped[int] = mapped_column(primary_key=True)
    queue_entry_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("queue_entries.id"), nullable=False, index=True
    )
    predicted_wait_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    queue_length: Mapped[int] = mapped_column(Integer, nullable=False)
    available_tables: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    hour_of_day: Mapped[int] = mapped_column(Integer, nullable=False)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)  # 0 = Sunday
    actual_wait_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class ActivityRecord(Base):
    """Audit trail entry. Never updated or deleted."""

    __tablename__ = "activity_records"

    id: Mapped[int] = mapped_column(primary_key=True)
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class Notification(Base):
    """Outbox row for the notification delivery collaborator."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True)
    recipient: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    subject: Mapped[str] = mapped_column(String(200), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    queue_entry_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("queue_entries.id"), nullable=True, index=True
    )
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class QueueLock(Base):
    """Row locked with SELECT ... FOR UPDATE to serialise active-set writers."""

    __tablename__ = "queue_locks"

    name: Mapped[str] = mapped_column(String(50), primary_key=True)
    touched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
