"""SQLAlchemy models."""

from waitline.models.queue import (
    ACTIVE_STATUSES,
    CAPACITY_TIERS,
    ActivityRecord,
    DiningTable,
    Notification,
    NotificationKind,
    QueueEntry,
    QueueLock,
    QueueStatus,
    Reservation,
    TableStatus,
    WaitTimeSample,
)

__all__ = [
    "ACTIVE_STATUSES",
    "CAPACITY_TIERS",
    "ActivityRecord",
    "DiningTable",
    "Notification",
    "NotificationKind",
    "QueueEntry",
    "QueueLock",
    "QueueStatus",
    "Reservation",
    "TableStatus",
    "WaitTimeSample",
]
