"""FastAPI dependencies shared by the route modules."""

from typing import Annotated

from fastapi import Depends, Header, Path

from waitline.core.clock import Clock, SystemClock
from waitline.core.config import Settings, get_settings
from waitline.db.session import DbSession
from waitline.services.history_recorder import HistoryRecorder
from waitline.services.notification_dispatcher import NotificationDispatcher
from waitline.services.queue_ledger import QueueLedger
from waitline.services.table_allocator import TableAllocator
from waitline.services.wait_time import WaitTimePredictor

# Positive integer ID validator for path parameters
PositiveIntId = Annotated[int, Path(gt=0, description="Resource ID (must be positive)")]

_system_clock = SystemClock()


def get_clock() -> Clock:
    """Time source for request handlers; overridden in tests."""
    return _system_clock


def get_actor(
    x_actor_id: Annotated[str, Header(min_length=1, max_length=64, description="Acting staff or customer id")],
) -> str:
    """Identity of the caller, as asserted by the upstream identity provider."""
    return x_actor_id.strip()


ClockDep = Annotated[Clock, Depends(get_clock)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
Actor = Annotated[str, Depends(get_actor)]


def get_table_allocator(db: DbSession) -> TableAllocator:
    return TableAllocator(db)


def get_history_recorder(db: DbSession, clock: ClockDep) -> HistoryRecorder:
    return HistoryRecorder(db, clock)


def get_notification_dispatcher(db: DbSession, clock: ClockDep) -> NotificationDispatcher:
    return NotificationDispatcher(db, clock)


def get_queue_ledger(db: DbSession, clock: ClockDep, settings: SettingsDep) -> QueueLedger:
    return QueueLedger(
        db,
        clock=clock,
        settings=settings,
        predictor=WaitTimePredictor(settings.venue_tz),
    )


Ledger = Annotated[QueueLedger, Depends(get_queue_ledger)]
Allocator = Annotated[TableAllocator, Depends(get_table_allocator)]
Recorder = Annotated[HistoryRecorder, Depends(get_history_recorder)]
Dispatcher = Annotated[NotificationDispatcher, Depends(get_notification_dispatcher)]
