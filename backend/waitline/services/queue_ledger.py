"""Queue ledger: admission, positions and the queue entry state machine.

    waiting --notify--> notified --seat--> seated
       |                   |  \\
       |                   |   --no-show--> no_show
       +------cancel-------+--cancel-----> cancelled
    waiting --seat--> seated  (walk straight to a table)

Every public mutation is one transaction (``unit_of_work``) taken under the
active-set guard, so admission counts, position assignment and compaction
never interleave. Entries and tables carry a version column; a write that
lost a race surfaces as ``ConcurrencyConflict``. ``notify``, ``seat`` and
``reorder`` retry once on conflict since they re-validate state each time.

History (samples, activity) is written after the transition commits and is
best-effort; notification intents go to the outbox inside the transaction.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from waitline.core.clock import Clock, SystemClock, as_utc, whole_minutes_between
from waitline.core.config import Settings, get_settings
from waitline.core.errors import CapacityExceeded, InvalidRequest, InvalidTransition, NotFound
from waitline.db.transaction import active_set_guard, retry_once_on_conflict, unit_of_work
from waitline.models.queue import (
    ACTIVE_STATUSES,
    DiningTable,
    QueueEntry,
    QueueStatus,
    Reservation,
    TableStatus,
    WaitTimeSample,
)
from waitline.schemas.activity import (
    ActivityAction,
    CancelQueueDetails,
    ChangeTableStatusDetails,
    CompleteReservationDetails,
    ForceCompleteReservationDetails,
    JoinQueueDetails,
    MarkNoShowDetails,
    NotifyCustomerDetails,
    SeatCustomerDetails,
)
from waitline.services.history_recorder import HistoryRecorder
from waitline.services.notification_dispatcher import (
    NotificationDispatcher,
    cancelled_intent,
    no_show_intent,
    seated_intent,
    table_ready_intent,
)
from waitline.services.table_allocator import TableAllocator
from waitline.services.wait_time import WaitTimePredictor

logger = logging.getLogger(__name__)


@dataclass
class SeatOutcome:
    entry: QueueEntry
    reservation: Reservation
    table: DiningTable
    actual_wait_minutes: int


@dataclass
class TableStatusChange:
    table: DiningTable
    old_status: str
    forced_reservation: Optional[Reservation] = None
    cancelled_entry: Optional[QueueEntry] = None


def new_admission_token() -> str:
    """Opaque, unguessable check-in token."""
    return secrets.token_urlsafe(24)


class QueueLedger:
    """Owns queue entries, their positions and their lifecycle."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        settings: Optional[Settings] = None,
        predictor: Optional[WaitTimePredictor] = None,
        allocator: Optional[TableAllocator] = None,
        recorder: Optional[HistoryRecorder] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()
        self.predictor = predictor or WaitTimePredictor(self.settings.venue_tz)
        self.allocator = allocator or TableAllocator(db)
        self.recorder = recorder or HistoryRecorder(db, self.clock)
        self.dispatcher = dispatcher or NotificationDispatcher(db, self.clock)

    # ===== READS =====

    def get_entry(self, entry_id: int) -> QueueEntry:
        entry = self.db.get(QueueEntry, entry_id)
        if entry is None:
            raise NotFound("Queue entry", entry_id)
        return entry

    def get_reservation(self, reservation_id: int) -> Reservation:
        reservation = self.db.get(Reservation, reservation_id)
        if reservation is None:
            raise NotFound("Reservation", reservation_id)
        return reservation

    def active_count(self) -> int:
        return self.db.execute(
            select(func.count())
            .select_from(QueueEntry)
            .where(QueueEntry.status.in_(ACTIVE_STATUSES))
        ).scalar_one()

    def active_queue(self) -> List[QueueEntry]:
        return list(
            self.db.execute(
                select(QueueEntry)
                .where(QueueEntry.status.in_(ACTIVE_STATUSES))
                .order_by(QueueEntry.position, QueueEntry.joined_at, QueueEntry.id)
            ).scalars()
        )

    def customer_entries(self, customer_id: str) -> List[QueueEntry]:
        return list(
            self.db.execute(
                select(QueueEntry)
                .where(QueueEntry.customer_id == customer_id)
                .order_by(QueueEntry.joined_at.desc(), QueueEntry.id.desc())
            ).scalars()
        )

    def open_reservations(self) -> List[Reservation]:
        return list(
            self.db.execute(
                select(Reservation)
                .where(Reservation.completed_at.is_(None))
                .order_by(Reservation.seated_at, Reservation.id)
            ).scalars()
        )

    def validate_token(self, token: str) -> Optional[QueueEntry]:
        """The entry behind *token*, only while it is ``notified``.

        Waiting, seated, cancelled and no-show entries are not honoured, so a
        ticket cannot be used twice.
        """
        return self.db.execute(
            select(QueueEntry).where(
                QueueEntry.admission_token == token,
                QueueEntry.status == QueueStatus.NOTIFIED.value,
            )
        ).scalar_one_or_none()

    # ===== ADMISSION =====

    def join(self, customer_id: str, party_size: int) -> QueueEntry:
        """Admit a party at the back of the queue.

        Raises CapacityExceeded (with the wait they would have been quoted)
        when the active set is already at the admission ceiling.
        """
        if party_size < 1:
            raise InvalidRequest(f"party_size must be positive, got {party_size}")

        now = self.clock.now()
        samples = self.recorder.recent_samples_with_actual(self.settings.history_sample_limit)

        with unit_of_work(self.db):
            with active_set_guard(self.db):
                count = self.active_count()
                position = count + 1
                estimate = self.predictor.estimate(party_size, position, samples, at=now)
                if count >= self.settings.admission_ceiling:
                    logger.info(
                        "Rejected join for %s: %s active parties, quoted %s min",
                        customer_id, count, estimate,
                    )
                    raise CapacityExceeded(estimate, count)

                entry = QueueEntry(
                    customer_id=customer_id,
                    party_size=party_size,
                    status=QueueStatus.WAITING.value,
                    admission_token=new_admission_token(),
                    position=position,
                    estimated_wait_minutes=estimate,
                    joined_at=now,
                )
                self.db.add(entry)
                self.db.flush()
                available_tables = self.allocator.count_available()
                entry_id = entry.id

        logger.info("Entry %s joined at position %s, quoted %s min", entry_id, position, estimate)

        local = now.astimezone(self.settings.venue_tz)
        self.recorder.record_prediction(
            WaitTimeSample(
                queue_entry_id=entry_id,
                predicted_wait_minutes=estimate,
                queue_length=position,
                available_tables=available_tables,
                hour_of_day=local.hour,
                day_of_week=local.isoweekday() % 7,
                created_at=now,
            )
        )
        self.recorder.record_activity(
            customer_id,
            ActivityAction.JOIN_QUEUE,
            "queue_entry",
            entry_id,
            JoinQueueDetails(party_size=party_size, position=position, estimated_wait_minutes=estimate),
        )
        return self.get_entry(entry_id)

    # ===== TRANSITIONS =====

    def cancel(self, entry_id: int, actor_id: str) -> QueueEntry:
        """Cancel a waiting or notified entry and close the gap it leaves."""
        now = self.clock.now()
        with unit_of_work(self.db):
            with active_set_guard(self.db):
                entry = self.get_entry(entry_id)
                if not entry.is_active:
                    raise InvalidTransition("Queue entry", entry_id, entry.status, "cancel")

                previous_status, previous_position = entry.status, entry.position
                entry.status = QueueStatus.CANCELLED.value
                entry.cancelled_at = now
                entry.position = None
                if actor_id != entry.customer_id:
                    self.dispatcher.emit(cancelled_intent(entry.customer_id, entry.id))
                self.db.flush()
                self._reorder()

        logger.info("Entry %s cancelled by %s", entry_id, actor_id)
        self.recorder.record_activity(
            actor_id,
            ActivityAction.CANCEL_QUEUE,
            "queue_entry",
            entry_id,
            CancelQueueDetails(previous_status=previous_status, previous_position=previous_position),
        )
        return self.get_entry(entry_id)

    @retry_once_on_conflict
    def notify(self, entry_id: int, actor_id: str) -> QueueEntry:
        """Tell a waiting party their table is ready."""
        now = self.clock.now()
        window = self.settings.confirmation_window_minutes
        with unit_of_work(self.db):
            with active_set_guard(self.db):
                entry = self.get_entry(entry_id)
                if entry.status != QueueStatus.WAITING.value:
                    raise InvalidTransition("Queue entry", entry_id, entry.status, "notify")

                entry.status = QueueStatus.NOTIFIED.value
                entry.notified_at = now
                # Recorded expectation only; expiry is the no-show sweep's job
                entry.confirm_by = now + timedelta(minutes=window)
                self.dispatcher.emit(table_ready_intent(entry.customer_id, entry.id, window))
                confirm_by = entry.confirm_by

        logger.info("Entry %s notified by %s, confirm by %s", entry_id, actor_id, confirm_by)
        self.recorder.record_activity(
            actor_id,
            ActivityAction.NOTIFY_CUSTOMER,
            "queue_entry",
            entry_id,
            NotifyCustomerDetails(confirm_by=confirm_by),
        )
        return self.get_entry(entry_id)

    @retry_once_on_conflict
    def seat(
        self,
        entry_id: int,
        table_id: int,
        actor_id: str,
        expected_table_version: Optional[int] = None,
    ) -> SeatOutcome:
        """Seat a notified (or still waiting) party at *table_id*.

        *expected_table_version* is the table version the caller was shown;
        if the table has changed since, the seat is refused.
        """
        now = self.clock.now()
        with unit_of_work(self.db):
            with active_set_guard(self.db):
                entry = self.get_entry(entry_id)
                if not entry.is_active:
                    raise InvalidTransition("Queue entry", entry_id, entry.status, "seat")

                table = self.allocator.get(table_id, lock=True)
                table.check_version(expected_table_version)
                reservation = self.allocator.seat(table, entry, actor_id, now)

                actual_wait = whole_minutes_between(entry.joined_at, now)
                entry.status = QueueStatus.SEATED.value
                entry.seated_at = now
                entry.position = None
                self.dispatcher.emit(seated_intent(entry.customer_id, entry.id, table.label))
                self.db.flush()
                self._reorder()
                reservation_id = reservation.id

        logger.info(
            "Entry %s seated at table %s by %s after %s min",
            entry_id, table_id, actor_id, actual_wait,
        )
        self.recorder.fill_actual(entry_id, actual_wait)
        self.recorder.record_activity(
            actor_id,
            ActivityAction.SEAT_CUSTOMER,
            "queue_entry",
            entry_id,
            SeatCustomerDetails(
                table_id=table_id,
                reservation_id=reservation_id,
                actual_wait_minutes=actual_wait,
            ),
        )
        return SeatOutcome(
            entry=self.get_entry(entry_id),
            reservation=self.get_reservation(reservation_id),
            table=self.allocator.get(table_id),
            actual_wait_minutes=actual_wait,
        )

    def mark_no_show(self, entry_id: int, actor_id: str) -> QueueEntry:
        """Release a notified party that never checked in."""
        now = self.clock.now()
        with unit_of_work(self.db):
            with active_set_guard(self.db):
                entry = self.get_entry(entry_id)
                if entry.status != QueueStatus.NOTIFIED.value:
                    raise InvalidTransition("Queue entry", entry_id, entry.status, "mark no-show")

                minutes_since_notified = whole_minutes_between(entry.notified_at, now)
                entry.status = QueueStatus.NO_SHOW.value
                entry.no_show_at = now
                entry.position = None
                self.dispatcher.emit(no_show_intent(entry.customer_id, entry.id))
                self.db.flush()
                self._reorder()

        logger.info("Entry %s marked no-show by %s", entry_id, actor_id)
        self.recorder.record_activity(
            actor_id,
            ActivityAction.MARK_NO_SHOW,
            "queue_entry",
            entry_id,
            MarkNoShowDetails(minutes_since_notified=minutes_since_notified),
        )
        return self.get_entry(entry_id)

    @retry_once_on_conflict
    def reorder(self) -> int:
        """Compact active positions to 1..N. Returns how many rows moved."""
        with unit_of_work(self.db):
            with active_set_guard(self.db):
                changed = self._reorder()
        if changed:
            logger.info("Reorder moved %s entries", changed)
        return changed

    def complete_reservation(self, reservation_id: int, actor_id: str) -> Reservation:
        """Close an open reservation and free its table."""
        now = self.clock.now()
        with unit_of_work(self.db):
            reservation = self.get_reservation(reservation_id)
            if not reservation.is_open:
                raise InvalidTransition("Reservation", reservation_id, "completed", "complete")
            table = None
            if reservation.table_id is not None:
                table = self.allocator.get(reservation.table_id, lock=True)
            duration = self.allocator.complete(reservation, now)
            if table is not None:
                self.allocator.release(table)
            table_id = reservation.table_id

        logger.info("Reservation %s completed after %s min", reservation_id, duration)
        self.recorder.record_activity(
            actor_id,
            ActivityAction.COMPLETE_RESERVATION,
            "reservation",
            reservation_id,
            CompleteReservationDetails(table_id=table_id, duration_minutes=duration),
        )
        return self.get_reservation(reservation_id)

    def change_table_status(self, table_id: int, status: TableStatus, actor_id: str) -> TableStatusChange:
        """Administrative table status override.

        Taking an occupied table out of service while a party is seated at it
        force-completes that reservation and cancels the party's queue entry.
        Both are written to the audit trail.
        """
        try:
            status = TableStatus(status)
        except ValueError:
            raise InvalidRequest(f"Unknown table status: {status!r}") from None

        now = self.clock.now()
        with unit_of_work(self.db):
            with active_set_guard(self.db):
                table = self.allocator.get(table_id, lock=True)
                old_status = table.status
                forced = self.allocator.change_status(table, status, now)
                cancelled = None
                if forced is not None:
                    cancelled = self._force_cancel(forced.queue_entry, now)
                change = TableStatusChange(
                    table=table,
                    old_status=old_status,
                    forced_reservation=forced,
                    cancelled_entry=cancelled,
                )
                forced_details = None
                if forced is not None:
                    forced_details = ForceCompleteReservationDetails(
                        reservation_id=forced.id,
                        duration_minutes=forced.duration_minutes,
                        cancelled_entry_id=cancelled.id if cancelled is not None else None,
                        new_table_status=status.value,
                    )

        logger.info("Table %s status %s -> %s by %s", table_id, old_status, status.value, actor_id)
        if forced_details is not None:
            logger.warning(
                "Status override on table %s force-completed reservation %s",
                table_id, forced_details.reservation_id,
            )
            self.recorder.record_activity(
                actor_id,
                ActivityAction.FORCE_COMPLETE_RESERVATION,
                "reservation",
                forced_details.reservation_id,
                forced_details,
            )
        self.recorder.record_activity(
            actor_id,
            ActivityAction.CHANGE_TABLE_STATUS,
            "table",
            table_id,
            ChangeTableStatusDetails(old_status=old_status, new_status=status.value),
        )
        return change

    # ===== INTERNALS =====

    def _force_cancel(self, entry: QueueEntry, now: datetime) -> Optional[QueueEntry]:
        if entry.status == QueueStatus.CANCELLED.value:
            return None
        was_active = entry.is_active
        entry.status = QueueStatus.CANCELLED.value
        if entry.cancelled_at is None:
            entry.cancelled_at = now
        entry.position = None
        self.dispatcher.emit(cancelled_intent(entry.customer_id, entry.id))
        self.db.flush()
        if was_active:
            self._reorder()
        return entry

    def _reorder(self) -> int:
        """Rewrite active positions to their FIFO rank. Caller holds the guard.

        Rows are flushed one at a time in rank order so the unique index on
        active positions never sees two rows on the same slot.
        """
        active = self.db.execute(
            select(QueueEntry)
            .where(QueueEntry.status.in_(ACTIVE_STATUSES))
            .order_by(QueueEntry.joined_at, QueueEntry.id)
        ).scalars().all()

        changed = 0
        for rank, entry in enumerate(active, start=1):
            if entry.position != rank:
                entry.position = rank
                self.db.flush()
                changed += 1
        return changed


def minutes_until(deadline: Optional[datetime], now: datetime) -> Optional[int]:
    """Whole minutes left before *deadline*; negative once it has passed."""
    if deadline is None:
        return None
    return int((as_utc(deadline) - as_utc(now)).total_seconds() // 60)
