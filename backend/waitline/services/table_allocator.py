"""Table allocation: capacity-tier matching and occupancy transitions.

The allocator is the only writer of ``DiningTable.status``. Seating and
releasing run inside the caller's transaction (the queue ledger commits);
table administration (create/update/delete) commits on its own.

Party sizes map to tables by fixed bands - up to 2 guests get a 2-top, up to
4 a 4-top, anything larger a 6-top. This is a policy, not a packing solver.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from waitline.core.clock import whole_minutes_between
from waitline.core.errors import (
    DuplicateTable,
    InvalidRequest,
    InvalidTransition,
    NotFound,
    TableUnavailable,
)
from waitline.db.transaction import unit_of_work
from waitline.models.queue import (
    CAPACITY_TIERS,
    DiningTable,
    QueueEntry,
    Reservation,
    TableStatus,
)

logger = logging.getLogger(__name__)


def capacity_tier(party_size: int) -> int:
    """Table size a party of *party_size* should be offered."""
    if party_size <= 2:
        return 2
    if party_size <= 4:
        return 4
    return 6


class TableAllocator:
    """Tracks table capacity and occupancy."""

    def __init__(self, db: Session):
        self.db = db

    # ===== LOOKUPS =====

    def get(self, table_id: int, lock: bool = False) -> DiningTable:
        """Load a table, optionally holding a row lock until commit."""
        query = select(DiningTable).where(DiningTable.id == table_id)
        if lock:
            query = query.with_for_update()
        table = self.db.execute(query).scalar_one_or_none()
        if table is None:
            raise NotFound("Table", table_id)
        return table

    def open_reservation(self, table_id: int) -> Optional[Reservation]:
        return self.db.execute(
            select(Reservation).where(
                Reservation.table_id == table_id,
                Reservation.completed_at.is_(None),
            )
        ).scalar_one_or_none()

    def list_tables(self, status: Optional[TableStatus] = None) -> List[DiningTable]:
        query = select(DiningTable)
        if status is not None:
            query = query.where(DiningTable.status == TableStatus(status).value)
        return list(self.db.execute(query.order_by(DiningTable.label)).scalars())

    def count_available(self) -> int:
        return self.db.execute(
            select(func.count())
            .select_from(DiningTable)
            .where(DiningTable.status == TableStatus.AVAILABLE.value)
        ).scalar_one()

    def utilization(self) -> Dict[str, int]:
        rows = self.db.execute(
            select(DiningTable.status, func.count()).group_by(DiningTable.status)
        ).all()
        stats = {"total": 0, "available": 0, "occupied": 0, "reserved": 0}
        for status, count in rows:
            stats["total"] += count
            if status in stats:
                stats[status] += count
        return stats

    def find_candidate(self, party_size: int) -> Optional[DiningTable]:
        """An available table of the party's capacity tier, or None."""
        if party_size < 1:
            raise InvalidRequest(f"party_size must be positive, got {party_size}")
        has_open_reservation = (
            select(Reservation.id)
            .where(
                Reservation.table_id == DiningTable.id,
                Reservation.completed_at.is_(None),
            )
            .exists()
        )
        return self.db.execute(
            select(DiningTable)
            .where(
                DiningTable.status == TableStatus.AVAILABLE.value,
                DiningTable.capacity == capacity_tier(party_size),
                ~has_open_reservation,
            )
            .order_by(DiningTable.label, DiningTable.id)
            .limit(1)
        ).scalar_one_or_none()

    # ===== TRANSITIONS (caller commits) =====

    def seat(
        self,
        table: DiningTable,
        entry: QueueEntry,
        staff_id: Optional[str],
        now: datetime,
    ) -> Reservation:
        """Occupy *table* with *entry*'s party and open a reservation.

        The caller must hold the table row lock.
        """
        if table.status != TableStatus.AVAILABLE.value:
            raise TableUnavailable(table.id, f"status is '{table.status}'")
        if self.open_reservation(table.id) is not None:
            raise TableUnavailable(table.id, "an open reservation already holds it")

        reservation = Reservation(
            queue_entry_id=entry.id,
            table_id=table.id,
            customer_id=entry.customer_id,
            staff_id=staff_id,
            party_size=entry.party_size,
            seated_at=now,
        )
        self.db.add(reservation)
        table.status = TableStatus.OCCUPIED.value
        self.db.flush()
        logger.info("Seated entry %s at table %s (reservation %s)", entry.id, table.label, reservation.id)
        return reservation

    def complete(self, reservation: Reservation, now: datetime) -> int:
        """Close *reservation* and return its duration in minutes."""
        if not reservation.is_open:
            raise InvalidTransition("Reservation", reservation.id, "completed", "complete")
        reservation.completed_at = now
        reservation.duration_minutes = whole_minutes_between(reservation.seated_at, now)
        self.db.flush()
        return reservation.duration_minutes

    def release(self, table: DiningTable) -> None:
        """Free a table whose reservation has been completed."""
        if self.open_reservation(table.id) is not None:
            raise InvalidTransition("Table", table.id, table.status, "release")
        table.status = TableStatus.AVAILABLE.value
        self.db.flush()

    def change_status(self, table: DiningTable, status: TableStatus, now: datetime) -> Optional[Reservation]:
        """Administrative override of a table's status.

        Moving a table off ``occupied`` while a reservation is open closes
        that reservation first; it is returned so the caller can deal with
        the queue entry and the audit trail. Returns None otherwise.
        """
        status = TableStatus(status)
        forced = None
        if status != TableStatus.OCCUPIED:
            reservation = self.open_reservation(table.id)
            if reservation is not None:
                self.complete(reservation, now)
                forced = reservation
        table.status = status.value
        self.db.flush()
        return forced

    # ===== ADMINISTRATION (commits) =====

    def create_table(self, label: str, capacity: int) -> DiningTable:
        label = label.strip()
        self._check_capacity(capacity)
        if not label:
            raise InvalidRequest("label must not be empty")
        with unit_of_work(self.db):
            self._check_label_free(label)
            table = DiningTable(label=label, capacity=capacity, status=TableStatus.AVAILABLE.value)
            self.db.add(table)
        self.db.refresh(table)
        logger.info("Created table %s (capacity %s)", table.label, table.capacity)
        return table

    def update_table(
        self,
        table_id: int,
        label: Optional[str] = None,
        capacity: Optional[int] = None,
        expected_version: Optional[int] = None,
    ) -> DiningTable:
        if capacity is not None:
            self._check_capacity(capacity)
        with unit_of_work(self.db):
            table = self.get(table_id, lock=True)
            table.check_version(expected_version)
            if label is not None and label.strip() != table.label:
                if not label.strip():
                    raise InvalidRequest("label must not be empty")
                self._check_label_free(label.strip())
                table.label = label.strip()
            if capacity is not None:
                table.capacity = capacity
        self.db.refresh(table)
        return table

    def delete_table(self, table_id: int) -> str:
        """Delete a table that no open reservation references. Returns its label."""
        with unit_of_work(self.db):
            table = self.get(table_id, lock=True)
            if self.open_reservation(table.id) is not None:
                raise TableUnavailable(table.id, "an open reservation references it")
            label = table.label
            # Past seatings stay on record; SQLAlchemy nulls their table_id
            self.db.delete(table)
        logger.info("Deleted table %s", label)
        return label

    def _check_capacity(self, capacity: int) -> None:
        if capacity not in CAPACITY_TIERS:
            raise InvalidRequest(f"capacity must be one of {CAPACITY_TIERS}, got {capacity}")

    def _check_label_free(self, label: str) -> None:
        exists = self.db.execute(
            select(DiningTable.id).where(DiningTable.label == label)
        ).scalar_one_or_none()
        if exists is not None:
            raise DuplicateTable(label)
