"""No-show sweep: release notified parties that missed their confirmation window.

Opt-in. Nothing expires a notified entry unless this runs, either from the
periodic task in the application lifespan (``NO_SHOW_SWEEP_ENABLED``) or on
demand through the API.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select

from waitline.core.errors import ConcurrencyConflict, InvalidTransition
from waitline.models.queue import QueueEntry, QueueStatus
from waitline.services.queue_ledger import QueueLedger

logger = logging.getLogger(__name__)

SWEEP_ACTOR = "system:no-show-sweep"


class NoShowSweeper:
    """Marks overdue notified entries as no-shows through the ledger."""

    def __init__(self, ledger: QueueLedger):
        self.ledger = ledger

    def overdue(self, now: datetime) -> List[int]:
        return list(
            self.ledger.db.execute(
                select(QueueEntry.id)
                .where(
                    QueueEntry.status == QueueStatus.NOTIFIED.value,
                    QueueEntry.confirm_by.is_not(None),
                    QueueEntry.confirm_by < now,
                )
                .order_by(QueueEntry.confirm_by, QueueEntry.id)
            ).scalars()
        )

    def sweep(self, now: Optional[datetime] = None) -> List[int]:
        """Mark every overdue entry as a no-show. Returns the ids released."""
        now = now or self.ledger.clock.now()
        released = []
        for entry_id in self.overdue(now):
            try:
                self.ledger.mark_no_show(entry_id, SWEEP_ACTOR)
            except (InvalidTransition, ConcurrencyConflict) as e:
                # Seated, cancelled or already swept by someone else
                logger.info("Skipped no-show sweep of entry %s: %s", entry_id, e)
                continue
            released.append(entry_id)

        if released:
            logger.info("No-show sweep released %s entries: %s", len(released), released)
        return released


def run_no_show_sweep() -> List[int]:
    """Standalone sweep with its own session (called from the background task)."""
    from waitline.db.session import SessionLocal

    db = SessionLocal()
    try:
        return NoShowSweeper(QueueLedger(db)).sweep()
    finally:
        db.close()
