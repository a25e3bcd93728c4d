"""Append-only history: wait time samples and the activity audit trail.

History writes are best-effort. They run after the state transition they
describe has committed, in their own short transaction; a failure is rolled
back on its own, logged, and never undoes the transition.

Details passed to ``record_activity`` are validated against the per-action
schema *before* anything is written - a malformed payload is a bug in the
caller, not a storage failure, so it raises.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from waitline.core.clock import Clock, SystemClock
from waitline.models.queue import ActivityRecord, WaitTimeSample
from waitline.schemas.activity import ActivityAction, validate_details

logger = logging.getLogger("waitline.history")


class HistoryRecorder:
    """Writes and reads prediction samples and activity records."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or SystemClock()

    # ===== WRITES =====

    def record_prediction(self, sample: WaitTimeSample) -> bool:
        """Append a prediction sample. Returns False if the write failed."""
        if sample.created_at is None:
            sample.created_at = self.clock.now()
        return self._append(
            f"wait time sample for entry {sample.queue_entry_id}",
            lambda: self.db.add(sample),
        )

    def fill_actual(self, queue_entry_id: int, minutes: int) -> bool:
        """Set the observed wait on the entry's sample, once.

        A sample that already has an actual wait is left untouched.
        """

        def _fill():
            sample = self.db.execute(
                select(WaitTimeSample)
                .where(
                    WaitTimeSample.queue_entry_id == queue_entry_id,
                    WaitTimeSample.actual_wait_minutes.is_(None),
                )
                .order_by(WaitTimeSample.created_at.desc(), WaitTimeSample.id.desc())
                .limit(1)
            ).scalar_one_or_none()
            if sample is None:
                logger.warning(
                    "No open wait time sample for entry %s; actual wait %s not recorded",
                    queue_entry_id, minutes,
                )
                return
            sample.actual_wait_minutes = minutes

        return self._append(f"actual wait for entry {queue_entry_id}", _fill)

    def record_activity(
        self,
        actor_id: str,
        action: Union[ActivityAction, str],
        entity_type: str,
        entity_id: Any,
        details: Union[BaseModel, Dict[str, Any], None] = None,
    ) -> bool:
        """Append an audit record. Raises ValueError on a malformed payload."""
        payload = validate_details(action, details)
        record = ActivityRecord(
            actor_id=actor_id,
            action=ActivityAction(action).value,
            entity_type=entity_type,
            entity_id=str(entity_id),
            details=payload,
            created_at=self.clock.now(),
        )
        return self._append(
            f"activity {record.action} on {entity_type} {entity_id}",
            lambda: self.db.add(record),
        )

    # ===== READS =====

    def recent_samples_with_actual(self, limit: int = 100) -> List[WaitTimeSample]:
        """Newest samples that have an observed wait."""
        return list(
            self.db.execute(
                select(WaitTimeSample)
                .where(WaitTimeSample.actual_wait_minutes.is_not(None))
                .order_by(WaitTimeSample.created_at.desc(), WaitTimeSample.id.desc())
                .limit(limit)
            ).scalars()
        )

    def recent_activity(
        self,
        limit: int = 50,
        entity_type: Optional[str] = None,
        entity_id: Optional[Any] = None,
    ) -> List[ActivityRecord]:
        query = select(ActivityRecord)
        if entity_type:
            query = query.where(ActivityRecord.entity_type == entity_type)
        if entity_id is not None:
            query = query.where(ActivityRecord.entity_id == str(entity_id))
        query = query.order_by(ActivityRecord.created_at.desc(), ActivityRecord.id.desc()).limit(limit)
        return list(self.db.execute(query).scalars())

    def _append(self, what: str, write: Callable[[], None]) -> bool:
        try:
            write()
            self.db.commit()
            return True
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to record %s", what)
            return False
