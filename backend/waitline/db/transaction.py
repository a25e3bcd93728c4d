"""Transaction and serialisation helpers for multi-step queue operations.

``unit_of_work`` commits a block atomically and turns lost races into
``ConcurrencyConflict``. ``active_set_guard`` serialises everything that can
change positions in the active set: an in-process lock for the common
single-worker deployment, plus a ``SELECT ... FOR UPDATE`` on the
``queue_locks`` row for databases that honour it (SQLite already serialises
writers and ignores the clause).
"""

import functools
import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from waitline.core.errors import ConcurrencyConflict
from waitline.models.queue import QueueLock

logger = logging.getLogger(__name__)

ACTIVE_SET_LOCK = "active_set"

_active_set_lock = threading.RLock()


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """Commit everything done inside the block, or nothing."""
    try:
        yield db
        db.commit()
    except StaleDataError as e:
        db.rollback()
        raise ConcurrencyConflict(f"Row changed by another writer: {e}") from e
    except IntegrityError as e:
        db.rollback()
        raise ConcurrencyConflict(f"Conflicting write rejected by the database: {e.orig}") from e
    except Exception:
        db.rollback()
        raise


@contextmanager
def active_set_guard(db: Session) -> Iterator[None]:
    """Hold the active-set lock for the duration of the block.

    Must be entered inside ``unit_of_work`` so the row lock lives until commit.
    """
    with _active_set_lock:
        lock = db.execute(
            select(QueueLock).where(QueueLock.name == ACTIVE_SET_LOCK).with_for_update()
        ).scalar_one_or_none()
        if lock is None:
            db.add(QueueLock(name=ACTIVE_SET_LOCK))
            db.flush()
        yield


def retry_once_on_conflict(method):
    """Re-run a service method once if it raised ConcurrencyConflict.

    Only for operations that re-validate state from scratch on every call.
    """

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except ConcurrencyConflict as e:
            logger.warning("%s lost a race (%s); retrying once", method.__name__, e)
            return method(self, *args, **kwargs)

    return wrapper
