"""Notification intents for the delivery collaborator.

The engine does not deliver anything. It writes intents to the
``notifications`` outbox inside the same transaction as the state change
that caused them; whatever delivers SMS/push/in-app messages polls the
outbox.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from waitline.core.clock import Clock, SystemClock
from waitline.core.errors import NotFound
from waitline.models.queue import Notification, NotificationKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationIntent:
    """What to tell whom; the channel is the delivery collaborator's choice."""
    recipient: str
    subject: str
    body: str
    queue_entry_id: Optional[int]
    kind: NotificationKind


def table_ready_intent(recipient: str, queue_entry_id: int, confirm_minutes: int) -> NotificationIntent:
    return NotificationIntent(
        recipient=recipient,
        subject="Your Table is Ready!",
        body=(
            "Please proceed to the entrance to be seated. "
            f"Confirm within {confirm_minutes} minutes to avoid auto cancellation."
        ),
        queue_entry_id=queue_entry_id,
        kind=NotificationKind.TABLE_READY,
    )


def seated_intent(recipient: str, queue_entry_id: int, table_label: str) -> NotificationIntent:
    return NotificationIntent(
        recipient=recipient,
        subject="Seat Secured!",
        body=(
            "Your seat has been secured. Thank you for waiting! "
            f"Please proceed to Table {table_label}."
        ),
        queue_entry_id=queue_entry_id,
        kind=NotificationKind.SEATED,
    )


def no_show_intent(recipient: str, queue_entry_id: int) -> NotificationIntent:
    return NotificationIntent(
        recipient=recipient,
        subject="We Missed You",
        body="We could not find you at the entrance, so your place in the queue has been released.",
        queue_entry_id=queue_entry_id,
        kind=NotificationKind.NO_SHOW,
    )


def cancelled_intent(recipient: str, queue_entry_id: int) -> NotificationIntent:
    return NotificationIntent(
        recipient=recipient,
        subject="Queue Entry Cancelled",
        body="Your place in the queue has been cancelled.",
        queue_entry_id=queue_entry_id,
        kind=NotificationKind.CANCELLED,
    )


class NotificationDispatcher:
    """Writes intents to the outbox and serves polling readers."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or SystemClock()

    def emit(self, intent: NotificationIntent) -> Notification:
        """Stage an intent in the caller's transaction. Does not commit."""
        notification = Notification(
            recipient=intent.recipient,
            kind=intent.kind.value,
            subject=intent.subject,
            body=intent.body,
            queue_entry_id=intent.queue_entry_id,
            is_read=False,
            created_at=self.clock.now(),
        )
        self.db.add(notification)
        logger.info(
            "Queued %s notification for %s (entry %s)",
            intent.kind.value, intent.recipient, intent.queue_entry_id,
        )
        return notification

    def for_recipient(self, recipient: str, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        query = select(Notification).where(Notification.recipient == recipient)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        query = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
        return list(self.db.execute(query).scalars())

    def mark_read(self, notification_id: int) -> Notification:
        notification = self.db.get(Notification, notification_id)
        if notification is None:
            raise NotFound("Notification", notification_id)
        if not notification.is_read:
            notification.is_read = True
            try:
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(notification)
        return notification
