"""Notification outbox routes, polled by the delivery collaborator."""

from typing import List

from fastapi import APIRouter, Query

from waitline.core.deps import Dispatcher, PositiveIntId
from waitline.schemas.queue import NotificationResponse

router = APIRouter()


@router.get("/", response_model=List[NotificationResponse])
def list_notifications(
    dispatcher: Dispatcher,
    recipient: str = Query(..., min_length=1, max_length=64),
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
):
    return dispatcher.for_recipient(recipient, unread_only=unread_only, limit=limit)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
def mark_notification_read(notification_id: PositiveIntId, dispatcher: Dispatcher):
    return dispatcher.mark_read(notification_id)
