"""Queue, reservation and notification schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, Field

from waitline.core.clock import as_utc
from waitline.models.queue import NotificationKind, QueueStatus

# SQLite hands datetimes back naive; everything stored is UTC
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


# Queue entries

class JoinRequest(BaseModel):
    """Join queue request."""
    customer_id: str = Field(..., min_length=1, max_length=64)
    party_size: int = Field(..., ge=1, le=50)


class QueueEntryResponse(BaseModel):
    """Queue entry as staff and the customer see it (no admission token)."""
    id: int
    customer_id: str
    party_size: int
    status: QueueStatus
    position: Optional[int] = None
    estimated_wait_minutes: int
    joined_at: UtcDatetime
    notified_at: Optional[UtcDatetime] = None
    confirm_by: Optional[UtcDatetime] = None
    seated_at: Optional[UtcDatetime] = None
    cancelled_at: Optional[UtcDatetime] = None
    no_show_at: Optional[UtcDatetime] = None
    version: int

    model_config = {"from_attributes": True}


class JoinResponse(QueueEntryResponse):
    """Returned once, to the party that joined."""
    admission_token: str


class QueueSnapshot(BaseModel):
    """Active set in position order."""
    active_count: int
    admission_ceiling: int
    entries: List[QueueEntryResponse]


class SeatRequest(BaseModel):
    table_id: int = Field(..., gt=0)
    expected_table_version: Optional[int] = Field(
        None, ge=1, description="Table version the caller was shown; refused if it changed"
    )


class TokenRequest(BaseModel):
    admission_token: str = Field(..., min_length=1, max_length=64)


class ReorderResponse(BaseModel):
    moved: int


class SweepResponse(BaseModel):
    released: List[int]


# Reservations

class ReservationResponse(BaseModel):
    id: int
    queue_entry_id: int
    table_id: Optional[int] = None
    customer_id: str
    staff_id: Optional[str] = None
    party_size: int
    seated_at: UtcDatetime
    completed_at: Optional[UtcDatetime] = None
    duration_minutes: Optional[int] = None

    model_config = {"from_attributes": True}


class SeatResponse(BaseModel):
    entry: QueueEntryResponse
    reservation: ReservationResponse
    actual_wait_minutes: int


# Notifications

class NotificationResponse(BaseModel):
    id: int
    recipient: str
    kind: NotificationKind
    subject: str
    body: str
    queue_entry_id: Optional[int] = None
    is_read: bool
    created_at: UtcDatetime

    model_config = {"from_attributes": True}
