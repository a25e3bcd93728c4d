"""Per-action schemas for activity record details.

Activity records are read by reporting tools long after the code that wrote
them has moved on, so each action has a fixed, documented payload. Writers
go through ``validate_details()``; anything not listed here is rejected.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field


class ActivityAction(str, Enum):
    JOIN_QUEUE = "join_queue"
    CANCEL_QUEUE = "cancel_queue"
    NOTIFY_CUSTOMER = "notify_customer"
    SEAT_CUSTOMER = "seat_customer"
    MARK_NO_SHOW = "mark_no_show"
    COMPLETE_RESERVATION = "complete_reservation"
    FORCE_COMPLETE_RESERVATION = "force_complete_reservation"
    CREATE_TABLE = "create_table"
    UPDATE_TABLE = "update_table"
    DELETE_TABLE = "delete_table"
    CHANGE_TABLE_STATUS = "change_table_status"


class _Details(BaseModel):
    model_config = ConfigDict(extra="forbid")


class JoinQueueDetails(_Details):
    party_size: int = Field(..., gt=0)
    position: int = Field(..., gt=0)
    estimated_wait_minutes: int = Field(..., ge=0)


class CancelQueueDetails(_Details):
    previous_status: str
    previous_position: Optional[int] = None


class NotifyCustomerDetails(_Details):
    confirm_by: datetime


class SeatCustomerDetails(_Details):
    table_id: int
    reservation_id: int
    actual_wait_minutes: int = Field(..., ge=0)


class MarkNoShowDetails(_Details):
    minutes_since_notified: int = Field(..., ge=0)


class CompleteReservationDetails(_Details):
    table_id: Optional[int] = None
    duration_minutes: int = Field(..., ge=0)


class ForceCompleteReservationDetails(_Details):
    """Written when an admin status override closes a live seating."""

    reservation_id: int
    duration_minutes: int = Field(..., ge=0)
    cancelled_entry_id: Optional[int] = None
    new_table_status: str


class CreateTableDetails(_Details):
    label: str
    capacity: int


class UpdateTableDetails(_Details):
    label: Optional[str] = None
    capacity: Optional[int] = None


class DeleteTableDetails(_Details):
    label: str


class ChangeTableStatusDetails(_Details):
    old_status: str
    new_status: str


ACTIVITY_DETAIL_SCHEMAS: Dict[ActivityAction, Type[_Details]] = {
    ActivityAction.JOIN_QUEUE: JoinQueueDetails,
    ActivityAction.CANCEL_QUEUE: CancelQueueDetails,
    ActivityAction.NOTIFY_CUSTOMER: NotifyCustomerDetails,
    ActivityAction.SEAT_CUSTOMER: SeatCustomerDetails,
    ActivityAction.MARK_NO_SHOW: MarkNoShowDetails,
    ActivityAction.COMPLETE_RESERVATION: CompleteReservationDetails,
    ActivityAction.FORCE_COMPLETE_RESERVATION: ForceCompleteReservationDetails,
    ActivityAction.CREATE_TABLE: CreateTableDetails,
    ActivityAction.UPDATE_TABLE: UpdateTableDetails,
    ActivityAction.DELETE_TABLE: DeleteTableDetails,
    ActivityAction.CHANGE_TABLE_STATUS: ChangeTableStatusDetails,
}


def validate_details(
    action: Union[ActivityAction, str],
    details: Union[BaseModel, Dict[str, Any], None],
) -> Dict[str, Any]:
    """Check *details* against the schema for *action* and return plain JSON.

    Raises ValueError for unknown actions or payloads that don't match.
    """
    try:
        action = ActivityAction(action)
    except ValueError:
        raise ValueError(f"Unknown activity action: {action!r}") from None

    schema = ACTIVITY_DETAIL_SCHEMAS[action]
    if isinstance(details, BaseModel):
        if not isinstance(details, schema):
            raise ValueError(
                f"{action.value} expects {schema.__name__}, got {type(details).__name__}"
            )
        model = details
    else:
        # pydantic's ValidationError is a ValueError subclass
        model = schema.model_validate(details or {})
    return model.model_dump(mode="json", exclude_none=True)
