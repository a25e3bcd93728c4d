"""Dining table routes: floor state, candidate lookup and administration."""

from typing import List, Optional

from fastapi import APIRouter, Query, status

from waitline.core.deps import Actor, Allocator, Ledger, PositiveIntId, Recorder
from waitline.core.errors import NotFound
from waitline.models.queue import TableStatus
from waitline.schemas.activity import (
    ActivityAction,
    CreateTableDetails,
    DeleteTableDetails,
    UpdateTableDetails,
)
from waitline.schemas.queue import ReservationResponse
from waitline.schemas.tables import (
    TableCreate,
    TableResponse,
    TableStatusChangeResponse,
    TableStatusUpdate,
    TableUpdate,
    UtilizationResponse,
)

router = APIRouter()


@router.get("/", response_model=List[TableResponse])
def list_tables(allocator: Allocator, status: Optional[TableStatus] = None):
    return allocator.list_tables(status)


@router.get("/utilization", response_model=UtilizationResponse)
def get_utilization(allocator: Allocator):
    """Table counts by status."""
    stats = allocator.utilization()
    percent = round(stats["occupied"] / stats["total"] * 100, 1) if stats["total"] else 0.0
    return UtilizationResponse(**stats, utilization_percent=percent)


@router.get("/candidate", response_model=TableResponse)
def get_candidate(allocator: Allocator, party_size: int = Query(..., ge=1)):
    """First available table of the party's capacity tier."""
    table = allocator.find_candidate(party_size)
    if table is None:
        raise NotFound("Available table for party size", party_size)
    return table


@router.post("/", response_model=TableResponse, status_code=status.HTTP_201_CREATED)
def create_table(body: TableCreate, allocator: Allocator, recorder: Recorder, actor: Actor):
    table = allocator.create_table(body.label, body.capacity)
    recorder.record_activity(
        actor,
        ActivityAction.CREATE_TABLE,
        "table",
        table.id,
        CreateTableDetails(label=table.label, capacity=table.capacity),
    )
    return table


@router.patch("/{table_id}", response_model=TableResponse)
def update_table(
    table_id: PositiveIntId,
    body: TableUpdate,
    allocator: Allocator,
    recorder: Recorder,
    actor: Actor,
):
    """Rename or resize a table. Send expected_version to refuse stale edits."""
    table = allocator.update_table(
        table_id,
        label=body.label,
        capacity=body.capacity,
        expected_version=body.expected_version,
    )
    recorder.record_activity(
        actor,
        ActivityAction.UPDATE_TABLE,
        "table",
        table_id,
        UpdateTableDetails(label=body.label, capacity=body.capacity),
    )
    return allocator.get(table_id)


@router.post("/{table_id}/status", response_model=TableStatusChangeResponse)
def change_table_status(
    table_id: PositiveIntId,
    body: TableStatusUpdate,
    ledger: Ledger,
    actor: Actor,
):
    """Administrative status override.

    Taking an occupied table off ``occupied`` force-completes the open
    reservation and cancels the seated party's entry.
    """
    change = ledger.change_table_status(table_id, body.status, actor)
    return TableStatusChangeResponse(
        table=TableResponse.model_validate(ledger.allocator.get(table_id)),
        old_status=change.old_status,
        forced_reservation=(
            ReservationResponse.model_validate(change.forced_reservation)
            if change.forced_reservation else None
        ),
        cancelled_entry_id=change.cancelled_entry.id if change.cancelled_entry else None,
    )


@router.delete("/{table_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_table(table_id: PositiveIntId, allocator: Allocator, recorder: Recorder, actor: Actor):
    label = allocator.delete_table(table_id)
    recorder.record_activity(
        actor,
        ActivityAction.DELETE_TABLE,
        "table",
        table_id,
        DeleteTableDetails(label=label),
    )
