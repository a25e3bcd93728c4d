"""Walk-in queue routes: joining, staff transitions and check-in."""

from typing import List

from fastapi import APIRouter, Request, status

from waitline.core.config import settings
from waitline.core.deps import Actor, Ledger, PositiveIntId
from waitline.core.errors import NotFound
from waitline.core.rate_limit import limiter
from waitline.schemas.queue import (
    JoinRequest,
    JoinResponse,
    QueueEntryResponse,
    QueueSnapshot,
    ReorderResponse,
    SeatRequest,
    SeatResponse,
    SweepResponse,
    TokenRequest,
)
from waitline.services.no_show_sweep import NoShowSweeper

router = APIRouter()


@router.post("/join", response_model=JoinResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.join_rate_limit)
def join_queue(request: Request, body: JoinRequest, ledger: Ledger):
    """Join the walk-in queue. 409 QUEUE_FULL carries the wait that would have been quoted."""
    return ledger.join(body.customer_id, body.party_size)


@router.get("/", response_model=QueueSnapshot)
def get_queue(ledger: Ledger):
    """Active entries in position order."""
    entries = ledger.active_queue()
    return QueueSnapshot(
        active_count=len(entries),
        admission_ceiling=ledger.settings.admission_ceiling,
        entries=[QueueEntryResponse.model_validate(e) for e in entries],
    )


@router.get("/entries/{entry_id}", response_model=QueueEntryResponse)
def get_entry(entry_id: PositiveIntId, ledger: Ledger):
    return ledger.get_entry(entry_id)


@router.get("/customers/{customer_id}", response_model=List[QueueEntryResponse])
def get_customer_entries(customer_id: str, ledger: Ledger):
    """A customer's entries, newest first."""
    return ledger.customer_entries(customer_id)


@router.post("/entries/{entry_id}/cancel", response_model=QueueEntryResponse)
def cancel_entry(entry_id: PositiveIntId, ledger: Ledger, actor: Actor):
    return ledger.cancel(entry_id, actor)


@router.post("/entries/{entry_id}/notify", response_model=QueueEntryResponse)
def notify_entry(entry_id: PositiveIntId, ledger: Ledger, actor: Actor):
    """Tell the party their table is ready and start the confirmation window."""
    return ledger.notify(entry_id, actor)


@router.post("/entries/{entry_id}/seat", response_model=SeatResponse)
def seat_entry(entry_id: PositiveIntId, body: SeatRequest, ledger: Ledger, actor: Actor):
    outcome = ledger.seat(
        entry_id,
        body.table_id,
        actor,
        expected_table_version=body.expected_table_version,
    )
    return SeatResponse.model_validate(outcome, from_attributes=True)


@router.post("/entries/{entry_id}/no-show", response_model=QueueEntryResponse)
def mark_no_show(entry_id: PositiveIntId, ledger: Ledger, actor: Actor):
    return ledger.mark_no_show(entry_id, actor)


@router.post("/reorder", response_model=ReorderResponse)
def reorder_queue(ledger: Ledger, actor: Actor):
    """Compact active positions to 1..N."""
    return ReorderResponse(moved=ledger.reorder())


@router.post("/validate-token", response_model=QueueEntryResponse)
def validate_token(body: TokenRequest, ledger: Ledger):
    """Check-in: resolve an admission token. Honoured only while the entry is notified."""
    entry = ledger.validate_token(body.admission_token)
    if entry is None:
        raise NotFound("Admission token", "(not valid for check-in)")
    return entry


@router.post("/sweep-no-shows", response_model=SweepResponse)
def sweep_no_shows(ledger: Ledger, actor: Actor):
    """Release notified parties whose confirmation window has passed."""
    return SweepResponse(released=NoShowSweeper(ledger).sweep())
