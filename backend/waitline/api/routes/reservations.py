"""Seating records routes."""

from typing import List

from fastapi import APIRouter

from waitline.core.deps import Actor, Ledger, PositiveIntId
from waitline.schemas.queue import ReservationResponse

router = APIRouter()


@router.get("/open", response_model=List[ReservationResponse])
def list_open_reservations(ledger: Ledger):
    """Parties currently seated, oldest seating first."""
    return ledger.open_reservations()


@router.get("/{reservation_id}", response_model=ReservationResponse)
def get_reservation(reservation_id: PositiveIntId, ledger: Ledger):
    return ledger.get_reservation(reservation_id)


@router.post("/{reservation_id}/complete", response_model=ReservationResponse)
def complete_reservation(reservation_id: PositiveIntId, ledger: Ledger, actor: Actor):
    """The party has left: close the reservation and free the table."""
    return ledger.complete_reservation(reservation_id, actor)
