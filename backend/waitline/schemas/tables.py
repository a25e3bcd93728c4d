"""Dining table schemas."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from waitline.models.queue import TableStatus
from waitline.schemas.queue import ReservationResponse, UtcDatetime


class TableCreate(BaseModel):
    """Create table request. Capacity must be one of the stocked sizes (2, 4, 6)."""
    label: str = Field(..., min_length=1, max_length=50)
    capacity: int


class TableUpdate(BaseModel):
    label: Optional[str] = Field(None, min_length=1, max_length=50)
    capacity: Optional[int] = None
    expected_version: Optional[int] = Field(None, ge=1)


class TableStatusUpdate(BaseModel):
    status: TableStatus


class TableResponse(BaseModel):
    id: int
    label: str
    capacity: int
    status: TableStatus
    version: int
    created_at: Optional[UtcDatetime] = None
    updated_at: Optional[UtcDatetime] = None

    model_config = {"from_attributes": True}


class TableStatusChangeResponse(BaseModel):
    table: TableResponse
    old_status: TableStatus
    forced_reservation: Optional[ReservationResponse] = None
    cancelled_entry_id: Optional[int] = None


class UtilizationResponse(BaseModel):
    total: int
    available: int
    occupied: int
    reserved: int
    utilization_percent: float
