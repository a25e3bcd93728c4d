"""History read schemas."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from waitline.schemas.queue import UtcDatetime


class ActivityRecordResponse(BaseModel):
    id: int
    actor_id: str
    action: str
    entity_type: str
    entity_id: str
    details: Dict[str, Any]
    created_at: UtcDatetime

    model_config = {"from_attributes": True}


class WaitTimeSampleResponse(BaseModel):
    id: int
    queue_entry_id: int
    predicted_wait_minutes: int
    actual_wait_minutes: Optional[int] = None
    queue_length: int
    available_tables: int
    hour_of_day: int
    day_of_week: int
    created_at: UtcDatetime

    model_config = {"from_attributes": True}


class WaitTimeSummary(BaseModel):
    """Observed waits against what was quoted."""
    sample_count: int
    average_actual_wait_minutes: int
    prediction_accuracy_percent: int
    samples: List[WaitTimeSampleResponse]
