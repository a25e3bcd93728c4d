"""History read routes: audit trail and wait time samples."""

from typing import List, Optional

from fastapi import APIRouter, Query

from waitline.core.deps import Recorder
from waitline.schemas.history import ActivityRecordResponse, WaitTimeSampleResponse, WaitTimeSummary
from waitline.services.wait_time import average_actual_wait, prediction_accuracy

router = APIRouter()


@router.get("/activity", response_model=List[ActivityRecordResponse])
def list_activity(
    recorder: Recorder,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
):
    """Newest activity records first, optionally for one entity."""
    return recorder.recent_activity(limit=limit, entity_type=entity_type, entity_id=entity_id)


@router.get("/wait-time", response_model=WaitTimeSummary)
def wait_time_summary(recorder: Recorder, limit: int = Query(100, ge=1, le=1000)):
    """Recent observed waits and how close the quotes were."""
    samples = recorder.recent_samples_with_actual(limit)
    return WaitTimeSummary(
        sample_count=len(samples),
        average_actual_wait_minutes=average_actual_wait(samples),
        prediction_accuracy_percent=prediction_accuracy(samples),
        samples=[WaitTimeSampleResponse.model_validate(s) for s in samples],
    )
