"""Wait time prediction for walk-in parties.

Two paths:

* heuristic - used on cold start (fewer than ``MIN_SAMPLES`` observed waits)
  or when no past sample had a similar queue length: 15 minutes per party
  ahead, scaled by party size.
* empirical - mean of observed waits from samples whose queue length was
  within ``PROXIMITY`` of the current position, scaled by a time-of-day
  factor and party size.

The predictor is stateless; callers pass in the samples and the instant the
estimate is for.
"""

import math
from datetime import datetime, timezone, tzinfo
from typing import Optional, Protocol, Sequence


class SampleLike(Protocol):
    queue_length: int
    predicted_wait_minutes: int
    actual_wait_minutes: Optional[int]


# (first hour, last hour inclusive, factor)
TIME_OF_DAY_FACTORS = (
    (12, 13, 1.4),  # lunch
    (18, 20, 1.5),  # dinner
    (14, 17, 0.8),  # afternoon lull
    (21, 22, 0.9),  # late evening
)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def time_of_day_factor(hour: int) -> float:
    for first, last, factor in TIME_OF_DAY_FACTORS:
        if first <= hour <= last:
            return factor
    return 1.0


class WaitTimePredictor:
    """Estimate how long a party will wait before being seated."""

    MIN_SAMPLES = 10
    PROXIMITY = 3
    MIN_WAIT_MINUTES = 5

    BASE_WAIT_PER_PARTY = 15
    HEURISTIC_SIZE_MULTIPLIER = 1.2
    EMPIRICAL_SIZE_MULTIPLIER = 1.15

    def __init__(self, tz: tzinfo = timezone.utc):
        self.tz = tz

    def estimate(
        self,
        party_size: int,
        queue_position: int,
        samples: Sequence[SampleLike],
        at: Optional[datetime] = None,
    ) -> int:
        """Return the estimated wait in whole minutes, never below 5.

        *at* picks the venue-local hour for the time-of-day factor; without it
        the factor is neutral.
        """
        observed = [s for s in samples if s.actual_wait_minutes is not None]
        if len(observed) < self.MIN_SAMPLES:
            return self.heuristic(party_size, queue_position)

        similar = [
            s for s in observed
            if abs(s.queue_length - queue_position) <= self.PROXIMITY
        ]
        if not similar:
            return self.heuristic(party_size, queue_position)

        avg_actual = sum(s.actual_wait_minutes for s in similar) / len(similar)
        tod_factor = time_of_day_factor(self._local_hour(at)) if at is not None else 1.0
        size_factor = self.EMPIRICAL_SIZE_MULTIPLIER ** (party_size - 2)

        predicted = round_half_up(avg_actual * tod_factor * size_factor)
        return max(predicted, self.MIN_WAIT_MINUTES)

    def heuristic(self, party_size: int, queue_position: int) -> int:
        size_factor = self.HEURISTIC_SIZE_MULTIPLIER ** (party_size - 2)
        estimated = round_half_up(queue_position * self.BASE_WAIT_PER_PARTY * size_factor)
        return max(estimated, self.MIN_WAIT_MINUTES)

    def _local_hour(self, at: datetime) -> int:
        if at.tzinfo is None:
            at = at.replace(tzinfo=timezone.utc)
        return at.astimezone(self.tz).hour


def average_actual_wait(samples: Sequence[SampleLike]) -> int:
    """Rounded mean observed wait; 0 when nothing has been observed."""
    observed = [s.actual_wait_minutes for s in samples if s.actual_wait_minutes is not None]
    if not observed:
        return 0
    return round_half_up(sum(observed) / len(observed))


def prediction_accuracy(samples: Sequence[SampleLike]) -> int:
    """Mean per-sample accuracy as a 0-100 percentage."""
    scores = []
    for s in samples:
        actual = s.actual_wait_minutes
        if actual is None:
            continue
        error = abs(s.predicted_wait_minutes - actual)
        if actual == 0:
            scores.append(100.0 if error == 0 else 0.0)
        else:
            scores.append(max(0.0, 100 - (error / actual) * 100))

    if not scores:
        return 0
    return round_half_up(sum(scores) / len(scores))
