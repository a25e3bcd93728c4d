"""Tests for WaitTimePredictor and the accuracy helpers."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

import pytest

from waitline.services.wait_time import (
    WaitTimePredictor,
    average_actual_wait,
    prediction_accuracy,
    round_half_up,
    time_of_day_factor,
)


@dataclass
class Sample:
    queue_length: int
    actual_wait_minutes: Optional[int]
    predicted_wait_minutes: int = 30


def samples(n, queue_length, actual):
    return [Sample(queue_length=queue_length, actual_wait_minutes=actual) for _ in range(n)]


class TestHeuristic:
    """Cold-start estimates."""

    def test_party_of_two_third_in_line(self):
        assert WaitTimePredictor().estimate(2, 3, []) == 45

    def test_first_in_line_party_of_two(self):
        assert WaitTimePredictor().estimate(2, 1, []) == 15

    def test_larger_party_scales_up(self):
        # 1 * 15 * 1.2^2 = 21.6
        assert WaitTimePredictor().estimate(4, 1, []) == 22

    def test_single_diner_scales_down(self):
        # 2 * 15 / 1.2 = 25
        assert WaitTimePredictor().estimate(1, 2, []) == 25

    def test_never_below_floor(self):
        assert WaitTimePredictor().estimate(1, 0, []) == 5

    def test_too_few_samples_uses_heuristic(self):
        predictor = WaitTimePredictor()
        assert predictor.estimate(2, 3, samples(9, 3, 60)) == 45

    def test_samples_without_actual_do_not_count(self):
        predictor = WaitTimePredictor()
        pending = samples(20, 3, None)
        assert predictor.estimate(2, 3, pending) == 45


class TestEmpirical:
    """Estimates from observed waits."""

    def test_no_similar_queue_length_falls_back(self):
        predictor = WaitTimePredictor()
        far_away = samples(12, 10, 90)
        assert predictor.estimate(2, 3, far_away) == predictor.heuristic(2, 3)

    def test_mean_of_similar_samples_neutral_time(self):
        predictor = WaitTimePredictor()
        history = samples(5, 2, 20) + samples(5, 4, 30)
        assert predictor.estimate(2, 3, history) == 25

    def test_only_samples_within_proximity_are_averaged(self):
        predictor = WaitTimePredictor()
        history = samples(10, 3, 20) + samples(5, 7, 200)
        assert predictor.estimate(2, 3, history) == 20

    def test_time_of_day_factor_applies(self):
        predictor = WaitTimePredictor()
        history = samples(10, 3, 20)
        lunch = datetime(2024, 1, 2, 12, 30, tzinfo=timezone.utc)
        # 20 * 1.4
        assert predictor.estimate(2, 3, history, at=lunch) == 28

    def test_party_size_factor_applies(self):
        predictor = WaitTimePredictor()
        history = samples(10, 3, 20)
        # 20 * 1.15^2 = 26.45
        assert predictor.estimate(4, 3, history) == 26

    def test_hour_is_taken_in_venue_timezone(self):
        predictor = WaitTimePredictor(ZoneInfo("America/New_York"))
        history = samples(10, 3, 20)
        # 23:00 UTC is 18:00 in New York in January: dinner
        at = datetime(2024, 1, 2, 23, 0, tzinfo=timezone.utc)
        assert predictor.estimate(2, 3, history, at=at) == 30

    def test_floor_applies_to_empirical_path(self):
        predictor = WaitTimePredictor()
        assert predictor.estimate(2, 3, samples(10, 3, 1)) == 5


class TestHelpers:

    @pytest.mark.parametrize("hour,factor", [(12, 1.4), (13, 1.4), (19, 1.5), (15, 0.8), (22, 0.9), (9, 1.0)])
    def test_time_of_day_factor(self, hour, factor):
        assert time_of_day_factor(hour) == factor

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(21.6) == 22
        assert round_half_up(26.45) == 26

    def test_average_actual_wait(self):
        history = [Sample(3, 10), Sample(3, 21), Sample(3, None)]
        assert average_actual_wait(history) == 16
        assert average_actual_wait([]) == 0

    def test_prediction_accuracy(self):
        history = [
            Sample(3, actual_wait_minutes=20, predicted_wait_minutes=20),
            Sample(3, actual_wait_minutes=20, predicted_wait_minutes=30),
        ]
        # (100 + 50) / 2
        assert prediction_accuracy(history) == 75

    def test_prediction_accuracy_zero_actual(self):
        assert prediction_accuracy([Sample(1, actual_wait_minutes=0, predicted_wait_minutes=0)]) == 100
        assert prediction_accuracy([Sample(1, actual_wait_minutes=0, predicted_wait_minutes=5)]) == 0
