"""
Unit tests for the Training Load Calculator

Tests TRIMP (HR and pace fallback), quality ratio and the
condition adjustment used to normalize pace-based estimates.
"""

import math

import pytest

from services.training_load import (
    compute_condition_adjustment,
    compute_quality_ratio,
    compute_segment_trimp,
    compute_trimp,
    hr_reserve_fraction,
    pace_intensity_factor,
)
from services.workout_types import AthleteReference, SegmentData, WeatherData, WorkoutData


def _banister(minutes, fraction, a, b=1.92):
    return minutes * fraction * a * math.exp(b * fraction)


class TestTrimp:
    """Banister TRIMP from heart-rate reserve."""

    def test_no_duration_returns_none(self):
        assert compute_trimp(WorkoutData(avg_hr=150), None) is None
        assert compute_trimp(WorkoutData(duration_minutes=0, avg_hr=150), None) is None

    def test_defaults_age_30_resting_60(self):
        # max HR 190, reserve 130
        fraction = (150 - 60) / 130
        trimp = compute_trimp(WorkoutData(duration_minutes=60, avg_hr=150), None)
        assert trimp == round(_banister(60, fraction, 1.92))

    def test_female_coefficient_is_lower(self):
        workout = WorkoutData(duration_minutes=60, avg_hr=150)
        male = compute_trimp(workout, AthleteReference(gender="male"))
        female = compute_trimp(workout, AthleteReference(gender="Female"))
        fraction = (150 - 60) / 130
        assert female == round(_banister(60, fraction, 1.67))
        assert female < male

    def test_reserve_fraction_is_clamped(self):
        assert hr_reserve_fraction(40, None) == 0.0
        assert hr_reserve_fraction(230, None) == 1.0

    def test_athlete_physiology_is_used(self):
        reference = AthleteReference(age=40, resting_hr=50)
        # max HR 180, reserve 130
        assert hr_reserve_fraction(115, reference) == pytest.approx(0.5)


class TestTrimpWithoutHR:
    """Pace-bucketed estimate when no HR was recorded."""

    @pytest.mark.parametrize("pace,factor", [
        (350, 2.5),
        (400, 2.0),
        (450, 1.6),
        (500, 1.3),
        (560, 1.1),
        (600, 1.0),
        (720, 1.0),
    ])
    def test_intensity_buckets(self, pace, factor):
        assert pace_intensity_factor(pace) == factor

    def test_pace_fallback(self):
        assert compute_trimp(WorkoutData(duration_minutes=50, avg_pace_seconds=450), None) == 80

    def test_missing_pace_assumes_ten_minute_miles(self):
        assert compute_trimp(WorkoutData(duration_minutes=50), None) == 50

    def test_segment_fallback_removes_condition_adjustment(self):
        """A 6:10 lap in conditions worth 20 s/mi is scored like a 5:50 lap."""
        lap = SegmentData(segment_number=1, duration_seconds=600, pace_seconds_per_mile=370)
        assert compute_segment_trimp(lap, None) == pytest.approx(10 * 2.0)
        assert compute_segment_trimp(lap, None, condition_adjustment=20) == pytest.approx(10 * 2.5)

    def test_segment_without_duration_is_zero(self):
        assert compute_segment_trimp(SegmentData(segment_number=1, avg_hr=160), None) == 0.0


class TestQualityRatio:
    """Fraction of time at or faster than tempo."""

    REFERENCE = AthleteReference(tempo_pace_seconds=420)

    def test_no_tempo_reference_is_zero(self):
        laps = [SegmentData(segment_number=1, duration_seconds=300, pace_seconds_per_mile=380)]
        assert compute_quality_ratio(WorkoutData(), laps, None) == 0.0
        assert compute_quality_ratio(WorkoutData(), laps, AthleteReference()) == 0.0

    def test_time_weighted_with_tolerance(self):
        laps = [
            SegmentData(segment_number=1, duration_seconds=300, pace_seconds_per_mile=400),
            SegmentData(segment_number=2, duration_seconds=300, pace_seconds_per_mile=428),  # within 2%
            SegmentData(segment_number=3, duration_seconds=600, pace_seconds_per_mile=500),
        ]
        assert compute_quality_ratio(WorkoutData(), laps, self.REFERENCE) == pytest.approx(0.5)

    def test_binary_fallback_without_laps(self):
        assert compute_quality_ratio(WorkoutData(avg_pace_seconds=415), [], self.REFERENCE) == 1.0
        assert compute_quality_ratio(WorkoutData(avg_pace_seconds=430), [], self.REFERENCE) == 0.0
        assert compute_quality_ratio(WorkoutData(), [], self.REFERENCE) == 0.0

    def test_vdot_tempo_takes_precedence(self):
        reference = AthleteReference(vdot=50, tempo_pace_seconds=300)
        workout = WorkoutData(avg_pace_seconds=reference.pace_zones().tempo)
        assert compute_quality_ratio(workout, None, reference) == 1.0


class TestConditionAdjustment:
    """Expected slowdown from weather and climbing."""

    def test_neutral_conditions(self):
        assert compute_condition_adjustment(WorkoutData(distance_miles=5.0)) == 0

    def test_climbing(self):
        # 100 ft/mi -> 12 s/mi
        workout = WorkoutData(distance_miles=5.0, elevation_gain_ft=500)
        assert compute_condition_adjustment(workout) == 12

    def test_heat_uses_feels_like(self):
        cool = WorkoutData(distance_miles=5.0, weather=WeatherData(temp_f=80))
        muggy = WorkoutData(distance_miles=5.0, weather=WeatherData(temp_f=80, feels_like_f=90))
        assert compute_condition_adjustment(muggy) > compute_condition_adjustment(cool) > 0
