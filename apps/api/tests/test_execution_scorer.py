"""
Unit tests for the Execution Scorer

Component scores, weather-adjusted targets, training-stimulus
equivalence and the feedback text attached to a score.
"""

import json

import pytest

from services.execution_scorer import (
    ExecutionScoreComponents,
    adjust_pace_for_conditions,
    compute_completion_rate,
    compute_completion_with_stimulus,
    compute_consistency,
    compute_execution_score,
    compute_pace_accuracy,
    compute_training_stimulus_comparison,
    compute_zone_adherence,
    is_in_zone,
    parse_execution_details,
    planned_work_volume,
    serialize_execution_details,
)
from services.vdot_calculator import METERS_PER_MILE
from services.workout_types import PlannedWorkoutData, SegmentData, WeatherData, WorkoutData

REPS_3X1200 = {"segments": [{"type": "intervals", "repeats": 3, "workDistanceMeters": 1200}]}


def _planned(workout_type="easy", **fields):
    return PlannedWorkoutData(id=1, workout_type=workout_type, **fields)


def _reps(count, meters, pace=360):
    miles = meters / METERS_PER_MILE
    return [
        SegmentData(
            segment_number=i,
            segment_type="work",
            distance_miles=miles,
            duration_seconds=round(miles * pace),
            pace_seconds_per_mile=pace,
        )
        for i in range(1, count + 1)
    ]


def _steady(*paces):
    return [
        SegmentData(segment_number=i, segment_type="steady", duration_seconds=p, distance_miles=1.0, pace_seconds_per_mile=p)
        for i, p in enumerate(paces, start=1)
    ]


class TestPaceAccuracy:
    """Actual vs (weather-adjusted) target pace."""

    @pytest.mark.parametrize("actual_pace,expected", [
        (500, 100),
        (510, 100),
        (520, 93),
        (540, 78),
        (575, 60),
        (700, 30),
        (900, 20),
    ])
    def test_deviation_bands(self, actual_pace, expected):
        score = compute_pace_accuracy(WorkoutData(avg_pace_seconds=actual_pace), _planned(target_pace_seconds_per_mile=500), None)
        assert score == expected

    def test_missing_pace_is_neutral(self):
        assert compute_pace_accuracy(WorkoutData(), _planned(target_pace_seconds_per_mile=500), None) == 75
        assert compute_pace_accuracy(WorkoutData(avg_pace_seconds=500), _planned(), None) == 75

    def test_heat_slows_easy_target_fully(self):
        assert adjust_pace_for_conditions(500, WeatherData(temp_f=85), "easy") == 525

    def test_heat_slows_quality_target_by_half(self):
        assert adjust_pace_for_conditions(400, WeatherData(temp_f=85), "tempo") == 410

    def test_no_weather_keeps_target(self):
        assert adjust_pace_for_conditions(500, None, "easy") == 500
        assert adjust_pace_for_conditions(500, WeatherData(), "easy") == 500

    def test_heat_forgives_slower_pace(self):
        actual = WorkoutData(avg_pace_seconds=525)
        planned = _planned(target_pace_seconds_per_mile=500)
        assert compute_pace_accuracy(actual, planned, WeatherData(temp_f=85)) == 100
        assert compute_pace_accuracy(actual, planned, None) < 100


class TestZoneAdherence:
    """Share of lap time in the target zone."""

    def test_zone_checks_with_default_paces(self):
        assert is_in_zone(500, "easy", None, None)
        assert not is_in_zone(450, "easy", None, None)
        assert is_in_zone(520, "tempo", "recovery", None)  # structural laps just need to be easy
        assert is_in_zone(380, "vo2max", None, None)
        assert not is_in_zone(410, "vo2max", None, None)

    def test_interval_session_all_in_zone(self):
        laps = [SegmentData(segment_number=1, segment_type="warmup", duration_seconds=540, pace_seconds_per_mile=540)]
        laps += _reps(4, 800)
        laps.append(SegmentData(segment_number=6, segment_type="recovery", duration_seconds=150, pace_seconds_per_mile=600))
        assert compute_zone_adherence(WorkoutData(), _planned("interval"), laps, None) == 100

    def test_time_weighted(self):
        laps = [
            SegmentData(segment_number=1, duration_seconds=300, pace_seconds_per_mile=540),
            SegmentData(segment_number=2, duration_seconds=100, pace_seconds_per_mile=420),
        ]
        assert compute_zone_adherence(WorkoutData(), _planned("easy"), laps, None) == 75

    def test_estimate_without_laps(self):
        assert compute_zone_adherence(WorkoutData(avg_pace_seconds=420), _planned("easy"), None, None) == 60
        assert compute_zone_adherence(WorkoutData(avg_pace_seconds=500), _planned("easy"), None, None) == 95
        assert compute_zone_adherence(WorkoutData(avg_pace_seconds=450), _planned("tempo"), None, None) == 90
        assert compute_zone_adherence(WorkoutData(), _planned("easy"), None, None) == 75


class TestCompletion:
    """Distance/duration achieved and stimulus equivalence."""

    @pytest.mark.parametrize("distance,expected", [(4.8, 100), (3.0, 60), (2.0, 32)])
    def test_distance_completion(self, distance, expected):
        planned = _planned(target_distance_miles=5.0)
        assert compute_completion_rate(WorkoutData(distance_miles=distance), planned) == expected

    def test_duration_fallback_and_default(self):
        assert compute_completion_rate(WorkoutData(duration_minutes=40), _planned(target_duration_minutes=40)) == 100
        assert compute_completion_rate(WorkoutData(), _planned()) == 85

    def test_planned_work_volume(self):
        assert planned_work_volume(REPS_3X1200) == pytest.approx(3600 / METERS_PER_MILE)
        assert planned_work_volume(json.dumps(REPS_3X1200)) == pytest.approx(3600 / METERS_PER_MILE)
        tempo = {"segments": [{"type": "warmup"}, {"type": "work", "distanceMiles": 3}]}
        assert planned_work_volume(tempo) == 3
        assert planned_work_volume("not json") == 0.0
        assert planned_work_volume(None) == 0.0

    def test_different_structure_same_stimulus(self):
        """4 x 900m done for a planned 3 x 1200m."""
        planned = _planned("interval", target_pace_seconds_per_mile=360, structure=REPS_3X1200)
        stimulus = compute_training_stimulus_comparison(planned, _reps(4, 900))
        assert stimulus.structure_equivalent is True
        assert stimulus.volume_match == pytest.approx(1.0)
        assert stimulus.explanation == (
            "Completed 2.2mi of work vs 2.2mi planned, equivalent training stimulus achieved"
        )
        assert compute_completion_with_stimulus(WorkoutData(), planned, _reps(4, 900)) == 100

    def test_half_the_volume(self):
        planned = _planned("interval", target_pace_seconds_per_mile=360, structure=REPS_3X1200)
        stimulus = compute_training_stimulus_comparison(planned, _reps(2, 900))
        assert stimulus.structure_equivalent is False
        assert stimulus.volume_match == pytest.approx(0.5)
        assert stimulus.explanation == "Pace was excellent but volume differed significantly"

    def test_no_structure_no_comparison(self):
        assert compute_training_stimulus_comparison(_planned(), _reps(4, 900)) is None


class TestConsistency:
    """Lap pace variation."""

    def test_defaults(self):
        assert compute_consistency(None) == 80
        assert compute_consistency(_steady(500, 500)) == 80
        laps = [SegmentData(segment_number=i, segment_type="warmup", pace_seconds_per_mile=540) for i in range(3)]
        assert compute_consistency(laps) == 85

    def test_even_pacing(self):
        assert compute_consistency(_steady(500, 500, 500)) == 100
        assert compute_consistency(_steady(350, 370, 350, 370)) == 95

    def test_erratic_pacing_floors_at_30(self):
        assert compute_consistency(_steady(300, 420, 300, 420)) == 30


class TestExecutionScore:
    """Overall score and feedback."""

    def test_well_executed_easy_run(self):
        actual = WorkoutData(distance_miles=5.0, avg_pace_seconds=545)
        planned = _planned(target_distance_miles=5.0, target_pace_seconds_per_mile=540)
        score = compute_execution_score(actual, planned)

        assert score.components == ExecutionScoreComponents(100, 95, 100, 80)
        assert score.overall == 95
        assert score.diagnosis == "Excellent execution. You nailed this workout."
        assert score.suggestion == "Try to start slightly slower and maintain even effort throughout."
        assert score.highlights == ["Excellent pace control", "Stayed in target training zone", "Completed full workout"]
        assert score.concerns == []

    def test_hot_day_noted_in_diagnosis(self):
        actual = WorkoutData(distance_miles=5.0, avg_pace_seconds=565)
        planned = _planned(target_distance_miles=5.0, target_pace_seconds_per_mile=540)
        score = compute_execution_score(actual, planned, weather=WeatherData(temp_f=85))
        assert score.diagnosis.endswith(" Hot conditions likely affected performance.")

    def test_tempo_run_too_fast(self):
        actual = WorkoutData(distance_miles=4.0, avg_pace_seconds=380)
        planned = _planned("tempo", target_pace_seconds_per_mile=450)
        score = compute_execution_score(actual, planned)
        assert score.components.pace_accuracy == 59
        assert "Ran faster than target pace" in score.concerns
        assert score.suggestion == "Try starting more conservatively next time to better hit target pace."

    def test_overall_in_range(self):
        actual = WorkoutData(distance_miles=1.0, avg_pace_seconds=900)
        planned = _planned("interval", target_distance_miles=8.0, target_pace_seconds_per_mile=330)
        score = compute_execution_score(actual, planned, _steady(300, 420, 300, 420))
        assert 0 <= score.overall <= 100
        assert "Cut workout short" in score.concerns

    def test_stored_shape(self):
        actual = WorkoutData(distance_miles=5.0, avg_pace_seconds=545)
        score = compute_execution_score(actual, _planned(target_distance_miles=5.0, target_pace_seconds_per_mile=540))
        stored = serialize_execution_details(score)
        assert stored["components"] == {
            "paceAccuracy": 100,
            "zoneAdherence": 95,
            "completionRate": 100,
            "consistency": 80,
        }
        assert parse_execution_details(json.dumps(stored)) == stored
        assert parse_execution_details(stored) is stored
        assert parse_execution_details("{") is None
