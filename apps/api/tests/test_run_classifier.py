"""
Unit tests for the Run Classifier

Tests override precedence, structural detection, long-run dominance,
pace-zone fallback and the always-returns-a-guess contract.
"""

import pytest

from services.run_classifier import (
    PaceZone,
    RunCategory,
    classify_run,
    detect_structure,
    duration_category,
    generate_summary,
    hr_zone,
    pace_zone,
)
from services.vdot_calculator import calculate_pace_zones
from services.workout_types import AthleteReference, SegmentData, WorkoutData

EXPLICIT = AthleteReference(easy_pace_seconds=540, tempo_pace_seconds=420, threshold_pace_seconds=400)


def _laps(*paces, types=None):
    types = types or [None] * len(paces)
    return [
        SegmentData(
            segment_number=i + 1,
            segment_type=t,
            distance_miles=0.5,
            duration_seconds=int(p / 2),
            pace_seconds_per_mile=p,
        )
        for i, (p, t) in enumerate(zip(paces, types))
    ]


def _alternatives(result):
    return {alt.category for alt in result.alternative_categories}


class TestOverrides:
    """Explicit labels win."""

    def test_race_beats_interval_structure(self):
        laps = _laps(360, 600, 360, 600, 360, 600, types=["work", "recovery"] * 3)
        workout = WorkoutData(workout_type="race", distance_miles=3.1, duration_minutes=20, avg_pace_seconds=387)
        result = classify_run(workout, EXPLICIT, laps)
        assert result.category == RunCategory.RACE
        assert result.confidence == 0.98
        assert result.summary == "5K at 6:27 pace"

    def test_race_without_distance_is_still_race(self):
        result = classify_run(WorkoutData(workout_type="race", duration_minutes=40), None)
        assert result.category == RunCategory.RACE

    def test_cross_training_type(self):
        result = classify_run(WorkoutData(workout_type="bike", distance_miles=20, duration_minutes=60), None)
        assert result.category == RunCategory.CROSS_TRAINING
        assert result.confidence == 0.95
        assert result.summary == "Cross-training session (60 minutes)"

    def test_no_distance_is_cross_training(self):
        result = classify_run(WorkoutData(duration_minutes=45), EXPLICIT)
        assert result.category == RunCategory.CROSS_TRAINING
        assert result.signals.pace_zone == "n/a"


class TestStructure:
    """Lap-structure signals."""

    def test_alternating_work_recovery_is_intervals(self):
        laps = _laps(355, 620, 350, 610, 352, 615, 348, 600, types=["work", "recovery"] * 4)
        workout = WorkoutData(distance_miles=4.0, duration_minutes=32, avg_pace_seconds=480)
        result = classify_run(workout, None, laps)
        assert result.category == RunCategory.INTERVALS
        assert result.confidence == 0.9
        assert result.signals.structure_type == "intervals"

    def test_progression(self):
        assert detect_structure(_laps(540, 520, 500, 480)) == "progression"
        workout = WorkoutData(distance_miles=2.0, duration_minutes=17, avg_pace_seconds=510)
        result = classify_run(workout, None, _laps(540, 520, 500, 480))
        assert result.category == RunCategory.PROGRESSION
        assert result.confidence == 0.85

    def test_progression_needs_real_spread(self):
        assert detect_structure(_laps(500, 495, 490, 485)) == "steady"

    def test_highly_variable_is_fartlek(self):
        workout = WorkoutData(distance_miles=2.0, duration_minutes=19, avg_pace_seconds=560)
        result = classify_run(workout, None, _laps(400, 700, 420, 720))
        assert result.category == RunCategory.FARTLEK
        assert result.confidence == 0.75

    def test_very_hilly_non_steady_is_hill_repeats(self):
        workout = WorkoutData(distance_miles=4.0, duration_minutes=36, avg_pace_seconds=530, elevation_gain_ft=1000)
        result = classify_run(workout, None, _laps(500, 560, 500, 560))
        assert result.category == RunCategory.HILL_REPEATS
        assert result.confidence == 0.7

    def test_fewer_than_three_laps_is_steady(self):
        assert detect_structure(_laps(400, 700)) == "steady"


class TestLongRuns:
    """Duration / distance dominance."""

    def test_easy_paced_long_run(self):
        workout = WorkoutData(distance_miles=14.0, duration_minutes=130, avg_pace_seconds=557)
        result = classify_run(workout, EXPLICIT)
        assert result.category == RunCategory.LONG_RUN
        assert result.confidence == 0.9

    def test_long_run_without_reference_keeps_tempo_alternative(self):
        workout = WorkoutData(distance_miles=14.0, duration_minutes=130, avg_pace_seconds=557)
        result = classify_run(workout, None)
        assert result.category == RunCategory.LONG_RUN
        assert result.confidence == 0.75
        assert RunCategory.TEMPO in _alternatives(result)

    def test_medium_long_easy_run(self):
        workout = WorkoutData(distance_miles=10.2, duration_minutes=88.4, avg_pace_seconds=520)
        result = classify_run(workout, EXPLICIT)
        assert result.category == RunCategory.LONG_RUN
        assert result.confidence == 0.8


class TestPaceZones:
    """Pace-zone fallback."""

    def test_no_reference_no_segments_scenario(self):
        workout = WorkoutData(distance_miles=3.1, duration_minutes=28, avg_pace_seconds=542)
        result = classify_run(workout, None)
        assert result.category == RunCategory.EASY
        assert result.confidence == 0.5
        assert {RunCategory.TEMPO, RunCategory.RECOVERY} <= _alternatives(result)

    def test_explicit_tempo(self):
        workout = WorkoutData(distance_miles=5.0, duration_minutes=35, avg_pace_seconds=420)
        result = classify_run(workout, EXPLICIT)
        assert result.category == RunCategory.TEMPO
        assert result.summary == "Tempo 5.0-mile at 7:00 pace"

    def test_short_very_slow_run_is_shakeout(self):
        workout = WorkoutData(distance_miles=2.0, duration_minutes=22, avg_pace_seconds=660)
        result = classify_run(workout, EXPLICIT)
        assert result.category == RunCategory.SHAKEOUT

    def test_vdot_takes_precedence_over_explicit(self):
        zones = calculate_pace_zones(50)
        reference = AthleteReference(vdot=50, easy_pace_seconds=300)
        workout = WorkoutData(distance_miles=5.0, duration_minutes=zones.tempo * 5 / 60, avg_pace_seconds=zones.tempo)
        assert pace_zone(workout, reference) == PaceZone.TEMPO
        assert classify_run(workout, reference).category == RunCategory.TEMPO

    def test_marathon_pace_is_easy_with_tempo_alternative(self):
        zones = calculate_pace_zones(50)
        reference = AthleteReference(vdot=50)
        workout = WorkoutData(distance_miles=6.0, duration_minutes=zones.marathon * 6 / 60, avg_pace_seconds=zones.marathon)
        result = classify_run(workout, reference)
        assert result.category == RunCategory.EASY
        assert result.confidence == 0.7
        assert RunCategory.TEMPO in _alternatives(result)

    @pytest.mark.parametrize("workout", [
        WorkoutData(),
        WorkoutData(distance_miles=5.0),
        WorkoutData(distance_miles=5.0, avg_pace_seconds=100),
        WorkoutData(distance_miles=50.0, duration_minutes=1, avg_pace_seconds=5000),
    ])
    def test_classifier_is_total(self, workout):
        result = classify_run(workout, AthleteReference())
        assert isinstance(result.category, RunCategory)
        assert 0 <= result.confidence <= 1


class TestAlternatives:
    """Every branch keeps at least one runner-up category."""

    @pytest.mark.parametrize("workout,laps,expected", [
        (WorkoutData(workout_type="race", distance_miles=6.2, duration_minutes=40, avg_pace_seconds=387),
         None, RunCategory.RACE),
        (WorkoutData(workout_type="bike", distance_miles=20, duration_minutes=60), None, RunCategory.CROSS_TRAINING),
        (WorkoutData(duration_minutes=30), None, RunCategory.CROSS_TRAINING),
        (WorkoutData(distance_miles=14.0, duration_minutes=130, avg_pace_seconds=557), None, RunCategory.LONG_RUN),
        (WorkoutData(distance_miles=6.0, duration_minutes=54, avg_pace_seconds=540), None, RunCategory.EASY),
        (WorkoutData(distance_miles=3.0, duration_minutes=27, avg_pace_seconds=540), None, RunCategory.EASY),
        (WorkoutData(distance_miles=5.0, duration_minutes=35, avg_pace_seconds=420), None, RunCategory.TEMPO),
        (WorkoutData(distance_miles=2.0, duration_minutes=22, avg_pace_seconds=660), None, RunCategory.SHAKEOUT),
        (WorkoutData(distance_miles=4.0, duration_minutes=40),
         _laps(360, 600, 360, 600, 360, 600, types=["work", "recovery"] * 3), RunCategory.INTERVALS),
    ])
    def test_alternatives_never_empty(self, workout, laps, expected):
        result = classify_run(workout, EXPLICIT, laps)
        assert result.category == expected
        assert result.alternative_categories
        assert result.category not in _alternatives(result)
        assert all(alt.confidence < result.confidence for alt in result.alternative_categories)

    def test_easy_paced_long_run_offers_easy(self):
        workout = WorkoutData(distance_miles=14.0, duration_minutes=130, avg_pace_seconds=557)
        assert _alternatives(classify_run(workout, EXPLICIT)) == {RunCategory.EASY}

    def test_race_offers_tempo_and_threshold(self):
        result = classify_run(WorkoutData(workout_type="race", duration_minutes=40), None)
        assert _alternatives(result) == {RunCategory.TEMPO, RunCategory.THRESHOLD}


class TestSignals:
    """Signal helpers and summaries."""

    def test_duration_buckets(self):
        assert duration_category(29) == "short"
        assert duration_category(30) == "medium"
        assert duration_category(89) == "long"
        assert duration_category(90) == "very_long"

    def test_hr_zone_uses_reserve(self):
        # max 190, reserve 130: 60 + 0.75*130 = 157.5 -> zone3
        assert hr_zone(158, 60, 30) == "zone3"
        assert hr_zone(100, 60, 30) == "zone1"

    def test_interval_summary(self):
        workout = WorkoutData(distance_miles=6.0)
        assert generate_summary(workout, RunCategory.INTERVALS) == "Interval workout totaling 6.0 miles"
