"""
Unit tests for the Effort Zone Classifier

Boundary resolution priority, structural labels, anomaly detection,
zone distribution and the derived workout type.
"""

from conftest import interval_laps

from services.vdot_calculator import calculate_pace_zones
from services.workout_types import AthleteReference, SegmentData, WorkoutData
from services.zone_classifier import (
    EffortCategory,
    RunMode,
    ZoneBoundaries,
    classify,
    classify_raw,
    compute_zone_distribution,
    derive_workout_type,
    dominant_zone,
)

MANUAL = AthleteReference(easy_pace_seconds=540, tempo_pace_seconds=420, threshold_pace_seconds=400)


def _segments(laps):
    return [SegmentData(segment_number=i, **lap) for i, lap in enumerate(laps, start=1)]


def _lap(number, pace, distance=1.0, **fields):
    return SegmentData(
        segment_number=number,
        distance_miles=distance,
        duration_seconds=round(pace * distance),
        pace_seconds_per_mile=pace,
        **fields,
    )


class TestBoundaries:
    """Zone boundary resolution."""

    def test_vdot_table_shifted_by_conditions(self):
        zones = calculate_pace_zones(50)
        result = classify([_lap(1, 540)], AthleteReference(vdot=50), condition_adjustment=10)
        assert result.boundaries.easy == zones.easy + 10
        assert result.boundaries.recovery == zones.recovery + 10
        assert result.boundaries.interval == zones.interval + 10

    def test_manual_easy_pace_fills_the_rest(self):
        result = classify([_lap(1, 540)], AthleteReference(easy_pace_seconds=540))
        b = result.boundaries
        assert (b.easy, b.marathon, b.tempo, b.threshold, b.interval) == (540, 495, 470, 455, 440)
        assert b.steady == 518
        assert b.recovery is None

    def test_median_of_own_laps(self):
        result = classify([_lap(1, 500), _lap(2, 510), _lap(3, 520)], None)
        assert result.boundaries.easy == 530
        assert result.boundaries.tempo == 465

    def test_average_pace_when_no_valid_laps(self):
        result = classify([_lap(1, 950)], None, avg_pace_seconds=600)
        assert result.boundaries.easy == 640

    def test_boundary_dict_omits_missing_recovery(self):
        assert "recovery" not in ZoneBoundaries(540, 518, 495, 470, 455, 440).to_dict()


class TestClassification:
    """Per-lap zone labels."""

    def test_raw_bands(self):
        b = ZoneBoundaries(540, 518, 495, 420, 400, 385)
        assert classify_raw(950, b) == EffortCategory.RECOVERY
        assert classify_raw(540, b) == EffortCategory.EASY
        assert classify_raw(500, b) == EffortCategory.MARATHON
        assert classify_raw(420, b) == EffortCategory.TEMPO
        assert classify_raw(384, b) == EffortCategory.INTERVAL

    def test_empty_input(self):
        assert classify([], MANUAL).per_lap == []

    def test_interval_session(self):
        segments = _segments(interval_laps())
        result = classify(segments, MANUAL, workout_type_hint="interval")

        assert result.run_mode == RunMode.WORKOUT
        assert [z.segment_number for z in result.per_lap] == list(range(1, 11))
        categories = [z.category for z in result.per_lap]
        assert categories[1::2][:4] == [EffortCategory.INTERVAL] * 4
        assert categories[2:9:2] == [EffortCategory.RECOVERY] * 4
        assert categories[0] == EffortCategory.EASY

    def test_gps_artifact_is_anomaly(self):
        result = classify([_lap(1, 540), _lap(2, 170), _lap(3, 540)], MANUAL)
        artifact = result.per_lap[1]
        assert artifact.category == EffortCategory.ANOMALY
        assert artifact.confidence == 0.2
        assert "3:00/mi" in artifact.anomaly_reason

    def test_very_short_split_is_anomaly(self):
        result = classify([_lap(1, 540), _lap(2, 500, distance=0.1)], MANUAL)
        assert result.per_lap[1].category == EffortCategory.ANOMALY
        assert result.per_lap[1].anomaly_reason == "Very short split (0.10 mi), insufficient data"

    def test_hr_agreement_recorded(self):
        result = classify([_lap(1, 560, avg_hr=135), _lap(2, 560, avg_hr=185)], MANUAL, workout_type_hint="easy")
        assert result.per_lap[0].hr_agreement is True
        assert result.per_lap[1].hr_agreement is False
        assert result.per_lap[0].confidence > result.per_lap[1].confidence

    def test_confidence_in_bounds(self):
        result = classify(_segments(interval_laps()), None)
        assert all(0.2 <= z.confidence <= 1.0 for z in result.per_lap)


class TestDistribution:
    """Minutes per zone and what they imply."""

    def test_interval_distribution(self):
        segments = _segments(interval_laps())
        result = classify(segments, MANUAL, workout_type_hint="interval")
        distribution = compute_zone_distribution(result.per_lap, segments)

        assert distribution["interval"] == 12.0
        assert distribution["recovery"] == 10.0
        assert distribution["easy"] == 18.3
        assert dominant_zone(distribution) == "easy"
        assert derive_workout_type(distribution, WorkoutData(distance_miles=5.0)) == "interval"

    def test_nothing_classified(self):
        assert dominant_zone({}) is None
        assert derive_workout_type({}, WorkoutData(workout_type="tempo")) == "tempo"
        assert derive_workout_type({}, WorkoutData()) == "easy"

    def test_race_label_is_kept(self):
        assert derive_workout_type({"interval": 20.0}, WorkoutData(workout_type="race")) == "race"

    def test_long_by_distance_or_time(self):
        assert derive_workout_type({"easy": 50.0}, WorkoutData(distance_miles=10.0)) == "long"
        assert derive_workout_type({"easy": 60.0, "warmup": 10.0, "cooldown": 5.0}, WorkoutData()) == "long"

    def test_threshold_dominant_reports_tempo(self):
        assert derive_workout_type({"threshold": 30.0, "easy": 10.0}, WorkoutData()) == "tempo"

    def test_recovery_dominant(self):
        assert derive_workout_type({"recovery": 30.0, "easy": 10.0}, WorkoutData()) == "recovery"

    def test_majority_zone(self):
        assert derive_workout_type({"steady": 30.0, "easy": 10.0}, WorkoutData()) == "steady"

    def test_hard_share_without_majority(self):
        distribution = {"easy": 20.0, "steady": 12.0, "tempo": 8.0}
        assert derive_workout_type(distribution, WorkoutData()) == "tempo"
