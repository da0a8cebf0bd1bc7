"""
Unit tests for the Interval Pattern Detector

Repeats, tempo intervals, ladders, pyramids, mixed sets and the
"unknown" answers with their reasons.
"""

import pytest

from conftest import interval_laps

from services.interval_detector import (
    METERS_PER_MILE,
    IntervalStructure,
    detect_interval_pattern,
    format_pace_per_mile,
    snap_to_standard_distance,
)
from services.workout_types import SegmentData


def _segments(laps):
    return [SegmentData(segment_number=i, **lap) for i, lap in enumerate(laps, start=1)]


def _rep(meters, pace=380, segment_type="work"):
    miles = meters / METERS_PER_MILE
    return dict(segment_type=segment_type, distance_miles=miles, duration_seconds=round(miles * pace), pace_seconds_per_mile=pace)


def _jog(meters=200, pace=600):
    return _rep(meters, pace, segment_type="recovery")


class TestUnknown:
    """Reasons when no structure is found."""

    def test_no_segments(self):
        pattern = detect_interval_pattern([])
        assert pattern.type == IntervalStructure.UNKNOWN
        assert pattern.description == "No segments available"
        assert detect_interval_pattern(None).type == IntervalStructure.UNKNOWN

    def test_single_segment(self):
        pattern = detect_interval_pattern(_segments([_rep(1609)]))
        assert pattern.description == "Single segment, no interval structure detectable"

    def test_cannot_tell_work_from_rest(self):
        laps = [_rep(1609, 540, "warmup"), _rep(1609, 560, "cooldown")]
        pattern = detect_interval_pattern(_segments(laps))
        assert pattern.type == IntervalStructure.UNKNOWN
        assert pattern.description == "2 segments detected but unable to distinguish work from rest"

    def test_tiny_laps_are_filtered(self):
        laps = [_rep(1609), _rep(50), _rep(60)]
        pattern = detect_interval_pattern(_segments(laps))
        assert pattern.description == "Insufficient valid segments after filtering"


class TestRepeats:
    """Single-distance sets."""

    def test_labeled_repeats(self):
        pattern = detect_interval_pattern(_segments(interval_laps()))
        assert pattern.type == IntervalStructure.REPEAT
        assert pattern.description == "4 x 800m @ 6:00/mi with 400m jog"
        assert pattern.work_segments == 4
        assert pattern.rest_segments == 4
        assert pattern.work_distance_avg == 805
        assert pattern.consistency == 1.0
        assert pattern.rest_to_work_ratio == 0.83

    def test_unlabeled_laps_split_by_pace(self):
        laps = []
        for _ in range(4):
            laps.append(dict(distance_miles=0.5, duration_seconds=180, pace_seconds_per_mile=360))
            laps.append(dict(distance_miles=0.25, duration_seconds=150, pace_seconds_per_mile=600))
        pattern = detect_interval_pattern(_segments(laps))
        assert pattern.type == IntervalStructure.REPEAT
        assert pattern.description == "4 x 800m @ 6:00/mi with 400m jog"

    def test_tempo_intervals(self):
        laps = [_rep(3219, 420), _jog(400), _rep(3219, 420), _jog(400), _rep(3219, 420)]
        pattern = detect_interval_pattern(_segments(laps))
        assert pattern.type == IntervalStructure.TEMPO_INTERVALS
        assert pattern.description == "3 x 2 miles @ 7:00/mi with 400m jog"


class TestVaryingDistances:
    """Ladders, pyramids and mixed sets."""

    def test_ladder(self):
        laps = [_rep(400), _jog(), _rep(800), _jog(), _rep(1200)]
        pattern = detect_interval_pattern(_segments(laps))
        assert pattern.type == IntervalStructure.LADDER
        assert pattern.description == "Ladder: 400m - 800m - 1200m @ 6:20/mi"

    def test_pyramid(self):
        laps = [_rep(400), _jog(), _rep(800), _jog(), _rep(400)]
        pattern = detect_interval_pattern(_segments(laps))
        assert pattern.type == IntervalStructure.PYRAMID
        assert pattern.description.startswith("Pyramid: 400m - 800m - 400m")

    def test_mixed(self):
        laps = []
        for meters in (800, 800, 800, 400, 400, 400):
            laps += [_rep(meters, 360), _jog()]
        pattern = detect_interval_pattern(_segments(laps))
        assert pattern.type == IntervalStructure.MIXED
        assert pattern.description == "Mixed: 3 x 800m + 3 x 400m @ 6:00/mi"

    def test_stored_shape(self):
        stored = detect_interval_pattern(_segments(interval_laps())).to_dict()
        assert stored["type"] == "repeat"
        assert stored["workPace"]["avg"] == 360
        assert stored["restDistance"]["total"] == 1609


class TestHelpers:
    """Formatting."""

    @pytest.mark.parametrize("meters,label", [
        (805, "800m"),
        (1609, "1 mile"),
        (3219, "2 miles"),
        (1000, "1K"),
        (4828, "3 miles"),
        (150, "150m"),
        (8047, "5 miles"),
        (9000, "5.6 miles"),
    ])
    def test_snap(self, meters, label):
        assert snap_to_standard_distance(meters) == label

    def test_pace_label(self):
        assert format_pace_per_mile(345.4) == "5:45/mi"
