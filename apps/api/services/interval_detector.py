"""
Interval Pattern Detector

Recognizes structured sets from a workout's zone-labeled laps:
repeats (8 x 800m), tempo intervals (3 x 2 miles), ladders
(400-800-1200), pyramids, mixed sets and fartlek.

Pure: no DB access, no side effects. "unknown" is a normal answer,
returned with a description of why no structure was found.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence
import statistics

from services.workout_types import SegmentData

METERS_PER_MILE = 1609.344

# Work laps within 10% of each other belong to the same distance group
DISTANCE_CLUSTER_TOLERANCE = 0.10

# Shorter laps are GPS artifacts (auto-lap remainders, button mashes)
MIN_SEGMENT_METERS = 100

# Minimum pace gap (s/mi) separating reps from rest when laps are unlabeled
WORK_REST_PACE_GAP = 60

TEMPO_INTERVAL_METERS = 2400

# Mile-based distances come before nearby metric ones so 2 miles does not snap to 3K
STANDARD_DISTANCES = (
    (200, "200m"),
    (400, "400m"),
    (600, "600m"),
    (800, "800m"),
    (1000, "1K"),
    (1200, "1200m"),
    (1600, "1 mile"),
    (2000, "2K"),
    (2414, "1.5 miles"),
    (3219, "2 miles"),
    (3000, "3K"),
    (4828, "3 miles"),
    (5000, "5K"),
)


class IntervalStructure(str, Enum):
    REPEAT = "repeat"
    LADDER = "ladder"
    PYRAMID = "pyramid"
    MIXED = "mixed"
    TEMPO_INTERVALS = "tempo_intervals"
    FARTLEK = "fartlek"
    UNKNOWN = "unknown"


@dataclass
class IntervalPattern:
    type: IntervalStructure
    description: str  # "8 x 800m @ 5:45/mi with 400m jog"
    work_segments: int = 0
    rest_segments: int = 0
    work_distance_avg: int = 0  # meters
    work_distance_total: int = 0
    rest_distance_avg: int = 0
    rest_distance_total: int = 0
    work_pace_avg: int = 0  # s/mi
    work_pace_fastest: int = 0
    work_pace_slowest: int = 0
    rest_pace_avg: int = 0
    consistency: float = 0.0  # 0-1, uniformity of rep distances
    rest_to_work_ratio: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Stored JSON shape, merged into the interval stress blob."""
        return {
            "type": self.type.value,
            "description": self.description,
            "workSegments": self.work_segments,
            "restSegments": self.rest_segments,
            "workDistance": {"avg": self.work_distance_avg, "total": self.work_distance_total},
            "restDistance": {"avg": self.rest_distance_avg, "total": self.rest_distance_total},
            "workPace": {
                "avg": self.work_pace_avg,
                "fastest": self.work_pace_fastest,
                "slowest": self.work_pace_slowest,
            },
            "restPace": {"avg": self.rest_pace_avg},
            "consistency": self.consistency,
            "restToWorkRatio": self.rest_to_work_ratio,
        }


@dataclass
class _Analyzed:
    distance_m: float
    duration_s: float
    pace: float
    segment: SegmentData
    role: str = "work"  # work, rest, warmup, cooldown, skip


@dataclass
class _Cluster:
    distance_m: float
    members: List[_Analyzed] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.members)


# =============================================================================
# HELPERS
# =============================================================================

def format_pace_per_mile(seconds: float) -> str:
    minutes, secs = divmod(int(round(seconds)), 60)
    return f"{minutes}:{secs:02d}/mi"


def snap_to_standard_distance(meters: float) -> str:
    """Nearest standard rep label within 15%, else a formatted raw distance."""
    for standard, label in STANDARD_DISTANCES:
        if 0.85 <= meters / standard <= 1.15:
            return label
    if meters < 1500:
        return f"{round(meters)}m"
    miles = meters / METERS_PER_MILE
    whole = round(miles)
    if abs(miles - whole) < 0.1:
        return f"{whole} mile" if whole == 1 else f"{whole} miles"
    return f"{miles:.1f} miles"


def _distances_match(a: float, b: float) -> bool:
    if a == 0 or b == 0:
        return False
    return max(a, b) / min(a, b) <= 1 + DISTANCE_CLUSTER_TOLERANCE


def _cv(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    mean = statistics.fmean(values)
    if mean == 0:
        return 0.0
    return statistics.pstdev(values) / mean


def _mean(values: Sequence[float]) -> float:
    return statistics.fmean(values) if values else 0.0


# =============================================================================
# ROLES
# =============================================================================

def _is_alternating(laps: Sequence[_Analyzed]) -> bool:
    """Fast-slow-fast-slow: at least 60% of transitions change pace by >20 s/mi."""
    if len(laps) < 4:
        return False
    alternations = sum(1 for a, b in zip(laps, laps[1:]) if abs(b.pace - a.pace) > 20)
    return alternations >= (len(laps) - 1) * 0.6


def _assign_roles(segments: Sequence[SegmentData]) -> List[_Analyzed]:
    analyzed = [
        _Analyzed(
            distance_m=(s.distance_miles or 0) * METERS_PER_MILE,
            duration_s=s.duration_seconds or 0,
            pace=s.pace_seconds_per_mile or 0,
            segment=s,
        )
        for s in segments
    ]

    for lap in analyzed:
        if lap.distance_m < MIN_SEGMENT_METERS:
            lap.role = "skip"
            continue
        labels = {lap.segment.segment_type, lap.segment.pace_zone}
        if "warmup" in labels:
            lap.role = "warmup"
        elif "cooldown" in labels:
            lap.role = "cooldown"
        elif "recovery" in labels:
            lap.role = "rest"

    # Unlabeled laps: split reps from rest by pace
    unlabeled = [lap for lap in analyzed if lap.role == "work" and lap.pace > 0]
    if len(unlabeled) >= 4:
        by_pace = sorted(unlabeled, key=lambda lap: lap.pace)
        median = by_pace[len(by_pace) // 2].pace

        gaps = [(b.pace - a.pace, i) for i, (a, b) in enumerate(zip(by_pace, by_pace[1:]))]
        max_gap, gap_index = max(gaps, key=lambda g: g[0])
        if max_gap >= WORK_REST_PACE_GAP:
            fast_limit = by_pace[gap_index].pace
            for lap in unlabeled:
                if lap.pace > fast_limit:
                    lap.role = "rest"
        elif _is_alternating(unlabeled):
            for lap in unlabeled:
                if lap.pace > median + 15:
                    lap.role = "rest"

    # Slow first/last laps around a set are warmup/cooldown
    work = [lap for lap in analyzed if lap.role == "work"]
    if len(work) >= 3:
        avg_work_pace = _mean([lap.pace for lap in work])
        kept = [lap for lap in analyzed if lap.role != "skip"]
        first, last = kept[0], kept[-1]
        if first.role == "work" and first.pace > avg_work_pace + 30:
            first.role = "warmup"
        if last.role == "work" and last.pace > avg_work_pace + 30:
            last.role = "cooldown"

    return analyzed


# =============================================================================
# PATTERNS
# =============================================================================

def _cluster_by_distance(work: Sequence[_Analyzed]) -> List[_Cluster]:
    clusters: List[_Cluster] = []
    for lap in work:
        for cluster in clusters:
            if _distances_match(lap.distance_m, cluster.distance_m):
                cluster.members.append(lap)
                cluster.distance_m = _mean([m.distance_m for m in cluster.members])
                break
        else:
            clusters.append(_Cluster(distance_m=lap.distance_m, members=[lap]))

    # Most common distance first; ties keep first-seen order
    return sorted(clusters, key=lambda c: -c.count)


def _steps_up(distances: Sequence[float]) -> bool:
    return all(b >= a * 1.15 for a, b in zip(distances, distances[1:]))


def _steps_down(distances: Sequence[float]) -> bool:
    return all(b <= a * 0.85 for a, b in zip(distances, distances[1:]))


def _detect_ladder(work: Sequence[_Analyzed]) -> Optional[IntervalStructure]:
    """Ladder or pyramid, only when rep distances really vary (>=25% range)."""
    if len(work) < 3:
        return None

    distances = [lap.distance_m for lap in work]
    if min(distances) == 0 or max(distances) / min(distances) < 1.25:
        return None

    peak = distances.index(max(distances))
    if 0 < peak < len(distances) - 1:
        if _steps_up(distances[:peak + 1]) and _steps_down(distances[peak:]):
            return IntervalStructure.PYRAMID

    ascending = _steps_up(distances)
    descending = _steps_down(distances)
    if ascending != descending:
        return IntervalStructure.LADDER

    if len(work) >= 4:
        for turn in range(1, len(distances) - 1):
            if _steps_up(distances[:turn + 1]) and _steps_down(distances[turn:]):
                return IntervalStructure.LADDER

    return None


def _is_fartlek(work: Sequence[_Analyzed], rest: Sequence[_Analyzed]) -> bool:
    if len(work) < 3:
        return False
    distance_cv = _cv([lap.distance_m for lap in work])
    pace_cv = _cv([lap.pace for lap in work])
    few_rests = len(rest) < len(work) * 0.5
    return distance_cv > 0.3 and (few_rests or pace_cv > 0.1)


def unknown_pattern(description: str) -> IntervalPattern:
    return IntervalPattern(type=IntervalStructure.UNKNOWN, description=description)


def detect_interval_pattern(segments: Optional[Sequence[SegmentData]]) -> IntervalPattern:
    """
    Describe the interval structure of zone-labeled laps.

    Always returns a pattern; "unknown" carries the reason.
    """
    if not segments:
        return unknown_pattern("No segments available")
    if len(segments) == 1:
        return unknown_pattern("Single segment, no interval structure detectable")

    valid = [lap for lap in _assign_roles(segments) if lap.role != "skip"]
    if len(valid) < 2:
        return unknown_pattern("Insufficient valid segments after filtering")

    work = [lap for lap in valid if lap.role == "work"]
    rest = [lap for lap in valid if lap.role == "rest"]

    if len(work) < 2:
        if len(valid) <= 3:
            return unknown_pattern(
                f"{len(valid)} segments detected but unable to distinguish work from rest"
            )
        return unknown_pattern("Fewer than 2 work segments identified")

    work_distances = [lap.distance_m for lap in work]
    rest_distances = [lap.distance_m for lap in rest]
    work_paces = [lap.pace for lap in work if lap.pace > 0]
    rest_paces = [lap.pace for lap in rest if lap.pace > 0]

    avg_work_pace = _mean(work_paces)
    avg_rest_distance = _mean(rest_distances)
    avg_rest_pace = _mean(rest_paces)

    work_duration = sum(lap.duration_s for lap in work)
    rest_duration = sum(lap.duration_s for lap in rest)

    def build(structure: IntervalStructure, description: str) -> IntervalPattern:
        return IntervalPattern(
            type=structure,
            description=description,
            work_segments=len(work),
            rest_segments=len(rest),
            work_distance_avg=round(_mean(work_distances)),
            work_distance_total=round(sum(work_distances)),
            rest_distance_avg=round(avg_rest_distance),
            rest_distance_total=round(sum(rest_distances)),
            work_pace_avg=round(avg_work_pace),
            work_pace_fastest=round(min(work_paces)) if work_paces else 0,
            work_pace_slowest=round(max(work_paces)) if work_paces else 0,
            rest_pace_avg=round(avg_rest_pace),
            consistency=max(0.0, min(1.0, 1 - _cv(work_distances))),
            rest_to_work_ratio=round(rest_duration / work_duration, 2) if work_duration > 0 else 0.0,
        )

    pace_label = format_pace_per_mile(avg_work_pace)

    ladder = _detect_ladder(work)
    if ladder:
        labels = " - ".join(snap_to_standard_distance(d) for d in work_distances)
        prefix = "Pyramid" if ladder == IntervalStructure.PYRAMID else "Ladder"
        return build(ladder, f"{prefix}: {labels} @ {pace_label}")

    if _is_fartlek(work, rest):
        return build(
            IntervalStructure.FARTLEK,
            f"Fartlek: {len(work)} surges, avg {snap_to_standard_distance(_mean(work_distances))} @ {pace_label}",
        )

    clusters = _cluster_by_distance(work)

    if len(clusters) == 1:
        cluster = clusters[0]
        structure = (
            IntervalStructure.TEMPO_INTERVALS
            if cluster.distance_m >= TEMPO_INTERVAL_METERS
            else IntervalStructure.REPEAT
        )
        description = f"{cluster.count} x {snap_to_standard_distance(cluster.distance_m)} @ {pace_label}"
        if rest and avg_rest_distance > 0:
            rest_kind = "jog" if 0 < avg_rest_pace < 720 else "recovery"
            description += f" with {snap_to_standard_distance(avg_rest_distance)} {rest_kind}"
        return build(structure, description)

    if len(clusters) == 2:
        first, second = clusters
        return build(
            IntervalStructure.MIXED,
            f"Mixed: {first.count} x {snap_to_standard_distance(first.distance_m)} + "
            f"{second.count} x {snap_to_standard_distance(second.distance_m)} @ {pace_label}",
        )

    top_two = clusters[0].count + clusters[1].count
    if top_two >= len(work) * 0.6:
        parts = " + ".join(
            f"{c.count} x {snap_to_standard_distance(c.distance_m)}" for c in clusters if c.count >= 2
        )
        return build(
            IntervalStructure.MIXED,
            f"Mixed: {parts or f'{len(work)} varied intervals'} @ {pace_label}",
        )

    return build(
        IntervalStructure.FARTLEK,
        f"Fartlek: {len(work)} surges of varying distance @ {pace_label}",
    )
