"""
Effort Zone Classifier

Labels every lap of a run with an effort zone. Deterministic, no I/O.

Stages:
1. Resolve zone boundaries: VDOT table, manual paces, or the run's own laps
2. Infer run mode: easy_run / workout / race
3. Raw per-lap classification, then structural labels (warmup, cooldown,
   rest laps inside a workout)
4. Rolling 3-lap smoothing
5. Anomaly detection (GPS artifacts, laps too short to trust)
6. Contextual hysteresis near zone boundaries
7. Confidence scoring

All paces are seconds per mile; a larger number is a slower pace, so a lap
is in a zone when its pace is >= that zone's boundary. Boundaries are
shifted slower by the condition adjustment so a hot or hilly run is not
labeled harder than it was.
"""

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from services.workout_types import AthleteReference, SegmentData, WorkoutData

logger = logging.getLogger(__name__)


class EffortCategory(str, Enum):
    WARMUP = "warmup"
    COOLDOWN = "cooldown"
    RECOVERY = "recovery"
    EASY = "easy"
    STEADY = "steady"
    MARATHON = "marathon"
    TEMPO = "tempo"
    THRESHOLD = "threshold"
    INTERVAL = "interval"
    ANOMALY = "anomaly"


class RunMode(str, Enum):
    EASY_RUN = "easy_run"
    WORKOUT = "workout"
    RACE = "race"


# Labels shown next to split tables
CATEGORY_LABELS = {category: category.value.capitalize() for category in EffortCategory}

# Slowest to fastest
EFFORT_ORDER = [
    EffortCategory.EASY,
    EffortCategory.STEADY,
    EffortCategory.MARATHON,
    EffortCategory.TEMPO,
    EffortCategory.THRESHOLD,
    EffortCategory.INTERVAL,
]

SKIP_CATEGORIES = {
    EffortCategory.WARMUP,
    EffortCategory.COOLDOWN,
    EffortCategory.RECOVERY,
    EffortCategory.ANOMALY,
}

HARD_CATEGORIES = {EffortCategory.TEMPO, EffortCategory.THRESHOLD, EffortCategory.INTERVAL}

# Pace limits for a lap to count as actual running
MIN_VALID_PACE_S = 180
MAX_VALID_PACE_S = 900
DEFAULT_RECOVERY_PACE_S = 900
FALLBACK_PACE_S = 500
DEFAULT_LAP_PACE_S = 480
MIN_LAP_MILES = 0.15

PROMOTE_BUFFER_S = 5
DEMOTE_BUFFER_S = 3

# Plausible lap HR per category (bpm)
HR_RANGES = {
    EffortCategory.RECOVERY: (60, 130),
    EffortCategory.EASY: (90, 145),
    EffortCategory.STEADY: (120, 155),
    EffortCategory.MARATHON: (140, 165),
    EffortCategory.TEMPO: (150, 175),
    EffortCategory.THRESHOLD: (160, 185),
    EffortCategory.INTERVAL: (165, 200),
}

MAIN_BODY_ZONES = ("recovery", "easy", "steady", "marathon", "tempo", "threshold", "interval")
DISTRIBUTION_ZONES = MAIN_BODY_ZONES + ("warmup", "cooldown", "anomaly")

WORKOUT_HINTS = {"interval", "speed", "tempo", "threshold"}
EASY_HINTS = {"easy", "recovery"}


@dataclass
class ZoneBoundaries:
    """A lap with pace >= a boundary is at that effort or slower."""
    easy: float
    steady: float
    marathon: float
    tempo: float
    threshold: float
    interval: float
    recovery: Optional[float] = None

    def to_dict(self) -> Dict[str, float]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    def effort_boundaries(self) -> List[float]:
        return [self.easy, self.steady, self.marathon, self.tempo, self.threshold, self.interval]


@dataclass
class LapZone:
    segment_number: int
    category: EffortCategory
    label: str
    confidence: float
    raw_category: EffortCategory
    anomaly_reason: Optional[str] = None
    hr_agreement: Optional[bool] = None


@dataclass
class ZoneClassification:
    per_lap: List[LapZone] = field(default_factory=list)
    boundaries: Optional[ZoneBoundaries] = None
    run_mode: Optional[RunMode] = None


@dataclass
class _Lap:
    number: int
    distance: float
    duration: float
    pace: float
    avg_hr: Optional[int]

    @classmethod
    def from_segment(cls, segment: SegmentData) -> "_Lap":
        """Gaps filled with a 1-mile lap at 8:00/mi."""
        distance = segment.distance_miles or 1
        pace = segment.pace_seconds_per_mile or DEFAULT_LAP_PACE_S
        return cls(
            number=segment.segment_number,
            distance=distance,
            duration=segment.duration_seconds or pace * distance,
            pace=pace,
            avg_hr=segment.avg_hr,
        )


def _valid_paces(laps: Sequence[_Lap]) -> List[float]:
    return [lap.pace for lap in laps if MIN_VALID_PACE_S < lap.pace < MAX_VALID_PACE_S]


def _median(values: Sequence[float]) -> float:
    """Upper median, matching how split tables pick the middle lap."""
    ordered = sorted(values)
    return ordered[len(ordered) // 2]


# =============================================================================
# STAGE 1: BOUNDARIES
# =============================================================================

def resolve_zones(
    laps: Sequence[_Lap],
    reference: Optional[AthleteReference],
    avg_pace_seconds: Optional[float] = None,
    condition_adjustment: float = 0,
) -> ZoneBoundaries:
    """
    Zone boundaries, by priority:
    1. VDOT pace table
    2. Manual easy pace (other boundaries filled from it)
    3. Median of the run's own valid laps
    4. The workout's average pace (or 8:20/mi)
    """
    adj = condition_adjustment or 0

    zones = reference.pace_zones() if reference else None
    if zones:
        return ZoneBoundaries(
            recovery=zones.recovery + adj,
            easy=zones.easy + adj,
            steady=zones.general_aerobic + adj,
            marathon=zones.marathon + adj,
            tempo=zones.tempo + adj,
            threshold=zones.threshold + adj,
            interval=zones.interval + adj,
        )

    easy = reference.easy_pace_seconds if reference else None
    if easy and easy > 0:
        marathon = easy - 45
        tempo = reference.tempo_pace_seconds if reference.tempo_pace_seconds else marathon - 25
        threshold = reference.threshold_pace_seconds if reference.threshold_pace_seconds else tempo - 15
        interval = threshold - 15
        steady = round((easy + marathon) / 2)
        return ZoneBoundaries(
            easy=easy + adj,
            steady=steady + adj,
            marathon=marathon + adj,
            tempo=tempo + adj,
            threshold=threshold + adj,
            interval=interval + adj,
        )

    valid = _valid_paces(laps)
    if not valid:
        fallback = avg_pace_seconds or FALLBACK_PACE_S
        return ZoneBoundaries(
            easy=fallback + 40 + adj,
            steady=fallback + 10 + adj,
            marathon=fallback - 20 + adj,
            tempo=fallback - 45 + adj,
            threshold=fallback - 60 + adj,
            interval=fallback - 85 + adj,
        )

    median = _median(valid)
    return ZoneBoundaries(
        easy=median + 20 + adj,
        steady=median - 10 + adj,
        marathon=median - 30 + adj,
        tempo=median - 45 + adj,
        threshold=median - 60 + adj,
        interval=median - 85 + adj,
    )


# =============================================================================
# STAGE 2: RUN MODE
# =============================================================================

def infer_run_mode(laps: Sequence[_Lap], workout_type_hint: Optional[str], zones: ZoneBoundaries) -> RunMode:
    hint = (workout_type_hint or "").lower()
    if hint == "race":
        return RunMode.RACE
    if hint in WORKOUT_HINTS:
        return RunMode.WORKOUT
    if hint in EASY_HINTS:
        return RunMode.EASY_RUN

    valid = _valid_paces(laps)
    if len(valid) < 2:
        return RunMode.EASY_RUN

    mean = sum(valid) / len(valid)
    variance = sum((p - mean) ** 2 for p in valid) / len(valid)
    cv = variance ** 0.5 / mean
    fast_share = len([p for p in valid if p <= zones.tempo]) / len(valid)

    if cv > 0.08 and fast_share > 0.2:
        return RunMode.WORKOUT
    if fast_share > 0.7 and cv < 0.05:
        return RunMode.RACE
    return RunMode.EASY_RUN


# =============================================================================
# STAGE 3: RAW + STRUCTURAL
# =============================================================================

def classify_raw(pace: float, zones: ZoneBoundaries) -> EffortCategory:
    recovery = zones.recovery if zones.recovery is not None else DEFAULT_RECOVERY_PACE_S
    if pace > recovery:
        return EffortCategory.RECOVERY
    if pace >= zones.easy:
        return EffortCategory.EASY
    if pace >= zones.steady:
        return EffortCategory.STEADY
    if pace >= zones.marathon:
        return EffortCategory.MARATHON
    if pace >= zones.tempo:
        return EffortCategory.TEMPO
    if pace >= zones.threshold:
        return EffortCategory.THRESHOLD
    return EffortCategory.INTERVAL


def _detect_structural(
    laps: Sequence[_Lap],
    categories: List[EffortCategory],
    zones: ZoneBoundaries,
    run_mode: RunMode,
) -> List[EffortCategory]:
    result = list(categories)
    n = len(laps)
    if n < 5:
        return result

    valid = _valid_paces(laps)
    median = _median(valid) if valid else zones.steady

    # Warmup: opening lap(s) well off the median, but not rest-pace
    if median + 20 < laps[0].pace < MAX_VALID_PACE_S:
        result[0] = EffortCategory.WARMUP
        if n > 5 and median + 15 < laps[1].pace < MAX_VALID_PACE_S:
            result[1] = EffortCategory.WARMUP

    last, previous = laps[-1].pace, laps[-2].pace
    if median + 20 < last < MAX_VALID_PACE_S and last > previous + 10:
        result[-1] = EffortCategory.COOLDOWN

    # Marathon-distance races run faster than the VDOT marathon boundary
    # are still marathon effort
    if run_mode == RunMode.RACE and sum(lap.distance for lap in laps) >= 25:
        for i, lap in enumerate(laps):
            if result[i] == EffortCategory.TEMPO and zones.marathon - 40 <= lap.pace < zones.marathon:
                result[i] = EffortCategory.MARATHON

    if run_mode == RunMode.WORKOUT:
        for i, lap in enumerate(laps):
            if result[i] != EffortCategory.RECOVERY and lap.pace > zones.easy + 30:
                result[i] = EffortCategory.RECOVERY

    return result


# =============================================================================
# STAGE 4: SMOOTHING
# =============================================================================

def _smooth(categories: List[EffortCategory], anomalies: List[bool]) -> List[EffortCategory]:
    result = list(categories)
    for i in range(1, len(result) - 1):
        current = result[i]
        if current in SKIP_CATEGORIES or anomalies[i]:
            continue
        previous, following = result[i - 1], result[i + 1]
        if previous in SKIP_CATEGORIES or following in SKIP_CATEGORIES:
            continue
        if previous == following and current != previous:
            result[i] = previous
    return result


# =============================================================================
# STAGE 5: ANOMALIES
# =============================================================================

def _format_pace_short(seconds: float) -> str:
    minutes, secs = divmod(int(round(seconds)), 60)
    return f"{minutes}:{secs:02d}"


def detect_anomaly(lap: _Lap) -> Optional[str]:
    """Reason a lap cannot be trusted, or None."""
    if lap.pace < MIN_VALID_PACE_S:
        return f"Pace {_format_pace_short(lap.pace)} is below 3:00/mi, likely GPS artifact"
    # Short laps at slow pace are rest periods, not noise
    if lap.distance < MIN_LAP_MILES and lap.pace <= MAX_VALID_PACE_S:
        return f"Very short split ({lap.distance:.2f} mi), insufficient data"
    return None


# =============================================================================
# STAGE 6: HYSTERESIS
# =============================================================================

def _apply_hysteresis(
    laps: Sequence[_Lap],
    categories: List[EffortCategory],
    zones: ZoneBoundaries,
    run_mode: RunMode,
) -> List[EffortCategory]:
    result = list(categories)
    boundary_pairs = [
        (zones.easy, EffortCategory.STEADY, EffortCategory.EASY),
        (zones.steady, EffortCategory.MARATHON, EffortCategory.STEADY),
        (zones.marathon, EffortCategory.TEMPO, EffortCategory.MARATHON),
        (zones.tempo, EffortCategory.THRESHOLD, EffortCategory.TEMPO),
        (zones.threshold, EffortCategory.INTERVAL, EffortCategory.THRESHOLD),
    ]

    for i, lap in enumerate(laps):
        if result[i] in SKIP_CATEGORIES:
            continue
        pace = lap.pace
        previous = result[i - 1] if i > 0 else None

        # Stay in the previous lap's zone unless clearly across the boundary
        if previous is not None and previous in EFFORT_ORDER:
            for boundary, lower, upper in boundary_pairs:
                faster_by = boundary - pace
                if abs(faster_by) >= max(PROMOTE_BUFFER_S, DEMOTE_BUFFER_S):
                    continue
                if previous == upper and 0 < faster_by < PROMOTE_BUFFER_S:
                    result[i] = upper
                elif previous == lower and faster_by < 0 and abs(faster_by) < DEMOTE_BUFFER_S:
                    result[i] = lower

        if run_mode == RunMode.EASY_RUN:
            idx = EFFORT_ORDER.index(result[i])
            if idx >= 3:
                if idx == 3:
                    boundary = zones.tempo
                elif idx == 4:
                    boundary = zones.threshold
                else:
                    boundary = zones.threshold - 15
                if pace > boundary - PROMOTE_BUFFER_S:
                    result[i] = EFFORT_ORDER[idx - 1]

        elif run_mode == RunMode.RACE:
            counts: Dict[EffortCategory, int] = {}
            for category in result:
                if category not in SKIP_CATEGORIES:
                    counts[category] = counts.get(category, 0) + 1
            dominant, best = EffortCategory.STEADY, 0
            for category, count in counts.items():
                if count > best:
                    dominant, best = category, count

            current_idx = EFFORT_ORDER.index(result[i])
            dominant_idx = EFFORT_ORDER.index(dominant)
            if abs(current_idx - dominant_idx) == 1:
                pair_idx = min(current_idx, dominant_idx)
                if pair_idx < len(boundary_pairs) and abs(pace - boundary_pairs[pair_idx][0]) < 8:
                    result[i] = dominant

    # Rest laps between hard efforts
    if run_mode == RunMode.WORKOUT:
        for i in range(1, len(laps) - 1):
            if result[i] in SKIP_CATEGORIES:
                continue
            hard_before = result[i - 1] in HARD_CATEGORIES
            hard_after = result[i + 1] in HARD_CATEGORIES
            if hard_before and hard_after and result[i] in (EffortCategory.EASY, EffortCategory.STEADY):
                result[i] = EffortCategory.RECOVERY
            if (hard_before or hard_after) and laps[i].pace > zones.easy:
                result[i] = EffortCategory.RECOVERY

    return result


# =============================================================================
# STAGE 7: CONFIDENCE
# =============================================================================

def _neighbors_agree(category: EffortCategory, neighbors: Sequence[Optional[_Lap]], zones: ZoneBoundaries) -> bool:
    agree = total = 0
    for neighbor in neighbors:
        if neighbor is None or not MIN_VALID_PACE_S < neighbor.pace < MAX_VALID_PACE_S:
            continue
        total += 1
        if classify_raw(neighbor.pace, zones) == category:
            agree += 1
    return total == 0 or agree > 0


def hr_agrees(hr: int, category: EffortCategory) -> bool:
    hr_range = HR_RANGES.get(category)
    if hr_range is None:
        return True  # structural categories have no expected HR
    return hr_range[0] <= hr <= hr_range[1]


def _score_confidence(
    lap: _Lap,
    category: EffortCategory,
    raw_category: EffortCategory,
    zones: ZoneBoundaries,
    previous: Optional[_Lap],
    following: Optional[_Lap],
    is_anomaly: bool,
):
    if is_anomaly:
        return 0.2, None

    pace = lap.pace
    if category == EffortCategory.RECOVERY and pace > MAX_VALID_PACE_S:
        return 0.9, None

    confidence = 0.8
    nearest = min(abs(pace - b) for b in zones.effort_boundaries())
    if nearest > 15:
        confidence += 0.1
    if nearest < 5:
        confidence -= 0.2

    if not _neighbors_agree(category, (previous, following), zones):
        confidence -= 0.2

    if raw_category != category and category not in (
        EffortCategory.WARMUP, EffortCategory.COOLDOWN, EffortCategory.RECOVERY
    ):
        confidence -= 0.1

    hr_agreement = None
    if lap.avg_hr and lap.avg_hr > 0:
        hr_agreement = hr_agrees(lap.avg_hr, category)
        confidence += 0.1 if hr_agreement else -0.2

    if lap.distance < 0.5:
        confidence -= 0.1

    return max(0.2, min(1.0, round(confidence, 2))), hr_agreement


# =============================================================================
# ENTRY POINTS
# =============================================================================

def classify(
    segments: Sequence[SegmentData],
    reference: Optional[AthleteReference],
    workout_type_hint: Optional[str] = None,
    condition_adjustment: float = 0,
    avg_pace_seconds: Optional[float] = None,
) -> ZoneClassification:
    """
    Classify each lap into an effort zone.

    Returns one LapZone per input segment, in input order, plus the
    boundaries that were used.
    """
    if not segments:
        return ZoneClassification(per_lap=[], boundaries=ZoneBoundaries(0, 0, 0, 0, 0, 0))

    laps = [_Lap.from_segment(s) for s in segments]
    zones = resolve_zones(laps, reference, avg_pace_seconds, condition_adjustment)
    run_mode = infer_run_mode(laps, workout_type_hint, zones)

    categories = [classify_raw(lap.pace, zones) for lap in laps]
    categories = _detect_structural(laps, categories, zones, run_mode)
    raw_categories = list(categories)

    anomaly_reasons = [detect_anomaly(lap) for lap in laps]
    anomalies = [reason is not None for reason in anomaly_reasons]
    categories = [
        EffortCategory.ANOMALY if is_anomaly else category
        for category, is_anomaly in zip(categories, anomalies)
    ]

    categories = _smooth(categories, anomalies)
    categories = _apply_hysteresis(laps, categories, zones, run_mode)
    categories = [
        EffortCategory.ANOMALY if is_anomaly else category
        for category, is_anomaly in zip(categories, anomalies)
    ]

    per_lap = []
    for i, lap in enumerate(laps):
        confidence, hr_agreement = _score_confidence(
            lap,
            categories[i],
            raw_categories[i],
            zones,
            laps[i - 1] if i > 0 else None,
            laps[i + 1] if i < len(laps) - 1 else None,
            anomalies[i],
        )
        per_lap.append(LapZone(
            segment_number=lap.number,
            category=categories[i],
            label=CATEGORY_LABELS[categories[i]],
            confidence=confidence,
            raw_category=raw_categories[i],
            anomaly_reason=anomaly_reasons[i],
            hr_agreement=hr_agreement,
        ))

    logger.debug(f"Classified {len(per_lap)} laps in {run_mode.value} mode")
    return ZoneClassification(per_lap=per_lap, boundaries=zones, run_mode=run_mode)


def compute_zone_distribution(per_lap: Sequence[LapZone], segments: Sequence[SegmentData]) -> Dict[str, float]:
    """Minutes per zone (0.1 min precision), paired with segments by position."""
    distribution = {zone: 0.0 for zone in DISTRIBUTION_ZONES}
    for i, lap_zone in enumerate(per_lap):
        duration = (segments[i].duration_seconds or 0) if i < len(segments) else 0
        distribution[lap_zone.category.value] += duration / 60
    return {zone: round(minutes, 1) for zone, minutes in distribution.items()}


def dominant_zone(distribution: Dict[str, float]) -> Optional[str]:
    """Main-body zone with the most minutes, or None if nothing was classified."""
    main_body = {zone: distribution.get(zone, 0) for zone in MAIN_BODY_ZONES}
    zone, minutes = max(main_body.items(), key=lambda kv: kv[1])
    return zone if minutes > 0 else None


def derive_workout_type(distribution: Dict[str, float], workout: WorkoutData) -> str:
    """
    Workout type implied by where the time went.

    - Race and cross-training labels are kept as set
    - Warmup, cooldown and anomalies are excluded from the main body
    - Long: distance >= 9 mi or total time >= 75 min
    - Threshold-dominant runs are reported as tempo
    - Otherwise the majority zone, the dominant hard zone (>=20% hard), or easy
    """
    workout_type = (workout.workout_type or "").lower()
    if workout.is_race or workout.is_cross_training:
        return workout_type

    main_body = {zone: distribution.get(zone, 0) for zone in MAIN_BODY_ZONES}
    total_main = sum(main_body.values())
    if total_main == 0:
        return workout_type or "easy"

    total = total_main + distribution.get("warmup", 0) + distribution.get("cooldown", 0)
    if (workout.distance_miles and workout.distance_miles >= 9) or total >= 75:
        return "long"

    dominant, minutes = max(main_body.items(), key=lambda kv: kv[1])
    if dominant == "recovery":
        return "recovery"
    if dominant == "threshold":
        return "tempo"
    if minutes / total_main * 100 > 50:
        return dominant

    hard = main_body["tempo"] + main_body["threshold"] + main_body["interval"]
    if hard / total_main * 100 >= 20:
        hard_zones = [("interval", main_body["interval"]), ("tempo", main_body["tempo"] + main_body["threshold"])]
        return max(hard_zones, key=lambda kv: kv[1])[0]

    return "easy"
