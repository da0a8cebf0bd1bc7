"""
Run Classification Service

Automatically classifies runs into categories based on what the data shows.

Uses a hierarchical approach (first match wins):
1. Explicit overrides (cross-training, races)
2. Structural signals from laps (intervals, progression, fartlek, hills)
3. Duration/distance dominance (long runs)
4. Average pace vs the athlete's reference zones

Every branch carries a confidence and, where the call is genuinely
ambiguous, the alternative categories that were considered. The classifier
is total: missing reference paces or missing pace produce a low-confidence
best guess, never an error.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence
import statistics

from services.vdot_calculator import PaceZones, format_pace
from services.workout_types import AthleteReference, SegmentData, WorkoutData, lap_paces


class RunCategory(str, Enum):
    """Closed set of run categories"""
    EASY = "easy"
    RECOVERY = "recovery"
    LONG_RUN = "long_run"
    TEMPO = "tempo"
    THRESHOLD = "threshold"
    PROGRESSION = "progression"
    FARTLEK = "fartlek"
    INTERVALS = "intervals"
    HILL_REPEATS = "hill_repeats"
    RACE = "race"
    SHAKEOUT = "shakeout"
    CROSS_TRAINING = "cross_training"


class PaceZone(str, Enum):
    RECOVERY = "recovery"
    EASY = "easy"
    AEROBIC = "aerobic"
    MARATHON = "marathon"
    TEMPO = "tempo"
    THRESHOLD = "threshold"
    VO2MAX = "vo2max"
    FASTER = "faster"
    RACE = "race"
    NOT_APPLICABLE = "n/a"
    UNKNOWN = "unknown"


EASY_ZONES = {PaceZone.EASY, PaceZone.RECOVERY, PaceZone.AEROBIC}

# Structure thresholds
PROGRESSION_TOLERANCE_S = 10
PROGRESSION_MIN_SPREAD_S = 30
STEADY_CV = 0.05
HIGHLY_VARIABLE_CV = 0.15
MIN_RUN_DISTANCE = 0.5

# Long-run thresholds
LONG_RUN_MINUTES = 90
LONG_RUN_MILES = 13
MEDIUM_LONG_MILES = 10
SHORT_RUN_MILES = 4

# Race distance windows (miles)
RACE_DISTANCES = (
    ((26.0, 26.5), "Marathon"),
    ((13.0, 13.2), "Half marathon"),
    ((6.1, 6.3), "10K"),
    ((3.0, 3.2), "5K"),
)


@dataclass
class ClassificationSignals:
    """What the classifier looked at"""
    pace_zone: str
    duration_category: str  # short, medium, long, very_long
    hr_zone: Optional[str] = None  # zone1..zone5 (internal only)
    structure_type: Optional[str] = None  # steady, intervals, progression, varied
    elevation_profile: Optional[str] = None  # flat, rolling, hilly, very_hilly
    pace_variability: Optional[str] = None  # steady, variable, highly_variable

    def to_dict(self) -> dict:
        return {k: v for k, v in self.__dict__.items() if v is not None}


@dataclass
class AlternativeCategory:
    category: RunCategory
    confidence: float


@dataclass
class ClassificationResult:
    """Result of run classification"""
    category: RunCategory
    confidence: float  # 0-1
    summary: str
    signals: ClassificationSignals
    alternative_categories: List[AlternativeCategory] = field(default_factory=list)


def _alt(category: RunCategory, confidence: float) -> AlternativeCategory:
    return AlternativeCategory(category, confidence)


# =============================================================================
# SIGNALS
# =============================================================================

def duration_category(minutes: float) -> str:
    if minutes < 30:
        return "short"
    if minutes < 60:
        return "medium"
    if minutes < 90:
        return "long"
    return "very_long"


def elevation_profile(workout: WorkoutData) -> str:
    gain = workout.elevation_gain_ft or 0
    distance = workout.distance_miles or 1
    gain_per_mile = gain / distance

    if gain_per_mile < 50:
        return "flat"
    if gain_per_mile < 100:
        return "rolling"
    if gain_per_mile < 200:
        return "hilly"
    return "very_hilly"


def pace_variability(segments: Optional[Sequence[SegmentData]]) -> str:
    """Coefficient-of-variation bucket of lap paces."""
    paces = lap_paces(segments)
    if len(paces) < 2:
        return "steady"

    cv = statistics.pstdev(paces) / statistics.fmean(paces)
    if cv < STEADY_CV:
        return "steady"
    if cv < HIGHLY_VARIABLE_CV:
        return "variable"
    return "highly_variable"


def detect_structure(segments: Optional[Sequence[SegmentData]]) -> str:
    if not segments or len(segments) < 3:
        return "steady"

    work = [s for s in segments if s.segment_type == "work"]
    recovery = [s for s in segments if s.segment_type == "recovery"]
    if len(work) >= 3 and len(recovery) >= 2:
        return "intervals"

    paces = lap_paces(segments)
    if len(paces) >= 3:
        # Each lap no slower than the previous (with tolerance), and a real spread
        steady_or_faster = all(
            current <= previous + PROGRESSION_TOLERANCE_S
            for previous, current in zip(paces, paces[1:])
        )
        if steady_or_faster and paces[0] - paces[-1] > PROGRESSION_MIN_SPREAD_S:
            return "progression"

    if pace_variability(segments) == "highly_variable":
        return "varied"

    return "steady"


def hr_zone(avg_hr: int, resting_hr: int, age: int) -> str:
    """Heart-rate-reserve band, zone1..zone5."""
    max_hr = 220 - age
    reserve = max_hr - resting_hr
    if reserve <= 0:
        return "zone5"
    intensity = (avg_hr - resting_hr) / reserve * 100

    if intensity < 60:
        return "zone1"
    if intensity < 70:
        return "zone2"
    if intensity < 80:
        return "zone3"
    if intensity < 90:
        return "zone4"
    return "zone5"


def _zone_from_vdot(pace: int, zones: PaceZones) -> PaceZone:
    if pace >= zones.recovery:
        return PaceZone.RECOVERY
    if pace >= zones.easy:
        return PaceZone.EASY
    if pace >= zones.general_aerobic:
        return PaceZone.AEROBIC
    if pace >= zones.marathon:
        return PaceZone.MARATHON
    if pace >= zones.tempo:
        return PaceZone.TEMPO
    if pace >= zones.threshold:
        return PaceZone.THRESHOLD
    if pace >= zones.vo2max:
        return PaceZone.VO2MAX
    return PaceZone.FASTER


def _zone_from_explicit(pace: int, reference: AthleteReference) -> PaceZone:
    easy = reference.easy_pace_seconds
    tempo = reference.tempo_pace_seconds
    threshold = reference.threshold_pace_seconds

    if pace > easy * 1.1:
        return PaceZone.RECOVERY
    if pace >= easy * 0.95:
        return PaceZone.EASY
    if not tempo or pace > tempo * 1.05:
        return PaceZone.AEROBIC
    if pace >= tempo * 0.95:
        return PaceZone.TEMPO
    if not threshold or pace >= threshold * 0.95:
        return PaceZone.THRESHOLD
    return PaceZone.FASTER


def pace_zone(workout: WorkoutData, reference: Optional[AthleteReference]) -> PaceZone:
    """
    Zone of the average pace against the athlete's reference.

    VDOT zones are preferred; explicit paces need at least an easy pace.
    """
    pace = workout.avg_pace_seconds
    if not pace or reference is None:
        return PaceZone.UNKNOWN

    zones = reference.pace_zones()
    if zones:
        return _zone_from_vdot(pace, zones)
    if reference.easy_pace_seconds:
        return _zone_from_explicit(pace, reference)
    return PaceZone.UNKNOWN


# =============================================================================
# CLASSIFICATION
# =============================================================================

def classify_run(
    workout: WorkoutData,
    reference: Optional[AthleteReference],
    segments: Optional[Sequence[SegmentData]] = None,
) -> ClassificationResult:
    """
    Classify a workout into a RunCategory.

    Deterministic and total: always returns a result.
    """
    duration = workout.duration_minutes or 0

    # An explicit race label wins over everything, even a missing distance
    if workout.is_race:
        return ClassificationResult(
            category=RunCategory.RACE,
            confidence=0.98,
            summary=_race_summary(workout),
            signals=ClassificationSignals(
                pace_zone=PaceZone.RACE.value,
                duration_category=duration_category(duration),
            ),
            alternative_categories=[_alt(RunCategory.TEMPO, 0.1), _alt(RunCategory.THRESHOLD, 0.05)],
        )

    if workout.is_cross_training or not workout.distance_miles or workout.distance_miles < MIN_RUN_DISTANCE:
        return ClassificationResult(
            category=RunCategory.CROSS_TRAINING,
            confidence=0.95,
            summary=_cross_training_summary(workout),
            signals=ClassificationSignals(
                pace_zone=PaceZone.NOT_APPLICABLE.value,
                duration_category=duration_category(duration),
            ),
            alternative_categories=[_alt(RunCategory.RECOVERY, 0.1)],
        )

    zone = pace_zone(workout, reference)
    signals = ClassificationSignals(
        pace_zone=zone.value,
        duration_category=duration_category(duration),
        structure_type=detect_structure(segments),
        elevation_profile=elevation_profile(workout),
        pace_variability=pace_variability(segments),
    )
    if workout.avg_hr and reference and reference.resting_hr:
        signals.hr_zone = hr_zone(workout.avg_hr, reference.resting_hr, reference.age or 30)

    category, confidence, alternatives = _determine_category(workout, signals, zone)
    return ClassificationResult(
        category=category,
        confidence=confidence,
        summary=generate_summary(workout, category),
        signals=signals,
        alternative_categories=alternatives,
    )


def _determine_category(workout: WorkoutData, signals: ClassificationSignals, zone: PaceZone):
    distance = workout.distance_miles or 0
    duration = workout.duration_minutes or 0

    # Structural signals first (highest specificity)
    if signals.structure_type == "intervals":
        return RunCategory.INTERVALS, 0.9, [_alt(RunCategory.FARTLEK, 0.3)]

    if signals.structure_type == "progression":
        return RunCategory.PROGRESSION, 0.85, [_alt(RunCategory.TEMPO, 0.4)]

    if signals.structure_type == "varied" or signals.pace_variability == "highly_variable":
        return RunCategory.FARTLEK, 0.75, [
            _alt(RunCategory.INTERVALS, 0.4),
            _alt(RunCategory.EASY, 0.3),
        ]

    if signals.elevation_profile == "very_hilly" and signals.pace_variability != "steady":
        return RunCategory.HILL_REPEATS, 0.7, [_alt(RunCategory.EASY, 0.4)]

    easy_paced = zone in EASY_ZONES

    if duration >= LONG_RUN_MINUTES or distance >= LONG_RUN_MILES:
        if easy_paced:
            return RunCategory.LONG_RUN, 0.9, [_alt(RunCategory.EASY, 0.3)]
        return RunCategory.LONG_RUN, 0.75, [_alt(RunCategory.TEMPO, 0.3)]

    if easy_paced and (signals.duration_category == "long" or distance >= MEDIUM_LONG_MILES):
        return RunCategory.LONG_RUN, 0.8, [_alt(RunCategory.EASY, 0.5)]

    # Pace-based classification for steady runs
    if zone == PaceZone.RECOVERY:
        if distance < SHORT_RUN_MILES and duration < 30:
            return RunCategory.SHAKEOUT, 0.8, [_alt(RunCategory.RECOVERY, 0.6)]
        return RunCategory.RECOVERY, 0.85, [_alt(RunCategory.EASY, 0.4)]

    if zone in (PaceZone.EASY, PaceZone.AEROBIC):
        if distance < SHORT_RUN_MILES:
            return RunCategory.EASY, 0.85, [_alt(RunCategory.SHAKEOUT, 0.3)]
        return RunCategory.EASY, 0.9, [_alt(RunCategory.RECOVERY, 0.2)]

    if zone == PaceZone.MARATHON:
        # Genuinely ambiguous between steady aerobic and tempo effort
        return RunCategory.EASY, 0.7, [_alt(RunCategory.TEMPO, 0.4)]

    if zone == PaceZone.TEMPO:
        return RunCategory.TEMPO, 0.85, [_alt(RunCategory.THRESHOLD, 0.3)]

    if zone == PaceZone.THRESHOLD:
        return RunCategory.THRESHOLD, 0.85, [_alt(RunCategory.TEMPO, 0.4)]

    if zone in (PaceZone.VO2MAX, PaceZone.FASTER):
        return RunCategory.THRESHOLD, 0.7, [_alt(RunCategory.INTERVALS, 0.4)]

    return RunCategory.EASY, 0.5, [
        _alt(RunCategory.TEMPO, 0.3),
        _alt(RunCategory.RECOVERY, 0.3),
    ]


# =============================================================================
# SUMMARIES
# =============================================================================

def generate_summary(workout: WorkoutData, category: RunCategory) -> str:
    """Human-readable one-liner, e.g. "Tempo 6.0-mile at 7:12 pace"."""
    distance = workout.distance_miles
    pace = workout.avg_pace_seconds

    distance_str = f"{distance:.1f}-mile" if distance else ""
    miles_str = f" of {distance:.1f} miles" if distance else ""
    pace_str = format_pace(pace) if pace else ""

    if category == RunCategory.EASY:
        if distance_str and pace_str:
            return f"Easy {distance:.1f}-miler at {pace_str} pace"
        return f"Easy run{miles_str}"

    if category == RunCategory.RECOVERY:
        return f"Recovery {distance_str or 'run'}" + (f" at relaxed {pace_str} pace" if pace_str else "")

    if category == RunCategory.LONG_RUN:
        return f"Long run{miles_str}" + (f" averaging {pace_str}" if pace_str else "")

    if category == RunCategory.TEMPO:
        return f"Tempo {distance_str or 'run'}" + (f" at {pace_str} pace" if pace_str else "")

    if category == RunCategory.THRESHOLD:
        return f"Threshold {distance_str or 'run'}" + (f" at {pace_str} pace" if pace_str else "")

    if category == RunCategory.PROGRESSION:
        return f"Progression run{miles_str}"

    if category == RunCategory.FARTLEK:
        return f"Fartlek {distance_str or 'session'} with varied pacing"

    if category == RunCategory.INTERVALS:
        return "Interval workout" + (f" totaling {distance:.1f} miles" if distance else "")

    if category == RunCategory.HILL_REPEATS:
        return f"Hill workout{miles_str} ({workout.elevation_gain_ft or 0}ft gain)"

    if category == RunCategory.RACE:
        return _race_summary(workout)

    if category == RunCategory.SHAKEOUT:
        return f"Shakeout {distance_str or 'jog'}" + (f" at easy {pace_str} pace" if pace_str else "")

    if category == RunCategory.CROSS_TRAINING:
        return _cross_training_summary(workout)

    return f"{distance_str} run".strip()


def _cross_training_summary(workout: WorkoutData) -> str:
    if workout.duration_minutes:
        return f"Cross-training session ({round(workout.duration_minutes)} minutes)"
    return "Cross-training session"


def _race_summary(workout: WorkoutData) -> str:
    distance = workout.distance_miles
    summary = "Race"
    if distance:
        summary = f"{distance:.1f}-mile race"
        for (low, high), name in RACE_DISTANCES:
            if low <= distance <= high:
                summary = name
                break

    if workout.avg_pace_seconds:
        summary += f" at {format_pace(workout.avg_pace_seconds)} pace"
    return summary
