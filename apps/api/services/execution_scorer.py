"""
Execution Scorer

Scores how well a completed workout matched its planned workout.

Components (weighted):
- Pace accuracy (30%): actual vs target pace, target adjusted for weather
- Zone adherence (25%): share of lap time in the workout's target zone
- Completion (25%): distance/duration achieved; for structured sessions,
  training-stimulus equivalence (4 x 1000m done for a planned 3 x 1200m)
- Consistency (20%): lap-pace coefficient of variation

Plus template feedback: diagnosis, one suggestion aimed at the weakest
component, highlights and concerns. Pure, no I/O.
"""

import json
import logging
import statistics
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from services.vdot_calculator import METERS_PER_MILE
from services.workout_types import AthleteReference, PlannedWorkoutData, SegmentData, WeatherData, WorkoutData

logger = logging.getLogger(__name__)

WEIGHTS = {
    "pace_accuracy": 0.30,
    "zone_adherence": 0.25,
    "completion_rate": 0.25,
    "consistency": 0.20,
}

# Reference paces when the athlete has none (s/mi)
DEFAULT_EASY_PACE = 540
DEFAULT_TEMPO_PACE = 450
DEFAULT_THRESHOLD_PACE = 420
DEFAULT_INTERVAL_TARGET_PACE = 360

TARGET_ZONES = {
    "easy": "easy",
    "recovery": "recovery",
    "long": "easy_aerobic",
    "tempo": "tempo",
    "threshold": "threshold",
    "interval": "vo2max",
    "race": "race",
    "steady": "aerobic",
}

EASY_WORKOUT_TYPES = {"easy", "recovery"}
STRUCTURAL_SEGMENT_TYPES = {"warmup", "cooldown", "recovery"}


@dataclass
class ExecutionScoreComponents:
    pace_accuracy: int
    zone_adherence: int
    completion_rate: int
    consistency: int

    def weighted_total(self) -> int:
        return round(sum(getattr(self, name) * weight for name, weight in WEIGHTS.items()))


@dataclass
class TrainingStimulusComparison:
    planned_work_miles: float
    actual_work_miles: float
    volume_match: float  # 0-1
    planned_work_pace: float
    actual_work_pace: float
    pace_match: float  # 0-1
    structure_equivalent: bool
    explanation: str


@dataclass
class ExecutionScore:
    overall: int  # 0-100
    components: ExecutionScoreComponents
    diagnosis: str
    suggestion: str
    highlights: List[str] = field(default_factory=list)
    concerns: List[str] = field(default_factory=list)


def _reference_paces(reference: Optional[AthleteReference]):
    if reference is None:
        return DEFAULT_EASY_PACE, DEFAULT_TEMPO_PACE, DEFAULT_THRESHOLD_PACE
    return (
        reference.easy_pace or DEFAULT_EASY_PACE,
        reference.tempo_pace or DEFAULT_TEMPO_PACE,
        reference.threshold_pace or DEFAULT_THRESHOLD_PACE,
    )


# =============================================================================
# PACE ACCURACY
# =============================================================================

def adjust_pace_for_conditions(base_pace: float, weather: Optional[WeatherData], workout_type: Optional[str]) -> int:
    """
    Target pace slowed for heat, cold, wind and humid heat.

    Easy/recovery runs take the full adjustment; quality sessions half.
    """
    if weather is None:
        return round(base_pace)

    percent = 0.0
    temp = weather.effective_temp_f
    if temp is not None:
        if temp > 75:
            percent += (temp - 75) * 0.5
        elif temp > 65:
            percent += (temp - 65) * 0.2
        elif temp < 35:
            percent += (35 - temp) * 0.3

    if weather.wind_mph and weather.wind_mph > 10:
        percent += (weather.wind_mph - 10) * 0.2

    if weather.humidity_pct and temp and temp > 70 and weather.humidity_pct > 60:
        percent += (weather.humidity_pct - 60) * 0.05

    multiplier = 1.0 if workout_type in EASY_WORKOUT_TYPES else 0.5
    return round(base_pace * (1 + percent / 100 * multiplier))


def compute_pace_accuracy(actual: WorkoutData, planned: PlannedWorkoutData, weather: Optional[WeatherData]) -> int:
    actual_pace = actual.avg_pace_seconds
    target_pace = planned.target_pace_seconds_per_mile
    if not actual_pace or not target_pace:
        return 75

    target = adjust_pace_for_conditions(target_pace, weather, planned.workout_type)
    deviation = abs(actual_pace - target) / target

    if deviation <= 0.02:
        return 100
    if deviation <= 0.05:
        return round(100 - (deviation - 0.02) * 333)
    if deviation <= 0.10:
        return round(90 - (deviation - 0.05) * 400)
    if deviation <= 0.20:
        return round(70 - (deviation - 0.10) * 200)
    return max(20, round(50 - (deviation - 0.20) * 100))


# =============================================================================
# ZONE ADHERENCE
# =============================================================================

def target_zone(workout_type: Optional[str]) -> str:
    return TARGET_ZONES.get(workout_type or "", "easy")


def is_in_zone(pace: float, zone: str, segment_type: Optional[str], reference: Optional[AthleteReference]) -> bool:
    easy, tempo, threshold = _reference_paces(reference)

    # Recovery/warmup/cooldown laps should be easy or slower
    if segment_type in STRUCTURAL_SEGMENT_TYPES:
        return pace >= easy * 0.95

    if zone in ("easy", "recovery"):
        return pace >= easy * 0.9
    if zone == "easy_aerobic":
        return easy * 0.85 <= pace <= easy * 1.1
    if zone == "aerobic":
        return tempo * 1.1 <= pace <= easy * 0.95
    if zone == "tempo":
        return tempo * 0.95 <= pace <= tempo * 1.05
    if zone == "threshold":
        return threshold * 0.95 <= pace <= threshold * 1.05
    if zone == "vo2max":
        return pace <= threshold * 0.95
    return True


def _estimate_zone_adherence(actual: WorkoutData, zone: str, reference: Optional[AthleteReference]) -> int:
    pace = actual.avg_pace_seconds
    if not pace:
        return 75
    easy, tempo, _ = _reference_paces(reference)

    if zone in ("easy", "recovery", "easy_aerobic"):
        if pace < easy * 0.85:
            return 60  # too fast
        if pace >= easy * 0.9:
            return 95
        return 80
    if zone in ("tempo", "threshold"):
        if pace > tempo * 1.1:
            return 60  # too slow
        if pace < tempo * 0.85:
            return 70
        return 90
    return 80


def compute_zone_adherence(
    actual: WorkoutData,
    planned: PlannedWorkoutData,
    segments: Optional[Sequence[SegmentData]],
    reference: Optional[AthleteReference],
) -> int:
    zone = target_zone(planned.workout_type)
    if not segments:
        return _estimate_zone_adherence(actual, zone, reference)

    in_zone = 0
    total = 0
    for segment in segments:
        duration = segment.duration_seconds or 0
        pace = segment.pace_seconds_per_mile
        if not duration or not pace:
            continue
        total += duration
        if is_in_zone(pace, zone, segment.segment_type, reference):
            in_zone += duration

    if total == 0:
        return 75
    return round(in_zone / total * 100)


# =============================================================================
# COMPLETION
# =============================================================================

def _completion_score(percent: float) -> int:
    if percent >= 95:
        return 100
    if percent >= 50:
        return round(percent)
    return round(percent * 0.8)


def compute_completion_rate(actual: WorkoutData, planned: PlannedWorkoutData) -> int:
    if planned.target_distance_miles and actual.distance_miles:
        return _completion_score(actual.distance_miles / planned.target_distance_miles * 100)
    if planned.target_duration_minutes and actual.duration_minutes:
        return _completion_score(actual.duration_minutes / planned.target_duration_minutes * 100)
    return 85


def _load_structure(structure: Any) -> Optional[Dict[str, Any]]:
    if structure is None:
        return None
    if isinstance(structure, dict):
        return structure
    try:
        parsed = json.loads(structure)
    except (TypeError, ValueError):
        logger.warning("Unreadable planned workout structure, ignoring")
        return None
    return parsed if isinstance(parsed, dict) else None


def planned_work_volume(structure: Any) -> float:
    """Miles of work in a planned structure: {"segments": [{"type": "intervals", ...}]}."""
    parsed = _load_structure(structure)
    if not parsed:
        return 0.0

    total = 0.0
    for segment in parsed.get("segments") or []:
        kind = segment.get("type")
        if kind == "intervals":
            repeats = segment.get("repeats") or 1
            if segment.get("workDistanceMeters"):
                total += segment["workDistanceMeters"] / METERS_PER_MILE * repeats
            elif segment.get("workDistanceMiles"):
                total += segment["workDistanceMiles"] * repeats
            elif segment.get("workDurationMinutes"):
                # ~6:00/mi for reps
                total += segment["workDurationMinutes"] / 6 * repeats
        elif kind in ("work", "steady"):
            if segment.get("distanceMiles"):
                total += segment["distanceMiles"]
            elif segment.get("distanceMeters"):
                total += segment["distanceMeters"] / METERS_PER_MILE
    return total


def actual_work_volume(segments: Sequence[SegmentData]):
    """(work miles, average work pace s/mi) over laps typed work/interval."""
    work = [s for s in segments if s.segment_type in ("work", "interval")]
    miles = sum(s.distance_miles or 0 for s in work)
    seconds = sum(s.duration_seconds or 0 for s in work)
    pace = seconds / miles if miles > 0 and seconds > 0 else 0.0
    return miles, pace


def compute_training_stimulus_comparison(
    planned: PlannedWorkoutData,
    segments: Optional[Sequence[SegmentData]],
) -> Optional[TrainingStimulusComparison]:
    """Did a differently structured session deliver the planned stimulus?"""
    if not planned.structure or not segments:
        return None

    planned_miles = planned_work_volume(planned.structure)
    if planned_miles == 0:
        return None

    actual_miles, actual_pace = actual_work_volume(segments)

    ratio = actual_miles / planned_miles
    if 0.8 <= ratio <= 1.2:
        volume_match = 1 - abs(1 - ratio) / 0.2 * 0.3
    else:
        volume_match = max(0.0, 1 - abs(1 - ratio))

    target_pace = planned.target_pace_seconds_per_mile or DEFAULT_INTERVAL_TARGET_PACE
    pace_deviation = abs(actual_pace - target_pace) / target_pace if actual_pace > 0 else 0.5
    pace_match = max(0.0, 1 - pace_deviation * 2)

    equivalent = volume_match >= 0.85 and pace_match >= 0.85
    if equivalent:
        explanation = (
            f"Completed {actual_miles:.1f}mi of work vs {planned_miles:.1f}mi planned, "
            f"equivalent training stimulus achieved"
        )
    elif volume_match >= 0.7:
        explanation = (
            f"Work volume slightly different ({actual_miles:.1f}mi vs {planned_miles:.1f}mi) "
            f"but pace on target"
        )
    elif pace_match >= 0.85:
        explanation = "Pace was excellent but volume differed significantly"
    else:
        explanation = "Both volume and pace differed from plan"

    return TrainingStimulusComparison(
        planned_work_miles=planned_miles,
        actual_work_miles=actual_miles,
        volume_match=volume_match,
        planned_work_pace=target_pace,
        actual_work_pace=actual_pace,
        pace_match=pace_match,
        structure_equivalent=equivalent,
        explanation=explanation,
    )


def compute_completion_with_stimulus(
    actual: WorkoutData,
    planned: PlannedWorkoutData,
    segments: Optional[Sequence[SegmentData]],
) -> int:
    stimulus = compute_training_stimulus_comparison(planned, segments)
    if stimulus is None:
        return compute_completion_rate(actual, planned)

    stimulus_score = stimulus.volume_match * 0.6 + stimulus.pace_match * 0.4
    if stimulus.structure_equivalent:
        return round(95 + stimulus_score * 5)
    return round(compute_completion_rate(actual, planned) * 0.4 + stimulus_score * 100 * 0.6)


# =============================================================================
# CONSISTENCY
# =============================================================================

def compute_consistency(segments: Optional[Sequence[SegmentData]]) -> int:
    if not segments or len(segments) < 3:
        return 80

    steady = [s for s in segments if s.segment_type in ("steady", "work")]
    if len(steady) < 2:
        return 85

    paces = [s.pace_seconds_per_mile for s in steady if s.pace_seconds_per_mile and s.pace_seconds_per_mile > 0]
    if len(paces) < 2:
        return 80

    cv = statistics.pstdev(paces) / statistics.fmean(paces)
    if cv < 0.03:
        return round(95 + (0.03 - cv) * 166)
    if cv < 0.05:
        return round(85 + (0.05 - cv) * 500)
    if cv < 0.08:
        return round(70 + (0.08 - cv) * 500)
    return max(30, round(70 - (cv - 0.08) * 500))


# =============================================================================
# FEEDBACK
# =============================================================================

def _diagnosis(overall: int, weather: Optional[WeatherData]) -> str:
    if overall >= 90:
        text = "Excellent execution. You nailed this workout."
    elif overall >= 80:
        text = "Solid execution with minor areas to refine."
    elif overall >= 70:
        text = "Decent effort but room for improvement."
    elif overall >= 60:
        text = "Workout deviated from plan - consider what affected execution."
    else:
        text = "Challenging day. Sometimes the body needs different than planned."

    if weather is not None:
        if weather.temp_f and weather.temp_f > 80:
            text += " Hot conditions likely affected performance."
        elif weather.wind_mph and weather.wind_mph > 15:
            text += " Strong wind made this tougher than usual."
    return text


def _suggestion(components: ExecutionScoreComponents, actual: WorkoutData, planned: PlannedWorkoutData) -> str:
    scores = asdict(components)
    weakest = min(scores, key=scores.get)

    if weakest == "pace_accuracy":
        actual_pace = actual.avg_pace_seconds
        target_pace = planned.target_pace_seconds_per_mile
        if actual_pace and target_pace:
            if actual_pace < target_pace:
                return "Try starting more conservatively next time to better hit target pace."
            return "Review target pace - it may need adjustment based on current fitness."
        return "Focus on hitting target pace more precisely."
    if weakest == "zone_adherence":
        return "Use a watch or app to monitor effort and stay in the right zone throughout."
    if weakest == "completion_rate":
        return "If you need to cut short, prioritize completing the key portions of the workout."
    return "Try to start slightly slower and maintain even effort throughout."


def _highlights_and_concerns(
    components: ExecutionScoreComponents,
    actual: WorkoutData,
    planned: PlannedWorkoutData,
    stimulus: Optional[TrainingStimulusComparison],
):
    highlights: List[str] = []
    concerns: List[str] = []

    if components.pace_accuracy >= 90:
        highlights.append("Excellent pace control")
    elif components.pace_accuracy < 70:
        actual_pace = actual.avg_pace_seconds
        target_pace = planned.target_pace_seconds_per_mile
        if actual_pace and target_pace:
            concerns.append(
                "Ran faster than target pace" if actual_pace < target_pace else "Ran slower than target pace"
            )

    if components.zone_adherence >= 90:
        highlights.append("Stayed in target training zone")
    elif components.zone_adherence < 70:
        concerns.append("Spent significant time outside target zone")

    if stimulus and stimulus.structure_equivalent:
        highlights.append("Training stimulus achieved despite different structure")
    elif components.completion_rate >= 95:
        highlights.append("Completed full workout")
    elif stimulus and stimulus.volume_match >= 0.8:
        highlights.append("Similar work volume completed")
    elif components.completion_rate < 80:
        concerns.append("Cut workout short")

    if components.consistency >= 90:
        highlights.append("Very consistent pacing")
    elif components.consistency < 70:
        concerns.append("Pace varied significantly")

    return highlights, concerns


# =============================================================================
# ENTRY POINT
# =============================================================================

def compute_execution_score(
    actual: WorkoutData,
    planned: PlannedWorkoutData,
    segments: Optional[Sequence[SegmentData]] = None,
    weather: Optional[WeatherData] = None,
    reference: Optional[AthleteReference] = None,
) -> ExecutionScore:
    """Score a completed workout against its plan."""
    if planned.structure:
        completion = compute_completion_with_stimulus(actual, planned, segments)
    else:
        completion = compute_completion_rate(actual, planned)

    components = ExecutionScoreComponents(
        pace_accuracy=compute_pace_accuracy(actual, planned, weather),
        zone_adherence=compute_zone_adherence(actual, planned, segments, reference),
        completion_rate=completion,
        consistency=compute_consistency(segments),
    )
    overall = components.weighted_total()

    stimulus = compute_training_stimulus_comparison(planned, segments) if planned.structure else None
    highlights, concerns = _highlights_and_concerns(components, actual, planned, stimulus)

    return ExecutionScore(
        overall=overall,
        components=components,
        diagnosis=_diagnosis(overall, weather),
        suggestion=_suggestion(components, actual, planned),
        highlights=highlights,
        concerns=concerns,
    )


def serialize_execution_details(score: ExecutionScore) -> Dict[str, Any]:
    """Stored JSON shape: {overall, components, highlights, concerns}."""
    c = score.components
    return {
        "overall": score.overall,
        "components": {
            "paceAccuracy": c.pace_accuracy,
            "zoneAdherence": c.zone_adherence,
            "completionRate": c.completion_rate,
            "consistency": c.consistency,
        },
        "highlights": list(score.highlights),
        "concerns": list(score.concerns),
    }


def parse_execution_details(raw: Any) -> Optional[Dict[str, Any]]:
    if raw is None:
        return None
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None
