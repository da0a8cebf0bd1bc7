"""
Data Quality Checker

Rates how far each sensor stream of a workout can be trusted before the
rest of the pipeline draws conclusions from it.

Three independent sub-analyses:
- GPS: distance integrity (dropouts, drift, distance/time mismatch)
- HR: strap/sensor integrity (implausible values, dropouts, spikes)
- Pace: split reliability (treadmill, GPS drift, discontinuities)

Design:
- Pure: no I/O, no store access. Same input -> same output.
- Never raises. Missing data is a rating ("missing"), implausible data is
  a named flag with a user-facing recommendation, and an unexpected
  failure inside one sub-analysis degrades only that sub-analysis to its
  most conservative rating.
- The overall score weights GPS highest because most outdoor-run metrics
  (pace, distance, route matching) derive from it.
"""
import json
import logging
import statistics
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from services.workout_types import SegmentData, WorkoutData, lap_paces

logger = logging.getLogger(__name__)


class GPSQuality(str, Enum):
    GOOD = "good"
    NOISY = "noisy"
    MISSING = "missing"


class HRQuality(str, Enum):
    GOOD = "good"
    DROPOUTS = "dropouts"
    ERRATIC = "erratic"
    MISSING = "missing"


class PaceReliability(str, Enum):
    GOOD = "good"
    TREADMILL = "treadmill"
    GPS_DRIFT = "gps_drift"


GPS_SCORES = {GPSQuality.GOOD: 100, GPSQuality.NOISY: 60, GPSQuality.MISSING: 30}
HR_SCORES = {HRQuality.GOOD: 100, HRQuality.DROPOUTS: 70, HRQuality.ERRATIC: 50, HRQuality.MISSING: 40}
PACE_SCORES = {PaceReliability.GOOD: 100, PaceReliability.TREADMILL: 80, PaceReliability.GPS_DRIFT: 50}

GPS_WEIGHT = 0.4
HR_WEIGHT = 0.3
PACE_WEIGHT = 0.3

# Physiological limits
MIN_PLAUSIBLE_PACE_S = 180  # 3:00/mi
MIN_WORKOUT_PACE_S = 240  # 4:00/mi for a whole workout
MAX_LAP_PACE_S = 900  # 15:00/mi
MIN_AVG_HR = 80
MAX_AVG_HR = 220
MAX_HR_SPIKE = 250
MIN_LAP_HR = 60

PACE_MISMATCH_S = 30
PACE_DISCONTINUITY_S = 120
SIGNAL_LOSS_SHARE = 0.2
HR_SPIKE_RATIO = 1.3
HR_SPIKE_SHARE = 0.1
PACE_CV_DRIFT = 0.25


@dataclass
class SubAnalysis:
    rating: Enum
    flags: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


@dataclass
class DataQualityFlags:
    gps_quality: GPSQuality
    hr_quality: HRQuality
    pace_reliability: PaceReliability
    flags: List[str]
    overall_score: int
    recommendations: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gps": self.gps_quality.value,
            "hr": self.hr_quality.value,
            "pace": self.pace_reliability.value,
            "flags": list(self.flags),
            "score": self.overall_score,
        }


def _is_treadmill_without_gps(workout: WorkoutData) -> bool:
    return workout.source == "manual" and not workout.elevation_gain_ft and not workout.route_name


def _is_treadmill(workout: WorkoutData) -> bool:
    if workout.source == "manual" and not workout.elevation_gain_ft:
        return True
    text = f"{workout.notes or ''} {workout.route_name or ''}".lower()
    return "treadmill" in text


def _pace_mismatch(workout: WorkoutData) -> bool:
    calculated = workout.computed_pace_seconds
    if calculated is None or not workout.avg_pace_seconds:
        return False
    return abs(calculated - workout.avg_pace_seconds) > PACE_MISMATCH_S


def analyze_gps(workout: WorkoutData, segments: Optional[Sequence[SegmentData]] = None) -> SubAnalysis:
    # Treadmill runs are expected to lack GPS: rated missing, nothing to fix
    if _is_treadmill_without_gps(workout):
        return SubAnalysis(GPSQuality.MISSING)

    if not workout.distance_miles:
        return SubAnalysis(
            GPSQuality.MISSING,
            ["no_gps_data"],
            ["No distance recorded - GPS data unavailable for pace analysis"],
        )

    result = SubAnalysis(GPSQuality.GOOD)

    paces = lap_paces(segments)
    if len(paces) >= 3:
        mean_pace = statistics.fmean(paces)
        suspicious = [p for p in paces if p < mean_pace * 0.5 or p > mean_pace * 2]
        if len(suspicious) > len(paces) * SIGNAL_LOSS_SHARE:
            result.rating = GPSQuality.NOISY
            result.flags.append("gps_signal_loss")
            result.recommendations.append(
                "Significant GPS dropouts detected - check for tunnels or tall buildings"
            )
        elif suspicious:
            result.flags.append("gps_minor_issues")

    if any(p < MIN_PLAUSIBLE_PACE_S for p in paces):
        result.rating = GPSQuality.NOISY
        result.flags.append("gps_drift_detected")
        result.recommendations.append("GPS drift detected - some split paces appear unrealistic")

    # Informational: a mismatch alone does not downgrade the rating
    if _pace_mismatch(workout):
        result.flags.append("distance_time_mismatch")

    calculated = workout.computed_pace_seconds
    if calculated is not None and calculated < MIN_WORKOUT_PACE_S:
        result.rating = GPSQuality.NOISY
        result.flags.append("unrealistic_distance")
        result.recommendations.append(
            "Recorded distance seems too high for duration - verify GPS accuracy"
        )

    return result


def analyze_hr(workout: WorkoutData, segments: Optional[Sequence[SegmentData]] = None) -> SubAnalysis:
    avg_hr = workout.avg_hr
    if not avg_hr:
        return SubAnalysis(
            HRQuality.MISSING,
            ["no_hr_data"],
            ["Consider using a heart rate monitor for better training insights"],
        )

    result = SubAnalysis(HRQuality.GOOD)
    erratic = False

    if avg_hr < MIN_AVG_HR:
        erratic = True
        result.flags.append("hr_unrealistically_low")
        result.recommendations.append("Average HR seems too low - check sensor placement")
    elif avg_hr > MAX_AVG_HR:
        erratic = True
        result.flags.append("hr_unrealistically_high")
        result.recommendations.append(
            "Average HR exceeds physiological maximum - possible sensor error"
        )

    max_hr = workout.max_hr
    if max_hr:
        if max_hr > MAX_HR_SPIKE:
            erratic = True
            result.flags.append("max_hr_spike")
            result.recommendations.append("Max HR spike detected - may be sensor interference")
        if max_hr < avg_hr:
            erratic = True
            result.flags.append("hr_data_inconsistent")
            result.recommendations.append(
                "Max HR is below average HR - sensor data is internally inconsistent"
            )
        elif max_hr - avg_hr > 80:
            result.flags.append("hr_high_variance")

    lap_hrs = [s.avg_hr for s in segments or [] if s.avg_hr]
    dropouts = [hr for hr in lap_hrs if hr < MIN_LAP_HR]
    if dropouts:
        result.flags.append("hr_dropouts")
        result.recommendations.append(
            f"{len(dropouts)} segment(s) show HR dropouts - check strap/sensor contact"
        )

    spikes = False
    if lap_hrs:
        lap_mean = statistics.fmean(lap_hrs)
        spiking = [hr for hr in lap_hrs if hr > lap_mean * HR_SPIKE_RATIO]
        if len(spiking) > len(lap_hrs) * HR_SPIKE_SHARE:
            spikes = True
            result.flags.append("hr_spikes")

    # Invalid averages outrank everything; dropouts outrank generic spikes
    if erratic:
        result.rating = HRQuality.ERRATIC
    elif dropouts:
        result.rating = HRQuality.DROPOUTS
    elif spikes:
        result.rating = HRQuality.ERRATIC

    return result


def analyze_pace(workout: WorkoutData, segments: Optional[Sequence[SegmentData]] = None) -> SubAnalysis:
    result = SubAnalysis(PaceReliability.GOOD)

    if _is_treadmill(workout):
        result.rating = PaceReliability.TREADMILL
        result.flags.append("treadmill_pace")
        result.recommendations.append(
            "Treadmill pace may differ from outdoor - use for relative comparison only"
        )
    else:
        paces = lap_paces(segments)
        if len(paces) >= 3:
            mean_pace = statistics.fmean(paces)
            cv = statistics.pstdev(paces) / mean_pace
            if cv > PACE_CV_DRIFT:
                result.flags.append("pace_high_variance")
                if any(p < MIN_WORKOUT_PACE_S or p > MAX_LAP_PACE_S for p in paces):
                    result.rating = PaceReliability.GPS_DRIFT
                    result.flags.append("gps_drift")
                    result.recommendations.append(
                        "Pace data shows possible GPS drift - take split times with caution"
                    )

        if any(abs(b - a) > PACE_DISCONTINUITY_S for a, b in zip(paces, paces[1:])):
            result.flags.append("pace_discontinuity")

    # Flagged only; the recorded average stays authoritative
    if _pace_mismatch(workout):
        result.flags.append("pace_calculation_mismatch")

    return result


def _safely(analysis, fallback: Enum, name: str, workout: WorkoutData, segments) -> SubAnalysis:
    try:
        return analysis(workout, segments)
    except Exception as e:
        logger.warning(f"{name} quality analysis failed for workout {workout.id}: {e}")
        return SubAnalysis(fallback, [f"{name}_analysis_failed"], [])


def check_data_quality(
    workout: WorkoutData,
    segments: Optional[Sequence[SegmentData]] = None,
) -> DataQualityFlags:
    """
    Rate GPS, HR and pace integrity of a workout.

    Returns:
        DataQualityFlags with an overall 0-100 score. Never raises.
    """
    gps = _safely(analyze_gps, GPSQuality.MISSING, "gps", workout, segments)
    hr = _safely(analyze_hr, HRQuality.MISSING, "hr", workout, segments)
    pace = _safely(analyze_pace, PaceReliability.GPS_DRIFT, "pace", workout, segments)

    score = round(
        GPS_WEIGHT * GPS_SCORES[gps.rating]
        + HR_WEIGHT * HR_SCORES[hr.rating]
        + PACE_WEIGHT * PACE_SCORES[pace.rating]
    )

    return DataQualityFlags(
        gps_quality=gps.rating,
        hr_quality=hr.rating,
        pace_reliability=pace.rating,
        flags=gps.flags + hr.flags + pace.flags,
        overall_score=max(0, min(100, score)),
        recommendations=gps.recommendations + hr.recommendations + pace.recommendations,
    )


def serialize_data_quality(flags: DataQualityFlags) -> str:
    return json.dumps(flags.to_dict())


def parse_data_quality(raw: Any) -> Optional[Dict[str, Any]]:
    """Read back a stored blob (JSON text or an already-decoded dict)."""
    if raw is None:
        return None
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def data_quality_summary(flags: DataQualityFlags) -> str:
    score = flags.overall_score
    if score >= 90:
        return "Excellent data quality"
    if score >= 75:
        return "Good data quality with minor issues"
    if score >= 60:
        return "Fair data quality - some metrics may be unreliable"
    return "Poor data quality - treat derived metrics with caution"
