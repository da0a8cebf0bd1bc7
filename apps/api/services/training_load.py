"""
Training Load Calculator

Per-workout load metrics:
- Quality ratio: fraction of segment time spent at or faster than tempo effort
- TRIMP (Banister training impulse) from heart-rate reserve, with a
  pace-bucketed estimate when no HR was recorded
- Condition adjustment: seconds/mile that heat, humidity and climbing are
  expected to cost, so pace-based estimates are not inflated by conditions

Design Philosophy:
- Use data we have (HR, pace, duration) rather than requiring power data
- Reasonable defaults when data is incomplete (age 30, resting HR 60, 10:00/mi)
- Transparent about assumptions
"""

import math
import logging
from typing import Optional, Sequence

from services.vdot_calculator import elevation_pace_correction, weather_pace_adjustment
from services.workout_types import AthleteReference, SegmentData, WorkoutData

logger = logging.getLogger(__name__)

DEFAULT_AGE = 30
DEFAULT_RESTING_HR = 60
DEFAULT_PACE_S = 600  # 10:00/mi

# Banister weighting: y = x * A * exp(B * x)
MALE_COEFFICIENTS = (1.92, 1.92)
FEMALE_COEFFICIENTS = (1.67, 1.92)

# Segments within 2% of tempo pace count as quality
QUALITY_PACE_TOLERANCE = 1.02

# (pace upper bound s/mi, intensity factor) for the no-HR estimate
PACE_INTENSITY_BUCKETS = (
    (360, 2.5),  # sub-6:00
    (420, 2.0),  # sub-7:00
    (480, 1.6),  # sub-8:00
    (540, 1.3),  # sub-9:00
    (600, 1.1),  # sub-10:00
)


def pace_intensity_factor(pace_seconds: float) -> float:
    for upper, factor in PACE_INTENSITY_BUCKETS:
        if pace_seconds < upper:
            return factor
    return 1.0


def hr_reserve_fraction(avg_hr: float, reference: Optional[AthleteReference]) -> float:
    """Heart-rate-reserve fraction clamped to [0, 1]."""
    age = (reference.age if reference else None) or DEFAULT_AGE
    resting_hr = (reference.resting_hr if reference else None) or DEFAULT_RESTING_HR
    max_hr = 220 - age
    if max_hr <= resting_hr:
        return 1.0
    fraction = (avg_hr - resting_hr) / (max_hr - resting_hr)
    return max(0.0, min(1.0, fraction))


def banister_weight(hr_fraction: float, reference: Optional[AthleteReference]) -> float:
    """Exponentially weighted intensity for one minute at ``hr_fraction``."""
    gender = (reference.gender if reference else None) or ""
    a, b = FEMALE_COEFFICIENTS if gender.lower() == "female" else MALE_COEFFICIENTS
    return hr_fraction * a * math.exp(b * hr_fraction)


def compute_trimp(workout: WorkoutData, reference: Optional[AthleteReference]) -> Optional[int]:
    """
    Training impulse for the whole workout.

    Returns None when the workout has no duration (nothing to weight).
    """
    duration = workout.duration_minutes
    if not duration or duration <= 0:
        return None

    if not workout.avg_hr:
        pace = workout.avg_pace_seconds or DEFAULT_PACE_S
        return round(duration * pace_intensity_factor(pace))

    fraction = hr_reserve_fraction(workout.avg_hr, reference)
    return round(duration * banister_weight(fraction, reference))


def compute_segment_trimp(
    segment: SegmentData,
    reference: Optional[AthleteReference],
    condition_adjustment: float = 0,
) -> float:
    """
    Unrounded TRIMP for one lap.

    Same weighting as compute_trimp; the pace fallback first removes the
    condition adjustment so a hot, hilly lap is not scored as faster effort.
    """
    duration_s = segment.duration_seconds
    if not duration_s or duration_s <= 0:
        return 0.0
    duration_min = duration_s / 60

    if segment.avg_hr and segment.avg_hr > 0:
        fraction = hr_reserve_fraction(segment.avg_hr, reference)
        return duration_min * banister_weight(fraction, reference)

    raw_pace = segment.pace_seconds_per_mile
    if not raw_pace or raw_pace <= 0:
        return duration_min * 1.0
    return duration_min * pace_intensity_factor(raw_pace - condition_adjustment)


def compute_quality_ratio(
    workout: WorkoutData,
    segments: Optional[Sequence[SegmentData]],
    reference: Optional[AthleteReference],
) -> float:
    """
    Fraction of time spent at/above tempo effort.

    Without lap data, falls back to a binary answer from the average pace.
    Without a tempo reference, returns 0.
    """
    tempo_pace = reference.tempo_pace if reference else None
    if not tempo_pace:
        return 0.0

    if not segments:
        avg_pace = workout.avg_pace_seconds
        if not avg_pace:
            return 0.0
        return 1.0 if avg_pace <= tempo_pace else 0.0

    quality_time = 0
    total_time = 0
    for segment in segments:
        segment_time = segment.duration_seconds or 0
        total_time += segment_time
        pace = segment.pace_seconds_per_mile
        if pace and pace <= tempo_pace * QUALITY_PACE_TOLERANCE:
            quality_time += segment_time

    return quality_time / total_time if total_time > 0 else 0.0


def compute_condition_adjustment(workout: WorkoutData) -> int:
    """Seconds/mile of slowdown expected from weather and climbing."""
    weather = workout.weather
    temp = weather.effective_temp_f
    adjustment = weather_pace_adjustment(temp, weather.humidity_pct)
    adjustment += elevation_pace_correction(workout.elevation_gain_ft, workout.distance_miles)
    return adjustment
