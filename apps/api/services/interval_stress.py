"""
Interval Stress Model

Per-segment TRIMP with a rest discount for interval sessions, so that the
easy jogs between reps do not dilute the load of a quality workout, and a
session that is mostly standing around is not credited as a continuous run.

Steps:
1. Per-segment TRIMP (HR-based, pace fallback corrected for conditions)
2. Bucket into work / rest / warmup-cooldown
3. Rest-to-work ratio and recovery type (active jog vs passive standing)
4. Cruise-interval exception (threshold reps with <=1 min rest per mile)
5. Apply discount factor to work + rest; warmup/cooldown at full value

Fewer than 3 segments: the workout-level TRIMP is passed through unchanged.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple

from services.training_load import compute_condition_adjustment, compute_segment_trimp
from services.workout_types import AthleteReference, SegmentData, WorkoutData

logger = logging.getLogger(__name__)


class RecoveryType(str, Enum):
    ACTIVE = "active"
    PASSIVE = "passive"
    MIXED = "mixed"


WORK_ZONES = {"tempo", "threshold", "interval", "marathon"}
REST_ZONES = {"recovery"}
WORK_SEGMENT_TYPES = {"work", "intervals", "strides"}
REST_SEGMENT_TYPES = {"recovery"}
WARMUP_COOLDOWN = {"warmup", "cooldown"}

# (max rest:work ratio, active discount, passive discount)
DISCOUNT_TABLE = (
    (0.02, 1.00, 1.00),   # continuous
    (0.17, 0.965, 0.925),  # ~1:6
    (0.33, 0.925, 0.875),  # ~1:3
    (0.50, 0.875, 0.825),  # ~1:2
    (1.00, 0.825, 0.750),  # ~1:1
)

ACTIVE_RECOVERY_MAX_PACE_S = 900
ACTIVE_RECOVERY_MIN_MILES = 0.02
ACTIVE_RECOVERY_MIN_MPH = 1.0

CRUISE_FAST_LIMIT = 0.95
CRUISE_SLOW_LIMIT = 1.10
CRUISE_MAX_REST_PER_MILE_S = 60

MIN_SEGMENTS = 3


@dataclass
class IntervalStressResult:
    interval_adjusted_trimp: float
    raw_segment_trimp_sum: float
    work_trimp: float
    rest_trimp: float
    warmup_cooldown_trimp: float
    discount_factor: float
    rest_to_work_ratio: Optional[float]
    work_duration_sec: int
    rest_duration_sec: int
    recovery_type: RecoveryType
    is_cruise_interval: bool
    segment_count: int

    def to_dict(self) -> Dict[str, Any]:
        """Stored JSON shape (camelCase keys)."""
        return {
            "intervalAdjustedTrimp": self.interval_adjusted_trimp,
            "rawSegmentTrimpSum": self.raw_segment_trimp_sum,
            "workTrimp": self.work_trimp,
            "restTrimp": self.rest_trimp,
            "warmupCooldownTrimp": self.warmup_cooldown_trimp,
            "discountFactor": self.discount_factor,
            "restToWorkRatio": self.rest_to_work_ratio,
            "workDurationSec": self.work_duration_sec,
            "restDurationSec": self.rest_duration_sec,
            "recoveryType": self.recovery_type.value,
            "isCruiseInterval": self.is_cruise_interval,
            "segmentCount": self.segment_count,
        }


def _is_work(segment: SegmentData) -> bool:
    return segment.pace_zone in WORK_ZONES or segment.segment_type in WORK_SEGMENT_TYPES


def _is_rest(segment: SegmentData) -> bool:
    return segment.pace_zone in REST_ZONES or segment.segment_type in REST_SEGMENT_TYPES


def classify_recovery_type(recovery_segments: Sequence[SegmentData]) -> RecoveryType:
    """Active: jogging (real pace, real distance, >1 mph). Passive: standing or walking off."""
    if not recovery_segments:
        return RecoveryType.PASSIVE

    active = passive = 0
    for segment in recovery_segments:
        pace = segment.pace_seconds_per_mile
        distance = segment.distance_miles or 0
        duration = segment.duration_seconds or 0

        moving_pace = pace is not None and 0 < pace <= ACTIVE_RECOVERY_MAX_PACE_S
        moving_distance = (
            distance > ACTIVE_RECOVERY_MIN_MILES
            and duration > 0
            and distance / (duration / 3600) > ACTIVE_RECOVERY_MIN_MPH
        )
        if moving_pace and moving_distance:
            active += 1
        else:
            passive += 1

    if active and passive:
        return RecoveryType.MIXED
    return RecoveryType.ACTIVE if active else RecoveryType.PASSIVE


def compute_rest_to_work_ratio(segments: Sequence[SegmentData]) -> Tuple[Optional[float], int, int]:
    """
    (ratio, work seconds, rest seconds).

    Warmup/cooldown/easy/steady laps count as neither. Ratio is None
    without work.
    """
    work_sec = 0
    rest_sec = 0
    for segment in segments:
        duration = segment.duration_seconds or 0
        if _is_work(segment):
            work_sec += duration
        elif _is_rest(segment):
            rest_sec += duration

    if work_sec == 0:
        return None, work_sec, rest_sec
    return rest_sec / work_sec, work_sec, rest_sec


def compute_discount_factor(ratio: Optional[float], recovery_type: RecoveryType) -> float:
    """0.75-1.0. Mixed recovery averages the active and passive discounts."""
    if ratio is None or ratio <= DISCOUNT_TABLE[0][0]:
        return 1.0

    # Ratios beyond 1:1 use the bottom row
    _, active, passive = DISCOUNT_TABLE[-1]
    for max_ratio, row_active, row_passive in DISCOUNT_TABLE:
        if ratio <= max_ratio:
            active, passive = row_active, row_passive
            break

    if recovery_type == RecoveryType.ACTIVE:
        return active
    if recovery_type == RecoveryType.PASSIVE:
        return passive
    return (active + passive) / 2


def is_cruise_interval(segments: Sequence[SegmentData], reference: Optional[AthleteReference]) -> bool:
    """
    Daniels' cruise intervals: every rep within 95-110% of threshold pace
    and no more than a minute of rest per mile of work. Not discounted.
    """
    threshold = reference.threshold_pace if reference else None
    if not threshold or threshold <= 0:
        return False

    work = [s for s in segments if _is_work(s)]
    rest = [s for s in segments if not _is_work(s) and _is_rest(s)]
    if not work:
        return False

    low, high = threshold * CRUISE_FAST_LIMIT, threshold * CRUISE_SLOW_LIMIT
    for segment in work:
        pace = segment.pace_seconds_per_mile
        if not pace or pace < low or pace > high:
            return False

    work_miles = sum(s.distance_miles or 0 for s in work)
    rest_sec = sum(s.duration_seconds or 0 for s in rest)
    if work_miles <= 0:
        return False
    return rest_sec / work_miles <= CRUISE_MAX_REST_PER_MILE_S


def compute_interval_stress(
    workout: WorkoutData,
    segments: Sequence[SegmentData],
    reference: Optional[AthleteReference],
    base_trimp: float,
) -> IntervalStressResult:
    """
    Interval-adjusted TRIMP for a workout whose laps already carry zones.
    """
    if len(segments) < MIN_SEGMENTS:
        return IntervalStressResult(
            interval_adjusted_trimp=base_trimp,
            raw_segment_trimp_sum=base_trimp,
            work_trimp=base_trimp,
            rest_trimp=0,
            warmup_cooldown_trimp=0,
            discount_factor=1.0,
            rest_to_work_ratio=None,
            work_duration_sec=0,
            rest_duration_sec=0,
            recovery_type=RecoveryType.PASSIVE,
            is_cruise_interval=False,
            segment_count=len(segments),
        )

    condition_adjustment = compute_condition_adjustment(workout)

    work_trimp = rest_trimp = warmup_cooldown_trimp = raw_sum = 0.0
    recovery_segments = []
    for segment in segments:
        segment_trimp = compute_segment_trimp(segment, reference, condition_adjustment)
        raw_sum += segment_trimp

        if segment.segment_type in WARMUP_COOLDOWN or segment.pace_zone in WARMUP_COOLDOWN:
            warmup_cooldown_trimp += segment_trimp
        elif _is_work(segment):
            work_trimp += segment_trimp
        elif _is_rest(segment):
            rest_trimp += segment_trimp
            recovery_segments.append(segment)
        else:
            # easy/steady laps are neither reps nor rest
            warmup_cooldown_trimp += segment_trimp

    ratio, work_sec, rest_sec = compute_rest_to_work_ratio(segments)
    recovery_type = classify_recovery_type(recovery_segments)
    cruise = is_cruise_interval(segments, reference)
    discount = 1.0 if cruise else compute_discount_factor(ratio, recovery_type)

    adjusted = warmup_cooldown_trimp + (work_trimp + rest_trimp) * discount

    logger.debug(
        f"Interval stress for workout {workout.id}: ratio={ratio}, "
        f"recovery={recovery_type.value}, discount={discount}, cruise={cruise}"
    )

    return IntervalStressResult(
        interval_adjusted_trimp=round(adjusted),
        raw_segment_trimp_sum=round(raw_sum),
        work_trimp=round(work_trimp),
        rest_trimp=round(rest_trimp),
        warmup_cooldown_trimp=round(warmup_cooldown_trimp),
        discount_factor=discount,
        rest_to_work_ratio=ratio,
        work_duration_sec=work_sec,
        rest_duration_sec=rest_sec,
        recovery_type=recovery_type,
        is_cruise_interval=cruise,
        segment_count=len(segments),
    )
