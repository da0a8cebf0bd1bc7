"""
Closed input types shared by the workout analyzers.

Analyzers never see ORM rows. The store converts rows into these frozen
dataclasses and the orchestrator passes them down explicitly, so every
analysis is a pure function of its arguments.

Segments come in two variants:
- PersistedSegment: a lap that exists in the database (has an id). Only
  this variant can be handed to the zone write-back API.
- SyntheticSegment: a single lap fabricated from the workout's averages
  when no lap data was recorded. It is analyzed like any lap but can
  never be written back.
"""
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Dict, Optional, Sequence, TypeVar

from services.vdot_calculator import PaceZones, calculate_pace_zones

CROSS_TRAIN_TYPES = {"cross_train", "cross_training", "bike", "swim", "strength", "yoga"}


@dataclass(frozen=True)
class WeatherData:
    temp_f: Optional[float] = None
    feels_like_f: Optional[float] = None
    humidity_pct: Optional[float] = None
    wind_mph: Optional[float] = None
    conditions: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return all(
            v is None
            for v in (self.temp_f, self.feels_like_f, self.humidity_pct, self.wind_mph, self.conditions)
        )

    @property
    def effective_temp_f(self) -> Optional[float]:
        return self.feels_like_f if self.feels_like_f is not None else self.temp_f


@dataclass(frozen=True)
class WorkoutData:
    """One logged activity, as the analyzers see it."""
    id: Optional[int] = None
    date: Optional[date] = None
    activity_type: str = "run"
    workout_type: Optional[str] = None
    category: Optional[str] = None  # user-confirmed category
    source: str = "manual"
    distance_miles: Optional[float] = None
    duration_minutes: Optional[float] = None
    avg_pace_seconds: Optional[int] = None
    avg_hr: Optional[int] = None
    max_hr: Optional[int] = None
    elevation_gain_ft: Optional[int] = None
    route_name: Optional[str] = None
    notes: Optional[str] = None
    weather: WeatherData = field(default_factory=WeatherData)
    planned_workout_id: Optional[int] = None
    profile_id: Optional[int] = None
    route_id: Optional[int] = None  # canonical route already credited with this run

    @property
    def is_cross_training(self) -> bool:
        return (self.workout_type or "").lower() in CROSS_TRAIN_TYPES

    @property
    def is_race(self) -> bool:
        return (self.workout_type or "").lower() == "race"

    @property
    def computed_pace_seconds(self) -> Optional[float]:
        if not self.distance_miles or not self.duration_minutes:
            return None
        return self.duration_minutes * 60 / self.distance_miles


@dataclass(frozen=True)
class SegmentData:
    """Read-only view of one lap shared by both segment variants."""
    segment_number: int
    segment_type: Optional[str] = None
    distance_miles: Optional[float] = None
    duration_seconds: Optional[int] = None
    pace_seconds_per_mile: Optional[float] = None
    avg_hr: Optional[int] = None
    max_hr: Optional[int] = None
    elevation_gain_ft: Optional[int] = None
    pace_zone: Optional[str] = field(default=None, kw_only=True)
    pace_zone_confidence: Optional[float] = field(default=None, kw_only=True)


@dataclass(frozen=True)
class PersistedSegment(SegmentData):
    """A lap stored in the database."""
    id: int = field(kw_only=True)


@dataclass(frozen=True)
class SyntheticSegment(SegmentData):
    """A lap fabricated from workout averages. Never persisted."""

    @classmethod
    def from_workout(cls, workout: WorkoutData) -> Optional["SyntheticSegment"]:
        """One steady lap covering the whole workout, or None without pace and duration."""
        if not workout.avg_pace_seconds or not workout.duration_minutes:
            return None
        duration_seconds = round(workout.duration_minutes * 60)
        distance = workout.distance_miles or duration_seconds / workout.avg_pace_seconds
        return cls(
            segment_number=1,
            segment_type="steady",
            distance_miles=distance,
            duration_seconds=duration_seconds,
            pace_seconds_per_mile=workout.avg_pace_seconds,
            avg_hr=workout.avg_hr,
            max_hr=workout.max_hr,
            elevation_gain_ft=workout.elevation_gain_ft,
        )


S = TypeVar("S", bound=SegmentData)


def with_zone(segment: S, zone: str, confidence: float) -> S:
    """Copy of ``segment`` (same variant) carrying a resolved effort zone."""
    return replace(segment, pace_zone=zone, pace_zone_confidence=confidence)


def lap_paces(segments: Optional[Sequence[SegmentData]]) -> list:
    """Positive lap paces in lap order."""
    if not segments:
        return []
    return [s.pace_seconds_per_mile for s in segments if s.pace_seconds_per_mile and s.pace_seconds_per_mile > 0]


@dataclass(frozen=True)
class AthleteReference:
    """Reference paces and physiology for one runner."""
    vdot: Optional[float] = None
    easy_pace_seconds: Optional[int] = None
    tempo_pace_seconds: Optional[int] = None
    threshold_pace_seconds: Optional[int] = None
    resting_hr: Optional[int] = None
    age: Optional[int] = None
    gender: Optional[str] = None

    def pace_zones(self) -> Optional[PaceZones]:
        """VDOT-derived zone table, or None without a usable VDOT."""
        if self.vdot and self.vdot > 0:
            return calculate_pace_zones(self.vdot)
        return None

    @property
    def tempo_pace(self) -> Optional[int]:
        """Tempo pace with VDOT zones taking precedence over the explicit value."""
        zones = self.pace_zones()
        if zones:
            return zones.tempo
        return self.tempo_pace_seconds

    @property
    def threshold_pace(self) -> Optional[int]:
        zones = self.pace_zones()
        if zones:
            return zones.threshold
        return self.threshold_pace_seconds

    @property
    def easy_pace(self) -> Optional[int]:
        zones = self.pace_zones()
        if zones:
            return zones.easy
        return self.easy_pace_seconds


@dataclass(frozen=True)
class PlannedWorkoutData:
    id: int
    workout_type: str
    target_distance_miles: Optional[float] = None
    target_duration_minutes: Optional[int] = None
    target_pace_seconds_per_mile: Optional[int] = None
    structure: Optional[Dict[str, Any]] = None
