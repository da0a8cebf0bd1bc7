"""
Persistence boundary for the workout pipeline.

The orchestrator talks to a WorkoutStore, never to the ORM directly.
Rows come out as the frozen analyzer types from services.workout_types;
derived fields go back in as partial updates.

SqlAlchemyWorkoutStore stages every write in its session. Committing is
the caller's job (the orchestrator commits once per workout).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.exceptions import NotFoundError, ValidationError
from models import AthleteProfile, CanonicalRoute, PlannedWorkout, Workout, WorkoutSegment
from services.route_matcher import CanonicalRouteData, NewRoute, update_route_stats
from services.workout_types import (
    AthleteReference,
    PersistedSegment,
    PlannedWorkoutData,
    WeatherData,
    WorkoutData,
)

logger = logging.getLogger(__name__)

# Columns the pipeline owns. Raw fields (distance, HR, category, ...) belong to the user.
DERIVED_WORKOUT_FIELDS = frozenset({
    "workout_type",
    "auto_category",
    "auto_summary",
    "quality_ratio",
    "trimp",
    "interval_adjusted_trimp",
    "interval_stress_details",
    "execution_score",
    "execution_details",
    "data_quality_flags",
    "zone_distribution",
    "zone_dominant",
    "zone_classified_at",
    "zone_boundaries_used",
    "route_id",
    "route_fingerprint",
})


@dataclass(frozen=True)
class WorkoutBundle:
    """A workout with its persisted laps (ordered by number) and linked plan item."""
    workout: WorkoutData
    segments: Tuple[PersistedSegment, ...] = field(default_factory=tuple)
    planned: Optional[PlannedWorkoutData] = None


class WorkoutStore(ABC):
    """
    Storage contract for the pipeline.

    Implementations must treat update_workout as a merge of the given
    fields only, and must serialize record_route_run per route.
    """

    @abstractmethod
    def get_workout(self, workout_id: int) -> Optional[WorkoutBundle]:
        pass

    @abstractmethod
    def get_athlete_reference(self, profile_id: Optional[int]) -> Optional[AthleteReference]:
        pass

    @abstractmethod
    def update_workout(self, workout_id: int, fields: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def update_segment(self, segment: PersistedSegment, zone: str, confidence: float) -> None:
        pass

    @abstractmethod
    def list_canonical_routes(self) -> List[CanonicalRouteData]:
        pass

    @abstractmethod
    def upsert_canonical_route(self, route: NewRoute, workout: WorkoutData) -> Tuple[CanonicalRouteData, bool]:
        """Create ``route``, or record ``workout`` as a run of the route already holding its name.

        Returns (route, created).
        """

    @abstractmethod
    def record_route_run(self, route_id: int, workout: WorkoutData) -> CanonicalRouteData:
        pass

    @abstractmethod
    def list_workout_ids(self, limit: Optional[int] = None) -> List[int]:
        pass

    @abstractmethod
    def commit(self) -> None:
        pass

    @abstractmethod
    def rollback(self) -> None:
        pass

    def close(self) -> None:
        """Release underlying resources. Default: nothing to release."""


# =============================================================================
# ROW CONVERSION
# =============================================================================

def workout_to_data(row: Workout) -> WorkoutData:
    return WorkoutData(
        id=row.id,
        date=row.date,
        activity_type=row.activity_type or "run",
        workout_type=row.workout_type,
        category=row.category,
        source=row.source or "manual",
        distance_miles=row.distance_miles,
        duration_minutes=row.duration_minutes,
        avg_pace_seconds=row.avg_pace_seconds,
        avg_hr=row.avg_hr,
        max_hr=row.max_hr,
        elevation_gain_ft=row.elevation_gain_ft,
        route_name=row.route_name,
        notes=row.notes,
        weather=WeatherData(
            temp_f=row.weather_temp_f,
            feels_like_f=row.weather_feels_like_f,
            humidity_pct=row.weather_humidity_pct,
            wind_mph=row.weather_wind_mph,
            conditions=row.weather_conditions,
        ),
        planned_workout_id=row.planned_workout_id,
        profile_id=row.profile_id,
        route_id=row.route_id,
    )


def segment_to_data(row: WorkoutSegment) -> PersistedSegment:
    return PersistedSegment(
        id=row.id,
        segment_number=row.segment_number,
        segment_type=row.segment_type,
        distance_miles=row.distance_miles,
        duration_seconds=row.duration_seconds,
        pace_seconds_per_mile=row.pace_seconds_per_mile,
        avg_hr=row.avg_hr,
        max_hr=row.max_hr,
        elevation_gain_ft=row.elevation_gain_ft,
        pace_zone=row.pace_zone,
        pace_zone_confidence=row.pace_zone_confidence,
    )


def planned_to_data(row: PlannedWorkout) -> PlannedWorkoutData:
    return PlannedWorkoutData(
        id=row.id,
        workout_type=row.workout_type,
        target_distance_miles=row.target_distance_miles,
        target_duration_minutes=row.target_duration_minutes,
        target_pace_seconds_per_mile=row.target_pace_seconds_per_mile,
        structure=row.structure,
    )


def route_to_data(row: CanonicalRoute) -> CanonicalRouteData:
    return CanonicalRouteData(
        id=row.id,
        name=row.name,
        fingerprint=row.fingerprint or {},
        run_count=row.run_count or 0,
        best_time_seconds=row.best_time_seconds,
        best_pace_seconds=row.best_pace_seconds,
        average_time_seconds=row.average_time_seconds,
        average_pace_seconds=row.average_pace_seconds,
    )


# =============================================================================
# SQLALCHEMY STORE
# =============================================================================

class SqlAlchemyWorkoutStore(WorkoutStore):
    """WorkoutStore over a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def get_workout(self, workout_id: int) -> Optional[WorkoutBundle]:
        row = self.db.query(Workout).filter(Workout.id == workout_id).first()
        if not row:
            return None

        segment_rows = (
            self.db.query(WorkoutSegment)
            .filter(WorkoutSegment.workout_id == workout_id)
            .order_by(WorkoutSegment.segment_number)
            .all()
        )
        planned = None
        if row.planned_workout_id:
            planned_row = self.db.get(PlannedWorkout, row.planned_workout_id)
            if planned_row:
                planned = planned_to_data(planned_row)

        return WorkoutBundle(
            workout=workout_to_data(row),
            segments=tuple(segment_to_data(s) for s in segment_rows),
            planned=planned,
        )

    def get_athlete_reference(self, profile_id: Optional[int]) -> Optional[AthleteReference]:
        if profile_id is None:
            return None
        profile = self.db.get(AthleteProfile, profile_id)
        if not profile:
            return None
        return AthleteReference(
            vdot=profile.vdot,
            easy_pace_seconds=profile.easy_pace_seconds,
            tempo_pace_seconds=profile.tempo_pace_seconds,
            threshold_pace_seconds=profile.threshold_pace_seconds,
            resting_hr=profile.resting_hr,
            age=profile.age,
            gender=profile.gender,
        )

    def update_workout(self, workout_id: int, fields: Dict[str, Any]) -> None:
        unknown = set(fields) - DERIVED_WORKOUT_FIELDS
        if unknown:
            raise ValidationError(f"Not a derived workout field: {', '.join(sorted(unknown))}", field="fields")

        row = self.db.get(Workout, workout_id)
        if not row:
            raise NotFoundError("Workout", workout_id)

        for name, value in fields.items():
            setattr(row, name, value)
        self.db.flush()

    def update_segment(self, segment: PersistedSegment, zone: str, confidence: float) -> None:
        if not isinstance(segment, PersistedSegment):
            raise TypeError(f"Only persisted segments can be written back, got {type(segment).__name__}")

        row = self.db.get(WorkoutSegment, segment.id)
        if not row:
            raise NotFoundError("WorkoutSegment", segment.id)
        row.pace_zone = zone
        row.pace_zone_confidence = confidence
        self.db.flush()

    def list_canonical_routes(self) -> List[CanonicalRouteData]:
        rows = self.db.query(CanonicalRoute).order_by(CanonicalRoute.id).all()
        return [route_to_data(r) for r in rows]

    def _apply_run(self, row: CanonicalRoute, workout: WorkoutData) -> CanonicalRouteData:
        stats = update_route_stats(route_to_data(row), workout)
        row.run_count = stats.run_count
        row.best_time_seconds = stats.best_time_seconds
        row.best_pace_seconds = stats.best_pace_seconds
        row.average_time_seconds = stats.average_time_seconds
        row.average_pace_seconds = stats.average_pace_seconds
        self.db.flush()
        return route_to_data(row)

    def _locked_route_by_name(self, name: str) -> Optional[CanonicalRoute]:
        return (
            self.db.query(CanonicalRoute)
            .filter(CanonicalRoute.name == name)
            .with_for_update()
            .first()
        )

    def upsert_canonical_route(self, route: NewRoute, workout: WorkoutData) -> Tuple[CanonicalRouteData, bool]:
        # A failed route write only unwinds its own savepoint, not the workout's staged fields
        with self.db.begin_nested():
            return self._upsert_canonical_route(route, workout)

    def _upsert_canonical_route(self, route: NewRoute, workout: WorkoutData) -> Tuple[CanonicalRouteData, bool]:
        existing = self._locked_route_by_name(route.name)
        if existing:
            return self._apply_run(existing, workout), False

        row = CanonicalRoute(
            name=route.name,
            fingerprint=route.fingerprint.to_dict(),
            run_count=route.run_count,
            best_time_seconds=route.best_time_seconds,
            best_pace_seconds=route.best_pace_seconds,
            average_time_seconds=route.average_time_seconds,
            average_pace_seconds=route.average_pace_seconds,
            distance_miles=route.distance_miles,
            total_elevation_gain=route.total_elevation_gain,
        )
        try:
            with self.db.begin_nested():
                self.db.add(row)
                self.db.flush()
        except IntegrityError:
            # Another writer created the same name first.
            logger.info(f"Canonical route '{route.name}' created concurrently, recording run instead")
            existing = self._locked_route_by_name(route.name)
            if not existing:
                raise
            return self._apply_run(existing, workout), False

        logger.info(f"Created canonical route {row.id} '{row.name}'")
        return route_to_data(row), True

    def record_route_run(self, route_id: int, workout: WorkoutData) -> CanonicalRouteData:
        with self.db.begin_nested():
            row = (
                self.db.query(CanonicalRoute)
                .filter(CanonicalRoute.id == route_id)
                .with_for_update()
                .first()
            )
            if not row:
                raise NotFoundError("CanonicalRoute", route_id)
            return self._apply_run(row, workout)

    def list_workout_ids(self, limit: Optional[int] = None) -> List[int]:
        query = self.db.query(Workout.id).order_by(Workout.id)
        if limit is not None:
            query = query.limit(limit)
        return [workout_id for (workout_id,) in query.all()]

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def close(self) -> None:
        self.db.close()
