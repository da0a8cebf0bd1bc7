from sqlalchemy import Column, Integer, Float, Date, DateTime, ForeignKey, Text, Index, UniqueConstraint, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from core.database import Base
from typing import Optional

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


class AthleteProfile(Base):
    """
    Reference data the pipeline reads for one runner.

    Either a VDOT (from which the standard pace-zone table is derived) or
    explicit per-zone paces. VDOT wins when both are present.
    """
    __tablename__ = "athlete_profile"

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    display_name = Column(Text, nullable=True)

    # --- REFERENCE PACES (seconds per mile) ---
    vdot = Column(Float, nullable=True)
    easy_pace_seconds = Column(Integer, nullable=True)
    tempo_pace_seconds = Column(Integer, nullable=True)
    threshold_pace_seconds = Column(Integer, nullable=True)

    # --- PHYSIOLOGY ---
    resting_hr = Column(Integer, nullable=True)
    age = Column(Integer, nullable=True)
    gender = Column(Text, nullable=True)  # 'male', 'female', 'other'

    # --- RELATIONSHIPS ---
    workouts = relationship("Workout", back_populates="profile")


class PlannedWorkout(Base):
    """
    A single planned workout produced by the (external) plan generator.

    Only the targets the execution scorer compares against live here.
    """
    __tablename__ = "planned_workout"

    id = Column(Integer, primary_key=True, autoincrement=True)
    profile_id = Column(Integer, ForeignKey("athlete_profile.id"), nullable=True, index=True)
    date = Column(Date, nullable=False)
    workout_type = Column(Text, nullable=False)  # 'easy', 'long', 'tempo', 'threshold', 'interval', 'recovery', 'race'
    name = Column(Text, nullable=False)

    # Target metrics (what to aim for)
    target_distance_miles = Column(Float, nullable=True)
    target_duration_minutes = Column(Integer, nullable=True)
    target_pace_seconds_per_mile = Column(Integer, nullable=True)

    # Structured workout definition
    # Format: {"segments": [{"type": "intervals", "repeats": 6, "workDistanceMeters": 800}, ...]}
    structure = Column(JSONType, nullable=True)


class CanonicalRoute(Base):
    """
    A deduplicated route identity accumulating run statistics.

    Concurrent writers are serialized per route (see services/route_locks.py);
    the unique name turns creation into an upsert.
    """
    __tablename__ = "canonical_route"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    fingerprint = Column(JSONType, nullable=False)  # {startLatLng, endLatLng, distance, elevationGain, boundingBox}
    run_count = Column(Integer, nullable=False, default=1)
    best_time_seconds = Column(Integer, nullable=True)
    best_pace_seconds = Column(Integer, nullable=True)
    average_time_seconds = Column(Integer, nullable=True)
    average_pace_seconds = Column(Integer, nullable=True)
    total_elevation_gain = Column(Integer, nullable=True)
    distance_miles = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('name', name='uq_canonical_route_name'),
    )


class Workout(Base):
    __tablename__ = "workout"

    id = Column(Integer, primary_key=True, autoincrement=True)
    profile_id = Column(Integer, ForeignKey("athlete_profile.id"), nullable=True, index=True)
    date = Column(Date, nullable=False)
    activity_type = Column(Text, default="run", nullable=False)  # run, bike, swim, ...
    source = Column(Text, default="manual", nullable=False)  # manual, garmin, strava, ...

    # --- RAW (user / device owned) ---
    distance_miles = Column(Float, nullable=True)
    duration_minutes = Column(Float, nullable=True)
    avg_pace_seconds = Column(Integer, nullable=True)  # pace per mile in seconds
    avg_hr = Column(Integer, nullable=True)
    max_hr = Column(Integer, nullable=True)
    elevation_gain_ft = Column(Integer, nullable=True)
    route_name = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    # --- WORKOUT TYPE ---
    workout_type = Column(Text, nullable=True, index=True)  # 'easy', 'tempo', 'long', 'race', 'cross_train', ...
    category = Column(Text, nullable=True)  # User-confirmed category; never written by the pipeline

    # --- ENVIRONMENTAL CONTEXT ---
    weather_temp_f = Column(Integer, nullable=True)
    weather_feels_like_f = Column(Integer, nullable=True)
    weather_humidity_pct = Column(Integer, nullable=True)
    weather_wind_mph = Column(Integer, nullable=True)
    weather_conditions = Column(Text, nullable=True)  # e.g. 'clear', 'rain'

    planned_workout_id = Column(Integer, ForeignKey("planned_workout.id"), nullable=True)

    # --- PIPELINE OUTPUTS (derived, recomputed on every run) ---
    auto_category = Column(Text, nullable=True)
    auto_summary = Column(Text, nullable=True)
    quality_ratio = Column(Float, nullable=True)  # Fraction of time at/above tempo effort
    trimp = Column(Float, nullable=True)
    interval_adjusted_trimp = Column(Float, nullable=True)
    interval_stress_details = Column(JSONType, nullable=True)  # stress model output (+ "intervalPattern")
    execution_score = Column(Integer, nullable=True)  # 0-100
    execution_details = Column(JSONType, nullable=True)
    data_quality_flags = Column(JSONType, nullable=True)  # {gps, hr, pace, flags, score}
    zone_distribution = Column(JSONType, nullable=True)  # minutes per effort zone
    zone_dominant = Column(Text, nullable=True)
    zone_classified_at = Column(DateTime(timezone=True), nullable=True)
    zone_boundaries_used = Column(JSONType, nullable=True)
    route_id = Column(Integer, ForeignKey("canonical_route.id"), nullable=True)
    route_fingerprint = Column(JSONType, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # --- RELATIONSHIPS ---
    profile = relationship("AthleteProfile", back_populates="workouts")
    planned_workout = relationship("PlannedWorkout")
    route = relationship("CanonicalRoute")
    segments = relationship(
        "WorkoutSegment",
        back_populates="workout",
        order_by="WorkoutSegment.segment_number",
        cascade="all, delete-orphan",
    )

    @property
    def computed_pace_seconds(self) -> Optional[float]:
        """Pace implied by duration / distance, in seconds per mile."""
        if not self.distance_miles or not self.duration_minutes:
            return None
        return self.duration_minutes * 60 / self.distance_miles


class WorkoutSegment(Base):
    __tablename__ = "workout_segment"

    id = Column(Integer, primary_key=True, autoincrement=True)
    workout_id = Column(Integer, ForeignKey("workout.id", ondelete="CASCADE"), nullable=False)  # Index in __table_args__
    segment_number = Column(Integer, nullable=False)  # ordering key, not necessarily contiguous
    segment_type = Column(Text, nullable=True)  # warmup, work, recovery, cooldown, steady
    distance_miles = Column(Float, nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    pace_seconds_per_mile = Column(Integer, nullable=True)
    avg_hr = Column(Integer, nullable=True)
    max_hr = Column(Integer, nullable=True)
    elevation_gain_ft = Column(Integer, nullable=True)

    # --- ZONE WRITE-BACK ---
    pace_zone = Column(Text, nullable=True)
    pace_zone_confidence = Column(Float, nullable=True)

    # --- RELATIONSHIPS ---
    workout = relationship("Workout", back_populates="segments")

    __table_args__ = (
        Index("ix_workout_segment_workout_id", "workout_id"),
        UniqueConstraint('workout_id', 'segment_number', name='uq_workout_segment_number'),
    )
