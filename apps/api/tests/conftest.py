"""
Pytest configuration and fixtures

Tests run against an in-memory SQLite database. The schema is created
fresh for every test that asks for ``db_session`` and dropped afterwards,
so nothing leaks between tests.
"""
import os
import sys
from datetime import date
from unittest.mock import patch

import pytest

# Must be set before core.config is imported anywhere.
os.environ["DATABASE_URL"] = "sqlite://"

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.database import Base, SessionLocal, engine  # noqa: E402
from models import AthleteProfile, PlannedWorkout, Workout, WorkoutSegment  # noqa: E402


@pytest.fixture(autouse=True)
def _no_redis():
    """Distributed locks fail open; tests never reach for a real Redis."""
    with patch("core.cache.get_redis_client", return_value=None):
        yield


@pytest.fixture(scope="function")
def db_session():
    """
    Session on a freshly created schema.

    Dropped after the test completes - nothing persists.
    """
    Base.metadata.create_all(engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture
def make_profile(db_session):
    def _make(**fields):
        profile = AthleteProfile(**fields)
        db_session.add(profile)
        db_session.commit()
        return profile
    return _make


@pytest.fixture
def make_workout(db_session):
    """
    Create a workout with optional laps.

    Laps are dicts of WorkoutSegment fields; segment_number defaults to
    the lap's position (1-based).
    """
    def _make(segments=None, **fields):
        fields.setdefault("date", date(2026, 10, 1))
        fields.setdefault("source", "garmin")
        workout = Workout(**fields)
        db_session.add(workout)
        db_session.flush()
        for i, lap in enumerate(segments or [], start=1):
            lap = dict(lap)
            lap.setdefault("segment_number", i)
            db_session.add(WorkoutSegment(workout_id=workout.id, **lap))
        db_session.commit()
        return workout
    return _make


@pytest.fixture
def make_planned(db_session):
    def _make(**fields):
        fields.setdefault("date", date(2026, 10, 1))
        fields.setdefault("name", "Planned run")
        planned = PlannedWorkout(**fields)
        db_session.add(planned)
        db_session.commit()
        return planned
    return _make


def interval_laps():
    """Warmup, 4 x (800m rep + 400m jog), cooldown."""
    laps = [dict(segment_type="warmup", distance_miles=1.0, duration_seconds=540, pace_seconds_per_mile=540)]
    for _ in range(4):
        laps.append(dict(segment_type="work", distance_miles=0.5, duration_seconds=180, pace_seconds_per_mile=360))
        laps.append(dict(segment_type="recovery", distance_miles=0.25, duration_seconds=150, pace_seconds_per_mile=600))
    laps.append(dict(segment_type="cooldown", distance_miles=1.0, duration_seconds=560, pace_seconds_per_mile=560))
    return laps
