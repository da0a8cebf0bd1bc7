"""
Route Matcher

Fingerprints a workout's route and matches it against known canonical
routes, so repeated runs of the same loop can be compared over time.

Fingerprint: start/end coordinates (when recorded), distance, elevation
gain and bounding box. Similarity is a weighted blend:
- distance (0.5): linear falloff to zero at 0.1 mi difference
- elevation (0.3): linear falloff to zero at 50 ft difference
- GPS endpoints (0.2): only when both fingerprints carry all four points

A match needs a score of at least 0.7.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

from services.workout_types import WorkoutData

logger = logging.getLogger(__name__)

MIN_ROUTE_MILES = 0.5
MATCH_THRESHOLD = 0.7
EXACT_THRESHOLD = 0.95
SIMILAR_THRESHOLD = 0.85

DISTANCE_WEIGHT = 0.5
ELEVATION_WEIGHT = 0.3
GPS_WEIGHT = 0.2
DISTANCE_TOLERANCE_MI = 0.1
ELEVATION_TOLERANCE_FT = 50

EARTH_RADIUS_MI = 3959

LatLng = Tuple[float, float]


@dataclass(frozen=True)
class RouteFingerprint:
    distance: float
    elevation_gain: int
    start_lat_lng: Optional[LatLng] = None
    end_lat_lng: Optional[LatLng] = None
    bounding_box: Optional[Dict[str, float]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startLatLng": list(self.start_lat_lng) if self.start_lat_lng else None,
            "endLatLng": list(self.end_lat_lng) if self.end_lat_lng else None,
            "distance": self.distance,
            "elevationGain": self.elevation_gain,
            "boundingBox": self.bounding_box,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RouteFingerprint":
        """Raises KeyError/TypeError/ValueError on a malformed blob."""
        start = data.get("startLatLng")
        end = data.get("endLatLng")
        return cls(
            distance=float(data["distance"]),
            elevation_gain=int(data.get("elevationGain") or 0),
            start_lat_lng=(float(start[0]), float(start[1])) if start else None,
            end_lat_lng=(float(end[0]), float(end[1])) if end else None,
            bounding_box=data.get("boundingBox"),
        )

    @property
    def has_gps(self) -> bool:
        return self.start_lat_lng is not None and self.end_lat_lng is not None


@dataclass(frozen=True)
class CanonicalRouteData:
    """A canonical route as the matcher sees it."""
    id: int
    name: str
    fingerprint: Dict[str, Any]
    run_count: int = 1
    best_time_seconds: Optional[int] = None
    best_pace_seconds: Optional[int] = None
    average_time_seconds: Optional[int] = None
    average_pace_seconds: Optional[int] = None


@dataclass(frozen=True)
class RouteMatch:
    route_id: int
    route_name: str
    confidence: float
    match_type: str  # exact, similar, partial


@dataclass(frozen=True)
class NewRoute:
    """Fields for a canonical route created from a single workout."""
    name: str
    fingerprint: RouteFingerprint
    distance_miles: Optional[float]
    total_elevation_gain: Optional[int]
    run_count: int = 1
    best_time_seconds: Optional[int] = None
    best_pace_seconds: Optional[int] = None
    average_time_seconds: Optional[int] = None
    average_pace_seconds: Optional[int] = None


@dataclass(frozen=True)
class RouteStats:
    run_count: int
    best_time_seconds: Optional[int]
    best_pace_seconds: Optional[int]
    average_time_seconds: Optional[int]
    average_pace_seconds: Optional[int]


def compute_route_fingerprint(workout: WorkoutData) -> Optional[RouteFingerprint]:
    """
    Fingerprint from workout totals. None for runs under half a mile.

    Coordinates are not recorded on workouts yet, so start/end stay
    empty and matching leans on distance and elevation.
    """
    if not workout.distance_miles or workout.distance_miles < MIN_ROUTE_MILES:
        return None
    return RouteFingerprint(
        distance=round(workout.distance_miles, 2),
        elevation_gain=round(workout.elevation_gain_ft or 0),
    )


def haversine_miles(a: LatLng, b: LatLng) -> float:
    lat1, lng1 = map(math.radians, a)
    lat2, lng2 = map(math.radians, b)
    d_lat = lat2 - lat1
    d_lng = lng2 - lng1
    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    return EARTH_RADIUS_MI * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def _endpoint_score(distance_mi: float) -> float:
    if distance_mi < 0.1:
        return 1.0
    if distance_mi < 0.5:
        return 0.5
    return 0.0


def fingerprint_similarity(fp1: RouteFingerprint, fp2: RouteFingerprint) -> float:
    """0-1 weighted similarity."""
    score = 0.0
    weights = 0.0

    distance_diff = abs(fp1.distance - fp2.distance)
    score += max(0.0, 1 - distance_diff / DISTANCE_TOLERANCE_MI) * DISTANCE_WEIGHT
    weights += DISTANCE_WEIGHT

    elevation_diff = abs(fp1.elevation_gain - fp2.elevation_gain)
    score += max(0.0, 1 - elevation_diff / ELEVATION_TOLERANCE_FT) * ELEVATION_WEIGHT
    weights += ELEVATION_WEIGHT

    if fp1.has_gps and fp2.has_gps:
        start = _endpoint_score(haversine_miles(fp1.start_lat_lng, fp2.start_lat_lng))
        end = _endpoint_score(haversine_miles(fp1.end_lat_lng, fp2.end_lat_lng))
        score += (start + end) / 2 * GPS_WEIGHT
        weights += GPS_WEIGHT

    return score / weights


def _match_type(score: float) -> str:
    if score >= EXACT_THRESHOLD:
        return "exact"
    if score >= SIMILAR_THRESHOLD:
        return "similar"
    return "partial"


def match_route(fingerprint: RouteFingerprint, routes: Sequence[CanonicalRouteData]) -> Optional[RouteMatch]:
    """Best-scoring route at or above the match threshold, or None."""
    best: Optional[CanonicalRouteData] = None
    best_score = 0.0

    for route in routes:
        try:
            candidate = RouteFingerprint.from_dict(route.fingerprint)
        except (KeyError, TypeError, ValueError, IndexError):
            logger.warning(f"Skipping canonical route {route.id}: unreadable fingerprint")
            continue

        score = fingerprint_similarity(fingerprint, candidate)
        if score > best_score and score >= MATCH_THRESHOLD:
            best = route
            best_score = score

    if best is None:
        return None
    return RouteMatch(
        route_id=best.id,
        route_name=best.name,
        confidence=best_score,
        match_type=_match_type(best_score),
    )


def generate_route_name(fingerprint: RouteFingerprint) -> str:
    """e.g. "Medium Rolling Loop"."""
    distance = fingerprint.distance
    if distance < 3:
        size = "Short"
    elif distance < 5:
        size = "Medium"
    elif distance < 8:
        size = "Long"
    else:
        size = "Extended"

    gain = fingerprint.elevation_gain
    if gain < 100:
        terrain = "Flat"
    elif gain < 200:
        terrain = "Rolling"
    elif gain < 400:
        terrain = "Hilly"
    else:
        terrain = "Mountainous"

    return f"{size} {terrain} Loop"


def _workout_time_seconds(workout: WorkoutData) -> Optional[int]:
    if not workout.duration_minutes:
        return None
    return round(workout.duration_minutes * 60)


def create_canonical_route_from_workout(
    workout: WorkoutData,
    fingerprint: RouteFingerprint,
    name: Optional[str] = None,
) -> NewRoute:
    """A new route seeded with this workout as its first run."""
    time_seconds = _workout_time_seconds(workout)
    return NewRoute(
        name=name or workout.route_name or generate_route_name(fingerprint),
        fingerprint=fingerprint,
        distance_miles=workout.distance_miles,
        total_elevation_gain=workout.elevation_gain_ft,
        run_count=1,
        best_time_seconds=time_seconds,
        best_pace_seconds=workout.avg_pace_seconds,
        average_time_seconds=time_seconds,
        average_pace_seconds=workout.avg_pace_seconds,
    )


def _running_average(average: Optional[int], value: Optional[int], count: int) -> Optional[int]:
    if value is None:
        return average
    if average is None:
        return value
    return round(average + (value - average) / count)


def _best(current: Optional[int], value: Optional[int]) -> Optional[int]:
    if value is None:
        return current
    if current is None or value < current:
        return value
    return current


def update_route_stats(route: CanonicalRouteData, workout: WorkoutData) -> RouteStats:
    """Route statistics after one more run of it."""
    run_count = route.run_count + 1
    time_seconds = _workout_time_seconds(workout)
    pace = workout.avg_pace_seconds

    return RouteStats(
        run_count=run_count,
        best_time_seconds=_best(route.best_time_seconds, time_seconds),
        best_pace_seconds=_best(route.best_pace_seconds, pace),
        average_time_seconds=_running_average(route.average_time_seconds, time_seconds, run_count),
        average_pace_seconds=_running_average(route.average_pace_seconds, pace, run_count),
    )


def route_lock_key(name: str) -> str:
    """Lock identity for a canonical route: its normalized name."""
    return name.strip().lower()
