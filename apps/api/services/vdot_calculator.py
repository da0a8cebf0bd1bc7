"""
Training Pace Calculator - Based on Daniels' Running Formula

Derives the standard pace-zone table from a VDOT fitness index and the
condition adjustments (heat, humidity, cold, climbing) the analyzers
apply before comparing a run against those zones.

All paces are seconds per mile; a larger number is a slower pace.
"""
from dataclasses import dataclass, asdict
from typing import Dict, Optional
import math

METERS_PER_MILE = 1609.34

# Fraction of VO2max each zone is run at
ZONE_INTENSITY = {
    "recovery": 0.55,
    "easy": 0.65,
    "general_aerobic": 0.70,
    "marathon": 0.78,
    "half_marathon": 0.83,
    "tempo": 0.85,
    "threshold": 0.88,
    "vo2max": 0.95,
    "interval": 0.97,
    "repetition": 1.05,
}

# Optimal running temperature (F); heat and cold penalties grow away from it
OPTIMAL_TEMP_F = 45


@dataclass(frozen=True)
class PaceZones:
    """Zone boundary paces for one VDOT, in seconds per mile."""
    recovery: int
    easy: int
    general_aerobic: int
    marathon: int
    half_marathon: int
    tempo: int
    threshold: int
    vo2max: int
    interval: int
    repetition: int

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


def velocity_from_vdot(vdot: float, percent_vo2max: float) -> float:
    """
    Running velocity (meters/minute) at a fraction of VO2max.

    Solves the Daniels oxygen-cost curve
        VO2 = -4.60 + 0.182258 v + 0.000104 v^2
    for v.
    """
    vo2 = vdot * percent_vo2max
    a = 0.000104
    b = 0.182258
    c = -4.60 - vo2
    discriminant = b * b - 4 * a * c
    return (-b + math.sqrt(discriminant)) / (2 * a)


def velocity_to_pace(velocity: float) -> int:
    """Meters per minute -> seconds per mile."""
    return round(METERS_PER_MILE / velocity * 60)


def calculate_pace_zones(vdot: float) -> PaceZones:
    """Standard training pace table for a VDOT."""
    if vdot is None or vdot <= 0:
        raise ValueError(f"VDOT must be positive, got {vdot!r}")
    paces = {
        zone: velocity_to_pace(velocity_from_vdot(vdot, pct))
        for zone, pct in ZONE_INTENSITY.items()
    }
    return PaceZones(**paces)


def weather_pace_adjustment(temp_f: Optional[float], humidity_pct: Optional[float] = None) -> int:
    """
    Seconds per mile a runner is expected to slow down in these conditions.

    Heat: 0.4 s/mi per degree above the optimum, 1.0 s/mi per degree above
    70F, 1.5 s/mi per degree above 85F. Humidity only matters when it is
    warm. Cold below 35F costs 0.2 s/mi per degree.
    """
    if temp_f is None:
        return 0

    adjustment = 0.0
    if temp_f > OPTIMAL_TEMP_F:
        adjustment += (min(temp_f, 70) - OPTIMAL_TEMP_F) * 0.4
        if temp_f > 70:
            adjustment += (min(temp_f, 85) - 70) * 1.0
        if temp_f > 85:
            adjustment += (temp_f - 85) * 1.5

    if humidity_pct is not None:
        if temp_f > 65 and humidity_pct > 50:
            adjustment += (humidity_pct - 50) * 0.1
        elif temp_f > 55 and humidity_pct > 60:
            adjustment += (humidity_pct - 60) * 0.05

    if temp_f < 35:
        adjustment += (35 - temp_f) * 0.2

    return round(adjustment)


def elevation_pace_correction(elevation_gain_ft: Optional[float], distance_miles: Optional[float]) -> int:
    """Seconds per mile attributable to climbing: ~12 s/mi per 100 ft gained per mile."""
    if not elevation_gain_ft or not distance_miles or distance_miles <= 0:
        return 0
    gain_per_mile = elevation_gain_ft / distance_miles
    return round(gain_per_mile / 100 * 12)


def format_pace(seconds: float) -> str:
    """Format a pace as m:ss."""
    total = int(round(seconds))
    minutes, secs = divmod(total, 60)
    return f"{minutes}:{secs:02d}"
