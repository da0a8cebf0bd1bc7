"""
Explanation context for coaching surfaces.

Turns a processed workout plus optional how-did-you-feel inputs into
short factor / reason / suggestion lines the coach can quote when a run
felt harder than it should have.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from services.workout_types import AthleteReference, WorkoutData

RECENT_WINDOW_DAYS = 7
HIGH_RECENT_MILEAGE = 40


@dataclass(frozen=True)
class WellnessAssessment:
    """Self-reported 1-10 ratings (sleep_hours in hours). Any may be absent."""
    sleep_quality: Optional[float] = None
    sleep_hours: Optional[float] = None
    stress: Optional[float] = None
    soreness: Optional[float] = None
    fueling: Optional[float] = None
    hydration: Optional[float] = None


@dataclass
class ExplanationContext:
    factors: List[str] = field(default_factory=list)
    likely_reasons: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "factors": list(self.factors),
            "likelyReasons": list(self.likely_reasons),
            "suggestions": list(self.suggestions),
        }


def recent_mileage(workout: WorkoutData, recent_workouts: Sequence[WorkoutData]) -> float:
    """Miles logged in the week up to and including the workout's date."""
    if workout.date is None:
        return 0.0
    total = 0.0
    for other in recent_workouts:
        if other.date is None:
            continue
        days_ago = (workout.date - other.date).days
        if 0 <= days_ago <= RECENT_WINDOW_DAYS:
            total += other.distance_miles or 0
    return total


def generate_explanation_context(
    workout: WorkoutData,
    reference: Optional[AthleteReference] = None,
    recent_workouts: Sequence[WorkoutData] = (),
    assessment: Optional[WellnessAssessment] = None,
) -> ExplanationContext:
    context = ExplanationContext()
    weather = workout.weather

    hot = weather.temp_f is not None and weather.temp_f > 80
    windy = weather.wind_mph is not None and weather.wind_mph > 15
    if hot or windy:
        context.factors.append("challenging weather")
    if hot:
        context.likely_reasons.append("Heat significantly impacts performance")
        context.suggestions.append("Consider running earlier in cooler temps")
    if windy:
        context.likely_reasons.append("Strong wind adds resistance and mental fatigue")

    if assessment is not None:
        if assessment.sleep_quality is not None and assessment.sleep_quality < 5:
            context.factors.append("poor sleep")
            context.likely_reasons.append("Low sleep quality affects energy and recovery")
            context.suggestions.append("Prioritize sleep before tomorrow's run")
        if assessment.sleep_hours is not None and assessment.sleep_hours < 6:
            context.factors.append("sleep deficit")
            context.likely_reasons.append("Less than 6 hours of sleep impairs performance")
        if assessment.stress is not None and assessment.stress > 7:
            context.factors.append("high stress")
            context.likely_reasons.append("Elevated stress affects perceived effort")
        if assessment.soreness is not None and assessment.soreness > 6:
            context.factors.append("muscle soreness")
            context.likely_reasons.append("Residual fatigue from recent training")
            context.suggestions.append("Consider extra recovery time")
        if assessment.fueling is not None and assessment.fueling < 5:
            context.factors.append("under-fueled")
            context.likely_reasons.append("Inadequate nutrition affects energy levels")
            context.suggestions.append("Eat a proper meal 2-3 hours before running")
        if assessment.hydration is not None and assessment.hydration < 5:
            context.factors.append("dehydrated")
            context.likely_reasons.append("Poor hydration impacts performance")
            context.suggestions.append("Focus on hydration throughout the day")

    if recent_mileage(workout, recent_workouts) > HIGH_RECENT_MILEAGE:
        context.factors.append("high recent mileage")
        context.likely_reasons.append("Accumulated fatigue from recent training volume")
        context.suggestions.append("Consider a lighter day tomorrow")

    easy_pace = reference.easy_pace if reference else None
    if easy_pace and workout.avg_pace_seconds and workout.avg_pace_seconds < easy_pace * 0.9:
        context.factors.append("faster than easy pace")
        context.likely_reasons.append("Running faster than planned increases perceived effort")
        context.suggestions.append("Slow down on easy days to recover better")

    return context
