"""
Workout Processing Pipeline

Runs every analysis for one logged workout and writes the merged result
back to the workout row.

Stages (each independent, a failure is recorded and the rest still run):
1. Load workout, laps, plan item and athlete reference
2. Data quality
3. Training load (quality ratio, TRIMP)
4. Run classification
5. Zone classification (lap zones written back to persisted laps only)
6. Interval stress (>=3 laps, zone-enriched)
7. Interval pattern (>=4 laps, merged into the interval stress blob)
8. Route matching (serialized per route)
9. Execution scoring (only with a planned workout)
10. Persist once; nothing derived -> no write

The only fatal outcome is a missing workout.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, Tuple, TypeVar, Union

from core.config import settings
from services.data_quality import DataQualityFlags, check_data_quality
from services.execution_scorer import ExecutionScore, compute_execution_score, serialize_execution_details
from services.interval_detector import IntervalPattern, IntervalStructure, detect_interval_pattern
from services.interval_stress import IntervalStressResult, compute_interval_stress
from services.route_locks import route_lock
from services.route_matcher import (
    RouteFingerprint,
    RouteMatch,
    compute_route_fingerprint,
    create_canonical_route_from_workout,
    match_route,
    route_lock_key,
)
from services.run_classifier import ClassificationResult, classify_run
from services.training_load import compute_condition_adjustment, compute_quality_ratio, compute_trimp
from services.workout_store import WorkoutBundle, WorkoutStore
from services.workout_types import (
    AthleteReference,
    PersistedSegment,
    SegmentData,
    SyntheticSegment,
    with_zone,
)
from services.zone_classifier import (
    ZoneClassification,
    classify as classify_zones,
    compute_zone_distribution,
    derive_workout_type,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MIN_INTERVAL_STRESS_SEGMENTS = 3
MIN_INTERVAL_PATTERN_SEGMENTS = 4


# =============================================================================
# STAGE RESULTS
# =============================================================================

class Stage(str, Enum):
    LOAD = "load"
    DATA_QUALITY = "data_quality"
    METRICS = "metrics"
    CLASSIFICATION = "classification"
    ZONES = "zones"
    INTERVAL_STRESS = "interval_stress"
    INTERVAL_PATTERN = "interval_pattern"
    ROUTE = "route"
    EXECUTION = "execution"
    UPDATE = "update"


STAGE_PREFIXES = {
    Stage.LOAD: "Workout load failed: ",
    Stage.DATA_QUALITY: "Data quality check failed: ",
    Stage.METRICS: "Metrics computation failed: ",
    Stage.CLASSIFICATION: "Classification failed: ",
    Stage.ZONES: "Zone classification failed: ",
    Stage.INTERVAL_STRESS: "Interval stress computation failed: ",
    Stage.INTERVAL_PATTERN: "Interval pattern detection failed: ",
    Stage.ROUTE: "Route matching failed: ",
    Stage.EXECUTION: "Execution scoring failed: ",
    Stage.UPDATE: "Database update failed: ",
}

WORKOUT_NOT_FOUND = "Workout not found"


@dataclass(frozen=True)
class StageError:
    stage: Stage
    detail: str

    def render(self) -> str:
        return f"{STAGE_PREFIXES[self.stage]}{self.detail}"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    error: StageError


Result = Union[Ok[T], Err]


def run_stage(stage: Stage, workout_id: Any, fn: Callable[..., T], *args, **kwargs) -> Result:
    """Call ``fn`` and wrap its outcome. Exceptions become Err for ``stage``."""
    try:
        return Ok(fn(*args, **kwargs))
    except Exception as e:
        logger.warning(
            f"{STAGE_PREFIXES[stage]}{e} (workout {workout_id})",
            exc_info=True,
            extra={"extra_fields": {"workout_id": workout_id, "stage": stage.value}},
        )
        return Err(StageError(stage, str(e)))


def ok_value(result: Optional[Result]):
    """The Ok payload, or None for Err / a skipped stage."""
    if isinstance(result, Ok):
        return result.value
    return None


# =============================================================================
# OPTIONS / CONTEXT
# =============================================================================

@dataclass(frozen=True)
class ProcessingOptions:
    skip_classification: bool = False
    skip_execution: bool = False
    skip_data_quality: bool = False
    skip_route_matching: bool = False
    dry_run: bool = False  # stage writes, then roll back instead of committing


@dataclass(frozen=True)
class Analyzers:
    """
    The strategies each stage calls. Swap any of them to change how a
    stage decides without touching the orchestration.
    """
    check_data_quality: Callable = check_data_quality
    classify_run: Callable = classify_run
    classify_zones: Callable = classify_zones
    compute_interval_stress: Callable = compute_interval_stress
    detect_interval_pattern: Callable = detect_interval_pattern
    fingerprint_route: Callable = compute_route_fingerprint
    match_route: Callable = match_route
    score_execution: Callable = compute_execution_score


@dataclass(frozen=True)
class AnalysisContext:
    """Everything an analysis may depend on beyond the workout itself."""
    reference: Optional[AthleteReference]
    condition_adjustment: int
    options: ProcessingOptions
    analyzers: Analyzers


# =============================================================================
# STAGE OUTPUTS
# =============================================================================

@dataclass(frozen=True)
class TrainingLoad:
    quality_ratio: float
    trimp: Optional[int]


@dataclass
class ZoneStageOutput:
    classification: ZoneClassification
    distribution: Dict[str, float]
    derived_workout_type: Optional[str]
    # Real laps carrying their resolved zone; synthetic laps never appear here
    enriched_segments: List[PersistedSegment] = field(default_factory=list)


@dataclass(frozen=True)
class RouteOutcome:
    fingerprint: RouteFingerprint
    match: Optional[RouteMatch] = None
    new_route: bool = False


@dataclass
class ProcessingResult:
    workout_id: int
    data_quality: Optional[DataQualityFlags] = None
    quality_ratio: Optional[float] = None
    trimp: Optional[int] = None
    classification: Optional[ClassificationResult] = None
    zone_classification: Optional[ZoneClassification] = None
    zone_distribution: Optional[Dict[str, float]] = None
    zone_dominant: Optional[str] = None
    interval_stress: Optional[IntervalStressResult] = None
    interval_pattern: Optional[IntervalPattern] = None
    route_match: Optional[RouteMatch] = None
    route_fingerprint: Optional[RouteFingerprint] = None
    new_route: bool = False
    execution: Optional[ExecutionScore] = None
    updated: bool = False
    errors: List[str] = field(default_factory=list)
    stage_errors: List[StageError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


@dataclass
class BatchResult:
    successful: int = 0
    failed: int = 0
    results: List[ProcessingResult] = field(default_factory=list)


@dataclass(frozen=True)
class ReprocessSummary:
    successful: int
    failed: int
    total: int


# =============================================================================
# STAGES
# =============================================================================

def _load(store: WorkoutStore, workout_id: int) -> Optional[Tuple[WorkoutBundle, Optional[AthleteReference]]]:
    bundle = store.get_workout(workout_id)
    if bundle is None:
        return None
    reference = store.get_athlete_reference(bundle.workout.profile_id)
    return bundle, reference


def _training_load(bundle: WorkoutBundle, ctx: AnalysisContext) -> TrainingLoad:
    segments = list(bundle.segments)
    return TrainingLoad(
        quality_ratio=compute_quality_ratio(bundle.workout, segments, ctx.reference),
        trimp=compute_trimp(bundle.workout, ctx.reference),
    )


def _zones(bundle: WorkoutBundle, ctx: AnalysisContext) -> Optional[ZoneStageOutput]:
    workout = bundle.workout
    laps: List[SegmentData] = sorted(bundle.segments, key=lambda s: s.segment_number)
    if not laps:
        synthetic = SyntheticSegment.from_workout(workout)
        if synthetic is None:
            return None
        laps = [synthetic]

    classification = ctx.analyzers.classify_zones(
        laps,
        ctx.reference,
        workout.workout_type or "easy",
        ctx.condition_adjustment,
        workout.avg_pace_seconds,
    )

    enriched = [
        with_zone(lap, lap_zone.category.value, lap_zone.confidence)
        for lap, lap_zone in zip(laps, classification.per_lap)
        if isinstance(lap, PersistedSegment)
    ]
    distribution = compute_zone_distribution(classification.per_lap, laps)

    return ZoneStageOutput(
        classification=classification,
        distribution=distribution,
        derived_workout_type=derive_workout_type(distribution, workout) or None,
        enriched_segments=enriched,
    )


def _zone_enriched(bundle: WorkoutBundle, zones: Optional[ZoneStageOutput]) -> List[PersistedSegment]:
    """Real laps in order, carrying classified zones where the zone stage produced them."""
    classified = {s.id: s for s in zones.enriched_segments} if zones else {}
    ordered = sorted(bundle.segments, key=lambda s: s.segment_number)
    return [classified.get(s.id, s) for s in ordered]


def _route(store: WorkoutStore, bundle: WorkoutBundle, ctx: AnalysisContext) -> Optional[RouteOutcome]:
    workout = bundle.workout
    fingerprint = ctx.analyzers.fingerprint_route(workout)
    if fingerprint is None:
        return None

    routes = store.list_canonical_routes()
    match = ctx.analyzers.match_route(fingerprint, routes)
    if match is not None:
        # Reprocessing a workout already credited to this route must not count it twice
        if match.route_id != workout.route_id:
            with route_lock(route_lock_key(match.route_name)):
                store.record_route_run(match.route_id, workout)
        return RouteOutcome(fingerprint=fingerprint, match=match)

    if not workout.route_name:
        return RouteOutcome(fingerprint=fingerprint)

    new_route = create_canonical_route_from_workout(workout, fingerprint)
    with route_lock(route_lock_key(new_route.name)):
        route, created = store.upsert_canonical_route(new_route, workout)
    return RouteOutcome(
        fingerprint=fingerprint,
        match=RouteMatch(route_id=route.id, route_name=route.name, confidence=1.0, match_type="exact"),
        new_route=created,
    )


def _execution(bundle: WorkoutBundle, ctx: AnalysisContext) -> ExecutionScore:
    workout = bundle.workout
    weather = workout.weather if workout.weather.temp_f is not None else None
    return ctx.analyzers.score_execution(
        workout,
        bundle.planned,
        list(bundle.segments),
        weather,
        ctx.reference,
    )


# =============================================================================
# MERGE + PERSIST
# =============================================================================

def _build_update(bundle: WorkoutBundle, result: ProcessingResult, zones: Optional[ZoneStageOutput]) -> Dict[str, Any]:
    updates: Dict[str, Any] = {}

    if result.classification is not None:
        updates["auto_category"] = result.classification.category.value
        updates["auto_summary"] = result.classification.summary

    if result.quality_ratio is not None:
        updates["quality_ratio"] = result.quality_ratio
    if result.trimp is not None:
        updates["trimp"] = result.trimp

    details: Optional[Dict[str, Any]] = None
    if result.interval_stress is not None:
        updates["interval_adjusted_trimp"] = result.interval_stress.interval_adjusted_trimp
        details = result.interval_stress.to_dict()
    if result.interval_pattern is not None and result.interval_pattern.type != IntervalStructure.UNKNOWN:
        details = details or {}
        details["intervalPattern"] = result.interval_pattern.to_dict()
    if details is not None:
        updates["interval_stress_details"] = details

    if result.execution is not None:
        updates["execution_score"] = result.execution.overall
        updates["execution_details"] = serialize_execution_details(result.execution)

    if result.data_quality is not None:
        updates["data_quality_flags"] = result.data_quality.to_dict()

    if zones is not None:
        updates["zone_distribution"] = zones.distribution
        updates["zone_dominant"] = zones.derived_workout_type
        updates["zone_classified_at"] = datetime.now(timezone.utc)
        if zones.classification.boundaries is not None:
            updates["zone_boundaries_used"] = zones.classification.boundaries.to_dict()
        # A user-confirmed category always wins over inference
        if zones.derived_workout_type and not bundle.workout.category:
            updates["workout_type"] = zones.derived_workout_type

    if result.route_fingerprint is not None:
        updates["route_fingerprint"] = result.route_fingerprint.to_dict()
    if result.route_match is not None:
        updates["route_id"] = result.route_match.route_id

    return updates


def _persist(
    store: WorkoutStore,
    workout_id: int,
    updates: Dict[str, Any],
    segments: Sequence[PersistedSegment],
    dry_run: bool,
) -> None:
    for segment in segments:
        store.update_segment(segment, segment.pace_zone, segment.pace_zone_confidence)
    if updates:
        store.update_workout(workout_id, updates)
    if dry_run:
        store.rollback()
    else:
        store.commit()


# =============================================================================
# ENTRY POINTS
# =============================================================================

def process_workout(
    workout_id: int,
    store: WorkoutStore,
    options: Optional[ProcessingOptions] = None,
    analyzers: Optional[Analyzers] = None,
) -> ProcessingResult:
    """
    Run the full analysis pipeline for one workout.

    Never raises: stage failures are collected in ``result.errors``.
    """
    options = options or ProcessingOptions()
    analyzers = analyzers or Analyzers()
    result = ProcessingResult(workout_id=workout_id)

    def record(stage_result: Optional[Result]):
        if isinstance(stage_result, Err):
            result.stage_errors.append(stage_result.error)
            result.errors.append(stage_result.error.render())
        return ok_value(stage_result)

    loaded = run_stage(Stage.LOAD, workout_id, _load, store, workout_id)
    if isinstance(loaded, Err):
        record(loaded)
        return result
    if loaded.value is None:
        result.errors.append(WORKOUT_NOT_FOUND)
        return result

    bundle, reference = loaded.value
    workout = bundle.workout
    ctx = AnalysisContext(
        reference=reference,
        condition_adjustment=compute_condition_adjustment(workout),
        options=options,
        analyzers=analyzers,
    )
    segments = list(bundle.segments)

    # 2. Data quality
    if not options.skip_data_quality:
        result.data_quality = record(
            run_stage(Stage.DATA_QUALITY, workout_id, analyzers.check_data_quality, workout, segments)
        )

    # 3. Training load
    load = record(run_stage(Stage.METRICS, workout_id, _training_load, bundle, ctx))
    if load is not None:
        result.quality_ratio = load.quality_ratio
        result.trimp = load.trimp

    # 4. Classification
    if not options.skip_classification:
        result.classification = record(
            run_stage(Stage.CLASSIFICATION, workout_id, analyzers.classify_run, workout, reference, segments)
        )

    # 5. Zones
    zones: Optional[ZoneStageOutput] = record(run_stage(Stage.ZONES, workout_id, _zones, bundle, ctx))
    if zones is not None:
        result.zone_classification = zones.classification
        result.zone_distribution = zones.distribution
        result.zone_dominant = zones.derived_workout_type

    enriched = _zone_enriched(bundle, zones)

    # 6. Interval stress
    if result.trimp is not None and len(enriched) >= MIN_INTERVAL_STRESS_SEGMENTS:
        result.interval_stress = record(run_stage(
            Stage.INTERVAL_STRESS, workout_id,
            analyzers.compute_interval_stress, workout, enriched, reference, result.trimp,
        ))

    # 7. Interval pattern
    if len(enriched) >= MIN_INTERVAL_PATTERN_SEGMENTS:
        result.interval_pattern = record(
            run_stage(Stage.INTERVAL_PATTERN, workout_id, analyzers.detect_interval_pattern, enriched)
        )

    # 8. Route
    if not options.skip_route_matching:
        outcome: Optional[RouteOutcome] = record(run_stage(Stage.ROUTE, workout_id, _route, store, bundle, ctx))
        if outcome is not None:
            result.route_fingerprint = outcome.fingerprint
            result.route_match = outcome.match
            result.new_route = outcome.new_route

    # 9. Execution
    if not options.skip_execution and bundle.planned is not None:
        result.execution = record(run_stage(Stage.EXECUTION, workout_id, _execution, bundle, ctx))

    # 10. Persist
    updates = _build_update(bundle, result, zones)
    zone_writes = zones.enriched_segments if zones else []
    if updates or zone_writes:
        persisted = run_stage(
            Stage.UPDATE, workout_id, _persist, store, workout_id, updates, zone_writes, options.dry_run,
        )
        if isinstance(persisted, Err):
            rolled_back = run_stage(Stage.UPDATE, workout_id, store.rollback)
            record(persisted)
            record(rolled_back)
        else:
            result.updated = not options.dry_run
    else:
        logger.info(f"Workout {workout_id}: nothing derived, no write")

    logger.info(
        f"Processed workout {workout_id}: "
        f"category={result.classification.category.value if result.classification else None}, "
        f"errors={len(result.errors)}"
    )
    return result


def process_workouts_batch(
    workout_ids: Sequence[int],
    store: Optional[WorkoutStore] = None,
    on_progress: Optional[Callable[[int, int], None]] = None,
    max_workers: int = 1,
    store_factory: Optional[Callable[[], WorkoutStore]] = None,
    options: Optional[ProcessingOptions] = None,
) -> BatchResult:
    """
    Process many workouts, reporting (completed, total) after each one.

    With max_workers > 1 each worker opens its own store from
    ``store_factory``; results keep the input order either way.
    """
    total = len(workout_ids)
    batch = BatchResult()
    if max_workers <= 1:
        if store is None:
            if store_factory is None:
                raise ValueError("process_workouts_batch needs a store or a store_factory")
            store = store_factory()
        for i, workout_id in enumerate(workout_ids):
            result = process_workout(workout_id, store, options)
            batch.results.append(result)
            if result.success:
                batch.successful += 1
            else:
                batch.failed += 1
            if on_progress:
                on_progress(i + 1, total)
        return batch

    if store_factory is None:
        raise ValueError("Parallel batches need a store_factory (one store per worker)")

    local = threading.local()
    opened: List[WorkoutStore] = []
    opened_guard = threading.Lock()

    def worker_store() -> WorkoutStore:
        worker = getattr(local, "store", None)
        if worker is None:
            worker = store_factory()
            local.store = worker
            with opened_guard:
                opened.append(worker)
        return worker

    def run(workout_id: int) -> ProcessingResult:
        return process_workout(workout_id, worker_store(), options)

    by_id: Dict[int, ProcessingResult] = {}
    try:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = {pool.submit(run, workout_id): workout_id for workout_id in workout_ids}
            for completed, future in enumerate(as_completed(futures), start=1):
                result = future.result()
                by_id[futures[future]] = result
                if result.success:
                    batch.successful += 1
                else:
                    batch.failed += 1
                if on_progress:
                    on_progress(completed, total)
    finally:
        for worker in opened:
            worker.close()

    batch.results = [by_id[workout_id] for workout_id in workout_ids]
    return batch


def reprocess_all_workouts(
    store_factory: Callable[[], WorkoutStore],
    limit: Optional[int] = None,
    max_workers: Optional[int] = None,
    options: Optional[ProcessingOptions] = None,
    on_progress: Optional[Callable[[int, int], None]] = None,
) -> ReprocessSummary:
    """Rerun the pipeline over stored workouts (oldest id first), e.g. after an algorithm change."""
    workers = max_workers or settings.PIPELINE_BATCH_WORKERS
    store = store_factory()
    try:
        workout_ids = store.list_workout_ids(limit)
        logger.info(f"Reprocessing {len(workout_ids)} workouts with {workers} worker(s)")
        if workers <= 1:
            batch = process_workouts_batch(workout_ids, store, on_progress=on_progress, options=options)
        else:
            batch = process_workouts_batch(
                workout_ids,
                on_progress=on_progress,
                max_workers=workers,
                store_factory=store_factory,
                options=options,
            )
    finally:
        store.close()

    summary = ReprocessSummary(successful=batch.successful, failed=batch.failed, total=len(workout_ids))
    logger.info(f"Reprocess complete: {summary.successful} ok, {summary.failed} failed of {summary.total}")
    return summary
