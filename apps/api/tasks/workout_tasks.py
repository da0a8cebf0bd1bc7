"""
Celery tasks for the workout pipeline.

process_workout_task runs after a workout is logged or edited;
reprocess_all_workouts_task backfills derived fields after an
algorithm change.
"""
import logging
from typing import Dict, Optional

from celery import Task

from core.database import get_db_sync
from services.workout_processor import process_workout, reprocess_all_workouts
from services.workout_store import SqlAlchemyWorkoutStore
from tasks import celery_app

logger = logging.getLogger(__name__)


def _open_store() -> SqlAlchemyWorkoutStore:
    return SqlAlchemyWorkoutStore(get_db_sync())


@celery_app.task(name="tasks.process_workout", bind=True)
def process_workout_task(self: Task, workout_id: int) -> Dict:
    """
    Run the analysis pipeline for one workout.

    Returns:
        Dictionary with status, category and any stage errors
    """
    store = _open_store()
    try:
        result = process_workout(workout_id, store)
        return {
            "status": "success" if result.success else "partial",
            "workout_id": workout_id,
            "category": result.classification.category.value if result.classification else None,
            "updated": result.updated,
            "errors": list(result.errors),
        }
    finally:
        store.close()


@celery_app.task(name="tasks.reprocess_all_workouts", bind=True)
def reprocess_all_workouts_task(self: Task, limit: Optional[int] = None) -> Dict:
    """Rerun the pipeline over stored workouts."""
    logger.info(f"Reprocess task {self.request.id} started (limit={limit})")
    summary = reprocess_all_workouts(_open_store, limit=limit)
    return {
        "status": "success",
        "successful": summary.successful,
        "failed": summary.failed,
        "total": summary.total,
    }
