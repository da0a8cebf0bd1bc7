"""
Celery tasks for background workout processing.

Tasks are defined here and imported by both the enqueuing side and
the worker (to execute).
"""
from celery import Celery
from celery.signals import setup_logging as celery_setup_logging
from core.config import settings
from core.logging import setup_logging

# Create Celery app instance
celery_app = Celery(
    "workout_pipeline",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes max per task
    task_soft_time_limit=25 * 60,  # 25 minutes soft limit
)


@celery_setup_logging.connect
def _configure_worker_logging(**kwargs):
    # Workers log through our formatter instead of Celery's default handlers
    setup_logging()


# Import tasks to register them
from . import workout_tasks  # noqa: E402

__all__ = ["celery_app"]
