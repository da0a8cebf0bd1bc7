"""
Rerun the workout pipeline over stored workouts.

Use after changing a classifier or threshold so derived fields catch up.
Default is dry-run: every stage runs and writes are staged, then rolled
back per workout.

Usage (inside api container):
  python scripts/reprocess_workouts.py --limit 200
  python scripts/reprocess_workouts.py --ids 12 13 14 --commit
  python scripts/reprocess_workouts.py --workers 4 --commit
"""

from __future__ import annotations

import os
import sys


# Ensure /app is on sys.path when run as a script inside the container.
_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _ROOT not in sys.path:
    sys.path.insert(0, _ROOT)


def run_ids(workout_ids, workers, store_factory, options, progress):
    """Process explicit ids; a shared store is opened only for a sequential run."""
    from services.workout_processor import process_workouts_batch

    if workers > 1:
        return process_workouts_batch(
            workout_ids,
            on_progress=progress,
            max_workers=workers,
            store_factory=store_factory,
            options=options,
        )

    store = store_factory()
    try:
        return process_workouts_batch(workout_ids, store, on_progress=progress, options=options)
    finally:
        store.close()


def main() -> int:
    import argparse

    parser = argparse.ArgumentParser()
    parser.add_argument("--ids", type=int, nargs="+", help="specific workout ids (default: all)")
    parser.add_argument("--limit", type=int, default=None, help="max workouts when reprocessing all")
    parser.add_argument("--workers", type=int, default=None, help="worker threads (default: PIPELINE_BATCH_WORKERS)")
    parser.add_argument(
        "--commit",
        action="store_true",
        help="Persist derived fields. Default is dry-run (no DB writes).",
    )
    args = parser.parse_args()

    from core.config import settings
    from core.database import get_db_sync
    from core.logging import setup_logging
    from services.workout_processor import ProcessingOptions, reprocess_all_workouts
    from services.workout_store import SqlAlchemyWorkoutStore

    setup_logging()

    options = ProcessingOptions(dry_run=not args.commit)
    workers = args.workers or settings.PIPELINE_BATCH_WORKERS
    mode = "COMMIT" if args.commit else "DRY_RUN"
    print(f"MODE={mode} workers={workers} ids={args.ids or 'all'} limit={args.limit}")

    def store_factory() -> SqlAlchemyWorkoutStore:
        return SqlAlchemyWorkoutStore(get_db_sync())

    def progress(completed: int, total: int) -> None:
        if completed == total or completed % 25 == 0:
            print(f"PROGRESS {completed}/{total}")

    if args.ids:
        batch = run_ids(args.ids, workers, store_factory, options, progress)
        for result in batch.results:
            if result.errors:
                print(f"WORKOUT {result.workout_id} errors={result.errors}")
        print("DONE", {"mode": mode, "successful": batch.successful, "failed": batch.failed, "total": len(args.ids)})
        return 0 if batch.failed == 0 else 1

    summary = reprocess_all_workouts(
        store_factory,
        limit=args.limit,
        max_workers=workers,
        options=options,
        on_progress=progress,
    )
    print("DONE", {"mode": mode, "successful": summary.successful, "failed": summary.failed, "total": summary.total})
    return 0 if summary.failed == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
