"""
Tests for the reprocess ops script

Only the store handling around explicit ids; the pipeline is mocked.
"""

from unittest.mock import MagicMock, patch

from scripts.reprocess_workouts import run_ids
from services.workout_processor import BatchResult, ProcessingOptions


class TestRunIds:
    """Which stores get opened for an --ids run."""

    def test_parallel_run_opens_no_shared_store(self):
        store_factory = MagicMock()
        with patch("services.workout_processor.process_workouts_batch", return_value=BatchResult()) as batch:
            run_ids([1, 2, 3], 4, store_factory, ProcessingOptions(), None)

        store_factory.assert_not_called()
        assert batch.call_args.kwargs["max_workers"] == 4
        assert batch.call_args.kwargs["store_factory"] is store_factory

    def test_sequential_run_uses_and_closes_one_store(self):
        store = MagicMock()
        store_factory = MagicMock(return_value=store)
        options = ProcessingOptions(dry_run=True)
        with patch("services.workout_processor.process_workouts_batch", return_value=BatchResult()) as batch:
            run_ids([1, 2], 1, store_factory, options, None)

        store_factory.assert_called_once_with()
        batch.assert_called_once_with([1, 2], store, on_progress=None, options=options)
        store.close.assert_called_once()
