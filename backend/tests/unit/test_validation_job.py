"""
Tests for ChunkedValidationJob.

The job runs against in-memory fakes for the validator, task store and cache
so every step of a run can be observed.
"""
from typing import Any, Dict, List, Optional

import pytest
from celery.exceptions import SoftTimeLimitExceeded
from structlog.testing import capture_logs

from qctool.core.errors import GeminiError
from qctool.models.ai_validation import (
    AiIssue,
    AiValidationTaskStatus,
    ChunkResult,
    TaskStatus,
    ValidationResultItem,
)
from qctool.services.quality_control.job import FAILURE_WARNING, ChunkedValidationJob

TASK_ID = "task-1"
CACHE_KEY = "gemini_validation_test"


# =============================================================================
# Fakes
# =============================================================================
class FakeTaskStore:
    """Dict-backed task store that records every update."""

    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.updates: List[Dict[str, Any]] = []
        self.fail_updates = False

    def add(self, task_id: str = TASK_ID, total_batches: int = 1) -> None:
        self.rows[task_id] = {
            "id": task_id,
            "status": TaskStatus.PENDING.value,
            "total_batches": total_batches,
            "completed_batches": 0,
            "results": [],
            "warning": None,
        }

    def find(self, task_id: str) -> Optional[AiValidationTaskStatus]:
        row = self.rows.get(task_id)
        return AiValidationTaskStatus(**row) if row else None

    def update(self, task_id: str, **fields: Any) -> bool:
        if self.fail_updates:
            raise RuntimeError("database is locked")
        self.updates.append(dict(fields))
        if task_id not in self.rows:
            return False
        self.rows[task_id].update(fields)
        return True

    def progress(self) -> List[int]:
        return [u["completed_batches"] for u in self.updates if "completed_batches" in u]

    def statuses(self) -> List[str]:
        return [u["status"] for u in self.updates if "status" in u]


class FakeCache:
    def __init__(self, error: Optional[Exception] = None):
        self.entries: Dict[str, Any] = {}
        self.ttls: Dict[str, int] = {}
        self.error = error

    def put(self, key: str, value: Any, ttl: int) -> None:
        if self.error is not None:
            raise self.error
        self.entries[key] = value
        self.ttls[key] = ttl


class FakeValidator:
    """
    Returns scripted outcomes per call.

    An outcome may be a ChunkResult, an exception to raise, or None to echo one
    clean result item per chunk key.
    """

    def __init__(self, outcomes: Optional[List[Any]] = None, on_call=None):
        self.outcomes = outcomes or []
        self.on_call = on_call
        self.chunks: List[Dict[str, str]] = []

    def process_chunk(self, chunk):
        index = len(self.chunks)
        self.chunks.append(dict(chunk))
        if self.on_call is not None:
            self.on_call(index)

        outcome = self.outcomes[index] if index < len(self.outcomes) else None
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome is None:
            return ChunkResult(results=[ValidationResultItem(pdm_num=key) for key in chunk])
        return outcome


def _records(n: int, prefix: str = "r") -> Dict[str, str]:
    return {f"{prefix}{i}": f"Description number {i}." for i in range(1, n + 1)}


def _items(*keys: str) -> ChunkResult:
    return ChunkResult(results=[
        ValidationResultItem(
            pdm_num=key,
            ai_errors=[AiIssue(text=f"Issue in {key}", flags=["Grammar"], suggestions=[])],
        )
        for key in keys
    ])


def _job(records, validator, store, cache, chunk_size=25, cache_ttl=900) -> ChunkedValidationJob:
    return ChunkedValidationJob(
        TASK_ID,
        records,
        CACHE_KEY,
        validator=validator,
        task_store=store,
        cache=cache,
        chunk_size=chunk_size,
        cache_ttl=cache_ttl,
    )


@pytest.fixture
def store() -> FakeTaskStore:
    task_store = FakeTaskStore()
    task_store.add()
    return task_store


@pytest.fixture
def cache() -> FakeCache:
    return FakeCache()


# =============================================================================
# Chunking and progress
# =============================================================================
class TestChunking:
    """Records are split into ordered chunks of the configured size."""

    @pytest.mark.parametrize("n, expected", [(1, [1]), (25, [25]), (26, [25, 1]), (60, [25, 25, 10])])
    def test_chunk_sizes(self, store, cache, n, expected):
        validator = FakeValidator()

        _job(_records(n), validator, store, cache).execute()

        assert [len(chunk) for chunk in validator.chunks] == expected

    def test_chunks_keep_record_order(self, store, cache):
        records = _records(7)
        validator = FakeValidator()

        _job(records, validator, store, cache, chunk_size=3).execute()

        seen = [key for chunk in validator.chunks for key in chunk]
        assert seen == list(records)


class TestProgress:
    """completed_batches advances after every chunk."""

    def test_progress_advances_for_every_outcome(self, store, cache):
        validator = FakeValidator([
            None,
            GeminiError("Gemini API returned HTTP 503"),
            ChunkResult(warning="bad shape"),
            None,
        ])

        _job(_records(8), validator, store, cache, chunk_size=2).execute()

        assert store.progress() == [1, 2, 3, 4]
        assert store.rows[TASK_ID]["completed_batches"] == 4

    def test_partial_results_visible_while_running(self, store, cache):
        snapshots = []

        def snapshot(index):
            snapshots.append((
                store.rows[TASK_ID]["completed_batches"],
                len(store.rows[TASK_ID]["results"]),
            ))

        validator = FakeValidator(on_call=snapshot)

        _job(_records(5), validator, store, cache, chunk_size=2).execute()

        assert snapshots == [(0, 0), (1, 2), (2, 4)]

    def test_status_transitions(self, store, cache):
        _job(_records(3), FakeValidator(), store, cache).execute()

        assert store.statuses() == ["processing", "complete"]
        assert store.updates[0] == {"status": "processing"}
        assert store.rows[TASK_ID]["status"] == "complete"


# =============================================================================
# Per-chunk failures
# =============================================================================
class TestChunkFailures:
    """A failing or warning chunk drops its own results only."""

    def test_failed_chunk_results_are_isolated(self, store, cache):
        validator = FakeValidator([
            _items("a1", "a2", "a3", "a4", "a5"),
            RuntimeError("boom"),
            _items("c1", "c2", "c3"),
        ])

        _job(_records(13), validator, store, cache, chunk_size=5).execute()

        results = store.rows[TASK_ID]["results"]
        assert [item["pdm_num"] for item in results] == ["a1", "a2", "a3", "a4", "a5", "c1", "c2", "c3"]
        assert store.rows[TASK_ID]["status"] == "complete"
        assert store.rows[TASK_ID]["warning"] is None

    def test_warning_suppresses_results_not_progress(self, store, cache):
        validator = FakeValidator([
            ChunkResult(results=[ValidationResultItem(pdm_num="r1")], warning="bad shape"),
        ])

        _job(_records(1), validator, store, cache).execute()

        assert store.rows[TASK_ID]["results"] == []
        assert store.rows[TASK_ID]["completed_batches"] == 1
        assert store.rows[TASK_ID]["status"] == "complete"

    def test_every_chunk_failing_still_completes(self, store, cache):
        validator = FakeValidator([GeminiError("down"), GeminiError("down")])

        _job(_records(4), validator, store, cache, chunk_size=2).execute()

        assert store.rows[TASK_ID]["status"] == "complete"
        assert store.rows[TASK_ID]["results"] == []
        assert cache.entries[CACHE_KEY] == {"results": [], "warning": None, "enabled": True}

    def test_results_are_json_ready(self, store, cache):
        validator = FakeValidator([_items("r1")])

        _job(_records(1), validator, store, cache).execute()

        assert store.rows[TASK_ID]["results"] == [{
            "pdm_num": "r1",
            "ai_errors": [{"text": "Issue in r1", "flags": ["Grammar"], "suggestions": []}],
        }]


# =============================================================================
# Missing or vanishing task
# =============================================================================
class TestMissingTask:
    """A task cleaned up before or during the run is not an error."""

    def test_missing_task_is_a_no_op(self, cache):
        empty_store = FakeTaskStore()
        validator = FakeValidator()

        _job(_records(3), validator, empty_store, cache).execute()

        assert empty_store.updates == []
        assert validator.chunks == []
        assert cache.entries == {}

    def test_task_removed_mid_run(self, store, cache):
        def remove_task(index):
            if index == 1:
                store.rows.pop(TASK_ID)

        validator = FakeValidator(on_call=remove_task)

        _job(_records(4), validator, store, cache, chunk_size=2).execute()

        assert TASK_ID not in store.rows
        assert store.progress() == [1, 2]
        assert len(cache.entries[CACHE_KEY]["results"]) == 4


# =============================================================================
# Fatal failures
# =============================================================================
class TestFatalFailure:
    """Errors outside the per-chunk guard fail the task."""

    def test_cache_error_marks_task_failed(self, store):
        broken_cache = FakeCache(error=ConnectionError("redis at 10.0.0.5 refused"))

        with pytest.raises(ConnectionError):
            _job(_records(2), FakeValidator(), store, broken_cache).execute()

        row = store.rows[TASK_ID]
        assert row["status"] == TaskStatus.FAILED.value
        assert row["warning"] == FAILURE_WARNING
        assert "10.0.0.5" not in row["warning"]

    def test_soft_time_limit_is_not_swallowed(self, store, cache):
        validator = FakeValidator([None, SoftTimeLimitExceeded()])

        with pytest.raises(SoftTimeLimitExceeded):
            _job(_records(4), validator, store, cache, chunk_size=2).execute()

        row = store.rows[TASK_ID]
        assert row["status"] == "failed"
        assert row["warning"] == FAILURE_WARNING
        assert row["completed_batches"] == 1
        assert cache.entries == {}

    def test_failed_skips_missing_task(self, cache):
        empty_store = FakeTaskStore()
        job = _job(_records(1), FakeValidator(), empty_store, cache)

        job.failed(RuntimeError("worker lost"))

        assert empty_store.updates == []

    def test_failed_tolerates_store_errors(self, store, cache):
        store.fail_updates = True
        job = _job(_records(1), FakeValidator(), store, cache)

        job.failed(RuntimeError("worker lost"))

        assert store.rows[TASK_ID]["status"] == "pending"


# =============================================================================
# Cache materialisation
# =============================================================================
class TestCacheWrite:
    """The combined result is cached when the run finishes."""

    def test_cache_entry_matches_combined_results(self, store, cache):
        first = _items("a1", "a2", "a3", "a4")
        second = _items("b1", "b2", "b3", "b4", "b5", "b6")
        validator = FakeValidator([first, second])

        _job(_records(10), validator, store, cache, chunk_size=6, cache_ttl=600).execute()

        entry = cache.entries[CACHE_KEY]
        assert entry["warning"] is None
        assert entry["enabled"] is True
        assert [item["pdm_num"] for item in entry["results"]] == [
            "a1", "a2", "a3", "a4", "b1", "b2", "b3", "b4", "b5", "b6",
        ]
        assert cache.ttls[CACHE_KEY] == 600


class TestEndToEnd:
    """Thirty records validated in two chunks."""

    def test_thirty_records(self, cache):
        store = FakeTaskStore()
        store.add(total_batches=2)
        records = _records(30)
        validator = FakeValidator()

        _job(records, validator, store, cache).execute()

        row = store.rows[TASK_ID]
        assert [len(chunk) for chunk in validator.chunks] == [25, 5]
        assert store.progress() == [1, 2]
        assert row["status"] == "complete"
        assert len(row["results"]) == 30
        assert [item["pdm_num"] for item in row["results"]] == list(records)
        assert len(cache.entries[CACHE_KEY]["results"]) == 30
        assert cache.entries[CACHE_KEY]["warning"] is None


class TestErrorLogging:
    """Failures are logged with their traceback."""

    def test_fatal_failure_logs_exception(self, store, cache):
        job = _job(_records(1), FakeValidator(), store, cache)
        error = RuntimeError("worker lost")

        with capture_logs() as logs:
            job.failed(error)

        entry = next(log for log in logs if log["event"] == "ai_validation_job_failed")
        assert entry["log_level"] == "error"
        assert entry["exc_info"] is error
        assert entry["task_id"] == TASK_ID

    def test_batch_failure_logs_exception(self, store, cache):
        validator = FakeValidator([GeminiError("Gemini API returned HTTP 503")])

        with capture_logs() as logs:
            _job(_records(1), validator, store, cache).execute()

        entry = next(log for log in logs if log["event"] == "ai_validation_batch_failed")
        assert entry["batch_number"] == 1
        assert entry["error_type"] == "GeminiError"
        assert entry["exc_info"] is True
