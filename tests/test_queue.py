"""Tests for papertray.queue -- FIFO print queue with an id index.

Covers:
- submit: id assignment, duplicate and None rejection, submitted event
- peek_head / take_head ordering
- set_state: forward-only transitions, timestamps, failure detail,
  unknown ids
- retire: terminal-only, exactly once, index entry kept
- purge_retired retention window; purged ids stay reserved
- stats / list_jobs / clear
- Thread safety: concurrent submits keep every job
"""

from __future__ import annotations

import threading

import pytest

from papertray.events import EventType
from papertray.job import (
    InvalidStateTransition,
    JobNotFoundError,
    JobStatus,
    JobValidationError,
    MediaType,
    PrintJob,
)
from papertray.queue import PrintQueue


def _job(name: str = "a.pdf", **kwargs) -> PrintJob:
    return PrintJob(file_path=f"/tmp/{name}", media_type=MediaType.PDF, printer_name="office-laser", **kwargs)


def _finish(queue: PrintQueue, job_id: str, status: JobStatus = JobStatus.COMPLETED) -> None:
    queue.set_state(job_id, JobStatus.IN_PREPARATION)
    if status is JobStatus.COMPLETED:
        queue.set_state(job_id, JobStatus.PRINTING)
    queue.set_state(job_id, status, "Print failed: boom" if status is JobStatus.FAILED else None)


# ---------------------------------------------------------------------------
# submit
# ---------------------------------------------------------------------------


class TestSubmit:
    def test_assigns_unique_ids(self, queue):
        ids = {queue.submit(_job(f"{i}.pdf")) for i in range(5)}
        assert len(ids) == 5
        assert all(ids)

    def test_keeps_caller_id(self, queue):
        assert queue.submit(_job(id="fixed")) == "fixed"
        assert queue.lookup("fixed") is not None

    def test_duplicate_id_rejected(self, queue):
        queue.submit(_job(id="dup"))
        with pytest.raises(JobValidationError, match="Duplicate"):
            queue.submit(_job(id="dup"))
        assert queue.size() == 1

    def test_none_rejected(self, queue):
        with pytest.raises(JobValidationError, match="Task cannot be null"):
            queue.submit(None)

    def test_visible_after_submit(self, queue):
        job_id = queue.submit(_job())
        assert queue.lookup(job_id).status is JobStatus.PENDING
        assert queue.size() == 1
        assert queue.total_count == 1

    def test_publishes_submitted_event(self, queue, bus):
        job_id = queue.submit(_job())
        events = bus.recent_events(EventType.JOB_SUBMITTED)
        assert len(events) == 1
        assert events[0].data["id"] == job_id
        assert events[0].source == "queue"

    def test_works_without_event_bus(self):
        queue = PrintQueue()
        assert queue.submit(_job())


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------


class TestOrdering:
    def test_fifo(self, queue):
        a = queue.submit(_job("a.pdf"))
        b = queue.submit(_job("b.pdf"))
        c = queue.submit(_job("c.pdf"))
        assert queue.peek_head().id == a
        assert [queue.take_head().id for _ in range(3)] == [a, b, c]
        assert queue.take_head() is None

    def test_peek_does_not_remove(self, queue):
        queue.submit(_job())
        queue.peek_head()
        assert queue.size() == 1

    def test_empty_queue(self, queue):
        assert queue.peek_head() is None
        assert queue.take_head() is None

    def test_taken_job_still_indexed(self, queue):
        job_id = queue.submit(_job())
        queue.take_head()
        assert queue.size() == 0
        assert queue.lookup(job_id) is not None

    def test_list_jobs_snapshot(self, queue):
        ids = [queue.submit(_job(f"{i}.pdf")) for i in range(3)]
        snapshot = queue.list_jobs()
        queue.take_head()
        assert [j.id for j in snapshot] == ids


# ---------------------------------------------------------------------------
# set_state
# ---------------------------------------------------------------------------


class TestSetState:
    def test_records_timestamps(self, queue):
        job_id = queue.submit(_job())
        job = queue.set_state(job_id, JobStatus.IN_PREPARATION)
        assert job.started_at is not None
        assert job.finished_at is None
        queue.set_state(job_id, JobStatus.PRINTING)
        job = queue.set_state(job_id, JobStatus.COMPLETED)
        assert job.finished_at is not None
        assert job.error is None

    def test_failed_records_detail(self, queue):
        job_id = queue.submit(_job())
        queue.set_state(job_id, JobStatus.IN_PREPARATION)
        job = queue.set_state(job_id, JobStatus.FAILED, "Print failed: jam", fault="media_fault")
        assert job.error == "Print failed: jam"
        assert job.fault == "media_fault"

    def test_failed_without_detail_gets_generic_message(self, queue):
        job_id = queue.submit(_job())
        queue.set_state(job_id, JobStatus.IN_PREPARATION)
        job = queue.set_state(job_id, JobStatus.FAILED)
        assert job.error

    def test_detail_ignored_when_not_failed(self, queue):
        job_id = queue.submit(_job())
        job = queue.set_state(job_id, JobStatus.IN_PREPARATION, "ignored")
        assert job.error is None

    def test_backward_transition_rejected(self, queue):
        job_id = queue.submit(_job())
        _finish(queue, job_id)
        with pytest.raises(InvalidStateTransition):
            queue.set_state(job_id, JobStatus.PENDING)
        assert queue.lookup(job_id).status is JobStatus.COMPLETED

    def test_unknown_id_returns_none_and_warns(self, queue, caplog):
        with caplog.at_level("WARNING", logger="papertray.queue"):
            assert queue.set_state("nope", JobStatus.IN_PREPARATION) is None
        assert "Task not found for status update" in caplog.text


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


class TestLookup:
    def test_unknown_lookup_is_none(self, queue):
        assert queue.lookup("missing") is None

    def test_get_job_raises(self, queue):
        with pytest.raises(JobNotFoundError):
            queue.get_job("missing")


# ---------------------------------------------------------------------------
# retire / purge
# ---------------------------------------------------------------------------


class TestRetire:
    def test_retire_terminal_head(self, queue):
        job_id = queue.submit(_job())
        _finish(queue, job_id, JobStatus.FAILED)
        job = queue.retire(job_id)
        assert job is not None
        assert job.retired_at is not None
        assert queue.size() == 0
        assert queue.lookup(job_id) is job

    def test_retire_is_idempotent(self, queue):
        job_id = queue.submit(_job())
        _finish(queue, job_id)
        assert queue.retire(job_id) is not None
        assert queue.retire(job_id) is None

    def test_non_terminal_not_retired(self, queue):
        job_id = queue.submit(_job())
        assert queue.retire(job_id) is None
        assert queue.size() == 1

    def test_unknown_not_retired(self, queue):
        assert queue.retire("ghost") is None

    def test_retire_job_already_taken(self, queue):
        job_id = queue.submit(_job())
        other = queue.submit(_job("b.pdf"))
        queue.take_head()
        _finish(queue, job_id)
        assert queue.retire(job_id) is not None
        assert [j.id for j in queue.list_jobs()] == [other]

    def test_purge_respects_window(self, queue):
        old = queue.submit(_job("old.pdf"))
        fresh = queue.submit(_job("fresh.pdf"))
        for job_id in (old, fresh):
            _finish(queue, job_id)
            queue.retire(job_id)
        queue.lookup(old).retired_at = 1000.0
        queue.lookup(fresh).retired_at = 5000.0

        assert queue.purge_retired(600, now=5100.0) == 1
        assert queue.lookup(old) is None
        assert queue.lookup(fresh) is not None

    def test_purge_disabled_with_zero_window(self, queue):
        job_id = queue.submit(_job())
        _finish(queue, job_id)
        queue.retire(job_id)
        queue.lookup(job_id).retired_at = 0.0
        assert queue.purge_retired(0) == 0
        assert queue.lookup(job_id) is not None

    def test_purge_keeps_unretired_jobs(self, queue):
        job_id = queue.submit(_job())
        _finish(queue, job_id)
        assert queue.purge_retired(1, now=10**12) == 0
        assert queue.lookup(job_id) is not None

    def test_purged_id_cannot_be_reused(self, queue):
        queue.submit(_job(id="abc"))
        queue.take_head()
        _finish(queue, "abc", JobStatus.FAILED)
        queue.retire("abc")
        queue.lookup("abc").retired_at = 1000.0
        assert queue.purge_retired(1, now=5000.0) == 1
        assert queue.lookup("abc") is None

        with pytest.raises(JobValidationError, match="Duplicate"):
            queue.submit(_job(id="abc"))
        assert queue.size() == 0


# ---------------------------------------------------------------------------
# stats / clear
# ---------------------------------------------------------------------------


class TestStats:
    def test_counts_every_status(self, queue):
        done = queue.submit(_job("done.pdf"))
        queue.submit(_job("waiting.pdf"))
        _finish(queue, done)
        stats = queue.stats()
        assert stats["pending"] == 1
        assert stats["completed"] == 1
        assert stats["failed"] == 0
        assert stats["total"] == 2

    def test_clear(self, queue):
        queue.submit(_job())
        queue.submit(_job("b.pdf"))
        assert queue.clear() == 2
        assert queue.size() == 0
        assert queue.total_count == 0

    def test_ids_stay_reserved_after_clear(self, queue):
        queue.submit(_job(id="abc"))
        queue.clear()
        with pytest.raises(JobValidationError):
            queue.submit(_job(id="abc"))


class TestThreadSafety:
    def test_concurrent_submits(self, queue):
        def worker(n: int) -> None:
            for i in range(50):
                queue.submit(_job(f"{n}-{i}.pdf"))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert queue.size() == 200
        assert len({j.id for j in queue.list_jobs()}) == 200
