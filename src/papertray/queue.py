"""Print job queue: strict FIFO order plus a lookup-by-id index.

Request handlers submit jobs from any thread; the scheduler is the only
consumer of :meth:`PrintQueue.take_head`, :meth:`PrintQueue.retire` and
:meth:`PrintQueue.set_state`.  The queue serialises all access internally,
so callers never hold a lock.

The ordered sequence and the index have different lifetimes: a job leaves
the sequence when it is taken for execution (or retired once terminal) but
stays in the index so its final status remains queryable until
:meth:`PrintQueue.purge_retired` drops it.

Example::

    queue = PrintQueue()
    job_id = queue.submit(PrintJob(file_path="/tmp/a.pdf",
                                   media_type=MediaType.PDF,
                                   printer_name="office-laser"))
    queue.lookup(job_id).status      # JobStatus.PENDING
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import deque
from typing import Any

from papertray.job import (
    InvalidStateTransition,
    JobNotFoundError,
    JobStateMachine,
    JobStatus,
    JobValidationError,
    PrintJob,
)

logger = logging.getLogger(__name__)

_DEFAULT_FAILURE_DETAIL = "Print failed: unknown error"


class PrintQueue:
    """Thread-safe FIFO print queue with an id index.

    :param event_bus: Optional :class:`papertray.events.EventBus`; when set,
        a ``job.submitted`` event is published for every accepted job.
    """

    def __init__(self, *, event_bus: Any | None = None) -> None:
        self._order: deque[PrintJob] = deque()
        self._index: dict[str, PrintJob] = {}
        # Every id ever accepted; purging the index never frees an id.
        self._seen_ids: set[str] = set()
        self._lock = threading.Lock()
        self._event_bus = event_bus

    # ------------------------------------------------------------------
    # Producers
    # ------------------------------------------------------------------

    def submit(self, job: PrintJob | None) -> str:
        """Append *job* to the tail of the queue and index it.

        A missing ``job.id`` is replaced by a fresh uuid4 hex string.

        Returns:
            The job ID.

        Raises:
            JobValidationError: If *job* is ``None`` or its ID was already
                used by this queue, even by a job since purged.
        """
        if job is None:
            raise JobValidationError("Task cannot be null")
        with self._lock:
            if not job.id:
                job.id = uuid.uuid4().hex
            elif job.id in self._seen_ids:
                raise JobValidationError(f"Duplicate task id: {job.id}")
            self._order.append(job)
            self._index[job.id] = job
            self._seen_ids.add(job.id)
            depth = len(self._order)

        logger.info("Print job enqueued: %s (queue size: %d)", job.id, depth)
        logger.debug("Job details: %s", job)
        if self._event_bus is not None:
            from papertray.events import EventType

            self._event_bus.publish(EventType.JOB_SUBMITTED, job.to_dict(), source="queue")
        return job.id

    # ------------------------------------------------------------------
    # Consumer side (scheduler)
    # ------------------------------------------------------------------

    def peek_head(self) -> PrintJob | None:
        """Return the head job without removing it, or ``None`` if empty."""
        with self._lock:
            return self._order[0] if self._order else None

    def take_head(self) -> PrintJob | None:
        """Atomically remove and return the head job, or ``None`` if empty."""
        with self._lock:
            if not self._order:
                return None
            job = self._order.popleft()
            depth = len(self._order)
        logger.info("Print job dequeued: %s (queue size: %d)", job.id, depth)
        return job

    def retire(self, job_id: str) -> PrintJob | None:
        """Retire a terminal job: drop it from the ordered sequence (if it is
        still there) and stamp ``retired_at``.

        Retirement happens at most once per job.  Unknown IDs, jobs that
        are not terminal, and jobs already retired return ``None`` and
        leave the queue untouched.  The index entry is kept.
        """
        with self._lock:
            job = self._index.get(job_id)
            if job is None or not job.status.is_terminal or job.retired_at is not None:
                return None
            for position, queued in enumerate(self._order):
                if queued is job:
                    del self._order[position]
                    break
            job.retired_at = time.time()
        logger.info("Retired %s job %s", job.status.value, job_id)
        return job

    def set_state(
        self,
        job_id: str,
        status: JobStatus,
        detail: str | None = None,
        *,
        fault: str | None = None,
    ) -> PrintJob | None:
        """Advance the indexed job to *status* in place.

        ``detail`` and ``fault`` are recorded only on a transition to
        FAILED.  A FAILED transition without a detail gets a generic
        message so the failure detail is never empty.

        Returns:
            The updated job, or ``None`` (with a warning) if *job_id* is
            unknown.

        Raises:
            InvalidStateTransition: If the move is not allowed by
                :class:`~papertray.job.JobStateMachine`.
        """
        with self._lock:
            job = self._index.get(job_id)
            if job is None:
                logger.warning("Task not found for status update: %s", job_id)
                return None
            JobStateMachine.validate(job_id, job.status, status)
            job.status = status
            now = time.time()
            if status is JobStatus.IN_PREPARATION:
                job.started_at = now
            elif status.is_terminal:
                job.finished_at = now
            if status is JobStatus.FAILED:
                job.error = detail or _DEFAULT_FAILURE_DETAIL
                job.fault = fault
        logger.info("Task status updated: %s -> %s", job_id, status.value)
        return job

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def lookup(self, job_id: str) -> PrintJob | None:
        """Return the indexed job, or ``None`` if the ID is unknown."""
        with self._lock:
            return self._index.get(job_id)

    def get_job(self, job_id: str) -> PrintJob:
        """Return a job by ID.

        Raises:
            JobNotFoundError: If the job doesn't exist.
        """
        job = self.lookup(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def size(self) -> int:
        """Number of jobs still in the ordered sequence."""
        with self._lock:
            return len(self._order)

    def __len__(self) -> int:
        return self.size()

    @property
    def total_count(self) -> int:
        """Number of indexed jobs, including ones already taken or retired."""
        with self._lock:
            return len(self._index)

    def list_jobs(self) -> list[PrintJob]:
        """Snapshot of the ordered sequence, head first."""
        with self._lock:
            return list(self._order)

    def stats(self) -> dict[str, int]:
        """Count indexed jobs per status (every status is present)."""
        counts = {status.value: 0 for status in JobStatus}
        with self._lock:
            for job in self._index.values():
                counts[job.status.value] += 1
            counts["total"] = len(self._index)
        return counts

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def purge_retired(self, max_age_seconds: float, *, now: float | None = None) -> int:
        """Forget retired jobs whose retirement is older than *max_age_seconds*.

        Returns the number of index entries removed.  A non-positive
        window disables purging.
        """
        if max_age_seconds <= 0:
            return 0
        cutoff = (now if now is not None else time.time()) - max_age_seconds
        with self._lock:
            expired = [
                job_id
                for job_id, job in self._index.items()
                if job.retired_at is not None and job.retired_at < cutoff
            ]
            for job_id in expired:
                del self._index[job_id]
        if expired:
            logger.info("Purged %d retired job(s) from the status index", len(expired))
        return len(expired)

    def clear(self) -> int:
        """Drop every job from both structures.  Returns the queue depth cleared."""
        with self._lock:
            cleared = len(self._order)
            self._order.clear()
            self._index.clear()
        logger.info("Print queue cleared. Removed %d tasks", cleared)
        return cleared


__all__ = [
    "InvalidStateTransition",
    "JobNotFoundError",
    "PrintQueue",
]
