"""Job scheduler: drains the print queue one job per tick.

A background thread calls :meth:`JobScheduler.tick` on a fixed delay.
Each tick:

1. Takes a non-blocking single-flight guard; if another tick still holds
   it the tick is skipped with no side effects.
2. Walks the head of the queue: terminal jobs are retired and their files
   deleted, the first PENDING job is taken and executed, anything else
   ends the walk.
3. Purges retired jobs older than the retention window from the index.

Execution moves a job PENDING -> IN_PREPARATION -> PRINTING -> COMPLETED,
or to FAILED with a ``"Print failed: ..."`` detail.  Failures are recorded
on the job; they never escape the tick or stop the loop.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from papertray.events import EventBus, EventType
from papertray.job import InvalidStateTransition, JobStatus, MediaType, PrintJob
from papertray.printers.base import FaultCategory, PrinterBackend, PrinterError
from papertray.queue import PrintQueue
from papertray.storage import FileStore

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_DELAY = 5.0
DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_RETENTION_SECONDS = 3600.0

_FAILURE_PREFIX = "Print failed: "


class JobExecutionError(Exception):
    """Raised inside execution when a job cannot be printed."""


class JobScheduler:
    """Background scheduler that executes queued print jobs in FIFO order.

    Lifecycle::

        scheduler = JobScheduler(queue, backend, store)
        scheduler.start()   # launches the background thread
        ...
        scheduler.stop()    # wakes the thread and joins it

    ``tick()`` can also be driven by hand, which is what the tests do.
    """

    def __init__(
        self,
        queue: PrintQueue,
        backend: PrinterBackend,
        store: FileStore,
        event_bus: EventBus | None = None,
        *,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
    ) -> None:
        self._queue = queue
        self._backend = backend
        self._store = store
        self._event_bus = event_bus
        self._initial_delay = initial_delay
        self._poll_interval = poll_interval
        self._retention_seconds = retention_seconds
        self._guard = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        """Whether the background thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_processing(self) -> bool:
        """Whether a tick currently holds the single-flight guard."""
        return self._guard.locked()

    def start(self) -> None:
        """Start the background thread.  Calling it twice is harmless."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="papertray-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "Print scheduler started (first tick in %.1fs, then every %.1fs)",
            self._initial_delay,
            self._poll_interval,
        )

    def stop(self, timeout: float | None = None) -> None:
        """Signal the thread to exit and wait for the current tick to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Print scheduler stopped")

    def _run_loop(self) -> None:
        if self._stop_event.wait(self._initial_delay):
            return
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(self._poll_interval)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self) -> dict[str, Any]:
        """Run one scheduling cycle.

        Returns a dict summarising what happened:
            skipped: ``True`` if another tick held the guard
            retired: IDs of jobs retired this tick
            executed: ID of the job executed this tick, or ``None``
            status: final status value of that job, or ``None``
            purged: number of expired index entries dropped
        """
        summary: dict[str, Any] = {
            "skipped": False,
            "retired": [],
            "executed": None,
            "status": None,
            "purged": 0,
        }
        if not self._guard.acquire(blocking=False):
            logger.debug("Print task processing already in progress, skipping this cycle")
            summary["skipped"] = True
            return summary

        try:
            job = self._next_pending(summary["retired"])
            if job is not None:
                self._execute(job)
                summary["executed"] = job.id
                summary["status"] = job.status.value
                # The job left the sequence before it ran, so it will never
                # reach the head again; retire it here.
                if self._retire(job.id):
                    summary["retired"].append(job.id)
            summary["purged"] = self._queue.purge_retired(self._retention_seconds)
        except Exception:
            logger.exception("Error in print task scheduler")
        finally:
            self._guard.release()
        return summary

    def _next_pending(self, retired: list[str]) -> PrintJob | None:
        """Retire terminal head jobs, then take the head if it is PENDING."""
        while True:
            head = self._queue.peek_head()
            if head is None:
                logger.debug("No tasks in queue")
                return None
            if head.status.is_terminal:
                if not self._retire(head.id):
                    logger.warning("Terminal task %s could not be retired", head.id)
                    return None
                retired.append(head.id)
                continue
            if head.status is not JobStatus.PENDING:
                logger.debug("Next task is not pending (status: %s), leaving it", head.status.value)
                return None
            # The scheduler is the only consumer, so the head cannot change
            # between peek and take.
            job = self._queue.take_head()
            logger.info("Found pending task for processing: %s", head.id)
            return job

    def _retire(self, job_id: str) -> bool:
        job = self._queue.retire(job_id)
        if job is None:
            return False
        self._store.delete(job.file_path)
        self._publish(EventType.JOB_RETIRED, job)
        return True

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _execute(self, job: PrintJob) -> None:
        logger.info(
            "Processing print task: %s (file: %s, type: %s, printer: %s)",
            job.id,
            job.file_path,
            job.media_type.value,
            job.printer_name,
        )
        try:
            self._queue.set_state(job.id, JobStatus.IN_PREPARATION)
            self._publish(EventType.JOB_STARTED, job)

            if not self._store.exists(job.file_path):
                logger.warning("File does not exist: %s", job.file_path)
                raise JobExecutionError(f"File not found: {job.file_path}")

            self._queue.set_state(job.id, JobStatus.PRINTING)
            self._publish(EventType.JOB_PRINTING, job)
            self._dispatch(job)

            self._queue.set_state(job.id, JobStatus.COMPLETED)
            self._publish(EventType.JOB_COMPLETED, job)
            logger.info("Print task completed successfully: %s", job.id)
        except PrinterError as exc:
            self._fail(job, str(exc), fault=exc.category.value)
        except Exception as exc:
            self._fail(job, str(exc) or exc.__class__.__name__)

    def _dispatch(self, job: PrintJob) -> None:
        if job.media_type is MediaType.PDF:
            if self._backend.find_device(job.printer_name) is None:
                raise PrinterError(
                    f"Printer not found: {job.printer_name}",
                    category=FaultCategory.DEVICE_NOT_FOUND,
                )
            result = self._backend.print_file(job.file_path, job.printer_name, job.options)
            if not result.success:
                raise PrinterError(result.message or "printer rejected the job")
        elif job.media_type is MediaType.WORD:
            raise JobExecutionError("Word document printing not yet implemented")
        else:
            raise JobExecutionError(f"Unsupported file type: {job.media_type.value}")

    def _fail(self, job: PrintJob, message: str, *, fault: str | None = None) -> None:
        detail = _FAILURE_PREFIX + message
        try:
            self._queue.set_state(job.id, JobStatus.FAILED, detail, fault=fault)
        except InvalidStateTransition as exc:
            # Already terminal, e.g. a listener raised after COMPLETED.
            logger.warning("Could not mark print task %s failed: %s", job.id, exc)
            return
        logger.error("Print task failed: %s (%s)", job.id, detail)
        self._publish(EventType.JOB_FAILED, job)

    def _publish(self, event_type: EventType, job: PrintJob) -> None:
        if self._event_bus is None:
            return
        self._event_bus.publish(event_type, job.to_dict(), source="scheduler")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def status(self) -> dict[str, Any]:
        return {
            "running": self.is_running,
            "processing": self.is_processing,
            "poll_interval": self._poll_interval,
            "retention_seconds": self._retention_seconds,
            "queue_size": self._queue.size(),
            "queue_stats": self._queue.stats(),
        }
