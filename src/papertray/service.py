"""Print service facade: the one object the REST layer and CLI talk to.

:class:`PrintService` wires a :class:`~papertray.queue.PrintQueue`, a
:class:`~papertray.storage.FileStore`, a print backend and a
:class:`~papertray.scheduler.JobScheduler` together.  Everything is
injected so tests can run several independent services side by side.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any

from papertray.events import EventBus
from papertray.job import JobValidationError, PrintJob, PrintOptions
from papertray.printers.base import Device, PrinterBackend
from papertray.printers.cups import CupsBackend
from papertray.queue import PrintQueue
from papertray.scheduler import JobScheduler
from papertray.storage import FileStore

if TYPE_CHECKING:
    from papertray.config import PapertrayConfig

logger = logging.getLogger(__name__)


def _isoformat(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp).isoformat(timespec="seconds")


class PrintService:
    """Submission, status and lifecycle entry points for one print queue."""

    def __init__(
        self,
        queue: PrintQueue,
        store: FileStore,
        backend: PrinterBackend,
        scheduler: JobScheduler,
    ) -> None:
        self.queue = queue
        self.store = store
        self.backend = backend
        self.scheduler = scheduler

    @classmethod
    def from_config(
        cls,
        config: PapertrayConfig,
        *,
        backend: PrinterBackend | None = None,
        event_bus: EventBus | None = None,
    ) -> PrintService:
        """Build a fully wired service from a :class:`PapertrayConfig`."""
        if event_bus is None:
            event_bus = EventBus()
        if backend is None:
            backend = CupsBackend(
                lp_path=config.lp_path,
                lpstat_path=config.lpstat_path,
                lp_timeout=config.lp_timeout,
            )
        queue = PrintQueue(event_bus=event_bus)
        store = FileStore(config.upload_dir, max_upload_bytes=config.max_upload_bytes)
        scheduler = JobScheduler(
            queue,
            backend,
            store,
            event_bus,
            initial_delay=config.initial_delay,
            poll_interval=config.poll_interval,
            retention_seconds=config.retention_seconds,
        )
        return cls(queue, store, backend, scheduler)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit_upload(
        self,
        data: bytes,
        filename: str | None,
        printer_name: str | None,
        *,
        copies: Any = 1,
        paper_size: Any = "A4",
        duplex: Any = "simplex",
        color_mode: Any = "grayscale",
    ) -> PrintJob:
        """Validate, store and enqueue an uploaded document.

        All validation happens before the file is written, so a rejected
        upload leaves nothing behind.

        Raises:
            JobValidationError: Bad file, printer name or print options.
            UploadTooLargeError: File above the size limit.
        """
        logger.info("Received file upload: file=%s, printer=%s, copies=%s", filename, printer_name, copies)
        if not printer_name or not printer_name.strip():
            raise JobValidationError("Printer ID cannot be null or empty")
        media_type = self.store.validate(filename, len(data))
        options = PrintOptions.from_raw(copies, paper_size, duplex, color_mode)

        path = self.store.store(data, filename or "upload")
        try:
            job = PrintJob(
                file_path=str(path),
                media_type=media_type,
                printer_name=printer_name.strip(),
                options=options,
            )
            self.queue.submit(job)
        except Exception:
            self.store.delete(path)
            raise
        logger.info("Print task created and enqueued: %s", job.id)
        return job

    def submit(self, job: PrintJob) -> str:
        return self.queue.submit(job)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_status(self, job_id: str) -> dict[str, Any]:
        """Status record for one job.

        Raises:
            JobNotFoundError: If *job_id* is unknown (or already purged).
        """
        job = self.queue.get_job(job_id)
        return {
            "task_id": job.id,
            "status": job.status.name,
            "message": job.error,
            "file_type": job.media_type.value,
            "printer_id": job.printer_name,
            "copies": job.options.copies,
            "paper_size": job.options.paper_size.value,
            "duplex": job.options.sides.value,
            "color_mode": job.options.color_mode.value,
            "submit_time": _isoformat(job.submitted_at),
            "progress": job.progress,
            "fault": job.fault,
        }

    def queue_status(self) -> dict[str, Any]:
        return {
            "timestamp": _isoformat(time.time()),
            "queue_size": self.queue.size(),
            "queue_stats": self.queue.stats(),
            "is_processing": self.scheduler.is_processing,
            "scheduler": self.scheduler.status(),
        }

    def list_devices(self) -> list[Device]:
        return self.backend.list_devices()
