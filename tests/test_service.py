"""Tests for papertray.service -- upload submission and status queries."""

from __future__ import annotations

from pathlib import Path

import pytest

from papertray.config import PapertrayConfig
from papertray.job import JobNotFoundError, JobStatus, JobValidationError, MediaType, PaperSize, Sides
from papertray.printers import CupsBackend
from papertray.service import PrintService
from papertray.storage import UnsupportedFormatError, UploadTooLargeError

PDF_BYTES = b"%PDF-1.4\n%%EOF\n"


@pytest.fixture()
def service(queue, store, backend, scheduler) -> PrintService:
    return PrintService(queue, store, backend, scheduler)


def _stored_files(store) -> list[Path]:
    return sorted(store.root.iterdir()) if store.root.exists() else []


# ---------------------------------------------------------------------------
# submit_upload
# ---------------------------------------------------------------------------


class TestSubmitUpload:
    def test_creates_pending_job(self, service, store):
        job = service.submit_upload(
            PDF_BYTES,
            "Quarterly Report.pdf",
            "office-laser",
            copies="2",
            paper_size="Letter",
            duplex="duplex",
            color_mode="color",
        )
        assert job.id
        assert job.status is JobStatus.PENDING
        assert job.media_type is MediaType.PDF
        assert job.options.copies == 2
        assert job.options.paper_size is PaperSize.LETTER
        assert job.options.sides is Sides.TWO_SIDED
        assert Path(job.file_path).read_bytes() == PDF_BYTES
        assert Path(job.file_path).parent == store.root
        assert service.queue.lookup(job.id) is job

    def test_word_upload_accepted(self, service):
        job = service.submit_upload(b"PK\x03\x04", "memo.docx", "office-laser")
        assert job.media_type is MediaType.WORD

    def test_printer_name_trimmed(self, service):
        assert service.submit_upload(PDF_BYTES, "a.pdf", "  office-laser ").printer_name == "office-laser"

    @pytest.mark.parametrize("printer", [None, "", "   "])
    def test_blank_printer_rejected_before_write(self, service, store, printer):
        with pytest.raises(JobValidationError, match="Printer ID"):
            service.submit_upload(PDF_BYTES, "a.pdf", printer)
        assert _stored_files(store) == []
        assert service.queue.size() == 0

    def test_bad_format_rejected_before_write(self, service, store):
        with pytest.raises(UnsupportedFormatError):
            service.submit_upload(PDF_BYTES, "a.png", "office-laser")
        assert _stored_files(store) == []

    def test_too_large_rejected(self, service, store):
        with pytest.raises(UploadTooLargeError):
            service.submit_upload(b"x" * (store.max_upload_bytes + 1), "a.pdf", "office-laser")
        assert _stored_files(store) == []

    def test_bad_copies_rejected_before_write(self, service, store):
        with pytest.raises(JobValidationError, match="between 1 and 999"):
            service.submit_upload(PDF_BYTES, "a.pdf", "office-laser", copies=0)
        assert _stored_files(store) == []

    def test_file_removed_when_enqueue_fails(self, service, store, monkeypatch):
        def refuse(job):
            raise JobValidationError("Duplicate task id: x")

        monkeypatch.setattr(service.queue, "submit", refuse)
        with pytest.raises(JobValidationError):
            service.submit_upload(PDF_BYTES, "a.pdf", "office-laser")
        assert _stored_files(store) == []

    def test_submit_prebuilt_job(self, service, make_job):
        job_id = service.submit(make_job())
        assert service.queue.lookup(job_id) is not None


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


class TestStatus:
    def test_pending_status(self, service):
        job = service.submit_upload(PDF_BYTES, "a.pdf", "office-laser", copies=3)
        status = service.get_status(job.id)
        assert status["task_id"] == job.id
        assert status["status"] == "PENDING"
        assert status["message"] is None
        assert status["file_type"] == "PDF"
        assert status["printer_id"] == "office-laser"
        assert status["copies"] == 3
        assert status["paper_size"] == "A4"
        assert status["duplex"] == "one-sided"
        assert status["color_mode"] == "monochrome"
        assert status["progress"] == 0
        assert status["fault"] is None
        assert "T" in status["submit_time"]

    def test_failed_status_carries_detail(self, service, backend):
        from papertray.printers import PrinterError

        backend.print_file.side_effect = PrinterError("lp: printer is offline")
        job = service.submit_upload(PDF_BYTES, "a.pdf", "office-laser")
        service.scheduler.tick()

        status = service.get_status(job.id)
        assert status["status"] == "FAILED"
        assert status["message"] == "Print failed: lp: printer is offline"
        assert status["progress"] == -1
        assert status["fault"] == "device_offline"

    def test_unknown_job(self, service):
        with pytest.raises(JobNotFoundError):
            service.get_status("never-submitted")

    def test_queue_status(self, service):
        service.submit_upload(PDF_BYTES, "a.pdf", "office-laser")
        status = service.queue_status()
        assert status["queue_size"] == 1
        assert status["queue_stats"]["pending"] == 1
        assert status["is_processing"] is False
        assert status["scheduler"]["running"] is False

    def test_list_devices_delegates(self, service, backend):
        assert [d.id for d in service.list_devices()] == ["office-laser"]
        backend.list_devices.assert_called_once()


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


class TestFromConfig:
    def test_builds_cups_backend(self, tmp_path):
        config = PapertrayConfig(upload_dir=str(tmp_path / "up"), max_upload_mb=5, lp_path="/opt/lp")
        service = PrintService.from_config(config)
        assert isinstance(service.backend, CupsBackend)
        assert service.store.root == tmp_path / "up"
        assert service.store.max_upload_bytes == 5 * 1024 * 1024

    def test_injected_backend(self, tmp_path, backend, bus):
        config = PapertrayConfig(upload_dir=str(tmp_path / "up"), initial_delay=0.0, poll_interval=0.01)
        service = PrintService.from_config(config, backend=backend, event_bus=bus)
        assert service.backend is backend
        service.submit_upload(PDF_BYTES, "a.pdf", "office-laser")
        assert bus.recent_events()[0].type.value == "job.submitted"

    def test_start_stop(self, service):
        service.start()
        assert service.scheduler.is_running
        service.stop()
        assert not service.scheduler.is_running
