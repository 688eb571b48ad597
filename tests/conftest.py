"""Shared fixtures for the papertray test suite.

Provides an isolated environment (no user config, no PAPERTRAY_* env
vars), a temp-dir backed file store, a MagicMock print backend and a
helper for building jobs whose document exists on disk.
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import MagicMock, PropertyMock

import pytest

from papertray.events import EventBus
from papertray.job import MediaType, PrintJob, PrintOptions
from papertray.printers.base import Device, PrinterBackend, PrintResult
from papertray.queue import PrintQueue
from papertray.scheduler import JobScheduler
from papertray.storage import FileStore

PDF_BYTES = b"%PDF-1.4\n1 0 obj<<>>endobj\ntrailer<<>>\n%%EOF\n"


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep tests away from the real home directory and env settings."""
    for name in list(os.environ):
        if name.startswith("PAPERTRAY_"):
            monkeypatch.delenv(name, raising=False)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: home))


def make_backend(
    devices: list[Device] | None = None,
    print_result: PrintResult | None = None,
) -> MagicMock:
    """Create a MagicMock that behaves like a PrinterBackend."""
    backend = MagicMock(spec=PrinterBackend)
    type(backend).name = PropertyMock(return_value="mock")
    backend.list_devices.return_value = devices if devices is not None else [Device("office-laser", "office-laser")]
    backend.print_file.return_value = print_result or PrintResult(success=True, message="sent")
    backend.find_device.side_effect = lambda name: next(
        (device for device in backend.list_devices() if device.id == name), None
    )
    return backend


@pytest.fixture()
def backend() -> MagicMock:
    return make_backend()


@pytest.fixture()
def store(tmp_path) -> FileStore:
    return FileStore(tmp_path / "uploads", max_upload_bytes=1024 * 1024)


@pytest.fixture()
def bus() -> EventBus:
    return EventBus()


@pytest.fixture()
def queue(bus) -> PrintQueue:
    return PrintQueue(event_bus=bus)


@pytest.fixture()
def scheduler(queue, backend, store, bus) -> JobScheduler:
    return JobScheduler(queue, backend, store, bus, initial_delay=0.0, poll_interval=0.01)


@pytest.fixture()
def make_job(store):
    """Factory: write a document into the store and return an unsubmitted job."""

    def _make(
        name: str = "report.pdf",
        *,
        media_type: MediaType | str = MediaType.PDF,
        printer_name: str = "office-laser",
        options: PrintOptions | None = None,
        on_disk: bool = True,
    ) -> PrintJob:
        path = store.store(PDF_BYTES, name) if on_disk else store.root / f"missing-{name}"
        return PrintJob(
            file_path=str(path),
            media_type=media_type,
            printer_name=printer_name,
            options=options or PrintOptions(),
        )

    return _make
