"""Abstract print backend interface.

A backend knows how to enumerate the printers the host can reach and how
to hand a single document to one of them.  The scheduler only talks to
:class:`PrinterBackend`; :mod:`papertray.printers.cups` is the concrete
implementation used in production and tests substitute a ``MagicMock``.
"""

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from papertray.job import PrintOptions

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class FaultCategory(enum.Enum):
    """Coarse classification of a printer failure, used for error codes."""

    DEVICE_NOT_FOUND = "device_not_found"
    DEVICE_OFFLINE = "device_offline"
    MEDIA_FAULT = "media_fault"
    SUPPLY_FAULT = "supply_fault"
    GENERIC = "generic"


def classify_fault(message: str | None) -> FaultCategory:
    """Guess a :class:`FaultCategory` from a free-form error message.

    Printer drivers report faults as text, so this is keyword matching:
    "not found"/"unavailable" beat "offline", which beats paper problems,
    which beat consumables.
    """
    text = (message or "").lower()
    if "not found" in text or "unavailable" in text or "does not exist" in text:
        return FaultCategory.DEVICE_NOT_FOUND
    if "offline" in text or "not accepting" in text:
        return FaultCategory.DEVICE_OFFLINE
    if "paper" in text and ("out" in text or "jam" in text):
        return FaultCategory.MEDIA_FAULT
    if "ink" in text or "toner" in text or "supplies" in text:
        return FaultCategory.SUPPLY_FAULT
    return FaultCategory.GENERIC


class PrinterError(Exception):
    """Raised when a backend operation fails.

    ``category`` defaults to whatever :func:`classify_fault` makes of the
    message; backends that know better pass it explicitly.
    """

    def __init__(
        self,
        message: str,
        *,
        category: FaultCategory | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category if category is not None else classify_fault(message)
        self.cause = cause


class DiscoveryError(PrinterError):
    """Raised when the list of printers cannot be retrieved."""


# ---------------------------------------------------------------------------
# Return types
# ---------------------------------------------------------------------------


class DeviceStatus(enum.Enum):
    READY = "Ready"
    PRINTING = "Printing"
    DISABLED = "Disabled"
    UNKNOWN = "Unknown"


@dataclass
class Device:
    """A printer reachable from this host."""

    id: str
    display_name: str
    status: DeviceStatus = DeviceStatus.READY

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.display_name, "status": self.status.value}


@dataclass
class PrintResult:
    """Outcome of handing a document to a printer."""

    success: bool
    message: str
    backend_job_id: str | None = None


# ---------------------------------------------------------------------------
# Abstract base class
# ---------------------------------------------------------------------------


class PrinterBackend(ABC):
    """Contract every print backend implements.

    ``print_file`` blocks until the document has been accepted by the
    printing system (not until paper comes out) and raises
    :class:`PrinterError` on any failure.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier for logs, e.g. ``"cups"``."""

    @abstractmethod
    def list_devices(self) -> list[Device]:
        """Enumerate printers.

        Raises:
            DiscoveryError: If the printing system cannot be queried.
        """

    @abstractmethod
    def print_file(self, path: str, printer_name: str, options: PrintOptions) -> PrintResult:
        """Send the document at *path* to *printer_name*.

        Raises:
            PrinterError: If the printer is unknown, rejects the job, or
                the printing system cannot be reached.
        """

    def find_device(self, printer_name: str) -> Device | None:
        """Return the device called *printer_name*, or ``None``."""
        for device in self.list_devices():
            if device.id == printer_name:
                return device
        logger.warning("Print service not found: %s", printer_name)
        return None
