"""Print backends.

Re-exports the public API so consumers can write::

    from papertray.printers import CupsBackend, PrinterBackend, PrinterError
"""

from __future__ import annotations

from papertray.printers.base import (
    Device,
    DeviceStatus,
    DiscoveryError,
    FaultCategory,
    PrinterBackend,
    PrinterError,
    PrintResult,
    classify_fault,
)
from papertray.printers.cups import CupsBackend

__all__ = [
    "CupsBackend",
    "Device",
    "DeviceStatus",
    "DiscoveryError",
    "FaultCategory",
    "PrintResult",
    "PrinterBackend",
    "PrinterError",
    "classify_fault",
]
