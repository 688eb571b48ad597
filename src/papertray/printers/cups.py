"""CUPS print backend driven through the ``lpstat`` and ``lp`` commands.

Shelling out keeps the package free of native bindings: any host with the
CUPS client tools installed (Linux, macOS) can print.  Every invocation is
bounded by a timeout so a wedged spooler turns into a job failure instead
of a stuck scheduler.

Example::

    backend = CupsBackend()
    backend.list_devices()                        # -> [Device(...), ...]
    backend.print_file("/tmp/a.pdf", "office-laser", PrintOptions(copies=2))
"""

from __future__ import annotations

import logging
import re
import subprocess
from typing import TYPE_CHECKING

from papertray.job import ColorMode, PaperSize, Sides
from papertray.printers.base import (
    Device,
    DeviceStatus,
    DiscoveryError,
    FaultCategory,
    PrinterBackend,
    PrinterError,
    PrintResult,
)

if TYPE_CHECKING:
    from papertray.job import PrintOptions

logger = logging.getLogger(__name__)

_DEFAULT_LP_TIMEOUT = 120.0
_LPSTAT_TIMEOUT = 15.0

_MEDIA: dict[PaperSize, str] = {
    PaperSize.A4: "A4",
    PaperSize.LETTER: "Letter",
    PaperSize.A3: "A3",
    PaperSize.LEGAL: "Legal",
}

_SIDES: dict[Sides, str] = {
    Sides.ONE_SIDED: "one-sided",
    Sides.TWO_SIDED: "two-sided-long-edge",
}

_COLOR: dict[ColorMode, str] = {
    ColorMode.COLOR: "color",
    ColorMode.MONOCHROME: "monochrome",
}

# "printer office-laser is idle.  enabled since ..."
# "printer office-laser now printing office-laser-12.  enabled since ..."
# "printer office-laser disabled since ..."
_LPSTAT_LINE = re.compile(r"^printer\s+(?P<name>\S+)\s+(?P<rest>.*)$")

# "request id is office-laser-42 (1 file(s))"
_REQUEST_ID = re.compile(r"request id is (?P<id>\S+)")


def _device_status(rest: str) -> DeviceStatus:
    rest = rest.lower()
    if rest.startswith("disabled"):
        return DeviceStatus.DISABLED
    if rest.startswith("now printing"):
        return DeviceStatus.PRINTING
    if rest.startswith("is idle"):
        return DeviceStatus.READY
    return DeviceStatus.UNKNOWN


def parse_lpstat(output: str) -> list[Device]:
    """Turn ``lpstat -p`` output into :class:`Device` records."""
    devices: list[Device] = []
    for line in output.splitlines():
        match = _LPSTAT_LINE.match(line.strip())
        if match is None:
            continue
        name = match.group("name")
        devices.append(Device(id=name, display_name=name, status=_device_status(match.group("rest"))))
    return devices


def build_lp_command(
    path: str,
    printer_name: str,
    options: PrintOptions,
    *,
    lp_path: str = "lp",
) -> list[str]:
    """Build the ``lp`` argument vector for one document."""
    return [
        lp_path,
        "-d",
        printer_name,
        "-n",
        str(options.copies),
        "-o",
        f"media={_MEDIA[options.paper_size]}",
        "-o",
        f"sides={_SIDES[options.sides]}",
        "-o",
        f"print-color-mode={_COLOR[options.color_mode]}",
        "--",
        path,
    ]


class CupsBackend(PrinterBackend):
    """Print through the local CUPS spooler.

    Args:
        lp_path: ``lp`` binary to invoke.
        lpstat_path: ``lpstat`` binary to invoke.
        lp_timeout: Seconds to wait for ``lp`` to accept a document.
    """

    def __init__(
        self,
        *,
        lp_path: str = "lp",
        lpstat_path: str = "lpstat",
        lp_timeout: float = _DEFAULT_LP_TIMEOUT,
    ) -> None:
        self._lp_path = lp_path
        self._lpstat_path = lpstat_path
        self._lp_timeout = lp_timeout

    @property
    def name(self) -> str:
        return "cups"

    def list_devices(self) -> list[Device]:
        logger.info("Retrieving available printers from CUPS")
        try:
            result = subprocess.run(
                [self._lpstat_path, "-p"],
                capture_output=True,
                text=True,
                timeout=_LPSTAT_TIMEOUT,
            )
        except subprocess.TimeoutExpired:
            raise DiscoveryError(
                f"lpstat timed out after {_LPSTAT_TIMEOUT:g}s",
                category=FaultCategory.GENERIC,
            ) from None
        except OSError as exc:
            raise DiscoveryError(
                f"Failed to retrieve printer list: {exc}",
                category=FaultCategory.GENERIC,
                cause=exc,
            ) from exc

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            # lpstat exits non-zero when no printers are configured.
            if "no destinations" in stderr.lower():
                logger.warning("No printers found on the system")
                return []
            raise DiscoveryError(
                f"Failed to retrieve printer list: {stderr[:300] or f'lpstat exited with {result.returncode}'}",
                category=FaultCategory.GENERIC,
            )

        devices = parse_lpstat(result.stdout or "")
        if not devices:
            logger.warning("No printers found on the system")
        logger.info("Successfully retrieved %d printers", len(devices))
        return devices

    def print_file(self, path: str, printer_name: str, options: PrintOptions) -> PrintResult:
        cmd = build_lp_command(path, printer_name, options, lp_path=self._lp_path)
        logger.info(
            "Submitting print job to printer: %s (copies: %d, paper: %s, sides: %s, color: %s)",
            printer_name,
            options.copies,
            options.paper_size.value,
            options.sides.value,
            options.color_mode.value,
        )
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self._lp_timeout,
            )
        except subprocess.TimeoutExpired:
            raise PrinterError(
                f"lp did not accept the job within {self._lp_timeout:g}s",
                category=FaultCategory.GENERIC,
            ) from None
        except OSError as exc:
            raise PrinterError(f"Failed to run lp: {exc}", category=FaultCategory.GENERIC, cause=exc) from exc

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()[:500]
            raise PrinterError(stderr or f"lp exited with code {result.returncode}")

        match = _REQUEST_ID.search(result.stdout or "")
        request_id = match.group("id") if match else None
        logger.info("Document accepted by %s (request %s)", printer_name, request_id or "unknown")
        return PrintResult(
            success=True,
            message=f"Sent {path} to {printer_name}",
            backend_job_id=request_id,
        )
