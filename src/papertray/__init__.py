"""papertray - single-printer document print queue with a polling scheduler."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from importlib.metadata import PackageNotFoundError, version
from typing import TypeVar

_logger = logging.getLogger(__name__)

_N = TypeVar("_N", int, float)


def _resolve_version() -> str:
    try:
        return version("papertray")
    except PackageNotFoundError:
        return "unknown"


__version__ = _resolve_version()


def _parse_env(name: str, default: _N, cast: Callable[[str], _N], kind: str) -> _N:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        _logger.warning("Invalid %s for %s=%r, using default %s", kind, name, raw, default)
        return default


def parse_int_env(name: str, default: int) -> int:
    """Read an integer setting from the environment.

    Blank or unset variables yield *default*; malformed values log a
    warning and also yield *default*.
    """
    return _parse_env(name, default, int, "integer")


def parse_float_env(name: str, default: float) -> float:
    """Read a float setting from the environment (same fallback rules as
    :func:`parse_int_env`)."""
    return _parse_env(name, default, float, "number")
