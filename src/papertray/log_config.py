"""Rotating file logging with credential scrubbing.

:func:`configure_logging` attaches a size-rotated log file to the root
logger and installs :class:`ScrubFilter` on every root handler so bearer
tokens and passwords never reach disk or the console.
"""

from __future__ import annotations

import logging
import os
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path

_DEFAULT_LOG_DIR = os.path.join(str(Path.home()), ".papertray", "logs")
_LOG_FILE = "papertray.log"
_REDACTED = "***REDACTED***"

_SECRET_KEYS = "|".join(("auth_token", "token", "password", "secret", "api_key"))

_SCRUB_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"((?:" + _SECRET_KEYS + r")[\"']?\s*[:=]\s*[\"']?)([^\"'\s,}{\]]+)", re.IGNORECASE),
    re.compile(r"(Authorization:?\s*(?:Bearer|Basic)\s+)(\S+)", re.IGNORECASE),
    re.compile(r"(Bearer\s+)([A-Za-z0-9._~+/=-]{8,})"),
]


def scrub(text: str) -> str:
    """Replace secret values in *text* with a redaction marker."""
    for pattern in _SCRUB_PATTERNS:
        text = pattern.sub(rf"\1{_REDACTED}", text)
    return text


class ScrubFilter(logging.Filter):
    """Redacts secrets from the fully formatted message.

    A secret split between the template and its arguments
    (``"token=%s", value``) is only visible after formatting, so the record
    is rendered once and, if anything was redacted, replaced by the
    scrubbed text with no arguments.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            # Broken format string; the handler reports it.
            return True
        scrubbed = scrub(message)
        if scrubbed != message:
            record.msg = scrubbed
            record.args = None
        return True


def configure_logging(
    log_dir: str | None = None,
    *,
    level: str | None = None,
    max_bytes: int = 10_000_000,
    backup_count: int = 5,
) -> Path:
    """Install the rotating log file and scrub filter on the root logger.

    :param log_dir: Log directory.  Falls back to ``PAPERTRAY_LOG_DIR``,
        then ``~/.papertray/logs``.
    :param level: Level name.  Falls back to ``PAPERTRAY_LOG_LEVEL``, then
        ``INFO``.
    :returns: Path of the log file.

    Safe to call more than once: a second call does not add another file
    handler.
    """
    log_dir = log_dir or os.environ.get("PAPERTRAY_LOG_DIR") or _DEFAULT_LOG_DIR
    level = level or os.environ.get("PAPERTRAY_LOG_LEVEL") or "INFO"
    log_level = getattr(logging, level.upper(), logging.INFO)

    os.makedirs(log_dir, exist_ok=True)
    log_path = Path(log_dir) / _LOG_FILE

    root = logging.getLogger()
    root.setLevel(log_level)

    if not any(isinstance(h, RotatingFileHandler) for h in root.handlers):
        handler = RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count)
        handler.setLevel(log_level)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        )
        root.addHandler(handler)

    for handler in root.handlers:
        if not any(isinstance(f, ScrubFilter) for f in handler.filters):
            handler.addFilter(ScrubFilter())
    return log_path
