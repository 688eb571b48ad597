"""Upload storage: validation, unique on-disk names, best-effort cleanup.

Uploaded documents live in a single flat directory until the scheduler
retires their job, at which point :meth:`FileStore.delete` removes them.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
import uuid
from pathlib import Path

from papertray.job import JobValidationError, MediaType

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS: frozenset[str] = frozenset({".pdf", ".doc", ".docx"})
DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024
DEFAULT_UPLOAD_DIR = os.path.join(tempfile.gettempdir(), "papertray", "uploads")

_MAX_NAME_LENGTH = 200
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._ -]+")


class UnsupportedFormatError(JobValidationError):
    """Raised when an upload is not a PDF or Word document."""


class UploadTooLargeError(JobValidationError):
    """Raised when an upload exceeds the configured size limit."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"File size exceeds the maximum limit of {limit // (1024 * 1024)}MB.")
        self.size = size
        self.limit = limit


def sanitise_filename(filename: str) -> str:
    """Reduce a client-supplied name to a safe single path component."""
    name = os.path.basename(filename.replace("\x00", "").replace("\\", "/"))
    name = _UNSAFE_CHARS.sub("_", name).strip(" .")
    if not name:
        return "upload"
    if len(name) > _MAX_NAME_LENGTH:
        stem, suffix = os.path.splitext(name)
        name = stem[: _MAX_NAME_LENGTH - len(suffix)] + suffix
    return name


class FileStore:
    """Flat directory of uploaded documents.

    Args:
        upload_dir: Where uploads are written; created on first use.
        max_upload_bytes: Largest accepted upload.
    """

    def __init__(
        self,
        upload_dir: str | os.PathLike[str] | None = None,
        *,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ) -> None:
        self._root = Path(upload_dir or DEFAULT_UPLOAD_DIR)
        self._max_upload_bytes = max_upload_bytes

    @property
    def root(self) -> Path:
        return self._root

    @property
    def max_upload_bytes(self) -> int:
        return self._max_upload_bytes

    def validate(self, filename: str | None, size: int) -> MediaType:
        """Check an upload before anything is written.

        Returns:
            The media type implied by the file extension.

        Raises:
            JobValidationError: Empty upload or unsupported extension.
            UploadTooLargeError: Upload above ``max_upload_bytes``.
        """
        if size <= 0:
            raise JobValidationError("File is empty or null")
        suffix = Path(filename or "").suffix.lower()
        if suffix not in SUPPORTED_EXTENSIONS:
            logger.warning("Invalid file format: %s", filename)
            raise UnsupportedFormatError("Unsupported file format. Only PDF, DOC, and DOCX files are allowed.")
        if size > self._max_upload_bytes:
            logger.warning("File size exceeded limit: %d bytes", size)
            raise UploadTooLargeError(size, self._max_upload_bytes)
        return self.media_type_for(filename or "")

    @staticmethod
    def media_type_for(filename: str) -> MediaType:
        return MediaType.from_filename(filename)

    def store(self, data: bytes, filename: str) -> Path:
        """Write *data* under a unique ``<uuid>_<name>`` file and return its path."""
        self._root.mkdir(mode=0o700, parents=True, exist_ok=True)
        target = self._root / f"{uuid.uuid4()}_{sanitise_filename(filename)}"
        target.write_bytes(data)
        logger.info("File saved successfully: %s", target)
        return target

    @staticmethod
    def exists(path: str | os.PathLike[str]) -> bool:
        return Path(path).is_file()

    @staticmethod
    def delete(path: str | os.PathLike[str]) -> bool:
        """Remove *path*.  Failures are logged, never raised.

        Returns ``True`` only if a file was actually deleted.
        """
        try:
            Path(path).unlink()
        except FileNotFoundError:
            logger.debug("Nothing to clean up at %s", path)
            return False
        except OSError as exc:
            logger.warning("Failed to delete print file %s: %s", path, exc)
            return False
        logger.info("Cleaned up print file: %s", path)
        return True
