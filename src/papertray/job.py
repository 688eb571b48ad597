"""Print job record and lifecycle state machine.

A :class:`PrintJob` carries one resolved document plus the options it
should be printed with.  Its :class:`JobStatus` only ever moves forward::

    PENDING -> IN_PREPARATION -> PRINTING -> COMPLETED
                     |               |
                     +--> FAILED <---+

Jobs are never retried: once FAILED (or COMPLETED) a job is terminal and
waits at the head of the queue to be retired.
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

MIN_COPIES = 1
MAX_COPIES = 999


class JobStatus(enum.Enum):
    """Lifecycle states for a print job."""

    PENDING = "pending"
    IN_PREPARATION = "in_preparation"
    PRINTING = "printing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)

    @property
    def progress(self) -> int:
        """Coarse progress percentage; ``-1`` marks a failed job."""
        return _PROGRESS[self]


_PROGRESS: dict[JobStatus, int] = {
    JobStatus.PENDING: 0,
    JobStatus.IN_PREPARATION: 25,
    JobStatus.PRINTING: 75,
    JobStatus.COMPLETED: 100,
    JobStatus.FAILED: -1,
}


class JobValidationError(ValueError):
    """Raised when a submission is rejected before it reaches the queue."""


class JobNotFoundError(KeyError):
    """Raised when a job ID is unknown to the queue."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Task not found: {job_id}")
        self.job_id = job_id

    def __str__(self) -> str:
        return self.args[0]


class InvalidStateTransition(ValueError):
    """Raised when a status change would move a job backwards or sideways."""

    def __init__(self, job_id: str, from_status: JobStatus, to_status: JobStatus) -> None:
        super().__init__(f"Invalid state transition for job {job_id!r}: {from_status.value} -> {to_status.value}")
        self.job_id = job_id
        self.from_status = from_status
        self.to_status = to_status


class _LenientEnum(enum.Enum):
    """Enum that parses case-insensitive names, values and aliases."""

    @classmethod
    def _aliases(cls) -> dict[str, str]:
        return {}

    @classmethod
    def parse(cls, raw: Any):
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, str) or not raw.strip():
            raise JobValidationError(f"Missing {cls._label()}")
        key = raw.strip().lower().replace("-", "_")
        key = cls._aliases().get(key, key)
        for member in cls:
            if key in (member.name.lower(), str(member.value).lower()):
                return member
        allowed = ", ".join(m.value for m in cls)
        raise JobValidationError(f"Unsupported {cls._label()}: {raw!r} (expected one of {allowed})")

    @classmethod
    def _label(cls) -> str:
        return cls.__name__


class MediaType(_LenientEnum):
    """Document formats the queue accepts."""

    PDF = "PDF"
    WORD = "WORD"

    @classmethod
    def _aliases(cls) -> dict[str, str]:
        return {"doc": "word", "docx": "word"}

    @classmethod
    def _label(cls) -> str:
        return "file type"

    @classmethod
    def from_filename(cls, filename: str) -> MediaType:
        suffix = Path(filename or "").suffix.lower().lstrip(".")
        if not suffix:
            raise JobValidationError(f"Cannot determine file type of {filename!r}")
        return cls.parse(suffix)


class PaperSize(_LenientEnum):
    A4 = "A4"
    LETTER = "Letter"
    A3 = "A3"
    LEGAL = "Legal"

    @classmethod
    def _label(cls) -> str:
        return "paper size"


class Sides(_LenientEnum):
    ONE_SIDED = "one-sided"
    TWO_SIDED = "two-sided"

    @classmethod
    def _aliases(cls) -> dict[str, str]:
        return {"simplex": "one_sided", "duplex": "two_sided"}

    @classmethod
    def _label(cls) -> str:
        return "duplex mode"


class ColorMode(_LenientEnum):
    COLOR = "color"
    MONOCHROME = "monochrome"

    @classmethod
    def _aliases(cls) -> dict[str, str]:
        return {"grayscale": "monochrome", "greyscale": "monochrome", "colour": "color"}

    @classmethod
    def _label(cls) -> str:
        return "color mode"


@dataclass(frozen=True)
class PrintOptions:
    """Per-job print attributes handed to the printer backend."""

    copies: int = 1
    paper_size: PaperSize = PaperSize.A4
    sides: Sides = Sides.ONE_SIDED
    color_mode: ColorMode = ColorMode.MONOCHROME

    def __post_init__(self) -> None:
        if isinstance(self.copies, bool) or not isinstance(self.copies, int):
            raise JobValidationError(f"Number of copies must be an integer, got {self.copies!r}")
        if not MIN_COPIES <= self.copies <= MAX_COPIES:
            raise JobValidationError(f"Number of copies must be between {MIN_COPIES} and {MAX_COPIES}")

    @classmethod
    def from_raw(
        cls,
        copies: Any = 1,
        paper_size: Any = "A4",
        sides: Any = "simplex",
        color_mode: Any = "grayscale",
    ) -> PrintOptions:
        """Build options from loosely-typed request values."""
        if copies is None:
            copies = 1
        if isinstance(copies, str):
            try:
                copies = int(copies.strip())
            except ValueError:
                raise JobValidationError(f"Number of copies must be an integer, got {copies!r}") from None
        return cls(
            copies=copies,
            paper_size=PaperSize.parse(paper_size or "A4"),
            sides=Sides.parse(sides or "simplex"),
            color_mode=ColorMode.parse(color_mode or "grayscale"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "copies": self.copies,
            "paper_size": self.paper_size.value,
            "sides": self.sides.value,
            "color_mode": self.color_mode.value,
        }


@dataclass
class PrintJob:
    """A single document print job.

    ``id`` stays ``None`` until the queue assigns one.  Only the queue
    mutates ``status`` and the timestamp fields after submission.
    """

    file_path: str
    media_type: MediaType
    printer_name: str
    options: PrintOptions = field(default_factory=PrintOptions)
    id: str | None = None
    status: JobStatus = JobStatus.PENDING
    submitted_at: float = field(default_factory=time.time)
    started_at: float | None = None
    finished_at: float | None = None
    retired_at: float | None = None
    error: str | None = None
    fault: str | None = None  # FaultCategory value when a printer reported the failure

    def __post_init__(self) -> None:
        if not self.file_path:
            raise JobValidationError("File path cannot be empty")
        if not self.printer_name or not str(self.printer_name).strip():
            raise JobValidationError("Printer ID cannot be null or empty")
        self.media_type = MediaType.parse(self.media_type)

    @property
    def progress(self) -> int:
        return self.status.progress

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def elapsed_seconds(self) -> float | None:
        """Seconds spent executing, or None if execution never started."""
        if self.started_at is None:
            return None
        end = self.finished_at or time.time()
        return round(end - self.started_at, 1)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable dictionary."""
        return {
            "id": self.id,
            "file_path": self.file_path,
            "media_type": self.media_type.value,
            "printer_name": self.printer_name,
            "options": self.options.to_dict(),
            "status": self.status.value,
            "progress": self.progress,
            "submitted_at": self.submitted_at,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "retired_at": self.retired_at,
            "error": self.error,
            "fault": self.fault,
        }


class JobStateMachine:
    """Legal status transitions.  Anything not listed is rejected."""

    _TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
        JobStatus.PENDING: frozenset({JobStatus.IN_PREPARATION}),
        JobStatus.IN_PREPARATION: frozenset({JobStatus.PRINTING, JobStatus.FAILED}),
        JobStatus.PRINTING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
        JobStatus.COMPLETED: frozenset(),
        JobStatus.FAILED: frozenset(),
    }

    @classmethod
    def validate(cls, job_id: str, from_status: JobStatus, to_status: JobStatus) -> None:
        """Raise :class:`InvalidStateTransition` if the transition is illegal."""
        if to_status not in cls._TRANSITIONS.get(from_status, frozenset()):
            raise InvalidStateTransition(job_id, from_status, to_status)

    @classmethod
    def allowed_transitions(cls, status: JobStatus) -> frozenset[JobStatus]:
        return cls._TRANSITIONS.get(status, frozenset())
