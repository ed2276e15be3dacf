"""Domain models for the directory-aware style guide scheduler."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path


class WorkerStatus(str, Enum):
    """Observable lifecycle of one worker slot."""

    IDLE = "idle"
    WORKING = "working"
    SUCCESS = "success"
    ERROR = "error"


class QueuedTaskStatus(str, Enum):
    """Queue position of a not-yet-started unit."""

    READY = "ready"
    WAITING = "waiting"


def unit_id(language: str, directory: str) -> str:
    """Stable task key for one (language, directory) pair."""

    return f"{language}:{directory}"


def normalize_directory(directory: str) -> str:
    """Use posix separators and drop trailing separators (except for the root)."""

    if not directory:
        return "."
    return posixpath.normpath(directory.replace("\\", "/"))


@dataclass(frozen=True, slots=True)
class WorkUnit:
    """All files of one language in one directory."""

    language: str
    directory: str
    files: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.files:
            raise ValueError(f"Work unit {self.language}:{self.directory} has no files.")
        object.__setattr__(self, "directory", normalize_directory(self.directory))
        object.__setattr__(self, "files", tuple(self.files))

    @property
    def id(self) -> str:
        return unit_id(self.language, self.directory)


@dataclass(frozen=True, slots=True)
class DependencyGraph:
    """Child-before-parent edges plus the derived lookup tables."""

    edges: tuple[tuple[str, str], ...]
    pending_counts: dict[str, int]
    dependents: dict[str, tuple[str, ...]]
    children: dict[str, tuple[str, ...]]
    heights: dict[str, int]


@dataclass(slots=True)
class Worker:
    """One of the fixed execution lanes of a processor."""

    id: int
    status: WorkerStatus = WorkerStatus.IDLE
    language: str | None = None
    directory: str | None = None
    files: int | None = None
    progress: str | None = None
    error: str | None = None

    def snapshot(self) -> Worker:
        """Detached copy handed to reporting sinks."""

        return replace(self)

    def reset(self) -> None:
        self.status = WorkerStatus.IDLE
        self.language = None
        self.directory = None
        self.files = None
        self.progress = None
        self.error = None


@dataclass(frozen=True, slots=True)
class QueuedTask:
    """Queue entry as shown to observers."""

    id: str
    language: str
    directory: str
    status: QueuedTaskStatus
    pending_deps: int | None = None


@dataclass(frozen=True, slots=True)
class QueueSnapshot:
    """Read-only view of ready and waiting units."""

    ready: tuple[QueuedTask, ...] = ()
    waiting: tuple[QueuedTask, ...] = ()

    @property
    def tasks(self) -> tuple[QueuedTask, ...]:
        return self.ready + self.waiting

    @property
    def is_empty(self) -> bool:
        return not self.ready and not self.waiting


@dataclass(frozen=True, slots=True)
class UnitOutcome:
    """Result of one TaskRunner invocation."""

    unit: WorkUnit
    artifact_path: Path | None = None
    error: str | None = None
    discarded_path: Path | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.artifact_path is not None


@dataclass(slots=True)
class RunSummary:
    """Per-run counters reported by the processor after completion."""

    run_id: str | None = None
    total_units: int = 0
    succeeded: int = 0
    failed: int = 0
    cancelled: bool = False
    promoted: dict[str, str] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)
