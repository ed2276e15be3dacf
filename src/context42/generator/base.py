"""Generator interface used by the scheduler to produce style guides."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

STYLE_GUIDE_TEMPLATE = "style.{language}.md"


class GenerationError(RuntimeError):
    """Style guide generation failed for one unit."""

    def __init__(self, message: str, *, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient


class GenerationCancelled(GenerationError):
    """Generation was interrupted by the run's cancellation signal."""

    def __init__(self, message: str = "Operation cancelled") -> None:
        super().__init__(message, transient=False)


@dataclass(slots=True)
class GenerateRequest:
    """Inputs for one style guide generation call."""

    language: str
    files: tuple[str, ...]
    child_artifacts: dict[str, str] = field(default_factory=dict)
    on_progress: Callable[[str], None] | None = None
    cancel_event: threading.Event | None = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


class StyleGuideGenerator(Protocol):
    """Protocol implemented by style guide generators."""

    def artifact_path(self, request: GenerateRequest) -> Path:
        """Where the generator writes the artifact for this request."""

    def generate(self, request: GenerateRequest) -> Path:
        """Write the style guide file and return its path; raise on failure."""


def style_guide_filename(language: str) -> str:
    return STYLE_GUIDE_TEMPLATE.format(language=language)


def common_directory(files: tuple[str, ...] | list[str]) -> Path:
    """Deepest directory containing every file."""

    if not files:
        return Path.cwd()
    directories = [Path(file).parent for file in files]
    common = directories[0]
    for directory in directories[1:]:
        while common != directory and common not in directory.parents:
            if common.parent == common:
                break
            common = common.parent
    return common
