"""Executes one work unit: child context lookup, generation, persistence."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Protocol

from context42.generator.base import GenerateRequest, GenerationError, StyleGuideGenerator
from context42.scheduler.models import UnitOutcome, WorkUnit

logger = logging.getLogger(__name__)


class ResultStore(Protocol):
    """Persistence operations the runner needs."""

    def get_child_artifacts(
        self,
        directory: str,
        language: str,
        *,
        children: Iterable[str] | None = None,
    ) -> dict[str, str]:
        """Immediate child guides already produced in this run."""

    def save_result(self, language: str, content: str, directory: str) -> None:
        """Upsert the guide for (language, directory)."""


class TaskRunner:
    """Runs a single WorkUnit on a pool thread and reports a UnitOutcome."""

    def __init__(self, *, repository: ResultStore, generator: StyleGuideGenerator) -> None:
        self.repository = repository
        self.generator = generator

    def run(
        self,
        unit: WorkUnit,
        *,
        on_progress: Callable[[str], None],
        cancel_event: threading.Event,
        child_directories: tuple[str, ...] | None = None,
    ) -> UnitOutcome:
        request = GenerateRequest(
            language=unit.language,
            files=unit.files,
            on_progress=on_progress,
            cancel_event=cancel_event,
        )
        expected_path: Path | None = None
        previous: tuple[int, int] | None = None
        started = time.monotonic()
        try:
            expected_path = self.generator.artifact_path(request)
            previous = _file_signature(expected_path)
            request.child_artifacts = self.repository.get_child_artifacts(
                unit.directory,
                unit.language,
                children=child_directories,
            )
            artifact_path = self.generator.generate(request)
            content = artifact_path.read_text("utf-8")
            self.repository.save_result(unit.language, content, unit.directory)
        except GenerationError as error:
            return self._failed(unit, str(error), expected_path, previous)
        except Exception as error:  # noqa: BLE001
            logger.exception("Unexpected failure while processing %s", unit.id)
            return self._failed(unit, str(error) or type(error).__name__, expected_path, previous)

        logger.info(
            "Style guide generated: unit=%s children=%d elapsed=%.1fs",
            unit.id,
            len(request.child_artifacts),
            time.monotonic() - started,
        )
        return UnitOutcome(unit=unit, artifact_path=artifact_path)

    def _failed(
        self,
        unit: WorkUnit,
        message: str,
        expected_path: Path | None,
        previous: tuple[int, int] | None,
    ) -> UnitOutcome:
        logger.warning("Style guide failed: unit=%s error=%s", unit.id, message)
        discarded = None
        if expected_path is not None:
            current = _file_signature(expected_path)
            # A guide that was already there and left untouched belongs to the user.
            if current is not None and current != previous:
                discarded = expected_path
        return UnitOutcome(unit=unit, error=message, discarded_path=discarded)


def _file_signature(path: Path) -> tuple[int, int] | None:
    """``(mtime_ns, size)`` of ``path``, or None when it does not exist."""

    try:
        stat = path.stat()
    except FileNotFoundError:
        return None
    return stat.st_mtime_ns, stat.st_size
