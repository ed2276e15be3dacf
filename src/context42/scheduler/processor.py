"""Run/reset entrypoint that wires graph, pool, runner and artifact lifecycle."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

from context42.generator.base import StyleGuideGenerator
from context42.scheduler.artifacts import ArtifactLifecycle
from context42.scheduler.graph import build_dependency_graph
from context42.scheduler.models import (
    QueuedTask,
    QueueSnapshot,
    RunSummary,
    WorkUnit,
    Worker,
)
from context42.scheduler.pool import WorkerPool
from context42.scheduler.queue_state import QueueStateReporter
from context42.scheduler.task_runner import ResultStore, TaskRunner

logger = logging.getLogger(__name__)


class StyleGuideProcessor:
    """Generates one style guide per language over a directory tree.

    Workers are created once and reused by every run. ``cancel()`` only sets
    the run's cancellation event and is safe to call from signal handlers;
    ``reset()`` additionally returns workers and counters to their idle state.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        repository: ResultStore,
        generator: StyleGuideGenerator,
        concurrency: int,
        on_worker_update: Callable[[Worker], None] | None = None,
        on_queue_update: Callable[[QueueSnapshot], None] | None = None,
        on_progress: Callable[[int], None] | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError(f"Concurrency must be >= 1, got {concurrency}.")
        self.repository = repository
        self.workers = [Worker(id=index) for index in range(1, concurrency + 1)]
        self.reporter = QueueStateReporter(on_queue_update)
        self.pool = WorkerPool(
            workers=self.workers,
            runner=TaskRunner(repository=repository, generator=generator),
            reporter=self.reporter,
            on_worker_update=on_worker_update,
            on_progress=on_progress,
        )
        self.total = 0
        self.last_summary: RunSummary | None = None
        self._cancel_event: threading.Event | None = None
        self._running = False

    @property
    def completed(self) -> int:
        return self.pool.completed_files

    @property
    def queued_tasks(self) -> tuple[QueuedTask, ...]:
        return self.reporter.latest.tasks

    @property
    def is_running(self) -> bool:
        return self._running

    def run(
        self,
        *,
        units_by_language: Mapping[str, Sequence[WorkUnit]],
        input_dir: Path,
        output_dir: Path,
    ) -> dict[str, str]:
        """Process every unit and return ``{language: output file name}``."""

        if self._running:
            raise RuntimeError("A run is already in progress.")
        units = [unit for group in units_by_language.values() for unit in group]
        graph = build_dependency_graph(units)
        cancel_event = threading.Event()
        self._cancel_event = cancel_event
        self._running = True
        self.total = sum(len(unit.files) for unit in units)
        summary = RunSummary(
            run_id=getattr(self.repository, "run_id", None),
            total_units=len(units),
        )
        logger.info(
            "Run started: input_dir=%s units=%d files=%d concurrency=%d",
            input_dir,
            len(units),
            self.total,
            self.pool.concurrency,
        )

        try:
            output_dir.mkdir(parents=True, exist_ok=True)
            with ArtifactLifecycle(output_dir) as lifecycle:
                outcomes = self.pool.run(
                    units,
                    graph,
                    lifecycle=lifecycle,
                    cancel_event=cancel_event,
                )
                summary.cancelled = cancel_event.is_set()
                results = {} if summary.cancelled else lifecycle.promote()
        finally:
            self._cancel_event = None
            self._running = False
            self.reporter.clear()

        for outcome in outcomes:
            if outcome.succeeded:
                summary.succeeded += 1
            else:
                summary.failed += 1
                summary.failures[outcome.unit.id] = outcome.error or "Unknown error"
        summary.promoted = dict(results)
        self.last_summary = summary
        logger.info(
            "Run finished: succeeded=%d failed=%d cancelled=%s promoted=%s",
            summary.succeeded,
            summary.failed,
            summary.cancelled,
            ",".join(sorted(results)) or "-",
        )
        return results

    def cancel(self) -> None:
        """Signal the in-flight run, if any, to stop."""

        cancel_event = self._cancel_event
        if cancel_event is not None:
            cancel_event.set()

    def reset(self) -> None:
        """Cancel any in-flight run and return workers and queue state to idle."""

        self.cancel()
        if self._running:
            return
        self.total = 0
        self.pool.completed_files = 0
        self.reporter.clear()
        self.pool.reset_workers()
