"""Bounded worker pool that executes work units in dependency order."""

from __future__ import annotations

import itertools
import logging
import queue
import threading
from collections import deque
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from context42.scheduler.artifacts import ArtifactLifecycle
from context42.scheduler.models import (
    DependencyGraph,
    UnitOutcome,
    WorkUnit,
    Worker,
    WorkerStatus,
)
from context42.scheduler.queue_state import QueueStateReporter, SchedulerState
from context42.scheduler.task_runner import TaskRunner

logger = logging.getLogger(__name__)


class SchedulerInvariantError(RuntimeError):
    """Internal scheduler state became inconsistent; the run cannot finish."""


@dataclass(frozen=True, slots=True)
class _ProgressEvent:
    worker_id: int
    task_id: str
    message: str


@dataclass(frozen=True, slots=True)
class _CompletionEvent:
    worker_id: int
    outcome: UnitOutcome


class WorkerPool:
    """Dispatches ready units to a fixed set of worker slots.

    The scheduler loop runs on the calling thread and is the only code that
    touches scheduler state, the worker table and the reporting callbacks.
    Pool threads talk back exclusively through the event queue, which is
    also what the loop blocks on while every slot is busy.
    """

    def __init__(
        self,
        *,
        workers: list[Worker],
        runner: TaskRunner,
        reporter: QueueStateReporter,
        on_worker_update: Callable[[Worker], None] | None = None,
        on_progress: Callable[[int], None] | None = None,
    ) -> None:
        if not workers:
            raise ValueError("Worker pool needs at least one worker slot.")
        self.workers = workers
        self.runner = runner
        self.reporter = reporter
        self._on_worker_update = on_worker_update
        self._on_progress = on_progress
        self._by_id = {worker.id: worker for worker in workers}
        self.completed_files = 0

    @property
    def concurrency(self) -> int:
        return len(self.workers)

    def run(
        self,
        units: list[WorkUnit],
        graph: DependencyGraph,
        *,
        lifecycle: ArtifactLifecycle,
        cancel_event: threading.Event,
    ) -> list[UnitOutcome]:
        """Attempt every unit once, children before parents."""

        state = SchedulerState.from_graph(units, graph)
        events: queue.Queue[_ProgressEvent | _CompletionEvent] = queue.Queue()
        free_slots = deque(worker.id for worker in self.workers)
        assignments: dict[int, str] = {}
        outcomes: list[UnitOutcome] = []
        completion_order = itertools.count()
        self.completed_files = 0
        self.reporter.publish(state)

        def handle(event: _ProgressEvent | _CompletionEvent) -> None:
            if isinstance(event, _ProgressEvent):
                if assignments.get(event.worker_id) == event.task_id:
                    self._update_worker(event.worker_id, progress=event.message)
                return
            outcome = event.outcome
            unit = outcome.unit
            assignments.pop(event.worker_id, None)
            if outcome.succeeded and outcome.artifact_path is not None:
                lifecycle.register(
                    unit.language,
                    outcome.artifact_path,
                    (graph.heights[unit.id], next(completion_order)),
                )
                self._update_worker(event.worker_id, status=WorkerStatus.SUCCESS)
            else:
                if outcome.discarded_path is not None:
                    lifecycle.discard(outcome.discarded_path)
                self._update_worker(
                    event.worker_id,
                    status=WorkerStatus.ERROR,
                    error=outcome.error or "Unknown error",
                )
            outcomes.append(outcome)
            unlocked = state.complete(unit.id, graph.dependents[unit.id])
            self._release_worker(event.worker_id)
            free_slots.append(event.worker_id)
            self.completed_files += len(unit.files)
            self._notify_progress(self.completed_files)
            if unlocked:
                logger.debug("Unit %s unlocked %s", unit.id, ", ".join(unlocked))
            self.reporter.publish(state)

        with ThreadPoolExecutor(
            max_workers=self.concurrency,
            thread_name_prefix="context42-worker",
        ) as executor:
            try:
                while state.has_work():
                    while free_slots and state.ready and not cancel_event.is_set():
                        worker_id = free_slots.popleft()
                        unit = state.start()
                        child_directories = tuple(
                            state.units[child_id].directory for child_id in graph.children[unit.id]
                        )
                        executor.submit(
                            self._execute,
                            worker_id,
                            unit,
                            child_directories,
                            events,
                            cancel_event,
                        )
                        assignments[worker_id] = unit.id
                        self._update_worker(
                            worker_id,
                            status=WorkerStatus.WORKING,
                            language=unit.language,
                            directory=unit.directory,
                            files=len(unit.files),
                        )
                        self.reporter.publish(state)
                    if not state.in_flight:
                        break
                    handle(events.get())
            except BaseException:
                cancel_event.set()
                self._drain(events, assignments, lifecycle)
                raise

        if not cancel_event.is_set() and len(state.completed) != len(units):
            raise SchedulerInvariantError(
                f"Scheduler stopped with {len(units) - len(state.completed)} unit(s) "
                "never unlocked.",
            )
        return outcomes

    def _drain(
        self,
        events: queue.Queue[_ProgressEvent | _CompletionEvent],
        assignments: dict[int, str],
        lifecycle: ArtifactLifecycle,
    ) -> None:
        """Wait for in-flight units after a loop failure and track their files for deletion."""

        while assignments:
            event = events.get()
            if not isinstance(event, _CompletionEvent):
                continue
            assignments.pop(event.worker_id, None)
            for path in (event.outcome.artifact_path, event.outcome.discarded_path):
                if path is not None:
                    lifecycle.discard(path)

    def reset_workers(self) -> None:
        for worker in self.workers:
            self._release_worker(worker.id)

    def _execute(
        self,
        worker_id: int,
        unit: WorkUnit,
        child_directories: tuple[str, ...],
        events: queue.Queue[_ProgressEvent | _CompletionEvent],
        cancel_event: threading.Event,
    ) -> None:
        outcome = UnitOutcome(unit=unit, error="Task runner crashed")
        try:
            outcome = self.runner.run(
                unit,
                child_directories=child_directories,
                on_progress=lambda message: events.put(
                    _ProgressEvent(worker_id=worker_id, task_id=unit.id, message=message),
                ),
                cancel_event=cancel_event,
            )
        finally:
            events.put(_CompletionEvent(worker_id=worker_id, outcome=outcome))

    def _update_worker(self, worker_id: int, **changes: object) -> None:
        worker = self._by_id[worker_id]
        for name, value in changes.items():
            setattr(worker, name, value)
        self._notify_worker(worker)

    def _release_worker(self, worker_id: int) -> None:
        worker = self._by_id[worker_id]
        worker.reset()
        self._notify_worker(worker)

    def _notify_worker(self, worker: Worker) -> None:
        if self._on_worker_update is None:
            return
        try:
            self._on_worker_update(worker.snapshot())
        except Exception:  # noqa: BLE001
            logger.exception("Worker update subscriber failed")

    def _notify_progress(self, completed_files: int) -> None:
        if self._on_progress is None:
            return
        try:
            self._on_progress(completed_files)
        except Exception:  # noqa: BLE001
            logger.exception("Progress subscriber failed")
