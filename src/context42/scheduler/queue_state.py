"""Scheduler state and read-only queue snapshots for observers."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field

from context42.scheduler.models import (
    DependencyGraph,
    QueuedTask,
    QueuedTaskStatus,
    QueueSnapshot,
    WorkUnit,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SchedulerState:
    """Mutable per-run state, owned by the scheduler loop."""

    units: dict[str, WorkUnit]
    pending_dependency_count: dict[str, int]
    ready: deque[str] = field(default_factory=deque)
    in_flight: set[str] = field(default_factory=set)
    completed: set[str] = field(default_factory=set)

    @classmethod
    def from_graph(cls, units: list[WorkUnit], graph: DependencyGraph) -> SchedulerState:
        state = cls(
            units={unit.id: unit for unit in units},
            pending_dependency_count=dict(graph.pending_counts),
        )
        for unit in units:
            if state.pending_dependency_count[unit.id] == 0:
                state.ready.append(unit.id)
        return state

    def waiting(self) -> dict[str, int]:
        """Units still blocked on unfinished children, with their pending count."""

        return {
            task_id: count
            for task_id, count in self.pending_dependency_count.items()
            if count > 0 and task_id not in self.completed
        }

    def has_work(self) -> bool:
        return bool(self.ready or self.in_flight)

    def start(self) -> WorkUnit:
        task_id = self.ready.popleft()
        self.in_flight.add(task_id)
        return self.units[task_id]

    def complete(self, task_id: str, dependents: tuple[str, ...]) -> list[str]:
        """Mark a unit finished and return the dependents it unlocked."""

        self.in_flight.discard(task_id)
        self.completed.add(task_id)
        unlocked: list[str] = []
        for parent_id in dependents:
            self.pending_dependency_count[parent_id] -= 1
            if self.pending_dependency_count[parent_id] == 0:
                self.ready.append(parent_id)
                unlocked.append(parent_id)
        return unlocked


class QueueStateReporter:
    """Publishes ready/waiting snapshots to a subscriber."""

    def __init__(self, on_queue_update: Callable[[QueueSnapshot], None] | None = None) -> None:
        self._on_queue_update = on_queue_update
        self.latest = QueueSnapshot()

    def publish(self, state: SchedulerState) -> QueueSnapshot:
        ready = tuple(
            _queued(state.units[task_id], QueuedTaskStatus.READY) for task_id in state.ready
        )
        waiting = tuple(
            _queued(state.units[task_id], QueuedTaskStatus.WAITING, pending_deps=count)
            for task_id, count in state.waiting().items()
        )
        self._emit(QueueSnapshot(ready=ready, waiting=waiting))
        return self.latest

    def clear(self) -> None:
        self._emit(QueueSnapshot())

    def _emit(self, snapshot: QueueSnapshot) -> None:
        self.latest = snapshot
        logger.debug(
            "Queue update: ready=%d waiting=%d",
            len(snapshot.ready),
            len(snapshot.waiting),
        )
        if self._on_queue_update is None:
            return
        try:
            self._on_queue_update(snapshot)
        except Exception:  # noqa: BLE001
            logger.exception("Queue update subscriber failed")


def _queued(
    unit: WorkUnit,
    status: QueuedTaskStatus,
    *,
    pending_deps: int | None = None,
) -> QueuedTask:
    return QueuedTask(
        id=unit.id,
        language=unit.language,
        directory=unit.directory,
        status=status,
        pending_deps=pending_deps,
    )
