"""Dependency-aware scheduler for per-directory style guide generation.

Why not a generic task queue?
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Work units are "all files of one language in one directory", and a parent
directory can only be summarised once its children are done, because the
children's guides are its input.  The scheduler therefore needs:

- a per-language child-before-parent graph derived from directory nesting;
- a fixed number of worker slots that stay observable (the CLI shows what each
  slot is doing) rather than one anonymous future per task;
- per-run ownership of the files the external agent writes, so every file is
  either promoted or removed whatever happens to the run.

Everything runs in one process.  The scheduler loop owns all state; pool
threads only wait on the agent subprocess and post events back.
"""

from context42.scheduler.artifacts import ArtifactLifecycle
from context42.scheduler.graph import build_dependency_graph, is_descendant
from context42.scheduler.models import (
    DependencyGraph,
    QueuedTask,
    QueuedTaskStatus,
    QueueSnapshot,
    RunSummary,
    UnitOutcome,
    WorkUnit,
    Worker,
    WorkerStatus,
)
from context42.scheduler.pool import SchedulerInvariantError, WorkerPool
from context42.scheduler.processor import StyleGuideProcessor
from context42.scheduler.queue_state import QueueStateReporter, SchedulerState
from context42.scheduler.task_runner import TaskRunner

__all__ = [
    "ArtifactLifecycle",
    "DependencyGraph",
    "QueueSnapshot",
    "QueueStateReporter",
    "QueuedTask",
    "QueuedTaskStatus",
    "RunSummary",
    "SchedulerInvariantError",
    "SchedulerState",
    "StyleGuideProcessor",
    "TaskRunner",
    "UnitOutcome",
    "WorkUnit",
    "Worker",
    "WorkerPool",
    "WorkerStatus",
    "build_dependency_graph",
    "is_descendant",
]
