"""Directory dependency graph: child directories finish before their parents."""

from __future__ import annotations

import posixpath
from collections import defaultdict, deque
from collections.abc import Iterable, Iterator

from context42.scheduler.models import DependencyGraph, WorkUnit


def is_descendant(child: str, parent: str) -> bool:
    """Return True when ``child`` is a strict sub-path of ``parent``."""

    if child == parent:
        return False
    if parent == ".":
        return not _escapes_root(child) and not child.startswith("/")
    if parent == "/":
        return child.startswith("/")
    return child.startswith(f"{parent}/")


def build_dependency_graph(units: Iterable[WorkUnit]) -> DependencyGraph:
    """Connect every unit to its closest same-language ancestor unit.

    Ancestors of a directory form a chain, so the first ancestor found while
    walking up the parent chain is the closest one: no other unit of the same
    language can sit between them.
    """

    ordered = list(units)
    by_language: dict[str, dict[str, WorkUnit]] = defaultdict(dict)
    for unit in ordered:
        existing = by_language[unit.language].get(unit.directory)
        if existing is not None:
            raise ValueError(f"Duplicate work unit: {unit.id}")
        by_language[unit.language][unit.directory] = unit

    edges: list[tuple[str, str]] = []
    pending_counts = {unit.id: 0 for unit in ordered}
    dependents: dict[str, list[str]] = {unit.id: [] for unit in ordered}
    children: dict[str, list[str]] = {unit.id: [] for unit in ordered}

    for unit in ordered:
        same_language = by_language[unit.language]
        for ancestor in _ancestor_directories(unit.directory):
            parent = same_language.get(ancestor)
            if parent is None:
                continue
            edges.append((unit.id, parent.id))
            pending_counts[parent.id] += 1
            dependents[unit.id].append(parent.id)
            children[parent.id].append(unit.id)
            break

    return DependencyGraph(
        edges=tuple(edges),
        pending_counts=pending_counts,
        dependents={key: tuple(value) for key, value in dependents.items()},
        children={key: tuple(value) for key, value in children.items()},
        heights=_heights(ordered, pending_counts, dependents),
    )


def _heights(
    units: list[WorkUnit],
    pending_counts: dict[str, int],
    dependents: dict[str, list[str]],
) -> dict[str, int]:
    remaining = dict(pending_counts)
    heights = {unit.id: 0 for unit in units}
    leaves = deque(unit.id for unit in units if remaining[unit.id] == 0)
    while leaves:
        current = leaves.popleft()
        for parent_id in dependents[current]:
            heights[parent_id] = max(heights[parent_id], heights[current] + 1)
            remaining[parent_id] -= 1
            if remaining[parent_id] == 0:
                leaves.append(parent_id)
    return heights


def _ancestor_directories(directory: str) -> Iterator[str]:
    if directory in {".", "/"}:
        return
    current = directory
    while True:
        parent = posixpath.dirname(current)
        if parent == current:
            return
        if not parent:
            if not _escapes_root(directory):
                yield "."
            return
        yield parent
        current = parent


def _escapes_root(directory: str) -> bool:
    return directory == ".." or directory.startswith("../")
