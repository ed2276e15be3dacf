"""Source tree discovery: group files into per-directory, per-language work units."""

from __future__ import annotations

import fnmatch
import logging
import os
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path

from context42.config import DEFAULT_MAX_FILE_BYTES
from context42.scheduler.models import WorkUnit

logger = logging.getLogger(__name__)

DEFAULT_IGNORE_DIRECTORIES: frozenset[str] = frozenset(
    {
        "node_modules",
        ".git",
        "dist",
        "build",
        "coverage",
        ".next",
        ".nuxt",
        "venv",
        ".venv",
        "__pycache__",
        "vendor",
        ".cache",
        "tmp",
        "temp",
    },
)
DEFAULT_IGNORE_FILES: tuple[str, ...] = ("*.min.js", "*.min.css", "style.*.md")


def discover_work_units(
    root: Path,
    ignore: Iterable[str] = (),
    *,
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES,
) -> dict[str, list[WorkUnit]]:
    """Walk ``root`` and return ``{language: [WorkUnit, ...]}`` sorted by directory."""

    root = root.resolve()
    if not root.is_dir():
        raise ValueError(f"Input directory does not exist: {root}")
    patterns = tuple(pattern for pattern in ignore if pattern)
    grouped: dict[tuple[str, str], list[str]] = defaultdict(list)
    skipped = 0

    for current, directories, files in os.walk(root):
        current_path = Path(current)
        directories[:] = sorted(
            name
            for name in directories
            if name not in DEFAULT_IGNORE_DIRECTORIES
            and not _matches(_relative(current_path / name, root), name, patterns)
        )
        for name in files:
            path = current_path / name
            if _skip_file(path, root=root, patterns=patterns, max_file_bytes=max_file_bytes):
                skipped += 1
                continue
            language = path.suffix[1:].lower()
            grouped[(language, current_path.as_posix())].append(path.as_posix())

    by_language: dict[str, list[WorkUnit]] = defaultdict(list)
    for (language, directory), paths in sorted(grouped.items()):
        by_language[language].append(
            WorkUnit(language=language, directory=directory, files=tuple(sorted(paths))),
        )
    logger.debug(
        "Discovered %d units in %d languages under %s (%d files skipped)",
        sum(len(units) for units in by_language.values()),
        len(by_language),
        root,
        skipped,
    )
    return dict(sorted(by_language.items()))


def count_files(units_by_language: Mapping[str, Sequence[WorkUnit]]) -> int:
    return sum(len(unit.files) for units in units_by_language.values() for unit in units)


def _skip_file(
    path: Path,
    *,
    root: Path,
    patterns: tuple[str, ...],
    max_file_bytes: int,
) -> bool:
    if not path.suffix or path.suffix == ".":
        return True
    if any(fnmatch.fnmatch(path.name, pattern) for pattern in DEFAULT_IGNORE_FILES):
        return True
    if _matches(_relative(path, root), path.name, patterns):
        return True
    try:
        if not path.is_file():
            return True
        return path.stat().st_size > max_file_bytes
    except OSError as error:
        logger.warning("Skipping unreadable file %s: %s", path, error)
        return True


def _matches(relative: str, name: str, patterns: tuple[str, ...]) -> bool:
    return any(
        fnmatch.fnmatch(relative, pattern) or fnmatch.fnmatch(name, pattern)
        for pattern in patterns
    )


def _relative(path: Path, root: Path) -> str:
    return path.relative_to(root).as_posix()
