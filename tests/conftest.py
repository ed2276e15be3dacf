"""Shared test fixtures."""

from __future__ import annotations

import sys
import threading
import time
from collections.abc import Iterator
from pathlib import Path

import pytest

from context42.generator.base import (
    GenerateRequest,
    GenerationError,
    common_directory,
    style_guide_filename,
)
from context42.scheduler.models import WorkUnit
from context42.storage.repository import StyleGuideRepository

ECHO_AGENT_COMMAND_TEMPLATE = f"{sys.executable} -m context42.generator.echo_agent"
SRC_DIR = Path(__file__).resolve().parents[1] / "src"


class FakeGenerator:
    """In-process generator that writes a small guide next to the unit's files."""

    def __init__(
        self,
        *,
        failing: frozenset[str] = frozenset(),
        delay_seconds: float = 0.0,
        partial_on_failure: bool = False,
    ) -> None:
        self.failing = failing
        self.delay_seconds = delay_seconds
        self.partial_on_failure = partial_on_failure
        self.started: list[str] = []
        self.finished: list[str] = []
        self.children_seen: dict[str, tuple[str, ...]] = {}
        self.max_active = 0
        self._active = 0
        self._lock = threading.Lock()
        self.started_event = threading.Event()

    def artifact_path(self, request: GenerateRequest) -> Path:
        return common_directory(request.files) / style_guide_filename(request.language)

    def generate(self, request: GenerateRequest) -> Path:
        directory = common_directory(request.files).as_posix()
        key = f"{request.language}:{directory}"
        with self._lock:
            self._active += 1
            self.max_active = max(self.max_active, self._active)
            self.started.append(key)
            self.children_seen[key] = tuple(sorted(request.child_artifacts))
        self.started_event.set()
        try:
            if request.on_progress is not None:
                request.on_progress(f"Analyzing {len(request.files)} files")
            if self.delay_seconds > 0:
                if request.cancel_event is not None:
                    if request.cancel_event.wait(self.delay_seconds):
                        raise GenerationError("Operation cancelled")
                else:
                    time.sleep(self.delay_seconds)
            path = self.artifact_path(request)
            if directory in self.failing:
                if self.partial_on_failure:
                    path.write_text("partial", "utf-8")
                raise GenerationError(f"Agent command failed: {directory}")
            path.write_text(
                f"{key} children={','.join(sorted(request.child_artifacts))}\n",
                "utf-8",
            )
            return path
        finally:
            with self._lock:
                self._active -= 1
                self.finished.append(key)


def make_unit(root: Path, language: str, relative_dir: str, *names: str) -> WorkUnit:
    """Create the directory and files on disk and return the matching unit."""

    directory = root / relative_dir if relative_dir not in {"", "."} else root
    directory.mkdir(parents=True, exist_ok=True)
    files = []
    for name in names or (f"main.{language}",):
        path = directory / name
        path.write_text(f"// {name}\n", "utf-8")
        files.append(path.as_posix())
    return WorkUnit(language=language, directory=directory.as_posix(), files=tuple(files))


@pytest.fixture()
def repository() -> Iterator[StyleGuideRepository]:
    repo = StyleGuideRepository(":memory:", run_id="test-run")
    repo.init_schema()
    try:
        yield repo
    finally:
        repo.close()


@pytest.fixture()
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture()
def echo_agent(monkeypatch) -> str:
    """Route the agent command to the local echo agent."""

    monkeypatch.setenv("CONTEXT42_COMMAND_TEMPLATE", ECHO_AGENT_COMMAND_TEMPLATE)
    monkeypatch.setenv("PYTHONPATH", str(SRC_DIR))
    return ECHO_AGENT_COMMAND_TEMPLATE
