"""Controller for the ``context42`` generate command."""

from __future__ import annotations

import logging
import signal
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from context42.config import GeneratorSettings, Settings
from context42.explorer import count_files, discover_work_units
from context42.generator.base import StyleGuideGenerator
from context42.generator.cli_backend import CliStyleGuideGenerator
from context42.scheduler.models import QueueSnapshot, RunSummary, WorkUnit, Worker, WorkerStatus
from context42.scheduler.processor import StyleGuideProcessor
from context42.storage.repository import StyleGuideRepository

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GenerateCommand:
    """CLI inputs for the generate command."""

    input_dir: Path
    output_dir: Path | None = None
    model: str | None = None
    concurrency: int | None = None
    run_id: str | None = None
    languages: tuple[str, ...] = ()
    db_path: Path | None = None
    debug: bool = False


class ConsoleReporter:
    """Turns worker snapshots into one console line per visible transition."""

    def __init__(self, emit: Callable[[str], None], *, total_files: int) -> None:
        self.emit = emit
        self.total_files = total_files
        self._last: dict[int, Worker] = {}

    def on_worker_update(self, worker: Worker) -> None:
        previous = self._last.get(worker.id)
        self._last[worker.id] = worker
        if worker.status == WorkerStatus.WORKING:
            if previous is None or previous.status != WorkerStatus.WORKING:
                self.emit(
                    f"[worker {worker.id}] {worker.language} {worker.directory} "
                    f"({worker.files} files)",
                )
            elif worker.progress and worker.progress != previous.progress:
                self.emit(f"[worker {worker.id}] {worker.progress}")
        elif worker.status == WorkerStatus.SUCCESS:
            self.emit(f"[worker {worker.id}] done {worker.language} {worker.directory}")
        elif worker.status == WorkerStatus.ERROR:
            self.emit(
                f"[worker {worker.id}] failed {worker.language} {worker.directory}: "
                f"{worker.error}",
            )

    def on_queue_update(self, snapshot: QueueSnapshot) -> None:
        if snapshot.is_empty:
            logger.debug("Queue drained")
            return
        logger.debug("Queue: ready=%d waiting=%d", len(snapshot.ready), len(snapshot.waiting))

    def on_progress(self, completed_files: int) -> None:
        self.emit(f"Progress: {completed_files}/{self.total_files} files")


class Context42CliController:
    """Coordinates discovery, persistence and the scheduler for one CLI run."""

    def __init__(
        self,
        *,
        emit: Callable[[str], None] | None = None,
        generator_factory: Callable[[GeneratorSettings], StyleGuideGenerator] | None = None,
    ) -> None:
        self.emit = emit or (lambda _line: None)
        self.generator_factory = generator_factory or CliStyleGuideGenerator.from_settings

    def generate(self, command: GenerateCommand) -> list[str]:
        settings = _settings_for(command)
        settings.validate()

        input_dir = command.input_dir.resolve()
        output_dir = settings.output_dir.resolve()
        units_by_language = discover_work_units(
            input_dir,
            ignore=(*settings.explorer.ignore, *_output_exclusion(input_dir, output_dir)),
            max_file_bytes=settings.explorer.max_file_bytes,
        )
        if not units_by_language:
            raise ValueError(f"No source files found in {input_dir}")
        units_by_language = _select_languages(units_by_language, command.languages)

        total_files = count_files(units_by_language)
        concurrency = min(settings.scheduler.concurrency, total_files)
        self.emit(
            f"Found {total_files} files in {len(units_by_language)} languages: "
            f"{', '.join(units_by_language)}",
        )

        reporter = ConsoleReporter(self.emit, total_files=total_files)
        with _repository(settings, run_id=command.run_id) as repository:
            self.emit(f"Beginning run {repository.run_id}...")
            processor = StyleGuideProcessor(
                repository=repository,
                generator=self.generator_factory(settings.generator),
                concurrency=concurrency,
                on_worker_update=reporter.on_worker_update,
                on_queue_update=reporter.on_queue_update,
                on_progress=reporter.on_progress,
            )
            with _signal_handlers(processor.reset):
                results = processor.run(
                    units_by_language=units_by_language,
                    input_dir=input_dir,
                    output_dir=output_dir,
                )
            summary = processor.last_summary or RunSummary(run_id=repository.run_id)

        return _summary_lines(
            summary=summary,
            results=results,
            output_dir=output_dir,
            debug=command.debug,
        )


def _settings_for(command: GenerateCommand) -> Settings:
    settings = Settings.from_env(db_path=command.db_path)
    if command.output_dir is not None:
        settings.output_dir = command.output_dir
    if command.model:
        settings.generator.model = command.model
    if command.concurrency is not None:
        settings.scheduler.concurrency = command.concurrency
    return settings


def _select_languages(
    units_by_language: dict[str, list[WorkUnit]],
    languages: tuple[str, ...],
) -> dict[str, list[WorkUnit]]:
    if not languages:
        return units_by_language
    wanted = [language.strip().lstrip(".").lower() for language in languages]
    unknown = sorted({language for language in wanted if language not in units_by_language})
    if unknown:
        raise ValueError(
            f"Unknown language(s): {', '.join(unknown)}. "
            f"Found: {', '.join(units_by_language)}",
        )
    return {language: units_by_language[language] for language in dict.fromkeys(wanted)}


def _output_exclusion(input_dir: Path, output_dir: Path) -> tuple[str, ...]:
    try:
        relative = output_dir.relative_to(input_dir).as_posix()
    except ValueError:
        return ()
    if relative == ".":
        return ()
    return (relative,)


def _summary_lines(
    *,
    summary: RunSummary,
    results: dict[str, str],
    output_dir: Path,
    debug: bool,
) -> list[str]:
    lines = [
        f"Run {summary.run_id}: units={summary.total_units} "
        f"succeeded={summary.succeeded} failed={summary.failed} "
        f"cancelled={'yes' if summary.cancelled else 'no'}",
    ]
    if summary.cancelled:
        lines.append("Run cancelled; no style guides were written.")
    for language, name in sorted(results.items()):
        lines.append(f"  {language}: {output_dir / name}")
    for unit_id, error in sorted(summary.failures.items()):
        lines.append(f"  failed {unit_id}: {error}")
    if debug and (summary.failed or summary.cancelled):
        lines.append(f"Resume with: context42 --run {summary.run_id}")
    return lines


@contextmanager
def _repository(settings: Settings, *, run_id: str | None) -> Iterator[StyleGuideRepository]:
    repository = StyleGuideRepository(settings.db_path, run_id=run_id)
    try:
        repository.init_schema()
        yield repository
    finally:
        repository.close()


@contextmanager
def _signal_handlers(on_signal: Callable[[], None]) -> Iterator[None]:
    original_sigint = signal.getsignal(signal.SIGINT)
    original_sigterm = signal.getsignal(signal.SIGTERM)

    def _handler(signum: int, _: object | None) -> None:
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        logger.warning("Received %s, cancelling run", name)
        on_signal()

    installed = False
    try:
        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
        installed = True
    except ValueError:
        # Signal handlers can only be installed in main thread.
        pass
    try:
        yield
    finally:
        if installed:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)
