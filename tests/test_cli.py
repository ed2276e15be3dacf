from __future__ import annotations

from pathlib import Path

import allure
import pytest
from click.testing import CliRunner
from conftest import FakeGenerator

from context42 import __version__
from context42.controllers import ConsoleReporter, Context42CliController, GenerateCommand
from context42.main import context42
from context42.scheduler.models import QueuedTask, QueuedTaskStatus, QueueSnapshot

pytestmark = [
    allure.epic("CLI"),
    allure.feature("Generate Command"),
]


def _project(root: Path) -> Path:
    files = {
        "app/main.ts": "export const main = () => {}\n",
        "app/src/index.ts": "export * from './util'\n",
        "app/src/util.ts": "export const util = 1\n",
        "scripts/deploy.py": "print('deploy')\n",
    }
    for relative, text in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, "utf-8")
    return root


@pytest.fixture()
def isolated_env(monkeypatch, tmp_path):
    for name in ("CONTEXT42_CONCURRENCY", "CONTEXT42_IGNORE", "CONTEXT42_MODEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("CONTEXT42_DB_PATH", str(tmp_path / "db" / "data.db"))
    return tmp_path


def test_generate_end_to_end_with_echo_agent(isolated_env, echo_agent) -> None:
    project = _project(isolated_env / "project")
    output_dir = isolated_env / "guides"

    result = CliRunner().invoke(
        context42,
        ["-i", str(project), "-o", str(output_dir), "-c", "2"],
    )

    assert result.exit_code == 0, result.output
    assert "Found 4 files in 2 languages: py, ts" in result.output
    assert "Beginning run " in result.output
    assert "succeeded=3 failed=0 cancelled=no" in result.output
    assert sorted(path.name for path in output_dir.iterdir()) == ["py.md", "ts.md"]
    ts_guide = (output_dir / "ts.md").read_text("utf-8")
    assert "Placeholder guide for 1 ts file(s) in app." in ts_guide
    assert "Synthesized from: src" in ts_guide
    assert list(project.rglob("style.*.md")) == []


def test_language_filter_limits_generated_guides(isolated_env, echo_agent) -> None:
    project = _project(isolated_env / "project")
    output_dir = isolated_env / "guides"

    result = CliRunner().invoke(
        context42,
        ["-i", str(project), "-o", str(output_dir), "-l", "py"],
    )

    assert result.exit_code == 0, result.output
    assert [path.name for path in output_dir.iterdir()] == ["py.md"]


def test_unknown_language_is_an_error(isolated_env, echo_agent) -> None:
    project = _project(isolated_env / "project")

    result = CliRunner().invoke(context42, ["-i", str(project), "-l", "rs"])

    assert result.exit_code == 1
    assert "Unknown language(s): rs. Found: py, ts" in result.output


def test_empty_input_is_an_error(isolated_env, echo_agent) -> None:
    empty = isolated_env / "empty"
    empty.mkdir()

    result = CliRunner().invoke(context42, ["-i", str(empty)])

    assert result.exit_code == 1
    assert "No source files found" in result.output


def test_default_agent_requires_api_key(isolated_env, monkeypatch) -> None:
    monkeypatch.delenv("CONTEXT42_COMMAND_TEMPLATE", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    project = _project(isolated_env / "project")

    result = CliRunner().invoke(context42, ["-i", str(project)])

    assert result.exit_code == 1
    assert "GEMINI_API_KEY environment variable is not set" in result.output


def test_concurrency_must_be_positive(isolated_env) -> None:
    result = CliRunner().invoke(context42, ["-c", "0"])

    assert result.exit_code == 2


def test_version_option() -> None:
    result = CliRunner().invoke(context42, ["--version"])

    assert result.exit_code == 0
    assert f"context42, version {__version__}" in result.output


def test_controller_reports_failures_and_resume_hint(isolated_env, echo_agent) -> None:
    project = _project(isolated_env / "project")
    scripts_dir = (project / "scripts").resolve().as_posix()
    generator = FakeGenerator(failing=frozenset({scripts_dir}))
    emitted: list[str] = []
    controller = Context42CliController(
        emit=emitted.append,
        generator_factory=lambda _settings: generator,
    )

    lines = controller.generate(
        GenerateCommand(
            input_dir=project,
            output_dir=isolated_env / "guides",
            run_id="resume-me",
            debug=True,
        ),
    )

    assert lines[0] == "Run resume-me: units=3 succeeded=2 failed=1 cancelled=no"
    assert f"  failed py:{scripts_dir}: Agent command failed: {scripts_dir}" in lines
    assert lines[-1] == "Resume with: context42 --run resume-me"
    assert any(line.startswith("[worker 1] failed py ") for line in emitted)
    assert "Progress: 4/4 files" in emitted


def test_concurrency_is_capped_at_file_count(isolated_env, echo_agent) -> None:
    project = isolated_env / "single"
    project.mkdir()
    (project / "only.py").write_text("pass\n", "utf-8")
    emitted: list[str] = []
    controller = Context42CliController(
        emit=emitted.append,
        generator_factory=lambda _settings: FakeGenerator(),
    )

    lines = controller.generate(
        GenerateCommand(input_dir=project, output_dir=isolated_env / "guides", concurrency=8),
    )

    assert lines[1] == f"  py: {(isolated_env / 'guides').resolve() / 'py.md'}"
    assert not any(line.startswith("[worker 2]") for line in emitted)


def test_output_directory_inside_input_is_not_analyzed(isolated_env, echo_agent) -> None:
    project = _project(isolated_env / "project")
    (project / "context42").mkdir()
    (project / "context42" / "ts.md").write_text("# old guide\n", "utf-8")
    controller = Context42CliController(generator_factory=lambda _settings: FakeGenerator())

    lines = controller.generate(
        GenerateCommand(input_dir=project, output_dir=project / "context42"),
    )

    assert lines[0].endswith("units=3 succeeded=3 failed=0 cancelled=no")


def test_reporter_logs_queue_counts_and_drain(caplog) -> None:
    reporter = ConsoleReporter(lambda _line: None, total_files=1)
    task = QueuedTask(id="py:/pkg", language="py", directory="/pkg", status=QueuedTaskStatus.READY)

    with caplog.at_level("DEBUG", logger="context42.controllers"):
        reporter.on_queue_update(QueueSnapshot(ready=(task,)))
        reporter.on_queue_update(QueueSnapshot())

    assert [record.getMessage() for record in caplog.records] == [
        "Queue: ready=1 waiting=0",
        "Queue drained",
    ]
