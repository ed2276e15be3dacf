from __future__ import annotations

import io
import threading
import time
from pathlib import Path

import allure
import pytest
from conftest import ECHO_AGENT_COMMAND_TEMPLATE

from context42.config import GeneratorSettings
from context42.generator import echo_agent as echo_agent_module
from context42.generator.base import GenerateRequest, GenerationCancelled, GenerationError
from context42.generator.cli_backend import (
    RATE_LIMIT_MESSAGE,
    CliStyleGuideGenerator,
    _build_run_args,
)

pytestmark = [
    allure.epic("Generation"),
    allure.feature("Agent Subprocess"),
]


def _generator(extra_args: str = "", **overrides) -> CliStyleGuideGenerator:
    options = {
        "command_template": f"{ECHO_AGENT_COMMAND_TEMPLATE} {extra_args}".strip(),
        "model": "test-model",
        "timeout_seconds": 30,
        "max_attempts": 3,
        "retry_base_seconds": 0.0,
        "graceful_shutdown_seconds": 1,
    }
    options.update(overrides)
    return CliStyleGuideGenerator(**options)


def _request(tmp_path: Path, **overrides) -> GenerateRequest:
    source_dir = tmp_path / "src"
    source_dir.mkdir(exist_ok=True)
    files = []
    for name in ("index.ts", "util.ts"):
        path = source_dir / name
        path.write_text("export {}\n", "utf-8")
        files.append(path.as_posix())
    options = {"language": "ts", "files": tuple(files)}
    options.update(overrides)
    return GenerateRequest(**options)


def test_echo_agent_writes_guide_and_reports_progress(tmp_path, echo_agent) -> None:
    messages: list[str] = []
    request = _request(
        tmp_path,
        child_artifacts={"components": "# child"},
        on_progress=messages.append,
    )

    artifact = _generator().generate(request)

    assert artifact == tmp_path / "src" / "style.ts.md"
    content = artifact.read_text("utf-8")
    assert content.startswith("---\ndescription: ts Style Guide\n")
    assert "Placeholder guide for 2 ts file(s) in src." in content
    assert "Synthesized from: components" in content
    assert messages == ["Analyzing ts files", "Writing style.ts.md", "Done"]


def test_artifact_path_is_in_common_directory(tmp_path) -> None:
    request = _request(tmp_path)

    assert _generator().artifact_path(request) == tmp_path / "src" / "style.ts.md"


def test_empty_file_list_is_rejected(tmp_path) -> None:
    with pytest.raises(GenerationError, match="No ts files found to analyze"):
        _generator().generate(GenerateRequest(language="ts", files=()))


def test_successful_exit_without_artifact_fails(tmp_path, echo_agent) -> None:
    with pytest.raises(GenerationError, match="without writing style.ts.md"):
        _generator("--no-write").generate(_request(tmp_path))


def test_rate_limit_is_retried_then_reported(tmp_path, echo_agent) -> None:
    messages: list[str] = []

    with pytest.raises(GenerationError) as error:
        _generator(
            "--exit-code 1 --stderr 'rate limit exceeded'",
            max_attempts=2,
        ).generate(_request(tmp_path, on_progress=messages.append))

    assert str(error.value) == RATE_LIMIT_MESSAGE
    assert messages == ["Analyzing ts files", "Analyzing ts files"]


def test_non_retryable_failure_is_not_retried(tmp_path, echo_agent) -> None:
    messages: list[str] = []

    with pytest.raises(GenerationError, match="Agent command failed: SyntaxError"):
        _generator("--exit-code 2 --stderr SyntaxError").generate(
            _request(tmp_path, on_progress=messages.append),
        )

    assert messages == ["Analyzing ts files"]


def test_cancellation_terminates_the_agent(tmp_path, echo_agent) -> None:
    cancel_event = threading.Event()
    timer = threading.Timer(0.5, cancel_event.set)
    timer.start()
    started = time.monotonic()

    try:
        with pytest.raises(GenerationCancelled, match="Operation cancelled"):
            _generator("--sleep 30").generate(_request(tmp_path, cancel_event=cancel_event))
    finally:
        timer.cancel()

    assert time.monotonic() - started < 15
    assert not (tmp_path / "src" / "style.ts.md").exists()


def test_already_cancelled_request_does_not_start_the_agent(tmp_path) -> None:
    cancel_event = threading.Event()
    cancel_event.set()
    generator = _generator(command_template="definitely-not-an-agent-binary")

    with pytest.raises(GenerationCancelled):
        generator.generate(_request(tmp_path, cancel_event=cancel_event))


def test_timeout_is_reported_after_last_attempt(tmp_path, echo_agent) -> None:
    with pytest.raises(GenerationError, match="Agent timed out after 1s"):
        _generator("--sleep 30", timeout_seconds=1, max_attempts=1).generate(_request(tmp_path))


def test_missing_binary_is_reported(tmp_path) -> None:
    generator = _generator(command_template="definitely-not-an-agent-binary {model}")

    with pytest.raises(GenerationError, match="Agent command not found"):
        generator.generate(_request(tmp_path))


def test_build_run_args_quotes_placeholder_values() -> None:
    run_args, command_head = _build_run_args(
        command_template="gemini --yolo -m {model} --prompt-file {prompt_file}",
        model="model with space",
        prompt_file=Path("/tmp/my prompt.txt"),
    )

    assert command_head == "gemini"
    assert run_args == [
        "gemini",
        "--yolo",
        "-m",
        "model with space",
        "--prompt-file",
        "/tmp/my prompt.txt",
    ]


def test_build_run_args_rejects_unknown_placeholder() -> None:
    with pytest.raises(GenerationError, match="Unsupported command template placeholder"):
        _build_run_args(
            command_template="agent {task_manifest}",
            model="m",
            prompt_file=Path("p.txt"),
        )


def test_from_settings_copies_generator_settings() -> None:
    generator = CliStyleGuideGenerator.from_settings(
        GeneratorSettings(model="gemini-2.5-pro", max_attempts=5, timeout_seconds=60),
    )

    assert generator.model == "gemini-2.5-pro"
    assert generator.max_attempts == 5
    assert generator.timeout_seconds == 60


def test_echo_agent_requires_language(monkeypatch, tmp_path, capsys) -> None:
    monkeypatch.delenv("CONTEXT42_LANGUAGE", raising=False)
    monkeypatch.setattr("sys.stdin", io.StringIO("prompt"))
    monkeypatch.chdir(tmp_path)

    assert echo_agent_module.main([]) == 2
    assert "No language given" in capsys.readouterr().err
    assert list(tmp_path.iterdir()) == []


def test_echo_agent_writes_in_current_directory(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("CONTEXT42_CHILD_DIRECTORIES", "lib,util")
    monkeypatch.setattr("sys.stdin", io.StringIO("File count: 3\n"))
    monkeypatch.chdir(tmp_path)

    assert echo_agent_module.main(["--language", "py"]) == 0

    content = (tmp_path / "style.py.md").read_text("utf-8")
    assert "Placeholder guide for 3 py file(s)" in content
    assert "Synthesized from: lib, util" in content
