"""Subprocess-based style guide generator driving an external CLI agent."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import tempfile
import threading
import time
from collections import deque
from dataclasses import dataclass
from pathlib import Path

from context42.config import GeneratorSettings
from context42.generator.base import (
    GenerateRequest,
    GenerationCancelled,
    GenerationError,
    common_directory,
    style_guide_filename,
)
from context42.generator.failure_classifier import (
    FailureClass,
    GenerationFailure,
    classify_generation_failure,
)
from context42.generator.prompts import build_style_guide_prompt, parse_progress_line

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = (
    "Gemini API rate limit exceeded. Exponential backoff failed. Please wait and try again."
)
_OUTPUT_TAIL_LINES = 200
_SUPERVISE_INTERVAL_SECONDS = 0.1


@dataclass(slots=True)
class AgentRunResult:
    """Execution outcome of one agent attempt."""

    exit_code: int
    timed_out: bool
    cancelled: bool
    stdout_tail: str
    stderr: str


class CliStyleGuideGenerator:
    """Run the configured agent command in the unit's directory."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        command_template: str,
        model: str,
        timeout_seconds: int = 1800,
        max_attempts: int = 3,
        retry_base_seconds: float = 2.0,
        graceful_shutdown_seconds: int = 5,
        transient_exit_codes: tuple[int, ...] = (137, 143),
    ) -> None:
        self.command_template = command_template
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max(1, max_attempts)
        self.retry_base_seconds = retry_base_seconds
        self.graceful_shutdown_seconds = graceful_shutdown_seconds
        self.transient_exit_codes = transient_exit_codes

    @classmethod
    def from_settings(cls, settings: GeneratorSettings) -> CliStyleGuideGenerator:
        return cls(
            command_template=settings.command_template,
            model=settings.model,
            timeout_seconds=settings.timeout_seconds,
            max_attempts=settings.max_attempts,
            retry_base_seconds=settings.retry_base_seconds,
            graceful_shutdown_seconds=settings.graceful_shutdown_seconds,
        )

    def artifact_path(self, request: GenerateRequest) -> Path:
        return common_directory(request.files) / style_guide_filename(request.language)

    def generate(self, request: GenerateRequest) -> Path:
        if not request.files:
            raise GenerationError(f"No {request.language} files found to analyze")

        base_dir = common_directory(request.files)
        artifact = base_dir / style_guide_filename(request.language)
        prompt = build_style_guide_prompt(
            language=request.language,
            base_dir=base_dir,
            files=request.files,
            child_artifacts=request.child_artifacts,
        )

        for attempt in range(1, self.max_attempts + 1):
            if request.cancelled:
                raise GenerationCancelled()
            try:
                result = self._run_attempt(request=request, base_dir=base_dir, prompt=prompt)
            except GenerationError as error:
                if not error.transient or attempt >= self.max_attempts:
                    raise
                logger.warning("Agent start failed for %s: %s", base_dir, error)
                if _wait_cancelled(request, self._backoff(attempt)):
                    raise GenerationCancelled() from error
                continue
            if result.cancelled:
                raise GenerationCancelled()
            if not result.timed_out and result.exit_code == 0:
                if not artifact.exists():
                    raise GenerationError(
                        f"Agent finished without writing {artifact.name} in {base_dir}",
                    )
                return artifact

            failure = (
                GenerationFailure(
                    failure_class=FailureClass.TIMEOUT,
                    matched_rule="timeout",
                    matched_pattern=None,
                )
                if result.timed_out
                else classify_generation_failure(
                    exit_code=result.exit_code,
                    stdout=result.stdout_tail,
                    stderr=result.stderr,
                    transient_exit_codes=self.transient_exit_codes,
                )
            )
            if not failure.failure_class.retryable or attempt >= self.max_attempts:
                raise self._failure_error(result=result, failure=failure)

            delay = self._backoff(attempt)
            logger.warning(
                "Agent attempt %d/%d failed for %s (%s); retrying in %.1fs",
                attempt,
                self.max_attempts,
                base_dir,
                failure.matched_rule,
                delay,
            )
            if _wait_cancelled(request, delay):
                raise GenerationCancelled()

        raise GenerationError(f"Agent did not produce {artifact.name}")  # pragma: no cover

    def _backoff(self, attempt: int) -> float:
        return self.retry_base_seconds * (2 ** (attempt - 1))

    def _run_attempt(
        self,
        *,
        request: GenerateRequest,
        base_dir: Path,
        prompt: str,
    ) -> AgentRunResult:
        with tempfile.TemporaryDirectory(prefix="context42-") as scratch:
            scratch_dir = Path(scratch)
            prompt_file = scratch_dir / "prompt.txt"
            prompt_file.write_text(prompt, "utf-8")
            stderr_path = scratch_dir / "agent_stderr.log"
            run_args, command_head = _build_run_args(
                command_template=self.command_template,
                model=self.model,
                prompt_file=prompt_file,
            )
            env = os.environ.copy()
            env["CONTEXT42_LANGUAGE"] = request.language
            env["CONTEXT42_MODEL"] = self.model
            env["CONTEXT42_CHILD_DIRECTORIES"] = ",".join(sorted(request.child_artifacts))

            try:
                with (
                    prompt_file.open("r", encoding="utf-8") as stdin_handle,
                    stderr_path.open("w", encoding="utf-8") as stderr_handle,
                ):
                    process = subprocess.Popen(  # noqa: S603
                        run_args,
                        cwd=base_dir,
                        env=env,
                        stdin=stdin_handle,
                        stdout=subprocess.PIPE,
                        stderr=stderr_handle,
                        text=True,
                        encoding="utf-8",
                        errors="replace",
                    )
                    result = self._supervise(process=process, request=request)
            except FileNotFoundError as error:
                raise GenerationError(f"Agent command not found: {command_head}") from error
            except OSError as error:
                raise GenerationError(
                    f"Agent command failed to start: {error}",
                    transient=True,
                ) from error

            result.stderr = stderr_path.read_text("utf-8", errors="replace")
            return result

    def _supervise(
        self,
        *,
        process: subprocess.Popen[str],
        request: GenerateRequest,
    ) -> AgentRunResult:
        finished = threading.Event()
        flags = {"timed_out": False, "cancelled": False}

        def watch() -> None:
            started = time.monotonic()
            while not finished.wait(_SUPERVISE_INTERVAL_SECONDS):
                if request.cancelled:
                    flags["cancelled"] = True
                elif time.monotonic() - started >= self.timeout_seconds:
                    flags["timed_out"] = True
                else:
                    continue
                _terminate_process(process, grace_seconds=self.graceful_shutdown_seconds)
                return

        watcher = threading.Thread(target=watch, daemon=True, name="context42-agent-watch")
        watcher.start()
        tail: deque[str] = deque(maxlen=_OUTPUT_TAIL_LINES)
        try:
            if process.stdout is not None:
                for line in process.stdout:
                    tail.append(line)
                    message = parse_progress_line(line.strip())
                    if message is not None and request.on_progress is not None:
                        request.on_progress(message)
            exit_code = process.wait()
        finally:
            finished.set()
            watcher.join()
            if process.poll() is None:
                _terminate_process(process, grace_seconds=self.graceful_shutdown_seconds)

        return AgentRunResult(
            exit_code=exit_code,
            timed_out=flags["timed_out"],
            cancelled=flags["cancelled"] or request.cancelled,
            stdout_tail="".join(tail),
            stderr="",
        )

    def _failure_error(
        self,
        *,
        result: AgentRunResult,
        failure: GenerationFailure,
    ) -> GenerationError:
        if failure.failure_class == FailureClass.TIMEOUT:
            return GenerationError(f"Agent timed out after {self.timeout_seconds}s")
        if failure.failure_class == FailureClass.RATE_LIMITED:
            return GenerationError(RATE_LIMIT_MESSAGE)
        detail = result.stderr.strip() or f"exit code {result.exit_code}"
        return GenerationError(f"Agent command failed: {detail}")


def _build_run_args(
    *,
    command_template: str,
    model: str,
    prompt_file: Path,
) -> tuple[list[str], str]:
    stripped = command_template.strip()
    if not stripped:
        raise GenerationError("Agent command template is empty.")
    try:
        rendered = stripped.format(
            model=shlex.quote(model),
            prompt_file=shlex.quote(str(prompt_file)),
        )
    except (KeyError, IndexError) as error:
        raise GenerationError(f"Unsupported command template placeholder: {error}") from error

    argv = shlex.split(rendered)
    if not argv:
        raise GenerationError("Agent command template rendered empty command.")
    return argv, argv[0]


def _wait_cancelled(request: GenerateRequest, seconds: float) -> bool:
    if request.cancel_event is None:
        time.sleep(seconds)
        return False
    return request.cancel_event.wait(seconds)


def _terminate_process(process: subprocess.Popen[str], *, grace_seconds: int) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=max(1, grace_seconds))
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=2)
