"""Runtime configuration for discovery, generation and scheduling."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_COMMAND_TEMPLATE = "npx @google/gemini-cli --yolo -m {model} -a"
DEFAULT_MAX_FILE_BYTES = 1024 * 1024


@dataclass(slots=True)
class GeneratorSettings:
    """External agent invocation settings."""

    model: str = DEFAULT_MODEL
    command_template: str = DEFAULT_COMMAND_TEMPLATE
    timeout_seconds: int = 1_800
    max_attempts: int = 3
    retry_base_seconds: float = 2.0
    graceful_shutdown_seconds: int = 5
    api_key: str | None = None


@dataclass(slots=True)
class SchedulerSettings:
    """Worker pool settings."""

    concurrency: int = 4


@dataclass(slots=True)
class ExplorerSettings:
    """Source tree discovery settings."""

    ignore: tuple[str, ...] = ()
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = field(default_factory=lambda: Path.home() / ".context42" / "data.db")
    output_dir: Path = Path("context42")
    generator: GeneratorSettings = field(default_factory=GeneratorSettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    explorer: ExplorerSettings = field(default_factory=ExplorerSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with defaults for local use."""

        default_db = Path.home() / ".context42" / "data.db"
        return cls(
            db_path=db_path or Path(os.getenv("CONTEXT42_DB_PATH", str(default_db))).expanduser(),
            output_dir=Path(os.getenv("CONTEXT42_OUTPUT_DIR", "context42")),
            generator=GeneratorSettings(
                model=os.getenv("CONTEXT42_MODEL", DEFAULT_MODEL),
                command_template=os.getenv(
                    "CONTEXT42_COMMAND_TEMPLATE",
                    DEFAULT_COMMAND_TEMPLATE,
                ),
                timeout_seconds=_env_int("CONTEXT42_TIMEOUT_SECONDS", 1_800),
                max_attempts=_env_int("CONTEXT42_MAX_ATTEMPTS", 3),
                retry_base_seconds=_env_float("CONTEXT42_RETRY_BASE_SECONDS", 2.0),
                graceful_shutdown_seconds=_env_int("CONTEXT42_GRACEFUL_SHUTDOWN_SECONDS", 5),
                api_key=os.getenv("GEMINI_API_KEY") or None,
            ),
            scheduler=SchedulerSettings(
                concurrency=_env_int("CONTEXT42_CONCURRENCY", 4),
            ),
            explorer=ExplorerSettings(
                ignore=_env_csv("CONTEXT42_IGNORE"),
                max_file_bytes=_env_int("CONTEXT42_MAX_FILE_BYTES", DEFAULT_MAX_FILE_BYTES),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for values the run cannot work with."""

        if not self.generator.model.strip():
            raise ValueError("CONTEXT42_MODEL must not be empty.")
        if not self.generator.command_template.strip():
            raise ValueError("CONTEXT42_COMMAND_TEMPLATE must not be empty.")
        uses_gemini = self.generator.command_template == DEFAULT_COMMAND_TEMPLATE
        if uses_gemini and not self.generator.api_key:
            raise ValueError(
                "GEMINI_API_KEY environment variable is not set. "
                "Export it or point CONTEXT42_COMMAND_TEMPLATE at another agent.",
            )
        if self.generator.timeout_seconds <= 0:
            raise ValueError("CONTEXT42_TIMEOUT_SECONDS must be > 0.")
        if self.generator.max_attempts < 1:
            raise ValueError("CONTEXT42_MAX_ATTEMPTS must be >= 1.")
        if self.generator.retry_base_seconds < 0:
            raise ValueError("CONTEXT42_RETRY_BASE_SECONDS must be >= 0.")
        if self.generator.graceful_shutdown_seconds < 0:
            raise ValueError("CONTEXT42_GRACEFUL_SHUTDOWN_SECONDS must be >= 0.")
        if self.scheduler.concurrency < 1:
            raise ValueError("CONTEXT42_CONCURRENCY must be >= 1.")
        if self.explorer.max_file_bytes <= 0:
            raise ValueError("CONTEXT42_MAX_FILE_BYTES must be a positive integer.")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid number value for {name}: {value!r}") from error


def _env_csv(name: str) -> tuple[str, ...]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return ()
    deduped: list[str] = []
    for part in raw.split(","):
        normalized = part.strip()
        if normalized and normalized not in deduped:
            deduped.append(normalized)
    return tuple(deduped)
