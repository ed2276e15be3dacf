"""Run-scoped tracking of generated style guide files."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType

logger = logging.getLogger(__name__)

OUTPUT_EXTENSION = "md"


@dataclass(frozen=True, slots=True)
class _Candidate:
    language: str
    path: Path
    rank: tuple[int, int]


class ArtifactLifecycle:
    """Promotes one artifact per language and deletes everything else.

    Use as a context manager around a run: every tracked path still present
    when the block exits is deleted, whatever the exit reason.
    """

    def __init__(self, output_dir: Path, *, extension: str = OUTPUT_EXTENSION) -> None:
        self.output_dir = output_dir
        self.extension = extension
        self._tracked: set[Path] = set()
        self._candidates: dict[str, list[_Candidate]] = {}

    def __enter__(self) -> ArtifactLifecycle:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.cleanup()

    @property
    def tracked(self) -> frozenset[Path]:
        return frozenset(self._tracked)

    def register(self, language: str, path: Path, rank: tuple[int, int]) -> None:
        """Track a successfully produced artifact as a promotion candidate."""

        self._tracked.add(path)
        self._candidates.setdefault(language, []).append(
            _Candidate(language=language, path=path, rank=rank),
        )

    def discard(self, path: Path) -> None:
        """Track a leftover file that must never be promoted."""

        self._tracked.add(path)

    def output_name(self, language: str) -> str:
        return f"{language}.{self.extension}"

    def promote(self) -> dict[str, str]:
        """Move the topologically last artifact per language into the output dir."""

        promoted: dict[str, str] = {}
        for language, candidates in self._candidates.items():
            winner = max(candidates, key=lambda candidate: candidate.rank)
            target_name = self.output_name(language)
            try:
                self.output_dir.mkdir(parents=True, exist_ok=True)
                winner.path.rename(self.output_dir / target_name)
            except OSError as error:
                logger.warning("Failed to move %s style guide: %s", language, error)
            else:
                self._tracked.discard(winner.path)
                promoted[language] = target_name
            for candidate in candidates:
                if candidate.path in self._tracked:
                    self._delete(candidate.path)
        self._candidates.clear()
        return promoted

    def cleanup(self) -> None:
        """Delete every tracked artifact that was not promoted."""

        for path in sorted(self._tracked):
            self._delete(path)
        self._candidates.clear()

    def _delete(self, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as error:
            logger.warning("Failed to clean up %s: %s", path, error)
        self._tracked.discard(path)
