"""SQLite persistence for per-directory style guides of one run."""

from __future__ import annotations

import logging
import posixpath
import threading
import uuid
from collections.abc import Iterable
from pathlib import Path

from sqlmodel import Session, SQLModel, col, select

from context42.scheduler.graph import is_descendant
from context42.scheduler.models import normalize_directory
from context42.storage.common import IN_MEMORY, build_sqlite_engine, utc_now
from context42.storage.sqlmodel_models import StyleGuideRecord

logger = logging.getLogger(__name__)


class StyleGuideRepository:
    """Facade that stores style guides keyed by (run, language, directory).

    The scheduler calls ``save_result`` and ``get_child_artifacts`` from pool
    threads, so every session is serialized behind one lock.
    """

    def __init__(
        self,
        db_path: Path | str,
        *,
        run_id: str | None = None,
        busy_timeout_ms: int = 5_000,
    ) -> None:
        self.db_path = db_path
        self.run_id = run_id or str(uuid.uuid4())
        if str(db_path) != IN_MEMORY:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)
        self._lock = threading.Lock()

    def close(self) -> None:
        self.engine.dispose()

    def init_schema(self) -> None:
        SQLModel.metadata.create_all(self.engine, tables=[StyleGuideRecord.__table__])

    def save_result(self, language: str, content: str, directory: str) -> None:
        """Insert or replace the guide for ``(language, directory)`` in this run."""

        directory = normalize_directory(directory)
        now = utc_now()
        with self._lock, Session(self.engine) as session:
            record = session.exec(
                select(StyleGuideRecord).where(
                    StyleGuideRecord.run_id == self.run_id,
                    StyleGuideRecord.language == language,
                    StyleGuideRecord.directory == directory,
                ),
            ).one_or_none()
            if record is None:
                record = StyleGuideRecord(
                    run_id=self.run_id,
                    language=language,
                    directory=directory,
                    content=content,
                    created_at=now,
                    updated_at=now,
                )
            else:
                record.content = content
                record.updated_at = now
            session.add(record)
            session.commit()
        logger.debug("Saved %s style guide for %s (run %s)", language, directory, self.run_id)

    def get_result(self, language: str, directory: str) -> str | None:
        with self._lock, Session(self.engine) as session:
            record = session.exec(
                select(StyleGuideRecord).where(
                    StyleGuideRecord.run_id == self.run_id,
                    StyleGuideRecord.language == language,
                    StyleGuideRecord.directory == normalize_directory(directory),
                ),
            ).one_or_none()
            return None if record is None else record.content

    def get_child_artifacts(
        self,
        directory: str,
        language: str,
        *,
        children: Iterable[str] | None = None,
    ) -> dict[str, str]:
        """Guides of the immediate children of ``directory``, keyed by relative directory.

        Without ``children`` only guides one path segment below ``directory``
        count. The scheduler passes the unit's graph children instead, so a
        child unit sitting deeper than one segment is still found while the
        guide of a grandchild is never returned in place of a failed child.
        """

        parent = normalize_directory(directory)
        wanted = None if children is None else {normalize_directory(child) for child in children}
        with self._lock, Session(self.engine) as session:
            statement = select(StyleGuideRecord).where(
                StyleGuideRecord.run_id == self.run_id,
                StyleGuideRecord.language == language,
            )
            if parent not in {".", "/"}:
                statement = statement.where(
                    col(StyleGuideRecord.directory).startswith(f"{parent}/", autoescape=True),
                )
            records = [
                (record.directory, record.content)
                for record in session.exec(statement).all()
                if is_descendant(record.directory, parent)
            ]

        result: dict[str, str] = {}
        for child, content in records:
            relative = _relative_directory(child, parent)
            if wanted is None and "/" in relative:
                continue
            if wanted is not None and child not in wanted:
                continue
            result[relative] = content
        return result


def _relative_directory(child: str, parent: str) -> str:
    if parent == "/":
        return child.lstrip("/")
    return posixpath.relpath(child, parent)
