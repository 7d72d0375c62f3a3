"""
Question Storage
================
Persistence collaborators for the question bank.

Every store exposes the same two calls:
    load() -> list[Question]   never raises; missing or unreadable data
                               yields an empty list (logged)
    save(questions)            raises PersistenceError on failure

Backends:
    JsonFileStore   single JSON array file, written atomically
    SqliteStore     one row per question, ordered by position
    MemoryStore     in-process list
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

from pydantic import ValidationError

from .models import Question

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """A store could not write (or read) the bank."""


def questions_from_records(records: Iterable[Any]) -> list[Question]:
    """
    Validate raw records into Questions.
    Invalid records are skipped with a warning; order is preserved.
    """
    questions: list[Question] = []
    for index, record in enumerate(records):
        try:
            questions.append(Question.model_validate(record))
        except ValidationError as e:
            logger.warning(
                f"Skipping invalid stored question at index {index}: "
                f"{e.error_count()} error(s)"
            )
    return questions


class QuestionStore:
    """Base class for bank persistence."""

    def load(self) -> list[Question]:
        raise NotImplementedError

    def save(self, questions: Sequence[Question]) -> None:
        raise NotImplementedError


# ─── In-Memory ────────────────────────────────────────────────────────────────


class MemoryStore(QuestionStore):
    """Keeps the last saved sequence in memory."""

    def __init__(self, questions: Optional[Iterable[Question]] = None):
        self._questions: list[Question] = list(questions or [])
        self.save_count = 0

    def load(self) -> list[Question]:
        return list(self._questions)

    def save(self, questions: Sequence[Question]) -> None:
        self._questions = list(questions)
        self.save_count += 1


# ─── JSON File ────────────────────────────────────────────────────────────────


class JsonFileStore(QuestionStore):
    """
    Stores the bank as a JSON array of camelCase question objects.
    Writes go to a temp file in the same directory and are swapped in
    with os.replace, so a failed write never truncates the last save.
    """

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)

    def load(self) -> list[Question]:
        if not self.path.exists():
            logger.info(f"No bank file at {self.path}, starting empty")
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load bank from {self.path}: {e}")
            return []

        if not isinstance(data, list):
            logger.warning(
                f"Bank file {self.path} does not hold a list, ignoring it"
            )
            return []

        questions = questions_from_records(data)
        logger.info(f"Loaded {len(questions)} question(s) from {self.path}")
        return questions

    def save(self, questions: Sequence[Question]) -> None:
        tmp_name = None
        try:
            payload = [q.to_json() for q in questions]
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", dir=self.path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except (OSError, ValueError) as e:
            raise PersistenceError(
                f"Failed to save bank to {self.path}: {e}"
            ) from e
        finally:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)

        logger.debug(f"Saved {len(payload)} question(s) to {self.path}")


# ─── SQLite ───────────────────────────────────────────────────────────────────


class SqliteStore(QuestionStore):
    """
    Stores one row per question. `position` carries insertion order;
    `data` holds the same JSON object the file store writes.
    """

    def __init__(self, db_path: str | os.PathLike):
        self.db_path = str(db_path)

    @contextmanager
    def _connection(self):
        """
        Context manager for database connections.
        Commits on success, rolls back on error, always closes.
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self, conn: sqlite3.Connection):
        conn.execute("""
            CREATE TABLE IF NOT EXISTS questions (
                position INTEGER PRIMARY KEY,
                id       TEXT NOT NULL,
                data     TEXT NOT NULL
            )
        """)

    def _has_table(self, conn: sqlite3.Connection) -> bool:
        row = conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'questions'"
        ).fetchone()
        return row is not None

    def load(self) -> list[Question]:
        if not os.path.exists(self.db_path):
            logger.info(f"No bank database at {self.db_path}, starting empty")
            return []

        try:
            with self._connection() as conn:
                if not self._has_table(conn):
                    logger.info(
                        f"No questions table in {self.db_path}, starting empty"
                    )
                    return []
                rows = conn.execute(
                    "SELECT data FROM questions ORDER BY position"
                ).fetchall()
        except sqlite3.Error as e:
            logger.warning(f"Failed to load bank from {self.db_path}: {e}")
            return []

        records = []
        for row in rows:
            try:
                records.append(json.loads(row["data"]))
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping unreadable stored question: {e}")

        questions = questions_from_records(records)
        logger.info(f"Loaded {len(questions)} question(s) from {self.db_path}")
        return questions

    def save(self, questions: Sequence[Question]) -> None:
        try:
            rows = [
                (position, q.id, json.dumps(q.to_json(), ensure_ascii=False))
                for position, q in enumerate(questions)
            ]
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            with self._connection() as conn:
                self._init_schema(conn)
                conn.execute("DELETE FROM questions")
                conn.executemany(
                    "INSERT INTO questions (position, id, data) VALUES (?, ?, ?)",
                    rows,
                )
        except (sqlite3.Error, OSError, ValueError) as e:
            raise PersistenceError(
                f"Failed to save bank to {self.db_path}: {e}"
            ) from e

        logger.debug(f"Saved {len(rows)} question(s) to {self.db_path}")


def open_store(path: str | os.PathLike, backend: str = "json") -> QuestionStore:
    """Build a store for the given backend name."""
    if backend == "json":
        return JsonFileStore(path)
    if backend == "sqlite":
        return SqliteStore(path)
    raise ValueError(f"Unknown storage backend: {backend!r}")
