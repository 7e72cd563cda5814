"""State backends — read and write the whole schedule state as one blob.

- ``JsonFileBackend``: a JSON document on disk, written via temp file + rename.
- ``SqliteBackend``: a single-row aiosqlite table holding the same JSON.

Both raise ``PersistenceFailure`` on I/O or decode errors.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import aiosqlite

from cadence.config import settings
from cadence.errors import PersistenceFailure
from cadence.scheduler.models import ScheduleState

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


@runtime_checkable
class StateBackend(Protocol):
    """Persistence contract the store is written against."""

    async def read(self) -> dict[str, Any]:
        """Return the persisted state blob (an empty state if none exists)."""
        ...

    async def write(self, blob: dict[str, Any]) -> None:
        """Persist the state blob. Raises PersistenceFailure."""
        ...


def _empty_state() -> dict[str, Any]:
    return ScheduleState().to_dict()


class JsonFileBackend:
    """Stores the state as pretty-printed JSON at *path*."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or settings.data_path

    @property
    def path(self) -> Path:
        return self._path

    def _read_sync(self) -> dict[str, Any]:
        if not self._path.exists():
            logger.info("Creating new schedules file at %s", self._path)
            blob = _empty_state()
            self._write_sync(blob)
            return blob
        return json.loads(self._path.read_text(encoding="utf-8"))

    def _write_sync(self, blob: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(blob, indent=2), encoding="utf-8")
        os.replace(tmp, self._path)

    async def read(self) -> dict[str, Any]:
        try:
            return await asyncio.to_thread(self._read_sync)
        except (OSError, ValueError) as exc:
            logger.exception("Failed to read schedules file %s", self._path)
            msg = f"Could not read schedule state: {exc}"
            raise PersistenceFailure(msg) from exc

    async def write(self, blob: dict[str, Any]) -> None:
        try:
            await asyncio.to_thread(self._write_sync, blob)
        except (OSError, TypeError, ValueError) as exc:
            logger.exception("Failed to write schedules file %s", self._path)
            msg = f"Could not save schedule state: {exc}"
            raise PersistenceFailure(msg) from exc


_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS schedule_state (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    blob TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
)
"""


class SqliteBackend:
    """Stores the state blob in SQLite.

    Pass an explicit *db_path* for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path))
        if not self._initialised:
            await db.execute(_CREATE_TABLE)
            await db.commit()
            self._initialised = True
        return db

    async def read(self) -> dict[str, Any]:
        try:
            db = await self._connect()
            try:
                cursor = await db.execute("SELECT blob FROM schedule_state WHERE id = 1")
                row = await cursor.fetchone()
            finally:
                await db.close()
            return json.loads(row[0]) if row else _empty_state()
        except (aiosqlite.Error, OSError, ValueError) as exc:
            logger.exception("Failed to read schedule state from %s", self._db_path)
            msg = f"Could not read schedule state: {exc}"
            raise PersistenceFailure(msg) from exc

    async def write(self, blob: dict[str, Any]) -> None:
        try:
            payload = json.dumps(blob)
            db = await self._connect()
            try:
                await db.execute(
                    """
                    INSERT INTO schedule_state (id, blob, updated_at)
                    VALUES (1, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(id) DO UPDATE SET
                        blob = excluded.blob,
                        updated_at = excluded.updated_at
                    """,
                    (payload,),
                )
                await db.commit()
            finally:
                await db.close()
        except (aiosqlite.Error, OSError, TypeError, ValueError) as exc:
            logger.exception("Failed to write schedule state to %s", self._db_path)
            msg = f"Could not save schedule state: {exc}"
            raise PersistenceFailure(msg) from exc


def create_backend(kind: str | None = None) -> StateBackend:
    """Build the backend named by *kind* (defaults to ``settings.storage_backend``)."""
    kind = (kind or settings.storage_backend).lower()
    if kind == "sqlite":
        return SqliteBackend()
    if kind == "json":
        return JsonFileBackend()
    msg = f"Unknown storage backend: {kind}"
    raise ValueError(msg)
