"""SQLite connection handling, schema migration and container storage."""

from __future__ import annotations

import logging
from urllib.parse import parse_qs, quote

import aiosqlite

from .config import Config
from .models import ContainerRecord

logger = logging.getLogger(__name__)

_CREATE_CONTAINERS_TABLE = """
CREATE TABLE IF NOT EXISTS containers (
    id TEXT PRIMARY KEY NOT NULL,
    name TEXT NOT NULL,
    image TEXT NOT NULL,
    status TEXT NOT NULL,
    docker_id TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

_COLUMNS = ("id", "name", "image", "status", "docker_id", "created_at", "updated_at")
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM containers"
_MODES = {"ro", "rw", "rwc", "memory"}
_URL_PREFIXES = ("sqlite://", "sqlite:")


class RecordNotFoundError(LookupError):
    """Raised when a container row to update does not exist."""


def _split_url(database_url: str) -> tuple[str, str]:
    for prefix in _URL_PREFIXES:
        if database_url.startswith(prefix):
            path, _, query = database_url[len(prefix):].partition("?")
            if not path:
                raise ValueError(f"no database path in URL: {database_url}")
            return path, query
    raise ValueError(f"unsupported database URL: {database_url}")


def sqlite_path_from_url(database_url: str) -> str:
    """Return the file path (or ``:memory:``) named by a ``sqlite:`` URL."""
    return _split_url(database_url)[0]


def _sqlite_mode(database_url: str) -> str:
    _, query = _split_url(database_url)
    modes = parse_qs(query).get("mode", ["rw"])
    mode = modes[-1]
    if mode not in _MODES:
        raise ValueError(f"unsupported sqlite mode: {mode}")
    return mode


async def establish_connection(config: Config) -> aiosqlite.Connection:
    """Open the database named by ``config.database_url``."""
    logger.info("Connecting to database: %s", config.database_url)
    path = sqlite_path_from_url(config.database_url)
    mode = _sqlite_mode(config.database_url)
    if path == ":memory:" or mode == "memory":
        db = await aiosqlite.connect(":memory:")
    else:
        db = await aiosqlite.connect(f"file:{quote(path)}?mode={mode}", uri=True)
    logger.info("Database connection established successfully")
    return db


async def run_migrations(db: aiosqlite.Connection) -> None:
    """Create the schema if it does not exist yet."""
    logger.info("Running database migrations...")
    await db.execute(_CREATE_CONTAINERS_TABLE)
    await db.commit()
    logger.info("Database migrations completed successfully")


def _to_record(row) -> ContainerRecord:
    return ContainerRecord(**dict(zip(_COLUMNS, row)))


class ContainerRepository:
    """Reads and writes rows of the ``containers`` table."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def insert(self, record: ContainerRecord) -> None:
        placeholders = ", ".join("?" for _ in _COLUMNS)
        await self._db.execute(
            f"INSERT INTO containers ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
            tuple(getattr(record, column) for column in _COLUMNS),
        )
        await self._db.commit()

    async def list_all(self) -> list[ContainerRecord]:
        async with self._db.execute(_SELECT) as cursor:
            rows = await cursor.fetchall()
        return [_to_record(row) for row in rows]

    async def get(self, container_id: str) -> ContainerRecord | None:
        async with self._db.execute(f"{_SELECT} WHERE id = ?", (container_id,)) as cursor:
            row = await cursor.fetchone()
        return None if row is None else _to_record(row)

    async def update(self, record: ContainerRecord) -> ContainerRecord:
        """Write every column of ``record``; raise if no row has its id."""
        fields = _COLUMNS[1:]
        assignments = ", ".join(f"{column} = ?" for column in fields)
        params = tuple(getattr(record, column) for column in fields) + (record.id,)
        async with self._db.execute(
            f"UPDATE containers SET {assignments} WHERE id = ?", params
        ) as cursor:
            changed = cursor.rowcount
        if changed == 0:
            raise RecordNotFoundError(f"container not found: {record.id}")
        await self._db.commit()
        return record

    async def delete(self, container_id: str) -> int:
        """Delete a row by id and return the number of rows removed."""
        async with self._db.execute(
            "DELETE FROM containers WHERE id = ?", (container_id,)
        ) as cursor:
            removed = cursor.rowcount
        await self._db.commit()
        return removed