"""
Storage backends — the key/value area persisted stores write into.

Values are JSON-compatible structures. SqliteStorage keeps them in a single
table so state survives a process restart; MemoryStorage keeps them in a dict
(tests, or hosts that supply their own durability).

Usage:
    backend = SqliteStorage(Path("castbridge_state.db"))
    await backend.start()
    await backend.set("connectionState", {...})
    data = await backend.get("connectionState")
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import aiosqlite

import castbridge.core.config as config_module

logger = logging.getLogger(__name__)


class StorageBackend(ABC):
    """Async key/value storage. Missing keys read as None."""

    async def start(self) -> None:
        """Open resources. Default: nothing to open."""

    async def stop(self) -> None:
        """Release resources. Default: nothing to release."""

    @abstractmethod
    async def get(self, key: str) -> Any | None: ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> None: ...

    @abstractmethod
    async def remove(self, key: str) -> None: ...


class MemoryStorage(StorageBackend):
    """Dict-backed storage. Values are round-tripped through JSON on write."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, str] = {}
        for key, value in (initial or {}).items():
            self._data[key] = json.dumps(value)

    async def get(self, key: str) -> Any | None:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class SqliteStorage(StorageBackend):
    """
    SQLite-backed key/value storage via aiosqlite.

    One table: state(key TEXT PRIMARY KEY, value TEXT, updated_at REAL).
    Single writer (this process), WAL journal.
    """

    def __init__(self, db_path: Path | None = None):
        if db_path is None:
            db_path = Path(config_module.config.persistence.db_path)
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def start(self) -> None:
        """Open the database and create the table."""
        self._db = await aiosqlite.connect(str(self.db_path))
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS state (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at REAL NOT NULL
            )
        """)
        await self._db.commit()
        logger.info("SqliteStorage started (db=%s)", self.db_path)

    async def stop(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    async def get(self, key: str) -> Any | None:
        assert self._db is not None, "SqliteStorage not started"

        async with self._db.execute(
            "SELECT value FROM state WHERE key = ?", (key,)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return json.loads(row[0])

    async def set(self, key: str, value: Any) -> None:
        assert self._db is not None, "SqliteStorage not started"

        await self._db.execute(
            "INSERT OR REPLACE INTO state (key, value, updated_at) VALUES (?, ?, ?)",
            (key, json.dumps(value), time.time()),
        )
        await self._db.commit()

    async def remove(self, key: str) -> None:
        assert self._db is not None, "SqliteStorage not started"

        await self._db.execute("DELETE FROM state WHERE key = ?", (key,))
        await self._db.commit()
