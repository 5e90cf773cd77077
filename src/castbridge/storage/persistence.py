"""
Persistence Manager — registry of every persisted store.

The one place that knows restore order. Stores restore in registration
order, so a consumer that reads another store during its own restore (the
session registry enriching casts from the media cache) must be registered
after it.

Usage:
    manager = PersistenceManager(SqliteStorage())
    handle = manager.register(
        StoreConfig(key="connectionState", debounce_ms=300, serialize=lambda: ...),
        on_restore=apply_state,
    )
    await manager.restore_all()
    handle.schedule()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from castbridge.core.timers import AsyncioTimerFactory, TimerFactory
from castbridge.storage.backend import StorageBackend
from castbridge.storage.debounced import DebouncedStore, StoreConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _Entry:
    key: str
    store: DebouncedStore[Any]
    on_restore: Callable[[Any], None] | None


class PersistenceManager:
    """Registers stores, restores them in order, flushes them on demand."""

    def __init__(
        self,
        backend: StorageBackend,
        timers: TimerFactory | None = None,
    ) -> None:
        self._backend = backend
        self._timers = timers or AsyncioTimerFactory()
        # dicts keep insertion order, which is the restore order
        self._entries: dict[str, _Entry] = {}

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    def register(
        self,
        options: StoreConfig[T],
        on_restore: Callable[[T | None], None] | None = None,
    ) -> DebouncedStore[T]:
        """
        Register a store. Re-registering a key returns the existing handle.
        """
        existing = self._entries.get(options.key)
        if existing is not None:
            logger.warning(
                'Storage key "%s" already registered, returning existing', options.key
            )
            return existing.store

        store: DebouncedStore[T] = DebouncedStore(options, self._backend, self._timers)
        self._entries[options.key] = _Entry(
            key=options.key, store=store, on_restore=on_restore
        )
        logger.debug("Registered storage: %s", options.key)
        return store

    async def restore_all(self) -> None:
        """
        Restore every store in registration order.

        A failure in one store is logged and the rest still restore.
        """
        logger.info("Restoring %d storage entries...", len(self._entries))

        for entry in list(self._entries.values()):
            try:
                data = await entry.store.restore()
                if entry.on_restore is not None:
                    entry.on_restore(data)
                logger.debug("Restored: %s", entry.key, extra={"store": entry.key})
            except Exception:
                logger.exception("Failed to restore %s", entry.key)

        logger.info("All storage restored")

    async def persist_all(self) -> None:
        """Persist every store immediately."""
        entries = list(self._entries.values())

        async def _persist(entry: _Entry) -> None:
            try:
                await entry.store.persist()
            except Exception:
                logger.exception("Failed to persist %s", entry.key)

        await asyncio.gather(*(_persist(e) for e in entries))
        logger.debug("Persisted %d storage entries", len(entries))

    def get(self, key: str) -> DebouncedStore[Any] | None:
        entry = self._entries.get(key)
        return entry.store if entry else None

    @property
    def registered_keys(self) -> list[str]:
        return list(self._entries)

    @property
    def count(self) -> int:
        return len(self._entries)
