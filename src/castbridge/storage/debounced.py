"""
Debounced store — one persisted key with coalesced writes.

schedule() keeps a single pending-write slot: every call replaces the
previous timer, so a burst of N calls inside the debounce window produces
exactly one write. serialize() runs when the write happens, which means the
write always carries the latest state, never an intermediate one.

persist() writes immediately (and drops any pending timer). Use it for data
whose loss window must be near zero.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from castbridge.core.timers import TimerFactory, TimerHandle
from castbridge.storage.backend import StorageBackend

T = TypeVar("T")


@dataclass(frozen=True)
class StoreConfig(Generic[T]):
    """Registration options for one persisted key."""

    key: str
    debounce_ms: int
    serialize: Callable[[], Any]
    # Transforms the stored value; return None to fall back to defaults.
    restore: Callable[[Any], T | None] | None = None
    logger_name: str | None = None


class DebouncedStore(Generic[T]):
    """Handle for a registered store: schedule, persist, restore, cancel."""

    def __init__(
        self,
        options: StoreConfig[T],
        backend: StorageBackend,
        timers: TimerFactory,
    ) -> None:
        self._options = options
        self._backend = backend
        self._timers = timers
        self._timer: TimerHandle | None = None
        self._log = logging.getLogger(options.logger_name or __name__)

    @property
    def key(self) -> str:
        return self._options.key

    @property
    def pending(self) -> bool:
        """True while a debounced write is waiting for its timer."""
        return self._timer is not None

    def schedule(self) -> None:
        """Schedule a debounced write, replacing any pending one."""
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._timers.call_later(
            self._options.debounce_ms / 1000, self._on_timer
        )

    async def _on_timer(self) -> None:
        self._timer = None
        await self.persist()

    async def persist(self) -> None:
        """Write the current state now. Failures are logged, not raised."""
        self.cancel()
        try:
            data = self._options.serialize()
            await self._backend.set(self._options.key, data)
            self._log.debug("Persisted %s", self._options.key)
        except Exception:
            self._log.exception("Persist failed for %s", self._options.key)

    async def flush(self) -> None:
        """Write only if a debounced write is pending."""
        if self.pending:
            await self.persist()

    def cancel(self) -> None:
        """Drop a pending debounced write."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def restore(self) -> T | None:
        """
        Read the stored value, passing it through the restore function.

        Returns None when nothing is stored, when the backend read fails,
        or when the stored value fails validation.
        """
        try:
            stored = await self._backend.get(self._options.key)
        except Exception:
            self._log.exception("Restore failed for %s", self._options.key)
            return None

        if stored is None:
            return None

        if self._options.restore is None:
            return stored

        try:
            return self._options.restore(stored)
        except Exception as e:
            self._log.warning(
                "Discarding malformed %s: %s",
                self._options.key,
                e,
                extra={"store": self._options.key},
            )
            return None
