"""
Connection State — the single authoritative peer connection snapshot.

Only the setters below change it. Every setter replaces the in-memory value
synchronously and then schedules a debounced write, so readers never wait on
storage. get() hands out the frozen snapshot itself; nobody outside this
module can mutate it.

Non-responsibilities: socket lifecycle (the privileged context owns it) and
message handling.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any

from castbridge.core.errors import ERROR_DESKTOP_NOT_FOUND
from castbridge.core.timers import Clock, system_clock
from castbridge.storage.debounced import StoreConfig
from castbridge.storage.persistence import PersistenceManager

logger = logging.getLogger(__name__)

STORAGE_KEY = "connectionState"


class NetworkHealth(str, Enum):
    """Speaker network health as reported by the peer."""

    OK = "ok"
    DEGRADED = "degraded"


@dataclass(frozen=True)
class ConnectionState:
    """Immutable connection snapshot. Use dataclasses.replace for changes."""

    connected: bool = False
    peer_url: str | None = None
    max_concurrent_sessions: int | None = None
    last_discovered_at: float | None = None  # epoch seconds
    last_error: str | None = None
    network_health: str = NetworkHealth.OK.value
    network_health_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_stored(cls, stored: Any) -> ConnectionState | None:
        """
        Build a state from a stored dict, defaulting missing fields.

        Returns None for anything that is not a dict.
        """
        if not isinstance(stored, dict):
            return None
        health = stored.get("network_health") or NetworkHealth.OK.value
        if health not in (NetworkHealth.OK.value, NetworkHealth.DEGRADED.value):
            health = NetworkHealth.OK.value
        connected = bool(stored.get("connected", False))
        return cls(
            connected=connected,
            peer_url=stored.get("peer_url"),
            max_concurrent_sessions=stored.get("max_concurrent_sessions"),
            last_discovered_at=stored.get("last_discovered_at"),
            # connected and an error never coexist
            last_error=None if connected else stored.get("last_error"),
            network_health=health,
            network_health_reason=stored.get("network_health_reason"),
        )


class ConnectionStateStore:
    """Owns the ConnectionState singleton and its persisted copy."""

    def __init__(
        self,
        persistence: PersistenceManager,
        debounce_ms: int = 300,
        clock: Clock = system_clock,
    ) -> None:
        self._state = ConnectionState()
        self._clock = clock
        self._storage = persistence.register(
            StoreConfig(
                key=STORAGE_KEY,
                debounce_ms=debounce_ms,
                serialize=lambda: self._state.to_dict(),
                restore=ConnectionState.from_stored,
                logger_name=__name__,
            ),
            self._on_restore,
        )

    def _on_restore(self, restored: ConnectionState | None) -> None:
        if restored is None:
            return
        self._state = restored
        logger.info(
            "Restored connection state: %s%s",
            "connected" if restored.connected else "disconnected",
            f" ({restored.peer_url})" if restored.peer_url else "",
        )

    def get(self) -> ConnectionState:
        return self._state

    def set_connected(self, connected: bool) -> None:
        """Update the connected flag. Connecting clears the last error."""
        self._state = replace(
            self._state,
            connected=connected,
            last_error=None if connected else self._state.last_error,
        )
        self._storage.schedule()

    def set_peer(self, url: str, max_sessions: int) -> None:
        """Record a discovered peer and stamp the discovery time."""
        self._state = replace(
            self._state,
            peer_url=url,
            max_concurrent_sessions=max_sessions,
            last_discovered_at=self._clock(),
            last_error=None,
        )
        self._storage.schedule()

    def set_error(self, error: str) -> None:
        """Record a connection error. An errored state is never connected."""
        self._state = replace(self._state, connected=False, last_error=error)
        self._storage.schedule()

    def set_network_health(
        self, status: NetworkHealth | str, reason: str | None = None
    ) -> None:
        self._state = replace(
            self._state,
            network_health=NetworkHealth(status).value,
            network_health_reason=reason,
        )
        self._storage.schedule()

    def clear(self) -> None:
        """Reset to defaults; the cleared state explains itself via last_error."""
        self._state = ConnectionState(last_error=ERROR_DESKTOP_NOT_FOUND)
        self._storage.schedule()

    async def flush(self) -> None:
        """Write a pending debounced update now."""
        await self._storage.flush()
