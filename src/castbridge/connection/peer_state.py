"""
Peer State — the peer's last reported speaker snapshot.

Speaker groups, volumes, mutes, and transport states as the peer sent them on
connect (or the privileged context cached them). Persisted with a 500 ms
debounce so display names survive a restart even while disconnected.
"""

from __future__ import annotations

import copy
import logging
from typing import Any

from castbridge.storage.debounced import StoreConfig
from castbridge.storage.persistence import PersistenceManager

logger = logging.getLogger(__name__)

STORAGE_KEY = "peerState"


def empty_peer_state() -> dict[str, Any]:
    return {"groups": [], "groupVolumes": {}, "groupMutes": {}, "transportStates": {}}


def _parse(stored: Any) -> dict[str, Any] | None:
    if not isinstance(stored, dict):
        return None
    snapshot = {**empty_peer_state(), **stored}
    if not isinstance(snapshot["groups"], list):
        logger.warning("Stored peer state has malformed groups, dropping them")
        snapshot["groups"] = []
    return snapshot


class PeerStateStore:
    """Owns the peer snapshot and its persisted copy."""

    def __init__(self, persistence: PersistenceManager, debounce_ms: int = 500) -> None:
        self._state = empty_peer_state()
        self._storage = persistence.register(
            StoreConfig(
                key=STORAGE_KEY,
                debounce_ms=debounce_ms,
                serialize=lambda: self._state,
                restore=_parse,
                logger_name=__name__,
            ),
            self._on_restore,
        )

    def _on_restore(self, restored: dict[str, Any] | None) -> None:
        if restored is None:
            return
        self._state = restored
        logger.info("Restored peer state (%d groups)", len(restored["groups"]))

    def get(self) -> dict[str, Any]:
        return copy.deepcopy(self._state)

    @property
    def has_groups(self) -> bool:
        return bool(self._state["groups"])

    def set(self, snapshot: dict[str, Any]) -> dict[str, Any]:
        """Replace the whole snapshot (connect, recovery)."""
        self._state = _parse(copy.deepcopy(snapshot)) or empty_peer_state()
        self._storage.schedule()
        return self.get()

    def update_groups(self, groups: list[dict[str, Any]]) -> dict[str, Any]:
        self._state = {**self._state, "groups": copy.deepcopy(groups)}
        self._storage.schedule()
        return self.get()

    def speaker_name(self, speaker_ip: str) -> str:
        """Display name of the group coordinated by speaker_ip, else the IP."""
        for group in self._state["groups"]:
            if isinstance(group, dict) and group.get("coordinatorIp") == speaker_ip:
                return group.get("name") or speaker_ip
        return speaker_ip

    async def flush(self) -> None:
        await self._storage.flush()
