"""
Media Cache — per-source display state (title, artwork, playback state).

Fed by metadata updates from sources; read by the session registry to
enrich active casts for display. Persisted so a restarted process can show
what was playing before it died. Register it before the session registry:
session enrichment reads from it.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field, replace
from typing import Any

from castbridge.core.timers import Clock, system_clock
from castbridge.storage.debounced import StoreConfig
from castbridge.storage.persistence import PersistenceManager

logger = logging.getLogger(__name__)

STORAGE_KEY = "mediaCache"

PLAYBACK_STATES = ("none", "paused", "playing")


@dataclass(frozen=True)
class MediaState:
    """What a source is playing, as last reported."""

    source_id: int
    title: str = "Unknown Tab"
    favicon: str | None = None
    og_image: str | None = None
    source: str | None = None  # site name, e.g. "YouTube"
    metadata: dict[str, Any] | None = None
    supported_actions: tuple[str, ...] = ()
    playback_state: str = "none"
    updated_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["supported_actions"] = list(self.supported_actions)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MediaState:
        return cls(
            source_id=int(data["source_id"]),
            title=data.get("title") or "Unknown Tab",
            favicon=data.get("favicon"),
            og_image=data.get("og_image"),
            source=data.get("source"),
            metadata=data.get("metadata"),
            supported_actions=tuple(data.get("supported_actions") or ()),
            playback_state=_playback_state(data.get("playback_state")),
            updated_at=float(data.get("updated_at") or time.time()),
        )


def _playback_state(value: Any) -> str:
    return value if value in PLAYBACK_STATES else "none"


class MediaCache:
    """In-memory media states keyed by source, with debounced persistence."""

    def __init__(
        self,
        persistence: PersistenceManager,
        debounce_ms: int = 500,
        clock: Clock = system_clock,
    ) -> None:
        self._cache: dict[int, MediaState] = {}
        self._clock = clock
        self._storage = persistence.register(
            StoreConfig(
                key=STORAGE_KEY,
                debounce_ms=debounce_ms,
                serialize=self._serialize,
                restore=self._parse,
                logger_name=__name__,
            ),
            self._on_restore,
        )

    def _serialize(self) -> list[list[Any]]:
        return [[source_id, state.to_dict()] for source_id, state in self._cache.items()]

    @staticmethod
    def _parse(stored: Any) -> list[MediaState] | None:
        if not isinstance(stored, list):
            return None
        states = []
        for item in stored:
            try:
                source_id, data = item
                states.append(MediaState.from_dict({**data, "source_id": source_id}))
            except (TypeError, ValueError, KeyError) as e:
                logger.warning("Skipping malformed media cache entry: %s", e)
        return states

    def _on_restore(self, states: list[MediaState] | None) -> None:
        if states is None:
            return
        self._cache = {state.source_id: state for state in states}
        logger.info("Restored %d cached media states", len(self._cache))

    def get(self, source_id: int) -> MediaState | None:
        return self._cache.get(source_id)

    def all(self) -> list[MediaState]:
        return list(self._cache.values())

    def has(self, source_id: int) -> bool:
        return source_id in self._cache

    @property
    def size(self) -> int:
        return len(self._cache)

    def update(
        self,
        source_id: int,
        tab_info: dict[str, Any],
        metadata: dict[str, Any] | None,
        supported_actions: list[str] | None = None,
        playback_state: str = "none",
    ) -> MediaState:
        """Replace the cached state for a source."""
        state = MediaState(
            source_id=source_id,
            title=tab_info.get("title") or "Unknown Tab",
            favicon=tab_info.get("favicon"),
            og_image=tab_info.get("og_image"),
            source=tab_info.get("source"),
            metadata=metadata,
            supported_actions=tuple(supported_actions or ()),
            playback_state=_playback_state(playback_state),
            updated_at=self._clock(),
        )
        self._cache[source_id] = state
        self._storage.schedule()
        return state

    def update_tab_info(
        self, source_id: int, tab_info: dict[str, Any]
    ) -> MediaState | None:
        """Update title/artwork only, keeping metadata. None if not cached."""
        existing = self._cache.get(source_id)
        if existing is None:
            return None

        updated = replace(
            existing,
            title=tab_info.get("title") or existing.title,
            favicon=tab_info.get("favicon", existing.favicon),
            og_image=tab_info.get("og_image", existing.og_image),
            source=tab_info.get("source", existing.source),
            updated_at=self._clock(),
        )
        self._cache[source_id] = updated
        self._storage.schedule()
        return updated

    def remove(self, source_id: int) -> None:
        if self._cache.pop(source_id, None) is not None:
            self._storage.schedule()

    def clear(self) -> None:
        self._cache.clear()
        self._storage.schedule()
