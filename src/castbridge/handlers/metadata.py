"""Metadata Handlers — media state reported by sources, and per-source queries."""

from __future__ import annotations

import logging
from typing import Any

from castbridge.core.event_bus import MEDIA_STATE_CHANGED, EventBus
from castbridge.media.cache import MediaCache, MediaState
from castbridge.messages import (
    MediaPayload,
    TabMetadataUpdateMessage,
    TabOgImageMessage,
)
from castbridge.privileged.broker import ContextBroker
from castbridge.sessions.registry import SessionRegistry

logger = logging.getLogger(__name__)

_METADATA_FIELDS = ("title", "artist", "album", "artwork")


def _metadata(payload: MediaPayload | None) -> dict[str, Any] | None:
    if payload is None:
        return None
    data = {name: getattr(payload, name) for name in _METADATA_FIELDS}
    if not any(data.values()):
        return None
    return data


def _unchanged(
    existing: MediaState | None,
    tab_info: dict[str, Any],
    metadata: dict[str, Any] | None,
    supported_actions: list[str],
    playback_state: str,
) -> bool:
    if existing is None:
        return False
    return (
        (tab_info.get("title") or "Unknown Tab") == existing.title
        and tab_info.get("favicon") == existing.favicon
        and tab_info.get("og_image") == existing.og_image
        and tab_info.get("source") == existing.source
        and metadata == existing.metadata
        and tuple(supported_actions) == existing.supported_actions
        and playback_state == existing.playback_state
    )


class MetadataHandlers:
    def __init__(
        self,
        media: MediaCache,
        registry: SessionRegistry,
        broker: ContextBroker,
        bus: EventBus,
    ) -> None:
        self._media = media
        self._registry = registry
        self._broker = broker
        self._bus = bus

    async def handle_metadata_update(self, msg: TabMetadataUpdateMessage) -> bool:
        """
        Cache the reported state. If the source is casting, refresh observers
        and forward the new metadata to the running stream.

        Returns False when nothing changed (no write, no notification).
        """
        source_id = msg.source_id
        existing = self._media.get(source_id)
        info = msg.source_info
        tab_info = {
            "title": info.title if info else (existing.title if existing else None),
            "favicon": info.favicon if info else (existing.favicon if existing else None),
            # og:image comes from a separate update; keep it
            "og_image": existing.og_image if existing else None,
            "source": info.source if info else (existing.source if existing else None),
        }
        metadata = _metadata(msg.payload)
        supported_actions = list(msg.payload.supported_actions) if msg.payload else []
        playback_state = msg.payload.playback_state if msg.payload else "none"

        if _unchanged(existing, tab_info, metadata, supported_actions, playback_state):
            return False

        state = self._media.update(
            source_id, tab_info, metadata, supported_actions, playback_state
        )
        await self._notify(state)

        if self._registry.has(source_id):
            await self._registry.on_metadata_update(source_id)
            await self._forward(source_id, metadata, tab_info.get("source"))
        return True

    async def handle_og_image(self, msg: TabOgImageMessage) -> bool:
        """
        Record a source's og:image. Creates a minimal cache entry when the
        source has not reported media state yet. Returns False if unchanged.
        """
        source_id = msg.source_id
        og_image = msg.payload.og_image
        existing = self._media.get(source_id)
        if existing is not None and existing.og_image == og_image:
            return False

        state = self._media.update_tab_info(source_id, {"og_image": og_image})
        if state is None:
            info = msg.source_info
            state = self._media.update(
                source_id,
                {
                    "title": info.title if info else None,
                    "favicon": info.favicon if info else None,
                    "og_image": og_image,
                    "source": info.source if info else None,
                },
                None,
            )
        await self._notify(state)
        if self._registry.has(source_id):
            await self._registry.on_metadata_update(source_id)
        return True

    def get_cast_status(self, source_id: int) -> dict[str, Any]:
        return {"success": True, "isActive": self._registry.has(source_id)}

    def get_current_tab_state(self, source_id: int | None) -> dict[str, Any]:
        """Cached state for a source (a minimal one if none), and whether it casts."""
        if source_id is None:
            return {"state": None, "isCasting": False}
        state = self._media.get(source_id) or MediaState(source_id=source_id)
        return {"state": state.to_dict(), "isCasting": self._registry.has(source_id)}

    async def _notify(self, state: MediaState) -> None:
        await self._bus.publish(
            MEDIA_STATE_CHANGED, {"sourceId": state.source_id, "state": state.to_dict()}
        )

    async def _forward(
        self, source_id: int, metadata: dict[str, Any] | None, source: str | None
    ) -> None:
        stream_metadata = {
            "title": (metadata or {}).get("title"),
            "artist": (metadata or {}).get("artist"),
            "source": source,
        }
        try:
            await self._broker.send(
                {
                    "type": "METADATA_UPDATE",
                    "payload": {"sourceId": source_id, "metadata": stream_metadata},
                }
            )
        except Exception as e:
            logger.warning(
                "Failed to forward metadata for source %s: %s", source_id, e,
                extra={"source_id": source_id},
            )
