"""
Cast Handlers — starting, stopping, and querying cast sessions.

Responsibilities:
- Orchestrate a cast: discovery, limits, capture, playback, registration
- Stop casts on request, on source close, and on peer-side events

Non-responsibilities:
- Session storage (SessionRegistry)
- Context lifecycle (ContextBroker)
"""

from __future__ import annotations

import logging
from typing import Any

from castbridge.connection.discovery import PeerDiscovery
from castbridge.connection.state import ConnectionStateStore
from castbridge.core.errors import (
    ERROR_CAPTURE_FAILED,
    ERROR_DESKTOP_NOT_FOUND,
    ERROR_MAX_SESSIONS,
    ERROR_NO_SOURCE,
    ERROR_NO_SPEAKERS_SELECTED,
    ERROR_PLAYBACK_FAILED,
    CastError,
)
from castbridge.core.event_bus import SPEAKER_EVENT, EventBus
from castbridge.handlers.connection import ConnectionHandlers
from castbridge.media.cache import MediaCache
from castbridge.messages import StartCastPayload
from castbridge.privileged.broker import ContextBroker
from castbridge.sessions.models import OriginalGroup
from castbridge.sessions.registry import SessionRegistry

logger = logging.getLogger(__name__)


class CastHandlers:
    """Cast lifecycle. Talks to the privileged context through the broker."""

    def __init__(
        self,
        registry: SessionRegistry,
        state: ConnectionStateStore,
        discovery: PeerDiscovery,
        broker: ContextBroker,
        media: MediaCache,
        connection: ConnectionHandlers,
        bus: EventBus,
    ) -> None:
        self._registry = registry
        self._state = state
        self._discovery = discovery
        self._broker = broker
        self._media = media
        self._connection = connection
        self._bus = bus

    async def start_cast(self, payload: StartCastPayload) -> dict[str, Any]:
        """
        Start casting a source to one or more speakers.

        Only speakers that actually started playing are registered. If none
        did, the capture is stopped again and the cast fails.

        Raises:
            CastError: with one of the error_* reason codes.
        """
        source_id = payload.source_id
        speaker_ips = list(payload.speaker_ips)
        if not speaker_ips:
            raise CastError(ERROR_NO_SPEAKERS_SELECTED)

        # Discover early to fail fast
        peer = await self._discovery.discover()
        if peer is None:
            self._state.clear()
            raise CastError(ERROR_DESKTOP_NOT_FOUND)

        if self._registry.count >= peer.max_sessions:
            raise CastError(
                ERROR_MAX_SESSIONS,
                f"{self._registry.count} of {peer.max_sessions} sessions in use",
            )

        await self._broker.ensure()
        if not self._state.get().connected:
            await self._broker.connect_peer(peer.url)

        capture = await self._broker.send(
            {
                "type": "START_CAPTURE",
                "payload": {
                    "sourceId": source_id,
                    "encoderConfig": payload.encoder_config,
                    "baseUrl": peer.url,
                },
            }
        )
        if not isinstance(capture, dict) or not capture.get("success"):
            error = capture.get("error") if isinstance(capture, dict) else None
            raise CastError(error or ERROR_CAPTURE_FAILED)
        stream_id = capture.get("streamId")
        if not stream_id:
            raise CastError(ERROR_CAPTURE_FAILED, "capture started without a stream id")

        cached = self._media.get(source_id)
        metadata: dict[str, Any] | None = None
        if cached is not None and (cached.metadata or cached.source):
            metadata = {**(cached.metadata or {}), "source": cached.source}

        playback = await self._broker.send(
            {
                "type": "START_PLAYBACK",
                "payload": {
                    "sourceId": source_id,
                    "speakerIps": speaker_ips,
                    "metadata": metadata,
                    "syncSpeakers": payload.sync_speakers,
                },
            }
        )
        results = playback.get("results", []) if isinstance(playback, dict) else []
        successful = [r for r in results if isinstance(r, dict) and r.get("success")]

        if not successful:
            logger.error(
                "All playback attempts failed, cleaning up capture",
                extra={"source_id": source_id, "stream_id": stream_id},
            )
            await self._stop_capture(source_id)
            raise CastError(ERROR_PLAYBACK_FAILED)

        for failed in results:
            if isinstance(failed, dict) and not failed.get("success"):
                logger.warning(
                    "Playback failed on %s: %s",
                    failed.get("speakerIp"),
                    failed.get("error"),
                )

        ips = [r["speakerIp"] for r in successful]
        names = [self._connection.speaker_name(ip) for ip in ips]

        if not self._media.has(source_id):
            info = payload.source_info
            self._media.update(
                source_id,
                {
                    "title": info.title if info else None,
                    "favicon": info.favicon if info else None,
                    "source": info.source if info else None,
                },
                None,
            )

        await self._registry.register(
            source_id,
            stream_id,
            ips,
            names,
            payload.encoder_config,
            sync_speakers=payload.sync_speakers,
        )

        groups = playback.get("originalGroups") if isinstance(playback, dict) else None
        if payload.sync_speakers and isinstance(groups, list):
            await self._registry.set_original_groups(
                source_id, [OriginalGroup.from_dict(g) for g in groups]
            )

        return {"success": True, "streamId": stream_id, "speakerIps": ips}

    async def stop_cast(self, source_id: int | None) -> dict[str, Any]:
        if source_id is None:
            raise CastError(ERROR_NO_SOURCE)
        if self._registry.has(source_id):
            await self.stop_cast_for_source(source_id)
        return {"success": True}

    async def stop_cast_for_source(self, source_id: int) -> None:
        """Stop the capture (best effort) and drop the session."""
        await self._stop_capture(source_id)
        await self._registry.remove(source_id)

    async def _stop_capture(self, source_id: int) -> None:
        try:
            await self._broker.send(
                {"type": "STOP_CAPTURE", "payload": {"sourceId": source_id}}
            )
        except Exception as e:
            # The context may already be gone
            logger.debug("STOP_CAPTURE for source %s failed: %s", source_id, e)

    def get_active_casts(self) -> dict[str, Any]:
        return {"casts": self._registry.active_casts()}

    async def handle_speaker_event(self, payload: dict[str, Any]) -> None:
        """Forward a peer event to observers; act on the ones we own."""
        await self._bus.publish(SPEAKER_EVENT, payload)

        if payload.get("type") == "sourceChanged":
            await self._handle_source_changed(
                payload.get("speakerIp"), payload.get("currentUri")
            )

    async def _handle_source_changed(self, speaker_ip: Any, current_uri: Any) -> None:
        if not isinstance(speaker_ip, str):
            return
        session = self._registry.find_by_speaker_ip(speaker_ip)
        if session is None:
            return

        logger.warning(
            "Source changed on %s: %s", speaker_ip, current_uri,
            extra={"source_id": session.source_id},
        )
        if len(session.speaker_ips) == 1:
            await self._stop_capture(session.source_id)
        await self._registry.remove_speaker(session.source_id, speaker_ip)

        await self._bus.publish(
            SPEAKER_EVENT,
            {
                "type": "castAutoStopped",
                "sourceId": session.source_id,
                "speakerIp": speaker_ip,
                "reason": "source_changed",
            },
        )

    async def handle_stream_ended(self, stream_id: str) -> None:
        session = self._registry.find_by_stream_id(stream_id)
        if session is None:
            logger.debug("Stream %s ended with no session", stream_id)
            return
        logger.info(
            "Stream %s ended, removing session", stream_id,
            extra={"stream_id": stream_id, "source_id": session.source_id},
        )
        await self._registry.remove(session.source_id)
