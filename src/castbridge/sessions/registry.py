"""
Session Registry — active cast sessions keyed by source.

Responsibilities:
- Track active sessions and their speaker destinations
- Hold the wake lock exactly while at least one session exists
- Persist the full registry on every mutation (it is small and critical,
  so writes are immediate rather than debounced)
- Publish sessions.changed with display-ready casts after every mutation
- Migrate legacy stored records on restore

The wake lock is toggled only at the two transitions: empty -> non-empty in
register() (and restore), non-empty -> empty in remove() / clear_all().
"""

from __future__ import annotations

import logging
from typing import Any

from castbridge.core.event_bus import SESSIONS_CHANGED, EventBus
from castbridge.core.timers import Clock, system_clock
from castbridge.media.cache import MediaCache, MediaState
from castbridge.sessions.models import (
    CastSession,
    OriginalGroup,
    migrate_stored_session,
)
from castbridge.sessions.power import WakeLock
from castbridge.storage.debounced import StoreConfig
from castbridge.storage.persistence import PersistenceManager

logger = logging.getLogger(__name__)

STORAGE_KEY = "activeSessions"


class SessionRegistry:
    """Owns active sessions. Getters return copies."""

    def __init__(
        self,
        persistence: PersistenceManager,
        wake_lock: WakeLock,
        bus: EventBus,
        media_cache: MediaCache | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self._sessions: dict[int, CastSession] = {}
        self._wake_lock = wake_lock
        self._bus = bus
        self._media = media_cache
        self._clock = clock
        self._storage = persistence.register(
            StoreConfig(
                key=STORAGE_KEY,
                debounce_ms=0,  # unused: every mutation calls persist()
                serialize=self._serialize,
                restore=self._parse,
                logger_name=__name__,
            ),
            self._on_restore,
        )

    # ─── Persistence ──────────────────────────────────────────────

    def _serialize(self) -> list[list[Any]]:
        return [
            [source_id, session.to_dict()]
            for source_id, session in self._sessions.items()
        ]

    @staticmethod
    def _parse(stored: Any) -> list[CastSession] | None:
        if not isinstance(stored, list):
            return None

        sessions: list[CastSession] = []
        for item in stored:
            try:
                source_id, record = item
                record, migrated = migrate_stored_session(record)
                if migrated:
                    logger.info(
                        "Migrated session for source %s from single to multi-speaker format",
                        source_id,
                        extra={"source_id": source_id},
                    )
                session = CastSession.from_dict(source_id, record)
                session.validate()
            except (TypeError, ValueError, KeyError, AttributeError) as e:
                logger.warning("Dropping invalid stored session: %s", e)
                continue
            sessions.append(session)
        return sessions

    def _on_restore(self, sessions: list[CastSession] | None) -> None:
        if not sessions:
            return
        self._sessions = {}
        for session in sessions:
            self._sessions[session.source_id] = session
        logger.info("Restored %d sessions", len(self._sessions))
        self._wake_lock.request()

    async def _commit(self) -> None:
        await self._storage.persist()
        await self._notify_changed()

    async def _notify_changed(self) -> None:
        await self._bus.publish(SESSIONS_CHANGED, {"casts": self.active_casts()})

    # ─── Mutations ────────────────────────────────────────────────

    async def register(
        self,
        source_id: int,
        stream_id: str,
        speaker_ips: list[str],
        speaker_names: list[str],
        encoder_config: Any,
        sync_speakers: bool = False,
    ) -> CastSession:
        """
        Register a session. Raises ValueError (before any change) if the
        destination lists are empty or of unequal length.

        An existing session for the same source is replaced.
        """
        session = CastSession(
            stream_id=stream_id,
            source_id=source_id,
            speaker_ips=list(speaker_ips),
            speaker_names=list(speaker_names),
            encoder_config=encoder_config,
            started_at=self._clock(),
            sync_speakers=sync_speakers,
        )
        session.validate()

        if source_id in self._sessions:
            logger.warning(
                "Replacing existing session for source %s (stream %s)",
                source_id,
                self._sessions[source_id].stream_id,
                extra={"source_id": source_id},
            )

        for other in list(self._sessions.values()):
            if other.stream_id == stream_id and other.source_id != source_id:
                logger.warning(
                    "Stream %s moved from source %s to %s",
                    stream_id,
                    other.source_id,
                    source_id,
                    extra={"stream_id": stream_id},
                )
                del self._sessions[other.source_id]

        was_empty = not self._sessions
        self._sessions[source_id] = session
        if was_empty:
            self._wake_lock.request()

        await self._commit()
        logger.info(
            "Registered session for source %s, stream %s, %d speaker(s)",
            source_id,
            stream_id,
            len(session.speaker_ips),
            extra={"source_id": source_id, "stream_id": stream_id},
        )
        return session.copy()

    async def remove(self, source_id: int) -> bool:
        """Remove a session. Returns False if the source had none."""
        if self._sessions.pop(source_id, None) is None:
            return False

        if not self._sessions:
            self._wake_lock.release()

        await self._commit()
        logger.info(
            "Removed session for source %s", source_id, extra={"source_id": source_id}
        )
        return True

    async def remove_speaker(self, source_id: int, speaker_ip: str) -> bool:
        """
        Drop one destination from a session.

        Removing the last destination removes the whole session.
        Returns False if the session or speaker was not found.
        """
        session = self._sessions.get(source_id)
        if session is None:
            return False

        try:
            index = session.speaker_ips.index(speaker_ip)
        except ValueError:
            return False

        del session.speaker_ips[index]
        del session.speaker_names[index]

        if session.original_groups:
            groups = []
            for group in session.original_groups:
                ips = tuple(ip for ip in group.speaker_ips if ip != speaker_ip)
                if ips:
                    groups.append(OriginalGroup(group.coordinator_uuid, ips))
            session.original_groups = groups or None

        if not session.speaker_ips:
            await self.remove(source_id)
            logger.info(
                "Removed last speaker from session, session ended for source %s",
                source_id,
            )
            return True

        await self._commit()
        logger.info(
            "Removed speaker %s from session for source %s, %d speaker(s) remaining",
            speaker_ip,
            source_id,
            len(session.speaker_ips),
        )
        return True

    async def clear_all(self) -> None:
        """Drop every session (the peer is permanently unreachable)."""
        if not self._sessions:
            return

        logger.info("Clearing all %d session(s), peer unreachable", len(self._sessions))
        self._sessions.clear()
        self._wake_lock.release()
        await self._commit()

    async def set_original_groups(
        self, source_id: int, groups: list[OriginalGroup]
    ) -> None:
        """Record the pre-sync speaker groups for a synchronized session."""
        session = self._sessions.get(source_id)
        if session is None:
            return

        session.original_groups = list(groups) or None
        await self._storage.persist()
        logger.info(
            "Set original groups for source %s: %d group(s), %d IP(s) mapped",
            source_id,
            len(groups),
            len(session.ip_to_group()),
        )

    async def on_metadata_update(self, source_id: int) -> None:
        """Re-publish casts when a casting source's display state changes."""
        if source_id in self._sessions:
            await self._notify_changed()

    # ─── Queries ──────────────────────────────────────────────────

    def has(self, source_id: int) -> bool:
        return source_id in self._sessions

    def get(self, source_id: int) -> CastSession | None:
        session = self._sessions.get(source_id)
        return session.copy() if session else None

    def find_by_speaker_ip(self, speaker_ip: str) -> CastSession | None:
        for session in self._sessions.values():
            if speaker_ip in session.speaker_ips:
                return session.copy()
        return None

    def find_by_stream_id(self, stream_id: str) -> CastSession | None:
        for session in self._sessions.values():
            if session.stream_id == stream_id:
                return session.copy()
        return None

    def original_group_for_speaker(self, source_id: int, speaker_ip: str) -> str | None:
        session = self._sessions.get(source_id)
        if session is None:
            return None
        return session.ip_to_group().get(speaker_ip)

    def list(self) -> list[CastSession]:
        return [session.copy() for session in self._sessions.values()]

    def source_ids(self) -> list[int]:
        return list(self._sessions)

    @property
    def count(self) -> int:
        return len(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    def active_casts(self) -> list[dict[str, Any]]:
        """Sessions joined with their cached media state, for display."""
        casts = []
        for session in self._sessions.values():
            media = self._media.get(session.source_id) if self._media else None
            if media is None:
                media = MediaState(
                    source_id=session.source_id, updated_at=self._clock()
                )
            casts.append(
                {
                    "streamId": session.stream_id,
                    "sourceId": session.source_id,
                    "mediaState": media.to_dict(),
                    "speakerIps": list(session.speaker_ips),
                    "speakerNames": list(session.speaker_names),
                    "encoderConfig": session.encoder_config,
                    "startedAt": session.started_at,
                }
            )
        return casts
