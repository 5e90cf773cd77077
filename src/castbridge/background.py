"""
Background — the composition root.

Builds every stateful component once, in dependency order, and wires the
message router. Nothing here is a module global: tests build their own
Background with in-memory storage, a fake privileged context, and a mock
HTTP transport.

Registration order matters for restore: the media cache is registered
before the session registry so restored sessions can be enriched at once.

Lifecycle entry points:
- start()               — run recovery (restore + peer reconciliation)
- on_message()          — every inbound request; waits for recovery first
- on_source_closed()    — a source went away: evict cache, stop its cast
- on_settings_changed() — discovery settings changed: rediscover
- on_startup()          — host startup: reconnect from the cached peer
- shutdown()            — flush pending writes, close storage
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import httpx

from castbridge.connection.discovery import DiscoverySettings, PeerDiscovery
from castbridge.connection.peer_state import PeerStateStore
from castbridge.connection.state import ConnectionStateStore
from castbridge.core.config import CastBridgeConfig, config as default_config
from castbridge.core.event_bus import EventBus
from castbridge.core.timers import Clock, TimerFactory, system_clock
from castbridge.handlers.cast import CastHandlers
from castbridge.handlers.connection import ConnectionHandlers
from castbridge.handlers.metadata import MetadataHandlers
from castbridge.media.cache import MediaCache
from castbridge.privileged.broker import ContextBroker
from castbridge.privileged.http import HttpPrivilegedContext
from castbridge.privileged.interface import PrivilegedContext
from castbridge.recovery import RecoveryProtocol
from castbridge.router import MessageRouter
from castbridge.routes import (
    register_cast_routes,
    register_connection_routes,
    register_context_routes,
    register_metadata_routes,
)
from castbridge.sessions.power import LoggingWakeLock, WakeLock
from castbridge.sessions.registry import SessionRegistry
from castbridge.storage.backend import SqliteStorage, StorageBackend
from castbridge.storage.persistence import PersistenceManager

logger = logging.getLogger(__name__)


class Background:
    """Owns all state and routes requests to it."""

    def __init__(
        self,
        cfg: CastBridgeConfig | None = None,
        backend: StorageBackend | None = None,
        context: PrivilegedContext | None = None,
        wake_lock: WakeLock | None = None,
        timers: TimerFactory | None = None,
        clock: Clock = system_clock,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = cfg or default_config
        self._settings = DiscoverySettings(
            use_auto_discover=self.config.discovery.auto_discover,
            server_url=self.config.discovery.server_url,
        )

        self.backend = backend or SqliteStorage(Path(self.config.persistence.db_path))
        self._backend_started = False
        self.persistence = PersistenceManager(self.backend, timers)
        self.bus = EventBus()
        self.wake_lock = wake_lock or LoggingWakeLock()

        # Registration order is restore order
        self.media = MediaCache(
            self.persistence, self.config.persistence.media_debounce_ms, clock
        )
        self.registry = SessionRegistry(
            self.persistence, self.wake_lock, self.bus, self.media, clock
        )
        self.state = ConnectionStateStore(
            self.persistence, self.config.persistence.connection_debounce_ms, clock
        )
        self.peer_state = PeerStateStore(
            self.persistence, self.config.persistence.peer_state_debounce_ms
        )

        self.discovery = PeerDiscovery(
            self.state,
            self.config.discovery,
            settings=lambda: self._settings,
            clock=clock,
            transport=transport,
        )
        self.broker = ContextBroker(
            context or HttpPrivilegedContext(self.config.recovery.context_url),
            ready_timeout=self.config.recovery.ready_timeout,
        )

        self.connection = ConnectionHandlers(
            self.state,
            self.peer_state,
            self.discovery,
            self.broker,
            self.registry,
            self.bus,
        )
        self.cast = CastHandlers(
            self.registry,
            self.state,
            self.discovery,
            self.broker,
            self.media,
            self.connection,
            self.bus,
        )
        self.metadata = MetadataHandlers(
            self.media, self.registry, self.broker, self.bus
        )

        self.recovery = RecoveryProtocol(
            self.persistence,
            self.state,
            self.broker,
            self.bus,
            status_timeout=self.config.recovery.status_timeout,
            default_max_sessions=self.config.discovery.default_max_sessions,
            on_peer_state=self.connection.adopt_peer_state,
        )

        self.router = MessageRouter()
        register_connection_routes(self.router, self.connection)
        register_cast_routes(self.router, self.cast)
        register_metadata_routes(self.router, self.metadata)
        register_context_routes(self.router, self.connection, self.cast, self.broker)

    @property
    def settings(self) -> DiscoverySettings:
        return self._settings

    async def start(self) -> None:
        if not self._backend_started:
            self._backend_started = True
            await self.backend.start()
        await self.recovery.start()

    async def on_message(self, request: dict[str, Any]) -> Any:
        """
        Dispatch one inbound request.

        Readiness pushes from the privileged context bypass the gate: recovery
        itself may be waiting on them.
        """
        if not isinstance(request, dict) or request.get("type") != "OFFSCREEN_READY":
            await self.recovery.wait_ready()
        return await self.router.dispatch(request)

    async def on_source_closed(self, source_id: int) -> None:
        await self.recovery.wait_ready()
        self.media.remove(source_id)
        if self.registry.has(source_id):
            logger.info(
                "Source %s closed, cleaning up session", source_id,
                extra={"source_id": source_id},
            )
            await self.cast.stop_cast_for_source(source_id)

    async def on_settings_changed(
        self, old: DiscoverySettings, new: DiscoverySettings
    ) -> bool:
        """Apply new discovery settings. Returns False if nothing relevant changed."""
        await self.recovery.wait_ready()
        self._settings = new
        if (
            old.server_url == new.server_url
            and old.use_auto_discover == new.use_auto_discover
        ):
            return False
        await self.connection.handle_settings_changed()
        return True

    async def on_startup(self) -> None:
        await self.recovery.wait_ready()
        await self.connection.reconnect_from_cache()

    async def shutdown(self) -> None:
        await self.recovery.close()
        await self.persistence.persist_all()
        await self.backend.stop()
        self._backend_started = False
        logger.info("Background stopped")
