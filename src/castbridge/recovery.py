"""
Recovery Protocol — brings a restarted process back to a truthful state.

    UNINITIALIZED -> RESTORING -> RECONCILING_PEER -> READY

RESTORING reloads every persisted store. RECONCILING_PEER asks the
privileged context (which may have outlived us) whether the control
connection is still up, because persisted state alone cannot be trusted:
    - context present and connected    -> adopt its view
    - context present, disconnected    -> reconnect in the background
    - context absent / no answer       -> disconnected, whatever was stored;
                                          connect to a cached peer in the background

Inbound requests wait on the ready gate, so no handler ever sees the
half-restored state. Reconciliation failures still end in READY.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Coroutine

from castbridge.connection.state import ConnectionStateStore, NetworkHealth
from castbridge.core.event_bus import CONNECTION_STATE_CHANGED, EventBus
from castbridge.privileged.broker import ContextBroker, to_http_url
from castbridge.storage.persistence import PersistenceManager

logger = logging.getLogger(__name__)


class RecoveryPhase(str, Enum):
    UNINITIALIZED = "uninitialized"
    RESTORING = "restoring"
    RECONCILING_PEER = "reconciling_peer"
    READY = "ready"


class RecoveryProtocol:
    """Runs startup recovery once and gates requests until it finishes."""

    def __init__(
        self,
        persistence: PersistenceManager,
        state: ConnectionStateStore,
        broker: ContextBroker,
        bus: EventBus,
        status_timeout: float = 3.0,
        default_max_sessions: int = 5,
        on_peer_state: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        self._persistence = persistence
        self._state = state
        self._broker = broker
        self._bus = bus
        self._status_timeout = status_timeout
        self._default_max_sessions = default_max_sessions
        self._on_peer_state = on_peer_state
        self._phase = RecoveryPhase.UNINITIALIZED
        self._run: asyncio.Task[None] | None = None
        self._ready: asyncio.Event | None = None
        self._background: set[asyncio.Task[None]] = set()

    @property
    def phase(self) -> RecoveryPhase:
        return self._phase

    @property
    def is_ready(self) -> bool:
        return self._phase is RecoveryPhase.READY

    def _ready_event(self) -> asyncio.Event:
        # Created lazily so the Event binds to the running loop
        if self._ready is None:
            self._ready = asyncio.Event()
        return self._ready

    async def start(self) -> None:
        """Run recovery. Repeat and concurrent calls await the same run."""
        if self._run is None:
            self._run = asyncio.create_task(self._recover())
        await asyncio.shield(self._run)

    async def wait_ready(self) -> None:
        await self._ready_event().wait()

    async def _recover(self) -> None:
        self._phase = RecoveryPhase.RESTORING
        logger.info("Recovery: restoring persisted state")
        await self._persistence.restore_all()

        self._phase = RecoveryPhase.RECONCILING_PEER
        try:
            await self._reconcile()
        except Exception:
            logger.exception("Recovery: peer reconciliation failed")
            self._state.set_connected(False)

        self._phase = RecoveryPhase.READY
        self._ready_event().set()
        logger.info(
            "Recovery complete: %s",
            "connected" if self._state.get().connected else "disconnected",
            extra={"state": self._phase.value},
        )

    async def _reconcile(self) -> None:
        status = await self._broker.query_status(self._status_timeout)

        if status is None:
            if self._state.get().connected:
                logger.info("Recovery: no privileged context, marking disconnected")
            self._state.set_connected(False)
            peer_url = self._state.get().peer_url
            if peer_url:
                logger.info(
                    "Recovery: no context, reconnecting to cached peer in background",
                    extra={"peer_url": peer_url},
                )
                self._spawn(self._connect(peer_url))
            return

        # The context's cache outlives ours, connected or not
        if status.cached_peer_state is not None and self._on_peer_state is not None:
            self._on_peer_state(dict(status.cached_peer_state))

        if status.connected:
            self._state.set_connected(True)
            snapshot = self._state.get()
            if status.peer_url and to_http_url(status.peer_url) != snapshot.peer_url:
                self._state.set_peer(
                    to_http_url(status.peer_url),
                    snapshot.max_concurrent_sessions or self._default_max_sessions,
                )
            cached = status.cached_peer_state or {}
            health = cached.get("networkHealth")
            if health in (NetworkHealth.OK.value, NetworkHealth.DEGRADED.value):
                self._state.set_network_health(health, cached.get("networkHealthReason"))
            logger.info(
                "Recovery: adopted live connection from privileged context",
                extra={"peer_url": self._state.get().peer_url},
            )
            await self._bus.publish(
                CONNECTION_STATE_CHANGED, {"connected": True, "state": dict(cached)}
            )
            return

        self._state.set_connected(False)
        peer_url = (
            to_http_url(status.peer_url) if status.peer_url else self._state.get().peer_url
        )
        if peer_url:
            logger.info(
                "Recovery: context disconnected, reconnecting in background",
                extra={"peer_url": peer_url},
            )
            self._spawn(self._reconnect(peer_url))

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _reconnect(self, peer_url: str) -> None:
        try:
            await self._broker.reconnect(peer_url)
        except Exception as e:
            logger.warning("Recovery: background reconnect failed: %s", e)

    async def _connect(self, peer_url: str) -> None:
        try:
            await self._broker.connect_peer(peer_url)
        except Exception as e:
            logger.info("Recovery: background connect failed, will retry on demand: %s", e)

    async def close(self) -> None:
        """Cancel background reconnects still in progress."""
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
