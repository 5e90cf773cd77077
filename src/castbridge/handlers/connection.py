"""
Connection Handlers — peer discovery and control-connection lifecycle.

Responsibilities:
- ENSURE_CONNECTION: reuse, reconnect from cache, or discover and connect
- Apply privileged-context pushes to ConnectionState
- Keep the peer speaker snapshot (groups, names) current
- Notify observers of connection changes on the event bus

Non-responsibilities:
- Context lifecycle (ContextBroker)
- Session bookkeeping, except clearing everything on terminal loss
"""

from __future__ import annotations

import logging
from typing import Any

from castbridge.connection.discovery import DiscoveredPeer, PeerDiscovery
from castbridge.connection.peer_state import PeerStateStore
from castbridge.connection.state import ConnectionStateStore, NetworkHealth
from castbridge.core.errors import ERROR_CONNECTION_LOST, ERROR_DESKTOP_NOT_FOUND
from castbridge.core.event_bus import (
    CONNECTION_LOST,
    CONNECTION_STATE_CHANGED,
    NETWORK_HEALTH_CHANGED,
    PEER_STATE_CHANGED,
    EventBus,
)
from castbridge.privileged.broker import ContextBroker, to_http_url
from castbridge.sessions.registry import SessionRegistry

logger = logging.getLogger(__name__)

REASON_RECONNECTING = "reconnecting"
REASON_MAX_RETRIES = "max_retries_exceeded"
REASON_SETTINGS_CHANGED = "settings_changed"


def _connection_result(
    connected: bool,
    peer_url: str | None,
    max_sessions: int | None,
    error: str | None = None,
) -> dict[str, Any]:
    return {
        "connected": connected,
        "peerUrl": peer_url,
        "maxSessions": max_sessions,
        "error": error,
    }


class ConnectionHandlers:
    """Connection requests and context pushes."""

    def __init__(
        self,
        state: ConnectionStateStore,
        peer_state: PeerStateStore,
        discovery: PeerDiscovery,
        broker: ContextBroker,
        registry: SessionRegistry,
        bus: EventBus,
    ) -> None:
        self._state = state
        self._peer_state = peer_state
        self._discovery = discovery
        self._broker = broker
        self._registry = registry
        self._bus = bus

    @property
    def peer_state(self) -> dict[str, Any]:
        return self._peer_state.get()

    def adopt_peer_state(self, peer_state: dict[str, Any]) -> None:
        """Take over the peer snapshot the privileged context cached."""
        self._peer_state.set(peer_state)

    def speaker_name(self, speaker_ip: str) -> str:
        return self._peer_state.speaker_name(speaker_ip)

    # ─── Requests ─────────────────────────────────────────────────

    def get_status(self) -> dict[str, Any]:
        return self._state.get().to_dict()

    def get_peer_state(self) -> dict[str, Any]:
        """The speaker snapshot, or None until any groups are known."""
        return {"state": self.peer_state if self._peer_state.has_groups else None}

    async def discover_and_connect(self, force: bool = False) -> DiscoveredPeer | None:
        peer = await self._discovery.discover(force=force)
        if peer is not None:
            await self._broker.connect_peer(peer.url)
        return peer

    async def ensure_connection(self) -> dict[str, Any]:
        """
        Make sure a control connection exists or is being opened.

        Connection completes asynchronously (WS_CONNECTED confirms it), so
        "connected": False with no error means "connecting".
        """
        snapshot = self._state.get()

        if snapshot.connected:
            # The caller may have missed the original state notification
            await self._bus.publish(
                CONNECTION_STATE_CHANGED,
                {"connected": True, "state": self.peer_state},
            )
            return _connection_result(
                True, snapshot.peer_url, snapshot.max_concurrent_sessions
            )

        if snapshot.peer_url:
            try:
                await self._broker.connect_peer(snapshot.peer_url)
                return _connection_result(
                    False, snapshot.peer_url, snapshot.max_concurrent_sessions
                )
            except Exception as e:
                logger.warning("Reconnection failed, will try discovery: %s", e)

        try:
            peer = await self._discovery.discover()
            if peer is None:
                self._state.clear()
                return _connection_result(False, None, None, ERROR_DESKTOP_NOT_FOUND)

            await self._broker.connect_peer(peer.url)
            return _connection_result(False, peer.url, peer.max_sessions)
        except Exception as e:
            logger.error("Discovery/connection failed: %s", e)
            return _connection_result(False, None, None, str(e))

    async def handle_ws_connect_request(
        self, url: str, max_sessions: int | None = None
    ) -> None:
        """
        Connect to an explicitly given peer. Accepts an http base or a ws
        endpoint URL; the http base is what gets cached. The peer
        is only cached when its session limit is known.
        """
        peer_url = to_http_url(url)
        if max_sessions is not None:
            self._state.set_peer(peer_url, max_sessions)
        await self._broker.connect_peer(peer_url)

    async def disconnect(self) -> None:
        await self._broker.disconnect()

    async def reconnect(self, url: str | None = None) -> None:
        await self._broker.reconnect(url or self._state.get().peer_url)

    # ─── Pushes from the privileged context ───────────────────────

    def _apply_network_health(self, source: dict[str, Any]) -> bool:
        health = source.get("networkHealth") or source.get("health")
        if health not in (NetworkHealth.OK.value, NetworkHealth.DEGRADED.value):
            return False
        reason = source.get("networkHealthReason") or source.get("reason")
        self._state.set_network_health(health, reason)
        return True

    async def handle_ws_connected(self, peer_state: dict[str, Any]) -> None:
        self._state.set_connected(True)
        self._peer_state.set(peer_state or {})
        if self._apply_network_health(peer_state or {}):
            logger.info(
                "Initial network health: %s", self._state.get().network_health
            )
        logger.info("Control connection established", extra={"state": "connected"})
        await self._bus.publish(
            CONNECTION_STATE_CHANGED, {"connected": True, "state": self.peer_state}
        )

    async def handle_ws_temporarily_disconnected(self) -> None:
        self._state.set_connected(False)
        logger.warning("Control connection lost, context is reconnecting")
        await self._bus.publish(CONNECTION_LOST, {"reason": REASON_RECONNECTING})

    async def handle_ws_permanently_disconnected(self) -> None:
        self._state.set_error(ERROR_CONNECTION_LOST)
        logger.warning("Control connection permanently lost")
        await self._registry.clear_all()
        await self._bus.publish(CONNECTION_LOST, {"reason": REASON_MAX_RETRIES})

    async def handle_topology_event(self, payload: dict[str, Any]) -> None:
        groups = payload.get("groups")
        if payload.get("type") != "groupsDiscovered" or not isinstance(groups, list):
            logger.debug("Ignoring topology event: %s", payload.get("type"))
            return
        snapshot = self._peer_state.update_groups(groups)
        logger.info("Groups discovered: %d groups", len(groups))
        await self._bus.publish(PEER_STATE_CHANGED, {"state": snapshot})

    async def handle_network_event(self, payload: dict[str, Any]) -> None:
        if not self._apply_network_health(payload):
            logger.debug("Ignoring network event without health: %s", payload)
            return
        snapshot = self._state.get()
        logger.info(
            "Network health changed: %s%s",
            snapshot.network_health,
            f" ({snapshot.network_health_reason})"
            if snapshot.network_health_reason
            else "",
        )
        await self._bus.publish(
            NETWORK_HEALTH_CHANGED,
            {
                "health": snapshot.network_health,
                "reason": snapshot.network_health_reason,
            },
        )

    async def handle_settings_changed(self) -> None:
        """Drop the cached peer and rediscover under the new settings."""
        logger.info("Server settings changed, reconnecting...")
        if self._state.get().connected:
            try:
                await self._broker.disconnect()
            except Exception as e:
                logger.warning("Disconnect before rediscovery failed: %s", e)

        self._state.clear()
        try:
            await self.discover_and_connect(force=True)
        except Exception as e:
            logger.warning("Reconnect after settings change failed: %s", e)

        await self._bus.publish(CONNECTION_LOST, {"reason": REASON_SETTINGS_CHANGED})

    async def reconnect_from_cache(self) -> None:
        """Startup path: reopen the control connection to a cached peer."""
        snapshot = self._state.get()
        if not snapshot.peer_url or snapshot.connected:
            return
        logger.info("Attempting to reconnect on startup...")
        try:
            await self._broker.connect_peer(snapshot.peer_url)
        except Exception as e:
            logger.info("Startup reconnect failed, will retry on demand: %s", e)
