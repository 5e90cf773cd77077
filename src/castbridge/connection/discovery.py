"""
Peer Discovery — finds the companion application on localhost.

Three paths, checked in order:
1. Pinned address (auto-discover off, server URL set): probe only that URL.
   Unreachable means None; a pin is an explicit override, so no scan.
2. Cached peer younger than the TTL (and not forced): one short liveness
   probe against it.
3. Full scan: every candidate port probed concurrently. Results are kept
   indexed by candidate and the lowest index that answered wins, so the
   outcome never depends on which response arrived first.

Any success writes the peer into ConnectionState. Discovery never clears
ConnectionState on failure; callers decide that.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable

import httpx

from castbridge.connection.state import ConnectionStateStore
from castbridge.core.config import DiscoveryConfig
from castbridge.core.timers import Clock, system_clock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscoveredPeer:
    """A responding companion app and its session limit."""

    url: str
    max_sessions: int


@dataclass(frozen=True)
class DiscoverySettings:
    """User-facing discovery preferences."""

    use_auto_discover: bool = True
    server_url: str = ""

    @property
    def pinned_url(self) -> str | None:
        if not self.use_auto_discover and self.server_url:
            return self.server_url.rstrip("/")
        return None


SettingsProvider = Callable[[], DiscoverySettings]


class PeerDiscovery:
    """Locates the peer and keeps ConnectionState's discovery cache fresh."""

    def __init__(
        self,
        state: ConnectionStateStore,
        discovery_config: DiscoveryConfig | None = None,
        settings: SettingsProvider | None = None,
        clock: Clock = system_clock,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._state = state
        self._config = discovery_config or DiscoveryConfig()
        self._settings = settings or self._settings_from_config
        self._clock = clock
        self._transport = transport
        self._inflight: asyncio.Task[DiscoveredPeer | None] | None = None
        self._inflight_forced = False

    def _settings_from_config(self) -> DiscoverySettings:
        return DiscoverySettings(
            use_auto_discover=self._config.auto_discover,
            server_url=self._config.server_url,
        )

    async def discover(self, force: bool = False) -> DiscoveredPeer | None:
        """
        Discover the peer. Concurrent callers share one in-flight attempt.

        A forced call never joins an unforced attempt: that one may have
        started under old settings or taken the cache shortcut. It waits for
        it to finish, then runs its own scan. Forced calls join each other.

        Args:
            force: Skip the cached-peer shortcut and always scan.

        Returns:
            The discovered peer, or None if nothing answered.
        """
        while self._inflight is not None and not self._inflight.done():
            if self._inflight_forced or not force:
                logger.debug("Discovery already in flight, joining it")
                return await asyncio.shield(self._inflight)
            logger.debug("Forced discovery waiting for in-flight attempt")
            await asyncio.wait({self._inflight})

        self._inflight = asyncio.create_task(self._discover(force))
        self._inflight_forced = force
        try:
            return await asyncio.shield(self._inflight)
        finally:
            if self._inflight is not None and self._inflight.done():
                self._inflight = None

    async def _discover(self, force: bool) -> DiscoveredPeer | None:
        async with self._client() as client:
            pinned = self._settings().pinned_url
            if pinned:
                logger.info("Using pinned server URL: %s", pinned)
                peer = await self._probe(client, pinned, self._config.probe_timeout)
                if peer is None:
                    logger.warning("Pinned server URL not responding: %s", pinned)
                    return None
                self._state.set_peer(peer.url, peer.max_sessions)
                return peer

            cached = await self._check_cache(client, force)
            if cached is not None:
                return cached

            peer = await self._scan(client)
            if peer is None:
                logger.warning("Peer not found in port range")
                return None

            logger.info(
                "Peer discovered at: %s (limit: %d)",
                peer.url,
                peer.max_sessions,
                extra={"peer_url": peer.url},
            )
            self._state.set_peer(peer.url, peer.max_sessions)
            return peer

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=httpx.Timeout(self._config.probe_timeout),
        )

    async def _check_cache(
        self, client: httpx.AsyncClient, force: bool
    ) -> DiscoveredPeer | None:
        snapshot = self._state.get()
        if force or not snapshot.peer_url or snapshot.last_discovered_at is None:
            return None

        age = self._clock() - snapshot.last_discovered_at
        if age >= self._config.cache_ttl:
            logger.debug("Discovery cache expired (%.0fs old), rescanning", age)
            return None

        peer = await self._probe(
            client, snapshot.peer_url, self._config.liveness_timeout
        )
        if peer is None:
            logger.debug("Cached peer URL no longer responding, rescanning")
            return None

        max_sessions = (
            snapshot.max_concurrent_sessions or self._config.default_max_sessions
        )
        # Refresh the cache timestamp so the TTL runs from the last live check
        self._state.set_peer(snapshot.peer_url, max_sessions)
        return DiscoveredPeer(url=snapshot.peer_url, max_sessions=max_sessions)

    async def _scan(self, client: httpx.AsyncClient) -> DiscoveredPeer | None:
        candidates = self._config.candidates()
        results = await asyncio.gather(
            *(
                self._probe(client, url, self._config.probe_timeout)
                for url in candidates
            )
        )
        # gather preserves candidate order; pick the lowest-index success
        for result in results:
            if result is not None:
                return result
        return None

    async def _probe(
        self, client: httpx.AsyncClient, url: str, timeout: float
    ) -> DiscoveredPeer | None:
        """GET <url>/health and check the service name. Never raises."""
        try:
            response = await asyncio.wait_for(
                client.get(f"{url}/health", timeout=timeout), timeout
            )
            if not response.is_success:
                return None
            data = response.json()
        except (httpx.HTTPError, asyncio.TimeoutError, ValueError) as e:
            logger.debug("Probe failed for %s: %s", url, e)
            return None

        if not isinstance(data, dict) or data.get("service") != self._config.service_name:
            return None

        return DiscoveredPeer(url=url, max_sessions=self._max_sessions(data))

    def _max_sessions(self, data: dict[str, Any]) -> int:
        limits = data.get("limits")
        if isinstance(limits, dict):
            value = limits.get("maxStreams")
            if isinstance(value, int) and not isinstance(value, bool) and value > 0:
                return value
        return self._config.default_max_sessions
