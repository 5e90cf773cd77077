"""
Shared fixtures for castbridge tests.

Everything runs against in-memory storage, a manual clock, a scripted
privileged context, and an httpx.MockTransport standing in for the peer, so
no test touches the network or sleeps on the wall clock.
"""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from castbridge.background import Background
from castbridge.core.config import CastBridgeConfig, DiscoveryConfig
from castbridge.core.event_bus import EventBus
from castbridge.core.timers import ManualTimerFactory
from castbridge.privileged.interface import PeerStatus, PrivilegedContext
from castbridge.storage.backend import MemoryStorage
from castbridge.storage.persistence import PersistenceManager

SERVICE = "thaumic-cast-desktop"
T0 = 1_700_000_000.0


# ── Fake privileged context ────────────────────────────────


class FakeContext(PrivilegedContext):
    """
    Scripted privileged context.

    Records every request in `calls`. `replies` maps a request type to the
    value send() returns (or an exception to raise).
    """

    def __init__(
        self,
        running: bool = False,
        status: PeerStatus | None = None,
    ):
        self.running = running
        self.status = status or PeerStatus(connected=False)
        self.replies: dict[str, Any] = {}
        self.calls: list[tuple[str, Any]] = []
        self.on_create: Callable[[], None] | None = None
        self.create_count = 0
        self.status_error: Exception | None = None

    async def exists(self) -> bool:
        return self.running

    async def create(self) -> None:
        self.create_count += 1
        self.running = True
        if self.on_create is not None:
            self.on_create()

    async def get_status(self) -> PeerStatus:
        self.calls.append(("get_status", None))
        if self.status_error is not None:
            raise self.status_error
        return self.status

    async def connect(self, ws_url: str) -> None:
        self.calls.append(("connect", ws_url))

    async def disconnect(self) -> None:
        self.calls.append(("disconnect", None))

    async def reconnect(self, ws_url: str | None = None) -> None:
        self.calls.append(("reconnect", ws_url))

    async def send(self, message: dict[str, Any]) -> Any:
        self.calls.append((message["type"], message.get("payload")))
        reply = self.replies.get(message["type"])
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(message)
        return reply

    def sent(self, kind: str) -> list[Any]:
        return [payload for name, payload in self.calls if name == kind]


# ── Mock peer over HTTP ────────────────────────────────────


def peer_transport(
    ports: dict[int, dict[str, Any] | None] | None = None,
    seen: list[str] | None = None,
) -> httpx.MockTransport:
    """
    MockTransport answering /health on the given ports.

    ports maps port -> health body (None = the default healthy body). Every
    other port refuses the connection.
    """
    ports = ports or {}

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(str(request.url))
        port = request.url.port
        if port not in ports:
            raise httpx.ConnectError("connection refused", request=request)
        body = ports[port]
        if body is None:
            body = {"service": SERVICE, "limits": {"maxStreams": 5}}
        return httpx.Response(200, json=body)

    return httpx.MockTransport(handler)


def healthy(max_streams: int = 5, service: str = SERVICE) -> dict[str, Any]:
    return {"service": service, "limits": {"maxStreams": max_streams}}


# ── Fixtures ───────────────────────────────────────────────


@pytest.fixture
def timers() -> ManualTimerFactory:
    return ManualTimerFactory(now=T0)


@pytest.fixture
def backend() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def persistence(backend, timers) -> PersistenceManager:
    return PersistenceManager(backend, timers)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def context() -> FakeContext:
    return FakeContext()


@pytest.fixture
def test_config() -> CastBridgeConfig:
    return CastBridgeConfig(discovery=DiscoveryConfig(port_start=49400, port_end=49410))


@pytest.fixture
def make_background(test_config, backend, timers, context):
    """Build a Background around the shared fakes. Pass transport= for a peer."""

    def _make(transport: httpx.AsyncBaseTransport | None = None, **overrides) -> Background:
        kwargs = dict(
            cfg=test_config,
            backend=backend,
            context=context,
            timers=timers,
            clock=timers,
            transport=transport or peer_transport(),
        )
        kwargs.update(overrides)
        return Background(**kwargs)

    return _make
