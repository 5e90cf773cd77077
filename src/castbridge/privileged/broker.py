"""
Context Broker — lifecycle and requests for the privileged context.

ensure() creates the context at most once at a time: concurrent callers
share the in-flight creation, then wait for its readiness signal (bounded by
a timeout so a context that never reports ready cannot hang a request).

query_status() is what the recovery protocol uses: a missing context, an
error, or a timeout all come back as None ("absent").
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from castbridge.core.errors import ContextUnavailableError
from castbridge.privileged.interface import PeerStatus, PrivilegedContext

logger = logging.getLogger(__name__)


def to_ws_url(peer_url: str) -> str:
    """http://host:port -> ws://host:port/ws"""
    base = peer_url.rstrip("/")
    if base.startswith("http"):
        base = "ws" + base[len("http") :]
    return base + "/ws"


def to_http_url(url: str) -> str:
    """Inverse of to_ws_url; plain http URLs pass through."""
    base = url.rstrip("/")
    if base.endswith("/ws"):
        base = base[: -len("/ws")]
    if base.startswith("ws"):
        base = "http" + base[len("ws") :]
    return base


class ContextBroker:
    """Creates, awaits, and talks to the privileged context."""

    def __init__(self, context: PrivilegedContext, ready_timeout: float = 5.0) -> None:
        self._context = context
        self._ready_timeout = ready_timeout
        self._creation: asyncio.Task[None] | None = None
        self._ready: asyncio.Event | None = None

    @property
    def context(self) -> PrivilegedContext:
        return self._context

    async def exists(self) -> bool:
        try:
            return await self._context.exists()
        except Exception as e:
            logger.warning("Could not check for privileged context: %s", e)
            return False

    async def ensure(self) -> None:
        """
        Make sure the context exists and has signalled readiness.

        Raises ContextUnavailableError if creation fails or readiness times out.
        """
        if self._creation is not None:
            await asyncio.shield(self._creation)
            return

        self._creation = asyncio.create_task(self._ensure())
        try:
            await asyncio.shield(self._creation)
        finally:
            self._creation = None

    async def _ensure(self) -> None:
        if await self.exists():
            return

        # Arm the ready signal before creating so a fast signal is not missed
        self._ready = asyncio.Event()
        try:
            await self._context.create()
            await asyncio.wait_for(self._ready.wait(), self._ready_timeout)
        except asyncio.TimeoutError as e:
            raise ContextUnavailableError("Privileged context ready timeout") from e
        except ContextUnavailableError:
            raise
        except Exception as e:
            raise ContextUnavailableError(f"Privileged context creation failed: {e}") from e
        finally:
            self._ready = None
        logger.info("Privileged context created and ready")

    def mark_ready(self) -> None:
        """Readiness signal from the context."""
        logger.info("Privileged context ready")
        if self._ready is not None:
            self._ready.set()

    async def query_status(self, timeout: float) -> PeerStatus | None:
        """GetStatus with a timeout. None means treat the context as absent."""
        if not await self.exists():
            return None
        try:
            return await asyncio.wait_for(self._context.get_status(), timeout)
        except asyncio.TimeoutError:
            logger.warning("Privileged context status query timed out after %.1fs", timeout)
            return None
        except Exception as e:
            logger.warning("Privileged context status query failed: %s", e)
            return None

    async def connect_peer(self, peer_url: str) -> None:
        """Ensure the context, then ask it to open the control connection."""
        await self.ensure()
        ws_url = to_ws_url(peer_url)
        logger.info("Connecting control socket to: %s", ws_url, extra={"peer_url": peer_url})
        await self._context.connect(ws_url)

    async def disconnect(self) -> None:
        if await self.exists():
            await self._context.disconnect()

    async def reconnect(self, peer_url: str | None = None) -> None:
        await self._context.reconnect(to_ws_url(peer_url) if peer_url else None)

    async def send(self, message: dict[str, Any]) -> Any:
        await self.ensure()
        return await self._context.send(message)
