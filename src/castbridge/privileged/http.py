"""HttpPrivilegedContext — the privileged context contract over JSON/HTTP.

The context runs as its own process and exposes:
    GET  {base}/health  -> 200 when running
    POST {base}/rpc     -> {"type": "...", ...} request, JSON response

It is started by its host, not by us, so create() only waits for it to come
up; the readiness signal still arrives as an OFFSCREEN_READY push.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from castbridge.core.errors import ContextUnavailableError
from castbridge.privileged.interface import PeerStatus, PrivilegedContext

logger = logging.getLogger(__name__)


class HttpPrivilegedContext(PrivilegedContext):
    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport, timeout=httpx.Timeout(self._timeout)
        )

    async def exists(self) -> bool:
        if not self._base:
            return False
        try:
            async with self._client() as client:
                resp = await client.get(f"{self._base}/health")
            return resp.is_success
        except httpx.HTTPError:
            return False

    async def create(self) -> None:
        if not await self.exists():
            raise ContextUnavailableError(
                f"Privileged context not reachable at {self._base or '(unset)'}"
            )

    async def _rpc(self, message: dict[str, Any]) -> Any:
        if not self._base:
            raise ContextUnavailableError("Privileged context URL not configured")
        try:
            async with self._client() as client:
                resp = await client.post(f"{self._base}/rpc", json=message)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise ContextUnavailableError(
                f"{message.get('type')} request failed: {e}"
            ) from e
        if not resp.content:
            return None
        return resp.json()

    async def get_status(self) -> PeerStatus:
        data = await self._rpc({"type": "GET_WS_STATUS"})
        return PeerStatus.from_dict(data if isinstance(data, dict) else {})

    async def connect(self, ws_url: str) -> None:
        await self._rpc({"type": "WS_CONNECT", "url": ws_url})

    async def disconnect(self) -> None:
        await self._rpc({"type": "WS_DISCONNECT"})

    async def reconnect(self, ws_url: str | None = None) -> None:
        message: dict[str, Any] = {"type": "WS_RECONNECT"}
        if ws_url:
            message["url"] = ws_url
        await self._rpc(message)

    async def send(self, message: dict[str, Any]) -> Any:
        return await self._rpc(message)
