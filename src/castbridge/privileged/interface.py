"""
Privileged Context Interface — the longer-lived process that owns the socket.

It holds the live connection to the peer and runs capture/encoding. This
package only talks to it through the request/response contract below; the
context pushes events back through the message router (WS_CONNECTED,
WS_DISCONNECTED, WS_PERMANENTLY_DISCONNECTED, SPEAKER_EVENT, OFFSCREEN_READY).

Implementations:
- HttpPrivilegedContext: JSON requests over HTTP (castbridge.privileged.http)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class PeerStatus:
    """GetStatus response."""

    connected: bool
    peer_url: str | None = None
    # State the context cached independently (speaker groups, network health)
    cached_peer_state: dict[str, Any] | None = field(default=None)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PeerStatus:
        state = data.get("state")
        return cls(
            connected=bool(data.get("connected", False)),
            peer_url=data.get("url") or data.get("peerUrl"),
            cached_peer_state=state if isinstance(state, dict) else None,
        )


class PrivilegedContext(ABC):
    """Request/response contract of the privileged execution context."""

    @abstractmethod
    async def exists(self) -> bool:
        """Whether a context is currently running."""
        ...

    @abstractmethod
    async def create(self) -> None:
        """
        Spawn the context. It signals readiness separately (OFFSCREEN_READY),
        so returning from create() does not mean it can take requests yet.
        """
        ...

    @abstractmethod
    async def get_status(self) -> PeerStatus: ...

    @abstractmethod
    async def connect(self, ws_url: str) -> None: ...

    @abstractmethod
    async def disconnect(self) -> None: ...

    @abstractmethod
    async def reconnect(self, ws_url: str | None = None) -> None: ...

    @abstractmethod
    async def send(self, message: dict[str, Any]) -> Any:
        """Send any other request (capture and playback control)."""
        ...
