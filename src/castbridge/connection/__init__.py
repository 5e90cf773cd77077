"""
Connection Package — peer discovery and the connection snapshot.

- ConnectionStateStore: the single authoritative ConnectionState
- PeerStateStore: the peer's last speaker snapshot (groups, names)
- PeerDiscovery: pinned URL, cached-peer liveness, or full port scan
"""

from castbridge.connection.discovery import DiscoveredPeer, DiscoverySettings, PeerDiscovery
from castbridge.connection.peer_state import PeerStateStore
from castbridge.connection.state import ConnectionState, ConnectionStateStore, NetworkHealth

__all__ = [
    "ConnectionState",
    "ConnectionStateStore",
    "NetworkHealth",
    "PeerStateStore",
    "DiscoveredPeer",
    "DiscoverySettings",
    "PeerDiscovery",
]
