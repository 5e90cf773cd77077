"""
Privileged Package — the execution context that owns the live socket.

- PrivilegedContext: request/response contract (ABC)
- HttpPrivilegedContext: that contract over JSON/HTTP
- ContextBroker: single-flight creation, readiness wait, status queries
"""

from castbridge.privileged.broker import ContextBroker
from castbridge.privileged.http import HttpPrivilegedContext
from castbridge.privileged.interface import PeerStatus, PrivilegedContext

__all__ = [
    "PrivilegedContext",
    "PeerStatus",
    "HttpPrivilegedContext",
    "ContextBroker",
]
