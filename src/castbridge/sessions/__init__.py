"""
Sessions Package — active cast sessions and the keep-awake they hold.
"""

from castbridge.sessions.models import CastSession, OriginalGroup, migrate_stored_session
from castbridge.sessions.power import LoggingWakeLock, WakeLock
from castbridge.sessions.registry import SessionRegistry

__all__ = [
    "CastSession",
    "OriginalGroup",
    "migrate_stored_session",
    "SessionRegistry",
    "WakeLock",
    "LoggingWakeLock",
]
