"""
CastBridge — control-plane state for casting audio sources to network speakers.

A long-running coordinator that discovers the companion application on
localhost, tracks the connection to it, keeps the registry of active cast
sessions, and survives its own restarts by persisting state and reconciling
with the privileged context that owns the live socket.

Entry point: castbridge.background.Background
"""

__version__ = "0.3.0"
