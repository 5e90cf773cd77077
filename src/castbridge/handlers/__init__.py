"""
Handlers Package — domain logic behind each request name.

- ConnectionHandlers: discovery, control connection, context pushes
- CastHandlers: start/stop casts, peer-side stream and speaker events
- MetadataHandlers: media state reported by sources
"""

from castbridge.handlers.cast import CastHandlers
from castbridge.handlers.connection import ConnectionHandlers
from castbridge.handlers.metadata import MetadataHandlers

__all__ = [
    "CastHandlers",
    "ConnectionHandlers",
    "MetadataHandlers",
]
