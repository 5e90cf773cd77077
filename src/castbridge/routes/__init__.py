"""
Routes Package — request-name registrations grouped by area.

Each register_*_routes() binds names to handler methods on a MessageRouter.
The composition root calls each of them once, at startup.
"""

from castbridge.routes.cast_routes import register_cast_routes
from castbridge.routes.connection_routes import register_connection_routes
from castbridge.routes.context_routes import register_context_routes
from castbridge.routes.metadata_routes import register_metadata_routes

__all__ = [
    "register_cast_routes",
    "register_connection_routes",
    "register_context_routes",
    "register_metadata_routes",
]
