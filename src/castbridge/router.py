"""
Message Router — maps request names to handlers.

Registration is append-only: registering a name twice is a wiring bug and
raises DuplicateRouteError at startup, not at dispatch time.

dispatch() never raises for a handler failure. Results are one of:
- None                               — no handler for this name
- the handler's return value         — success
- {"success": False, "error": code}  — validation failed, or the handler
                                       raised (CastError carries its code)
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Union

from pydantic import BaseModel, ValidationError

from castbridge.core.errors import CastError, DuplicateRouteError

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Union[Any, Awaitable[Any]]]


def failure(error: str) -> dict[str, Any]:
    return {"success": False, "error": error}


class MessageRouter:
    """Routes inbound requests by their "type" field."""

    def __init__(self) -> None:
        self._handlers: dict[str, Handler] = {}

    def register(self, name: str, handler: Handler) -> None:
        """Register a handler that receives the raw request dict."""
        if name in self._handlers:
            raise DuplicateRouteError(f"Handler already registered for: {name}")
        self._handlers[name] = handler

    def register_validated(
        self, name: str, model: type[BaseModel], handler: Handler
    ) -> None:
        """
        Register a handler that receives the request parsed into `model`.

        A request that fails validation gets a failure result and the
        handler is never called.
        """

        async def _validated(request: dict[str, Any]) -> Any:
            try:
                message = model.model_validate(request)
            except ValidationError as e:
                logger.warning("Invalid %s request: %s", name, e.errors()[0]["msg"])
                return failure(f"Invalid {name} request: {_first_error(e)}")
            result = handler(message)
            if inspect.isawaitable(result):
                result = await result
            return result

        self.register(name, _validated)

    def has_route(self, name: str) -> bool:
        return name in self._handlers

    @property
    def routes(self) -> list[str]:
        return list(self._handlers)

    async def dispatch(self, request: dict[str, Any]) -> Any:
        """Run the handler for request["type"]."""
        name = request.get("type") if isinstance(request, dict) else None
        handler = self._handlers.get(name) if isinstance(name, str) else None
        if handler is None:
            logger.debug("No handler for message type: %s", name)
            return None

        try:
            result = handler(request)
            if inspect.isawaitable(result):
                result = await result
            return result
        except CastError as e:
            logger.warning("%s failed: %s", name, e.code)
            return failure(e.code)
        except Exception as e:
            logger.exception("Handler for %s failed", name)
            return failure(str(e))


def _first_error(e: ValidationError) -> str:
    err = e.errors()[0]
    location = ".".join(str(part) for part in err.get("loc", ()))
    return f"{location}: {err['msg']}" if location else err["msg"]
