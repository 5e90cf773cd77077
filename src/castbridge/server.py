"""
HTTP bus adapter — exposes Background over FastAPI.

    POST /message  -> Background.on_message(body)
    GET  /events   -> SSE stream: a snapshot, then every event bus publish
    GET  /health   -> recovery phase + connection snapshot

Run: uv run uvicorn castbridge.server:create_app --factory --port 8765
  or: castbridge  (console script, reads CASTBRIDGE_HOST / CASTBRIDGE_PORT)
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from castbridge import __version__
from castbridge.background import Background
from castbridge.core.config import config
from castbridge.core.event_bus import ALL_TOPICS
from castbridge.core.logging import setup_logging

logger = logging.getLogger("castbridge")


def _sse(event: str, data: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


async def event_stream(
    bg: Background, limit: int | None = None
) -> AsyncGenerator[str, None]:
    """
    SSE events for observers: one "snapshot" with the current state, then
    each bus publish named by its topic. Ends after `limit` events, or when
    the bus signals end-of-stream on shutdown.
    """
    queue = bg.bus.subscribe(ALL_TOPICS)
    sent = 0
    try:
        yield _sse(
            "snapshot",
            {
                "connection": bg.state.get().to_dict(),
                "casts": bg.registry.active_casts(),
                "peerState": bg.peer_state.get(),
            },
        )
        sent += 1
        if limit is not None and sent >= limit:
            return

        async for topic, event in bg.bus.listen(queue):
            yield _sse(topic, event)
            sent += 1
            if limit is not None and sent >= limit:
                return
    finally:
        bg.bus.unsubscribe(ALL_TOPICS, queue)


def create_app(background: Background | None = None) -> FastAPI:
    bg = background or Background()

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        await bg.start()
        logger.info("CastBridge ready (phase=%s)", bg.recovery.phase.value)
        try:
            yield
        finally:
            await bg.bus.publish_end(ALL_TOPICS)
            await bg.shutdown()

    app = FastAPI(title="CastBridge", version=__version__, lifespan=lifespan)
    app.state.background = bg

    @app.post("/message")
    async def message(request: Request):
        try:
            body: Any = await request.json()
        except ValueError:
            return JSONResponse(
                {"success": False, "error": "Request body must be JSON"},
                status_code=400,
            )
        if not isinstance(body, dict) or not isinstance(body.get("type"), str):
            return JSONResponse(
                {"success": False, "error": "Request must be an object with a type"},
                status_code=400,
            )

        result = await bg.on_message(body)
        if result is None:
            return JSONResponse(
                {"success": False, "error": f"No handler for {body['type']}"},
                status_code=404,
            )
        return JSONResponse(result)

    @app.get("/events")
    async def events(limit: int | None = None) -> StreamingResponse:
        """SSE stream of observer notifications."""
        return StreamingResponse(
            event_stream(bg, limit),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            },
        )

    @app.get("/health")
    async def health():
        """Health check — recovery phase and connection snapshot."""
        return JSONResponse(
            {
                "status": "ok" if bg.recovery.is_ready else "starting",
                "phase": bg.recovery.phase.value,
                "connection": bg.state.get().to_dict(),
                "sessions": bg.registry.count,
                "wakeLock": bg.wake_lock.held,
            }
        )

    return app


def main() -> None:
    import uvicorn

    setup_logging()
    uvicorn.run(
        create_app(),
        host=config.server.host,
        port=config.server.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
