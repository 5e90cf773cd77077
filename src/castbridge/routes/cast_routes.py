"""Cast routes: start, stop, and list active casts."""

from __future__ import annotations

from castbridge.handlers.cast import CastHandlers
from castbridge.messages import StartCastMessage, StopCastMessage
from castbridge.router import MessageRouter


def register_cast_routes(router: MessageRouter, cast: CastHandlers) -> None:
    async def _start(msg: StartCastMessage):
        return await cast.start_cast(msg.payload)

    async def _stop(msg: StopCastMessage):
        return await cast.stop_cast(msg.payload.source_id if msg.payload else None)

    router.register_validated("START_CAST", StartCastMessage, _start)
    router.register_validated("STOP_CAST", StopCastMessage, _stop)
    router.register("GET_ACTIVE_CASTS", lambda _msg: cast.get_active_casts())
