"""
Context routes — pushes from the privileged context.

The context reports connection changes, network health, peer events, and
its own readiness through these.
"""

from __future__ import annotations

from castbridge.handlers.cast import CastHandlers
from castbridge.handlers.connection import ConnectionHandlers
from castbridge.messages import (
    NetworkEventMessage,
    SpeakerEventMessage,
    StreamEndedMessage,
    TopologyEventMessage,
    WsConnectedMessage,
)
from castbridge.privileged.broker import ContextBroker
from castbridge.router import MessageRouter


def _ok() -> dict[str, bool]:
    return {"success": True}


def register_context_routes(
    router: MessageRouter,
    connection: ConnectionHandlers,
    cast: CastHandlers,
    broker: ContextBroker,
) -> None:
    async def _connected(msg: WsConnectedMessage):
        await connection.handle_ws_connected(msg.state)
        return _ok()

    async def _disconnected(_msg):
        await connection.handle_ws_temporarily_disconnected()
        return _ok()

    async def _permanently_disconnected(_msg):
        await connection.handle_ws_permanently_disconnected()
        return _ok()

    async def _network(msg: NetworkEventMessage):
        await connection.handle_network_event(msg.payload.model_dump(exclude_none=True))
        return _ok()

    async def _speaker(msg: SpeakerEventMessage):
        await cast.handle_speaker_event(msg.payload)
        return _ok()

    async def _topology(msg: TopologyEventMessage):
        await connection.handle_topology_event(msg.payload)
        return _ok()

    async def _stream_ended(msg: StreamEndedMessage):
        await cast.handle_stream_ended(msg.stream_id)
        return _ok()

    def _ready(_msg):
        broker.mark_ready()
        return _ok()

    router.register_validated("WS_CONNECTED", WsConnectedMessage, _connected)
    router.register("WS_DISCONNECTED", _disconnected)
    router.register("WS_PERMANENTLY_DISCONNECTED", _permanently_disconnected)
    router.register_validated("NETWORK_EVENT", NetworkEventMessage, _network)
    router.register_validated("SPEAKER_EVENT", SpeakerEventMessage, _speaker)
    router.register_validated("TOPOLOGY_EVENT", TopologyEventMessage, _topology)
    router.register_validated("STREAM_ENDED", StreamEndedMessage, _stream_ended)
    router.register("OFFSCREEN_READY", _ready)
