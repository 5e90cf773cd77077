"""Connection routes: status, ensure, and manual control-connection requests."""

from __future__ import annotations

from castbridge.handlers.connection import ConnectionHandlers
from castbridge.messages import WsConnectMessage, WsReconnectMessage
from castbridge.router import MessageRouter


def register_connection_routes(
    router: MessageRouter, connection: ConnectionHandlers
) -> None:
    router.register("GET_CONNECTION_STATUS", lambda _msg: connection.get_status())
    router.register("GET_PEER_STATE", lambda _msg: connection.get_peer_state())

    async def _ensure(_msg):
        return await connection.ensure_connection()

    async def _connect(msg: WsConnectMessage):
        await connection.handle_ws_connect_request(msg.url, msg.max_streams)
        return {"success": True}

    async def _disconnect(_msg):
        await connection.disconnect()
        return {"success": True}

    async def _reconnect(msg: WsReconnectMessage):
        await connection.reconnect(msg.url)
        return {"success": True}

    router.register("ENSURE_CONNECTION", _ensure)
    router.register_validated("WS_CONNECT", WsConnectMessage, _connect)
    router.register("WS_DISCONNECT", _disconnect)
    router.register_validated("WS_RECONNECT", WsReconnectMessage, _reconnect)
