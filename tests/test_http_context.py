"""Tests for HttpPrivilegedContext against a mocked context process."""

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from castbridge.core.errors import ContextUnavailableError
from castbridge.privileged.broker import ContextBroker
from castbridge.privileged.http import HttpPrivilegedContext

BASE = "http://127.0.0.1:8790"


def context_transport(rpc, healthy=True, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/health":
            return httpx.Response(200 if healthy else 503)
        body = json.loads(request.content)
        if seen is not None:
            seen.append(body)
        return httpx.Response(200, json=rpc(body))

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_exists_reflects_health():
    up = HttpPrivilegedContext(BASE, transport=context_transport(lambda _b: {}))
    down = HttpPrivilegedContext(
        BASE, transport=context_transport(lambda _b: {}, healthy=False)
    )
    assert await up.exists() is True
    assert await down.exists() is False


@pytest.mark.asyncio
async def test_unconfigured_context_is_absent():
    context = HttpPrivilegedContext("")
    assert await context.exists() is False
    with pytest.raises(ContextUnavailableError):
        await context.create()


@pytest.mark.asyncio
async def test_get_status_parses_reply():
    context = HttpPrivilegedContext(
        BASE,
        transport=context_transport(
            lambda _b: {"connected": True, "url": "ws://localhost:49400/ws"}
        ),
    )
    status = await context.get_status()
    assert status.connected is True
    assert status.peer_url == "ws://localhost:49400/ws"


@pytest.mark.asyncio
async def test_requests_are_posted_as_rpc():
    seen = []
    context = HttpPrivilegedContext(
        BASE, transport=context_transport(lambda _b: {"success": True}, seen=seen)
    )

    await context.connect("ws://localhost:49400/ws")
    await context.reconnect()
    reply = await context.send({"type": "STOP_CAPTURE", "payload": {"sourceId": 1}})

    assert reply == {"success": True}
    assert seen == [
        {"type": "WS_CONNECT", "url": "ws://localhost:49400/ws"},
        {"type": "WS_RECONNECT"},
        {"type": "STOP_CAPTURE", "payload": {"sourceId": 1}},
    ]


@pytest.mark.asyncio
async def test_transport_error_becomes_unavailable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    context = HttpPrivilegedContext(BASE, transport=httpx.MockTransport(handler))
    with pytest.raises(ContextUnavailableError):
        await context.send({"type": "START_CAPTURE"})


@pytest.mark.asyncio
async def test_broker_treats_failing_status_as_absent():
    context = HttpPrivilegedContext(BASE)
    context.exists = AsyncMock(return_value=True)
    context.get_status = AsyncMock(side_effect=ContextUnavailableError("down"))

    assert await ContextBroker(context).query_status(timeout=0.1) is None
    context.get_status.assert_awaited_once()
