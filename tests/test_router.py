"""Tests for MessageRouter — registration, dispatch, validation, failures."""

import pytest
from pydantic import BaseModel, Field

from castbridge.core.errors import ERROR_MAX_SESSIONS, CastError, DuplicateRouteError
from castbridge.router import MessageRouter


class Ping(BaseModel):
    type: str
    count: int = Field(gt=0)


def test_duplicate_registration_fails_fast():
    router = MessageRouter()
    router.register("PING", lambda msg: "pong")
    with pytest.raises(DuplicateRouteError):
        router.register("PING", lambda msg: "again")
    with pytest.raises(DuplicateRouteError):
        router.register_validated("PING", Ping, lambda msg: "again")


def test_introspection():
    router = MessageRouter()
    router.register("A", lambda msg: None)
    router.register_validated("B", Ping, lambda msg: None)
    assert router.routes == ["A", "B"]
    assert router.has_route("B")
    assert not router.has_route("C")


@pytest.mark.asyncio
async def test_unknown_type_is_no_handler():
    router = MessageRouter()
    assert await router.dispatch({"type": "NOPE"}) is None
    assert await router.dispatch({"no": "type"}) is None


@pytest.mark.asyncio
async def test_sync_and_async_handlers():
    router = MessageRouter()

    async def async_handler(msg):
        return {"async": msg["type"]}

    router.register("SYNC", lambda msg: {"sync": True})
    router.register("ASYNC", async_handler)

    assert await router.dispatch({"type": "SYNC"}) == {"sync": True}
    assert await router.dispatch({"type": "ASYNC"}) == {"async": "ASYNC"}


@pytest.mark.asyncio
async def test_validated_handler_receives_model():
    router = MessageRouter()
    router.register_validated("PING", Ping, lambda msg: {"count": msg.count})
    assert await router.dispatch({"type": "PING", "count": 3}) == {"count": 3}


@pytest.mark.asyncio
async def test_validation_failure_never_calls_handler():
    router = MessageRouter()
    called = []
    router.register_validated("PING", Ping, called.append)

    result = await router.dispatch({"type": "PING", "count": 0})

    assert result["success"] is False
    assert "count" in result["error"]
    assert called == []


@pytest.mark.asyncio
async def test_cast_error_becomes_its_code():
    router = MessageRouter()

    def handler(msg):
        raise CastError(ERROR_MAX_SESSIONS)

    router.register("START", handler)
    assert await router.dispatch({"type": "START"}) == {
        "success": False,
        "error": ERROR_MAX_SESSIONS,
    }


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_failure(caplog):
    router = MessageRouter()

    async def handler(msg):
        raise RuntimeError("kaboom")

    router.register("BOOM", handler)
    assert await router.dispatch({"type": "BOOM"}) == {
        "success": False,
        "error": "kaboom",
    }
    assert "Handler for BOOM failed" in caplog.text
