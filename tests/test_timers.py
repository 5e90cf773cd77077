"""Tests for the timer abstraction — manual and asyncio-backed."""

import asyncio

import pytest

from castbridge.core.timers import AsyncioTimerFactory, ManualTimerFactory


@pytest.mark.asyncio
async def test_manual_timer_fires_when_due():
    timers = ManualTimerFactory()
    fired = []

    async def cb():
        fired.append(timers.now)

    timers.call_later(0.3, cb)
    await timers.advance(0.2)
    assert fired == []
    await timers.advance(0.1)
    assert fired == [pytest.approx(0.3)]
    assert timers.pending == 0


@pytest.mark.asyncio
async def test_manual_timers_run_in_due_order():
    timers = ManualTimerFactory()
    order = []

    def record(name):
        async def cb():
            order.append(name)

        return cb

    timers.call_later(0.5, record("late"))
    timers.call_later(0.1, record("early"))
    timers.call_later(0.1, record("early-second"))
    await timers.advance(1.0)

    assert order == ["early", "early-second", "late"]
    assert timers.now == 1.0


@pytest.mark.asyncio
async def test_manual_timer_cancel():
    timers = ManualTimerFactory()
    fired = []

    async def cb():
        fired.append(True)

    handle = timers.call_later(0.1, cb)
    handle.cancel()
    await timers.advance(1.0)
    assert fired == []


def test_manual_factory_is_a_clock():
    timers = ManualTimerFactory(now=42.0)
    assert timers() == 42.0


@pytest.mark.asyncio
async def test_asyncio_timer_fires():
    done = asyncio.Event()

    async def cb():
        done.set()

    AsyncioTimerFactory().call_later(0.01, cb)
    await asyncio.wait_for(done.wait(), 1.0)


@pytest.mark.asyncio
async def test_asyncio_timer_cancel():
    fired = []

    async def cb():
        fired.append(True)

    handle = AsyncioTimerFactory().call_later(0.01, cb)
    handle.cancel()
    await asyncio.sleep(0.05)
    assert fired == []


@pytest.mark.asyncio
async def test_asyncio_timer_logs_callback_errors(caplog):
    done = asyncio.Event()

    async def cb():
        done.set()
        raise RuntimeError("boom")

    AsyncioTimerFactory().call_later(0, cb)
    await asyncio.wait_for(done.wait(), 1.0)
    await asyncio.sleep(0)
    assert "Timer callback failed" in caplog.text
