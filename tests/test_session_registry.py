"""Tests for SessionRegistry — invariants, wake lock, persistence, restore."""

import logging

import pytest

from castbridge.core.event_bus import SESSIONS_CHANGED
from castbridge.media.cache import MediaCache
from castbridge.sessions.models import OriginalGroup
from castbridge.sessions.power import LoggingWakeLock
from castbridge.sessions.registry import STORAGE_KEY, SessionRegistry

IP_A = "192.168.1.10"
IP_B = "192.168.1.11"


@pytest.fixture
def wake_lock():
    return LoggingWakeLock()


@pytest.fixture
def media(persistence, timers):
    return MediaCache(persistence, clock=timers)


@pytest.fixture
def registry(persistence, wake_lock, bus, media, timers):
    return SessionRegistry(persistence, wake_lock, bus, media, clock=timers)


def _assert_invariants(registry, wake_lock):
    sessions = registry.list()
    for session in sessions:
        assert session.speaker_ips
        assert len(session.speaker_ips) == len(session.speaker_names)
    stream_ids = [s.stream_id for s in sessions]
    assert len(stream_ids) == len(set(stream_ids))
    assert wake_lock.held == (len(registry) > 0)


@pytest.mark.asyncio
async def test_register_and_query(registry, wake_lock):
    session = await registry.register(1, "s-1", [IP_A, IP_B], ["Den", "Office"], {"c": 1})

    assert session.source_id == 1
    assert registry.has(1)
    assert registry.get(1).stream_id == "s-1"
    assert registry.find_by_speaker_ip(IP_B).source_id == 1
    assert registry.find_by_stream_id("s-1").source_id == 1
    assert registry.count == 1
    assert registry.source_ids() == [1]
    _assert_invariants(registry, wake_lock)


@pytest.mark.asyncio
async def test_register_validates_before_mutating(registry, wake_lock):
    with pytest.raises(ValueError):
        await registry.register(1, "s-1", [IP_A], [], None)
    with pytest.raises(ValueError):
        await registry.register(1, "s-1", [], [], None)

    assert len(registry) == 0
    assert not wake_lock.held


@pytest.mark.asyncio
async def test_wake_lock_follows_empty_transitions(persistence, bus, timers):
    calls = []
    wake_lock = LoggingWakeLock(
        acquire_fn=lambda: calls.append("acquire"),
        release_fn=lambda: calls.append("release"),
    )
    registry = SessionRegistry(persistence, wake_lock, bus, clock=timers)

    await registry.register(1, "s-1", [IP_A], ["Den"], None)
    await registry.register(2, "s-2", [IP_B], ["Office"], None)
    await registry.remove(1)
    assert wake_lock.held
    await registry.remove(2)

    assert calls == ["acquire", "release"]
    _assert_invariants(registry, wake_lock)


@pytest.mark.asyncio
async def test_remove_only_speaker_ends_session(registry, wake_lock):
    await registry.register(1, "s-1", [IP_A], ["Den"], None)

    assert await registry.remove_speaker(1, IP_A) is True
    assert not registry.has(1)
    assert not wake_lock.held


@pytest.mark.asyncio
async def test_remove_speaker_splices_both_arrays_and_groups(registry, wake_lock):
    await registry.register(1, "s-1", [IP_A, IP_B], ["Den", "Office"], None, True)
    await registry.set_original_groups(
        1,
        [OriginalGroup("RINCON_A", (IP_A,)), OriginalGroup("RINCON_B", (IP_B,))],
    )
    assert registry.original_group_for_speaker(1, IP_A) == "RINCON_A"

    assert await registry.remove_speaker(1, IP_A) is True

    session = registry.get(1)
    assert session.speaker_ips == [IP_B]
    assert session.speaker_names == ["Office"]
    assert session.original_groups == [OriginalGroup("RINCON_B", (IP_B,))]
    assert registry.original_group_for_speaker(1, IP_A) is None
    _assert_invariants(registry, wake_lock)


@pytest.mark.asyncio
async def test_remove_speaker_unknown(registry):
    assert await registry.remove_speaker(99, IP_A) is False
    await registry.register(1, "s-1", [IP_A], ["Den"], None)
    assert await registry.remove_speaker(1, IP_B) is False


@pytest.mark.asyncio
async def test_same_source_last_write_wins(registry, wake_lock, caplog):
    await registry.register(1, "s-1", [IP_A], ["Den"], None)
    await registry.register(1, "s-2", [IP_B], ["Office"], None)

    assert registry.count == 1
    assert registry.get(1).stream_id == "s-2"
    assert "Replacing existing session for source 1" in caplog.text
    _assert_invariants(registry, wake_lock)


@pytest.mark.asyncio
async def test_duplicate_stream_id_evicts_other_source(registry, wake_lock):
    await registry.register(1, "s-1", [IP_A], ["Den"], None)
    await registry.register(2, "s-1", [IP_B], ["Office"], None)

    assert registry.source_ids() == [2]
    _assert_invariants(registry, wake_lock)


@pytest.mark.asyncio
async def test_getters_return_copies(registry):
    await registry.register(1, "s-1", [IP_A], ["Den"], None)
    registry.get(1).speaker_ips.append(IP_B)
    registry.list()[0].speaker_names.clear()

    assert registry.get(1).speaker_ips == [IP_A]
    assert registry.get(1).speaker_names == ["Den"]


@pytest.mark.asyncio
async def test_every_mutation_persists_immediately(registry, backend):
    await registry.register(1, "s-1", [IP_A], ["Den"], {"codec": "aac"})
    stored = await backend.get(STORAGE_KEY)
    assert stored[0][0] == 1
    assert stored[0][1]["speakerIps"] == [IP_A]

    await registry.remove(1)
    assert await backend.get(STORAGE_KEY) == []


@pytest.mark.asyncio
async def test_mutations_publish_enriched_casts(registry, bus, media):
    queue = bus.subscribe(SESSIONS_CHANGED)
    media.update(1, {"title": "Lo-fi beats", "source": "YouTube"}, {"artist": "x"})

    await registry.register(1, "s-1", [IP_A], ["Den"], None)

    event = queue.get_nowait()
    cast = event["casts"][0]
    assert cast["sourceId"] == 1
    assert cast["mediaState"]["title"] == "Lo-fi beats"
    assert cast["speakerNames"] == ["Den"]


@pytest.mark.asyncio
async def test_active_casts_fallback_media_state(registry):
    await registry.register(5, "s-5", [IP_A], ["Den"], None)
    assert registry.active_casts()[0]["mediaState"]["title"] == "Unknown Tab"


@pytest.mark.asyncio
async def test_metadata_update_notifies_only_for_casting_sources(registry, bus):
    await registry.register(1, "s-1", [IP_A], ["Den"], None)
    queue = bus.subscribe(SESSIONS_CHANGED)

    await registry.on_metadata_update(2)
    assert queue.empty()
    await registry.on_metadata_update(1)
    assert not queue.empty()


@pytest.mark.asyncio
async def test_clear_all(registry, wake_lock, backend):
    await registry.register(1, "s-1", [IP_A], ["Den"], None)
    await registry.register(2, "s-2", [IP_B], ["Office"], None)

    await registry.clear_all()

    assert len(registry) == 0
    assert not wake_lock.held
    assert await backend.get(STORAGE_KEY) == []


@pytest.mark.asyncio
async def test_restore_migrates_and_drops_invalid(
    persistence, backend, bus, timers, caplog
):
    caplog.set_level(logging.INFO)
    await backend.set(
        STORAGE_KEY,
        [
            [1, {"streamId": "s-1", "speakerIp": IP_A, "speakerName": "Den"}],
            [2, {"streamId": "s-2", "speakerIps": [IP_B], "speakerNames": []}],
            [3, {"speakerIps": [IP_B], "speakerNames": ["x"]}],
        ],
    )
    wake_lock = LoggingWakeLock()
    registry = SessionRegistry(persistence, wake_lock, bus, clock=timers)

    await persistence.restore_all()

    assert registry.source_ids() == [1]
    assert registry.get(1).speaker_ips == [IP_A]
    assert registry.get(1).sync_speakers is False
    assert wake_lock.held
    assert caplog.text.count("Migrated session for source 1") == 1
    assert "Dropping invalid stored session" in caplog.text


@pytest.mark.asyncio
async def test_restore_empty_keeps_wake_lock_released(persistence, bus, timers):
    wake_lock = LoggingWakeLock()
    SessionRegistry(persistence, wake_lock, bus, clock=timers)
    await persistence.restore_all()
    assert not wake_lock.held


@pytest.mark.asyncio
async def test_wake_lock_failure_is_swallowed(persistence, bus, timers, caplog):
    def fail():
        raise OSError("no power api")

    wake_lock = LoggingWakeLock(acquire_fn=fail)
    registry = SessionRegistry(persistence, wake_lock, bus, clock=timers)
    await registry.register(1, "s-1", [IP_A], ["Den"], None)

    assert registry.has(1)
    assert "Failed to request keep-awake" in caplog.text
