"""Tests for PeerStateStore — the persisted speaker snapshot."""

import pytest

from castbridge.connection.peer_state import STORAGE_KEY, PeerStateStore
from castbridge.storage.persistence import PersistenceManager

GROUPS = [
    {"coordinatorIp": "10.0.0.5", "name": "Patio"},
    {"coordinatorIp": "10.0.0.6", "name": ""},
]


def test_speaker_name_falls_back_to_ip(persistence):
    store = PeerStateStore(persistence)
    store.update_groups(GROUPS)

    assert store.speaker_name("10.0.0.5") == "Patio"
    assert store.speaker_name("10.0.0.6") == "10.0.0.6"
    assert store.speaker_name("10.0.0.7") == "10.0.0.7"


def test_get_returns_a_copy(persistence):
    store = PeerStateStore(persistence)
    store.update_groups(GROUPS)

    store.get()["groups"].clear()
    assert store.has_groups


def test_set_fills_missing_sections(persistence):
    store = PeerStateStore(persistence)
    snapshot = store.set({"groups": GROUPS, "transportStates": {"10.0.0.5": "PLAYING"}})

    assert snapshot["groupVolumes"] == {}
    assert snapshot["groupMutes"] == {}
    assert snapshot["transportStates"] == {"10.0.0.5": "PLAYING"}


@pytest.mark.asyncio
async def test_write_is_debounced(persistence, backend, timers):
    store = PeerStateStore(persistence, debounce_ms=500)
    store.update_groups(GROUPS)

    await timers.advance(0.4)
    assert await backend.get(STORAGE_KEY) is None

    await timers.advance(0.2)
    assert (await backend.get(STORAGE_KEY))["groups"] == GROUPS


@pytest.mark.asyncio
async def test_names_survive_restart(persistence, backend, timers):
    store = PeerStateStore(persistence)
    store.update_groups(GROUPS)
    await store.flush()

    manager = PersistenceManager(backend, timers)
    restarted = PeerStateStore(manager)
    assert restarted.speaker_name("10.0.0.5") == "10.0.0.5"

    await manager.restore_all()
    assert restarted.speaker_name("10.0.0.5") == "Patio"


@pytest.mark.asyncio
async def test_malformed_groups_are_dropped_on_restore(backend, timers, caplog):
    await backend.set(STORAGE_KEY, {"groups": "Patio", "groupMutes": {"g1": True}})
    manager = PersistenceManager(backend, timers)
    store = PeerStateStore(manager)

    await manager.restore_all()

    assert store.has_groups is False
    assert store.get()["groupMutes"] == {"g1": True}
    assert "malformed groups" in caplog.text


@pytest.mark.asyncio
async def test_non_object_restores_nothing(backend, timers):
    await backend.set(STORAGE_KEY, ["not", "a", "snapshot"])
    manager = PersistenceManager(backend, timers)
    store = PeerStateStore(manager)

    await manager.restore_all()
    assert store.get() == {
        "groups": [],
        "groupVolumes": {},
        "groupMutes": {},
        "transportStates": {},
    }
