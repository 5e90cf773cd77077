"""Tests for session records and legacy migration."""

import pytest

from castbridge.sessions.models import (
    CastSession,
    OriginalGroup,
    is_legacy_record,
    migrate_stored_session,
)

LEGACY = {
    "streamId": "s-1",
    "tabId": 7,
    "speakerIp": "192.168.1.20",
    "speakerName": "Kitchen",
    "encoderConfig": {"codec": "aac"},
    "startedAt": 1000.0,
}


def test_legacy_record_migrates_to_arrays():
    migrated, changed = migrate_stored_session(LEGACY)

    assert changed is True
    assert migrated["speakerIps"] == ["192.168.1.20"]
    assert migrated["speakerNames"] == ["Kitchen"]
    assert migrated["syncSpeakers"] is False
    assert "speakerIp" not in migrated
    assert "speakerName" not in migrated


def test_migration_does_not_mutate_input():
    record = dict(LEGACY)
    migrate_stored_session(record)
    assert record == LEGACY


def test_migration_is_idempotent():
    once, _ = migrate_stored_session(LEGACY)
    twice, changed = migrate_stored_session(once)
    assert changed is False
    assert twice == once


def test_missing_name_defaults_to_ip():
    record = {k: v for k, v in LEGACY.items() if k != "speakerName"}
    migrated, _ = migrate_stored_session(record)
    assert migrated["speakerNames"] == ["192.168.1.20"]


def test_current_record_only_gains_defaults():
    record = {
        "streamId": "s",
        "speakerIps": ["10.0.0.1"],
        "speakerNames": ["Den"],
    }
    migrated, changed = migrate_stored_session(record)
    assert changed is False
    assert migrated == {**record, "syncSpeakers": False}
    assert not is_legacy_record(record)


def _session(**overrides):
    fields = dict(
        stream_id="s-1",
        source_id=1,
        speaker_ips=["10.0.0.1", "10.0.0.2"],
        speaker_names=["Den", "Office"],
    )
    fields.update(overrides)
    return CastSession(**fields)


def test_validate_rejects_unequal_lengths():
    with pytest.raises(ValueError):
        _session(speaker_names=["Den"]).validate()


def test_validate_rejects_empty():
    with pytest.raises(ValueError):
        _session(speaker_ips=[], speaker_names=[]).validate()


def test_roundtrip_keeps_original_groups():
    session = _session(
        sync_speakers=True,
        original_groups=[OriginalGroup("RINCON_1", ("10.0.0.1", "10.0.0.2"))],
    )
    restored = CastSession.from_dict(1, session.to_dict())
    assert restored == session
    assert restored.ip_to_group() == {"10.0.0.1": "RINCON_1", "10.0.0.2": "RINCON_1"}


def test_copy_is_deep():
    session = _session()
    clone = session.copy()
    clone.speaker_ips.append("10.0.0.3")
    assert session.speaker_ips == ["10.0.0.1", "10.0.0.2"]
