"""
Session Models — cast sessions and their stored form.

A CastSession is one source's audio streaming to one or more speaker
groups. speaker_ips and speaker_names are parallel lists; a session always
has at least one destination.

Stored sessions may predate multi-speaker support. migrate_stored_session()
promotes the legacy single-destination shape (speakerIp / speakerName) to
singleton lists; running it twice gives the same result.
"""

from __future__ import annotations

import copy
import time
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class OriginalGroup:
    """A speaker group as it was before synchronized playback regrouped it."""

    coordinator_uuid: str
    speaker_ips: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "coordinatorUuid": self.coordinator_uuid,
            "speakerIps": list(self.speaker_ips),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OriginalGroup:
        return cls(
            coordinator_uuid=str(data["coordinatorUuid"]),
            speaker_ips=tuple(str(ip) for ip in data.get("speakerIps", [])),
        )


@dataclass
class CastSession:
    """One actively streaming source. Owned by SessionRegistry."""

    stream_id: str
    source_id: int
    speaker_ips: list[str]
    speaker_names: list[str]
    encoder_config: Any = None  # opaque, passed through from the capture side
    started_at: float = field(default_factory=time.time)
    sync_speakers: bool = False
    original_groups: list[OriginalGroup] | None = None

    def validate(self) -> None:
        """Raise ValueError if the destination lists break an invariant."""
        if len(self.speaker_ips) != len(self.speaker_names):
            raise ValueError(
                f"speaker_ips ({len(self.speaker_ips)}) and speaker_names "
                f"({len(self.speaker_names)}) differ in length"
            )
        if not self.speaker_ips:
            raise ValueError("a session needs at least one speaker")

    def ip_to_group(self) -> dict[str, str]:
        """speaker IP -> original group coordinator UUID."""
        lookup: dict[str, str] = {}
        for group in self.original_groups or []:
            for ip in group.speaker_ips:
                lookup[ip] = group.coordinator_uuid
        return lookup

    def copy(self) -> CastSession:
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "streamId": self.stream_id,
            "sourceId": self.source_id,
            "speakerIps": list(self.speaker_ips),
            "speakerNames": list(self.speaker_names),
            "encoderConfig": self.encoder_config,
            "startedAt": self.started_at,
            "syncSpeakers": self.sync_speakers,
        }
        if self.original_groups:
            data["originalGroups"] = [g.to_dict() for g in self.original_groups]
        return data

    @classmethod
    def from_dict(cls, source_id: int, data: dict[str, Any]) -> CastSession:
        """Build from a migrated stored record. Raises on missing fields."""
        groups = data.get("originalGroups")
        return cls(
            stream_id=str(data["streamId"]),
            source_id=int(source_id),
            speaker_ips=[str(ip) for ip in data["speakerIps"]],
            speaker_names=[str(name) for name in data["speakerNames"]],
            encoder_config=data.get("encoderConfig"),
            started_at=float(data.get("startedAt") or time.time()),
            sync_speakers=bool(data.get("syncSpeakers", False)),
            original_groups=[OriginalGroup.from_dict(g) for g in groups]
            if groups
            else None,
        )


def is_legacy_record(record: dict[str, Any]) -> bool:
    """True for the single-destination shape that predates speakerIps."""
    return bool(record.get("speakerIp")) and "speakerIps" not in record


def migrate_stored_session(record: dict[str, Any]) -> tuple[dict[str, Any], bool]:
    """
    Bring a stored session record up to the current shape.

    Returns (record, migrated). The input is not modified. A current record
    only gains defaults for fields it lacks, with migrated=False.
    """
    result = dict(record)
    migrated = False

    if is_legacy_record(result):
        ip = result.pop("speakerIp")
        name = result.pop("speakerName", None) or ip
        result["speakerIps"] = [ip]
        result["speakerNames"] = [name]
        migrated = True

    if "syncSpeakers" not in result:
        result["syncSpeakers"] = False

    return result, migrated
