"""
Message schemas — validated shapes of inbound requests.

Requests are JSON objects with a "type" field. Routes registered with
MessageRouter.register_validated() parse the whole request with one of these
models before their handler runs, so a malformed request never reaches
ConnectionState or the SessionRegistry.

Field names follow the wire (camelCase) via aliases.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

IPV4_PATTERN = r"^\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}$"

SpeakerIp = Annotated[str, StringConstraints(pattern=IPV4_PATTERN)]


class _Message(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SourceInfo(_Message):
    """Display info about the source being cast."""

    title: str | None = None
    favicon: str | None = Field(default=None, alias="favIconUrl")
    source: str | None = None


class StartCastPayload(_Message):
    source_id: int = Field(alias="sourceId", gt=0)
    speaker_ips: list[SpeakerIp] = Field(alias="speakerIps", min_length=1)
    encoder_config: dict[str, Any] | None = Field(default=None, alias="encoderConfig")
    sync_speakers: bool = Field(default=False, alias="syncSpeakers")
    source_info: SourceInfo | None = Field(default=None, alias="sourceInfo")


class StartCastMessage(_Message):
    type: Literal["START_CAST"]
    payload: StartCastPayload


class StopCastPayload(_Message):
    source_id: int | None = Field(default=None, alias="sourceId", gt=0)


class StopCastMessage(_Message):
    type: Literal["STOP_CAST"]
    payload: StopCastPayload | None = None


class MediaPayload(_Message):
    title: str | None = None
    artist: str | None = None
    album: str | None = None
    artwork: str | None = None
    supported_actions: list[str] = Field(default_factory=list, alias="supportedActions")
    playback_state: Literal["none", "paused", "playing"] = Field(
        default="none", alias="playbackState"
    )


class TabMetadataUpdateMessage(_Message):
    type: Literal["TAB_METADATA_UPDATE"]
    source_id: int = Field(alias="sourceId", gt=0)
    source_info: SourceInfo | None = Field(default=None, alias="sourceInfo")
    payload: MediaPayload | None = None


class OgImagePayload(_Message):
    og_image: str = Field(alias="ogImage", min_length=1)


class TabOgImageMessage(_Message):
    type: Literal["TAB_OG_IMAGE"]
    source_id: int = Field(alias="sourceId", gt=0)
    source_info: SourceInfo | None = Field(default=None, alias="sourceInfo")
    payload: OgImagePayload


class GetCastStatusMessage(_Message):
    type: Literal["GET_CAST_STATUS"]
    source_id: int = Field(alias="sourceId", gt=0)


class GetCurrentTabStateMessage(_Message):
    type: Literal["GET_CURRENT_TAB_STATE"]
    source_id: int | None = Field(default=None, alias="sourceId", gt=0)


class WsConnectMessage(_Message):
    type: Literal["WS_CONNECT"]
    url: str = Field(min_length=1)
    max_streams: int | None = Field(default=None, alias="maxStreams", gt=0)


class WsReconnectMessage(_Message):
    type: Literal["WS_RECONNECT"]
    url: str | None = None


class WsConnectedMessage(_Message):
    type: Literal["WS_CONNECTED"]
    state: dict[str, Any] = Field(default_factory=dict)


class NetworkEventPayload(_Message):
    type: str
    health: Literal["ok", "degraded"] | None = None
    reason: str | None = None


class NetworkEventMessage(_Message):
    type: Literal["NETWORK_EVENT"]
    payload: NetworkEventPayload


class SpeakerEventMessage(_Message):
    """Opaque domain event; only sourceChanged is interpreted here."""

    type: Literal["SPEAKER_EVENT"]
    payload: dict[str, Any]


class TopologyEventMessage(_Message):
    """Peer topology change; only groupsDiscovered is interpreted here."""

    type: Literal["TOPOLOGY_EVENT"]
    payload: dict[str, Any]


class StreamEndedMessage(_Message):
    type: Literal["STREAM_ENDED"]
    stream_id: str = Field(alias="streamId", min_length=1)
