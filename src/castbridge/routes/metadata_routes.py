"""Metadata routes: media state reported by sources, and per-source queries."""

from __future__ import annotations

from castbridge.handlers.metadata import MetadataHandlers
from castbridge.messages import (
    GetCastStatusMessage,
    GetCurrentTabStateMessage,
    TabMetadataUpdateMessage,
    TabOgImageMessage,
)
from castbridge.router import MessageRouter


def register_metadata_routes(router: MessageRouter, metadata: MetadataHandlers) -> None:
    async def _update(msg: TabMetadataUpdateMessage):
        changed = await metadata.handle_metadata_update(msg)
        return {"success": True, "changed": changed}

    async def _og_image(msg: TabOgImageMessage):
        changed = await metadata.handle_og_image(msg)
        return {"success": True, "changed": changed}

    router.register_validated("TAB_METADATA_UPDATE", TabMetadataUpdateMessage, _update)
    router.register_validated("TAB_OG_IMAGE", TabOgImageMessage, _og_image)
    router.register_validated(
        "GET_CAST_STATUS",
        GetCastStatusMessage,
        lambda msg: metadata.get_cast_status(msg.source_id),
    )
    router.register_validated(
        "GET_CURRENT_TAB_STATE",
        GetCurrentTabStateMessage,
        lambda msg: metadata.get_current_tab_state(msg.source_id),
    )
