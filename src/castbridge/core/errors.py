"""Error types shared across handlers and the router."""

from __future__ import annotations

# Stable reason codes. Observers translate these for display.
ERROR_NO_SPEAKERS_SELECTED = "error_no_speakers_selected"
ERROR_DESKTOP_NOT_FOUND = "error_desktop_not_found"
ERROR_MAX_SESSIONS = "error_max_sessions"
ERROR_PLAYBACK_FAILED = "error_playback_failed"
ERROR_CAPTURE_FAILED = "error_capture_failed"
ERROR_CONNECTION_LOST = "error_connection_lost"
ERROR_NO_SOURCE = "error_no_source"


class CastError(Exception):
    """A handler failure carrying a stable reason code."""

    def __init__(self, code: str, detail: str | None = None) -> None:
        super().__init__(detail or code)
        self.code = code
        self.detail = detail


class DuplicateRouteError(Exception):
    """Raised when a request name is registered twice."""


class ContextUnavailableError(Exception):
    """Raised when the privileged context cannot be created or reached."""
