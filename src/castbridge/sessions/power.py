"""
Power management — keep the host from throttling while casting.

The registry calls request() when its first session appears and release()
when its last one goes. Host power APIs can fail (unsupported platform,
revoked permission); that must never break session bookkeeping, so errors
are logged and swallowed here.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class WakeLock(ABC):
    """System keep-awake request."""

    @property
    @abstractmethod
    def held(self) -> bool: ...

    @abstractmethod
    def request(self) -> None: ...

    @abstractmethod
    def release(self) -> None: ...


class LoggingWakeLock(WakeLock):
    """
    Tracks keep-awake state and delegates to optional host callables.

    With no callables it only records state, which is what a host without
    a power API gets.
    """

    def __init__(self, acquire_fn=None, release_fn=None) -> None:
        self._acquire_fn = acquire_fn
        self._release_fn = release_fn
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def request(self) -> None:
        if self._held:
            return
        try:
            if self._acquire_fn is not None:
                self._acquire_fn()
            self._held = True
            logger.info("Requested system keep-awake")
        except Exception as e:
            logger.warning("Failed to request keep-awake: %s", e)

    def release(self) -> None:
        if not self._held:
            return
        try:
            if self._release_fn is not None:
                self._release_fn()
        except Exception as e:
            logger.warning("Failed to release keep-awake: %s", e)
        finally:
            self._held = False
        logger.info("Released system keep-awake")
