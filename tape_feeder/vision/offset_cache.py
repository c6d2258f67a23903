"""Per-feeder cache of the last vision offset.

The feeder front-loads vision work: the offset measured after one feed is
reused to correct the next one, so the feed stroke itself never waits on
image analysis.  The cache has two states:

    UNINITIALIZED --store()--> VALID --store()--> VALID
          ^                      |
          +-------reset()--------+

Nothing expires automatically; only an explicit ``reset`` drops the
offset.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum, auto

from tape_feeder.geometry.offsets import VisionOffset

logger = logging.getLogger(__name__)


class CacheState(Enum):
    """Vision offset cache state."""

    UNINITIALIZED = auto()
    VALID = auto()


class VisionOffsetCache:
    """Single-slot, thread-safe holder of a ``VisionOffset``."""

    def __init__(self) -> None:
        self._offset: VisionOffset | None = None
        self._lock = threading.Lock()

    @property
    def state(self) -> CacheState:
        with self._lock:
            return CacheState.UNINITIALIZED if self._offset is None else CacheState.VALID

    @property
    def is_valid(self) -> bool:
        return self.state is CacheState.VALID

    def get(self) -> VisionOffset | None:
        """Return the cached offset, or ``None`` when uninitialized."""
        with self._lock:
            return self._offset

    def store(self, offset: VisionOffset) -> None:
        with self._lock:
            self._offset = offset
        logger.debug("Cached vision offset %s", offset)

    def reset(self) -> None:
        with self._lock:
            had_offset = self._offset is not None
            self._offset = None
        if had_offset:
            logger.info("Vision offset cache reset")
