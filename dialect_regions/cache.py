"""Caller-owned cache of clipped diagrams.

Keyed by the exact site set, the boundary geometry and the configuration
values that affect tessellation, so a redraw that only changes layer
membership skips tessellation and clipping.
"""

import logging
import threading
from collections import OrderedDict
from typing import Any, Hashable, Sequence

from .geometry.point_index import Site
from .geometry.polygon_ops import PolygonLike
from .models.config import EngineConfig

logger = logging.getLogger(__name__)


def diagram_key(sites: Sequence[Site], boundary: PolygonLike, config: EngineConfig) -> tuple:
    """Cache key for a (site set, boundary) pair under a configuration."""
    site_key = tuple(sorted((s.point_id, s.x, s.y) for s in sites))
    return (site_key, boundary.wkb_hex, config.tessellation_key())


class TessellationCache:
    """Small thread-safe LRU mapping of diagram keys to prepared diagrams."""

    def __init__(self, max_size: int = 8):
        self.max_size = max_size
        self.hits = 0
        self.misses = 0
        self._entries: OrderedDict[Hashable, Any] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Any | None:
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
                self.hits += 1
                return self._entries[key]
            self.misses += 1
            return None

    def put(self, key: Hashable, value: Any) -> None:
        if self.max_size <= 0:
            return
        with self._lock:
            self._entries[key] = value
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)
                logger.debug("Evicted oldest cached diagram")

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
