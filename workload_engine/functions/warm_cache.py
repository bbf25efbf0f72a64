#workload_engine\functions\warm_cache.py

"""Advisory warm-container cache."""

import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Tuple

CacheKey = Tuple[str, str]


@dataclass
class WarmEntry:
    """What the last invocation of a (function, runtime) pair left behind."""
    image: str
    last_used_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    invocations: int = 1


class WarmContainerCache:
    """
    Bounded LRU keyed by (function_id, runtime).

    Advisory only: a miss is always correct, and nothing may depend on a
    hit for correctness.
    """

    def __init__(self, max_entries: int = 256):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._entries: "OrderedDict[CacheKey, WarmEntry]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, function_id: str, runtime: str) -> Optional[WarmEntry]:
        key = (function_id, runtime)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self._entries.move_to_end(key)
            return entry

    def put(self, function_id: str, runtime: str, image: str) -> WarmEntry:
        key = (function_id, runtime)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.image == image:
                entry.invocations += 1
                entry.last_used_at = datetime.now(timezone.utc)
                self._entries.move_to_end(key)
            else:
                entry = self._entries[key] = WarmEntry(image=image)
                self._entries.move_to_end(key)

            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
            return entry

    def evict(self, function_id: str, runtime: str) -> bool:
        with self._lock:
            return self._entries.pop((function_id, runtime), None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __repr__(self) -> str:
        return f"<WarmContainerCache(entries={len(self)}, max={self._max_entries})>"
