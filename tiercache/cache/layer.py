"""
Cache Layer
Mechanical key -> entry storage, no policy

Two instances exist in a manager ("fast" and "bulk"); their difference is
placement policy owned by the manager, not anything in this class.
"""

import threading
from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, List, Optional, Tuple


@dataclass
class CacheEntry:
    """Stored payload with metadata."""
    key: str
    value: bytes  # codec-transformed payload
    created_at: float
    ttl_seconds: float
    hit_count: int = 0
    size_bytes: int = 0
    tags: FrozenSet[str] = field(default_factory=frozenset)
    tier: str = "free"
    compressed: bool = False
    encrypted: bool = False
    original_size: int = 0
    last_accessed: float = 0.0

    def is_valid(self, now: float) -> bool:
        return now - self.created_at < self.ttl_seconds

    def is_expired(self, now: float) -> bool:
        return not self.is_valid(now)

    def copy(self, **changes) -> "CacheEntry":
        return replace(self, **changes)


class CacheLayer:
    """
    Thread-safe key -> CacheEntry map.

    No eviction, no TTL awareness. ``all_entries`` returns a snapshot so
    callers can iterate while other threads mutate the layer.
    """

    def __init__(self, name: str):
        self.name = name
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[key] = entry

    def remove(self, key: str) -> bool:
        """Remove key, True if an entry existed."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def pop(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.pop(key, None)

    def remove_if(self, key: str, entry: CacheEntry) -> bool:
        """Remove key only if it still maps to ``entry``."""
        with self._lock:
            if self._entries.get(key) is entry:
                del self._entries[key]
                return True
            return False

    def swap(self, key: str, expected: CacheEntry, entry: CacheEntry) -> bool:
        """Replace ``expected`` with ``entry`` unless the key changed meanwhile."""
        with self._lock:
            if self._entries.get(key) is expected:
                self._entries[key] = entry
                return True
            return False

    def all_entries(self) -> List[Tuple[str, CacheEntry]]:
        with self._lock:
            return list(self._entries.items())

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries.keys())

    def size_bytes_total(self) -> int:
        with self._lock:
            return sum(entry.size_bytes for entry in self._entries.values())

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __repr__(self) -> str:
        return f"CacheLayer(name={self.name!r}, entries={len(self._entries)})"
