"""
Cache statistics
Process-wide counters for a cache manager instance
"""

import threading
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List


@dataclass
class KeyUsage:
    """Hit count and size of one cached key."""
    key: str
    hits: int
    size: int


@dataclass
class TierUsage:
    """Entries and megabytes attributed to one tier."""
    entries: int = 0
    size_mb: float = 0.0


@dataclass
class CacheStats:
    """Snapshot returned by ``TieredCacheManager.get_cache_stats``."""
    total_entries: int
    total_size_mb: float
    hit_rate: float
    miss_rate: float
    avg_response_time_ms: float
    top_keys: List[KeyUsage]
    tier_usage: Dict[str, TierUsage]
    evictions: int
    compression_ratio: float
    hits: int = 0
    misses: int = 0
    fast_hits: int = 0
    bulk_hits: int = 0
    fast_entries: int = 0
    bulk_entries: int = 0
    operations: Dict[str, float] = field(default_factory=dict)

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class CacheStatistics:
    """
    Lock-protected running counters.

    Latency is a cumulative mean over all get requests. Counters only
    reset through ``reset()``.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._reset_locked()

    def _reset_locked(self) -> None:
        self.hits = 0
        self.misses = 0
        self.layer_hits: Dict[str, int] = defaultdict(int)
        self.evictions = 0
        self.avg_response_time_ms = 0.0
        self.compressed_original_bytes = 0
        self.compressed_stored_bytes = 0
        self.operations: Dict[str, float] = defaultdict(float)

    def reset(self) -> None:
        with self._lock:
            self._reset_locked()

    def record_hit(self, layer: str, response_time_ms: float) -> None:
        with self._lock:
            self.hits += 1
            self.layer_hits[layer] += 1
            self._update_avg_response_time(response_time_ms)

    def record_miss(self, response_time_ms: float) -> None:
        with self._lock:
            self.misses += 1
            self._update_avg_response_time(response_time_ms)

    def _update_avg_response_time(self, response_time_ms: float) -> None:
        count = self.hits + self.misses
        self.avg_response_time_ms += (response_time_ms - self.avg_response_time_ms) / count

    def record_eviction(self, count: int = 1) -> None:
        with self._lock:
            self.evictions += count

    def record_compression(self, original_bytes: int, stored_bytes: int) -> None:
        with self._lock:
            self.compressed_original_bytes += original_bytes
            self.compressed_stored_bytes += stored_bytes

    def record_operation(self, operation: str, tier: str, value: float) -> None:
        with self._lock:
            self.operations[f"{operation}_{tier}"] += value

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        total = self.total_requests
        return self.hits / total if total > 0 else 0.0

    @property
    def miss_rate(self) -> float:
        total = self.total_requests
        return self.misses / total if total > 0 else 0.0

    @property
    def compression_ratio(self) -> float:
        """Stored / original bytes over compressed writes, 1.0 when none."""
        if self.compressed_original_bytes <= 0:
            return 1.0
        return self.compressed_stored_bytes / self.compressed_original_bytes

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "hits": self.hits,
                "misses": self.misses,
                "fast_hits": self.layer_hits.get("fast", 0),
                "bulk_hits": self.layer_hits.get("bulk", 0),
                "evictions": self.evictions,
                "hit_rate": self.hit_rate,
                "miss_rate": self.miss_rate,
                "avg_response_time_ms": self.avg_response_time_ms,
                "compression_ratio": self.compression_ratio,
                "operations": dict(self.operations),
            }
