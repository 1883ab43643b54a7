"""
Eviction ordering strategies

A strategy is a sort key over CacheEntry; entries with the smallest key
are evicted first.

- hit_count: least-used first (default). Hit counts never decay, so a
  long-lived key that collected hits early outranks a newly hot key.
- lru: least recently accessed first
- fifo: oldest write first
"""

from typing import Any, Callable, Dict

from tiercache.cache.layer import CacheEntry


EvictionKey = Callable[[CacheEntry], Any]


def by_hit_count(entry: CacheEntry) -> Any:
    # Ties broken by age so older entries go first
    return (entry.hit_count, entry.created_at)


def by_recency(entry: CacheEntry) -> Any:
    return (entry.last_accessed or entry.created_at, entry.hit_count)


def by_age(entry: CacheEntry) -> Any:
    return entry.created_at


EVICTION_STRATEGIES: Dict[str, EvictionKey] = {
    "hit_count": by_hit_count,
    "lru": by_recency,
    "fifo": by_age,
}


def get_eviction_strategy(name: str) -> EvictionKey:
    """Look up a strategy by name."""
    try:
        return EVICTION_STRATEGIES[name]
    except KeyError:
        raise ValueError(
            f"Unknown eviction strategy '{name}', "
            f"expected one of {sorted(EVICTION_STRATEGIES)}"
        ) from None
