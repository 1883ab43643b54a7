"""
Tiered Cache Manager
Two-layer cache with per-tier quotas, transforms and maintenance

Architecture:
- fast: small, low-latency layer, checked first on every read
- bulk: large layer for payloads over the bulk threshold (or forced)
- Entries found only in bulk are promoted into fast on read

Per-tier policy (TierPolicyRegistry) decides TTL, byte budget,
compression and encryption. Budgets are enforced lazily: at write time
and during periodic maintenance, never on reads.

Eviction order is pluggable (see tiercache.cache.eviction); the default
evicts the lowest hit count first.

Failure model:
- get degrades to a miss (None) on any error
- set returns False on any error
- warm_cache skips entries whose generator fails
Nothing except programming errors in configuration escapes the public
methods. The cache is an optimization, never a system of record.

Example:
    manager = TieredCacheManager()
    await manager.set("dashboard-1", report, "starter", tags=["dashboard"])
    report = await manager.get("dashboard-1", "starter")
    await manager.invalidate("dashboard", by_tags=True)
"""

import asyncio
import hashlib
import inspect
import json
import threading
import time
from dataclasses import dataclass
from typing import (
    Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional,
    Sequence, Tuple, Union,
)

from loguru import logger

from tiercache.cache.codec import EntryCodec
from tiercache.cache.eviction import EvictionKey, get_eviction_strategy
from tiercache.cache.layer import CacheEntry, CacheLayer
from tiercache.cache.stats import CacheStatistics, CacheStats, KeyUsage, TierUsage
from tiercache.cache.tier_policy import BYTES_PER_MB, TierPolicyRegistry
from tiercache.config.config_loader import Config, ConfigLoader


_SET_OPTIONS = ("ttl_seconds", "tags", "force_bulk", "skip_compression")


def make_cache_key(namespace: str, *parts: Any, **params: Any) -> str:
    """
    Build a stable cache key from a namespace and arbitrary parts.

    Parameter order does not matter: ``make_cache_key("seo", q, a=1, b=2)``
    equals ``make_cache_key("seo", q, b=2, a=1)``.
    """
    payload = json.dumps(
        {"parts": [str(p) for p in parts], "params": params},
        sort_keys=True,
        default=str,
    )
    digest = hashlib.md5(payload.encode("utf-8")).hexdigest()[:16]
    return f"{namespace}:{digest}"


@dataclass
class WarmingTask:
    """One key to pre-populate."""
    key: str
    generator: Callable[[], Union[Any, Awaitable[Any]]]
    tier: Optional[str] = None
    tags: Optional[Sequence[str]] = None
    ttl_seconds: Optional[float] = None

    @classmethod
    def coerce(cls, item: Union["WarmingTask", Mapping[str, Any]]) -> "WarmingTask":
        if isinstance(item, cls):
            return item
        return cls(
            key=item["key"],
            generator=item["generator"],
            tier=item.get("tier", item.get("user_tier")),
            tags=item.get("tags"),
            ttl_seconds=item.get("ttl_seconds"),
        )


class TieredCacheManager:
    """
    Orchestrates get/set/batch/invalidate/warm across fast and bulk layers.

    Construct once at startup and pass the instance to consumers. The
    manager owns no timers; a MaintenanceScheduler drives periodic
    cleanup and warming.

    Args:
        config: Loaded configuration (defaults to ConfigLoader)
        policies: Tier policy table (defaults to config.tiers)
        codec: Entry codec (defaults to one built from config.cache)
        eviction_key: Sort key for eviction (defaults to config strategy)
        clock: Wall clock in seconds, injectable for tests
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        policies: Optional[TierPolicyRegistry] = None,
        codec: Optional[EntryCodec] = None,
        eviction_key: Optional[EvictionKey] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or ConfigLoader().config
        self.settings = self.config.cache

        self.policies = policies or TierPolicyRegistry.from_config(self.config)
        self.codec = codec or EntryCodec.from_settings(self.settings)
        self._eviction_key = eviction_key or get_eviction_strategy(self.settings.eviction_strategy)
        self._clock = clock

        self.fast = CacheLayer("fast")
        self.bulk = CacheLayer("bulk")
        self.stats = CacheStatistics()

        # Serializes quota check + eviction + placement
        self._quota_lock = threading.RLock()
        self._warming_plans: Dict[str, WarmingTask] = {}
        self._warm_timeout = self.config.scheduler.warm_timeout_seconds

        logger.info(
            f"TieredCacheManager initialized "
            f"(tiers={self.policies.tier_names()}, "
            f"eviction={self.settings.eviction_strategy})"
        )

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    async def get(self, key: str, tier: Optional[str] = None) -> Any:
        """
        Get a cached value, checking fast then bulk.

        ``tier`` does not scope the lookup; keys are global.

        Returns:
            The decoded value, or None on miss/expiry/decode failure
        """
        start_time = time.perf_counter()

        try:
            now = self._clock()

            entry = self.fast.get(key)
            if entry is not None and entry.is_valid(now):
                value = self.codec.decode(entry.value, entry.compressed, entry.encrypted)
                entry.hit_count += 1
                entry.last_accessed = now

                # Keep the bulk copy ranked for rebalancing and eviction
                shadow = self.bulk.get(key)
                if shadow is not None and shadow is not entry:
                    shadow.hit_count += 1
                    shadow.last_accessed = now

                self.stats.record_hit("fast", self._elapsed_ms(start_time))
                return value

            entry = self.bulk.get(key)
            if entry is not None and entry.is_valid(now):
                value = self.codec.decode(entry.value, entry.compressed, entry.encrypted)

                entry.hit_count += 1
                entry.last_accessed = now
                self.fast.put(key, entry.copy())
                self.stats.record_hit("bulk", self._elapsed_ms(start_time))
                logger.debug(f"Promoted {key} from bulk to fast")
                return value

            self.stats.record_miss(self._elapsed_ms(start_time))
            return None

        except Exception as e:
            logger.warning(f"Cache get error for key {key}: {e}")
            self.stats.record_miss(self._elapsed_ms(start_time))
            return None

    async def get_batch(
        self,
        keys: Sequence[str],
        tier: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Get many keys concurrently; result follows input order."""
        results = await asyncio.gather(
            *(self.get(key, tier) for key in keys),
            return_exceptions=True,
        )
        return {
            key: None if isinstance(result, BaseException) else result
            for key, result in zip(keys, results)
        }

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    async def set(
        self,
        key: str,
        value: Any,
        tier: Optional[str] = None,
        ttl_seconds: Optional[float] = None,
        tags: Optional[Iterable[str]] = None,
        force_bulk: bool = False,
        skip_compression: bool = False,
    ) -> bool:
        """
        Store a value under a tier's policy.

        Args:
            key: Cache key
            value: JSON-serializable value
            tier: Subscription tier (unknown -> fallback tier)
            ttl_seconds: Override the tier's default TTL (0 stores an already expired entry)
            tags: Labels for group invalidation
            force_bulk: Store in bulk regardless of size
            skip_compression: Never compress this value

        Returns:
            True if stored
        """
        try:
            policy = self.policies.resolve(tier)

            payload = self.codec.encode(
                value,
                compress=policy.compress and not skip_compression,
                encrypt_sensitive=policy.encrypt_sensitive,
            )
            size_bytes = payload.size_bytes
            now = self._clock()

            entry = CacheEntry(
                key=key,
                value=payload.data,
                created_at=now,
                ttl_seconds=ttl_seconds if ttl_seconds is not None else policy.ttl_seconds,
                hit_count=0,
                size_bytes=size_bytes,
                tags=frozenset(tags or ()),
                tier=policy.name,
                compressed=payload.compressed,
                encrypted=payload.encrypted,
                original_size=payload.original_size,
                last_accessed=now,
            )

            if size_bytes > policy.max_capacity_bytes:
                if self.settings.reject_oversized:
                    logger.warning(
                        f"Rejected {key}: {size_bytes} bytes exceeds "
                        f"'{policy.name}' budget of {policy.max_capacity_mb}MB"
                    )
                    return False
                logger.warning(
                    f"Entry {key} ({size_bytes} bytes) exceeds '{policy.name}' "
                    f"budget on its own, storing anyway"
                )

            with self._quota_lock:
                usage = self._tier_usage_bytes(policy.name, exclude_key=key)
                overflow = usage + size_bytes - policy.max_capacity_bytes
                if overflow > 0:
                    self._evict_least_used(policy.name, overflow, exclude_key=key)

                self._place(key, entry, force_bulk)

            if payload.compressed:
                self.stats.record_compression(payload.original_size, size_bytes)
            self.stats.record_operation("set", policy.name, size_bytes)

            logger.debug(
                f"Stored {key} (tier={policy.name}, size={size_bytes/1024:.1f}KB, "
                f"compressed={entry.compressed}, encrypted={entry.encrypted})"
            )
            return True

        except Exception as e:
            logger.error(f"Cache set error for key {key}: {e}")
            return False

    def _place(self, key: str, entry: CacheEntry, force_bulk: bool) -> None:
        """Write entry to its layer(s), dropping stale copies elsewhere."""
        if force_bulk or entry.size_bytes > self.settings.bulk_threshold_bytes:
            self.bulk.put(key, entry)

            # Seed fast-path reads for small bulk entries
            if entry.size_bytes < self.settings.fast_seed_max_bytes:
                self.fast.put(key, entry.copy())
            else:
                self.fast.remove(key)
        else:
            self.fast.put(key, entry)
            self.bulk.remove(key)

    async def set_batch(
        self,
        entries: Sequence[Union[Mapping[str, Any], Tuple[str, Any]]],
        tier: Optional[str] = None,
    ) -> List[bool]:
        """
        Set many entries concurrently.

        Each item is ``{"key", "value", "options"?}`` or ``(key, value)``;
        ``options`` may hold ttl_seconds, tags, force_bulk, skip_compression.
        A malformed item yields False without affecting the others.
        """
        return list(await asyncio.gather(
            *(self._set_batch_item(item, tier) for item in entries)
        ))

    async def _set_batch_item(
        self,
        item: Union[Mapping[str, Any], Tuple[str, Any]],
        tier: Optional[str],
    ) -> bool:
        try:
            if isinstance(item, Mapping):
                key, value = item["key"], item["value"]
                options = dict(item.get("options") or {})
            else:
                key, value = item
                options = {}

            unknown = set(options) - set(_SET_OPTIONS)
            if unknown:
                raise ValueError(f"unknown options {sorted(unknown)}")

        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed batch entry {item!r}: {e}")
            return False

        return await self.set(key, value, tier, **options)

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    async def invalidate(
        self,
        pattern: Union[str, Iterable[str]],
        by_tags: bool = False,
    ) -> int:
        """
        Remove entries by key or by tag.

        Args:
            pattern: One key/tag or a list of them
            by_tags: Treat ``pattern`` as tags instead of keys

        Returns:
            Entries removed across both layers (a key held in both
            layers counts twice)
        """
        count = 0

        try:
            items = [pattern] if isinstance(pattern, str) else list(pattern)

            if by_tags:
                tags = set(items)
                for layer in (self.fast, self.bulk):
                    count += self._invalidate_by_tags(layer, tags)
            else:
                for key in items:
                    if self.fast.remove(key):
                        count += 1
                    if self.bulk.remove(key):
                        count += 1

        except Exception as e:
            logger.warning(f"Cache invalidate error for {pattern!r}: {e}")

        self.stats.record_operation("invalidate", "system", count)
        logger.debug(f"Invalidated {count} cache entries (by_tags={by_tags})")
        return count

    async def invalidate_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix`` from both layers."""
        count = 0
        for layer in (self.fast, self.bulk):
            for key in layer.keys():
                if key.startswith(prefix) and layer.remove(key):
                    count += 1

        self.stats.record_operation("invalidate", "system", count)
        logger.debug(f"Invalidated {count} cache entries with prefix {prefix!r}")
        return count

    def _invalidate_by_tags(self, layer: CacheLayer, tags: set) -> int:
        count = 0
        for key, entry in layer.all_entries():
            if entry.tags & tags and layer.remove_if(key, entry):
                count += 1
        return count

    # ------------------------------------------------------------------
    # Warming
    # ------------------------------------------------------------------

    async def warm_cache(
        self,
        plan: Sequence[Union[WarmingTask, Mapping[str, Any]]],
    ) -> Dict[str, int]:
        """
        Run generators and store their results.

        Generators may be plain callables or return awaitables; awaitables
        are bounded by ``scheduler.warm_timeout_seconds``. A failing or
        timed-out generator only skips its own key. A generator returning
        None is counted as skipped.

        Returns:
            Warming statistics (total / success / failed / skipped)
        """
        logger.info(f"Warming {len(plan)} cache entries")

        outcomes = await asyncio.gather(*(self._warm_one(item) for item in plan))

        stats = {
            "total": len(outcomes),
            "success": outcomes.count("success"),
            "failed": outcomes.count("failed"),
            "skipped": outcomes.count("skipped"),
        }

        logger.info(
            f"Cache warming complete: "
            f"{stats['success']} stored, "
            f"{stats['skipped']} skipped, "
            f"{stats['failed']} failed"
        )
        return stats

    async def _warm_one(self, item: Union[WarmingTask, Mapping[str, Any]]) -> str:
        if isinstance(item, WarmingTask):
            key = item.key
        elif isinstance(item, Mapping):
            key = item.get("key", "<unknown>")
        else:
            key = "<unknown>"

        try:
            task = WarmingTask.coerce(item)

            value = task.generator()
            if inspect.isawaitable(value):
                if self._warm_timeout:
                    value = await asyncio.wait_for(value, timeout=self._warm_timeout)
                else:
                    value = await value

            if value is None:
                return "skipped"

            stored = await self.set(
                task.key, value, task.tier,
                ttl_seconds=task.ttl_seconds,
                tags=task.tags,
            )
            return "success" if stored else "failed"

        except asyncio.TimeoutError:
            logger.warning(f"Cache warming timed out for {key} after {self._warm_timeout}s")
            return "failed"
        except Exception as e:
            logger.warning(f"Cache warming failed for {key}: {e}")
            return "failed"

    def register_warming_plan(
        self,
        plan: Sequence[Union[WarmingTask, Mapping[str, Any]]],
    ) -> int:
        """Add tasks re-run by periodic warming; same key replaces."""
        for item in plan:
            task = WarmingTask.coerce(item)
            self._warming_plans[task.key] = task
        return len(self._warming_plans)

    def unregister_warming(self, key: str) -> bool:
        return self._warming_plans.pop(key, None) is not None

    async def perform_periodic_warming(self) -> Dict[str, int]:
        """Re-run every registered warming task."""
        tasks = list(self._warming_plans.values())
        if not tasks:
            logger.debug("No warming plans registered, skipping periodic warming")
            return {"total": 0, "success": 0, "failed": 0, "skipped": 0}

        logger.info(f"Performing periodic warming for {len(tasks)} keys")
        return await self.warm_cache(tasks)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def cleanup_expired_entries(self) -> int:
        """Remove expired entries from both layers."""
        now = self._clock()
        cleaned = 0

        for layer in (self.fast, self.bulk):
            for key, entry in layer.all_entries():
                if entry.is_expired(now) and layer.remove_if(key, entry):
                    cleaned += 1

        if cleaned > 0:
            logger.info(f"Cleaned {cleaned} expired entries")
        return cleaned

    def enforce_quota_limits(self) -> int:
        """Evict until every tier is back within its budget."""
        evicted = 0

        with self._quota_lock:
            for tier in self.policies.tier_names():
                limit = self.policies.resolve(tier).max_capacity_bytes
                usage = self._tier_usage_bytes(tier)
                if usage > limit:
                    evicted += self._evict_least_used(tier, usage - limit)

        if evicted > 0:
            logger.info(f"Quota enforcement evicted {evicted} entries")
        return evicted

    def optimize_memory_distribution(self) -> int:
        """Promote small, frequently hit bulk entries into fast."""
        now = self._clock()

        candidates = [
            (key, entry) for key, entry in self.bulk.all_entries()
            if entry.size_bytes < self.settings.rebalance_max_bytes
            and entry.hit_count > self.settings.rebalance_min_hits
            and entry.is_valid(now)
        ]
        candidates.sort(key=lambda item: item[1].hit_count, reverse=True)

        promoted = 0
        for key, entry in candidates[:self.settings.rebalance_limit]:
            self.fast.put(key, entry.copy())
            promoted += 1

        if promoted > 0:
            logger.debug(f"Rebalanced {promoted} entries from bulk to fast")
        return promoted

    def compress_large_entries(self) -> int:
        """Compress large uncompressed bulk entries when it shrinks them."""
        compressed = 0

        for key, entry in self.bulk.all_entries():
            if entry.size_bytes <= self.settings.large_entry_bytes or entry.compressed:
                continue

            try:
                shrunk = self.codec.recompress(entry.value, entry.encrypted)
            except Exception as e:
                logger.warning(f"Failed to compress bulk entry {key}: {e}")
                continue

            if shrunk is None:
                continue

            updated = entry.copy(value=shrunk, compressed=True, size_bytes=len(shrunk))
            if self.bulk.swap(key, entry, updated):
                self.stats.record_compression(entry.original_size, len(shrunk))
                compressed += 1

        if compressed > 0:
            logger.debug(f"Compressed {compressed} large bulk entries")
        return compressed

    def run_maintenance(self) -> Dict[str, int]:
        """Periodic pass: expiry sweep then quota enforcement."""
        return {
            "expired": self.cleanup_expired_entries(),
            "evicted": self.enforce_quota_limits(),
        }

    def optimize_cache(self) -> Dict[str, Any]:
        """Full optimization: expiry, compression, rebalancing, key review."""
        logger.info("Starting cache optimization")

        result = {
            "expired": self.cleanup_expired_entries(),
            "compressed": self.compress_large_entries(),
            "promoted": self.optimize_memory_distribution(),
        }

        top_keys = self.get_top_keys(5)
        result["top_keys"] = [usage.key for usage in top_keys]
        logger.info(f"Top accessed keys: {', '.join(result['top_keys'])}")

        logger.info("Cache optimization completed")
        return result

    # ------------------------------------------------------------------
    # Eviction internals
    # ------------------------------------------------------------------

    def _tier_usage_bytes(self, tier: str, exclude_key: Optional[str] = None) -> int:
        total = 0
        for layer in (self.fast, self.bulk):
            for key, entry in layer.all_entries():
                if entry.tier == tier and key != exclude_key:
                    total += entry.size_bytes
        return total

    def _evict_least_used(
        self,
        tier: str,
        required_bytes: int,
        exclude_key: Optional[str] = None,
    ) -> int:
        """
        Evict entries of ``tier`` in strategy order until ``required_bytes``
        are freed. Each removed layer copy counts as one eviction.
        """
        # Later layers override earlier ones: the fast copy ranks the key
        candidates: Dict[str, CacheEntry] = {}
        for layer in (self.bulk, self.fast):
            for key, entry in layer.all_entries():
                if entry.tier == tier and key != exclude_key:
                    candidates[key] = entry

        ordered = sorted(candidates.items(), key=lambda item: self._eviction_key(item[1]))

        freed = 0
        evicted = 0
        for key, _ in ordered:
            if freed >= required_bytes:
                break

            for layer in (self.fast, self.bulk):
                removed = layer.pop(key)
                if removed is not None:
                    freed += removed.size_bytes
                    evicted += 1

            logger.debug(f"Evicted {key} (tier={tier})")

        if evicted:
            self.stats.record_eviction(evicted)
        return evicted

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def get_tier_usage(self) -> Dict[str, TierUsage]:
        usage: Dict[str, TierUsage] = {}
        for layer in (self.fast, self.bulk):
            for _, entry in layer.all_entries():
                tier_usage = usage.setdefault(entry.tier, TierUsage())
                tier_usage.entries += 1
                tier_usage.size_mb += entry.size_bytes / BYTES_PER_MB
        return usage

    def get_top_keys(self, limit: Optional[int] = None) -> List[KeyUsage]:
        limit = limit if limit is not None else self.settings.top_keys_limit

        all_entries = self.fast.all_entries() + self.bulk.all_entries()
        ranked = sorted(all_entries, key=lambda item: item[1].hit_count, reverse=True)
        return [
            KeyUsage(key=key, hits=entry.hit_count, size=entry.size_bytes)
            for key, entry in ranked[:limit]
        ]

    def get_cache_stats(self) -> CacheStats:
        """Snapshot of aggregate statistics."""
        counters = self.stats.snapshot()
        fast_entries = len(self.fast)
        bulk_entries = len(self.bulk)
        total_bytes = self.fast.size_bytes_total() + self.bulk.size_bytes_total()

        return CacheStats(
            total_entries=fast_entries + bulk_entries,
            total_size_mb=total_bytes / BYTES_PER_MB,
            hit_rate=counters["hit_rate"],
            miss_rate=counters["miss_rate"],
            avg_response_time_ms=counters["avg_response_time_ms"],
            top_keys=self.get_top_keys(),
            tier_usage=self.get_tier_usage(),
            evictions=counters["evictions"],
            compression_ratio=counters["compression_ratio"],
            hits=counters["hits"],
            misses=counters["misses"],
            fast_hits=counters["fast_hits"],
            bulk_hits=counters["bulk_hits"],
            fast_entries=fast_entries,
            bulk_entries=bulk_entries,
            operations=counters["operations"],
        )

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    def clear_all(self) -> int:
        """Drop every entry from both layers."""
        count = self.fast.clear() + self.bulk.clear()
        logger.info(f"Cleared {count} cache entries")
        return count

    def reset_stats(self) -> None:
        self.stats.reset()
        logger.info("Cache statistics reset")

    @staticmethod
    def _elapsed_ms(start_time: float) -> float:
        return (time.perf_counter() - start_time) * 1000
