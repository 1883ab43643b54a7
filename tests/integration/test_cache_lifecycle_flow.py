"""
Integration tests for the cache lifecycle.

End-to-end flows through TieredCacheManager:
- Dashboard caching and TTL expiry
- Batch writes and reads
- Tag invalidation
- Quota-driven eviction
- Bulk placement and promotion
- Sensitive payload encryption
- Warming followed by scheduled maintenance
"""

import asyncio
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
from fixtures import (
    FakeClock,
    SAMPLE_CREDENTIALS,
    SAMPLE_PREFERENCES,
    make_blob,
    make_dashboard,
)

from tiercache.cache.manager import TieredCacheManager
from tiercache.cache.scheduler import MaintenanceScheduler
from tiercache.cache.tier_policy import BYTES_PER_MB, TierPolicy, TierPolicyRegistry
from tiercache.config.config_loader import Config


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def manager(clock):
    return TieredCacheManager(config=Config(), clock=clock)


class TestDashboardFlow:
    """A free-tier dashboard is served until its TTL lapses."""

    @pytest.mark.asyncio
    async def test_dashboard_expires_after_ttl(self, manager, clock):
        report = make_dashboard(50)

        assert await manager.set("dashboard-42", report, "free", tags=["dashboard"]) is True
        assert await manager.get("dashboard-42", "free") == report

        clock.advance(301)
        assert await manager.get("dashboard-42", "free") is None

        stats = manager.get_cache_stats()
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.hit_rate == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_expired_entry_swept_by_maintenance(self, manager, clock):
        await manager.set("dashboard-42", make_dashboard(5), "free")
        clock.advance(301)

        assert manager.run_maintenance()["expired"] == 1
        assert manager.get_cache_stats().total_entries == 0


class TestBatchFlow:

    @pytest.mark.asyncio
    async def test_set_batch_then_get_batch(self, manager):
        results = await manager.set_batch([
            {"key": "a", "value": 1},
            ("b", 2),
        ], tier="starter")

        assert results == [True, True]
        assert await manager.get_batch(["a", "b", "c"]) == {"a": 1, "b": 2, "c": None}

    @pytest.mark.asyncio
    async def test_malformed_item_does_not_block_batch(self, manager):
        results = await manager.set_batch([
            {"key": "ok", "value": SAMPLE_PREFERENCES},
            {"value": "no key"},
            {"key": "bad", "value": 1, "options": {"priority": "high"}},
        ])

        assert results == [True, False, False]
        assert await manager.get("ok") == SAMPLE_PREFERENCES
        assert await manager.get("bad") is None


class TestInvalidationFlow:

    @pytest.mark.asyncio
    async def test_tag_invalidation_leaves_untagged(self, manager):
        await manager.set("dash-1", {"v": 1}, tags=["dashboard"])
        await manager.set("dash-2", {"v": 2}, tags=["dashboard", "user-7"])
        await manager.set("prefs-7", SAMPLE_PREFERENCES, tags=["user-7"])

        assert await manager.invalidate("dashboard", by_tags=True) == 2

        assert await manager.get("dash-1") is None
        assert await manager.get("dash-2") is None
        assert await manager.get("prefs-7") == SAMPLE_PREFERENCES
        assert manager.get_cache_stats().operations["invalidate_system"] == 2

    @pytest.mark.asyncio
    async def test_prefix_invalidation(self, manager):
        await manager.set("seo:one", 1)
        await manager.set("seo:two", 2)
        await manager.set("chat:one", 3)

        assert await manager.invalidate_prefix("seo:") == 2
        assert await manager.get("chat:one") == 3


class TestQuotaFlow:

    @pytest.mark.asyncio
    async def test_least_used_entry_evicted_on_overflow(self, clock):
        registry = TierPolicyRegistry({
            "free": TierPolicy("free", ttl_seconds=300, max_capacity_mb=3000 / BYTES_PER_MB),
        })
        manager = TieredCacheManager(config=Config(), policies=registry, clock=clock)

        for key in ("a", "b", "c"):
            assert await manager.set(key, make_blob(1000), "free") is True

        await manager.get("a")
        await manager.get("a")
        await manager.get("b")

        assert await manager.set("d", make_blob(1000), "free") is True

        assert await manager.get("c") is None
        assert await manager.get("a") is not None
        assert await manager.get("d") is not None

        stats = manager.get_cache_stats()
        assert stats.evictions == 1
        assert stats.tier_usage["free"].entries == 3

    @pytest.mark.asyncio
    async def test_overwrite_does_not_evict_neighbours(self, clock):
        registry = TierPolicyRegistry({
            "free": TierPolicy("free", ttl_seconds=300, max_capacity_mb=2000 / BYTES_PER_MB),
        })
        manager = TieredCacheManager(config=Config(), policies=registry, clock=clock)

        await manager.set("a", make_blob(1000))
        await manager.set("b", make_blob(1000))
        await manager.set("b", make_blob(1000, "y"))

        assert manager.get_cache_stats().evictions == 0
        assert await manager.get("a") is not None


class TestPromotionFlow:

    @pytest.mark.asyncio
    async def test_large_bulk_entry_promoted_on_read(self, manager):
        blob = make_blob(200 * 1024)

        await manager.set("export-1", blob, "free", force_bulk=True)
        assert "export-1" in manager.bulk
        assert "export-1" not in manager.fast

        assert await manager.get("export-1") == blob
        assert "export-1" in manager.fast

        assert await manager.get("export-1") == blob

        stats = manager.get_cache_stats()
        assert stats.bulk_hits == 1
        assert stats.fast_hits == 1


class TestSensitiveFlow:

    @pytest.mark.asyncio
    async def test_enterprise_credentials_encrypted_at_rest(self, manager):
        await manager.set("creds-7", SAMPLE_CREDENTIALS, "enterprise")

        stored = manager.fast.get("creds-7")
        assert stored.encrypted is True
        assert b"ya29" not in stored.value
        assert stored.tier == "enterprise"

        assert await manager.get("creds-7", "enterprise") == SAMPLE_CREDENTIALS

    @pytest.mark.asyncio
    async def test_free_tier_stores_plaintext(self, manager):
        await manager.set("creds-7", SAMPLE_CREDENTIALS, "free")
        assert manager.fast.get("creds-7").encrypted is False


class TestWarmingAndMaintenanceFlow:

    @pytest.mark.asyncio
    async def test_warm_then_scheduled_cleanup(self, manager, clock):
        async def fetch_report():
            return make_dashboard(2)

        def broken():
            raise ConnectionError("upstream down")

        result = await manager.warm_cache([
            {"key": "report", "generator": fetch_report, "tier": "starter"},
            {"key": "prefs", "generator": lambda: SAMPLE_PREFERENCES, "ttl_seconds": 10},
            {"key": "broken", "generator": broken},
        ])

        assert result == {"total": 3, "success": 2, "failed": 1, "skipped": 0}
        assert await manager.get("broken") is None

        clock.advance(60)

        async with MaintenanceScheduler(manager, cleanup_interval=0.01, warming_interval=60):
            await asyncio.sleep(0.1)

        assert await manager.get("prefs") is None
        assert await manager.get("report") is not None

    @pytest.mark.asyncio
    async def test_optimize_cache_pass(self, manager):
        await manager.set("hot", SAMPLE_PREFERENCES)
        for _ in range(3):
            await manager.get("hot")

        result = manager.optimize_cache()

        assert result["expired"] == 0
        assert result["top_keys"][0] == "hot"
