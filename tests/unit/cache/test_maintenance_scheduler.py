"""
MaintenanceScheduler unit tests
"""

import asyncio
import os
import sys
from unittest.mock import MagicMock

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))
from fixtures import FakeClock

from tiercache.cache.manager import TieredCacheManager
from tiercache.cache.scheduler import MaintenanceScheduler
from tiercache.config.config_loader import Config, SchedulerConfig


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def manager(clock):
    return TieredCacheManager(config=Config(), clock=clock)


class TestMaintenanceScheduler:

    def test_intervals_from_config(self, manager):
        scheduler = MaintenanceScheduler(manager)
        assert scheduler.cleanup_interval == 300
        assert scheduler.warming_interval == 600
        assert scheduler.is_running is False

    def test_explicit_intervals(self, manager):
        scheduler = MaintenanceScheduler(manager, cleanup_interval=1, warming_interval=2)
        assert scheduler.get_stats()["cleanup_interval"] == 1
        assert scheduler.get_stats()["warming_interval"] == 2

    @pytest.mark.asyncio
    async def test_disabled_does_not_start(self, manager):
        scheduler = MaintenanceScheduler(manager, config=SchedulerConfig(enabled=False))
        assert scheduler.start() is False
        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_start_stop(self, manager):
        scheduler = MaintenanceScheduler(manager)

        assert scheduler.start() is True
        assert scheduler.start() is False  # already running
        assert scheduler.is_running is True

        await scheduler.stop()
        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_stop_without_start(self, manager):
        await MaintenanceScheduler(manager).stop()

    @pytest.mark.asyncio
    async def test_cleanup_loop_sweeps_expired(self, manager, clock):
        await manager.set("a", 1, ttl_seconds=5)
        await manager.set("b", 2, ttl_seconds=500)
        clock.advance(10)

        async with MaintenanceScheduler(manager, cleanup_interval=0.01, warming_interval=60) as scheduler:
            await asyncio.sleep(0.1)

        assert "a" not in manager.fast
        assert "b" in manager.fast
        stats = scheduler.get_stats()
        assert stats["cleanup_runs"] >= 1
        assert stats["expired"] == 1
        assert stats["running"] is False

    @pytest.mark.asyncio
    async def test_warming_loop_runs_registered_plans(self, manager):
        manager.register_warming_plan([{"key": "hot", "generator": lambda: "fresh"}])

        async with MaintenanceScheduler(manager, cleanup_interval=60, warming_interval=0.01) as scheduler:
            await asyncio.sleep(0.1)

        assert await manager.get("hot") == "fresh"
        assert scheduler.get_stats()["warming_runs"] >= 1

    @pytest.mark.asyncio
    async def test_loop_survives_failing_pass(self, manager):
        manager.run_maintenance = MagicMock(side_effect=RuntimeError("boom"))

        async with MaintenanceScheduler(manager, cleanup_interval=0.01, warming_interval=60) as scheduler:
            await asyncio.sleep(0.1)
            assert scheduler.is_running is True

        assert manager.run_maintenance.call_count >= 2
        assert scheduler.get_stats()["errors"] >= 2

    @pytest.mark.asyncio
    async def test_run_cleanup_once(self, manager, clock):
        await manager.set("a", 1, ttl_seconds=1)
        clock.advance(2)

        scheduler = MaintenanceScheduler(manager)
        assert await scheduler.run_cleanup_once() == {"expired": 1, "evicted": 0}
        assert scheduler.get_stats()["cleanup_runs"] == 1
