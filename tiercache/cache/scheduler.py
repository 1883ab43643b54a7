"""
Maintenance Scheduler
Background asyncio tasks driving cache maintenance

- cleanup loop: expiry sweep + quota enforcement (default every 5 minutes)
- warming loop: re-runs registered warming plans (default every 10 minutes)

The loops are independent and may interleave with each other and with
foreground requests; the manager's layers and counters are lock-protected.

Usage:
```python
manager = TieredCacheManager()
scheduler = MaintenanceScheduler(manager)
scheduler.start()
...
await scheduler.stop()
```
"""

import asyncio
from typing import Any, Dict, Optional, TYPE_CHECKING

from loguru import logger

from tiercache.config.config_loader import SchedulerConfig

if TYPE_CHECKING:
    from tiercache.cache.manager import TieredCacheManager


class MaintenanceScheduler:
    """
    Owns the periodic maintenance tasks for one TieredCacheManager.

    Must be started from inside a running event loop. ``stop`` cancels
    both tasks and waits for them to finish.
    """

    def __init__(
        self,
        manager: "TieredCacheManager",
        config: Optional[SchedulerConfig] = None,
        cleanup_interval: Optional[float] = None,
        warming_interval: Optional[float] = None,
    ):
        self.manager = manager
        self.config = config or manager.config.scheduler
        self.cleanup_interval = cleanup_interval or self.config.cleanup_interval_seconds
        self.warming_interval = warming_interval or self.config.warming_interval_seconds

        self._cleanup_task: Optional[asyncio.Task] = None
        self._warming_task: Optional[asyncio.Task] = None

        self._stats = {
            "cleanup_runs": 0,
            "warming_runs": 0,
            "errors": 0,
            "expired": 0,
            "evicted": 0,
        }

    @property
    def is_running(self) -> bool:
        return any(
            task is not None and not task.done()
            for task in (self._cleanup_task, self._warming_task)
        )

    def start(self) -> bool:
        """
        Start background loops.

        Returns:
            True if started, False if disabled or already running
        """
        if not self.config.enabled:
            logger.info("Cache maintenance scheduler is disabled in configuration")
            return False

        if self.is_running:
            return False

        self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        self._warming_task = asyncio.create_task(self._warming_loop())

        logger.info(
            f"Cache maintenance started "
            f"(cleanup every {self.cleanup_interval}s, "
            f"warming every {self.warming_interval}s)"
        )
        return True

    async def stop(self) -> None:
        """Cancel background loops and wait for them to exit."""
        for task in (self._cleanup_task, self._warming_task):
            if task is None:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        self._cleanup_task = None
        self._warming_task = None
        logger.info("Cache maintenance stopped")

    async def __aenter__(self) -> "MaintenanceScheduler":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def run_cleanup_once(self) -> Dict[str, int]:
        """Run one expiry + quota pass."""
        result = self.manager.run_maintenance()
        self._stats["cleanup_runs"] += 1
        self._stats["expired"] += result["expired"]
        self._stats["evicted"] += result["evicted"]
        return result

    async def run_warming_once(self) -> Dict[str, int]:
        """Run one periodic warming pass."""
        result = await self.manager.perform_periodic_warming()
        self._stats["warming_runs"] += 1
        return result

    async def _cleanup_loop(self):
        """Background cleanup loop"""
        while True:
            try:
                await asyncio.sleep(self.cleanup_interval)
                await self.run_cleanup_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(f"Cache cleanup pass failed: {e}")
                self._stats["errors"] += 1

    async def _warming_loop(self):
        """Background warming loop"""
        while True:
            try:
                await asyncio.sleep(self.warming_interval)
                await self.run_warming_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(f"Cache warming pass failed: {e}")
                self._stats["errors"] += 1

    def get_stats(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "cleanup_interval": self.cleanup_interval,
            "warming_interval": self.warming_interval,
            **self._stats,
        }
