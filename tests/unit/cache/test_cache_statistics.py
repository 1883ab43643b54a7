"""
Cache statistics unit tests
"""

import pytest

from tiercache.cache.stats import CacheStatistics


class TestCacheStatistics:

    def test_rates_zero_without_requests(self):
        stats = CacheStatistics()
        assert stats.hit_rate == 0
        assert stats.miss_rate == 0

    def test_rates_sum_to_one(self):
        stats = CacheStatistics()
        stats.record_hit("fast", 1.0)
        stats.record_hit("bulk", 1.0)
        stats.record_miss(1.0)

        assert stats.hit_rate == pytest.approx(2 / 3)
        assert stats.hit_rate + stats.miss_rate == pytest.approx(1.0)

    def test_layer_hits_tracked(self):
        stats = CacheStatistics()
        stats.record_hit("fast", 0.1)
        stats.record_hit("fast", 0.1)
        stats.record_hit("bulk", 0.1)

        snapshot = stats.snapshot()
        assert snapshot["fast_hits"] == 2
        assert snapshot["bulk_hits"] == 1

    def test_average_response_time_is_running_mean(self):
        stats = CacheStatistics()
        stats.record_hit("fast", 1.0)
        stats.record_miss(3.0)
        stats.record_hit("fast", 5.0)

        assert stats.avg_response_time_ms == pytest.approx(3.0)

    def test_compression_ratio_defaults_to_one(self):
        assert CacheStatistics().compression_ratio == 1.0

    def test_compression_ratio(self):
        stats = CacheStatistics()
        stats.record_compression(1000, 250)
        stats.record_compression(1000, 750)
        assert stats.compression_ratio == pytest.approx(0.5)

    def test_operation_counters(self):
        stats = CacheStatistics()
        stats.record_operation("set", "free", 100)
        stats.record_operation("set", "free", 50)
        stats.record_operation("invalidate", "system", 2)

        assert stats.snapshot()["operations"] == {"set_free": 150, "invalidate_system": 2}

    def test_reset(self):
        stats = CacheStatistics()
        stats.record_hit("fast", 1.0)
        stats.record_eviction(3)
        stats.reset()

        snapshot = stats.snapshot()
        assert snapshot["hits"] == 0
        assert snapshot["evictions"] == 0
        assert snapshot["avg_response_time_ms"] == 0
