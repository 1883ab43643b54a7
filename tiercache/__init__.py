"""
tiercache - Tiered, quota-aware application cache

Two in-process layers (fast, bulk) with per-subscription-tier TTLs,
byte budgets, compression and encryption of sensitive values.
"""

__version__ = "1.0.0"

from tiercache.cache import (
    MaintenanceScheduler,
    TieredCacheManager,
    TierPolicy,
    TierPolicyRegistry,
    make_cache_key,
)
from tiercache.config import Config, ConfigLoader, get_config

__all__ = [
    "TieredCacheManager",
    "MaintenanceScheduler",
    "TierPolicy",
    "TierPolicyRegistry",
    "make_cache_key",
    "Config",
    "ConfigLoader",
    "get_config",
]
