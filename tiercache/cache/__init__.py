"""
tiercache Cache System
Two-layer, tier-aware cache with quotas and maintenance

This module provides:
- TieredCacheManager: get/set/batch/invalidate/warm across both layers
- MaintenanceScheduler: periodic expiry, quota and warming tasks
- TierPolicyRegistry: subscription tier -> TTL/budget/transform policy
- EntryCodec: JSON + zlib + Fernet payload transforms
- CacheLayer: mechanical key -> entry storage (fast and bulk instances)

Architecture:
- fast: hot entries, checked first on every read
- bulk: large or forced entries, promoted into fast on read
"""

from tiercache.cache.codec import (
    EncodedPayload,
    EntryCodec,
    KeywordSensitivityClassifier,
    SENSITIVE_PATTERNS,
)
from tiercache.cache.eviction import (
    EVICTION_STRATEGIES,
    get_eviction_strategy,
)
from tiercache.cache.layer import CacheEntry, CacheLayer
from tiercache.cache.manager import (
    TieredCacheManager,
    WarmingTask,
    make_cache_key,
)
from tiercache.cache.scheduler import MaintenanceScheduler
from tiercache.cache.stats import (
    CacheStatistics,
    CacheStats,
    KeyUsage,
    TierUsage,
)
from tiercache.cache.tier_policy import (
    DEFAULT_TIER_POLICIES,
    TierPolicy,
    TierPolicyRegistry,
)

__all__ = [
    # Manager
    "TieredCacheManager",
    "WarmingTask",
    "make_cache_key",
    "MaintenanceScheduler",
    # Policy
    "TierPolicy",
    "TierPolicyRegistry",
    "DEFAULT_TIER_POLICIES",
    # Codec
    "EntryCodec",
    "EncodedPayload",
    "KeywordSensitivityClassifier",
    "SENSITIVE_PATTERNS",
    # Storage
    "CacheEntry",
    "CacheLayer",
    "EVICTION_STRATEGIES",
    "get_eviction_strategy",
    # Stats
    "CacheStatistics",
    "CacheStats",
    "KeyUsage",
    "TierUsage",
]
