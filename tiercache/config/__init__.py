"""
tiercache configuration
"""

from tiercache.config.config_loader import (
    Config,
    ConfigLoader,
    CacheSettings,
    SchedulerConfig,
    SystemConfig,
    TierPolicyConfig,
    get_config,
)

__all__ = [
    "Config",
    "ConfigLoader",
    "CacheSettings",
    "SchedulerConfig",
    "SystemConfig",
    "TierPolicyConfig",
    "get_config",
]
