"""
Configuration Loader for tiercache
Loads and manages configuration from YAML files
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field
from loguru import logger


class TierPolicyConfig(BaseModel):
    """Per-subscription-tier cache policy."""
    ttl_seconds: int = 300
    max_capacity_mb: float = 10
    compress: bool = False
    encrypt_sensitive: bool = False
    persist: bool = False


def _default_tiers() -> Dict[str, TierPolicyConfig]:
    return {
        "free": TierPolicyConfig(
            ttl_seconds=300, max_capacity_mb=10,
            compress=False, encrypt_sensitive=False, persist=False,
        ),
        "starter": TierPolicyConfig(
            ttl_seconds=1800, max_capacity_mb=50,
            compress=True, encrypt_sensitive=False, persist=False,
        ),
        "agency": TierPolicyConfig(
            ttl_seconds=3600, max_capacity_mb=200,
            compress=True, encrypt_sensitive=True, persist=True,
        ),
        "enterprise": TierPolicyConfig(
            ttl_seconds=7200, max_capacity_mb=1000,
            compress=True, encrypt_sensitive=True, persist=True,
        ),
        "admin": TierPolicyConfig(
            ttl_seconds=14400, max_capacity_mb=5000,
            compress=True, encrypt_sensitive=True, persist=True,
        ),
    }


class CacheSettings(BaseModel):
    """
    Cache manager settings.

    Byte thresholds drive layer placement and maintenance:
    - bulk_threshold_bytes: writes above this go to the bulk layer
    - fast_seed_max_bytes: bulk writes below this are also seeded into fast
    - rebalance_*: bulk -> fast promotion during maintenance
    - large_entry_bytes: bulk entries above this get opportunistic compression
    """
    default_tier: str = "free"
    compression_threshold: int = 1000  # characters of serialized form
    compression_level: int = 6
    bulk_threshold_bytes: int = 1024 * 1024
    fast_seed_max_bytes: int = 100 * 1024
    rebalance_max_bytes: int = 50 * 1024
    rebalance_min_hits: int = 5
    rebalance_limit: int = 100
    large_entry_bytes: int = 100 * 1024
    top_keys_limit: int = 10
    sensitive_patterns: List[str] = ["password", "token", "key", "secret", "private"]
    encryption_key: str = ""  # Fernet key; empty generates one per process
    eviction_strategy: str = "hit_count"  # hit_count | lru | fifo
    reject_oversized: bool = False


class SchedulerConfig(BaseModel):
    """Maintenance scheduler configuration."""
    enabled: bool = True
    cleanup_interval_seconds: float = 300
    warming_interval_seconds: float = 600
    warm_timeout_seconds: float = 5.0


class SystemConfig(BaseModel):
    """System configuration."""
    name: str = "tiercache"
    version: str = "1.0.0"
    log_level: str = "INFO"


class Config(BaseModel):
    """Main configuration model."""
    system: SystemConfig = Field(default_factory=SystemConfig)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    tiers: Dict[str, TierPolicyConfig] = Field(default_factory=_default_tiers)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)


class ConfigLoader:
    """Configuration loader and manager."""

    _instance: Optional['ConfigLoader'] = None
    _config: Optional[Config] = None

    def __new__(cls, *args, **kwargs):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, config_path: Optional[str] = None):
        if self._config is None:
            self._config_path = config_path or self._find_config_path()
            self._load_config()

    def _find_config_path(self) -> Optional[str]:
        """Find configuration file path."""
        possible_paths = [
            os.environ.get("TIERCACHE_CONFIG_PATH", ""),
            "./config/config.yaml",
            "./config.yaml",
            str(Path(__file__).parent.parent.parent / "config" / "config.yaml"),
        ]

        for path in possible_paths:
            if path and os.path.exists(path):
                return path

        return None

    def _load_config(self) -> None:
        """Load configuration from YAML file."""
        if self._config_path is None:
            logger.warning("Configuration file not found, using defaults")
            self._config = Config()
            return

        try:
            with open(self._config_path, 'r', encoding='utf-8') as f:
                raw_config = yaml.safe_load(f) or {}

            # Tiers given in YAML replace or extend the built-in table
            if 'tiers' in raw_config:
                tiers = _default_tiers()
                for tier_name, tier_cfg in (raw_config['tiers'] or {}).items():
                    base = tiers.get(tier_name, TierPolicyConfig())
                    tiers[tier_name] = TierPolicyConfig.model_validate(
                        {**base.model_dump(), **(tier_cfg or {})}
                    )
                raw_config['tiers'] = tiers

            self._config = Config(**raw_config)
            logger.info(f"Configuration loaded from {self._config_path}")

        except Exception as e:
            logger.warning(f"Failed to load config: {e}, using defaults")
            self._config = Config()

    @property
    def config(self) -> Config:
        """Get configuration."""
        return self._config

    @property
    def config_path(self) -> Optional[str]:
        return self._config_path

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-separated key."""
        keys = key.split('.')
        value = self._config

        try:
            for k in keys:
                if isinstance(value, dict):
                    value = value[k]
                elif hasattr(value, k):
                    value = getattr(value, k)
                else:
                    return default
            return value
        except (KeyError, AttributeError):
            return default

    def reload(self) -> None:
        """Reload configuration."""
        self._load_config()

    @classmethod
    def reset(cls) -> None:
        """Reset singleton instance."""
        cls._instance = None
        cls._config = None


def get_config() -> Config:
    """Get global configuration instance."""
    return ConfigLoader().config
