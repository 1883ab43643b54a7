"""
Tier Policy Registry
Static table mapping subscription tier names to cache policy

Each tier controls:
- default TTL for entries written under it
- total byte budget (summed across fast + bulk layers)
- whether large values are compressed
- whether sensitive values are encrypted
- whether entries are eligible for a durable store (declared only)

Unknown tier names resolve to the fallback tier ("free").
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, List, Mapping, Optional, TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from tiercache.config.config_loader import Config


BYTES_PER_MB = 1024 * 1024


@dataclass(frozen=True)
class TierPolicy:
    """Cache policy for one subscription tier."""
    name: str
    ttl_seconds: int
    max_capacity_mb: float
    compress: bool = False
    encrypt_sensitive: bool = False
    persist: bool = False

    @property
    def max_capacity_bytes(self) -> int:
        return int(self.max_capacity_mb * BYTES_PER_MB)

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "TierPolicy":
        """Create policy from dictionary"""
        return cls(
            name=name,
            ttl_seconds=data.get('ttl_seconds', 300),
            max_capacity_mb=data.get('max_capacity_mb', 10),
            compress=data.get('compress', False),
            encrypt_sensitive=data.get('encrypt_sensitive', False),
            persist=data.get('persist', False),
        )


DEFAULT_TIER_POLICIES: Dict[str, TierPolicy] = {
    "free": TierPolicy("free", ttl_seconds=300, max_capacity_mb=10),
    "starter": TierPolicy("starter", ttl_seconds=1800, max_capacity_mb=50, compress=True),
    "agency": TierPolicy(
        "agency", ttl_seconds=3600, max_capacity_mb=200,
        compress=True, encrypt_sensitive=True, persist=True,
    ),
    "enterprise": TierPolicy(
        "enterprise", ttl_seconds=7200, max_capacity_mb=1000,
        compress=True, encrypt_sensitive=True, persist=True,
    ),
    "admin": TierPolicy(
        "admin", ttl_seconds=14400, max_capacity_mb=5000,
        compress=True, encrypt_sensitive=True, persist=True,
    ),
}


class TierPolicyRegistry:
    """
    Read-only lookup of tier policies.

    The table is fixed after construction; deployments override it at
    startup through ``with_overrides`` or ``from_config``.

    Example:
        registry = TierPolicyRegistry()
        registry.resolve("agency").ttl_seconds   # 3600
        registry.resolve("platinum").name        # "free" (fallback)
    """

    def __init__(
        self,
        policies: Optional[Mapping[str, TierPolicy]] = None,
        fallback_tier: str = "free",
    ):
        self._policies: Dict[str, TierPolicy] = dict(policies or DEFAULT_TIER_POLICIES)

        if fallback_tier not in self._policies:
            raise ValueError(f"Fallback tier '{fallback_tier}' has no policy")
        self._fallback_tier = fallback_tier

    @property
    def fallback_tier(self) -> str:
        return self._fallback_tier

    def resolve(self, tier: Optional[str]) -> TierPolicy:
        """Get the policy for a tier, falling back for unknown names."""
        policy = self._policies.get(tier) if tier else None
        if policy is None:
            logger.debug(f"Unknown tier '{tier}', using '{self._fallback_tier}' policy")
            return self._policies[self._fallback_tier]
        return policy

    def tier_names(self) -> List[str]:
        return list(self._policies.keys())

    def __contains__(self, tier: str) -> bool:
        return tier in self._policies

    def with_overrides(self, overrides: Mapping[str, Mapping[str, Any]]) -> "TierPolicyRegistry":
        """
        Return a new registry with per-tier field overrides applied.

        Unknown tier names in ``overrides`` add new tiers.
        """
        policies = dict(self._policies)
        for name, fields in overrides.items():
            if name in policies:
                policies[name] = replace(policies[name], **dict(fields))
            else:
                policies[name] = TierPolicy.from_dict(name, dict(fields))
        return TierPolicyRegistry(policies, fallback_tier=self._fallback_tier)

    @classmethod
    def from_config(cls, config: "Config") -> "TierPolicyRegistry":
        """Build registry from the loaded configuration."""
        policies = {
            name: TierPolicy(name=name, **tier_cfg.model_dump())
            for name, tier_cfg in config.tiers.items()
        }
        return cls(policies, fallback_tier=config.cache.default_tier)
