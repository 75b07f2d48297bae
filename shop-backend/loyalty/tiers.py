# loyalty/tiers.py
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from django.db import models


class Tier(models.TextChoices):
    BRONZE = "bronze", "Bronze"
    SILVER = "silver", "Silver"
    GOLD = "gold", "Gold"
    PLATINUM = "platinum", "Platinum"


TIER_ORDER = [Tier.BRONZE, Tier.SILVER, Tier.GOLD, Tier.PLATINUM]


@dataclass(frozen=True)
class TierRule:
    min_points: int
    multiplier: Decimal
    benefits: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TierPolicy:
    """
    Maps lifetime points to a tier. The tier is always derived from
    lifetime points; nothing sets it directly.
    """
    rules: Dict[str, TierRule]

    def tier_for(self, lifetime_points: int) -> str:
        # highest threshold not exceeding lifetime points wins
        for tier in reversed(TIER_ORDER):
            if lifetime_points >= self.rules[tier].min_points:
                return tier
        return Tier.BRONZE

    def multiplier(self, tier: str) -> Decimal:
        return self.rules[tier].multiplier

    def next_tier(self, tier: str) -> Optional[str]:
        idx = TIER_ORDER.index(tier)
        return TIER_ORDER[idx + 1] if idx < len(TIER_ORDER) - 1 else None

    def points_to_next_tier(self, tier: str, lifetime_points: int) -> int:
        nxt = self.next_tier(tier)
        if nxt is None:
            return 0
        return max(0, self.rules[nxt].min_points - lifetime_points)

    def benefits(self, tier: str) -> List[str]:
        return list(self.rules[tier].benefits)


def tier_rank(tier: str) -> int:
    return TIER_ORDER.index(tier)


def tier_at_least(tier: str, minimum: str) -> bool:
    return tier_rank(tier) >= tier_rank(minimum or Tier.BRONZE)


DEFAULT_POLICY = TierPolicy(rules={
    Tier.BRONZE: TierRule(0, Decimal("1"), ["Access to member-only offers"]),
    Tier.SILVER: TierRule(1000, Decimal("1.25"), ["Early access to sales"]),
    Tier.GOLD: TierRule(5000, Decimal("1.5"), ["Free shipping", "Priority support"]),
    Tier.PLATINUM: TierRule(15000, Decimal("2"), ["Exclusive gifts", "Priority support"]),
})
