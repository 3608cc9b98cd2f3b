"""
Payout amount tiers.

A requester picks a tier; the faucet pays a uniformly random, satoshi
granular amount inside that tier's ``[min, max)`` range.
"""

from __future__ import annotations

import random
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from signet_faucet.constants import SATOSHI, SATS_PER_BTC
from signet_faucet.errors import InvalidTierError


@dataclass(frozen=True)
class AmountTier:
    tier_id: int
    min_btc: Decimal
    max_btc: Decimal

    @property
    def range_sats(self) -> int:
        return int((self.max_btc - self.min_btc) * SATS_PER_BTC)


AMOUNT_TIERS: dict[int, AmountTier] = {
    1: AmountTier(1, Decimal("0.001"), Decimal("0.009")),
    2: AmountTier(2, Decimal("0.01"), Decimal("0.09")),
    3: AmountTier(3, Decimal("0.1"), Decimal("0.9")),
    4: AmountTier(4, Decimal("1.0"), Decimal("2.0")),
}


class AmountPolicy:
    """Resolves requested tiers and draws payout amounts."""

    def __init__(
        self,
        enabled_tiers: Iterable[int],
        default_tier: int,
        rng: random.Random | None = None,
        tiers: dict[int, AmountTier] | None = None,
    ):
        self.tiers = tiers if tiers is not None else AMOUNT_TIERS
        self.enabled = [t for t in enabled_tiers if t in self.tiers]
        self.default_tier = default_tier
        self._rng = rng or random.Random()

    def enabled_tiers(self) -> list[AmountTier]:
        return [self.tiers[t] for t in self.enabled]

    def get(self, tier_id: int | None) -> AmountTier | None:
        if tier_id is None or tier_id not in self.enabled:
            return None
        return self.tiers[tier_id]

    def resolve(self, tier_id: int | None) -> AmountTier:
        """Requested tier if enabled, else the default tier."""
        tier = self.get(tier_id) or self.get(self.default_tier)
        if tier is None:
            raise InvalidTierError(f"Invalid amount range: {tier_id}")
        return tier

    def pick_amount(self, tier_id: int | None) -> Decimal:
        tier = self.resolve(tier_id)
        random_sats = self._rng.randrange(tier.range_sats)
        return (tier.min_btc + random_sats * SATOSHI).quantize(SATOSHI)
