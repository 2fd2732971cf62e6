"""Trade cost model: base cost, commission and spread."""

from __future__ import annotations

from dataclasses import dataclass

from marketsim.config_loader import FeeConfig


@dataclass(frozen=True)
class FeeQuote:
    """Cost breakdown for one order."""

    base: float
    commission: float = 0.0
    spread: float = 0.0

    @property
    def fees(self) -> float:
        return self.commission + self.spread

    @property
    def total_cost(self) -> float:
        """Cash debited for a buy."""
        return self.base + self.fees

    @property
    def net_proceeds(self) -> float:
        """Cash credited for a sell."""
        return self.base - self.fees


class FeePolicy:
    """
    Pluggable fee schedule.

    Commission is `max(minimum_fee, base * commission_rate)` once either
    setting is non-zero; spread is `base * spread_rate`. The default
    configuration charges nothing.
    """

    def __init__(self, config: FeeConfig | None = None) -> None:
        self.config = config or FeeConfig()

    @property
    def charges_commission(self) -> bool:
        return self.config.commission_rate > 0 or self.config.minimum_fee > 0

    def quote(self, price: float, quantity: int) -> FeeQuote:
        base = price * quantity
        commission = 0.0
        if self.charges_commission:
            commission = max(self.config.minimum_fee, base * self.config.commission_rate)
        spread = base * self.config.spread_rate
        return FeeQuote(base=base, commission=commission, spread=spread)
