"""Seeded pseudo-random streams.

Every synthetic price path is built from these streams so the same ticker on
the same day (or at the same base price) always yields the same path, with no
storage. Each market factor draws from its own linear-congruential recurrence;
sharing one generator would correlate factors through the shared state.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date

MASK_32 = 0xFFFFFFFF

# Floor for uniforms fed to log(); keeps Box-Muller and chi-squared draws finite
_MIN_UNIFORM = 1e-12


class SeededStream:
    """Reseedable LCG producing floats in [0, 1)."""

    def __init__(self, seed: int, multiplier: int, increment: int, modulus: int) -> None:
        self.multiplier = multiplier
        self.increment = increment
        self.modulus = modulus
        self.seed = seed
        self._state = seed % modulus

    # Named recurrences. Constants are the classic published LCG parameter sets.

    @classmethod
    def order_flow(cls, seed: int) -> SeededStream:
        return cls(seed, 1103515245, 12345, 2**31)

    @classmethod
    def institutional(cls, seed: int) -> SeededStream:
        return cls(seed, 1664525, 1013904223, 2**32)

    @classmethod
    def volatility(cls, seed: int) -> SeededStream:
        return cls(seed, 22695477, 1, 2**32)

    @classmethod
    def news(cls, seed: int) -> SeededStream:
        return cls(seed, 134775813, 1, 2**32)

    @classmethod
    def regime(cls, seed: int) -> SeededStream:
        return cls(seed, 214013, 2531011, 2**31)

    @classmethod
    def tick(cls, seed: int) -> SeededStream:
        return cls(seed, 69069, 1, 2**32)

    def reseed(self, seed: int) -> None:
        self.seed = seed
        self._state = seed % self.modulus

    def next(self) -> float:
        """Advance and return a uniform in [0, 1)."""
        self._state = (self._state * self.multiplier + self.increment) % self.modulus
        return self._state / self.modulus

    def uniform(self, low: float, high: float) -> float:
        return low + (high - low) * self.next()

    def normal(self) -> float:
        """Approximately standard-normal variate (Box-Muller, two draws)."""
        u1 = max(self.next(), _MIN_UNIFORM)
        u2 = self.next()
        return math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)

    def fat_tailed(self, dof: int = 4) -> float:
        """
        Student-t-like variate with `dof` degrees of freedom (rounded up to even).

        Each -2*ln(u) term is chi-squared with 2 degrees of freedom, so dof/2
        of them sum to chi-squared(dof).
        """
        terms = max(1, (dof + 1) // 2)
        z = self.normal()
        chi2 = sum(-2.0 * math.log(max(self.next(), _MIN_UNIFORM)) for _ in range(terms))
        return z / math.sqrt(chi2 / (2 * terms))


@dataclass
class FactorStreams:
    """One independent stream per market factor."""

    order_flow: SeededStream
    institutional: SeededStream
    volatility: SeededStream
    news: SeededStream
    regime: SeededStream


def ticker_seed(ticker: str) -> int:
    """Sum of character codes of the ticker."""
    return sum(ord(c) for c in ticker)


def daily_seed(ticker: str, day: date) -> int:
    """Seed that is stable for a ticker for one calendar day."""
    base = ticker_seed(ticker)
    return (base * 100_003 + day.year * 1_000 + day.month * 37 + day.day * 7919) & MASK_32


def horizon_seed(ticker: str, base_price: float) -> int:
    """Seed for longer horizons, keyed on the base price in cents."""
    cents = int(round(base_price * 100)) if math.isfinite(base_price) else 0
    return (ticker_seed(ticker) * 100_003 + cents * 31) & MASK_32


def factor_streams(seed: int) -> FactorStreams:
    """Derive the per-factor streams from one base seed."""
    return FactorStreams(
        order_flow=SeededStream.order_flow(seed),
        institutional=SeededStream.institutional((seed + 7_919) & MASK_32),
        volatility=SeededStream.volatility((seed + 15_485_863) & MASK_32),
        news=SeededStream.news((seed ^ 0x5BD1E995) & MASK_32),
        regime=SeededStream.regime((seed * 3 + 104_729) & MASK_32),
    )
