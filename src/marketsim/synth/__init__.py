"""Deterministic price-path synthesis."""

from marketsim.synth.intraday import synthesize_intraday
from marketsim.synth.minute import synthesize_minutes
from marketsim.synth.monthly import synthesize_monthly
from marketsim.synth.seeded import SeededStream, daily_seed, factor_streams, horizon_seed
from marketsim.synth.series import get_series
from marketsim.synth.weekly import synthesize_weekly
from marketsim.synth.yearly import synthesize_yearly

__all__ = [
    "SeededStream",
    "daily_seed",
    "factor_streams",
    "get_series",
    "horizon_seed",
    "synthesize_intraday",
    "synthesize_minutes",
    "synthesize_monthly",
    "synthesize_weekly",
    "synthesize_yearly",
]
