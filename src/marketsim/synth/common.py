"""Shared policies for synthesized price paths."""

from __future__ import annotations

import math
from datetime import date, datetime

PRICE_TICK = 0.01


def clamp(value: float, low: float, high: float) -> float:
    """Clamp value between low and high bounds."""
    return max(low, min(high, value))


def valid_price(value: float, fallback: float) -> float:
    """Replace a non-finite or non-positive price with `fallback`."""
    if not math.isfinite(value) or value <= 0:
        return fallback
    return value


def round_within(value: float, low: float, high: float) -> float:
    """
    Round to cents without leaving [low, high].

    Plain rounding can land half a cent outside a clamp; in that case the
    nearest cent inside the interval is used.
    """
    rounded = round(value, 2)
    if rounded < low:
        rounded = math.ceil(low * 100 - 1e-9) / 100
    if rounded > high:
        rounded = math.floor(high * 100 + 1e-9) / 100
    return rounded


def bounded_step(
    prev: float,
    raw: float,
    max_step: float,
    floor: float,
    ceiling: float,
) -> float:
    """
    Apply the shared path policies to one raw update.

    The raw price is sanitized, then hard-clamped to `prev * (1 ± max_step)`
    and to [floor, ceiling], then rounded to cents inside the final interval.
    """
    price = valid_price(raw, prev)
    low = max(prev * (1 - max_step), floor)
    high = min(prev * (1 + max_step), ceiling)
    if low > high:
        # prev sits outside the overall band; the overall band wins
        low, high = floor, ceiling
    # Sub-cent bases can round to zero; a cent is the smallest quotable price
    return max(PRICE_TICK, round_within(clamp(price, low, high), low, high))


def shift_months(day: date | datetime, months: int) -> date:
    """Move `day` by whole months, keeping day-of-month where it exists."""
    d = day.date() if isinstance(day, datetime) else day
    month_index = d.year * 12 + (d.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    for dom in (d.day, 30, 29, 28):
        try:
            return date(year, month, dom)
        except ValueError:
            continue
    return date(year, month, 28)


def month_day_label(day: date | datetime) -> str:
    return f"{day.month:02d}/{day.day:02d}"


def require_base_price(base_price: float) -> float:
    """Return `base_price` as a float, rejecting non-finite or non-positive values."""
    try:
        base = float(base_price)
    except (TypeError, ValueError) as e:
        raise ValueError(f"base_price must be a number, got: {base_price!r}") from e
    if not math.isfinite(base) or base <= 0:
        raise ValueError(f"base_price must be positive and finite, got: {base_price}")
    return base
