"""Shared aggregation helpers used by the journals, dashboard and reports.

Everything here works on plain floats: rows are already capped and filtered
by the query layer, so the arithmetic is single pass and in memory.
"""
from __future__ import annotations

import math
from datetime import date
from decimal import Decimal, ROUND_HALF_UP

from app.utils.dates import monday_of, month_key

MAD_TO_SIGMA = 1.4826


def num(v) -> float:
    if v is None:
        return 0.0
    try:
        f = float(v)
    except (TypeError, ValueError):
        return 0.0
    return f if math.isfinite(f) else 0.0


def rnd(x: float, places: int = 0):
    """Half-up rounding: 2.5 -> 3, 0.125 -> 0.13 with places=2."""
    q = Decimal(1).scaleb(-places)
    v = Decimal(str(x)).quantize(q, rounding=ROUND_HALF_UP)
    return int(v) if places == 0 else float(v)


def stability_index(mean: float, sd: float) -> float:
    if mean == 0:
        return 0.0
    return max(0.0, 1.0 - sd / mean) * 100.0


class RunningStats:
    """Welford online mean / population variance."""

    __slots__ = ("count", "mean", "total", "_m2")

    def __init__(self):
        self.count = 0
        self.mean = 0.0
        self.total = 0.0
        self._m2 = 0.0

    def push(self, x: float) -> None:
        self.count += 1
        self.total += x
        delta = x - self.mean
        self.mean += delta / self.count
        self._m2 += delta * (x - self.mean)

    @property
    def variance(self) -> float:
        if self.count < 2:
            return 0.0
        return self._m2 / self.count

    @property
    def stddev(self) -> float:
        return math.sqrt(self.variance)

    @property
    def stability(self) -> float:
        return stability_index(self.mean, self.stddev)

    def as_dict(self) -> dict:
        return {
            "avg": self.mean if self.count else 0.0,
            "stddev": self.stddev,
            "stability": self.stability if self.count else 0.0,
            "sum": self.total,
            "count": self.count,
        }


def median(values: list[float]) -> float:
    if not values:
        return 0.0
    xs = sorted(values)
    mid = len(xs) // 2
    if len(xs) % 2:
        return xs[mid]
    return (xs[mid - 1] + xs[mid]) / 2


def mean_abs_deviation(values: list[float], center: float) -> float:
    if not values:
        return 0.0
    return sum(abs(v - center) for v in values) / len(values)


def robust_sigma(values: list[float]) -> float:
    return mean_abs_deviation(values, median(values)) * MAD_TO_SIGMA


def zscore(x: float, center: float, sigma: float) -> float:
    if sigma <= 0:
        return 0.0
    return abs(x - center) / sigma


def linear_regression(ys: list[float]) -> tuple[float, float]:
    """Least squares fit of ys against x = 0..n-1, returns (slope, intercept)."""
    n = len(ys)
    if n < 2:
        return 0.0, 0.0
    sum_x = sum_y = sum_xy = sum_xx = 0.0
    for i, y in enumerate(ys):
        sum_x += i
        sum_y += y
        sum_xy += i * y
        sum_xx += i * i
    denom = n * sum_xx - sum_x * sum_x
    if denom == 0:
        return 0.0, sum_y / n
    slope = (n * sum_xy - sum_x * sum_y) / denom
    intercept = (sum_y - slope * sum_x) / n
    return slope, intercept


def holt_forecast(series: list[float], alpha: float = 0.6, beta: float = 0.2) -> float:
    """Double exponential smoothing, one step ahead, rounded and floored at 0."""
    if not series:
        return 0
    if len(series) == 1:
        return max(0, rnd(series[0]))
    level = series[0]
    trend = series[1] - series[0]
    for x in series[1:]:
        prev_level = level
        level = alpha * x + (1 - alpha) * (level + trend)
        trend = beta * (level - prev_level) + (1 - beta) * trend
    return max(0, rnd(level + trend))


def holt_forecast_next(
    series: list[float], alpha: float = 0.5, beta: float = 0.3, growth_clamp_pct: float = 0.15
) -> float:
    """Holt one step ahead with the trend clamped to +-growth_clamp_pct of the level."""
    if not series:
        return 0.0
    if len(series) == 1:
        return series[0]
    level = series[0]
    trend = series[1] - series[0]
    for x in series[1:]:
        prev_level = level
        level = alpha * x + (1 - alpha) * (level + trend)
        trend = beta * (level - prev_level) + (1 - beta) * trend
        cap = abs(level) * growth_clamp_pct
        trend = max(-cap, min(cap, trend))
    return max(0.0, level + trend)


def pct_change(current: float, previous: float) -> float:
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    if current == 0:
        return -100.0
    return (current - previous) / previous * 100.0


def group_key(d: date, mode: str) -> str:
    if mode == "day":
        return d.isoformat()
    if mode == "week":
        return monday_of(d).isoformat()
    if mode == "month":
        return month_key(d)
    if mode == "year":
        return f"{d.year:04d}"
    raise ValueError(f"unknown group mode: {mode}")
