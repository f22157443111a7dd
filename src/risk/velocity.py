"""Windowed rate-of-change for every tracked metric.

Two unit conventions, on purpose:
- ultra-short windows (10s/20s/30s) report the absolute % change;
- standard windows (1m/5m/30m) report % change per elapsed minute.
Thresholds in DetectionThresholds are written against these units.
"""

from __future__ import annotations

from bisect import bisect_left
from collections.abc import Sequence

from loguru import logger

from src.risk.types import METRIC_FIELDS, LiquiditySnapshot, MetricVelocity, VelocitySet

# Growth from a zero baseline is reported as this fixed value.
GROWTH_FROM_ZERO_PCT = 100.0

ULTRA_SHORT_WINDOWS: dict[str, int] = {"s10": 10, "s20": 20, "s30": 30}
RATE_WINDOWS: dict[str, int] = {"m1": 60, "m5": 5 * 60, "m30": 30 * 60}


def calculate_velocity(
    snapshots: Sequence[LiquiditySnapshot],
    window_sec: float,
    metric: str,
    *,
    per_minute: bool,
    timestamps: Sequence[float] | None = None,
) -> float:
    """Velocity of ``metric`` over the window ending at the latest snapshot.

    Start point: the earliest snapshot inside the window, else the latest
    one strictly before the window start, else no velocity (0).
    """
    if len(snapshots) < 2:
        return 0.0

    if timestamps is None:
        timestamps = [s.timestamp for s in snapshots]
    current = snapshots[-1]
    window_start = current.timestamp - window_sec

    idx = bisect_left(timestamps, window_start)
    if idx < len(snapshots) - 1:
        start = snapshots[idx]
    elif idx > 0:
        start = snapshots[idx - 1]
    else:
        return 0.0

    if start.timestamp >= current.timestamp:
        return 0.0

    start_value = float(getattr(start, metric))
    current_value = float(getattr(current, metric))

    if start_value == 0:
        return GROWTH_FROM_ZERO_PCT if current_value > 0 else 0.0

    pct_change = (current_value - start_value) / start_value * 100
    if not per_minute:
        return pct_change

    elapsed_min = (current.timestamp - start.timestamp) / 60
    if elapsed_min <= 0:
        return 0.0
    return pct_change / elapsed_min


class VelocityCalculator:
    """Builds the full VelocitySet for a token from its history."""

    def compute(self, snapshots: Sequence[LiquiditySnapshot]) -> VelocitySet:
        if len(snapshots) < 2:
            return VelocitySet()

        timestamps = [s.timestamp for s in snapshots]
        per_metric: dict[str, MetricVelocity] = {}
        for name, attr in METRIC_FIELDS.items():
            values: dict[str, float] = {}
            for key, window in ULTRA_SHORT_WINDOWS.items():
                values[key] = calculate_velocity(
                    snapshots, window, attr, per_minute=False, timestamps=timestamps,
                )
            for key, window in RATE_WINDOWS.items():
                values[key] = calculate_velocity(
                    snapshots, window, attr, per_minute=True, timestamps=timestamps,
                )
            per_metric[name] = MetricVelocity(**values)

        result = VelocitySet(**per_metric)
        liq = result.liquidity
        if abs(liq.m1) > 0.01 or abs(liq.s10) > 0.01:
            logger.debug(
                f"[VELOCITY] {snapshots[-1].token_id[:12]} liq "
                f"10s={liq.s10:+.1f}% 20s={liq.s20:+.1f}% 30s={liq.s30:+.1f}% "
                f"1m={liq.m1:+.2f}/min 5m={liq.m5:+.2f}/min 30m={liq.m30:+.2f}/min"
            )
        return result
