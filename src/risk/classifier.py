"""Maps velocities to alert flags and a discrete risk level."""

from __future__ import annotations

from collections.abc import Sequence

from src.risk.thresholds import DetectionThresholds
from src.risk.types import AlertFlags, LiquiditySnapshot, RiskLevel, VelocitySet


class ThresholdClassifier:
    def __init__(self, thresholds: DetectionThresholds | None = None) -> None:
        self._t = thresholds or DetectionThresholds()

    def classify(
        self,
        velocities: VelocitySet,
        snapshots: Sequence[LiquiditySnapshot],
    ) -> tuple[AlertFlags, RiskLevel]:
        flags = self.compute_flags(velocities, snapshots)
        return flags, self.risk_level(flags, velocities)

    def compute_flags(
        self,
        velocities: VelocitySet,
        snapshots: Sequence[LiquiditySnapshot],
    ) -> AlertFlags:
        t = self._t
        liq = velocities.liquidity
        price = velocities.price
        current_creator = snapshots[-1].creator_balance_pct if snapshots else 0.0

        return AlertFlags(
            flash_rug=(
                liq.s10 < t.flash_liq_10s_pct
                or liq.s20 < t.flash_liq_20s_pct
                or liq.m5 < t.flash_liq_5m_rate
            ),
            rapid_drain=liq.s30 < t.drain_liq_30s_pct or liq.m1 < t.drain_liq_1m_rate,
            slow_bleed=detect_slow_bleed(snapshots, t),
            volume_spike=velocities.volume.m5 > t.volume_spike_5m_rate,
            creator_selling=(
                velocities.creator.m5 < t.creator_5m_rate
                and current_creator < t.creator_max_balance_pct
            ),
            panic_sell=liq.s10 < t.panic_liq_10s_pct and price.s10 < t.panic_price_10s_pct,
        )

    def risk_level(self, flags: AlertFlags, velocities: VelocitySet) -> RiskLevel:
        t = self._t
        liq = velocities.liquidity
        if flags.flash_rug or flags.panic_sell:
            return RiskLevel.CRITICAL
        if flags.rapid_drain or abs(liq.s30) > t.high_abs_liq_30s_pct:
            return RiskLevel.HIGH
        if (
            abs(liq.m1) > t.medium_abs_liq_1m_rate
            or abs(velocities.price.m1) > t.medium_abs_price_1m_rate
        ):
            return RiskLevel.MEDIUM
        return RiskLevel.LOW


def detect_slow_bleed(
    snapshots: Sequence[LiquiditySnapshot],
    thresholds: DetectionThresholds | None = None,
) -> bool:
    """Sustained 5-10%/hour liquidity drain over the last hour.

    Needs enough history (sample count and time span). Each consecutive
    delta inside the last hour is normalised to %/hour; the pattern holds
    when a large enough share of those deltas falls inside the bleed band.
    """
    t = thresholds or DetectionThresholds()
    if len(snapshots) < t.bleed_min_samples:
        return False

    latest_ts = snapshots[-1].timestamp
    if latest_ts - snapshots[0].timestamp < t.bleed_min_span_sec:
        return False

    hour_ago = latest_ts - 3600
    recent = [s for s in snapshots if s.timestamp >= hour_ago]
    if len(recent) < 2:
        return False

    deltas = 0
    bleeding = 0
    for prev, curr in zip(recent, recent[1:]):
        if prev.liquidity_usd <= 0:
            continue
        dt_hours = (curr.timestamp - prev.timestamp) / 3600
        if dt_hours <= 0:
            continue
        change_pct = (curr.liquidity_usd - prev.liquidity_usd) / prev.liquidity_usd * 100
        hourly = change_pct / dt_hours
        deltas += 1
        if t.bleed_hourly_min_pct <= hourly <= t.bleed_hourly_max_pct:
            bleeding += 1

    if deltas == 0:
        return False
    return bleeding / deltas >= t.bleed_min_fraction
