"""Rug pattern detectors.

Four independent checks per token; each returns a RugPattern or None and
swallows its own collaborator failures so one broken source never hides
the other signals:

1. velocity-derived: flash rug / rapid drain / slow bleed from the
   latest velocity cycle
2. honeypot evolution: sell failure rate trending up over time
3. coordinated dump: >= 3 wallets dumping inside one 5-minute bucket
4. dev preparation: dev wallet activity, new wallets, exchange moves
"""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from loguru import logger

from src.risk.interfaces import DevActivitySource, SellTransactionSource, WalletRelationSource
from src.risk.metrics import MonitorMetrics
from src.risk.thresholds import DetectionThresholds
from src.risk.types import PatternType, RugPattern, SellTransaction, Severity, VelocityData

SELL_LOOKBACK_SEC = 24 * 3600


def linear_slope(values: Sequence[float]) -> float:
    """Least-squares slope of ``values`` against their index."""
    n = len(values)
    if n < 2:
        return 0.0
    sum_x = n * (n - 1) / 2
    sum_y = sum(values)
    sum_xy = sum(i * v for i, v in enumerate(values))
    sum_x2 = (n - 1) * n * (2 * n - 1) / 6
    denom = n * sum_x2 - sum_x * sum_x
    if denom == 0:
        return 0.0
    return (n * sum_xy - sum_x * sum_y) / denom


def check_velocity_pattern(
    velocity: VelocityData | None,
    thresholds: DetectionThresholds | None = None,
) -> RugPattern | None:
    """Flash rug / slow bleed pattern from the latest velocity cycle."""
    if velocity is None:
        return None
    t = thresholds or DetectionThresholds()
    alerts = velocity.alerts
    v = velocity.velocities

    indicators: list[str] = []
    if alerts.flash_rug:
        indicators.append(
            f"Liquidity collapsing: {v.liquidity.s10:+.1f}% in 10s, "
            f"{v.liquidity.m5:+.1f}%/min over 5m"
        )
        confidence = 0.95
        pattern_type = PatternType.FLASH_RUG
    elif alerts.rapid_drain:
        indicators.append(
            f"Rapid liquidity drain: {v.liquidity.s30:+.1f}% in 30s, "
            f"{v.liquidity.m1:+.1f}%/min over 1m"
        )
        confidence = 0.8
        pattern_type = PatternType.FLASH_RUG
    elif alerts.slow_bleed:
        indicators.append("Consistent 5-10% hourly liquidity reduction detected")
        confidence = 0.7
        pattern_type = PatternType.SLOW_BLEED
    else:
        return None

    if v.price.m5 < t.pattern_price_5m_rate:
        indicators.append(f"Price dropping {abs(v.price.m5):.1f}% per minute")
        confidence = min(1.0, confidence + 0.1)

    if alerts.volume_spike:
        indicators.append("Abnormal volume spike detected")
        confidence = min(1.0, confidence + 0.05)

    if confidence >= 0.9:
        severity = Severity.CRITICAL
    elif confidence >= 0.7:
        severity = Severity.HIGH
    else:
        severity = Severity.MEDIUM

    return RugPattern(
        type=pattern_type,
        confidence=confidence,
        indicators=indicators,
        severity=severity,
        estimated_time_to_rug_min=5 if pattern_type == PatternType.FLASH_RUG else 120,
    )


def find_coordinated_bucket(
    sells: Sequence[SellTransaction],
    thresholds: DetectionThresholds | None = None,
) -> tuple[list[str], float] | None:
    """First 5-minute bucket (newest first) with enough distinct large sellers.

    Returns (sorted unique wallets, total bucket volume) or None.
    """
    t = thresholds or DetectionThresholds()
    buckets: dict[int, list[SellTransaction]] = {}
    for sell in sorted(sells, key=lambda s: s.timestamp, reverse=True):
        if sell.amount_usd < t.dump_min_sell_usd or not sell.wallet_address:
            continue
        buckets.setdefault(int(sell.timestamp // t.dump_bucket_sec), []).append(sell)

    for bucket_sells in buckets.values():
        wallets = {s.wallet_address for s in bucket_sells}
        if len(wallets) >= t.dump_min_wallets:
            return sorted(wallets), sum(s.amount_usd for s in bucket_sells)
    return None


class PatternDetector:
    """Runs every detector for a token and keeps per-token detector state."""

    def __init__(
        self,
        sells: SellTransactionSource,
        dev_activity: DevActivitySource,
        wallet_relations: WalletRelationSource,
        *,
        thresholds: DetectionThresholds | None = None,
        clock: Callable[[], float] = time.time,
        metrics: MonitorMetrics | None = None,
    ) -> None:
        self._sells = sells
        self._dev = dev_activity
        self._relations = wallet_relations
        self._t = thresholds or DetectionThresholds()
        self._clock = clock
        self._metrics = metrics
        # token_id → rolling hourly sell-failure-rate samples
        self._failure_history: dict[str, deque[float]] = {}

    def failure_history(self, token_id: str) -> list[float]:
        return list(self._failure_history.get(token_id, ()))

    def forget(self, token_id: str) -> None:
        self._failure_history.pop(token_id, None)

    async def detect(self, token_id: str, velocity: VelocityData | None) -> list[RugPattern]:
        patterns: list[RugPattern] = []

        velocity_pattern = check_velocity_pattern(velocity, self._t)
        if velocity_pattern:
            patterns.append(velocity_pattern)

        sells = await self._load_sells(token_id)

        honeypot = self.check_honeypot_evolution(token_id, sells)
        if honeypot:
            patterns.append(honeypot)

        dump = await self.check_coordinated_dump(token_id, sells)
        if dump:
            patterns.append(dump)

        dev = await self.check_dev_preparation(token_id)
        if dev:
            patterns.append(dev)

        if patterns:
            logger.info(
                f"[PATTERN] {token_id[:12]}: "
                + ", ".join(f"{p.type.value}({p.confidence:.2f}/{p.severity.value})" for p in patterns)
            )
        return patterns

    async def _load_sells(self, token_id: str) -> list[SellTransaction]:
        since = self._clock() - SELL_LOOKBACK_SEC
        try:
            return list(await self._sells.list_recent_sells(token_id, since))
        except Exception as e:
            logger.debug(f"[PATTERN] Sell history unavailable for {token_id[:12]}: {e}")
            if self._metrics:
                self._metrics.record_source_error("sells")
            return []

    def check_honeypot_evolution(
        self,
        token_id: str,
        sells: Sequence[SellTransaction],
    ) -> RugPattern | None:
        t = self._t
        if len(sells) < t.honeypot_min_sells:
            return None

        hour_ago = self._clock() - 3600
        recent = [s for s in sells if s.timestamp > hour_ago]
        recent_failure_rate = (
            sum(1 for s in recent if not s.success) / len(recent) if recent else 0.0
        )

        history = self._failure_history.setdefault(
            token_id, deque(maxlen=t.honeypot_max_samples)
        )
        history.append(recent_failure_rate)

        if len(history) < t.honeypot_min_samples:
            return None

        slope = linear_slope(list(history))
        if slope <= t.honeypot_min_slope or recent_failure_rate <= t.honeypot_min_failure_rate:
            return None

        indicators = [
            f"Sell failure rate increasing: {recent_failure_rate * 100:.1f}%",
            f"Trend: {slope * 100:.1f}% increase per sample",
        ]
        if recent_failure_rate > 0.7:
            indicators.append("CRITICAL: Most sells are failing")
            severity = Severity.CRITICAL
        elif recent_failure_rate > 0.5:
            severity = Severity.HIGH
        else:
            severity = Severity.MEDIUM

        return RugPattern(
            type=PatternType.HONEYPOT_EVOLUTION,
            confidence=min(0.95, 0.5 + recent_failure_rate),
            indicators=indicators,
            severity=severity,
        )

    async def check_coordinated_dump(
        self,
        token_id: str,
        sells: Sequence[SellTransaction],
    ) -> RugPattern | None:
        t = self._t
        since = self._clock() - t.dump_lookback_sec
        bucket = find_coordinated_bucket([s for s in sells if s.timestamp >= since], t)
        if bucket is None:
            return None

        wallets, total_volume = bucket
        indicators = [
            f"{len(wallets)} wallets sold within 5 minutes",
            f"Total volume: ${total_volume:,.0f}",
            f"Average per wallet: ${total_volume / len(wallets):,.0f}",
        ]

        related = False
        try:
            related = bool(await self._relations.are_wallets_related(wallets))
        except Exception as e:
            logger.debug(f"[PATTERN] Wallet relation lookup failed for {token_id[:12]}: {e}")
            if self._metrics:
                self._metrics.record_source_error("wallet_relations")
        if related:
            indicators.append("Wallets appear to be related (direct transfers)")

        return RugPattern(
            type=PatternType.COORDINATED_DUMP,
            confidence=0.9 if related else 0.7,
            indicators=indicators,
            severity=(
                Severity.CRITICAL if total_volume > t.dump_critical_volume_usd else Severity.HIGH
            ),
            estimated_time_to_rug_min=15,
        )

    async def check_dev_preparation(self, token_id: str) -> RugPattern | None:
        t = self._t
        activity_1h = await self._dev_call("dev.1h", self._dev.get_1h_activity_pct, token_id, 0.0)
        activity_24h = await self._dev_call("dev.24h", self._dev.get_24h_activity_pct, token_id, 0.0)
        new_wallets = await self._dev_call("dev.new_wallets", self._dev.list_new_dev_wallets, token_id, [])
        exchange_move = await self._dev_call(
            "dev.exchange", self._dev.has_recent_exchange_movement, token_id, False,
        )

        indicators: list[str] = []
        confidence = 0.0

        if activity_1h > t.dev_activity_1h_pct:
            indicators.append(f"High dev activity: {activity_1h:.1f}% in last hour")
            confidence += 0.3
        if activity_1h > activity_24h * t.dev_acceleration_ratio:
            indicators.append("Dev activity accelerating")
            confidence += 0.2
        if new_wallets:
            indicators.append(f"{len(new_wallets)} new wallets created by dev")
            confidence += 0.2
        if exchange_move:
            indicators.append("Tokens moved to centralized exchange")
            confidence += 0.3

        if not indicators:
            return None

        confidence = min(0.9, confidence)
        return RugPattern(
            type=PatternType.DEV_PREPARATION,
            confidence=confidence,
            indicators=indicators,
            severity=Severity.HIGH if confidence >= 0.7 else Severity.MEDIUM,
            estimated_time_to_rug_min=60,
        )

    async def _dev_call(
        self,
        name: str,
        getter: Callable[[str], Awaitable[Any]],
        token_id: str,
        default: Any,
    ) -> Any:
        try:
            value = await getter(token_id)
        except Exception as e:
            logger.debug(f"[PATTERN] {name} unavailable for {token_id[:12]}: {e}")
            if self._metrics:
                self._metrics.record_source_error(name)
            return default
        return default if value is None else value
