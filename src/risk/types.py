"""Core data model for the risk-detection engine.

Snapshots are append-only readings; velocities, alert flags and patterns
are derived per cycle and never stored as independent entities.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from pydantic import BaseModel


class RiskLevel(StrEnum):
    """Discrete risk level driving the polling cadence."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class PatternType(StrEnum):
    FLASH_RUG = "flash_rug"
    SLOW_BLEED = "slow_bleed"
    HONEYPOT_EVOLUTION = "honeypot_evolution"
    COORDINATED_DUMP = "coordinated_dump"
    DEV_PREPARATION = "dev_preparation"


class Severity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Recommendation(StrEnum):
    EXIT_NOW = "exit_now"
    EXIT_SOON = "exit_soon"
    MONITOR_CLOSELY = "monitor_closely"
    LOW_RISK = "low_risk"


# VelocitySet attribute → LiquiditySnapshot attribute
METRIC_FIELDS: dict[str, str] = {
    "liquidity": "liquidity_usd",
    "price": "price",
    "volume": "volume_24h",
    "holders": "holder_count",
    "creator": "creator_balance_pct",
}


@dataclass(frozen=True)
class LiquiditySnapshot:
    """One metrics reading for a token. Missing metrics are recorded as 0."""

    token_id: str
    timestamp: float  # epoch seconds
    liquidity_usd: float = 0.0
    price: float = 0.0
    volume_24h: float = 0.0
    holder_count: float = 0.0
    creator_balance_pct: float = 0.0
    source: str = "collector"


@dataclass(frozen=True)
class MetricVelocity:
    """Velocities of one metric across all windows.

    s10/s20/s30 are absolute % change over the window.
    m1/m5/m30 are % change per minute.
    """

    s10: float = 0.0
    s20: float = 0.0
    s30: float = 0.0
    m1: float = 0.0
    m5: float = 0.0
    m30: float = 0.0


@dataclass(frozen=True)
class VelocitySet:
    liquidity: MetricVelocity = field(default_factory=MetricVelocity)
    price: MetricVelocity = field(default_factory=MetricVelocity)
    volume: MetricVelocity = field(default_factory=MetricVelocity)
    holders: MetricVelocity = field(default_factory=MetricVelocity)
    creator: MetricVelocity = field(default_factory=MetricVelocity)


@dataclass(frozen=True)
class AlertFlags:
    flash_rug: bool = False
    rapid_drain: bool = False
    slow_bleed: bool = False
    volume_spike: bool = False
    creator_selling: bool = False
    panic_sell: bool = False

    @property
    def any(self) -> bool:
        return any((
            self.flash_rug,
            self.rapid_drain,
            self.slow_bleed,
            self.volume_spike,
            self.creator_selling,
            self.panic_sell,
        ))


@dataclass(frozen=True)
class VelocityData:
    """Result of one update cycle for a token."""

    token_id: str
    current: LiquiditySnapshot
    velocities: VelocitySet
    alerts: AlertFlags
    risk_level: RiskLevel


@dataclass
class TrackedTokenState:
    token_id: str
    polling_interval_sec: float
    last_update_ts: float | None = None
    risk_level: RiskLevel = RiskLevel.LOW


@dataclass
class RugPattern:
    type: PatternType
    confidence: float  # 0.0 - 1.0
    indicators: list[str]
    severity: Severity
    estimated_time_to_rug_min: int | None = None


@dataclass
class TokenAnalysis:
    token_id: str
    patterns: list[RugPattern]
    overall_risk: float  # 0 - 100
    recommendation: Recommendation
    timestamp: float


class SellTransaction(BaseModel):
    """A sell attempt on the token, successful or not."""

    success: bool
    timestamp: float  # epoch seconds
    amount_usd: float = 0.0
    wallet_address: str = ""

    model_config = {"extra": "ignore"}
