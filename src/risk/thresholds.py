"""Detection thresholds, centralised so they can be tuned without touching logic.

Ultra-short windows (10s/20s/30s) compare against absolute % change,
standard windows (1m/5m/30m) against % per minute.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class DetectionThresholds:
    # flash rug
    flash_liq_10s_pct: float = -50.0
    flash_liq_20s_pct: float = -70.0
    flash_liq_5m_rate: float = -20.0

    # rapid drain
    drain_liq_30s_pct: float = -30.0
    drain_liq_1m_rate: float = -10.0

    # slow bleed: sustained 5-10%/hour drain
    bleed_min_samples: int = 10
    bleed_min_span_sec: float = 3600.0
    bleed_hourly_min_pct: float = -10.0
    bleed_hourly_max_pct: float = -5.0
    bleed_min_fraction: float = 0.6

    # volume spike: 10x over 5 min
    volume_spike_5m_rate: float = 200.0

    # creator selling
    creator_5m_rate: float = -10.0
    creator_max_balance_pct: float = 10.0

    # panic sell
    panic_liq_10s_pct: float = -30.0
    panic_price_10s_pct: float = -20.0

    # risk level
    high_abs_liq_30s_pct: float = 20.0
    medium_abs_liq_1m_rate: float = 5.0
    medium_abs_price_1m_rate: float = 10.0

    # velocity-derived pattern
    pattern_price_5m_rate: float = -5.0

    # honeypot evolution
    honeypot_min_sells: int = 10
    honeypot_min_samples: int = 3
    honeypot_max_samples: int = 24
    honeypot_min_slope: float = 0.1
    honeypot_min_failure_rate: float = 0.3

    # coordinated dump
    dump_min_sell_usd: float = 1000.0
    dump_bucket_sec: int = 300
    dump_min_wallets: int = 3
    dump_critical_volume_usd: float = 10_000.0
    dump_lookback_sec: float = 3600.0

    # dev preparation
    dev_activity_1h_pct: float = 20.0
    dev_acceleration_ratio: float = 2.0
