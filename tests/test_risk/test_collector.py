"""Tests for snapshot collection and history retention."""

import math

import pytest

from src.risk.collector import SnapshotCollector, SnapshotHistory
from src.risk.types import LiquiditySnapshot

TOKEN = "So11111111111111111111111111111111111111112"
T0 = 1_700_000_000.0


def _snap(offset: float, liquidity: float = 100.0, token_id: str = TOKEN) -> LiquiditySnapshot:
    return LiquiditySnapshot(token_id=token_id, timestamp=T0 + offset, liquidity_usd=liquidity)


# ═══════════════════════════════════════════════════════════════════════
# 1. SnapshotHistory
# ═══════════════════════════════════════════════════════════════════════


def test_history_is_time_ordered():
    history = SnapshotHistory()
    assert history.append(_snap(0))
    assert history.append(_snap(10))
    assert [s.timestamp for s in history.get(TOKEN)] == [T0, T0 + 10]


def test_out_of_order_snapshot_dropped():
    history = SnapshotHistory()
    history.append(_snap(10, 100))
    assert history.append(_snap(5, 50)) is False
    assert history.append(_snap(10, 60)) is False
    assert len(history.get(TOKEN)) == 1
    assert history.latest(TOKEN).liquidity_usd == 100


def test_history_trimmed_by_count():
    history = SnapshotHistory(max_snapshots=5)
    for i in range(8):
        history.append(_snap(i))
    snaps = history.get(TOKEN)
    assert len(snaps) == 5
    assert snaps[0].timestamp == T0 + 3


def test_history_trimmed_by_age():
    history = SnapshotHistory(max_age_sec=3 * 3600)
    history.append(_snap(0))
    history.append(_snap(3600))
    history.append(_snap(4 * 3600))
    assert [s.timestamp for s in history.get(TOKEN)] == [T0 + 3600, T0 + 4 * 3600]


def test_history_max_liquidity_and_purge():
    history = SnapshotHistory()
    history.append(_snap(0, 200))
    history.append(_snap(10, 5))
    assert history.max_liquidity(TOKEN) == 200
    assert TOKEN in history

    history.purge(TOKEN)
    assert TOKEN not in history
    assert history.get(TOKEN) == []
    assert history.max_liquidity(TOKEN) == 0.0


def test_histories_are_per_token():
    other = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
    history = SnapshotHistory()
    history.append(_snap(10))
    assert history.append(_snap(5, token_id=other))
    assert len(history) == 2


# ═══════════════════════════════════════════════════════════════════════
# 2. SnapshotCollector
# ═══════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_collect_reads_every_metric(metrics_source, clock):
    metrics_source.set(TOKEN, liquidity=5000, price=0.01, volume=1200, holders=340, creator=12.5)
    snapshot = await SnapshotCollector(metrics_source, clock=clock).collect(TOKEN)

    assert snapshot.token_id == TOKEN
    assert snapshot.timestamp == clock.now
    assert snapshot.liquidity_usd == 5000
    assert snapshot.price == 0.01
    assert snapshot.volume_24h == 1200
    assert snapshot.holder_count == 340
    assert snapshot.creator_balance_pct == 12.5


@pytest.mark.asyncio
async def test_failed_metric_recorded_as_zero(metrics_source, clock, monitor_metrics):
    metrics_source.set(TOKEN, liquidity=5000, price=0.01)
    metrics_source.failing.add("price")
    collector = SnapshotCollector(metrics_source, clock=clock, metrics=monitor_metrics)

    snapshot = await collector.collect(TOKEN)

    assert snapshot.liquidity_usd == 5000
    assert snapshot.price == 0.0
    assert monitor_metrics.get_summary()["source_errors"] == {"metrics.price": 1}


@pytest.mark.asyncio
async def test_missing_and_invalid_metrics_become_zero(metrics_source, clock):
    metrics_source.set(TOKEN, liquidity=None, price=math.nan, volume="n/a", holders=math.inf)
    snapshot = await SnapshotCollector(metrics_source, clock=clock).collect(TOKEN)

    assert snapshot.liquidity_usd == 0.0
    assert snapshot.price == 0.0
    assert snapshot.volume_24h == 0.0
    assert snapshot.holder_count == 0.0
    assert snapshot.creator_balance_pct == 0.0
