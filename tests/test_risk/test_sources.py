"""Tests for the database-backed engine collaborators."""

from datetime import datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.risk.sources import (
    DatabaseDevActivitySource,
    DatabaseLifecycleSource,
    DatabaseMetricsSource,
    DatabaseSellTransactionSource,
    DatabaseWalletRelationSource,
    load_monitored_tokens,
    relation_ratio,
    to_epoch,
    to_naive_utc,
)

TOKEN = "So11111111111111111111111111111111111111112"
T0 = 1_700_000_000.0


def _session_factory(result):
    session = MagicMock()
    session.execute = AsyncMock(return_value=result)
    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=session)
    ctx.__aexit__ = AsyncMock(return_value=False)
    factory = MagicMock(return_value=ctx)
    factory.session = session
    return factory


def _result(*, scalar=None, first=None, rows=None, scalars=None):
    result = MagicMock()
    result.scalar_one_or_none.return_value = scalar
    result.first.return_value = first
    result.all.return_value = rows or []
    result.scalars.return_value.all.return_value = scalars or []
    return result


# ═══════════════════════════════════════════════════════════════════════
# 1. Helpers
# ═══════════════════════════════════════════════════════════════════════


def test_timestamp_conversion_roundtrip():
    dt = to_naive_utc(T0)
    assert dt == datetime(2023, 11, 14, 22, 13, 20)
    assert dt.tzinfo is None
    assert to_epoch(dt) == T0


@pytest.mark.parametrize(
    ("wallets", "edges", "expected"),
    [
        (["a"], [], 0.0),
        (["a", "b", "c"], [], 0.0),
        (["a", "b", "c"], [("a", "b")], 1 / 3),
        (["a", "b", "c"], [("a", "b"), ("b", "a")], 1 / 3),
        (["a", "b", "c"], [("a", "b"), ("b", "c"), ("c", "a")], 1.0),
        (["a", "b", "c"], [("a", "x"), ("a", "a")], 0.0),
    ],
)
def test_relation_ratio(wallets, edges, expected):
    assert relation_ratio(wallets, edges) == pytest.approx(expected)


# ═══════════════════════════════════════════════════════════════════════
# 2. Metrics source
# ═══════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_liquidity_reads_latest_row():
    factory = _session_factory(_result(scalar=Decimal("1234.5")))
    value = await DatabaseMetricsSource(factory).get_liquidity_usd(TOKEN)
    assert value == 1234.5
    assert "pool_liquidity" in str(factory.session.execute.call_args.args[0])


@pytest.mark.asyncio
async def test_missing_metric_is_none():
    factory = _session_factory(_result(scalar=None))
    assert await DatabaseMetricsSource(factory).get_holder_count(TOKEN) is None


@pytest.mark.asyncio
async def test_price_prefers_usd_price():
    source = DatabaseMetricsSource(_session_factory(_result(first=(Decimal("0.02"), Decimal("0.0001")))))
    assert await source.get_price(TOKEN) == 0.02

    source = DatabaseMetricsSource(_session_factory(_result(first=(None, Decimal("0.0001")))))
    assert await source.get_price(TOKEN) == 0.0001

    source = DatabaseMetricsSource(_session_factory(_result(first=None)))
    assert await source.get_price(TOKEN) is None


# ═══════════════════════════════════════════════════════════════════════
# 3. Sells, dev activity, relations, lifecycle
# ═══════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_list_recent_sells_maps_rows():
    rows = [
        (True, datetime(2023, 11, 14, 22, 13, 20), Decimal("2500"), "walletA"),
        (False, datetime(2023, 11, 14, 22, 10, 0), None, None),
    ]
    source = DatabaseSellTransactionSource(_session_factory(_result(rows=rows)))

    sells = await source.list_recent_sells(TOKEN, T0 - 3600)

    assert len(sells) == 2
    assert sells[0].success is True
    assert sells[0].timestamp == T0
    assert sells[0].amount_usd == 2500.0
    assert sells[0].wallet_address == "walletA"
    assert sells[1].success is False
    assert sells[1].amount_usd == 0.0
    assert sells[1].wallet_address == ""


@pytest.mark.asyncio
async def test_dev_activity_from_report():
    source = DatabaseDevActivitySource(_session_factory(_result(scalar=Decimal("25.5"))))
    assert await source.get_1h_activity_pct(TOKEN) == 25.5

    source = DatabaseDevActivitySource(_session_factory(_result(scalar=None)))
    assert await source.get_24h_activity_pct(TOKEN) == 0.0


@pytest.mark.asyncio
async def test_new_dev_wallets():
    source = DatabaseDevActivitySource(
        _session_factory(_result(scalars=["dev1", "dev2"])), clock=lambda: T0,
    )
    assert await source.list_new_dev_wallets(TOKEN) == ["dev1", "dev2"]


@pytest.mark.asyncio
async def test_exchange_movement():
    factory = _session_factory(_result(first=(1,)))
    source = DatabaseDevActivitySource(factory, exchange_wallets=["binance"], clock=lambda: T0)
    assert await source.has_recent_exchange_movement(TOKEN) is True


@pytest.mark.asyncio
async def test_exchange_movement_without_known_exchanges():
    factory = _session_factory(_result(first=(1,)))
    source = DatabaseDevActivitySource(factory, exchange_wallets=[])
    assert await source.has_recent_exchange_movement(TOKEN) is False
    factory.session.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_wallets_related_by_transfer_ratio():
    related = DatabaseWalletRelationSource(_session_factory(_result(rows=[("a", "b")])))
    assert await related.are_wallets_related(["a", "b", "c"]) is True

    unrelated = DatabaseWalletRelationSource(_session_factory(_result(rows=[])))
    assert await unrelated.are_wallets_related(["a", "b", "c"]) is False


@pytest.mark.asyncio
async def test_single_wallet_never_related():
    factory = _session_factory(_result(rows=[("a", "a")]))
    assert await DatabaseWalletRelationSource(factory).are_wallets_related(["a", "a"]) is False
    factory.session.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_lifecycle_newly_added():
    source = DatabaseLifecycleSource(_session_factory(_result(first=(7,))))
    assert await source.is_newly_added(TOKEN) is True

    source = DatabaseLifecycleSource(_session_factory(_result(first=None)))
    assert await source.is_newly_added(TOKEN) is False


@pytest.mark.asyncio
async def test_lifecycle_age():
    added = datetime(2023, 11, 14, 21, 13, 20)  # one hour before T0
    source = DatabaseLifecycleSource(_session_factory(_result(scalar=added)), clock=lambda: T0)
    assert await source.age_seconds(TOKEN) == 3600

    source = DatabaseLifecycleSource(_session_factory(_result(scalar=None)), clock=lambda: T0)
    assert await source.age_seconds(TOKEN) == 0.0


@pytest.mark.asyncio
async def test_load_monitored_tokens():
    factory = _session_factory(_result(scalars=[TOKEN]))
    assert await load_monitored_tokens(factory) == [TOKEN]
