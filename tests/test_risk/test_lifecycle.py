"""Tests for rug (permanent liquidity collapse) detection."""

import pytest

from src.risk.events import TokenRuggedEvent
from src.risk.lifecycle import LifecycleManager
from src.risk.types import LiquiditySnapshot

TOKEN = "So11111111111111111111111111111111111111112"
T0 = 1_700_000_000.0


def _snap(offset: float, liquidity: float) -> LiquiditySnapshot:
    return LiquiditySnapshot(token_id=TOKEN, timestamp=T0 + offset, liquidity_usd=liquidity)


@pytest.fixture
def manager(lifecycle_source, events, persistence, monitor_metrics):
    return LifecycleManager(
        lifecycle_source, events, persistence=persistence, metrics=monitor_metrics,
    )


@pytest.mark.asyncio
async def test_liquidity_above_floor_never_rugged(manager, lifecycle_source):
    lifecycle_source.ages[TOKEN] = 3600
    current = _snap(60, 10.0)
    assert await manager.is_rugged(current, [_snap(0, 500), current]) is False


@pytest.mark.asyncio
async def test_newly_added_young_token_not_rugged(manager, lifecycle_source):
    lifecycle_source.newly_added[TOKEN] = True
    lifecycle_source.ages[TOKEN] = 120
    current = _snap(60, 5.0)
    assert await manager.is_rugged(current, [_snap(0, 200), current]) is False


@pytest.mark.asyncio
async def test_young_token_not_rugged(manager, lifecycle_source):
    lifecycle_source.ages[TOKEN] = 299
    current = _snap(60, 5.0)
    assert await manager.is_rugged(current, [_snap(0, 200), current]) is False


@pytest.mark.asyncio
async def test_token_that_never_had_liquidity_not_rugged(manager, lifecycle_source):
    lifecycle_source.ages[TOKEN] = 3600
    current = _snap(60, 5.0)
    assert await manager.is_rugged(current, [_snap(0, 8.0), _snap(30, 10.0), current]) is False


@pytest.mark.asyncio
async def test_collapse_after_real_liquidity_is_rug(manager, lifecycle_source):
    lifecycle_source.ages[TOKEN] = 3600
    current = _snap(60, 5.0)
    assert await manager.is_rugged(current, [_snap(0, 200), current]) is True


@pytest.mark.asyncio
async def test_source_failure_keeps_young_token_guard(manager, lifecycle_source, monitor_metrics):
    lifecycle_source.error = ConnectionError("db down")
    current = _snap(60, 5.0)
    assert await manager.is_rugged(current, [_snap(0, 200), current]) is False
    errors = monitor_metrics.get_summary()["source_errors"]
    assert errors["lifecycle.newly_added"] == 1
    assert errors["lifecycle.age"] == 1


@pytest.mark.asyncio
async def test_terminate_emits_once(manager, events, persistence, monitor_metrics):
    tracked = {TOKEN}

    def evict(token_id: str) -> bool:
        if token_id not in tracked:
            return False
        tracked.discard(token_id)
        return True

    assert await manager.terminate(TOKEN, 5.0, evict=evict) is True
    assert await manager.terminate(TOKEN, 5.0, evict=evict) is False

    assert len(events.events) == 1
    event = events.events[0]
    assert isinstance(event, TokenRuggedEvent)
    assert event.final_liquidity == 5.0
    assert persistence.rugged == [(TOKEN, 5.0)]
    assert monitor_metrics.get_summary()["rugs_detected"] == 1


class _FailingPersistence:
    async def mark_token_rugged(self, token_id: str, final_liquidity: float) -> None:
        raise ConnectionError("db down")


@pytest.mark.asyncio
async def test_terminate_survives_persistence_failure(lifecycle_source, events, monitor_metrics):
    manager = LifecycleManager(
        lifecycle_source, events, persistence=_FailingPersistence(), metrics=monitor_metrics,
    )

    assert await manager.terminate(TOKEN, 5.0, evict=lambda _: True) is True

    assert [e.token_id for e in events.events] == [TOKEN]
    summary = monitor_metrics.get_summary()
    assert summary["rugs_detected"] == 1
    assert summary["persistence_failures"] == 1
