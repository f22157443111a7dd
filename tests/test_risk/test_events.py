"""Tests for typed events and event sinks."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.risk.events import (
    EventBus,
    FanoutEventSink,
    HighRiskPatternEvent,
    RedisEventSink,
    RiskEvent,
    TokenRuggedEvent,
)
from src.risk.types import Recommendation, TokenAnalysis

TOKEN = "So11111111111111111111111111111111111111112"


def test_event_names():
    assert TokenRuggedEvent.name == "token-rugged"
    assert HighRiskPatternEvent.name == "high-risk-pattern"


def test_payload_includes_name():
    payload = TokenRuggedEvent(token_id=TOKEN, final_liquidity=4.2).to_payload()
    assert payload == {"token_id": TOKEN, "final_liquidity": 4.2, "event": "token-rugged"}


@pytest.mark.asyncio
async def test_bus_dispatches_by_type():
    bus = EventBus()
    rugged, everything = [], []
    bus.subscribe(TokenRuggedEvent, rugged.append)
    bus.subscribe(RiskEvent, everything.append)

    analysis = TokenAnalysis(
        token_id=TOKEN, patterns=[], overall_risk=85.0,
        recommendation=Recommendation.EXIT_SOON, timestamp=0.0,
    )
    await bus.emit(TokenRuggedEvent(token_id=TOKEN, final_liquidity=1.0))
    await bus.emit(HighRiskPatternEvent(token_id=TOKEN, analysis=analysis))

    assert len(rugged) == 1
    assert [e.name for e in everything] == ["token-rugged", "high-risk-pattern"]
    assert bus.emitted == 2


@pytest.mark.asyncio
async def test_bus_async_handler_and_failing_handler():
    bus = EventBus()
    received = []

    async def handler(event):
        received.append(event)

    def broken(event):
        raise RuntimeError("handler bug")

    bus.subscribe(TokenRuggedEvent, broken)
    bus.subscribe(TokenRuggedEvent, handler)
    await bus.emit(TokenRuggedEvent(token_id=TOKEN, final_liquidity=1.0))

    assert len(received) == 1


@pytest.mark.asyncio
async def test_bus_unsubscribe():
    bus = EventBus()
    received = []
    bus.subscribe(TokenRuggedEvent, received.append)
    bus.unsubscribe(TokenRuggedEvent, received.append)
    bus.unsubscribe(TokenRuggedEvent, received.append)

    await bus.emit(TokenRuggedEvent(token_id=TOKEN, final_liquidity=1.0))
    assert received == []


@pytest.mark.asyncio
async def test_redis_sink_publishes_json():
    redis = MagicMock()
    redis.publish = AsyncMock()
    sink = RedisEventSink(redis)

    await sink.emit(TokenRuggedEvent(token_id=TOKEN, final_liquidity=3.0))

    channel, payload = redis.publish.call_args.args
    assert channel == "risk:events"
    data = json.loads(payload)
    assert data["event"] == "token-rugged"
    assert data["token_id"] == TOKEN
    assert "ts" in data


@pytest.mark.asyncio
async def test_fanout_continues_after_sink_failure():
    broken = MagicMock()
    broken.emit = AsyncMock(side_effect=RuntimeError("down"))
    bus = EventBus()
    received = []
    bus.subscribe(RiskEvent, received.append)

    await FanoutEventSink(broken, bus).emit(TokenRuggedEvent(token_id=TOKEN, final_liquidity=0.0))

    assert len(received) == 1
