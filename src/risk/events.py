"""Typed outbound events.

Every event is a frozen dataclass carrying its wire name, so subscribers
get a concrete payload type instead of a string key plus a loose dict.

Sinks:
- EventBus: in-process callback registry keyed by event class
- RedisEventSink: JSON on a Redis pubsub channel for external consumers
- FanoutEventSink: delivers to several sinks
"""

from __future__ import annotations

import inspect
import json
import time
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from typing import Any, ClassVar, TypeVar

from loguru import logger

from src.risk.types import TokenAnalysis, VelocityData


@dataclass(frozen=True)
class RiskEvent:
    name: ClassVar[str] = "risk-event"

    token_id: str

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["event"] = self.name
        return payload


@dataclass(frozen=True)
class FlashRugEvent(RiskEvent):
    name: ClassVar[str] = "flash-rug"

    velocity: VelocityData


@dataclass(frozen=True)
class RapidDrainEvent(RiskEvent):
    name: ClassVar[str] = "rapid-drain"

    velocity: VelocityData


@dataclass(frozen=True)
class SlowBleedEvent(RiskEvent):
    name: ClassVar[str] = "slow-bleed"

    velocity: VelocityData


@dataclass(frozen=True)
class CreatorSellingEvent(RiskEvent):
    name: ClassVar[str] = "creator-selling"

    velocity: VelocityData


@dataclass(frozen=True)
class TokenRuggedEvent(RiskEvent):
    name: ClassVar[str] = "token-rugged"

    final_liquidity: float


@dataclass(frozen=True)
class HighRiskPatternEvent(RiskEvent):
    name: ClassVar[str] = "high-risk-pattern"

    analysis: TokenAnalysis


E = TypeVar("E", bound=RiskEvent)
Handler = Callable[[Any], Awaitable[None] | None]


class EventBus:
    """In-process subscriber registry.

    Subscribing to RiskEvent receives every event. A failing handler is
    logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._handlers: dict[type[RiskEvent], list[Handler]] = defaultdict(list)
        self._emitted: int = 0

    def subscribe(self, event_type: type[E], handler: Callable[[E], Awaitable[None] | None]) -> None:
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: type[RiskEvent], handler: Handler) -> None:
        handlers = self._handlers.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)

    @property
    def emitted(self) -> int:
        return self._emitted

    async def emit(self, event: RiskEvent) -> None:
        self._emitted += 1
        for cls in type(event).__mro__:
            for handler in list(self._handlers.get(cls, ())):
                try:
                    result = handler(event)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.warning(f"[EVENTS] Handler for {event.name} failed: {e}")


class RedisEventSink:
    """Publishes events as JSON to a Redis pubsub channel."""

    def __init__(self, redis, *, channel: str = "risk:events") -> None:
        self._redis = redis
        self._channel = channel

    async def emit(self, event: RiskEvent) -> None:
        try:
            payload = event.to_payload()
            payload["ts"] = time.time()
            await self._redis.publish(self._channel, json.dumps(payload, default=str))
        except Exception as e:
            logger.debug(f"[EVENTS] Redis publish failed for {event.name}: {e}")


class FanoutEventSink:
    def __init__(self, *sinks) -> None:
        self._sinks = list(sinks)

    async def emit(self, event: RiskEvent) -> None:
        for sink in self._sinks:
            try:
                await sink.emit(event)
            except Exception as e:
                logger.warning(f"[EVENTS] Sink {type(sink).__name__} failed on {event.name}: {e}")
