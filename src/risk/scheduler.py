"""Per-token adaptive polling.

Each tracked token owns one ticker task. A tick spawns the update as a
separate task so that changing the cadence (cancel ticker, start a new one)
never interrupts an update that is already running. If a tick fires while
the previous update for that token is still in flight, the tick is skipped.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from loguru import logger

from src.risk.metrics import MonitorMetrics
from src.risk.types import RiskLevel

DEFAULT_INTERVALS: dict[RiskLevel, float] = {
    RiskLevel.CRITICAL: 5.0,
    RiskLevel.HIGH: 10.0,
    RiskLevel.MEDIUM: 15.0,
    RiskLevel.LOW: 30.0,
}
DEFAULT_INTERVAL_SEC = 30.0


class AdaptiveScheduler:
    def __init__(
        self,
        on_tick: Callable[[str], Awaitable[None]],
        *,
        intervals: dict[RiskLevel, float] | None = None,
        default_interval_sec: float = DEFAULT_INTERVAL_SEC,
        metrics: MonitorMetrics | None = None,
    ) -> None:
        self._on_tick = on_tick
        self._table = dict(DEFAULT_INTERVALS)
        if intervals:
            self._table.update(intervals)
        self._default_interval = default_interval_sec
        self._metrics = metrics

        # token_id → ticker task / its interval / in-flight update
        self._tickers: dict[str, asyncio.Task] = {}
        self._intervals: dict[str, float] = {}
        self._in_flight: dict[str, asyncio.Task] = {}

    def interval_for(self, level: RiskLevel | None) -> float:
        if level is None:
            return self._default_interval
        return self._table.get(level, self._default_interval)

    def current_interval(self, token_id: str) -> float | None:
        return self._intervals.get(token_id)

    def is_scheduled(self, token_id: str) -> bool:
        return token_id in self._tickers

    def is_in_flight(self, token_id: str) -> bool:
        task = self._in_flight.get(token_id)
        return task is not None and not task.done()

    @property
    def scheduled_tokens(self) -> list[str]:
        return list(self._tickers)

    def schedule(self, token_id: str, interval_sec: float) -> None:
        """Start (or replace) the ticker for a token."""
        old = self._tickers.pop(token_id, None)
        if old is not None:
            old.cancel()
        self._intervals[token_id] = interval_sec
        self._tickers[token_id] = asyncio.create_task(
            self._tick_loop(token_id, interval_sec),
            name=f"risk_tick_{token_id[:12]}",
        )

    def reschedule(self, token_id: str, level: RiskLevel) -> float | None:
        """Move a token to the cadence of ``level`` if it differs.

        Returns the new interval, or None when nothing changed or the token
        is no longer scheduled.
        """
        if token_id not in self._tickers:
            return None
        new_interval = self.interval_for(level)
        if self._intervals.get(token_id) == new_interval:
            return None

        old_interval = self._intervals.get(token_id)
        self.schedule(token_id, new_interval)
        if self._metrics:
            self._metrics.record_reschedule()
        logger.info(
            f"[SCHED] {token_id[:12]} {level.value}: "
            f"interval {old_interval:g}s → {new_interval:g}s"
        )
        return new_interval

    def cancel(self, token_id: str) -> bool:
        """Stop the ticker. An in-flight update is left to finish."""
        ticker = self._tickers.pop(token_id, None)
        self._intervals.pop(token_id, None)
        if ticker is None:
            return False
        ticker.cancel()
        return True

    async def shutdown(self) -> None:
        """Cancel every ticker and wait for in-flight updates."""
        tickers = list(self._tickers.values())
        self._tickers.clear()
        self._intervals.clear()
        for task in tickers:
            task.cancel()
        await asyncio.gather(*tickers, return_exceptions=True)

        in_flight = [t for t in self._in_flight.values() if not t.done()]
        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)
        self._in_flight.clear()

    async def _tick_loop(self, token_id: str, interval_sec: float) -> None:
        while True:
            await asyncio.sleep(interval_sec)
            self.fire(token_id)

    def fire(self, token_id: str) -> bool:
        """Run one update now unless the previous one is still running."""
        if self.is_in_flight(token_id):
            if self._metrics:
                self._metrics.record_skipped_tick()
            logger.debug(f"[SCHED] {token_id[:12]} previous update still running, tick skipped")
            return False

        self._in_flight[token_id] = asyncio.create_task(
            self._run(token_id),
            name=f"risk_update_{token_id[:12]}",
        )
        return True

    async def run_now(self, token_id: str) -> bool:
        """Like fire(), but wait for the update to finish."""
        if not self.fire(token_id):
            return False
        await self._in_flight[token_id]
        return True

    async def _run(self, token_id: str) -> None:
        try:
            await self._on_tick(token_id)
        except Exception as e:
            logger.error(f"[SCHED] Update failed for {token_id[:12]}: {e}")
        finally:
            task = asyncio.current_task()
            if self._in_flight.get(token_id) is task:
                del self._in_flight[token_id]
