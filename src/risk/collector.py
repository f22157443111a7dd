"""Snapshot collection and bounded per-token history.

The collector reads each metric independently; a metric that fails or is
missing is recorded as 0, so a partial snapshot is still a valid snapshot.
History is strictly time-ordered and trimmed by count and by age after
every insert.
"""

from __future__ import annotations

import asyncio
import math
import time
from collections import deque
from collections.abc import Awaitable, Callable

from loguru import logger

from src.risk.interfaces import MetricsSource
from src.risk.metrics import MonitorMetrics
from src.risk.types import LiquiditySnapshot


class SnapshotHistory:
    """Time-ordered snapshot buffer per token."""

    def __init__(self, *, max_snapshots: int = 360, max_age_sec: float = 3 * 3600) -> None:
        self._max_snapshots = max_snapshots
        self._max_age_sec = max_age_sec
        self._history: dict[str, deque[LiquiditySnapshot]] = {}

    def append(self, snapshot: LiquiditySnapshot) -> bool:
        """Insert a snapshot and trim to the retention policy.

        Returns False (and drops the snapshot) if it is not strictly newer
        than the latest one held for the token.
        """
        buf = self._history.setdefault(snapshot.token_id, deque())
        if buf and snapshot.timestamp <= buf[-1].timestamp:
            logger.warning(
                f"[HISTORY] Dropping out-of-order snapshot for {snapshot.token_id[:12]} "
                f"({snapshot.timestamp:.3f} <= {buf[-1].timestamp:.3f})"
            )
            return False

        buf.append(snapshot)

        while len(buf) > self._max_snapshots:
            buf.popleft()
        cutoff = snapshot.timestamp - self._max_age_sec
        while buf and buf[0].timestamp < cutoff:
            buf.popleft()
        return True

    def get(self, token_id: str) -> list[LiquiditySnapshot]:
        return list(self._history.get(token_id, ()))

    def latest(self, token_id: str) -> LiquiditySnapshot | None:
        buf = self._history.get(token_id)
        return buf[-1] if buf else None

    def max_liquidity(self, token_id: str) -> float:
        """Highest liquidity seen in the retained history (0 if none)."""
        buf = self._history.get(token_id)
        if not buf:
            return 0.0
        return max(s.liquidity_usd for s in buf)

    def purge(self, token_id: str) -> None:
        self._history.pop(token_id, None)

    def __contains__(self, token_id: object) -> bool:
        return token_id in self._history

    def __len__(self) -> int:
        return len(self._history)


class SnapshotCollector:
    """Pulls one metrics reading per token from the MetricsSource."""

    def __init__(
        self,
        source: MetricsSource,
        *,
        clock: Callable[[], float] = time.time,
        metrics: MonitorMetrics | None = None,
        source_tag: str = "collector",
    ) -> None:
        self._source = source
        self._clock = clock
        self._metrics = metrics
        self._source_tag = source_tag

    async def collect(self, token_id: str) -> LiquiditySnapshot:
        liquidity, price, volume, holders, creator = await asyncio.gather(
            self._read("liquidity", self._source.get_liquidity_usd, token_id),
            self._read("price", self._source.get_price, token_id),
            self._read("volume", self._source.get_volume_24h, token_id),
            self._read("holders", self._source.get_holder_count, token_id),
            self._read("creator", self._source.get_creator_balance_pct, token_id),
        )
        return LiquiditySnapshot(
            token_id=token_id,
            timestamp=self._clock(),
            liquidity_usd=liquidity,
            price=price,
            volume_24h=volume,
            holder_count=holders,
            creator_balance_pct=creator,
            source=self._source_tag,
        )

    async def _read(
        self,
        metric: str,
        getter: Callable[[str], Awaitable[float | None]],
        token_id: str,
    ) -> float:
        try:
            value = await getter(token_id)
        except Exception as e:
            logger.debug(f"[COLLECT] {metric} unavailable for {token_id[:12]}: {e}")
            if self._metrics:
                self._metrics.record_source_error(f"metrics.{metric}")
            return 0.0

        if value is None:
            return 0.0
        try:
            value = float(value)
        except (TypeError, ValueError):
            logger.debug(f"[COLLECT] Non-numeric {metric} for {token_id[:12]}: {value!r}")
            return 0.0
        return value if math.isfinite(value) else 0.0
