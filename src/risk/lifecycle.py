"""Permanent liquidity collapse ("rug") detection and tracking termination.

Thin newly-listed tokens routinely sit below the liquidity floor, so a
low reading alone is never enough. A token is only declared rugged when:
- it is not flagged as newly added,
- it is at least ``min_age_sec`` old,
- at least one snapshot in its history was above the floor.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from loguru import logger

from src.risk.events import TokenRuggedEvent
from src.risk.interfaces import EventSink, PersistenceSink, TokenLifecycleSource
from src.risk.metrics import MonitorMetrics
from src.risk.types import LiquiditySnapshot


class LifecycleManager:
    def __init__(
        self,
        source: TokenLifecycleSource,
        events: EventSink,
        *,
        persistence: PersistenceSink | None = None,
        liquidity_floor_usd: float = 10.0,
        min_age_sec: float = 5 * 60,
        metrics: MonitorMetrics | None = None,
    ) -> None:
        self._source = source
        self._events = events
        self._persistence = persistence
        self._floor = liquidity_floor_usd
        self._min_age_sec = min_age_sec
        self._metrics = metrics

    async def is_rugged(
        self,
        snapshot: LiquiditySnapshot,
        history: Sequence[LiquiditySnapshot],
    ) -> bool:
        if snapshot.liquidity_usd >= self._floor:
            return False

        token_id = snapshot.token_id
        if await self._is_newly_added(token_id):
            logger.info(f"[LIFECYCLE] Skipping rug check for newly added token {token_id[:12]}")
            return False

        age = await self._age_seconds(token_id)
        if age < self._min_age_sec:
            logger.info(
                f"[LIFECYCLE] Skipping rug check for young token {token_id[:12]} ({age:.0f}s old)"
            )
            return False

        if not any(s.liquidity_usd > self._floor for s in history):
            logger.info(
                f"[LIFECYCLE] {token_id[:12]} never had liquidity > ${self._floor:g}, "
                f"skipping rug detection"
            )
            return False

        return True

    async def terminate(
        self,
        token_id: str,
        final_liquidity: float,
        *,
        evict: Callable[[str], bool],
    ) -> bool:
        """Evict a rugged token and emit ``token-rugged``.

        ``evict`` must return False if the token was already gone; in that
        case nothing is emitted, which keeps the terminal event exactly-once.
        """
        if not evict(token_id):
            return False

        logger.error(f"[LIFECYCLE] TOKEN RUGGED: {token_id} (liquidity: ${final_liquidity:.2f})")
        if self._metrics:
            self._metrics.record_rug()

        try:
            await self._events.emit(
                TokenRuggedEvent(token_id=token_id, final_liquidity=final_liquidity)
            )
        except Exception as e:
            logger.error(f"[LIFECYCLE] Failed to emit token-rugged for {token_id[:12]}: {e}")

        if self._persistence:
            try:
                await self._persistence.mark_token_rugged(token_id, final_liquidity)
            except Exception as e:
                if self._metrics:
                    self._metrics.record_persistence_failure()
                logger.warning(f"[PERSIST] Failed to mark {token_id[:12]} rugged: {e}")
        return True

    async def _is_newly_added(self, token_id: str) -> bool:
        try:
            return bool(await self._source.is_newly_added(token_id))
        except Exception as e:
            logger.debug(f"[LIFECYCLE] is_newly_added failed for {token_id[:12]}: {e}")
            if self._metrics:
                self._metrics.record_source_error("lifecycle.newly_added")
            return False

    async def _age_seconds(self, token_id: str) -> float:
        # A failed lookup reads as age 0, which keeps the young-token guard engaged.
        try:
            return float(await self._source.age_seconds(token_id))
        except Exception as e:
            logger.debug(f"[LIFECYCLE] age lookup failed for {token_id[:12]}: {e}")
            if self._metrics:
                self._metrics.record_source_error("lifecycle.age")
            return 0.0
