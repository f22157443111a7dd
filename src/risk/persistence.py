"""Best-effort historical logging of velocity cycles and pattern alerts.

Failures are logged and swallowed: losing a history row must never stall
or break a detection cycle, and nothing is retried synchronously.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import UTC, datetime
from decimal import Decimal

from loguru import logger
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.models.protection import LiquidityVelocity, PatternAlert, ProtectedToken
from src.risk.metrics import MonitorMetrics
from src.risk.types import TokenAnalysis, VelocityData


def _dec(value: float) -> Decimal:
    return Decimal(str(round(value, 6)))


class DatabasePersistence:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        metrics: MonitorMetrics | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._metrics = metrics

    async def store_velocity_snapshot(self, data: VelocityData) -> None:
        v = data.velocities
        row = LiquidityVelocity(
            token_mint=data.token_id,
            liquidity_usd=_dec(data.current.liquidity_usd),
            price=_dec(data.current.price),
            liquidity_velocity_10s=_dec(v.liquidity.s10),
            liquidity_velocity_30s=_dec(v.liquidity.s30),
            liquidity_velocity_1m=_dec(v.liquidity.m1),
            liquidity_velocity_5m=_dec(v.liquidity.m5),
            liquidity_velocity_30m=_dec(v.liquidity.m30),
            price_velocity_1m=_dec(v.price.m1),
            price_velocity_5m=_dec(v.price.m5),
            price_velocity_30m=_dec(v.price.m30),
            flash_rug_alert=data.alerts.flash_rug,
            rapid_drain_alert=data.alerts.rapid_drain,
            slow_bleed_alert=data.alerts.slow_bleed,
            risk_level=data.risk_level.value,
            timestamp=datetime.fromtimestamp(data.current.timestamp, UTC).replace(tzinfo=None),
        )
        await self._write("velocity", data.token_id, row)

    async def store_pattern_alert(self, analysis: TokenAnalysis) -> None:
        row = PatternAlert(
            token_mint=analysis.token_id,
            overall_risk=_dec(analysis.overall_risk),
            recommendation=analysis.recommendation.value,
            pattern_count=len(analysis.patterns),
            patterns=[
                {**asdict(p), "type": p.type.value, "severity": p.severity.value}
                for p in analysis.patterns
            ],
        )
        await self._write("pattern_alert", analysis.token_id, row)

    async def mark_token_rugged(self, token_id: str, final_liquidity: float) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(
                    update(ProtectedToken)
                    .where(ProtectedToken.token_mint == token_id)
                    .values(
                        status="RUGGED",
                        monitoring_active=False,
                        updated_at=datetime.now(UTC).replace(tzinfo=None),
                    )
                )
                await session.commit()
            logger.info(
                f"[PERSIST] {token_id[:12]} marked RUGGED (final liquidity ${final_liquidity:.2f})"
            )
        except Exception as e:
            self._failed("rugged_status", token_id, e)

    async def _write(self, kind: str, token_id: str, row) -> None:
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
        except Exception as e:
            self._failed(kind, token_id, e)

    def _failed(self, kind: str, token_id: str, error: Exception) -> None:
        if self._metrics:
            self._metrics.record_persistence_failure()
        logger.warning(f"[PERSIST] Failed to store {kind} for {token_id[:12]}: {error}")
