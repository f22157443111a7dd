"""Database-backed collaborators for the risk engine.

Read-only views over the tables the platform scrapers and wallet sync
fill in. Each method issues one small query; errors propagate to the
caller, which degrades the affected metric to its default.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.models.protection import ProtectedToken, WalletToken
from src.models.token import PoolLiquidity, RugcheckReport, TokenPrice, TokenVolume
from src.models.wallet import DevWallet, TokenTransaction, WalletTransaction
from src.risk.types import SellTransaction

SessionFactory = async_sessionmaker[AsyncSession]

# Share of possible wallet pairs with a direct transfer above which a group
# of sellers is treated as one entity.
RELATED_PAIR_RATIO = 0.3


def to_naive_utc(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, UTC).replace(tzinfo=None)


def to_epoch(dt: datetime) -> float:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.timestamp()


def relation_ratio(wallets: list[str], edges: Iterable[tuple[str, str]]) -> float:
    """Fraction of unordered wallet pairs that transacted directly."""
    members = set(wallets)
    n = len(members)
    if n < 2:
        return 0.0
    pairs = {
        frozenset((a, b))
        for a, b in edges
        if a != b and a in members and b in members
    }
    possible = n * (n - 1) / 2
    return len(pairs) / possible


class DatabaseMetricsSource:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def _latest(self, stmt) -> float | None:
        async with self._session_factory() as session:
            result = await session.execute(stmt.limit(1))
            value = result.scalar_one_or_none()
        return float(value) if value is not None else None

    async def get_liquidity_usd(self, token_id: str) -> float | None:
        return await self._latest(
            select(PoolLiquidity.liquidity_usd)
            .where(PoolLiquidity.token_mint == token_id)
            .order_by(PoolLiquidity.timestamp.desc())
        )

    async def get_price(self, token_id: str) -> float | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(TokenPrice.price_usd, TokenPrice.price)
                .where(TokenPrice.token_mint == token_id)
                .order_by(TokenPrice.timestamp.desc())
                .limit(1)
            )
            row = result.first()
        if row is None:
            return None
        price_usd, price = row
        value = price_usd if price_usd else price
        return float(value) if value is not None else None

    async def get_volume_24h(self, token_id: str) -> float | None:
        return await self._latest(
            select(TokenVolume.volume_24h_usd)
            .where(TokenVolume.token_mint == token_id)
            .order_by(TokenVolume.timestamp.desc())
        )

    async def get_holder_count(self, token_id: str) -> float | None:
        return await self._latest(
            select(RugcheckReport.holders).where(RugcheckReport.token_mint == token_id)
        )

    async def get_creator_balance_pct(self, token_id: str) -> float | None:
        return await self._latest(
            select(RugcheckReport.creator_balance_percent)
            .where(RugcheckReport.token_mint == token_id)
        )


class DatabaseSellTransactionSource:
    def __init__(self, session_factory: SessionFactory, *, limit: int = 500) -> None:
        self._session_factory = session_factory
        self._limit = limit

    async def list_recent_sells(self, token_id: str, since_ts: float) -> list[SellTransaction]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(
                    TokenTransaction.success,
                    TokenTransaction.timestamp,
                    TokenTransaction.amount_usd,
                    TokenTransaction.wallet_address,
                )
                .where(
                    TokenTransaction.token_mint == token_id,
                    TokenTransaction.type == "sell",
                    TokenTransaction.timestamp >= to_naive_utc(since_ts),
                )
                .order_by(TokenTransaction.timestamp.desc())
                .limit(self._limit)
            )
            rows = result.all()

        return [
            SellTransaction(
                success=bool(success),
                timestamp=to_epoch(ts),
                amount_usd=float(amount or 0),
                wallet_address=wallet or "",
            )
            for success, ts, amount, wallet in rows
        ]


class DatabaseDevActivitySource:
    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        exchange_wallets: list[str] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._session_factory = session_factory
        self._exchange_wallets = exchange_wallets or []
        self._clock = clock

    async def _report_value(self, column, token_id: str) -> float:
        async with self._session_factory() as session:
            result = await session.execute(
                select(column).where(RugcheckReport.token_mint == token_id).limit(1)
            )
            value = result.scalar_one_or_none()
        return float(value) if value is not None else 0.0

    async def get_1h_activity_pct(self, token_id: str) -> float:
        return await self._report_value(RugcheckReport.dev_activity_1h_pct, token_id)

    async def get_24h_activity_pct(self, token_id: str) -> float:
        return await self._report_value(RugcheckReport.dev_activity_24h_pct, token_id)

    async def list_new_dev_wallets(self, token_id: str) -> list[str]:
        cutoff = to_naive_utc(self._clock() - 24 * 3600)
        async with self._session_factory() as session:
            result = await session.execute(
                select(DevWallet.wallet_address).where(
                    DevWallet.token_mint == token_id,
                    DevWallet.first_seen_at >= cutoff,
                )
            )
            return list(result.scalars().all())

    async def has_recent_exchange_movement(self, token_id: str) -> bool:
        if not self._exchange_wallets:
            return False
        cutoff = to_naive_utc(self._clock() - 24 * 3600)
        async with self._session_factory() as session:
            result = await session.execute(
                select(TokenTransaction.id)
                .where(
                    TokenTransaction.token_mint == token_id,
                    TokenTransaction.to_wallet.in_(self._exchange_wallets),
                    TokenTransaction.timestamp >= cutoff,
                )
                .limit(1)
            )
            return result.first() is not None


class DatabaseWalletRelationSource:
    def __init__(self, session_factory: SessionFactory, *, min_ratio: float = RELATED_PAIR_RATIO) -> None:
        self._session_factory = session_factory
        self._min_ratio = min_ratio

    async def are_wallets_related(self, wallets: list[str]) -> bool:
        if len(set(wallets)) < 2:
            return False
        async with self._session_factory() as session:
            result = await session.execute(
                select(WalletTransaction.from_wallet, WalletTransaction.to_wallet)
                .where(
                    WalletTransaction.from_wallet.in_(wallets),
                    WalletTransaction.to_wallet.in_(wallets),
                )
                .limit(1000)
            )
            edges = [(a, b) for a, b in result.all()]
        return relation_ratio(wallets, edges) >= self._min_ratio


class DatabaseLifecycleSource:
    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    async def is_newly_added(self, token_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(WalletToken.id)
                .where(WalletToken.token_mint == token_id, WalletToken.is_newly_added.is_(True))
                .limit(1)
            )
            return result.first() is not None

    async def age_seconds(self, token_id: str) -> float:
        """Seconds since the token was first added to any wallet (0 if unknown)."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.min(WalletToken.added_at)).where(WalletToken.token_mint == token_id)
            )
            added_at = result.scalar_one_or_none()
        if added_at is None:
            return 0.0
        return max(0.0, self._clock() - to_epoch(added_at))


async def load_monitored_tokens(session_factory: SessionFactory) -> list[str]:
    """Token mints with active protection, used to resume tracking on startup."""
    async with session_factory() as session:
        result = await session.execute(
            select(ProtectedToken.token_mint)
            .where(ProtectedToken.monitoring_active.is_(True))
            .distinct()
        )
        return list(result.scalars().all())
