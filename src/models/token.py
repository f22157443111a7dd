"""Market-data tables the metrics collector reads from.

Rows are written by the platform scrapers; the risk engine only reads the
latest row per token.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Index, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base


class PoolLiquidity(Base):
    __tablename__ = "pool_liquidity"

    id: Mapped[int] = mapped_column(primary_key=True)
    token_mint: Mapped[str] = mapped_column(String(64))
    pool_address: Mapped[str | None] = mapped_column(String(64))
    liquidity_usd: Mapped[Decimal | None] = mapped_column(Numeric)
    timestamp: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (Index("idx_pool_liquidity_mint_ts", "token_mint", "timestamp"),)


class TokenPrice(Base):
    __tablename__ = "token_prices"

    id: Mapped[int] = mapped_column(primary_key=True)
    token_mint: Mapped[str] = mapped_column(String(64))
    price: Mapped[Decimal | None] = mapped_column(Numeric)
    price_usd: Mapped[Decimal | None] = mapped_column(Numeric)
    market_cap: Mapped[Decimal | None] = mapped_column(Numeric)
    timestamp: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (Index("idx_token_prices_mint_ts", "token_mint", "timestamp"),)


class TokenVolume(Base):
    __tablename__ = "token_volumes"

    id: Mapped[int] = mapped_column(primary_key=True)
    token_mint: Mapped[str] = mapped_column(String(64))
    volume_24h_usd: Mapped[Decimal | None] = mapped_column(Numeric)
    timestamp: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (Index("idx_token_volumes_mint_ts", "token_mint", "timestamp"),)


class RugcheckReport(Base):
    """Latest holder / creator / dev-activity figures per token."""

    __tablename__ = "rugcheck_reports"

    id: Mapped[int] = mapped_column(primary_key=True)
    token_mint: Mapped[str] = mapped_column(String(64), unique=True)
    holders: Mapped[int | None] = mapped_column(Integer)
    creator_balance_percent: Mapped[Decimal | None] = mapped_column(Numeric)
    dev_activity_1h_pct: Mapped[Decimal | None] = mapped_column(Numeric)
    dev_activity_24h_pct: Mapped[Decimal | None] = mapped_column(Numeric)
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
