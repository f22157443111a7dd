from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base


class WalletToken(Base):
    """A token in a user's wallet; carries the newly-added flag and add time."""

    __tablename__ = "wallet_tokens"

    id: Mapped[int] = mapped_column(primary_key=True)
    wallet_address: Mapped[str] = mapped_column(String(64))
    token_mint: Mapped[str] = mapped_column(String(64))
    is_newly_added: Mapped[bool] = mapped_column(Boolean, default=True)
    added_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (Index("idx_wallet_tokens_mint", "token_mint"),)


class ProtectedToken(Base):
    __tablename__ = "protected_tokens"

    id: Mapped[int] = mapped_column(primary_key=True)
    wallet_address: Mapped[str] = mapped_column(String(64))
    token_mint: Mapped[str] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(20), default="ACTIVE")
    monitoring_active: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (Index("idx_protected_tokens_mint", "token_mint"),)


class LiquidityVelocity(Base):
    """One row per velocity cycle, for historical analysis."""

    __tablename__ = "liquidity_velocity"

    id: Mapped[int] = mapped_column(primary_key=True)
    token_mint: Mapped[str] = mapped_column(String(64))
    liquidity_usd: Mapped[Decimal | None] = mapped_column(Numeric)
    price: Mapped[Decimal | None] = mapped_column(Numeric)
    liquidity_velocity_10s: Mapped[Decimal | None] = mapped_column(Numeric)
    liquidity_velocity_30s: Mapped[Decimal | None] = mapped_column(Numeric)
    liquidity_velocity_1m: Mapped[Decimal | None] = mapped_column(Numeric)
    liquidity_velocity_5m: Mapped[Decimal | None] = mapped_column(Numeric)
    liquidity_velocity_30m: Mapped[Decimal | None] = mapped_column(Numeric)
    price_velocity_1m: Mapped[Decimal | None] = mapped_column(Numeric)
    price_velocity_5m: Mapped[Decimal | None] = mapped_column(Numeric)
    price_velocity_30m: Mapped[Decimal | None] = mapped_column(Numeric)
    flash_rug_alert: Mapped[bool] = mapped_column(Boolean, default=False)
    rapid_drain_alert: Mapped[bool] = mapped_column(Boolean, default=False)
    slow_bleed_alert: Mapped[bool] = mapped_column(Boolean, default=False)
    risk_level: Mapped[str] = mapped_column(String(10))
    timestamp: Mapped[datetime] = mapped_column(DateTime)

    __table_args__ = (Index("idx_liquidity_velocity_mint_ts", "token_mint", "timestamp"),)


class PatternAlert(Base):
    __tablename__ = "pattern_alerts"

    id: Mapped[int] = mapped_column(primary_key=True)
    token_mint: Mapped[str] = mapped_column(String(64))
    overall_risk: Mapped[Decimal] = mapped_column(Numeric)
    recommendation: Mapped[str] = mapped_column(String(20))
    pattern_count: Mapped[int] = mapped_column(Integer, default=0)
    patterns: Mapped[list | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (Index("idx_pattern_alerts_mint_ts", "token_mint", "created_at"),)
