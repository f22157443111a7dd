from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Index, Numeric, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base


class TokenTransaction(Base):
    """Swaps and transfers of a tracked token, including failed sells."""

    __tablename__ = "token_transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    token_mint: Mapped[str] = mapped_column(String(64))
    type: Mapped[str] = mapped_column(String(16))  # "buy", "sell", "transfer"
    success: Mapped[bool] = mapped_column(Boolean, default=True)
    wallet_address: Mapped[str | None] = mapped_column(String(64))
    to_wallet: Mapped[str | None] = mapped_column(String(64))
    amount_usd: Mapped[Decimal | None] = mapped_column(Numeric)
    signature: Mapped[str | None] = mapped_column(String(128))
    timestamp: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("idx_token_tx_mint_type_ts", "token_mint", "type", "timestamp"),
        Index("idx_token_tx_to_wallet", "to_wallet"),
    )


class WalletTransaction(Base):
    """Direct SOL/token transfers between wallets."""

    __tablename__ = "wallet_transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    from_wallet: Mapped[str] = mapped_column(String(64))
    to_wallet: Mapped[str] = mapped_column(String(64))
    amount: Mapped[Decimal | None] = mapped_column(Numeric)
    timestamp: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("idx_wallet_tx_from", "from_wallet"),
        Index("idx_wallet_tx_to", "to_wallet"),
    )


class DevWallet(Base):
    """Wallets attributed to a token's deployer."""

    __tablename__ = "dev_wallets"

    id: Mapped[int] = mapped_column(primary_key=True)
    token_mint: Mapped[str] = mapped_column(String(64))
    wallet_address: Mapped[str] = mapped_column(String(64))
    wallet_type: Mapped[str | None] = mapped_column(String(20))  # "creator", "proxy"
    first_seen_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("token_mint", "wallet_address", name="uq_dev_wallet_mint_addr"),
    )
