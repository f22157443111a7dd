from src.models.base import Base
from src.models.protection import LiquidityVelocity, PatternAlert, ProtectedToken, WalletToken
from src.models.token import PoolLiquidity, RugcheckReport, TokenPrice, TokenVolume
from src.models.wallet import DevWallet, TokenTransaction, WalletTransaction

__all__ = [
    "Base",
    "PoolLiquidity",
    "TokenPrice",
    "TokenVolume",
    "RugcheckReport",
    "TokenTransaction",
    "WalletTransaction",
    "DevWallet",
    "WalletToken",
    "ProtectedToken",
    "LiquidityVelocity",
    "PatternAlert",
]
