"""Narrow collaborator interfaces the engine reads from and writes to.

Everything here is structural (typing.Protocol): any object with matching
async methods can be injected, including test fakes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from src.risk.alerts import RiskAlert
    from src.risk.events import RiskEvent
    from src.risk.types import SellTransaction, TokenAnalysis, VelocityData


class MetricsSource(Protocol):
    """Current market metrics. Any getter may return None or raise."""

    async def get_liquidity_usd(self, token_id: str) -> float | None: ...

    async def get_price(self, token_id: str) -> float | None: ...

    async def get_volume_24h(self, token_id: str) -> float | None: ...

    async def get_holder_count(self, token_id: str) -> float | None: ...

    async def get_creator_balance_pct(self, token_id: str) -> float | None: ...


class SellTransactionSource(Protocol):
    async def list_recent_sells(
        self, token_id: str, since_ts: float
    ) -> list[SellTransaction]: ...


class DevActivitySource(Protocol):
    async def get_1h_activity_pct(self, token_id: str) -> float: ...

    async def get_24h_activity_pct(self, token_id: str) -> float: ...

    async def list_new_dev_wallets(self, token_id: str) -> list[str]: ...

    async def has_recent_exchange_movement(self, token_id: str) -> bool: ...


class WalletRelationSource(Protocol):
    async def are_wallets_related(self, wallets: list[str]) -> bool: ...


class TokenLifecycleSource(Protocol):
    async def is_newly_added(self, token_id: str) -> bool: ...

    async def age_seconds(self, token_id: str) -> float: ...


class EventSink(Protocol):
    async def emit(self, event: RiskEvent) -> None: ...


class AlertSink(Protocol):
    async def send_alert(self, alert: RiskAlert) -> None: ...


class PersistenceSink(Protocol):
    """Best-effort historical logging. Implementations must not raise."""

    async def store_velocity_snapshot(self, data: VelocityData) -> None: ...

    async def store_pattern_alert(self, analysis: TokenAnalysis) -> None: ...

    async def mark_token_rugged(self, token_id: str, final_liquidity: float) -> None: ...
