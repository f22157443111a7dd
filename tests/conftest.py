"""Shared test fixtures: in-memory collaborators and a controllable clock."""

import pytest

from src.risk.engine import RiskEngine
from src.risk.metrics import MonitorMetrics
from src.risk.types import SellTransaction


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class FakeMetricsSource:
    """Per-token metric values; names listed in ``failing`` raise."""

    def __init__(self) -> None:
        self.values: dict[str, dict[str, float | None]] = {}
        self.failing: set[str] = set()

    def set(self, token_id: str, **metrics: float | None) -> None:
        self.values.setdefault(token_id, {}).update(metrics)

    async def _get(self, token_id: str, name: str) -> float | None:
        if name in self.failing:
            raise ConnectionError(f"{name} backend down")
        return self.values.get(token_id, {}).get(name)

    async def get_liquidity_usd(self, token_id: str) -> float | None:
        return await self._get(token_id, "liquidity")

    async def get_price(self, token_id: str) -> float | None:
        return await self._get(token_id, "price")

    async def get_volume_24h(self, token_id: str) -> float | None:
        return await self._get(token_id, "volume")

    async def get_holder_count(self, token_id: str) -> float | None:
        return await self._get(token_id, "holders")

    async def get_creator_balance_pct(self, token_id: str) -> float | None:
        return await self._get(token_id, "creator")


class FakeSellSource:
    def __init__(self) -> None:
        self.sells: dict[str, list[SellTransaction]] = {}
        self.calls: list[tuple[str, float]] = []
        self.error: Exception | None = None

    async def list_recent_sells(self, token_id: str, since_ts: float) -> list[SellTransaction]:
        self.calls.append((token_id, since_ts))
        if self.error:
            raise self.error
        return [s for s in self.sells.get(token_id, []) if s.timestamp >= since_ts]


class FakeDevActivitySource:
    def __init__(self) -> None:
        self.activity_1h = 0.0
        self.activity_24h = 0.0
        self.new_wallets: list[str] = []
        self.exchange_movement = False
        self.error: Exception | None = None

    async def _value(self, value):
        if self.error:
            raise self.error
        return value

    async def get_1h_activity_pct(self, token_id: str) -> float:
        return await self._value(self.activity_1h)

    async def get_24h_activity_pct(self, token_id: str) -> float:
        return await self._value(self.activity_24h)

    async def list_new_dev_wallets(self, token_id: str) -> list[str]:
        return await self._value(self.new_wallets)

    async def has_recent_exchange_movement(self, token_id: str) -> bool:
        return await self._value(self.exchange_movement)


class FakeWalletRelationSource:
    def __init__(self, related: bool = False) -> None:
        self.related = related
        self.error: Exception | None = None
        self.calls: list[list[str]] = []

    async def are_wallets_related(self, wallets: list[str]) -> bool:
        self.calls.append(list(wallets))
        if self.error:
            raise self.error
        return self.related


class FakeLifecycleSource:
    def __init__(self) -> None:
        self.newly_added: dict[str, bool] = {}
        self.ages: dict[str, float] = {}
        self.error: Exception | None = None

    async def is_newly_added(self, token_id: str) -> bool:
        if self.error:
            raise self.error
        return self.newly_added.get(token_id, False)

    async def age_seconds(self, token_id: str) -> float:
        if self.error:
            raise self.error
        return self.ages.get(token_id, 0.0)


class EventRecorder:
    def __init__(self) -> None:
        self.events: list = []

    async def emit(self, event) -> None:
        self.events.append(event)

    def names(self, token_id: str | None = None) -> list[str]:
        return [e.name for e in self.events if token_id is None or e.token_id == token_id]


class AlertRecorder:
    def __init__(self) -> None:
        self.alerts: list = []
        self.error: Exception | None = None

    async def send_alert(self, alert) -> None:
        if self.error:
            raise self.error
        self.alerts.append(alert)


class PersistenceRecorder:
    def __init__(self) -> None:
        self.velocity: list = []
        self.pattern_alerts: list = []
        self.rugged: list[tuple[str, float]] = []

    async def store_velocity_snapshot(self, data) -> None:
        self.velocity.append(data)

    async def store_pattern_alert(self, analysis) -> None:
        self.pattern_alerts.append(analysis)

    async def mark_token_rugged(self, token_id: str, final_liquidity: float) -> None:
        self.rugged.append((token_id, final_liquidity))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def metrics_source() -> FakeMetricsSource:
    return FakeMetricsSource()


@pytest.fixture
def sell_source() -> FakeSellSource:
    return FakeSellSource()


@pytest.fixture
def dev_activity() -> FakeDevActivitySource:
    return FakeDevActivitySource()


@pytest.fixture
def wallet_relations() -> FakeWalletRelationSource:
    return FakeWalletRelationSource()


@pytest.fixture
def lifecycle_source() -> FakeLifecycleSource:
    return FakeLifecycleSource()


@pytest.fixture
def events() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def alert_sink() -> AlertRecorder:
    return AlertRecorder()


@pytest.fixture
def persistence() -> PersistenceRecorder:
    return PersistenceRecorder()


@pytest.fixture
def monitor_metrics() -> MonitorMetrics:
    return MonitorMetrics()


@pytest.fixture
def make_engine(
    clock,
    metrics_source,
    sell_source,
    dev_activity,
    wallet_relations,
    lifecycle_source,
    events,
    alert_sink,
    persistence,
    monitor_metrics,
):
    """Factory for a RiskEngine wired to the in-memory fakes above."""

    def _make(**overrides) -> RiskEngine:
        kwargs = {
            "metrics_source": metrics_source,
            "sell_source": sell_source,
            "dev_activity": dev_activity,
            "wallet_relations": wallet_relations,
            "lifecycle_source": lifecycle_source,
            "events": events,
            "alerts": alert_sink,
            "persistence": persistence,
            "clock": clock,
            "metrics": monitor_metrics,
        }
        kwargs.update(overrides)
        return RiskEngine(**kwargs)

    return _make
