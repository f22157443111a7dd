"""Entry point for the rug-radar risk engine."""

import asyncio
import signal

from loguru import logger
from redis.asyncio import Redis

from config.settings import settings
from src.db.database import async_session_factory, dispose_engine
from src.db.redis import close_redis, connect_redis
from src.risk.alerts import AlertDispatcher
from src.risk.engine import RiskEngine
from src.risk.events import EventBus, FanoutEventSink, RedisEventSink, TokenRuggedEvent
from src.risk.exceptions import InvalidTokenIdError
from src.risk.metrics import MonitorMetrics
from src.risk.persistence import DatabasePersistence
from src.risk.sources import (
    DatabaseDevActivitySource,
    DatabaseLifecycleSource,
    DatabaseMetricsSource,
    DatabaseSellTransactionSource,
    DatabaseWalletRelationSource,
    load_monitored_tokens,
)
from src.utils.logger import setup_logger


def build_engine(
    bus: EventBus,
    alerts: AlertDispatcher | None,
    redis: Redis | None = None,
) -> RiskEngine:
    """Wire the database-backed collaborators into a RiskEngine."""
    metrics = MonitorMetrics()
    events = bus
    if redis is not None:
        events = FanoutEventSink(bus, RedisEventSink(redis))

    persistence = None
    if settings.enable_velocity_persistence:
        persistence = DatabasePersistence(async_session_factory, metrics=metrics)

    return RiskEngine.from_settings(
        settings,
        metrics_source=DatabaseMetricsSource(async_session_factory),
        sell_source=DatabaseSellTransactionSource(async_session_factory),
        dev_activity=DatabaseDevActivitySource(
            async_session_factory, exchange_wallets=settings.exchange_wallet_list,
        ),
        wallet_relations=DatabaseWalletRelationSource(async_session_factory),
        lifecycle_source=DatabaseLifecycleSource(async_session_factory),
        events=events,
        alerts=alerts,
        persistence=persistence,
        metrics=metrics,
    )


async def main() -> None:
    setup_logger(level="INFO")
    logger.info("Starting rug-radar risk engine...")

    # Graceful shutdown on SIGINT/SIGTERM
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("Shutdown signal received")
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    redis = await connect_redis() if settings.enable_redis_events else None
    alerts = AlertDispatcher(
        telegram_bot_token=settings.telegram_bot_token,
        telegram_admin_id=settings.telegram_admin_id,
        redis=redis,
        cooldown_sec=settings.alert_cooldown_sec,
    )
    bus = EventBus()
    bus.subscribe(
        TokenRuggedEvent,
        lambda e: logger.info(f"[ENGINE] {e.token_id} removed from monitoring"),
    )
    engine = build_engine(bus, alerts, redis)

    for token_id in await load_monitored_tokens(async_session_factory):
        try:
            await engine.track_token(token_id)
        except InvalidTokenIdError as e:
            logger.warning(f"[ENGINE] Skipping monitored token: {e}")

    engine.start()
    await shutdown_event.wait()

    await engine.stop()
    await alerts.close()
    await close_redis()
    await dispose_engine()
    logger.info("Shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())
