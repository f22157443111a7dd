"""Tests for the Redis connector and logger setup."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from loguru import logger
from redis.exceptions import ConnectionError as RedisConnectionError

from src.db import redis as redis_mod
from src.utils.logger import setup_logger


def _client(ping) -> MagicMock:
    client = MagicMock()
    client.ping = ping
    client.aclose = AsyncMock()
    return client


@pytest.mark.asyncio
async def test_connect_redis_unreachable_returns_none():
    client = _client(AsyncMock(side_effect=RedisConnectionError("refused")))
    with patch.object(redis_mod.Redis, "from_url", return_value=client):
        assert await redis_mod.connect_redis("redis://nowhere:6379/0") is None
    client.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_connect_redis_reuses_client():
    client = _client(AsyncMock(return_value=True))
    with patch.object(redis_mod.Redis, "from_url", return_value=client) as from_url:
        first = await redis_mod.connect_redis("redis://localhost:6379/0")
        second = await redis_mod.connect_redis()
    assert first is client
    assert second is client
    from_url.assert_called_once()

    await redis_mod.close_redis()
    client.aclose.assert_awaited_once()
    await redis_mod.close_redis()


def test_setup_logger_file_sink(tmp_path, monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    setup_logger(level="DEBUG", log_dir=str(tmp_path))
    try:
        logger.debug("[ENGINE] logger smoke test")
        assert list(tmp_path.glob("radar_*.log"))
    finally:
        logger.remove()
