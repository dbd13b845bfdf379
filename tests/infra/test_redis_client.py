# tests/infra/test_redis_client.py
"""
Тесты для клиента Redis (src/infra/redis_client.py).
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.core.drivers.models import DriverLocation
from src.infra.redis_client import RedisClient


@pytest.fixture
def raw_client() -> AsyncMock:
    client = AsyncMock()
    client.get.return_value = None
    client.set.return_value = True
    client.delete.return_value = 1
    client.ping.return_value = True
    return client


@pytest.fixture
def redis_client(raw_client: AsyncMock) -> RedisClient:
    """RedisClient с подменённым соединением."""
    RedisClient._instance = None
    client = RedisClient()
    client._client = raw_client
    client._namespace = "test"
    yield client
    RedisClient._instance = None


class TestLifecycle:
    """Подключение и синглтон."""

    def test_singleton(self, redis_client: RedisClient) -> None:
        assert RedisClient() is redis_client

    def test_not_connected(self) -> None:
        RedisClient._instance = None
        try:
            with pytest.raises(RuntimeError, match="не инициализирован"):
                _ = RedisClient().client
        finally:
            RedisClient._instance = None

    @pytest.mark.asyncio
    async def test_connect_pings_and_sets_namespace(self, raw_client: AsyncMock) -> None:
        RedisClient._instance = None
        client = RedisClient()
        try:
            with patch("src.infra.redis_client.redis.from_url", return_value=raw_client) as from_url:
                await client.connect("redis://localhost:6379/0", max_connections=10, namespace="orders")

            assert from_url.call_args.kwargs["decode_responses"] is True
            raw_client.ping.assert_awaited_once()
            assert client._make_key("order:1") == "orders:order:1"
        finally:
            RedisClient._instance = None

    @pytest.mark.asyncio
    async def test_connect_failure_propagates(self) -> None:
        RedisClient._instance = None
        broken = AsyncMock()
        broken.ping.side_effect = RedisConnectionError("refused")
        try:
            with patch("src.infra.redis_client.redis.from_url", return_value=broken):
                with pytest.raises(RedisConnectionError):
                    await RedisClient().connect("redis://localhost:6379/0")
        finally:
            RedisClient._instance = None

    @pytest.mark.asyncio
    async def test_disconnect(self, redis_client: RedisClient, raw_client: AsyncMock) -> None:
        await redis_client.disconnect()

        raw_client.aclose.assert_awaited_once()
        assert redis_client._client is None


class TestOperations:
    """Базовые и JSON операции."""

    @pytest.mark.asyncio
    async def test_keys_are_namespaced(self, redis_client: RedisClient, raw_client: AsyncMock) -> None:
        await redis_client.set("order:1", "value", ttl=30)
        await redis_client.get("order:1")
        await redis_client.delete("order:1")

        raw_client.set.assert_awaited_once_with("test:order:1", "value", ex=30)
        raw_client.get.assert_awaited_once_with("test:order:1")
        raw_client.delete.assert_awaited_once_with("test:order:1")

    @pytest.mark.asyncio
    async def test_json_roundtrip_keeps_cyrillic(self, redis_client: RedisClient, raw_client: AsyncMock) -> None:
        await redis_client.set_json("k", {"address": "Тверская"}, ttl=300)

        stored = raw_client.set.await_args.args[1]
        assert "Тверская" in stored
        assert raw_client.set.await_args.kwargs == {"ex": 300}

        raw_client.get.return_value = stored
        assert await redis_client.get_json("k") == {"address": "Тверская"}

    @pytest.mark.asyncio
    async def test_get_json_invalid(self, redis_client: RedisClient, raw_client: AsyncMock) -> None:
        raw_client.get.return_value = "{broken"
        assert await redis_client.get_json("k") is None

    @pytest.mark.asyncio
    async def test_get_json_missing(self, redis_client: RedisClient) -> None:
        assert await redis_client.get_json("k") is None


class TestModelOperations:
    """Операции с Pydantic моделями."""

    @pytest.mark.asyncio
    async def test_set_and_get_model(self, redis_client: RedisClient, raw_client: AsyncMock) -> None:
        location = DriverLocation(latitude=55.75, longitude=37.61, updated_at="2026-11-10T09:00:00Z")

        await redis_client.set_model("loc", location, ttl=60)
        raw_client.get.return_value = raw_client.set.await_args.args[1]

        assert await redis_client.get_model("loc", DriverLocation) == location

    @pytest.mark.asyncio
    async def test_corrupted_model_is_miss(self, redis_client: RedisClient, raw_client: AsyncMock) -> None:
        raw_client.get.return_value = json.dumps({"latitude": "north"})
        assert await redis_client.get_model("loc", DriverLocation) is None


class TestHealthCheck:
    """Проверка здоровья."""

    @pytest.mark.asyncio
    async def test_healthy(self, redis_client: RedisClient) -> None:
        assert await redis_client.health_check() is True

    @pytest.mark.asyncio
    async def test_unhealthy(self, redis_client: RedisClient, raw_client: AsyncMock) -> None:
        raw_client.ping.side_effect = RedisConnectionError("down")
        assert await redis_client.health_check() is False

    @pytest.mark.asyncio
    async def test_not_connected(self) -> None:
        RedisClient._instance = None
        try:
            assert await RedisClient().health_check() is False
        finally:
            RedisClient._instance = None


def test_make_key_default_namespace() -> None:
    RedisClient._instance = None
    try:
        assert RedisClient()._make_key("driver:location:d-1") == "premium_taxi:driver:location:d-1"
    finally:
        RedisClient._instance = None
