# tests/infra/test_redis_client.py
"""
Тесты для клиента Redis.
"""

from __future__ import annotations

from typing import Iterator
from unittest.mock import AsyncMock

import pytest

from ride_dispatch.infra.redis_client import RedisClient


@pytest.fixture
def client() -> Iterator[RedisClient]:
    RedisClient._instance = None
    redis_client = RedisClient()
    redis_client._client = AsyncMock()
    yield redis_client
    RedisClient._instance = None


class TestRedisClient:
    """Тесты для RedisClient."""

    def test_requires_connect(self) -> None:
        RedisClient._instance = None
        try:
            with pytest.raises(RuntimeError):
                _ = RedisClient().client
        finally:
            RedisClient._instance = None

    def test_make_key(self, client: RedisClient) -> None:
        assert client._make_key("presence:p1") == "dispatch:presence:p1"

    @pytest.mark.asyncio
    async def test_hash_operations_namespaced(self, client: RedisClient) -> None:
        client.client.hget.return_value = "1"
        client.client.hgetall.return_value = {"is_online": "1"}

        assert await client.hget("presence:p1", "is_online") == "1"
        await client.hset_mapping("presence:p1", {"is_online": "1"})
        assert await client.hgetall("presence:p1") == {"is_online": "1"}

        client.client.hget.assert_awaited_once_with("dispatch:presence:p1", "is_online")
        client.client.hset.assert_awaited_once_with("dispatch:presence:p1", mapping={"is_online": "1"})

    @pytest.mark.asyncio
    async def test_set_operations_namespaced(self, client: RedisClient) -> None:
        client.client.smembers.return_value = {"p1"}

        await client.sadd("presence:online", "p1")
        await client.srem("presence:online", "p2")

        assert await client.smembers("presence:online") == {"p1"}
        client.client.sadd.assert_awaited_once_with("dispatch:presence:online", "p1")
        client.client.srem.assert_awaited_once_with("dispatch:presence:online", "p2")

    @pytest.mark.asyncio
    async def test_health_check_failure(self, client: RedisClient) -> None:
        client.client.ping.side_effect = ConnectionError("down")

        assert await client.health_check() is False

    @pytest.mark.asyncio
    async def test_disconnect(self, client: RedisClient) -> None:
        inner = client.client

        await client.disconnect()

        inner.aclose.assert_awaited_once()
        assert client._client is None
