# ride_dispatch/core/presence/registry.py
"""
Реестр присутствия исполнителей.

Хеш presence:<id> хранит флаг и последнюю точку, множество presence:online
служит индексом исполнителей на линии. TTL и heartbeat нет: исполнитель на линии,
пока сам не ушёл с неё.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from ride_dispatch.common.logger import log_info
from ride_dispatch.core.dispatch.broadcaster import Broadcaster
from ride_dispatch.core.exceptions import DispatchValidationError
from ride_dispatch.core.requests.models import GeoPoint, PointLike, coerce_point
from ride_dispatch.infra.redis_client import RedisClient

ONLINE_SET_KEY = "presence:online"


def presence_key(provider_id: str) -> str:
    return f"presence:{provider_id}"


class PresenceRecord(BaseModel):
    """Состояние исполнителя."""

    provider_id: str
    is_online: bool = False
    last_known_point: GeoPoint | None = None
    last_updated_at: datetime | None = Field(None, description="Время последнего изменения")


class PresenceRegistry:
    """Флаг «на линии» и последняя известная точка исполнителя."""

    def __init__(self, redis: RedisClient, broadcaster: Broadcaster | None = None) -> None:
        self._redis = redis
        self._broadcaster = broadcaster

    async def set_online(
        self,
        provider_id: str,
        online: bool,
        point: PointLike | None = None,
    ) -> PresenceRecord:
        """
        Выставляет флаг присутствия.

        Args:
            provider_id: ID исполнителя
            online: Новый флаг
            point: Текущая точка исполнителя (необязательно)

        Raises:
            DispatchValidationError: Флаг не булев или точка некорректна
        """
        if not isinstance(online, bool):
            raise DispatchValidationError("isOnline должен быть булевым значением", field="online")

        location = coerce_point(point, "point") if point is not None else None
        previous = await self.is_online(provider_id)
        now = datetime.now(timezone.utc)

        mapping = {
            "is_online": "1" if online else "0",
            "last_updated_at": now.isoformat(),
        }
        if location is not None:
            mapping["latitude"] = repr(location.latitude)
            mapping["longitude"] = repr(location.longitude)

        await self._redis.hset_mapping(presence_key(provider_id), mapping)
        if online:
            await self._redis.sadd(ONLINE_SET_KEY, provider_id)
        else:
            await self._redis.srem(ONLINE_SET_KEY, provider_id)

        if previous != online:
            await log_info(
                f"Исполнитель {provider_id} {'на линии' if online else 'ушёл с линии'}",
                extra={"provider_id": provider_id},
            )
            if self._broadcaster is not None:
                self._broadcaster.presence_changed(provider_id, online)

        return await self.get(provider_id)

    async def touch_location(self, provider_id: str, point: GeoPoint) -> None:
        """Обновляет последнюю известную точку, не меняя флаг присутствия."""
        await self._redis.hset_mapping(
            presence_key(provider_id),
            {
                "latitude": repr(point.latitude),
                "longitude": repr(point.longitude),
                "last_updated_at": datetime.now(timezone.utc).isoformat(),
            },
        )

    async def is_online(self, provider_id: str) -> bool:
        return await self._redis.hget(presence_key(provider_id), "is_online") == "1"

    async def get(self, provider_id: str) -> PresenceRecord:
        """Запись присутствия; для неизвестного исполнителя: offline без точки."""
        data = await self._redis.hgetall(presence_key(provider_id))
        if not data:
            return PresenceRecord(provider_id=provider_id)

        point = None
        if "latitude" in data and "longitude" in data:
            point = GeoPoint(latitude=float(data["latitude"]), longitude=float(data["longitude"]))

        updated = data.get("last_updated_at")
        return PresenceRecord(
            provider_id=provider_id,
            is_online=data.get("is_online") == "1",
            last_known_point=point,
            last_updated_at=datetime.fromisoformat(updated) if updated else None,
        )

    async def online_providers(self) -> set[str]:
        return await self._redis.smembers(ONLINE_SET_KEY)
