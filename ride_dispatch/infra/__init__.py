# ride_dispatch/infra/__init__.py
"""
Инфраструктурный слой: PostgreSQL, Redis, RabbitMQ.
"""

from ride_dispatch.infra.database import DatabaseManager, get_db
from ride_dispatch.infra.redis_client import RedisClient, get_redis
from ride_dispatch.infra.event_bus import EventBus, get_event_bus

__all__ = [
    "DatabaseManager",
    "get_db",
    "RedisClient",
    "get_redis",
    "EventBus",
    "get_event_bus",
]
