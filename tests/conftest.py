# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("REDIS_PASSWORD", "")
os.environ.setdefault("TOKEN_SECRET", "test_token_secret")

from fakes import InMemoryRedis, InMemoryRequestRepository, RecordingPublisher  # noqa: E402
from ride_dispatch.config.loader import DispatchSettings  # noqa: E402
from ride_dispatch.core.dispatch.broadcaster import Broadcaster  # noqa: E402
from ride_dispatch.core.dispatch.service import DispatchService  # noqa: E402
from ride_dispatch.core.presence.registry import PresenceRegistry  # noqa: E402


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "_comment_system": "=== СИСТЕМА ===",
        "PROJECT_NAME": "ride_dispatch_test",
        "VERSION": "0.0.1-test",
        "DEBUG": True,
        "LOG_LEVEL": "INFO",
        "ENVIRONMENT": "test",
        "RUN_DEV_MODE": True,
        "COMPONENT_MODE": "api",
        "DISPATCH_API_PORT": 18085,
        "REALTIME_WS_PORT": 18089,
        "LOG_TO_FILE": False,
        "LOG_FORMAT": "json",
        "DB_HOST": "db.test",
        "DB_PORT": 5433,
        "DB_NAME": "ride_dispatch_test",
        "DB_USER": "tester",
        "DB_PASSWORD": "",
        "REDIS_HOST": "redis.test",
        "REDIS_NAMESPACE": "dispatch_test",
        "RABBITMQ_HOST": "mq.test",
        "RABBITMQ_EXCHANGE": "dispatch.test",
        "OPEN_REQUESTS_LIMIT": 5,
        "AVERAGE_SPEED_KMH": 40.0,
        "BLOCK_OFFLINE_LISTING": True,
        "REQUEST_EXPIRY_SECONDS": 120,
        "EXPIRY_CHECK_INTERVAL": 10,
        "TOKEN_SECRET": "from_json",
        "TOKEN_MAX_AGE_SECONDS": 3600,
        "PRICING_URL": "http://pricing.test/quote",
        "PRICING_TIMEOUT": 2.5,
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2), encoding="utf-8")
    return config_file


@pytest.fixture
def dispatch_config() -> DispatchSettings:
    """Правила диспетчеризации по умолчанию."""
    return DispatchSettings()


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def mock_db() -> AsyncMock:
    """Мок менеджера базы данных."""
    db = AsyncMock()
    db.fetchrow = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.execute = AsyncMock(return_value="UPDATE 1")
    db.fetchval = AsyncMock(return_value=None)
    return db


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Мок клиента Redis."""
    redis = AsyncMock()
    redis.hget = AsyncMock(return_value=None)
    redis.hgetall = AsyncMock(return_value={})
    redis.hset_mapping = AsyncMock(return_value=1)
    redis.sadd = AsyncMock(return_value=1)
    redis.srem = AsyncMock(return_value=1)
    redis.smembers = AsyncMock(return_value=set())
    return redis


@pytest.fixture
def mock_event_bus() -> AsyncMock:
    """Мок шины событий."""
    event_bus = AsyncMock()
    event_bus.publish = AsyncMock(return_value=None)
    event_bus.subscribe = AsyncMock(return_value="amq.gen-test")
    event_bus.is_connected = True
    return event_bus


# =============================================================================
# ФИКСТУРЫ СЕРВИСА (IN-MEMORY)
# =============================================================================

@pytest.fixture
def fake_repo() -> InMemoryRequestRepository:
    return InMemoryRequestRepository()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def broadcaster(publisher: RecordingPublisher) -> Broadcaster:
    return Broadcaster(publisher)


@pytest.fixture
def fake_redis() -> InMemoryRedis:
    return InMemoryRedis()


@pytest.fixture
def presence(fake_redis: InMemoryRedis, broadcaster: Broadcaster) -> PresenceRegistry:
    return PresenceRegistry(fake_redis, broadcaster)


@pytest.fixture
def dispatch_service(
    fake_repo: InMemoryRequestRepository,
    broadcaster: Broadcaster,
    presence: PresenceRegistry,
    dispatch_config: DispatchSettings,
) -> DispatchService:
    """Сервис поверх in-memory хранилищ."""
    return DispatchService(fake_repo, broadcaster, presence, dispatch_config)


# =============================================================================
# ФИКСТУРЫ МОДЕЛЕЙ
# =============================================================================

@pytest.fixture
def sample_request_row() -> dict[str, Any]:
    """Строка dispatch_requests в статусе requested."""
    now = datetime.now(timezone.utc)
    return {
        "id": uuid4(),
        "requester_id": "requester-1",
        "provider_id": None,
        "pickup_latitude": 28.60,
        "pickup_longitude": 77.10,
        "dropoff_latitude": 28.55,
        "dropoff_longitude": 77.20,
        "current_latitude": None,
        "current_longitude": None,
        "status": "requested",
        "fare": 250.0,
        "distance_km": 12.4,
        "duration_minutes": 25,
        "actual_duration_minutes": None,
        "remaining_distance_m": None,
        "eta_minutes": None,
        "payment_method": "cash",
        "notes": "У второго подъезда",
        "cancelled_by": None,
        "cancellation_reason": None,
        "rating": None,
        "feedback": None,
        "created_at": now,
        "accepted_at": None,
        "arrived_at": None,
        "started_at": None,
        "completed_at": None,
        "cancelled_at": None,
        "updated_at": now,
    }
