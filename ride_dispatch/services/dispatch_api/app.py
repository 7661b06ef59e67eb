# ride_dispatch/services/dispatch_api/app.py
"""
FastAPI приложение HTTP API диспетчеризации.

Endpoints:
- POST  /api/v1/requests - создать заявку
- GET   /api/v1/requests/open - открытые заявки (исполнитель)
- GET   /api/v1/requests/active - текущая заявка участника
- GET   /api/v1/requests/history - история заявок
- GET   /api/v1/requests/statistics - статистика по статусам
- GET   /api/v1/requests/{id} - заявка
- POST  /api/v1/requests/{id}/accept - принять заявку
- PATCH /api/v1/requests/{id}/status - сменить статус
- POST  /api/v1/requests/{id}/location - точка трека
- GET   /api/v1/requests/{id}/locations - трек
- POST  /api/v1/requests/{id}/cancel - отменить
- POST  /api/v1/requests/{id}/rate - оценить
- GET   /api/v1/presence - текущий флаг и точка исполнителя
- PUT   /api/v1/presence - выйти на линию / уйти с линии
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ride_dispatch import __version__
from ride_dispatch.common.logger import log_info, log_warning
from ride_dispatch.core.exceptions import (
    AlreadyAssignedError,
    AlreadyTakenError,
    DispatchError,
    DispatchValidationError,
    InvalidTransitionError,
    NotAuthorizedError,
    NotFoundError,
)
from ride_dispatch.services.dispatch_api.dependencies import (
    cleanup_dependencies,
    init_dependencies,
)
from ride_dispatch.services.dispatch_api.routes import presence_router, router
from ride_dispatch.shared.models.common import ErrorResponse, HealthStatus

SERVICE_NAME = "dispatch_api"

ERROR_STATUS_CODES: dict[type[DispatchError], int] = {
    NotFoundError: 404,
    NotAuthorizedError: 403,
    InvalidTransitionError: 409,
    AlreadyTakenError: 409,
    AlreadyAssignedError: 409,
    DispatchValidationError: 422,
}


def status_code_for(error: DispatchError) -> int:
    for error_type, code in ERROR_STATUS_CODES.items():
        if isinstance(error, error_type):
            return code
    return 400


async def dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
    """Доменная ошибка → ErrorResponse с соответствующим HTTP-статусом."""
    code = status_code_for(exc)
    await log_warning(
        f"{request.method} {request.url.path}: {exc.error_code} ({exc.message})",
        extra={"status_code": code},
    )
    body = ErrorResponse.from_error(exc)
    return JSONResponse(status_code=code, content=body.model_dump(mode="json"))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Жизненный цикл приложения."""
    from ride_dispatch.core.dispatch.broadcaster import Broadcaster
    from ride_dispatch.core.dispatch.service import DispatchService
    from ride_dispatch.core.identity import build_authenticator
    from ride_dispatch.core.presence.registry import PresenceRegistry
    from ride_dispatch.core.pricing.client import PricingClient
    from ride_dispatch.core.requests.repository import RequestRepository
    from ride_dispatch.infra.database import close_db, init_db
    from ride_dispatch.infra.event_bus import close_event_bus, init_event_bus
    from ride_dispatch.infra.redis_client import close_redis, init_redis

    db = await init_db()
    redis = await init_redis()
    bus = await init_event_bus()

    broadcaster = Broadcaster(bus)
    service = DispatchService(
        RequestRepository(db),
        broadcaster,
        PresenceRegistry(redis, broadcaster),
    )
    init_dependencies(service, build_authenticator(), PricingClient())
    await log_info("Dispatch API запущен")

    yield

    await cleanup_dependencies()
    await close_event_bus()
    await close_redis()
    await close_db()
    await log_info("Dispatch API остановлен")


def create_app(with_lifespan: bool = True) -> FastAPI:
    """
    Собирает приложение.

    Args:
        with_lifespan: Подключать инфраструктуру при старте (False в тестах)
    """
    app = FastAPI(
        title="Dispatch API",
        description="Создание, принятие и сопровождение заявок",
        version=__version__,
        lifespan=lifespan if with_lifespan else None,
    )
    app.add_exception_handler(DispatchError, dispatch_error_handler)
    app.include_router(router, prefix="/api/v1")
    app.include_router(presence_router, prefix="/api/v1")

    @app.get("/health", response_model=HealthStatus)
    async def health_check() -> HealthStatus:
        from ride_dispatch.infra.database import get_db
        from ride_dispatch.infra.event_bus import get_event_bus
        from ride_dispatch.infra.redis_client import get_redis

        checks = {
            "postgres": await get_db().health_check(),
            "redis": await get_redis().health_check(),
            "rabbitmq": await get_event_bus().health_check(),
        }
        return HealthStatus.from_checks(SERVICE_NAME, __version__, checks)

    return app


app = create_app()
