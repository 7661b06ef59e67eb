# ride_dispatch/services/realtime_ws/app.py
"""
FastAPI приложение для Realtime WebSocket Gateway.

WebSocket endpoints:
- /ws?token=<token>&role=requester|provider

Заказчик подписывается на requester.<id>, исполнитель на provider.<id>
и requests.open (доставляется, только пока исполнитель на линии).

REST endpoints:
- GET /health - проверка здоровья
- GET /stats - статистика соединений
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Query, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel

from ride_dispatch import __version__
from ride_dispatch.common.constants import PartyRole, Topics
from ride_dispatch.common.logger import log_info, log_warning
from ride_dispatch.core.exceptions import NotAuthorizedError
from ride_dispatch.core.identity import Authenticator
from ride_dispatch.services.realtime_ws.connection_manager import ConnectionManager, manager
from ride_dispatch.shared.models.common import HealthStatus

SERVICE_NAME = "realtime_ws"


class StatsResponse(BaseModel):
    """Статистика соединений."""
    active_connections: int
    total_topics: int
    total_connections_ever: int
    total_messages_sent: int
    connections_by_role: dict[str, int]


def topics_for(party_id: str, role: PartyRole) -> list[str]:
    """Топики, на которые подписывается соединение."""
    if role == PartyRole.PROVIDER:
        return [Topics.provider(party_id), Topics.OPEN_REQUESTS]
    return [Topics.requester(party_id)]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Жизненный цикл приложения."""
    from ride_dispatch.core.identity import build_authenticator
    from ride_dispatch.core.presence.registry import PresenceRegistry
    from ride_dispatch.infra.event_bus import close_event_bus, init_event_bus
    from ride_dispatch.infra.redis_client import close_redis, init_redis
    from ride_dispatch.services.realtime_ws.forwarder import EventForwarder

    redis = await init_redis()
    bus = await init_event_bus()

    app.state.authenticator = build_authenticator()
    forwarder = EventForwarder(app.state.manager, PresenceRegistry(redis))
    await forwarder.start(bus)
    await log_info("Realtime WS Gateway запущен")

    yield

    await close_event_bus()
    await close_redis()
    await log_info("Realtime WS Gateway остановлен")


def create_app(
    connection_manager: ConnectionManager | None = None,
    authenticator: Authenticator | None = None,
    with_lifespan: bool = True,
) -> FastAPI:
    """
    Собирает приложение.

    Args:
        connection_manager: Менеджер соединений (по умолчанию глобальный)
        authenticator: Аутентификатор (иначе создаётся в lifespan)
        with_lifespan: Подключать инфраструктуру при старте (False в тестах)
    """
    app = FastAPI(
        title="Realtime WebSocket Gateway",
        description="Доставка событий заявок заказчикам и исполнителям.",
        version=__version__,
        lifespan=lifespan if with_lifespan else None,
    )
    app.state.manager = connection_manager or manager
    app.state.authenticator = authenticator

    @app.get("/health", response_model=HealthStatus, tags=["Health"])
    async def health_check() -> HealthStatus:
        return HealthStatus(service=SERVICE_NAME, status="healthy", version=__version__)

    @app.get("/stats", response_model=StatsResponse, tags=["Stats"])
    async def get_stats() -> StatsResponse:
        return StatsResponse(**app.state.manager.get_stats())

    @app.websocket("/ws")
    async def websocket_endpoint(
        websocket: WebSocket,
        token: str = Query(default=""),
        role: str = Query(default=PartyRole.REQUESTER.value),
    ) -> None:
        """
        Входящие сообщения:
        - {"action": "ping"}
        """
        try:
            party_role = PartyRole(role)
            party_id = app.state.authenticator.authenticate(token)
        except (ValueError, NotAuthorizedError) as e:
            await log_warning(f"WebSocket отклонён: {e}")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        ws_manager: ConnectionManager = app.state.manager
        conn = await ws_manager.connect(websocket, party_id, party_role)
        topics = topics_for(party_id, party_role)
        for topic in topics:
            ws_manager.subscribe(conn.key, topic)
        await ws_manager.send_personal(conn.key, {"type": "connected", "topics": topics})

        try:
            while True:
                data = await websocket.receive_json()
                await _handle_client_message(ws_manager, conn.key, data)
        except WebSocketDisconnect:
            pass
        finally:
            await ws_manager.disconnect(conn.key, conn)

    return app


async def _handle_client_message(ws_manager: ConnectionManager, key: str, data: Any) -> None:
    """Обработать сообщение от клиента."""
    action = data.get("action") if isinstance(data, dict) else None

    if action == "ping":
        await ws_manager.send_personal(key, {"type": "pong"})
    else:
        await ws_manager.send_personal(key, {"type": "error", "message": f"Неизвестное действие: {action}"})


app = create_app()
