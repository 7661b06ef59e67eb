# ride_dispatch/services/realtime_ws/forwarder.py
"""
Пересылка событий шины в WebSocket соединения.

Слушает ключи:
- requester.*: события заявок для заказчиков
- provider.*: события для исполнителей
- requests.open: новые и снятые заявки, только исполнителям на линии
"""

from __future__ import annotations

from typing import Any

from ride_dispatch.common.constants import Topics
from ride_dispatch.common.logger import log_debug, log_info
from ride_dispatch.core.presence.registry import PresenceRegistry
from ride_dispatch.infra.event_bus import EventBus
from ride_dispatch.services.realtime_ws.connection_manager import ConnectionManager
from ride_dispatch.shared.events import DomainEvent

BINDING_KEYS = ["requester.*", "provider.*", Topics.OPEN_REQUESTS]


def to_message(event: DomainEvent, topic: str) -> dict[str, Any]:
    """Конверт сообщения для клиента."""
    return {
        "type": event.event_type,
        "topic": topic,
        "event_id": event.event_id,
        "timestamp": event.timestamp.isoformat(),
        "data": event.to_payload(),
    }


class EventForwarder:
    """Подписчик шины, рассылающий события подключённым клиентам."""

    def __init__(self, manager: ConnectionManager, presence: PresenceRegistry) -> None:
        self._manager = manager
        self._presence = presence
        self._queue_name: str | None = None

    async def start(self, bus: EventBus) -> None:
        """Подписаться на шину (эксклюзивная очередь на экземпляр шлюза)."""
        self._queue_name = await bus.subscribe(BINDING_KEYS, self.handle)
        await log_info(f"Шлюз подписан на события: {', '.join(BINDING_KEYS)}")

    async def handle(self, event: DomainEvent, routing_key: str) -> None:
        message = to_message(event, routing_key)

        if routing_key == Topics.OPEN_REQUESTS:
            online = await self._presence.online_providers()
            sent = await self._manager.broadcast_to_topic(routing_key, message, party_filter=online)
        else:
            sent = await self._manager.broadcast_to_topic(routing_key, message)

        await log_debug(f"{event.event_type} → {routing_key}: доставлено {sent}")
