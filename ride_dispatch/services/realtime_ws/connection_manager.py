# ride_dispatch/services/realtime_ws/connection_manager.py
"""
Менеджер WebSocket соединений.
Управляет подписками на топики и рассылкой сообщений.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from fastapi import WebSocket

from ride_dispatch.common.constants import PartyRole
from ride_dispatch.common.logger import log_debug


def connection_key(party_id: str, role: PartyRole) -> str:
    """Один участник может держать по соединению на каждую роль."""
    return f"{role.value}:{party_id}"


@dataclass
class ConnectionInfo:
    """Информация о соединении."""
    websocket: WebSocket
    party_id: str
    role: PartyRole
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    subscriptions: set[str] = field(default_factory=set)

    @property
    def key(self) -> str:
        return connection_key(self.party_id, self.role)


class ConnectionManager:
    """
    Менеджер WebSocket соединений.

    Поддерживает:
    - Подключение/отключение клиентов
    - Подписка на топики (requester.<id>, provider.<id>, requests.open)
    - Рассылка сообщений по топикам
    """

    def __init__(self) -> None:
        # ключ соединения -> ConnectionInfo
        self._connections: dict[str, ConnectionInfo] = {}

        # topic -> ключи соединений
        self._subscriptions: dict[str, set[str]] = {}

        self._total_connections: int = 0
        self._total_messages_sent: int = 0

    @property
    def active_connections(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket, party_id: str, role: PartyRole) -> ConnectionInfo:
        """
        Принимает соединение.

        Если у участника уже есть соединение в этой роли, старое закрывается.
        """
        key = connection_key(party_id, role)
        if key in self._connections:
            old_conn = self._connections[key]
            await self.disconnect(key)
            await self._close_connection(old_conn)

        await websocket.accept()

        conn = ConnectionInfo(websocket=websocket, party_id=party_id, role=role)
        self._connections[key] = conn
        self._total_connections += 1
        return conn

    async def disconnect(self, key: str, conn: ConnectionInfo | None = None) -> None:
        """
        Отключить клиента и снять его подписки.

        Если передан conn, отключается только он: новое соединение
        с тем же ключом не трогаем.
        """
        current = self._connections.get(key)
        if current is None or (conn is not None and current is not conn):
            return
        del self._connections[key]
        for topic in list(current.subscriptions):
            self._unsubscribe_from_topic(key, topic)

    def subscribe(self, key: str, topic: str) -> None:
        if key not in self._connections:
            return
        self._connections[key].subscriptions.add(topic)
        self._subscriptions.setdefault(topic, set()).add(key)

    def _unsubscribe_from_topic(self, key: str, topic: str) -> None:
        if key in self._connections:
            self._connections[key].subscriptions.discard(topic)

        if topic in self._subscriptions:
            self._subscriptions[topic].discard(key)
            if not self._subscriptions[topic]:
                del self._subscriptions[topic]

    async def send_personal(self, key: str, message: dict[str, Any]) -> bool:
        """
        Отправить сообщение конкретному соединению.

        Returns:
            True если сообщение отправлено, False если соединения нет или оно разорвано
        """
        conn = self._connections.get(key)
        if conn is None:
            return False
        if await self._send(conn, message):
            return True
        await self.disconnect(key)
        return False

    async def broadcast_to_topic(
        self,
        topic: str,
        message: dict[str, Any],
        party_filter: set[str] | None = None,
    ) -> int:
        """
        Отправить сообщение подписчикам топика.

        Args:
            topic: Топик
            message: Сообщение
            party_filter: Если задан, только участникам из этого множества

        Returns:
            Количество успешно отправленных сообщений
        """
        sent_count = 0
        failed: list[str] = []

        for key in list(self._subscriptions.get(topic, ())):
            conn = self._connections.get(key)
            if conn is None:
                continue
            if party_filter is not None and conn.party_id not in party_filter:
                continue
            if await self._send(conn, message):
                sent_count += 1
            else:
                failed.append(key)

        for key in failed:
            await self.disconnect(key)

        return sent_count

    def get_topic_subscribers(self, topic: str) -> set[str]:
        return self._subscriptions.get(topic, set()).copy()

    def get_stats(self) -> dict[str, Any]:
        """Получить статистику."""
        return {
            "active_connections": len(self._connections),
            "total_topics": len(self._subscriptions),
            "total_connections_ever": self._total_connections,
            "total_messages_sent": self._total_messages_sent,
            "connections_by_role": self._count_by_role(),
        }

    def _count_by_role(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for conn in self._connections.values():
            counts[conn.role.value] = counts.get(conn.role.value, 0) + 1
        return counts

    async def _send(self, conn: ConnectionInfo, message: dict[str, Any]) -> bool:
        try:
            await conn.websocket.send_json(message)
        except Exception as e:
            # Соединение разорвано
            await log_debug(f"Не удалось отправить сообщение {conn.key}: {e}")
            return False
        self._total_messages_sent += 1
        return True

    async def _close_connection(self, conn: ConnectionInfo) -> None:
        try:
            await conn.websocket.close()
        except Exception as e:
            await log_debug(f"Соединение {conn.key} уже закрыто: {e}")


# Глобальный экземпляр
manager = ConnectionManager()
