# tests/services/test_forwarder.py
"""
Тесты для пересылки событий шины в WebSocket.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from fakes import InMemoryRedis
from ride_dispatch.common.constants import PartyRole
from ride_dispatch.core.presence.registry import ONLINE_SET_KEY, PresenceRegistry
from ride_dispatch.services.realtime_ws.connection_manager import ConnectionManager
from ride_dispatch.services.realtime_ws.forwarder import BINDING_KEYS, EventForwarder, to_message
from ride_dispatch.shared.events import RequestCreated, RequestUnavailable


def fake_websocket() -> MagicMock:
    websocket = MagicMock()
    websocket.accept = AsyncMock()
    websocket.send_json = AsyncMock()
    websocket.close = AsyncMock()
    return websocket


def created_event() -> RequestCreated:
    return RequestCreated(
        request_id="req-1",
        requester_id="r-1",
        pickup_lat=28.6,
        pickup_lon=77.1,
        fare=250.0,
    )


@pytest.fixture
def redis() -> InMemoryRedis:
    return InMemoryRedis()


@pytest.fixture
def manager() -> ConnectionManager:
    return ConnectionManager()


@pytest.fixture
def forwarder(manager: ConnectionManager, redis: InMemoryRedis) -> EventForwarder:
    return EventForwarder(manager, PresenceRegistry(redis))


async def connect(manager: ConnectionManager, party: str, role: PartyRole, topic: str) -> MagicMock:
    websocket = fake_websocket()
    conn = await manager.connect(websocket, party, role)
    manager.subscribe(conn.key, topic)
    return websocket


class TestToMessage:
    """Тесты конверта сообщения."""

    def test_envelope(self) -> None:
        event = RequestUnavailable(request_id="req-1", reason="accepted")

        message = to_message(event, "requests.open")

        assert message["type"] == "request.unavailable"
        assert message["topic"] == "requests.open"
        assert message["event_id"] == event.event_id
        assert message["timestamp"] == event.timestamp.isoformat()
        assert message["data"]["request_id"] == "req-1"
        assert message["data"]["reason"] == "accepted"
        assert "metadata" not in message["data"]


class TestEventForwarder:
    """Тесты EventForwarder."""

    @pytest.mark.asyncio
    async def test_start_subscribes(self, forwarder: EventForwarder, mock_event_bus: AsyncMock) -> None:
        await forwarder.start(mock_event_bus)

        mock_event_bus.subscribe.assert_awaited_once_with(BINDING_KEYS, forwarder.handle)

    @pytest.mark.asyncio
    async def test_open_requests_only_to_online(
        self,
        forwarder: EventForwarder,
        manager: ConnectionManager,
        redis: InMemoryRedis,
    ) -> None:
        online = await connect(manager, "p-1", PartyRole.PROVIDER, "requests.open")
        offline = await connect(manager, "p-2", PartyRole.PROVIDER, "requests.open")
        redis.sets[ONLINE_SET_KEY] = {"p-1"}

        await forwarder.handle(created_event(), "requests.open")

        online.send_json.assert_awaited_once()
        assert online.send_json.await_args.args[0]["type"] == "request.created"
        offline.send_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_personal_topic(self, forwarder: EventForwarder, manager: ConnectionManager) -> None:
        requester = await connect(manager, "r-1", PartyRole.REQUESTER, "requester.r-1")
        other = await connect(manager, "r-2", PartyRole.REQUESTER, "requester.r-2")

        await forwarder.handle(RequestUnavailable(request_id="req-1", reason="cancelled"), "requester.r-1")

        requester.send_json.assert_awaited_once()
        assert requester.send_json.await_args.args[0]["topic"] == "requester.r-1"
        other.send_json.assert_not_awaited()
