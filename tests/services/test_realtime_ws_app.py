# tests/services/test_realtime_ws_app.py
"""
Тесты для Realtime WebSocket Gateway.
"""

from collections.abc import Iterator

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from ride_dispatch.common.constants import PartyRole
from ride_dispatch.core.identity import HmacTokenAuthenticator
from ride_dispatch.services.realtime_ws.app import create_app, topics_for
from ride_dispatch.services.realtime_ws.connection_manager import ConnectionManager

AUTH = HmacTokenAuthenticator("secret")


@pytest.fixture
def manager() -> ConnectionManager:
    return ConnectionManager()


@pytest.fixture
def client(manager: ConnectionManager) -> Iterator[TestClient]:
    app = create_app(connection_manager=manager, authenticator=AUTH, with_lifespan=False)
    with TestClient(app) as test_client:
        yield test_client


class TestTopics:
    """Тесты выбора топиков."""

    def test_provider(self) -> None:
        assert topics_for("p-1", PartyRole.PROVIDER) == ["provider.p-1", "requests.open"]

    def test_requester(self) -> None:
        assert topics_for("r-1", PartyRole.REQUESTER) == ["requester.r-1"]


class TestWebSocket:
    """Тесты WebSocket endpoint."""

    def test_provider_connects(self, client: TestClient, manager: ConnectionManager) -> None:
        token = AUTH.issue_token("p-1")

        with client.websocket_connect(f"/ws?token={token}&role=provider") as websocket:
            greeting = websocket.receive_json()
            stats = client.get("/stats").json()

        assert greeting == {"type": "connected", "topics": ["provider.p-1", "requests.open"]}
        assert stats["active_connections"] == 1
        assert stats["connections_by_role"] == {"provider": 1}

    def test_ping(self, client: TestClient) -> None:
        token = AUTH.issue_token("r-1")

        with client.websocket_connect(f"/ws?token={token}") as websocket:
            websocket.receive_json()
            websocket.send_json({"action": "ping"})
            pong = websocket.receive_json()
            websocket.send_json({"action": "dance"})
            error = websocket.receive_json()

        assert pong == {"type": "pong"}
        assert error["type"] == "error"

    def test_invalid_token(self, client: TestClient) -> None:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws?token=forged.token&role=provider") as websocket:
                websocket.receive_json()

        assert exc_info.value.code == 1008

    def test_invalid_role(self, client: TestClient) -> None:
        token = AUTH.issue_token("p-1")

        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(f"/ws?token={token}&role=admin") as websocket:
                websocket.receive_json()

        assert exc_info.value.code == 1008


class TestRest:
    """Тесты REST endpoints шлюза."""

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["service"] == "realtime_ws"

    def test_stats_empty(self, client: TestClient) -> None:
        assert client.get("/stats").json()["active_connections"] == 0
