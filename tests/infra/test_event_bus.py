# tests/infra/test_event_bus.py
"""
Тесты для шины событий.
"""

from __future__ import annotations

import json
from typing import Iterator
from unittest.mock import AsyncMock, MagicMock

import pytest

from ride_dispatch.infra.event_bus import EventBus
from ride_dispatch.shared.events import DomainEvent, RequestAccepted, RequestUnavailable


@pytest.fixture
def bus() -> Iterator[EventBus]:
    EventBus._instance = None
    event_bus = EventBus()
    yield event_bus
    EventBus._instance = None


@pytest.fixture
def connected_bus(bus: EventBus) -> EventBus:
    bus._connection = MagicMock(is_closed=False)
    bus._channel = AsyncMock()
    bus._exchange = AsyncMock()
    return bus


def _incoming(body: bytes, routing_key: str) -> MagicMock:
    message = MagicMock()
    message.body = body
    message.routing_key = routing_key
    cm = MagicMock()
    cm.__aenter__.return_value = None
    cm.__aexit__.return_value = False
    message.process.return_value = cm
    return message


class TestDomainEvent:
    """Тесты для DomainEvent."""

    def test_metadata_defaults(self) -> None:
        event = DomainEvent()

        assert event.event_type == ""
        assert event.event_id
        assert event.timestamp.tzinfo is not None

    def test_json_keeps_unknown_fields(self) -> None:
        """Подписчик разбирает конкретное событие в базовый класс без потерь."""
        original = RequestUnavailable(request_id="r1", reason="accepted")

        parsed = DomainEvent.from_json(original.to_json())

        assert parsed.event_type == "request.unavailable"
        assert parsed.event_id == original.event_id
        assert parsed.to_payload()["request_id"] == "r1"
        assert parsed.to_payload()["reason"] == "accepted"


class TestPublish:
    """Тесты для публикации."""

    @pytest.mark.asyncio
    async def test_publish_without_connection(self, bus: EventBus) -> None:
        with pytest.raises(RuntimeError):
            await bus.publish(RequestUnavailable(request_id="r1", reason="accepted"), "requests.open")

    @pytest.mark.asyncio
    async def test_publish_routing_key(self, connected_bus: EventBus) -> None:
        event = RequestAccepted(request_id="r1", requester_id="u1", provider_id="p1")

        await connected_bus.publish(event, "requester.u1")

        call = connected_bus._exchange.publish.await_args
        message = call.args[0]
        assert call.kwargs["routing_key"] == "requester.u1"
        assert message.message_id == event.event_id
        assert message.type == "request.accepted"
        assert json.loads(message.body)["provider_id"] == "p1"

    @pytest.mark.asyncio
    async def test_publish_defaults_to_event_type(self, connected_bus: EventBus) -> None:
        await connected_bus.publish(RequestUnavailable(request_id="r1", reason="cancelled"))

        assert connected_bus._exchange.publish.await_args.kwargs["routing_key"] == "request.unavailable"


class TestSubscribe:
    """Тесты для подписки."""

    @pytest.mark.asyncio
    async def test_subscribe_without_connection(self, bus: EventBus) -> None:
        with pytest.raises(RuntimeError):
            await bus.subscribe("provider.*", AsyncMock())

    @pytest.mark.asyncio
    async def test_exclusive_queue_bound_to_all_keys(self, connected_bus: EventBus) -> None:
        queue = AsyncMock()
        queue.name = "amq.gen-1"
        connected_bus._channel.declare_queue.return_value = queue

        name = await connected_bus.subscribe(["requester.*", "requests.open"], AsyncMock())

        assert name == "amq.gen-1"
        connected_bus._channel.declare_queue.assert_awaited_once_with(exclusive=True, auto_delete=True)
        bound = [c.kwargs["routing_key"] for c in queue.bind.await_args_list]
        assert bound == ["requester.*", "requests.open"]
        queue.consume.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_named_queue_is_durable(self, connected_bus: EventBus) -> None:
        queue = AsyncMock()
        queue.name = "dispatch.expiry"
        connected_bus._channel.declare_queue.return_value = queue

        await connected_bus.subscribe("requests.open", AsyncMock(), queue_name="dispatch.expiry")

        connected_bus._channel.declare_queue.assert_awaited_once_with("dispatch.expiry", durable=True)


class TestConsumer:
    """Тесты для обёртки обработчика."""

    @pytest.mark.asyncio
    async def test_handler_receives_event_and_key(self, bus: EventBus) -> None:
        handler = AsyncMock()
        event = RequestUnavailable(request_id="r1", reason="expired")

        await bus._make_consumer(handler)(_incoming(event.to_json().encode(), "requests.open"))

        received, key = handler.await_args.args
        assert received.event_type == "request.unavailable"
        assert key == "requests.open"

    @pytest.mark.asyncio
    async def test_invalid_json_skipped(self, bus: EventBus) -> None:
        handler = AsyncMock()

        await bus._make_consumer(handler)(_incoming(b"not json", "requests.open"))

        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_handler_error_not_propagated(self, bus: EventBus) -> None:
        handler = AsyncMock(side_effect=RuntimeError("boom"))
        event = RequestUnavailable(request_id="r1", reason="expired")

        await bus._make_consumer(handler)(_incoming(event.to_json().encode(), "requests.open"))

        handler.assert_awaited_once()
