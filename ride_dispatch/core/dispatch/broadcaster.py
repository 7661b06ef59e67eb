# ride_dispatch/core/dispatch/broadcaster.py
"""
Рассылка событий заявок по топикам.

Доставка best-effort: мутация не ждёт публикации, ошибки шины
только логируются. Порядок гарантируется лишь в пределах одного
потока подписчика.
"""

from __future__ import annotations

import asyncio
from typing import Protocol

from ride_dispatch.common.constants import SYSTEM_ACTOR, RequestStatus, Topics
from ride_dispatch.common.logger import log_error
from ride_dispatch.core.requests.models import DispatchRequest, LocationAck
from ride_dispatch.shared.events import (
    DomainEvent,
    LocationUpdated,
    PresenceChanged,
    RequestAccepted,
    RequestCancelled,
    RequestCreated,
    RequestUnavailable,
    StatusChanged,
)


class EventPublisher(Protocol):
    """То, что умеет опубликовать событие по ключу маршрутизации (EventBus)."""

    async def publish(self, event: DomainEvent, routing_key: str | None = None) -> None: ...


class Broadcaster:
    """Планирует публикацию событий фоновыми задачами."""

    def __init__(self, publisher: EventPublisher) -> None:
        self._publisher = publisher
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        """Количество ещё не доставленных публикаций."""
        return len(self._pending)

    def emit(self, event: DomainEvent, *topics: str) -> None:
        """Ставит публикацию события в каждый топик и сразу возвращает управление."""
        for topic in topics:
            task = asyncio.create_task(self._deliver(event, topic))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, event: DomainEvent, topic: str) -> None:
        try:
            await self._publisher.publish(event, topic)
        except Exception as e:
            await log_error(
                f"Не удалось опубликовать {event.event_type} в {topic}: {e}",
                extra={"event_id": event.event_id, "topic": topic},
            )

    async def drain(self) -> None:
        """Дожидается всех запланированных публикаций (shutdown, тесты)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # =========================================================================
    # СОБЫТИЯ ЗАЯВОК
    # =========================================================================

    def request_created(self, request: DispatchRequest) -> None:
        dropoff = request.dropoff_point
        self.emit(
            RequestCreated(
                request_id=request.id,
                requester_id=request.requester_id,
                pickup_lat=request.pickup_point.latitude,
                pickup_lon=request.pickup_point.longitude,
                dropoff_lat=dropoff.latitude if dropoff else None,
                dropoff_lon=dropoff.longitude if dropoff else None,
                fare=request.fare,
                distance_km=request.distance_km,
                duration_minutes=request.duration_minutes,
                payment_method=request.payment_method.value,
                notes=request.notes,
            ),
            Topics.OPEN_REQUESTS,
        )

    def request_accepted(self, request: DispatchRequest) -> None:
        """Заказчику: кто принял; всем исполнителям: что заявка занята."""
        self.emit(
            RequestAccepted(
                request_id=request.id,
                requester_id=request.requester_id,
                provider_id=request.provider_id or "",
                accepted_at=request.accepted_at,
            ),
            Topics.requester(request.requester_id),
        )
        self.emit(RequestUnavailable(request_id=request.id, reason="accepted"), Topics.OPEN_REQUESTS)

    def status_changed(self, request: DispatchRequest, old_status: RequestStatus, changed_by: str) -> None:
        self.emit(
            StatusChanged(
                request_id=request.id,
                old_status=old_status.value,
                new_status=request.status.value,
                changed_by=changed_by,
            ),
            *self._party_topics(request),
        )

    def location_updated(self, request: DispatchRequest, ack: LocationAck) -> None:
        self.emit(
            LocationUpdated(
                request_id=request.id,
                provider_id=request.provider_id or "",
                lat=ack.point.latitude,
                lon=ack.point.longitude,
                remaining_distance_m=ack.remaining_distance_m,
                eta_minutes=ack.eta_minutes,
            ),
            *self._party_topics(request),
        )

    def request_cancelled(self, request: DispatchRequest, previous_status: RequestStatus) -> None:
        """
        Обеим сторонам: отмена. Если исполнитель ещё не был назначен,
        открытый топик получает unavailable, чтобы заявка пропала из списков.
        """
        self.emit(
            RequestCancelled(
                request_id=request.id,
                cancelled_by=request.cancelled_by or "",
                reason=request.cancellation_reason or "",
                previous_status=previous_status.value,
            ),
            *self._party_topics(request),
        )
        if previous_status == RequestStatus.REQUESTED:
            reason = "expired" if request.cancelled_by == SYSTEM_ACTOR else "cancelled"
            self.emit(RequestUnavailable(request_id=request.id, reason=reason), Topics.OPEN_REQUESTS)

    def presence_changed(self, provider_id: str, is_online: bool) -> None:
        self.emit(PresenceChanged(provider_id=provider_id, is_online=is_online), Topics.provider(provider_id))

    @staticmethod
    def _party_topics(request: DispatchRequest) -> list[str]:
        topics = [Topics.requester(request.requester_id)]
        if request.provider_id:
            topics.append(Topics.provider(request.provider_id))
        return topics
