# ride_dispatch/shared/events/request_events.py
"""
События домена заявок.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from ride_dispatch.shared.events.base import DomainEvent


class RequestCreated(DomainEvent):
    """Событие: появилась новая открытая заявка."""

    event_type: Literal["request.created"] = "request.created"

    request_id: str
    requester_id: str
    pickup_lat: float
    pickup_lon: float
    dropoff_lat: float | None = None
    dropoff_lon: float | None = None
    fare: float = 0.0
    distance_km: float = 0.0
    duration_minutes: int = 0
    payment_method: str = "cash"
    notes: str | None = None


class RequestAccepted(DomainEvent):
    """Событие: заявку принял исполнитель (уходит заказчику)."""

    event_type: Literal["request.accepted"] = "request.accepted"

    request_id: str
    requester_id: str
    provider_id: str
    accepted_at: datetime | None = None


class RequestUnavailable(DomainEvent):
    """Событие: заявка больше не доступна для принятия."""

    event_type: Literal["request.unavailable"] = "request.unavailable"

    request_id: str
    reason: str  # accepted, cancelled, expired


class StatusChanged(DomainEvent):
    """Событие: статус заявки изменён."""

    event_type: Literal["status.changed"] = "status.changed"

    request_id: str
    old_status: str
    new_status: str
    changed_by: str


class LocationUpdated(DomainEvent):
    """Событие: новая точка исполнителя по заявке."""

    event_type: Literal["location.updated"] = "location.updated"

    request_id: str
    provider_id: str
    lat: float
    lon: float
    remaining_distance_m: int
    eta_minutes: int


class RequestCancelled(DomainEvent):
    """Событие: заявка отменена."""

    event_type: Literal["request.cancelled"] = "request.cancelled"

    request_id: str
    cancelled_by: str  # id участника или system
    reason: str
    previous_status: str


class PresenceChanged(DomainEvent):
    """Событие: исполнитель вышел на линию или ушёл с неё."""

    event_type: Literal["presence.changed"] = "presence.changed"

    provider_id: str
    is_online: bool
