# ride_dispatch/services/dispatch_api/schemas.py
"""
Тела запросов HTTP API диспетчеризации.

Диапазоны координат проверяет доменный слой, чтобы ошибки
приходили в одном формате ErrorResponse.
"""

from __future__ import annotations

from pydantic import BaseModel

from ride_dispatch.common.constants import PaymentMethod, RequestStatus


class PointIn(BaseModel):
    """Координаты точки."""
    latitude: float
    longitude: float


class CreateRequestBody(BaseModel):
    """Создание заявки. Без тарифа: запрос к сервису тарификации."""
    pickup: PointIn
    dropoff: PointIn | None = None
    fare: float | None = None
    distance_km: float | None = None
    duration_minutes: int | None = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    notes: str | None = None


class StatusBody(BaseModel):
    """Смена статуса."""
    status: RequestStatus


class LocationBody(BaseModel):
    """Точка трека."""
    latitude: float
    longitude: float


class CancelBody(BaseModel):
    """Отмена заявки."""
    reason: str | None = None


class RateBody(BaseModel):
    """Оценка заявки."""
    rating: int
    feedback: str | None = None


class PresenceBody(BaseModel):
    """Выход на линию / уход с линии."""
    is_online: bool
    point: PointIn | None = None

