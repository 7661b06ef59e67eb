# ride_dispatch/core/requests/models.py
"""
Модели данных заявок.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ride_dispatch.common.constants import ACTIVE_STATUSES, PaymentMethod, RequestStatus, TERMINAL_STATUSES
from ride_dispatch.core.exceptions import DispatchValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GeoPoint(BaseModel):
    """Географическая точка (WGS84, градусы)."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90.0, le=90.0, allow_inf_nan=False, description="Широта")
    longitude: float = Field(..., ge=-180.0, le=180.0, allow_inf_nan=False, description="Долгота")


PointLike = Union[GeoPoint, tuple[float, float], dict[str, Any]]


def coerce_point(value: PointLike, field_name: str = "point") -> GeoPoint:
    """
    Приводит вход к GeoPoint.

    Принимает GeoPoint, кортеж (lat, lon) или словарь
    с ключами latitude/longitude (или lat/lon).

    Raises:
        DispatchValidationError: Координаты отсутствуют или вне диапазона
    """
    if isinstance(value, GeoPoint):
        return value
    try:
        if isinstance(value, (tuple, list)):
            if len(value) != 2:
                raise DispatchValidationError(f"{field_name}: ожидается пара (lat, lon)", field=field_name)
            return GeoPoint(latitude=value[0], longitude=value[1])
        if isinstance(value, dict):
            return GeoPoint(
                latitude=value.get("latitude", value.get("lat")),
                longitude=value.get("longitude", value.get("lon", value.get("lng"))),
            )
    except ValidationError as e:
        raise DispatchValidationError(
            f"{field_name}: некорректные координаты",
            field=field_name,
            errors=e.errors(include_url=False),
        ) from e
    raise DispatchValidationError(f"{field_name}: неподдерживаемый формат точки", field=field_name)


class DispatchRequest(BaseModel):
    """Заявка на обслуживание."""

    id: str = Field(default_factory=lambda: str(uuid4()), description="UUID заявки")
    requester_id: str = Field(..., description="ID заказчика")
    provider_id: str | None = Field(None, description="ID исполнителя, задаётся при принятии")

    pickup_point: GeoPoint = Field(..., description="Точка подачи")
    dropoff_point: GeoPoint | None = Field(None, description="Точка назначения")
    current_point: GeoPoint | None = Field(None, description="Последняя известная точка исполнителя")

    status: RequestStatus = Field(RequestStatus.REQUESTED, description="Статус заявки")

    # Значения от сервиса тарификации, только хранятся
    fare: float = Field(0.0, ge=0.0, description="Стоимость")
    distance_km: float = Field(0.0, ge=0.0, description="Расстояние маршрута, км")
    duration_minutes: int = Field(0, ge=0, description="Оценка длительности, мин")
    actual_duration_minutes: int | None = Field(None, description="Фактическая длительность, мин")

    # Последний расчёт трекера
    remaining_distance_m: int | None = Field(None, description="Осталось до цели, м")
    eta_minutes: int | None = Field(None, description="Оценка времени прибытия, мин")

    payment_method: PaymentMethod = Field(PaymentMethod.CASH, description="Способ оплаты")
    notes: str | None = Field(None, description="Комментарий заказчика")

    cancelled_by: str | None = Field(None, description="Кто отменил: id участника или system")
    cancellation_reason: str | None = Field(None, description="Причина отмены")
    rating: int | None = Field(None, ge=1, le=5, description="Оценка заказчика")
    feedback: str | None = Field(None, description="Отзыв заказчика")

    created_at: datetime = Field(default_factory=utcnow, description="Время создания")
    accepted_at: datetime | None = None
    arrived_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        """Исполнитель назначен и заявка ещё не завершена."""
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_party(self, caller_id: str) -> bool:
        """Является ли вызывающий заказчиком или назначенным исполнителем."""
        return caller_id == self.requester_id or (
            self.provider_id is not None and caller_id == self.provider_id
        )


class LocationSample(BaseModel):
    """Точка трека исполнителя по заявке (append-only)."""

    request_id: str
    provider_id: str
    point: GeoPoint
    recorded_at: datetime = Field(default_factory=utcnow)


class LocationAck(BaseModel):
    """Результат приёма точки трека."""

    request_id: str
    point: GeoPoint
    target: str = Field(..., description="pickup или dropoff")
    remaining_distance_m: int
    eta_minutes: int
    recorded_at: datetime


class OpenRequestsResult(BaseModel):
    """Список открытых заявок для исполнителя."""

    items: list[DispatchRequest] = Field(default_factory=list)
    provider_online: bool
    warning: str | None = None


class RequestStatistics(BaseModel):
    """Агрегат заявок участника по статусу."""

    status: RequestStatus
    count: int
    total_fare: float = 0.0
    total_distance_km: float = 0.0
    average_rating: float | None = None
