# ride_dispatch/core/tracking/tracker.py
"""
Приём точек трека исполнителя по активной заявке.
"""

from __future__ import annotations

from ride_dispatch.common.constants import ACTIVE_STATUSES, RequestStatus
from ride_dispatch.common.logger import log_debug, log_error
from ride_dispatch.config import settings
from ride_dispatch.core.dispatch.broadcaster import Broadcaster
from ride_dispatch.core.exceptions import (
    InvalidTransitionError,
    NotAuthorizedError,
    NotFoundError,
)
from ride_dispatch.core.presence.registry import PresenceRegistry
from ride_dispatch.core.requests.models import (
    DispatchRequest,
    GeoPoint,
    LocationAck,
    LocationSample,
    PointLike,
    coerce_point,
)
from ride_dispatch.core.requests.repository import RequestRepository
from ride_dispatch.core.requests.state_machine import RequestStateMachine
from ride_dispatch.core.tracking.geo import eta_minutes, haversine_km, haversine_m


def distance_target(request: DispatchRequest) -> tuple[str, GeoPoint]:
    """До подачи: точка подачи; после прибытия: точка назначения (если есть)."""
    if request.status == RequestStatus.ACCEPTED or request.dropoff_point is None:
        return "pickup", request.pickup_point
    return "dropoff", request.dropoff_point


class LocationTracker:
    """Текущая точка, append-only история и расчёт расстояния/ETA."""

    def __init__(
        self,
        repository: RequestRepository,
        broadcaster: Broadcaster,
        average_speed_kmh: float | None = None,
        presence: PresenceRegistry | None = None,
    ) -> None:
        """
        Args:
            presence: Реестр присутствия; если задан, каждая точка трека
                      обновляет последнюю известную точку исполнителя
        """
        self._repo = repository
        self._broadcaster = broadcaster
        self._presence = presence
        self._speed = average_speed_kmh or settings.dispatch.AVERAGE_SPEED_KMH

    async def record_sample(self, request_id: str, provider_id: str, point: PointLike) -> LocationAck:
        """
        Записывает точку трека назначенного исполнителя.

        Args:
            request_id: ID заявки
            provider_id: ID исполнителя
            point: Текущие координаты

        Returns:
            Подтверждение с расстоянием и ETA до текущей цели

        Raises:
            NotFoundError: Заявка не найдена
            NotAuthorizedError: Вызывающий не назначенный исполнитель
            InvalidTransitionError: Заявка не в активном статусе
            DispatchValidationError: Некорректные координаты
        """
        location = coerce_point(point, "point")
        request = await self._load_for_provider(request_id, provider_id)

        # Внутри активных статусов заявка движется только вперёд,
        # поэтому попыток не больше, чем активных статусов
        for _ in range(len(ACTIVE_STATUSES)):
            target_name, target_point = distance_target(request)
            remaining_m = haversine_m(location, target_point)
            eta = eta_minutes(haversine_km(location, target_point), self._speed)

            sample = await self._repo.record_location(
                request_id,
                provider_id,
                request.status,
                location,
                remaining_m,
                eta,
            )
            if sample is not None:
                break
            # Статус сменился между чтением и записью: считаем заново от нового
            request = await self._load_for_provider(request_id, provider_id)
        else:
            raise InvalidTransitionError(
                "Статус заявки менялся во время записи трека",
                request_id=request_id,
            )

        ack = LocationAck(
            request_id=request.id,
            point=location,
            target=target_name,
            remaining_distance_m=remaining_m,
            eta_minutes=eta,
            recorded_at=sample.recorded_at,
        )
        updated = request.model_copy(
            update={"current_point": location, "remaining_distance_m": remaining_m, "eta_minutes": eta}
        )
        self._broadcaster.location_updated(updated, ack)

        if self._presence is not None:
            try:
                await self._presence.touch_location(provider_id, location)
            except Exception as e:
                # Трек уже записан, точка присутствия вторична
                await log_error(f"Не удалось обновить точку исполнителя {provider_id}: {e}")

        await log_debug(
            f"Трек {request_id}: до {target_name} {remaining_m} м, ETA {eta} мин",
            extra={"request_id": request_id, "provider_id": provider_id},
        )
        return ack

    async def history(self, request_id: str, caller_id: str) -> list[LocationSample]:
        """Трек заявки в порядке записи; доступен только участникам."""
        request = await self._repo.get(request_id)
        if request is None:
            raise NotFoundError("Заявка не найдена", request_id=request_id)
        RequestStateMachine.authorize(request, caller_id)
        return await self._repo.location_history(request_id)

    async def _load_for_provider(
        self,
        request_id: str,
        provider_id: str,
    ) -> DispatchRequest:
        request = await self._repo.get(request_id)
        if request is None:
            raise NotFoundError("Заявка не найдена", request_id=request_id)
        if request.provider_id is None or request.provider_id != provider_id:
            raise NotAuthorizedError(
                "Трек может передавать только назначенный исполнитель",
                request_id=request_id,
                caller_id=provider_id,
            )
        if not request.is_active:
            raise InvalidTransitionError(
                f"Трек не принимается в статусе {request.status.value}",
                request_id=request_id,
                current=request.status.value,
            )
        return request
