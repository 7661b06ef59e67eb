# ride_dispatch/core/dispatch/service.py
"""
Публичный сервис диспетчеризации заявок.

Все мутации выполняются условной записью в хранилище и возвращают
результат вызывающему до и независимо от рассылки событий.
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from ride_dispatch.common.constants import (
    DEFAULT_CANCELLATION_REASON,
    PartyRole,
    PaymentMethod,
    RequestStatus,
)
from ride_dispatch.common.logger import log_info, log_warning
from ride_dispatch.config import settings
from ride_dispatch.config.loader import DispatchSettings
from ride_dispatch.core.dispatch.acceptance import AcceptanceCoordinator
from ride_dispatch.core.dispatch.broadcaster import Broadcaster
from ride_dispatch.core.exceptions import (
    DispatchValidationError,
    InvalidTransitionError,
    NotAuthorizedError,
    NotFoundError,
)
from ride_dispatch.core.presence.registry import PresenceRecord, PresenceRegistry
from ride_dispatch.core.requests.models import (
    DispatchRequest,
    LocationAck,
    LocationSample,
    OpenRequestsResult,
    PointLike,
    RequestStatistics,
    coerce_point,
)
from ride_dispatch.core.requests.repository import RequestRepository
from ride_dispatch.core.requests.state_machine import RequestStateMachine
from ride_dispatch.core.tracking.tracker import LocationTracker
from ride_dispatch.shared.models.common import PaginatedResponse, PaginationParams

OFFLINE_WARNING = "Вы не на линии: принять заявку можно, но новые заявки не приходят"

# Символы, которые ломают ключи маршрутизации топиков
_FORBIDDEN_ID_CHARS = frozenset(".*# ")


def check_party_id(party_id: Any, field: str) -> str:
    """
    Raises:
        DispatchValidationError: Пустой идентификатор или недопустимые символы
    """
    if not isinstance(party_id, str) or not party_id:
        raise DispatchValidationError(f"{field}: требуется непустой идентификатор", field=field)
    if _FORBIDDEN_ID_CHARS.intersection(party_id):
        raise DispatchValidationError(f"{field}: недопустимые символы в идентификаторе", field=field)
    return party_id


def _check_text(value: str | None, limit: int, field: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise DispatchValidationError(f"{field}: ожидается строка", field=field)
    value = value.strip()
    if len(value) > limit:
        raise DispatchValidationError(
            f"{field}: длина превышает {limit} символов",
            field=field,
            max_length=limit,
        )
    return value or None


class DispatchService:
    """Создание, принятие, жизненный цикл и трек заявок."""

    def __init__(
        self,
        repository: RequestRepository,
        broadcaster: Broadcaster,
        presence: PresenceRegistry,
        config: DispatchSettings | None = None,
    ) -> None:
        self._repo = repository
        self._broadcaster = broadcaster
        self._presence = presence
        self._config = config or settings.dispatch
        self._acceptance = AcceptanceCoordinator(repository, broadcaster)
        self._tracker = LocationTracker(repository, broadcaster, self._config.AVERAGE_SPEED_KMH, presence)

    # =========================================================================
    # СОЗДАНИЕ И СПИСОК
    # =========================================================================

    async def create(
        self,
        requester_id: str,
        pickup_point: PointLike,
        dropoff_point: PointLike | None = None,
        fare: float = 0.0,
        distance_km: float = 0.0,
        duration_minutes: int = 0,
        notes: str | None = None,
        payment_method: PaymentMethod | str = PaymentMethod.CASH,
    ) -> DispatchRequest:
        """
        Создаёт заявку в статусе requested и объявляет её исполнителям.

        Стоимость, расстояние и длительность приходят от сервиса
        тарификации и только сохраняются.

        Raises:
            DispatchValidationError: Некорректные координаты, суммы или текст
        """
        check_party_id(requester_id, "requester_id")
        pickup = coerce_point(pickup_point, "pickup_point")
        dropoff = coerce_point(dropoff_point, "dropoff_point") if dropoff_point is not None else None
        notes = _check_text(notes, self._config.MAX_NOTES_LENGTH, "notes")

        try:
            request = DispatchRequest(
                requester_id=requester_id,
                pickup_point=pickup,
                dropoff_point=dropoff,
                fare=fare,
                distance_km=distance_km,
                duration_minutes=duration_minutes,
                payment_method=payment_method,
                notes=notes,
            )
        except ValidationError as e:
            raise DispatchValidationError(
                "Некорректные параметры заявки",
                errors=e.errors(include_url=False),
            ) from e

        created = await self._repo.insert(request)
        await log_info(
            f"Заявка {created.id} создана заказчиком {requester_id}",
            extra={"request_id": created.id, "requester_id": requester_id},
        )
        self._broadcaster.request_created(created)
        return created

    async def list_open(self, provider_id: str, limit: int | None = None) -> OpenRequestsResult:
        """
        Открытые заявки для исполнителя.

        Исполнитель не на линии получает предупреждение; при
        BLOCK_OFFLINE_LISTING список для него пуст.
        """
        check_party_id(provider_id, "provider_id")
        limit = min(limit or self._config.OPEN_REQUESTS_LIMIT, self._config.OPEN_REQUESTS_LIMIT)

        online = await self._presence.is_online(provider_id)
        if online:
            return OpenRequestsResult(items=await self._repo.list_open(limit), provider_online=True)

        await log_warning(
            f"Исполнитель {provider_id} запрашивает заявки не на линии",
            extra={"provider_id": provider_id},
        )
        if self._config.BLOCK_OFFLINE_LISTING:
            return OpenRequestsResult(items=[], provider_online=False, warning=OFFLINE_WARNING)
        return OpenRequestsResult(
            items=await self._repo.list_open(limit),
            provider_online=False,
            warning=OFFLINE_WARNING,
        )

    # =========================================================================
    # ЖИЗНЕННЫЙ ЦИКЛ
    # =========================================================================

    async def accept(self, request_id: str, provider_id: str) -> DispatchRequest:
        """Принятие заявки; см. AcceptanceCoordinator.accept."""
        check_party_id(provider_id, "provider_id")
        return await self._acceptance.accept(request_id, provider_id)

    async def update_status(
        self,
        request_id: str,
        caller_id: str,
        target_status: RequestStatus | str,
    ) -> DispatchRequest:
        """
        Переводит заявку в следующий статус.

        Raises:
            NotFoundError: Заявка не найдена
            NotAuthorizedError: Вызывающий не участник заявки
            InvalidTransitionError: Переход не входит в граф
            DispatchValidationError: Неизвестный статус
        """
        try:
            target = RequestStatus(target_status)
        except ValueError as e:
            raise DispatchValidationError(f"Неизвестный статус: {target_status}", field="status") from e

        if target == RequestStatus.CANCELLED:
            return await self.cancel(request_id, caller_id, DEFAULT_CANCELLATION_REASON)

        request = await self._get_for_party(request_id, caller_id)
        if target == RequestStatus.ACCEPTED:
            # Привязка исполнителя идёт только через accept
            raise InvalidTransitionError(
                "Статус accepted устанавливается только принятием заявки",
                current=request.status.value,
                target=target.value,
            )
        RequestStateMachine.validate_transition(request.status, target)

        updated = await self._repo.transition(
            request_id,
            request.status,
            target,
            RequestStateMachine.TIMESTAMP_FIELDS[target],
        )
        if updated is None:
            raise await self._lost_write(request_id, request.status, target)

        await log_info(
            f"Заявка {request_id}: {request.status.value} → {target.value}",
            extra={"request_id": request_id, "caller_id": caller_id},
        )
        self._broadcaster.status_changed(updated, request.status, caller_id)
        return updated

    async def cancel(self, request_id: str, caller_id: str, reason: str | None = None) -> DispatchRequest:
        """
        Отменяет заявку из любого незавершённого статуса.

        Исполнитель, если был назначен, остаётся в записи.

        Raises:
            NotFoundError: Заявка не найдена
            NotAuthorizedError: Вызывающий не участник заявки
            InvalidTransitionError: Заявка уже завершена или отменена
        """
        reason = _check_text(reason, self._config.MAX_CANCELLATION_REASON_LENGTH, "reason")
        reason = reason or DEFAULT_CANCELLATION_REASON

        request = await self._get_for_party(request_id, caller_id)
        RequestStateMachine.validate_transition(request.status, RequestStatus.CANCELLED)

        cancelled = await self._repo.cancel(request_id, request.status, caller_id, reason)
        if cancelled is None:
            raise await self._lost_write(request_id, request.status, RequestStatus.CANCELLED)

        await log_info(
            f"Заявка {request_id} отменена участником {caller_id}: {reason}",
            extra={"request_id": request_id, "caller_id": caller_id},
        )
        self._broadcaster.request_cancelled(cancelled, request.status)
        return cancelled

    async def rate(
        self,
        request_id: str,
        requester_id: str,
        rating: int,
        feedback: str | None = None,
    ) -> DispatchRequest:
        """
        Оценка завершённой заявки заказчиком, ровно один раз.

        Raises:
            DispatchValidationError: Оценка вне 1..5, отзыв слишком длинный, повторная оценка
            NotFoundError: Заявка не найдена
            NotAuthorizedError: Вызывающий не заказчик
            InvalidTransitionError: Заявка не завершена
        """
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise DispatchValidationError("Оценка должна быть целым числом от 1 до 5", field="rating")
        feedback = _check_text(feedback, self._config.MAX_FEEDBACK_LENGTH, "feedback")

        request = await self._repo.get(request_id)
        self._check_rateable(request, request_id, requester_id)

        rated = await self._repo.rate(request_id, requester_id, rating, feedback)
        if rated is None:
            # Параллельная оценка успела раньше
            self._check_rateable(await self._repo.get(request_id), request_id, requester_id)
            raise DispatchValidationError("Заявка уже оценена", request_id=request_id)

        await log_info(
            f"Заявка {request_id} оценена: {rating}",
            extra={"request_id": request_id, "requester_id": requester_id},
        )
        return rated

    # =========================================================================
    # ТРЕК И ПРИСУТСТВИЕ
    # =========================================================================

    async def update_location(self, request_id: str, provider_id: str, point: PointLike) -> LocationAck:
        """Точка трека назначенного исполнителя; см. LocationTracker.record_sample."""
        return await self._tracker.record_sample(request_id, provider_id, point)

    async def location_history(self, request_id: str, caller_id: str) -> list[LocationSample]:
        return await self._tracker.history(request_id, caller_id)

    async def set_presence(
        self,
        provider_id: str,
        online: bool,
        point: PointLike | None = None,
    ) -> PresenceRecord:
        check_party_id(provider_id, "provider_id")
        return await self._presence.set_online(provider_id, online, point)

    async def get_presence(self, provider_id: str) -> PresenceRecord:
        """Текущий флаг и последняя точка исполнителя."""
        check_party_id(provider_id, "provider_id")
        return await self._presence.get(provider_id)

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get_active(self, party_id: str) -> DispatchRequest | None:
        """Активная заявка исполнителя или последняя незавершённая заявка заказчика."""
        active = await self._repo.find_active_for_provider(party_id)
        if active is not None:
            return active
        return await self._repo.find_open_for_requester(party_id)

    async def get_details(self, request_id: str, caller_id: str) -> DispatchRequest:
        return await self._get_for_party(request_id, caller_id)

    async def history(
        self,
        party_id: str,
        page: int = 1,
        page_size: int = 10,
        status: RequestStatus | str | None = None,
    ) -> PaginatedResponse[DispatchRequest]:
        """История заявок участника, новые первыми."""
        try:
            pagination = PaginationParams(page=page, page_size=page_size)
            status_filter = RequestStatus(status) if status is not None else None
        except (ValidationError, ValueError) as e:
            raise DispatchValidationError("Некорректные параметры истории") from e

        items, total = await self._repo.history(
            party_id,
            pagination.offset,
            pagination.limit,
            status_filter,
        )
        return PaginatedResponse[DispatchRequest].create(items, total, pagination)

    async def statistics(self, party_id: str, role: PartyRole | str) -> list[RequestStatistics]:
        try:
            party_role = PartyRole(role)
        except ValueError as e:
            raise DispatchValidationError(f"Неизвестная роль: {role}", field="role") from e
        return await self._repo.statistics(party_id, party_role)

    async def drain(self) -> None:
        """Дожидается отправки запланированных событий."""
        await self._broadcaster.drain()

    # =========================================================================
    # ВНУТРЕННИЕ
    # =========================================================================

    async def _get_for_party(self, request_id: str, caller_id: str) -> DispatchRequest:
        request = await self._repo.get(request_id)
        if request is None:
            raise NotFoundError("Заявка не найдена", request_id=request_id)
        RequestStateMachine.authorize(request, caller_id)
        return request

    async def _lost_write(
        self,
        request_id: str,
        expected: RequestStatus,
        target: RequestStatus,
    ) -> Exception:
        """Условная запись не изменила строк: заявку кто-то изменил раньше."""
        current = await self._repo.get(request_id)
        if current is None:
            return NotFoundError("Заявка не найдена", request_id=request_id)
        return InvalidTransitionError(
            f"Статус заявки изменился: {expected.value} → {current.status.value}",
            current=current.status.value,
            target=target.value,
        )

    @staticmethod
    def _check_rateable(request: DispatchRequest | None, request_id: str, requester_id: str) -> None:
        if request is None:
            raise NotFoundError("Заявка не найдена", request_id=request_id)
        if request.requester_id != requester_id:
            raise NotAuthorizedError("Оценить заявку может только заказчик", request_id=request_id)
        if request.status != RequestStatus.COMPLETED:
            raise InvalidTransitionError(
                "Оценить можно только завершённую заявку",
                current=request.status.value,
            )
        if request.rating is not None:
            raise DispatchValidationError("Заявка уже оценена", request_id=request_id)
