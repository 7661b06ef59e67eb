# ride_dispatch/core/dispatch/acceptance.py
"""
Координатор принятия заявок.

Авторитетна только условная запись в хранилище: из N параллельных
принятий строку меняет ровно одно. Предварительная проверка занятости
исполнителя лишь отсекает заведомо бесполезные попытки.
"""

from __future__ import annotations

from ride_dispatch.common.constants import RequestStatus
from ride_dispatch.common.logger import log_info
from ride_dispatch.core.dispatch.broadcaster import Broadcaster
from ride_dispatch.core.exceptions import (
    AlreadyAssignedError,
    AlreadyTakenError,
    DispatchValidationError,
    NotFoundError,
)
from ride_dispatch.core.requests.models import DispatchRequest
from ride_dispatch.core.requests.repository import RequestRepository


class AcceptanceCoordinator:
    """Привязывает исполнителя к открытой заявке."""

    def __init__(self, repository: RequestRepository, broadcaster: Broadcaster) -> None:
        self._repo = repository
        self._broadcaster = broadcaster

    async def accept(self, request_id: str, provider_id: str) -> DispatchRequest:
        """
        Принимает заявку исполнителем.

        Args:
            request_id: ID заявки
            provider_id: ID исполнителя

        Returns:
            Заявка в статусе accepted с привязанным исполнителем

        Raises:
            NotFoundError: Заявка не найдена
            AlreadyAssignedError: У исполнителя уже есть активная заявка
            AlreadyTakenError: Заявку уже приняли или отменили
        """
        if not provider_id:
            raise DispatchValidationError("Не указан исполнитель", field="provider_id")

        # Быстрый отказ; гонку решает только условная запись ниже
        busy = await self._repo.find_active_for_provider(provider_id)
        if busy is not None:
            raise AlreadyAssignedError(
                "У исполнителя уже есть активная заявка",
                provider_id=provider_id,
                active_request_id=busy.id,
            )

        accepted = await self._repo.try_accept(request_id, provider_id)
        if accepted is None:
            raise await self._rejection(request_id, provider_id)

        await log_info(
            f"Заявка {request_id} принята исполнителем {provider_id}",
            extra={"request_id": request_id, "provider_id": provider_id},
        )
        self._broadcaster.request_accepted(accepted)
        return accepted

    async def _rejection(self, request_id: str, provider_id: str) -> Exception:
        """Перечитывает заявку, чтобы назвать причину отказа."""
        current = await self._repo.get(request_id)
        if current is None:
            return NotFoundError("Заявка не найдена", request_id=request_id)
        if current.status == RequestStatus.REQUESTED and current.provider_id is None:
            # Заявка свободна, значит не прошла проверка занятости исполнителя
            return AlreadyAssignedError(
                "У исполнителя уже есть активная заявка",
                provider_id=provider_id,
            )
        return AlreadyTakenError(
            "Заявка уже принята или отменена",
            request_id=request_id,
            status=current.status.value,
        )
