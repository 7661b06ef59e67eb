# ride_dispatch/core/requests/state_machine.py
"""
Конечный автомат жизненного цикла заявки.

    requested → accepted → arrived → started → completed
    requested | accepted | arrived | started → cancelled

completed и cancelled: конечные статусы.
"""

from __future__ import annotations

from ride_dispatch.common.constants import RequestStatus
from ride_dispatch.core.exceptions import InvalidTransitionError, NotAuthorizedError
from ride_dispatch.core.requests.models import DispatchRequest


class RequestStateMachine:
    """Правила переходов статусов и прав участников."""

    VALID_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
        RequestStatus.REQUESTED: frozenset({RequestStatus.ACCEPTED, RequestStatus.CANCELLED}),
        RequestStatus.ACCEPTED: frozenset({RequestStatus.ARRIVED, RequestStatus.CANCELLED}),
        RequestStatus.ARRIVED: frozenset({RequestStatus.STARTED, RequestStatus.CANCELLED}),
        RequestStatus.STARTED: frozenset({RequestStatus.COMPLETED, RequestStatus.CANCELLED}),
        RequestStatus.COMPLETED: frozenset(),
        RequestStatus.CANCELLED: frozenset(),
    }

    # Колонка с отметкой времени для каждого целевого статуса
    TIMESTAMP_FIELDS: dict[RequestStatus, str] = {
        RequestStatus.ACCEPTED: "accepted_at",
        RequestStatus.ARRIVED: "arrived_at",
        RequestStatus.STARTED: "started_at",
        RequestStatus.COMPLETED: "completed_at",
        RequestStatus.CANCELLED: "cancelled_at",
    }

    @classmethod
    def can_transition(cls, current: RequestStatus, target: RequestStatus) -> bool:
        return target in cls.VALID_TRANSITIONS.get(current, frozenset())

    @classmethod
    def validate_transition(cls, current: RequestStatus, target: RequestStatus) -> None:
        """
        Raises:
            InvalidTransitionError: Переход не входит в граф
        """
        if not cls.can_transition(current, target):
            raise InvalidTransitionError(
                f"Недопустимый переход: {current.value} → {target.value}",
                current=current.value,
                target=target.value,
            )

    @staticmethod
    def authorize(request: DispatchRequest, caller_id: str) -> None:
        """
        Raises:
            NotAuthorizedError: Вызывающий не заказчик и не назначенный исполнитель
        """
        if not request.is_party(caller_id):
            raise NotAuthorizedError(
                "Нет доступа к заявке",
                request_id=request.id,
                caller_id=caller_id,
            )

