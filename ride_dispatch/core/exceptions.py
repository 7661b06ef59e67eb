# ride_dispatch/core/exceptions.py
"""
Ошибки доменного слоя диспетчеризации.
Все поднимаются синхронно к вызывающему и не повторяются автоматически.
"""

from __future__ import annotations

from typing import Any


class DispatchError(Exception):
    """Базовая ошибка диспетчеризации."""

    error_code: str = "dispatch_error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(DispatchError):
    """Заявка с таким идентификатором не существует."""

    error_code = "not_found"


class NotAuthorizedError(DispatchError):
    """Вызывающий не является участником заявки или не имеет права на операцию."""

    error_code = "not_authorized"


class InvalidTransitionError(DispatchError):
    """Переход недопустим из текущего статуса (в том числе из конечного)."""

    error_code = "invalid_transition"


class AlreadyTakenError(DispatchError):
    """Заявку уже принял другой исполнитель или она отменена."""

    error_code = "already_taken"


class AlreadyAssignedError(DispatchError):
    """У исполнителя уже есть активная заявка."""

    error_code = "already_assigned"


class DispatchValidationError(DispatchError):
    """Некорректные входные данные: координаты, оценка, длина текста."""

    error_code = "validation_error"
