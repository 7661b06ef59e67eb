# ride_dispatch/shared/models/common.py
"""
Модели ответов HTTP слоя: страницы истории, ошибки, здоровье сервиса.
"""

from __future__ import annotations

import math
from typing import Any, Generic, Protocol, TypeVar

from pydantic import BaseModel, Field


T = TypeVar("T")

MAX_PAGE_SIZE = 100


class PaginationParams(BaseModel):
    """Страница истории заявок (нумерация с 1)."""

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1, le=MAX_PAGE_SIZE)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def limit(self) -> int:
        return self.page_size


class PaginatedResponse(BaseModel, Generic[T]):
    """Страница элементов и общее количество."""

    items: list[T]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool = False

    @classmethod
    def create(cls, items: list[T], total: int, pagination: PaginationParams) -> "PaginatedResponse[T]":
        total_pages = math.ceil(total / pagination.page_size)
        return cls(
            items=items,
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
            total_pages=total_pages,
            has_next=pagination.page < total_pages,
        )


class _ErrorLike(Protocol):
    error_code: str
    message: str
    details: dict[str, Any]


class ErrorResponse(BaseModel):
    """Тело ответа с доменной ошибкой."""

    error_code: str
    message: str
    details: dict[str, Any] | None = None

    @classmethod
    def from_error(cls, error: _ErrorLike) -> "ErrorResponse":
        return cls(error_code=error.error_code, message=error.message, details=error.details or None)


class HealthStatus(BaseModel):
    """Здоровье сервиса и его зависимостей."""

    service: str
    status: str = "healthy"  # healthy | degraded
    version: str | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_checks(cls, service: str, version: str | None, checks: dict[str, bool]) -> "HealthStatus":
        """Сервис degraded, если хотя бы одна зависимость недоступна."""
        return cls(
            service=service,
            status="healthy" if all(checks.values()) else "degraded",
            version=version,
            dependencies={name: "ok" if ok else "unavailable" for name, ok in checks.items()},
        )
