# ride_dispatch/core/requests/repository.py
"""
Хранилище заявок (PostgreSQL).

Все изменения статуса выполняются условными UPDATE ... WHERE status = <ожидаемый>
RETURNING: атомарность обеспечивает база, а None на выходе означает,
что ни одна строка не изменилась (состояние ушло из-под вызывающего).
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

import asyncpg
from asyncpg import Record

from ride_dispatch.common.constants import ACTIVE_STATUSES, PartyRole, RequestStatus, TERMINAL_STATUSES
from ride_dispatch.common.logger import log_debug
from ride_dispatch.core.exceptions import AlreadyAssignedError
from ride_dispatch.core.requests.models import (
    DispatchRequest,
    GeoPoint,
    LocationSample,
    RequestStatistics,
)
from ride_dispatch.infra.database import DatabaseManager


REQUEST_COLUMNS = """
    id, requester_id, provider_id,
    pickup_latitude, pickup_longitude,
    dropoff_latitude, dropoff_longitude,
    current_latitude, current_longitude,
    status, fare, distance_km, duration_minutes, actual_duration_minutes,
    remaining_distance_m, eta_minutes, payment_method, notes,
    cancelled_by, cancellation_reason, rating, feedback,
    created_at, accepted_at, arrived_at, started_at, completed_at, cancelled_at, updated_at
"""

ACTIVE_STATUS_VALUES = [s.value for s in ACTIVE_STATUSES]
NON_TERMINAL_STATUS_VALUES = [s.value for s in RequestStatus if s not in TERMINAL_STATUSES]

UNIQUE_ACTIVE_PROVIDER_INDEX = "uq_requests_active_provider"


def _as_uuid(request_id: str) -> UUID | None:
    """Некорректный идентификатор эквивалентен несуществующему."""
    try:
        return UUID(str(request_id))
    except ValueError:
        return None


def _point(lat: float | None, lon: float | None) -> GeoPoint | None:
    if lat is None or lon is None:
        return None
    return GeoPoint(latitude=lat, longitude=lon)


class RequestRepository:
    """Репозиторий заявок."""

    def __init__(self, db: DatabaseManager) -> None:
        """
        Args:
            db: Менеджер базы данных
        """
        self._db = db

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get(self, request_id: str) -> DispatchRequest | None:
        """Заявка по ID или None."""
        uid = _as_uuid(request_id)
        if uid is None:
            return None
        row = await self._db.fetchrow(
            f"SELECT {REQUEST_COLUMNS} FROM dispatch_requests WHERE id = $1",
            uid,
        )
        return self._row_to_request(row) if row else None

    async def list_open(self, limit: int) -> list[DispatchRequest]:
        """Открытые заявки, новые первыми."""
        rows = await self._db.fetch(
            f"""
            SELECT {REQUEST_COLUMNS}
            FROM dispatch_requests
            WHERE status = $1
            ORDER BY created_at DESC
            LIMIT $2
            """,
            RequestStatus.REQUESTED.value,
            limit,
        )
        return [self._row_to_request(r) for r in rows]

    async def find_active_for_provider(self, provider_id: str) -> DispatchRequest | None:
        """Текущая назначенная заявка исполнителя (accepted/arrived/started)."""
        row = await self._db.fetchrow(
            f"""
            SELECT {REQUEST_COLUMNS}
            FROM dispatch_requests
            WHERE provider_id = $1 AND status = ANY($2::text[])
            ORDER BY accepted_at DESC
            LIMIT 1
            """,
            provider_id,
            ACTIVE_STATUS_VALUES,
        )
        return self._row_to_request(row) if row else None

    async def find_open_for_requester(self, requester_id: str) -> DispatchRequest | None:
        """Самая свежая незавершённая заявка заказчика."""
        row = await self._db.fetchrow(
            f"""
            SELECT {REQUEST_COLUMNS}
            FROM dispatch_requests
            WHERE requester_id = $1 AND status = ANY($2::text[])
            ORDER BY created_at DESC
            LIMIT 1
            """,
            requester_id,
            NON_TERMINAL_STATUS_VALUES,
        )
        return self._row_to_request(row) if row else None

    async def history(
        self,
        party_id: str,
        offset: int,
        limit: int,
        status: RequestStatus | None = None,
    ) -> tuple[list[DispatchRequest], int]:
        """
        Заявки, где участник является заказчиком или исполнителем.

        Returns:
            (страница заявок, общее количество)
        """
        status_value = status.value if status else None
        total = await self._db.fetchval(
            """
            SELECT COUNT(*)
            FROM dispatch_requests
            WHERE (requester_id = $1 OR provider_id = $1)
              AND ($2::text IS NULL OR status = $2)
            """,
            party_id,
            status_value,
        )
        rows = await self._db.fetch(
            f"""
            SELECT {REQUEST_COLUMNS}
            FROM dispatch_requests
            WHERE (requester_id = $1 OR provider_id = $1)
              AND ($2::text IS NULL OR status = $2)
            ORDER BY created_at DESC
            OFFSET $3 LIMIT $4
            """,
            party_id,
            status_value,
            offset,
            limit,
        )
        return [self._row_to_request(r) for r in rows], int(total or 0)

    async def statistics(self, party_id: str, role: PartyRole) -> list[RequestStatistics]:
        """Количество, суммы и средняя оценка по статусам."""
        column = "requester_id" if role == PartyRole.REQUESTER else "provider_id"
        rows = await self._db.fetch(
            f"""
            SELECT status,
                   COUNT(*) AS count,
                   COALESCE(SUM(fare), 0) AS total_fare,
                   COALESCE(SUM(distance_km), 0) AS total_distance_km,
                   AVG(rating) AS average_rating
            FROM dispatch_requests
            WHERE {column} = $1
            GROUP BY status
            ORDER BY status
            """,
            party_id,
        )
        return [
            RequestStatistics(
                status=RequestStatus(r["status"]),
                count=r["count"],
                total_fare=float(r["total_fare"]),
                total_distance_km=float(r["total_distance_km"]),
                average_rating=float(r["average_rating"]) if r["average_rating"] is not None else None,
            )
            for r in rows
        ]

    async def location_history(self, request_id: str) -> list[LocationSample]:
        """Трек исполнителя в порядке записи."""
        uid = _as_uuid(request_id)
        if uid is None:
            return []
        rows = await self._db.fetch(
            """
            SELECT request_id, provider_id, latitude, longitude, recorded_at
            FROM request_locations
            WHERE request_id = $1
            ORDER BY id
            """,
            uid,
        )
        return [
            LocationSample(
                request_id=str(r["request_id"]),
                provider_id=r["provider_id"],
                point=GeoPoint(latitude=r["latitude"], longitude=r["longitude"]),
                recorded_at=r["recorded_at"],
            )
            for r in rows
        ]

    # =========================================================================
    # ЗАПИСЬ
    # =========================================================================

    async def insert(self, request: DispatchRequest) -> DispatchRequest:
        """Сохраняет новую заявку в статусе requested."""
        dropoff = request.dropoff_point
        row = await self._db.fetchrow(
            f"""
            INSERT INTO dispatch_requests (
                id, requester_id, status,
                pickup_latitude, pickup_longitude,
                dropoff_latitude, dropoff_longitude,
                fare, distance_km, duration_minutes,
                payment_method, notes, created_at, updated_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $13)
            RETURNING {REQUEST_COLUMNS}
            """,
            UUID(request.id),
            request.requester_id,
            RequestStatus.REQUESTED.value,
            request.pickup_point.latitude,
            request.pickup_point.longitude,
            dropoff.latitude if dropoff else None,
            dropoff.longitude if dropoff else None,
            request.fare,
            request.distance_km,
            request.duration_minutes,
            request.payment_method.value,
            request.notes,
            request.created_at,
        )
        return self._row_to_request(row)

    async def try_accept(self, request_id: str, provider_id: str) -> DispatchRequest | None:
        """
        Атомарно привязывает исполнителя к открытой заявке.

        Условие: заявка ещё requested, исполнитель не назначен, и у исполнителя
        нет другой активной заявки. Из N параллельных вызовов строку
        изменит ровно один.

        Returns:
            Обновлённая заявка или None, если ни одна строка не изменилась

        Raises:
            AlreadyAssignedError: Сработал уникальный индекс активного исполнителя
        """
        uid = _as_uuid(request_id)
        if uid is None:
            return None
        try:
            row = await self._db.fetchrow(
                f"""
                UPDATE dispatch_requests
                SET provider_id = $2,
                    status = $3,
                    accepted_at = NOW(),
                    updated_at = NOW()
                WHERE id = $1
                  AND status = $4
                  AND provider_id IS NULL
                  AND NOT EXISTS (
                      SELECT 1 FROM dispatch_requests busy
                      WHERE busy.provider_id = $2 AND busy.status = ANY($5::text[])
                  )
                RETURNING {REQUEST_COLUMNS}
                """,
                uid,
                provider_id,
                RequestStatus.ACCEPTED.value,
                RequestStatus.REQUESTED.value,
                ACTIVE_STATUS_VALUES,
            )
        except asyncpg.UniqueViolationError as e:
            if e.constraint_name != UNIQUE_ACTIVE_PROVIDER_INDEX:
                raise
            raise AlreadyAssignedError(
                "У исполнителя уже есть активная заявка",
                provider_id=provider_id,
            ) from e
        return self._row_to_request(row) if row else None

    async def transition(
        self,
        request_id: str,
        expected: RequestStatus,
        target: RequestStatus,
        timestamp_field: str,
    ) -> DispatchRequest | None:
        """
        Условный переход expected → target с отметкой времени.

        При завершении дополнительно считается фактическая длительность
        от started_at.
        """
        uid = _as_uuid(request_id)
        if uid is None:
            return None

        extra = ""
        if target == RequestStatus.COMPLETED:
            extra = (
                ", actual_duration_minutes = CASE WHEN started_at IS NULL THEN NULL "
                "ELSE ROUND(EXTRACT(EPOCH FROM (NOW() - started_at)) / 60)::int END"
            )

        row = await self._db.fetchrow(
            f"""
            UPDATE dispatch_requests
            SET status = $3, {timestamp_field} = NOW(), updated_at = NOW(){extra}
            WHERE id = $1 AND status = $2
            RETURNING {REQUEST_COLUMNS}
            """,
            uid,
            expected.value,
            target.value,
        )
        return self._row_to_request(row) if row else None

    async def cancel(
        self,
        request_id: str,
        expected: RequestStatus,
        cancelled_by: str,
        reason: str,
    ) -> DispatchRequest | None:
        """Условная отмена из ожидаемого статуса; provider_id не трогается."""
        uid = _as_uuid(request_id)
        if uid is None:
            return None
        row = await self._db.fetchrow(
            f"""
            UPDATE dispatch_requests
            SET status = $3,
                cancelled_at = NOW(),
                cancelled_by = $4,
                cancellation_reason = $5,
                updated_at = NOW()
            WHERE id = $1 AND status = $2
            RETURNING {REQUEST_COLUMNS}
            """,
            uid,
            expected.value,
            RequestStatus.CANCELLED.value,
            cancelled_by,
            reason,
        )
        return self._row_to_request(row) if row else None

    async def expire_stale(self, older_than_seconds: int, reason: str, cancelled_by: str) -> list[DispatchRequest]:
        """Отменяет открытые заявки старше порога, возвращает отменённые."""
        rows = await self._db.fetch(
            f"""
            UPDATE dispatch_requests
            SET status = $1,
                cancelled_at = NOW(),
                cancelled_by = $2,
                cancellation_reason = $3,
                updated_at = NOW()
            WHERE status = $4
              AND created_at < NOW() - make_interval(secs => $5)
            RETURNING {REQUEST_COLUMNS}
            """,
            RequestStatus.CANCELLED.value,
            cancelled_by,
            reason,
            RequestStatus.REQUESTED.value,
            float(older_than_seconds),
        )
        return [self._row_to_request(r) for r in rows]

    async def rate(
        self,
        request_id: str,
        requester_id: str,
        rating: int,
        feedback: str | None,
    ) -> DispatchRequest | None:
        """Оценка ставится один раз: условие rating IS NULL."""
        uid = _as_uuid(request_id)
        if uid is None:
            return None
        row = await self._db.fetchrow(
            f"""
            UPDATE dispatch_requests
            SET rating = $3, feedback = $4, updated_at = NOW()
            WHERE id = $1
              AND requester_id = $2
              AND status = $5
              AND rating IS NULL
            RETURNING {REQUEST_COLUMNS}
            """,
            uid,
            requester_id,
            rating,
            feedback,
            RequestStatus.COMPLETED.value,
        )
        return self._row_to_request(row) if row else None

    async def record_location(
        self,
        request_id: str,
        provider_id: str,
        expected: RequestStatus,
        point: GeoPoint,
        remaining_distance_m: int,
        eta_minutes: int,
    ) -> LocationSample | None:
        """
        Обновляет текущую точку и дописывает трек в одной транзакции.

        Returns:
            Записанная точка или None, если заявка ушла из ожидаемого статуса
            или исполнитель не совпал
        """
        uid = _as_uuid(request_id)
        if uid is None:
            return None
        async with self._db.transaction() as conn:
            updated = await conn.fetchval(
                """
                UPDATE dispatch_requests
                SET current_latitude = $4,
                    current_longitude = $5,
                    remaining_distance_m = $6,
                    eta_minutes = $7,
                    updated_at = NOW()
                WHERE id = $1 AND provider_id = $2 AND status = $3
                RETURNING id
                """,
                uid,
                provider_id,
                expected.value,
                point.latitude,
                point.longitude,
                remaining_distance_m,
                eta_minutes,
            )
            if updated is None:
                return None
            recorded_at = await conn.fetchval(
                """
                INSERT INTO request_locations (request_id, provider_id, latitude, longitude)
                VALUES ($1, $2, $3, $4)
                RETURNING recorded_at
                """,
                uid,
                provider_id,
                point.latitude,
                point.longitude,
            )
        await log_debug(f"Точка трека записана: заявка {request_id}, исполнитель {provider_id}")
        return LocationSample(
            request_id=request_id,
            provider_id=provider_id,
            point=point,
            recorded_at=recorded_at,
        )

    # =========================================================================
    # МАППИНГ
    # =========================================================================

    @staticmethod
    def _row_to_request(row: Record | dict[str, Any]) -> DispatchRequest:
        """Преобразует строку БД в модель."""
        try:
            return DispatchRequest(
                id=str(row["id"]),
                requester_id=row["requester_id"],
                provider_id=row["provider_id"],
                pickup_point=GeoPoint(latitude=row["pickup_latitude"], longitude=row["pickup_longitude"]),
                dropoff_point=_point(row["dropoff_latitude"], row["dropoff_longitude"]),
                current_point=_point(row["current_latitude"], row["current_longitude"]),
                status=RequestStatus(row["status"]),
                fare=float(row["fare"]),
                distance_km=float(row["distance_km"]),
                duration_minutes=row["duration_minutes"],
                actual_duration_minutes=row["actual_duration_minutes"],
                remaining_distance_m=row["remaining_distance_m"],
                eta_minutes=row["eta_minutes"],
                payment_method=row["payment_method"],
                notes=row["notes"],
                cancelled_by=row["cancelled_by"],
                cancellation_reason=row["cancellation_reason"],
                rating=row["rating"],
                feedback=row["feedback"],
                created_at=row["created_at"],
                accepted_at=row["accepted_at"],
                arrived_at=row["arrived_at"],
                started_at=row["started_at"],
                completed_at=row["completed_at"],
                cancelled_at=row["cancelled_at"],
                updated_at=row["updated_at"],
            )
        except (KeyError, ValueError) as e:
            # Строка не соответствует схеме: это ошибка миграции, а не данных клиента
            raise RuntimeError(f"Некорректная строка dispatch_requests: {e}") from e
