# ride_dispatch/worker/expiry.py
"""
Автоотмена заявок, которые слишком долго никто не принимает.
"""

from __future__ import annotations

from ride_dispatch.common.constants import (
    EXPIRED_CANCELLATION_REASON,
    SYSTEM_ACTOR,
    RequestStatus,
)
from ride_dispatch.common.logger import log_info
from ride_dispatch.core.dispatch.broadcaster import Broadcaster
from ride_dispatch.core.requests.repository import RequestRepository
from ride_dispatch.worker.base import BaseWorker


class RequestExpiryWorker(BaseWorker):
    """
    Отменяет заявки в статусе requested старше expiry_seconds.

    Отмена идёт той же условной записью, что и у участников: если исполнитель
    успел принять заявку, она не затрагивается.
    """

    def __init__(
        self,
        repository: RequestRepository,
        broadcaster: Broadcaster,
        expiry_seconds: int,
        interval: float,
    ) -> None:
        super().__init__(interval)
        self._repo = repository
        self._broadcaster = broadcaster
        self._expiry_seconds = expiry_seconds

    @property
    def name(self) -> str:
        return "request_expiry"

    async def run_once(self) -> int:
        expired = await self._repo.expire_stale(
            self._expiry_seconds,
            EXPIRED_CANCELLATION_REASON,
            SYSTEM_ACTOR,
        )
        for request in expired:
            await log_info(
                f"Заявка {request.id} отменена по истечении {self._expiry_seconds} с",
                extra={"request_id": request.id, "requester_id": request.requester_id},
            )
            self._broadcaster.request_cancelled(request, RequestStatus.REQUESTED)
        return len(expired)
