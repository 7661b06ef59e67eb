# ride_dispatch/worker/runner.py
"""
Запускалка воркеров.
"""

from __future__ import annotations

import asyncio

from ride_dispatch.common.constants import TypeMsg
from ride_dispatch.common.logger import log_info
from ride_dispatch.config import settings
from ride_dispatch.core.dispatch.broadcaster import Broadcaster
from ride_dispatch.core.requests.repository import RequestRepository
from ride_dispatch.infra.database import close_db, get_db, init_db
from ride_dispatch.infra.event_bus import close_event_bus, get_event_bus, init_event_bus
from ride_dispatch.worker.base import BaseWorker
from ride_dispatch.worker.expiry import RequestExpiryWorker


def build_workers(broadcaster: Broadcaster) -> list[BaseWorker]:
    """Воркеры, включённые настройками."""
    workers: list[BaseWorker] = []
    if settings.dispatch.REQUEST_EXPIRY_SECONDS > 0:
        workers.append(
            RequestExpiryWorker(
                RequestRepository(get_db()),
                broadcaster,
                expiry_seconds=settings.dispatch.REQUEST_EXPIRY_SECONDS,
                interval=settings.dispatch.EXPIRY_CHECK_INTERVAL,
            )
        )
    return workers


async def run_workers(init_infra: bool = True) -> None:
    """
    Запускает воркеры и ждёт отмены.

    Args:
        init_infra: Если True, инициализирует инфраструктуру (БД, RabbitMQ)
                    и закрывает её при остановке. False, если ею
                    управляет вызывающий.
    """
    if init_infra:
        await log_info("Инициализация инфраструктуры для воркеров...", type_msg=TypeMsg.DEBUG)
        await init_db()
        await init_event_bus()

    broadcaster = Broadcaster(get_event_bus())
    workers = build_workers(broadcaster)
    if not workers:
        await log_info("Нет включённых воркеров (REQUEST_EXPIRY_SECONDS=0)", type_msg=TypeMsg.WARNING)

    try:
        for worker in workers:
            await worker.start()
        await log_info(f"Запущено воркеров: {len(workers)}")

        # Ждём отмены (Ctrl+C / SIGTERM)
        await asyncio.Event().wait()
    except asyncio.CancelledError:
        await log_info("Получен сигнал остановки")
    finally:
        for worker in workers:
            await worker.stop()
        await broadcaster.drain()

        if init_infra:
            await close_event_bus()
            await close_db()

        await log_info("Воркеры остановлены")
