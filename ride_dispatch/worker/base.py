# ride_dispatch/worker/base.py
"""
Базовый класс для периодических воркеров.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod

from ride_dispatch.common.constants import TypeMsg
from ride_dispatch.common.logger import log_error, log_info


class BaseWorker(ABC):
    """
    Базовый класс для воркеров.
    Выполняет run_once() раз в interval секунд до остановки.
    """

    def __init__(self, interval: float) -> None:
        """
        Args:
            interval: Пауза между проходами, секунды
        """
        if interval <= 0:
            raise ValueError("interval должен быть положительным")
        self.interval = interval
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Имя воркера."""

    @abstractmethod
    async def run_once(self) -> int:
        """
        Один проход воркера.

        Returns:
            Количество обработанных записей
        """

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Запускает воркер фоновой задачей."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._loop(), name=f"worker:{self.name}")
        await log_info(f"Воркер {self.name} запущен (интервал {self.interval} с)", type_msg=TypeMsg.INFO)

    async def stop(self) -> None:
        """Останавливает воркер."""
        if not self._running:
            return

        self._running = False
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        await log_info(f"Воркер {self.name} остановлен", type_msg=TypeMsg.INFO)

    async def _loop(self) -> None:
        while self._running:
            try:
                processed = await self.run_once()
                if processed:
                    await log_info(
                        f"Воркер {self.name}: обработано {processed}",
                        type_msg=TypeMsg.DEBUG,
                    )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Проход упал целиком; следующий попробует снова
                await log_error(f"Ошибка в воркере {self.name}: {e}", exc_info=True)
            await asyncio.sleep(self.interval)
