# ride_dispatch/infra/event_bus.py
"""
Шина событий на базе RabbitMQ.
Topic exchange, ключ маршрутизации задаёт адрес получателя
(requester.<id>, provider.<id>, requests.open).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Awaitable, Callable, Sequence

import aio_pika
from aio_pika import ExchangeType, Message
from aio_pika.abc import (
    AbstractChannel,
    AbstractExchange,
    AbstractIncomingMessage,
    AbstractQueue,
    AbstractRobustConnection,
)

from ride_dispatch.common.logger import log_debug, log_error, log_info
from ride_dispatch.shared.events.base import DomainEvent

# Обработчик получает событие и ключ маршрутизации, с которым оно пришло
EventHandler = Callable[[DomainEvent, str], Awaitable[None]]


class EventBus:
    """
    Шина событий на базе RabbitMQ.

    - publish(event, routing_key) публикует в topic exchange
    - subscribe(binding_keys, handler) создаёт очередь, привязанную к шаблонам
    """

    _instance: EventBus | None = None

    def __new__(cls) -> EventBus:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self._connection: AbstractRobustConnection | None = None
        self._channel: AbstractChannel | None = None
        self._exchange: AbstractExchange | None = None
        self._exchange_name = "dispatch.events"
        self._queues: dict[str, AbstractQueue] = {}

    @property
    def is_connected(self) -> bool:
        """Проверяет, активно ли соединение."""
        return self._connection is not None and not self._connection.is_closed

    async def connect(
        self,
        url: str,
        exchange_name: str | None = None,
        prefetch_count: int = 10,
    ) -> None:
        """
        Подключается к RabbitMQ и объявляет topic exchange.

        Args:
            url: URL RabbitMQ
            exchange_name: Имя exchange
            prefetch_count: Количество сообщений для prefetch
        """
        if self.is_connected:
            return

        if exchange_name:
            self._exchange_name = exchange_name

        await log_info("Подключение к RabbitMQ...")

        self._connection = await aio_pika.connect_robust(url)
        self._channel = await self._connection.channel()
        await self._channel.set_qos(prefetch_count=prefetch_count)
        self._exchange = await self._channel.declare_exchange(
            self._exchange_name,
            ExchangeType.TOPIC,
            durable=True,
        )

        await log_info("Подключение к RabbitMQ установлено")

    async def disconnect(self) -> None:
        """Закрывает соединение с RabbitMQ."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            self._channel = None
            self._exchange = None
            self._queues = {}
            await log_info("Соединение с RabbitMQ закрыто")

    async def publish(self, event: DomainEvent, routing_key: str | None = None) -> None:
        """
        Публикует событие.

        Args:
            event: Доменное событие
            routing_key: Адрес получателя; по умолчанию тип события

        Raises:
            RuntimeError: Нет соединения с RabbitMQ
        """
        if not self.is_connected or self._exchange is None:
            raise RuntimeError("Не удалось опубликовать событие: нет соединения с RabbitMQ")

        key = routing_key or event.event_type
        message = Message(
            body=event.to_json().encode(),
            content_type="application/json",
            message_id=event.event_id,
            timestamp=datetime.now(timezone.utc),
            type=event.event_type,
        )
        await self._exchange.publish(message, routing_key=key)
        await log_debug(f"Событие {event.event_type} опубликовано в {key}")

    async def subscribe(
        self,
        binding_keys: str | Sequence[str],
        handler: EventHandler,
        queue_name: str | None = None,
    ) -> str:
        """
        Подписывает обработчик на шаблоны ключей маршрутизации.

        Без queue_name создаётся эксклюзивная очередь, которая живёт,
        пока живёт соединение (подписка конкретного процесса-шлюза).
        Именованная очередь: durable, её разделяют реплики воркера.

        Args:
            binding_keys: Шаблон или список шаблонов (`provider.*`, `requests.open`)
            handler: Асинхронный обработчик (event, routing_key)
            queue_name: Имя очереди

        Returns:
            Имя объявленной очереди
        """
        if not self.is_connected or self._channel is None or self._exchange is None:
            raise RuntimeError("Не удалось подписаться: нет соединения с RabbitMQ")

        keys = [binding_keys] if isinstance(binding_keys, str) else list(binding_keys)

        if queue_name is None:
            queue = await self._channel.declare_queue(exclusive=True, auto_delete=True)
        else:
            queue = await self._channel.declare_queue(queue_name, durable=True)

        for key in keys:
            await queue.bind(self._exchange, routing_key=key)

        await queue.consume(self._make_consumer(handler))
        self._queues[queue.name] = queue

        await log_debug(f"Подписка {queue.name} на {', '.join(keys)}")
        return queue.name

    def _make_consumer(self, handler: EventHandler) -> Callable[[AbstractIncomingMessage], Awaitable[None]]:
        """Оборачивает обработчик: разбор JSON, ack, логирование ошибок."""
        async def consumer(message: AbstractIncomingMessage) -> None:
            async with message.process(ignore_processed=True):
                try:
                    event = DomainEvent.from_json(message.body)
                except ValueError as e:
                    await log_error(f"Некорректное сообщение в {message.routing_key}: {e}")
                    return

                try:
                    await handler(event, message.routing_key or "")
                except Exception as e:
                    await log_error(
                        f"Ошибка в обработчике {getattr(handler, '__name__', handler)}: {e}",
                        extra={"event_type": event.event_type, "routing_key": message.routing_key},
                        exc_info=True,
                    )

        return consumer

    async def health_check(self) -> bool:
        return self.is_connected


def get_event_bus() -> EventBus:
    """Возвращает глобальный экземпляр EventBus."""
    return EventBus()


async def init_event_bus() -> EventBus:
    """Подключается к RabbitMQ по настройкам."""
    from ride_dispatch.config import settings

    bus = get_event_bus()
    await bus.connect(
        url=settings.rabbitmq.url,
        exchange_name=settings.rabbitmq.RABBITMQ_EXCHANGE,
        prefetch_count=settings.rabbitmq.RABBITMQ_PREFETCH_COUNT,
    )
    await log_info(f"RabbitMQ подключён: {settings.rabbitmq.RABBITMQ_HOST}:{settings.rabbitmq.RABBITMQ_PORT}")
    return bus


async def close_event_bus() -> None:
    """Закрывает подключение к RabbitMQ."""
    await get_event_bus().disconnect()
