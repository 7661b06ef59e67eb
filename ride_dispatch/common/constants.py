# ride_dispatch/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class PartyRole(str, Enum):
    """Роль участника заявки."""
    REQUESTER = "requester"
    PROVIDER = "provider"


class RequestStatus(str, Enum):
    """Статусы заявки."""
    REQUESTED = "requested"
    ACCEPTED = "accepted"
    ARRIVED = "arrived"
    STARTED = "started"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Статусы, при которых исполнитель занят заявкой
ACTIVE_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.ACCEPTED,
    RequestStatus.ARRIVED,
    RequestStatus.STARTED,
})

TERMINAL_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.COMPLETED,
    RequestStatus.CANCELLED,
})


class PaymentMethod(str, Enum):
    """Способы оплаты."""
    CASH = "cash"
    CARD = "card"
    WALLET = "wallet"


# Отменитель по умолчанию для автоматических отмен
SYSTEM_ACTOR = "system"

DEFAULT_CANCELLATION_REASON = "No reason provided"
EXPIRED_CANCELLATION_REASON = "expired"


class Topics:
    """Шаблоны топиков рассылки."""
    OPEN_REQUESTS = "requests.open"

    @staticmethod
    def requester(requester_id: str) -> str:
        """Личный топик заказчика."""
        return f"requester.{requester_id}"

    @staticmethod
    def provider(provider_id: str) -> str:
        """Личный топик исполнителя."""
        return f"provider.{provider_id}"
