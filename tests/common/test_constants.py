# tests/common/test_constants.py
"""
Тесты для общих констант.
"""

from __future__ import annotations

from ride_dispatch.common.constants import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    PartyRole,
    PaymentMethod,
    RequestStatus,
    Topics,
)


class TestRequestStatus:
    """Тесты для статусов заявки."""

    def test_values(self) -> None:
        """Значения совпадают с хранимыми в БД."""
        assert [s.value for s in RequestStatus] == [
            "requested", "accepted", "arrived", "started", "completed", "cancelled",
        ]

    def test_active_and_terminal_do_not_overlap(self) -> None:
        assert not ACTIVE_STATUSES & TERMINAL_STATUSES
        assert RequestStatus.REQUESTED not in ACTIVE_STATUSES
        assert RequestStatus.REQUESTED not in TERMINAL_STATUSES

    def test_str_enum_compares_with_string(self) -> None:
        assert RequestStatus.ACCEPTED == "accepted"
        assert RequestStatus("started") is RequestStatus.STARTED


class TestTopics:
    """Тесты для шаблонов топиков."""

    def test_personal_topics(self) -> None:
        assert Topics.requester("r1") == "requester.r1"
        assert Topics.provider("p1") == "provider.p1"

    def test_open_topic(self) -> None:
        assert Topics.OPEN_REQUESTS == "requests.open"


class TestOtherEnums:
    """Роли и способы оплаты."""

    def test_roles(self) -> None:
        assert {r.value for r in PartyRole} == {"requester", "provider"}

    def test_payment_methods(self) -> None:
        assert PaymentMethod("cash") is PaymentMethod.CASH
