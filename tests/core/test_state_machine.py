# tests/core/test_state_machine.py
"""
Тесты для конечного автомата заявки.
"""

from __future__ import annotations

import pytest

from ride_dispatch.common.constants import RequestStatus
from ride_dispatch.core.exceptions import InvalidTransitionError, NotAuthorizedError
from ride_dispatch.core.requests.models import DispatchRequest, GeoPoint
from ride_dispatch.core.requests.state_machine import RequestStateMachine

S = RequestStatus

FORWARD = [
    (S.REQUESTED, S.ACCEPTED),
    (S.ACCEPTED, S.ARRIVED),
    (S.ARRIVED, S.STARTED),
    (S.STARTED, S.COMPLETED),
]


def _request(**kwargs) -> DispatchRequest:
    return DispatchRequest(
        requester_id="requester-1",
        pickup_point=GeoPoint(latitude=28.6, longitude=77.1),
        **kwargs,
    )


class TestTransitions:
    """Тесты графа переходов."""

    @pytest.mark.parametrize("current,target", FORWARD)
    def test_forward_path(self, current: RequestStatus, target: RequestStatus) -> None:
        assert RequestStateMachine.can_transition(current, target)
        RequestStateMachine.validate_transition(current, target)

    @pytest.mark.parametrize("current", [S.REQUESTED, S.ACCEPTED, S.ARRIVED, S.STARTED])
    def test_cancel_from_any_non_terminal(self, current: RequestStatus) -> None:
        assert RequestStateMachine.can_transition(current, S.CANCELLED)

    @pytest.mark.parametrize("terminal", [S.COMPLETED, S.CANCELLED])
    def test_terminal_has_no_exits(self, terminal: RequestStatus) -> None:
        for target in RequestStatus:
            with pytest.raises(InvalidTransitionError):
                RequestStateMachine.validate_transition(terminal, target)

    @pytest.mark.parametrize("current,target", [
        (S.REQUESTED, S.ARRIVED),
        (S.ACCEPTED, S.STARTED),
        (S.ARRIVED, S.COMPLETED),
        (S.STARTED, S.ARRIVED),
        (S.ACCEPTED, S.REQUESTED),
    ])
    def test_skips_and_backwards_rejected(self, current: RequestStatus, target: RequestStatus) -> None:
        with pytest.raises(InvalidTransitionError) as exc_info:
            RequestStateMachine.validate_transition(current, target)
        assert exc_info.value.details == {"current": current.value, "target": target.value}

    def test_every_target_has_timestamp_field(self) -> None:
        for status in RequestStatus:
            if status != S.REQUESTED:
                assert RequestStateMachine.TIMESTAMP_FIELDS[status] == f"{status.value}_at"


class TestAuthorize:
    """Тесты прав участников."""

    def test_requester_allowed(self) -> None:
        RequestStateMachine.authorize(_request(), "requester-1")

    def test_bound_provider_allowed(self) -> None:
        RequestStateMachine.authorize(_request(provider_id="provider-1", status=S.ACCEPTED), "provider-1")

    def test_stranger_rejected(self) -> None:
        with pytest.raises(NotAuthorizedError):
            RequestStateMachine.authorize(_request(provider_id="provider-1"), "provider-2")

    def test_no_provider_bound(self) -> None:
        with pytest.raises(NotAuthorizedError):
            RequestStateMachine.authorize(_request(), "provider-1")
