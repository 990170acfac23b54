import pytest

from parkzy.core.booking_transitions import (
    TRANSITIONS,
    BookingAction,
    can_transition,
    resolve_transition,
)
from parkzy.core.exceptions import BusinessRuleException, PreconditionException
from parkzy.models.booking import BookingStatus


@pytest.mark.parametrize(
    "status",
    [s for s in BookingStatus if s != BookingStatus.HELD],
)
def test_approve_is_only_legal_from_held(status):
    with pytest.raises(PreconditionException) as exc_info:
        resolve_transition(status, BookingAction.APPROVE)

    assert exc_info.value.details["current_status"] == status.value
    assert exc_info.value.details["action"] == "approve"
    assert f"current status: {status.value}" in exc_info.value.message


def test_approve_from_held_activates():
    assert resolve_transition("held", BookingAction.APPROVE) == BookingStatus.ACTIVE


def test_terminal_statuses_have_no_outgoing_transitions():
    for (status, _action) in TRANSITIONS:
        assert status not in BookingStatus.terminal()


def test_host_cancel_after_start_refunds_captured_bookings():
    assert resolve_transition("active", BookingAction.CANCEL_STARTED) == BookingStatus.REFUNDED
    assert resolve_transition("held", BookingAction.CANCEL_STARTED) == BookingStatus.CANCELED


def test_extend_keeps_booking_active():
    assert resolve_transition("active", BookingAction.EXTEND) == BookingStatus.ACTIVE
    assert not can_transition("held", BookingAction.EXTEND)


def test_precondition_is_a_business_rule_error():
    with pytest.raises(BusinessRuleException):
        resolve_transition("completed", BookingAction.CANCEL)


@pytest.mark.parametrize("status", ["active", "paid"])
def test_reschedule_keeps_status(status):
    assert resolve_transition(status, BookingAction.MODIFY_TIMES) == BookingStatus(status)


@pytest.mark.parametrize("status", ["pending", "held", "completed", "canceled"])
def test_reschedule_needs_a_captured_booking(status):
    with pytest.raises(PreconditionException) as exc_info:
        resolve_transition(status, BookingAction.MODIFY_TIMES)

    assert "cannot be rescheduled" in exc_info.value.message
