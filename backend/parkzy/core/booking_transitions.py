# backend/parkzy/core/booking_transitions.py
"""
Booking state machine.

Every lifecycle action resolves its target status through ``resolve_transition``
so that the legal (status, action) pairs live in one table instead of being
scattered across callers.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Tuple

from ..models.booking import BookingStatus
from .exceptions import PreconditionException


class BookingAction(str, Enum):
    CREATE = "create"
    CONFIRM_PAYMENT = "confirm_payment"
    APPROVE = "approve"
    AUTO_APPROVE = "auto_approve"
    DECLINE = "decline"
    EXTEND = "extend"
    MODIFY_TIMES = "modify_times"
    CANCEL = "cancel"
    CANCEL_STARTED = "cancel_started"
    EXPIRE = "expire"
    COMPLETE = "complete"


S = BookingStatus
A = BookingAction

TRANSITIONS: Dict[Tuple[BookingStatus, BookingAction], BookingStatus] = {
    (S.PENDING, A.CONFIRM_PAYMENT): S.HELD,
    (S.HELD, A.APPROVE): S.ACTIVE,
    (S.HELD, A.AUTO_APPROVE): S.ACTIVE,
    (S.HELD, A.DECLINE): S.DECLINED,
    (S.ACTIVE, A.EXTEND): S.ACTIVE,
    (S.PAID, A.EXTEND): S.ACTIVE,
    # Reschedule before start; the status itself does not change
    (S.ACTIVE, A.MODIFY_TIMES): S.ACTIVE,
    (S.PAID, A.MODIFY_TIMES): S.PAID,
    (S.PENDING, A.CANCEL): S.CANCELED,
    (S.HELD, A.CANCEL): S.CANCELED,
    (S.PAID, A.CANCEL): S.CANCELED,
    (S.ACTIVE, A.CANCEL): S.CANCELED,
    # Host cancels a session that has already started
    (S.PAID, A.CANCEL_STARTED): S.REFUNDED,
    (S.ACTIVE, A.CANCEL_STARTED): S.REFUNDED,
    (S.HELD, A.CANCEL_STARTED): S.CANCELED,
    (S.PENDING, A.CANCEL_STARTED): S.CANCELED,
    (S.PENDING, A.EXPIRE): S.CANCELED,
    (S.HELD, A.EXPIRE): S.CANCELED,
    (S.ACTIVE, A.COMPLETE): S.COMPLETED,
    (S.PAID, A.COMPLETE): S.COMPLETED,
}

# Verb used in error messages ("Booking cannot be approved ...")
_ACTION_VERBS = {
    A.CONFIRM_PAYMENT: "confirmed",
    A.APPROVE: "approved",
    A.AUTO_APPROVE: "approved",
    A.DECLINE: "declined",
    A.EXTEND: "extended",
    A.MODIFY_TIMES: "rescheduled",
    A.CANCEL: "cancelled",
    A.CANCEL_STARTED: "cancelled",
    A.EXPIRE: "expired",
    A.COMPLETE: "completed",
}


def can_transition(current: BookingStatus | str, action: BookingAction) -> bool:
    return (BookingStatus(current), action) in TRANSITIONS


def resolve_transition(current: BookingStatus | str, action: BookingAction) -> BookingStatus:
    """
    Return the status ``action`` moves a booking to from ``current``.

    Raises:
        PreconditionException: the action is not legal from ``current``
    """
    status = BookingStatus(current)
    target = TRANSITIONS.get((status, action))
    if target is None:
        verb = _ACTION_VERBS.get(action, action.value)
        raise PreconditionException(
            action=action.value,
            current_status=status.value,
            message=f"Booking cannot be {verb} - current status: {status.value}",
        )
    return target
