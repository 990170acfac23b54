from decimal import Decimal

import pytest

from parkzy.core.exceptions import (
    BookingConflictException,
    ForbiddenException,
    PaymentException,
    PreconditionException,
    ValidationException,
)
from parkzy.core.ulid_helper import generate_ulid
from parkzy.models.booking import Booking, BookingAdjustment, BookingHold, BookingStatus
from parkzy.principal import Caller

from support import at


def _reload(db, booking_id: str) -> Booking:
    db.expire_all()
    return db.get(Booking, booking_id)


@pytest.fixture
def confirmed_booking(booking_service, create_held_booking, make_spot, host):
    """A 10:00-12:00 booking that went through approve, so its charge is real."""
    spot = make_spot()
    booking = create_held_booking(spot, at(10), at(12))
    return booking_service.approve_booking(host, booking.id)


class TestReschedulePricing:
    def test_longer_interval_charges_the_difference(
        self, db, booking_service, gateway, notifier, confirmed_booking, renter, host_id, renter_id
    ):
        result = booking_service.modify_booking_times(
            renter, confirmed_booking.id, at(14), at(17), now=at(9)
        )

        assert result.price_difference == Decimal("11.00")
        stored = _reload(db, confirmed_booking.id)
        assert (stored.start_at, stored.end_at) == (at(14), at(17))
        assert stored.status == BookingStatus.ACTIVE.value
        assert stored.total_amount == Decimal("33.00")
        assert stored.host_earnings == Decimal("27.00")
        (adjustment,) = stored.adjustments
        assert adjustment.amount == Decimal("11.00")
        assert adjustment.charge_id in gateway.charges
        assert adjustment.charge_id != stored.charge_id
        assert (adjustment.previous_start_at, adjustment.previous_end_at) == (at(10), at(12))
        assert gateway.count("capture") == 2
        assert gateway.refunds == []
        assert db.query(BookingHold).count() == 0
        assert "Booking Times Modified" in notifier.titles_for(host_id)
        assert "Booking Updated" in notifier.titles_for(renter_id)

    def test_shorter_interval_refunds_part_of_the_original_charge(
        self, db, booking_service, gateway, confirmed_booking, renter
    ):
        result = booking_service.modify_booking_times(
            renter, confirmed_booking.id, at(10), at(11), now=at(9)
        )

        assert result.price_difference == Decimal("-11.00")
        stored = _reload(db, confirmed_booking.id)
        assert stored.end_at == at(11)
        assert stored.total_amount == Decimal("11.00")
        assert [r["amount"] for r in gateway.refunds] == [1100]
        (adjustment,) = stored.adjustments
        assert adjustment.amount == Decimal("-11.00")
        assert adjustment.charge_id == stored.charge_id
        assert adjustment.refund_id

    def test_same_length_moves_without_money(
        self, db, booking_service, gateway, confirmed_booking, renter
    ):
        calls_before = len(gateway.calls)

        result = booking_service.modify_booking_times(
            renter, confirmed_booking.id, at(15), at(17), now=at(9)
        )

        assert result.price_difference == Decimal("0.00")
        assert len(gateway.calls) == calls_before
        stored = _reload(db, confirmed_booking.id)
        assert stored.start_at == at(15)
        assert stored.adjustments == []

    def test_cancel_after_longer_reschedule_refunds_every_charge(
        self, booking_service, gateway, confirmed_booking, renter
    ):
        booking_service.modify_booking_times(renter, confirmed_booking.id, at(14), at(17), now=at(9))

        canceled = booking_service.cancel_booking(renter, confirmed_booking.id, now=at(9, 30))

        assert canceled.refund_amount == canceled.total_amount == Decimal("33.00")
        assert sorted(r["amount"] for r in gateway.refunds) == [1100, 2200]

    def test_cancel_after_shorter_reschedule_refunds_only_what_is_left(
        self, booking_service, gateway, confirmed_booking, renter
    ):
        booking_service.modify_booking_times(renter, confirmed_booking.id, at(10), at(11), now=at(9))

        canceled = booking_service.cancel_booking(renter, confirmed_booking.id, now=at(9, 30))

        assert canceled.refund_amount == Decimal("11.00")
        assert [r["amount"] for r in gateway.refunds] == [1100, 1100]
        assert sum(r["amount"] for r in gateway.refunds) == 2200

    def test_two_reschedules_use_distinct_payment_keys(
        self, db, booking_service, gateway, confirmed_booking, renter
    ):
        booking_service.modify_booking_times(renter, confirmed_booking.id, at(14), at(17), now=at(9))
        booking_service.modify_booking_times(renter, confirmed_booking.id, at(14), at(18), now=at(9))

        stored = _reload(db, confirmed_booking.id)
        assert [a.amount for a in stored.adjustments] == [Decimal("11.00"), Decimal("11.00")]
        assert len({a.charge_id for a in stored.adjustments}) == 2
        assert stored.total_amount == Decimal("44.00")


class TestRescheduleRejections:
    def test_started_booking_must_be_extended_instead(
        self, db, booking_service, gateway, make_spot, make_booking, renter
    ):
        spot = make_spot()
        booking = make_booking(spot, at(10), at(12))

        with pytest.raises(PreconditionException) as exc_info:
            booking_service.modify_booking_times(
                renter, booking.id, at(14), at(16), now=at(10, 30)
            )

        assert "Extend" in exc_info.value.message
        assert gateway.calls == []
        assert _reload(db, booking.id).start_at == at(10)

    @pytest.mark.parametrize("status", [BookingStatus.HELD, BookingStatus.CANCELED])
    def test_unconfirmed_or_closed_booking_cannot_move(
        self, booking_service, make_spot, make_booking, renter, status
    ):
        spot = make_spot()
        booking = make_booking(spot, at(10), at(12), status=status)

        with pytest.raises(PreconditionException) as exc_info:
            booking_service.modify_booking_times(renter, booking.id, at(14), at(16), now=at(9))

        assert "cannot be rescheduled" in exc_info.value.message

    def test_taken_interval_is_rejected(
        self, db, booking_service, gateway, make_spot, make_booking, renter
    ):
        spot = make_spot()
        booking = make_booking(spot, at(10), at(12))
        make_booking(spot, at(14), at(15), owner_id=generate_ulid())

        with pytest.raises(BookingConflictException):
            booking_service.modify_booking_times(renter, booking.id, at(13), at(15), now=at(9))

        assert gateway.calls == []
        assert db.query(BookingHold).count() == 0
        assert _reload(db, booking.id).end_at == at(12)

    def test_overlapping_its_own_interval_is_allowed(
        self, db, booking_service, make_spot, make_booking, renter
    ):
        spot = make_spot()
        booking = make_booking(spot, at(10), at(12))

        booking_service.modify_booking_times(renter, booking.id, at(11), at(13), now=at(9))

        assert _reload(db, booking.id).start_at == at(11)

    def test_only_the_renter_can_reschedule(
        self, booking_service, make_spot, make_booking, host
    ):
        spot = make_spot()
        booking = make_booking(spot, at(10), at(12))

        for caller in (host, Caller.renter(generate_ulid())):
            with pytest.raises(ForbiddenException):
                booking_service.modify_booking_times(caller, booking.id, at(14), at(16), now=at(9))

    def test_end_before_start_fails_before_lookup(self, booking_service, gateway, renter):
        with pytest.raises(ValidationException):
            booking_service.modify_booking_times(
                renter, generate_ulid(), at(14), at(13), now=at(9)
            )
        assert gateway.calls == []

    def test_payment_needing_authentication_is_voided(
        self, db, booking_service, gateway, make_spot, make_booking, renter
    ):
        spot = make_spot()
        booking = make_booking(spot, at(10), at(12))
        gateway.require_action = True

        with pytest.raises(PaymentException) as exc_info:
            booking_service.modify_booking_times(renter, booking.id, at(14), at(17), now=at(9))

        assert exc_info.value.code == "payment_requires_action"
        (intent,) = gateway.intents.values()
        assert intent["status"] == "canceled"
        assert gateway.count("capture") == 0
        stored = _reload(db, booking.id)
        assert stored.end_at == at(12)
        assert stored.total_amount == Decimal("22.00")
        assert db.query(BookingAdjustment).count() == 0
        assert db.query(BookingHold).count() == 0

    def test_shorter_interval_without_a_charge_cannot_be_refunded(
        self, db, booking_service, gateway, make_spot, make_booking, renter
    ):
        spot = make_spot()
        booking = make_booking(spot, at(10), at(12))

        with pytest.raises(PaymentException) as exc_info:
            booking_service.modify_booking_times(renter, booking.id, at(10), at(11), now=at(9))

        assert exc_info.value.code == "refund_unavailable"
        assert gateway.calls == []
        assert _reload(db, booking.id).end_at == at(12)
        assert db.query(BookingHold).count() == 0
