# backend/parkzy/models/booking.py
"""
Booking models for the Parkzy platform.

A booking reserves one spot for one renter over the half-open interval
[start_at, end_at). Pricing (rate, fees, host earnings and the fee policy
version) is snapshotted at booking time so historical payouts never change
when fee policy does.

Satellite records:
- BookingHold: short-lived exclusivity marker while payment is in flight
- ExtensionCharge: append-only record of a paid time extension
- PendingExtension: an extension waiting on customer authentication
- BookingAdjustment: append-only money movement from a reschedule
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
import logging
from typing import Any, List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base
from .types import UTCDateTime

logger = logging.getLogger(__name__)


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING = "pending"  # Waiting on customer payment authentication
    HELD = "held"  # Payment authorized, waiting on host decision
    PAID = "paid"  # Payment captured (legacy instant-book state)
    ACTIVE = "active"  # Payment captured, booking confirmed
    COMPLETED = "completed"  # Interval has elapsed
    CANCELED = "canceled"  # Terminated, no charge retained
    REFUNDED = "refunded"  # Terminated after the session started, money returned
    DECLINED = "declined"  # Host rejected before capture

    @classmethod
    def terminal(cls) -> frozenset["BookingStatus"]:
        return frozenset({cls.COMPLETED, cls.CANCELED, cls.REFUNDED, cls.DECLINED})

    @classmethod
    def conflicting(cls) -> frozenset["BookingStatus"]:
        """Statuses that occupy a spot/interval."""
        return frozenset({cls.PENDING, cls.PAID, cls.ACTIVE, cls.HELD})

    @classmethod
    def confirmed(cls) -> frozenset["BookingStatus"]:
        """Statuses with a captured payment."""
        return frozenset({cls.PAID, cls.ACTIVE})


class Booking(Base):
    """Reservation of one spot by one renter for [start_at, end_at)."""

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    spot_id = Column(String(26), ForeignKey("spots.id"), nullable=False, index=True)
    renter_id = Column(String(26), nullable=True, index=True)

    # Guest bookings are reached through an access token instead of an account
    is_guest = Column(Boolean, nullable=False, default=False)
    guest_email = Column(String(255), nullable=True)
    guest_access_token = Column(String(64), nullable=True, unique=True)

    status = Column(String(20), nullable=False, default=BookingStatus.HELD.value, index=True)
    start_at = Column(UTCDateTime, nullable=False, index=True)
    end_at = Column(UTCDateTime, nullable=False, index=True)

    # Pricing snapshot
    hourly_rate = Column(Numeric(10, 2), nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False)
    service_fee = Column(Numeric(10, 2), nullable=False, default=0)
    platform_fee = Column(Numeric(10, 2), nullable=False, default=0)
    total_amount = Column(Numeric(10, 2), nullable=False)
    host_earnings = Column(Numeric(10, 2), nullable=False)
    fee_policy_version = Column(Integer, nullable=False, default=1)

    # Payment
    payment_method_id = Column(String(255), nullable=True, comment="Gateway payment method ID")
    customer_id = Column(String(255), nullable=True, comment="Gateway customer ID")
    payment_intent_id = Column(String(255), nullable=True, index=True)
    charge_id = Column(String(255), nullable=True)
    hold_id = Column(String(26), nullable=True)

    # Cancellation / refund tracking
    cancellation_reason = Column(Text, nullable=True)
    canceled_by_id = Column(String(26), nullable=True)
    refund_amount = Column(Numeric(10, 2), nullable=True)
    refund_id = Column(String(255), nullable=True)

    # Timestamps
    created_at = Column(UTCDateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(UTCDateTime, nullable=True, onupdate=lambda: datetime.now(timezone.utc))
    confirmed_at = Column(UTCDateTime, nullable=True)
    canceled_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)

    spot = relationship("Spot")
    extension_charges = relationship(
        "ExtensionCharge",
        back_populates="booking",
        order_by="ExtensionCharge.created_at",
        cascade="all, delete-orphan",
    )
    adjustments = relationship(
        "BookingAdjustment",
        back_populates="booking",
        order_by="BookingAdjustment.created_at",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'held', 'paid', 'active', 'completed', "
            "'canceled', 'refunded', 'declined')",
            name="ck_bookings_status",
        ),
        CheckConstraint("start_at < end_at", name="ck_bookings_time_order"),
        CheckConstraint("total_amount >= 0", name="ck_bookings_total_non_negative"),
        CheckConstraint("hourly_rate > 0", name="ck_bookings_rate_positive"),
        Index("ix_bookings_spot_window", "spot_id", "start_at", "end_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id}: spot={self.spot_id}, renter={self.renter_id}, "
            f"{self.start_at}-{self.end_at}, status={self.status}>"
        )

    @property
    def booking_status(self) -> BookingStatus:
        return BookingStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.booking_status in BookingStatus.terminal()

    @property
    def extension_total(self) -> Decimal:
        return sum((Decimal(c.amount) for c in self.extension_charges), Decimal("0"))

    @property
    def reschedule_charges(self) -> List["BookingAdjustment"]:
        return [a for a in self.adjustments if a.amount > 0]

    def refunded_from(self, charge_id: Optional[str]) -> Decimal:
        """Reschedule refunds already taken from ``charge_id``."""
        return sum(
            (
                -Decimal(a.amount)
                for a in self.adjustments
                if a.amount < 0 and a.charge_id == charge_id
            ),
            Decimal("0"),
        )

    @property
    def base_charge_amount(self) -> Decimal:
        """
        Part of the original charge still held.

        ``total_amount`` is what the renter has paid net of refunds, so the
        original charge holds the total minus every later charge, plus any
        refunds that were taken from those later charges instead.
        """
        later_charges = self.extension_total + sum(
            (Decimal(a.amount) for a in self.reschedule_charges), Decimal("0")
        )
        refunded_from_later = sum(
            (
                -Decimal(a.amount)
                for a in self.adjustments
                if a.amount < 0 and a.charge_id != self.charge_id
            ),
            Decimal("0"),
        )
        return Decimal(self.total_amount) - later_charges + refunded_from_later

    def is_live(self, now: datetime) -> bool:
        return self.start_at <= now < self.end_at

    def has_started(self, now: datetime) -> bool:
        return self.start_at <= now


class BookingHold(Base):
    """
    Ephemeral reservation of a spot/interval while payment is in flight.

    The unique constraint makes the database the final arbiter when two
    renters race for exactly the same interval.
    """

    __tablename__ = "booking_holds"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    spot_id = Column(String(26), ForeignKey("spots.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(26), nullable=True, index=True)
    start_at = Column(UTCDateTime, nullable=False)
    end_at = Column(UTCDateTime, nullable=False)
    expires_at = Column(UTCDateTime, nullable=False, index=True)
    idempotency_key = Column(String(64), nullable=False, unique=True)
    created_at = Column(UTCDateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("spot_id", "start_at", "end_at", name="uq_booking_holds_spot_window"),
        CheckConstraint("start_at < end_at", name="ck_booking_holds_time_order"),
    )

    @staticmethod
    def expiry_from(now: datetime, ttl_minutes: int) -> datetime:
        return now + timedelta(minutes=ttl_minutes)

    def __repr__(self) -> str:
        return f"<BookingHold {self.id}: spot={self.spot_id} {self.start_at}-{self.end_at}>"


class ExtensionCharge(Base):
    """Append-only record of a paid extension. Never mutated after insert."""

    __tablename__ = "extension_charges"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id = Column(
        String(26), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount = Column(Numeric(10, 2), nullable=False)
    host_earnings = Column(Numeric(10, 2), nullable=False)
    minutes_added = Column(Integer, nullable=False)
    hours_added = Column(Numeric(6, 2), nullable=False)
    payment_intent_id = Column(String(255), nullable=True)
    charge_id = Column(String(255), nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    booking = relationship("Booking", back_populates="extension_charges")

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_extension_charges_amount"),
        CheckConstraint("minutes_added > 0", name="ck_extension_charges_minutes"),
    )


class BookingAdjustment(Base):
    """
    Money moved when a booking is rescheduled. Never mutated after insert.

    ``amount`` is signed: positive rows captured a new charge for a price
    increase, negative rows are partial refunds taken from ``charge_id``.
    """

    __tablename__ = "booking_adjustments"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id = Column(
        String(26), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount = Column(Numeric(10, 2), nullable=False)
    payment_intent_id = Column(String(255), nullable=True)
    charge_id = Column(String(255), nullable=False)
    refund_id = Column(String(255), nullable=True)
    previous_start_at = Column(UTCDateTime, nullable=False)
    previous_end_at = Column(UTCDateTime, nullable=False)
    new_start_at = Column(UTCDateTime, nullable=False)
    new_end_at = Column(UTCDateTime, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    booking = relationship("Booking", back_populates="adjustments")

    __table_args__ = (CheckConstraint("amount <> 0", name="ck_booking_adjustments_amount"),)


@event.listens_for(ExtensionCharge, "before_update")
@event.listens_for(BookingAdjustment, "before_update")
def _ledger_rows_are_append_only(mapper: Any, connection: Any, target: Any) -> None:
    raise ValueError(f"{type(target).__name__} {target.id} is append-only")


class PendingExtensionStatus(str, Enum):
    REQUIRES_ACTION = "requires_action"
    FINALIZED = "finalized"
    NEEDS_REVIEW = "needs_review"
    REFUNDED = "refunded"
    ABANDONED = "abandoned"


class PendingExtension(Base):
    """
    An extension initiated but not yet finalized.

    Addressable by its id (the pending token) across the customer's
    authentication redirect. The booking's end_at is untouched until
    finalize succeeds.
    """

    __tablename__ = "pending_extensions"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id = Column(
        String(26), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    payment_intent_id = Column(String(255), nullable=False)
    extension_minutes = Column(Integer, nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False)
    service_fee = Column(Numeric(10, 2), nullable=False)
    platform_fee = Column(Numeric(10, 2), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    host_earnings = Column(Numeric(10, 2), nullable=False)
    status = Column(
        String(20), nullable=False, default=PendingExtensionStatus.REQUIRES_ACTION.value
    )
    extension_charge_id = Column(String(26), nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    finalized_at = Column(UTCDateTime, nullable=True)

    booking = relationship("Booking")
