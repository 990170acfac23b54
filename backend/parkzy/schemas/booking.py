# backend/parkzy/schemas/booking.py
"""
Booking schemas for the Parkzy platform.

Request models reject unknown fields. Datetimes without an offset are
read as UTC so that every interval compared downstream is timezone-aware.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Literal, Optional

from pydantic import EmailStr, Field, field_validator, model_validator

from ..core.constants import MAX_REASON_LENGTH
from ._strict_base import StrictModel, StrictRequestModel


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TimeWindow(StrictRequestModel):
    start_at: datetime
    end_at: datetime

    @field_validator("start_at", "end_at")
    @classmethod
    def _normalize(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @model_validator(mode="after")
    def _check_order(self) -> "TimeWindow":
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be after start_at")
        return self


class BookingInterval(TimeWindow):
    spot_id: str = Field(..., min_length=1, max_length=26)


class BookingCreate(BookingInterval):
    """Create a booking. Guests must supply a contact email."""

    payment_method_id: Optional[str] = Field(None, max_length=255)
    customer_id: Optional[str] = Field(None, max_length=255)
    guest_email: Optional[EmailStr] = None


class BookingCostPreviewRequest(BookingInterval):
    pass


class BookingDecline(StrictRequestModel):
    reason: Optional[str] = Field(None, max_length=MAX_REASON_LENGTH)


class BookingCancel(StrictRequestModel):
    reason: Optional[str] = Field(None, max_length=MAX_REASON_LENGTH)


class BookingExtendRequest(StrictRequestModel):
    """
    Two-step extension request.

    Step one sends ``extension_minutes``. If the payment needs customer
    authentication, step two sends ``finalize=true`` with the returned
    ``pending_token``.
    """

    extension_minutes: Optional[int] = None
    payment_method_id: Optional[str] = Field(None, max_length=255)
    finalize: bool = False
    pending_token: Optional[str] = Field(None, max_length=26)

    @model_validator(mode="after")
    def _check_step(self) -> "BookingExtendRequest":
        if self.finalize and not self.pending_token:
            raise ValueError("pending_token is required when finalize is true")
        if not self.finalize and self.extension_minutes is None:
            raise ValueError("extension_minutes is required")
        return self


class BookingResponse(StrictModel):
    id: str
    spot_id: str
    renter_id: Optional[str] = None
    is_guest: bool
    status: str
    start_at: datetime
    end_at: datetime
    hourly_rate: Decimal
    subtotal: Decimal
    service_fee: Decimal
    total_amount: Decimal
    host_earnings: Decimal
    fee_policy_version: int
    payment_intent_id: Optional[str] = None
    charge_id: Optional[str] = None
    cancellation_reason: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    created_at: datetime


class BookingCreateResponse(StrictModel):
    booking: BookingResponse
    requires_action: bool = False
    client_secret: Optional[str] = None
    guest_access_token: Optional[str] = Field(
        None, description="Returned once for guest bookings; required for later actions"
    )


class CostPreviewResponse(StrictModel):
    minutes: int
    hourly_rate: Decimal
    subtotal: Decimal
    service_fee: Decimal
    total_amount: Decimal
    platform_fee: Decimal
    host_earnings: Decimal
    fee_policy_version: int


class BookingExtendResponse(StrictModel):
    status: Literal["completed", "requires_action"]
    booking: BookingResponse
    extension_minutes: int
    amount: Decimal
    pending_token: Optional[str] = None
    client_secret: Optional[str] = None


class BookingRescheduleRequest(TimeWindow):
    """Move a booking that has not started. Needs a payment method when the price goes up."""

    payment_method_id: Optional[str] = Field(None, max_length=255)


class BookingRescheduleResponse(StrictModel):
    booking: BookingResponse
    price_difference: Decimal = Field(..., description="Positive when charged, negative when refunded")
    new_total_amount: Decimal
