# backend/parkzy/schemas/availability.py
"""
Availability schemas: weekly rules, overrides and the block/open quick actions.

``BlockAvailabilityResult`` is the per-item report of the block workflow.
Individual cancellation failures show up as items with ``success=False``;
they never abort the batch.
"""

from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import ConfigDict, Field, computed_field, field_validator

from ..core.constants import MAX_REASON_LENGTH
from ._strict_base import StrictModel, StrictRequestModel


class AvailabilityRuleIn(StrictRequestModel):
    day_of_week: int = Field(..., ge=0, le=6, description="0 = Monday ... 6 = Sunday")
    start_time: time
    end_time: time
    is_available: bool = True
    custom_rate: Optional[Decimal] = Field(None, gt=0)


class WeeklyScheduleRequest(StrictRequestModel):
    rules: List[AvailabilityRuleIn] = Field(default_factory=list, max_length=7)


class AvailabilityRuleResponse(StrictModel):
    day_of_week: int
    start_time: time
    end_time: time
    is_available: bool
    custom_rate: Optional[Decimal] = None


class CalendarOverrideResponse(StrictModel):
    spot_id: str
    override_date: date
    is_available: bool
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    reason: Optional[str] = None


class SpotQuickActionRequest(StrictRequestModel):
    spot_ids: List[str] = Field(..., min_length=1, max_length=50)
    target_date: date

    @field_validator("spot_ids")
    @classmethod
    def _dedupe(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))


class BlockAvailabilityRequest(SpotQuickActionRequest):
    start_time: Optional[time] = Field(
        None, description="Block from this local time; omitted blocks the whole day"
    )
    reason: Optional[str] = Field(None, max_length=MAX_REASON_LENGTH)
    confirm: bool = Field(False, description="Proceed even though bookings will be affected")


class OpenAvailabilityRequest(SpotQuickActionRequest):
    pass


class ConflictingBooking(StrictModel):
    booking_id: str
    spot_id: str
    renter_id: Optional[str] = None
    status: str
    start_at: datetime
    end_at: datetime


class BlockPreview(StrictModel):
    # Computed fields come back on re-validation of a dumped response
    model_config = ConfigDict(extra="ignore", validate_assignment=True, from_attributes=True)

    target_date: date
    live: List[ConflictingBooking] = Field(default_factory=list)
    upcoming: List[ConflictingBooking] = Field(default_factory=list)

    @computed_field  # type: ignore[misc]
    @property
    def has_conflicts(self) -> bool:
        return bool(self.live or self.upcoming)


class BlockItemResult(StrictModel):
    booking_id: str
    spot_id: str
    action: Literal["canceled", "deferred"]
    success: bool
    resulting_status: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


class SpotBlockOutcome(StrictModel):
    spot_id: str
    override_written: bool = False
    override_unchanged: bool = False
    deferred_past_day: bool = False
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    error: Optional[str] = None


class BlockAvailabilityResult(StrictModel):
    model_config = ConfigDict(extra="ignore", validate_assignment=True, from_attributes=True)

    status: Literal["completed", "confirmation_required"]
    target_date: date
    canceled_count: int = 0
    deferred_count: int = 0
    items: List[BlockItemResult] = Field(default_factory=list)
    spots: List[SpotBlockOutcome] = Field(default_factory=list)
    preview: Optional[BlockPreview] = None

    @computed_field  # type: ignore[misc]
    @property
    def has_failures(self) -> bool:
        return any(not item.success for item in self.items) or any(
            spot.error for spot in self.spots
        )

    @property
    def failed_items(self) -> List[BlockItemResult]:
        return [item for item in self.items if not item.success]
