# backend/parkzy/services/availability_block_service.py
"""
Host "block my spot" workflow.

Blocking a date reconciles the bookings already on it:
- upcoming bookings are cancelled through the lifecycle engine (full refund)
- live bookings are left alone; the block starts when the last one ends

Nothing is mutated until the host confirms a non-empty conflict set.
Cancellations run one at a time and a failure on one booking is reported
per item instead of aborting the batch. Overrides are written only after
the cancellation pass, and an override that already matches is left
untouched so re-running the action is a no-op.
"""

from datetime import date, datetime, time
import logging
from math import ceil
from typing import Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.constants import HOST_UNAVAILABLE_REASON, MINUTES_PER_DAY
from ..core.exceptions import DomainException, RepositoryException, ValidationException
from ..core.timezone_utils import local_day_bounds, minutes_to_time, time_to_minutes, to_local, utc_now
from ..models.booking import Booking
from ..models.spot import Spot
from ..principal import Caller
from ..schemas.availability import (
    BlockAvailabilityResult,
    BlockItemResult,
    BlockPreview,
    ConflictingBooking,
    SpotBlockOutcome,
)
from .access_policy import require_spot_host
from .availability_service import AvailabilityService
from .base import BaseService
from .booking_service import BookingService

logger = logging.getLogger(__name__)

DEFERRED_BLOCK_REASON = "Blocked after live booking ends"
END_OF_DAY = time(23, 59)


def _summary(booking: Booking) -> ConflictingBooking:
    return ConflictingBooking(
        booking_id=booking.id,
        spot_id=booking.spot_id,
        renter_id=booking.renter_id,
        status=booking.status,
        start_at=booking.start_at,
        end_at=booking.end_at,
    )


class AvailabilityBlockService(BaseService):
    """Blocks spots for a date, reconciling live and upcoming bookings."""

    def __init__(
        self,
        db: Session,
        booking_service: BookingService,
        availability_service: Optional[AvailabilityService] = None,
    ):
        super().__init__(db)
        self.booking_service = booking_service
        self.availability_service = availability_service or booking_service.availability_service

    def _host_spots(self, caller: Caller, spot_ids: Sequence[str]) -> List[Spot]:
        unique_ids = list(dict.fromkeys(spot_ids))
        if not unique_ids:
            raise ValidationException("Select at least one spot", code="NO_SPOTS_SELECTED")
        spots = [self.availability_service.get_spot(spot_id) for spot_id in unique_ids]
        for spot in spots:
            require_spot_host(caller, spot)
        return spots

    def _conflicts_for_spot(
        self, spot: Spot, target_date: date, now: datetime
    ) -> List[Booking]:
        """Conflict-set bookings overlapping [max(now, local day start), local day end)."""
        day_start, day_end = local_day_bounds(target_date, spot.timezone)
        window_start = max(now, day_start)
        if window_start >= day_end:
            return []
        return self.availability_service.find_conflicting_bookings(
            [spot.id], window_start, day_end
        )

    @BaseService.measure_operation("preview_block")
    def preview_block(
        self,
        caller: Caller,
        spot_ids: Sequence[str],
        target_date: date,
        now: Optional[datetime] = None,
    ) -> BlockPreview:
        """List the live and upcoming bookings a block would affect. Read-only."""
        now = now or utc_now()
        spots = self._host_spots(caller, spot_ids)
        bookings: List[Booking] = []
        for spot in spots:
            bookings.extend(self._conflicts_for_spot(spot, target_date, now))
        partition = self.availability_service.partition_bookings(bookings, now)
        return BlockPreview(
            target_date=target_date,
            live=[_summary(b) for b in partition.live],
            upcoming=[_summary(b) for b in partition.upcoming],
        )

    @BaseService.measure_operation("block_availability")
    def block_availability(
        self,
        caller: Caller,
        spot_ids: Sequence[str],
        target_date: date,
        *,
        start_time: Optional[time] = None,
        reason: Optional[str] = None,
        confirm: bool = False,
        now: Optional[datetime] = None,
    ) -> BlockAvailabilityResult:
        now = now or utc_now()
        spots = self._host_spots(caller, spot_ids)
        preview = self.preview_block(caller, [s.id for s in spots], target_date, now=now)

        if preview.has_conflicts and not confirm:
            self.log_operation(
                "block_availability_confirmation_required",
                spot_ids=[s.id for s in spots],
                live=len(preview.live),
                upcoming=len(preview.upcoming),
            )
            return BlockAvailabilityResult(
                status="confirmation_required", target_date=target_date, preview=preview
            )

        items: List[BlockItemResult] = []
        canceled = 0
        for summary in preview.upcoming:
            item = self._cancel_upcoming(caller, summary, now)
            if item.success:
                canceled += 1
            items.append(item)

        latest_live_end: Dict[str, datetime] = {}
        for summary in preview.live:
            current = latest_live_end.get(summary.spot_id)
            if current is None or summary.end_at > current:
                latest_live_end[summary.spot_id] = summary.end_at
            items.append(
                BlockItemResult(
                    booking_id=summary.booking_id,
                    spot_id=summary.spot_id,
                    action="deferred",
                    success=True,
                    resulting_status=summary.status,
                )
            )

        outcomes = [
            self._write_block_override(
                spot, target_date, start_time, latest_live_end.get(spot.id), reason, now
            )
            for spot in spots
        ]

        result = BlockAvailabilityResult(
            status="completed",
            target_date=target_date,
            canceled_count=canceled,
            deferred_count=len(preview.live),
            items=items,
            spots=outcomes,
        )
        log = self.logger.warning if result.has_failures else self.logger.info
        log(
            "Availability blocked",
            extra={
                "spot_ids": [s.id for s in spots],
                "target_date": str(target_date),
                "canceled_count": result.canceled_count,
                "deferred_count": result.deferred_count,
                "failed_count": len(result.failed_items),
            },
        )
        return result

    def _cancel_upcoming(
        self, caller: Caller, summary: ConflictingBooking, now: datetime
    ) -> BlockItemResult:
        try:
            booking = self.booking_service.cancel_booking(
                caller, summary.booking_id, HOST_UNAVAILABLE_REASON, now=now
            )
        except (DomainException, RepositoryException) as exc:
            logger.warning(
                "Cancellation failed during availability block",
                extra={"booking_id": summary.booking_id, "error": str(exc)},
            )
            return BlockItemResult(
                booking_id=summary.booking_id,
                spot_id=summary.spot_id,
                action="canceled",
                success=False,
                resulting_status=summary.status,
                error=getattr(exc, "message", str(exc)),
                error_code=getattr(exc, "code", type(exc).__name__),
            )
        return BlockItemResult(
            booking_id=booking.id,
            spot_id=booking.spot_id,
            action="canceled",
            success=True,
            resulting_status=booking.status,
            refund_amount=booking.refund_amount,
        )

    def _write_block_override(
        self,
        spot: Spot,
        target_date: date,
        start_time: Optional[time],
        live_end: Optional[datetime],
        reason: Optional[str],
        now: datetime,
    ) -> SpotBlockOutcome:
        start_minutes = time_to_minutes(start_time) if start_time is not None else None
        override_reason = reason or HOST_UNAVAILABLE_REASON

        if live_end is not None:
            local_end = to_local(live_end, spot.timezone)
            if local_end.date() > target_date:
                # The live session covers the rest of the day; nothing left to block
                return SpotBlockOutcome(spot_id=spot.id, deferred_past_day=True)
            end_minutes = local_end.hour * 60 + local_end.minute + ceil(local_end.second / 60)
            start_minutes = max(start_minutes or 0, end_minutes)
            override_reason = DEFERRED_BLOCK_REASON

        if start_minutes is not None and start_minutes >= MINUTES_PER_DAY - 1:
            return SpotBlockOutcome(spot_id=spot.id, deferred_past_day=True)

        new_start = minutes_to_time(start_minutes) if start_minutes else None
        new_end = END_OF_DAY if new_start is not None else None

        existing = self.availability_service.get_override(spot.id, target_date)
        unchanged = (
            existing is not None
            and not existing.is_available
            and existing.start_time == new_start
            and existing.end_time == new_end
        )
        if unchanged or (
            live_end is None
            and self._already_blocks_rest_of_day(existing, start_minutes, spot, target_date, now)
        ):
            return SpotBlockOutcome(
                spot_id=spot.id,
                override_unchanged=True,
                start_time=existing.start_time,
                end_time=existing.end_time,
            )

        try:
            with self.transaction():
                self.availability_service.repository.replace_override(
                    spot.id,
                    target_date,
                    is_available=False,
                    start_time=new_start,
                    end_time=new_end,
                    reason=override_reason,
                )
        except (DomainException, RepositoryException) as exc:
            logger.error(
                "Failed to write block override",
                extra={"spot_id": spot.id, "target_date": str(target_date), "error": str(exc)},
            )
            return SpotBlockOutcome(spot_id=spot.id, error=str(exc))
        return SpotBlockOutcome(
            spot_id=spot.id, override_written=True, start_time=new_start, end_time=new_end
        )

    @staticmethod
    def _already_blocks_rest_of_day(
        existing, start_minutes: Optional[int], spot: Spot, target_date: date, now: datetime
    ) -> bool:
        """An existing block already covers everything from the requested start onward."""
        if existing is None or existing.is_available:
            return False
        if time_to_minutes(existing.end_time, is_end=True) < MINUTES_PER_DAY:
            return False
        requested = start_minutes or 0
        local_now = to_local(now, spot.timezone)
        if local_now.date() == target_date:
            requested = max(requested, local_now.hour * 60 + local_now.minute)
        elif local_now.date() > target_date:
            return True
        return time_to_minutes(existing.start_time) <= requested
