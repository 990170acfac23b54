# backend/parkzy/services/availability_service.py
"""
Availability Engine for the Parkzy platform.

Answers two questions:
- is a spot free for [start_at, end_at)?
- which bookings on a set of spots overlap an interval?

A spot is free when every local-date segment of the interval fits in that
date's effective window, and no booking in the conflict set or active hold
held by someone else overlaps it. The effective window for a date is:

- whole-day override (null bounds): the whole day, open or closed
- available override with bounds: exactly that window
- unavailable override with bounds: the weekly rule minus that window
- no override: the weekly rule for that weekday
- neither: closed
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
import logging
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..core.constants import MINUTES_PER_DAY
from ..core.exceptions import (
    BookingConflictException,
    NotFoundException,
    ValidationException,
)
from ..core.timezone_utils import ensure_utc, time_to_minutes, to_local, utc_now
from ..models.availability import AvailabilityRule, CalendarOverride
from ..models.booking import Booking
from ..models.spot import Spot
from ..principal import Caller
from ..repositories.factory import RepositoryFactory
from .access_policy import require_spot_host
from .base import BaseService

logger = logging.getLogger(__name__)

Window = Tuple[int, int]


@dataclass(frozen=True)
class BookingPartition:
    """Bookings split relative to "now"."""

    live: List[Booking]
    upcoming: List[Booking]


def subtract_window(windows: Sequence[Window], blocked: Window) -> List[Window]:
    """Remove ``blocked`` from each open window."""
    b_start, b_end = blocked
    result: List[Window] = []
    for start, end in windows:
        if b_end <= start or b_start >= end:
            result.append((start, end))
            continue
        if start < b_start:
            result.append((start, b_start))
        if b_end < end:
            result.append((b_end, end))
    return result


def local_segments(start_at: datetime, end_at: datetime, tz: Any) -> Iterator[Tuple[date, int, int]]:
    """
    Split an interval into (local date, start minute, end minute) pieces.

    An interval ending exactly at local midnight does not touch the next date.
    """
    local_start = to_local(start_at, tz)
    local_end = to_local(end_at, tz)
    day = local_start.date()
    while day <= local_end.date():
        seg_start = local_start.hour * 60 + local_start.minute if day == local_start.date() else 0
        if day == local_end.date():
            seg_end = local_end.hour * 60 + local_end.minute + (1 if local_end.second else 0)
        else:
            seg_end = MINUTES_PER_DAY
        if seg_end > seg_start:
            yield day, seg_start, seg_end
        day += timedelta(days=1)


class AvailabilityService(BaseService):
    """Resolves spot availability and manages weekly rules and overrides."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.repository = RepositoryFactory.create_availability_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.hold_repository = RepositoryFactory.create_booking_hold_repository(db)
        self.spot_repository = RepositoryFactory.create_spot_repository(db)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_spot(self, spot_id: str) -> Spot:
        spot = self.spot_repository.get_by_id(spot_id)
        if spot is None:
            raise NotFoundException(f"Spot {spot_id} not found", code="SPOT_NOT_FOUND")
        return spot

    def get_effective_windows(self, spot: Spot, day: date) -> List[Window]:
        """Open windows for ``day`` in minutes from local midnight."""
        override = self.repository.get_override(spot.id, day)
        rule = self.repository.get_rule_for_day(spot.id, day.weekday())
        return self._resolve_windows(rule, override)

    @staticmethod
    def _resolve_windows(
        rule: Optional[AvailabilityRule], override: Optional[CalendarOverride]
    ) -> List[Window]:
        weekly: List[Window] = []
        if rule is not None and rule.is_available:
            start = time_to_minutes(rule.start_time)
            end = time_to_minutes(rule.end_time, is_end=True)
            if start < end:
                weekly.append((start, end))

        if override is None:
            return weekly
        if override.is_whole_day:
            return [(0, MINUTES_PER_DAY)] if override.is_available else []

        start = time_to_minutes(override.start_time)
        end = time_to_minutes(override.end_time, is_end=True)
        if start >= end:
            return weekly if not override.is_available else []
        if override.is_available:
            return [(start, end)]
        return subtract_window(weekly, (start, end))

    def is_within_schedule(self, spot: Spot, start_at: datetime, end_at: datetime) -> bool:
        for day, seg_start, seg_end in local_segments(start_at, end_at, spot.timezone):
            windows = self.get_effective_windows(spot, day)
            if not any(w_start <= seg_start and seg_end <= w_end for w_start, w_end in windows):
                return False
        return True

    @BaseService.measure_operation("find_conflicting_bookings")
    def find_conflicting_bookings(
        self,
        spot_ids: Sequence[str],
        start_at: datetime,
        end_at: datetime,
        statuses: Optional[Sequence[str]] = None,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        """Bookings on ``spot_ids`` in ``statuses`` overlapping [start_at, end_at)."""
        return self.booking_repository.find_conflicting(
            spot_ids,
            ensure_utc(start_at),
            ensure_utc(end_at),
            statuses=statuses,
            exclude_booking_id=exclude_booking_id,
        )

    @staticmethod
    def partition_bookings(bookings: Sequence[Booking], now: datetime) -> BookingPartition:
        """Live: start_at <= now < end_at. Upcoming: start_at > now. Ended ones are dropped."""
        live = [b for b in bookings if b.is_live(now)]
        upcoming = [b for b in bookings if b.start_at > now]
        return BookingPartition(live=live, upcoming=upcoming)

    def check_bookable(
        self,
        spot: Spot,
        start_at: datetime,
        end_at: datetime,
        *,
        exclude_booking_id: Optional[str] = None,
        exclude_user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Raise BookingConflictException unless the interval is free.

        Raises:
            BookingConflictException: outside the schedule, or overlapping a
                booking or another renter's active hold
        """
        now = now or utc_now()
        if not spot.is_active:
            raise BookingConflictException(
                "This spot is not accepting bookings",
                details={"spot_id": spot.id, "reason": "spot_inactive"},
            )
        if not self.is_within_schedule(spot, start_at, end_at):
            raise BookingConflictException(
                "This spot is not available for the requested time",
                details={"spot_id": spot.id, "reason": "outside_availability"},
            )
        conflicts = self.find_conflicting_bookings(
            [spot.id], start_at, end_at, exclude_booking_id=exclude_booking_id
        )
        if conflicts:
            raise BookingConflictException(
                details={
                    "spot_id": spot.id,
                    "reason": "overlapping_booking",
                    "conflicting_booking_ids": [b.id for b in conflicts],
                }
            )
        holds = self.hold_repository.find_active_overlapping(
            [spot.id], start_at, end_at, now, exclude_user_id=exclude_user_id
        )
        if holds:
            raise BookingConflictException(
                details={"spot_id": spot.id, "reason": "held_by_another_renter"}
            )

    @BaseService.measure_operation("is_available")
    def is_available(
        self,
        spot_id: str,
        start_at: datetime,
        end_at: datetime,
        *,
        exclude_booking_id: Optional[str] = None,
        exclude_user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        start_at, end_at = ensure_utc(start_at), ensure_utc(end_at)
        if start_at >= end_at:
            raise ValidationException("End time must be after start time", code="INVALID_INTERVAL")
        spot = self.get_spot(spot_id)
        try:
            self.check_bookable(
                spot,
                start_at,
                end_at,
                exclude_booking_id=exclude_booking_id,
                exclude_user_id=exclude_user_id,
                now=now,
            )
        except BookingConflictException:
            return False
        return True

    def get_weekly_schedule(self, spot_id: str) -> List[AvailabilityRule]:
        return self.repository.get_rules(spot_id)

    def get_override(self, spot_id: str, override_date: date) -> Optional[CalendarOverride]:
        return self.repository.get_override(spot_id, override_date)

    # ------------------------------------------------------------------
    # Host writes
    # ------------------------------------------------------------------

    @BaseService.measure_operation("replace_weekly_schedule")
    def replace_weekly_schedule(
        self, caller: Caller, spot_id: str, rules: Sequence[Mapping[str, Any]]
    ) -> List[AvailabilityRule]:
        """Replace a spot's weekly rules. At most one rule per weekday."""
        spot = self.get_spot(spot_id)
        require_spot_host(caller, spot)

        seen_days: set[int] = set()
        cleaned: List[Dict[str, Any]] = []
        for rule in rules:
            day = int(rule["day_of_week"])
            if not 0 <= day <= 6:
                raise ValidationException(
                    "day_of_week must be between 0 and 6", details={"day_of_week": day}
                )
            if day in seen_days:
                raise ValidationException(
                    "Only one availability rule per day is allowed",
                    code="DUPLICATE_DAY_RULE",
                    details={"day_of_week": day},
                )
            seen_days.add(day)
            start, end = rule["start_time"], rule["end_time"]
            if time_to_minutes(start) >= time_to_minutes(end, is_end=True):
                raise ValidationException(
                    "start_time must be before end_time",
                    code="INVALID_RULE_WINDOW",
                    details={"day_of_week": day},
                )
            cleaned.append(
                {
                    "day_of_week": day,
                    "start_time": start,
                    "end_time": end,
                    "is_available": bool(rule.get("is_available", True)),
                    "custom_rate": rule.get("custom_rate"),
                }
            )

        with self.transaction():
            created = self.repository.replace_rules(spot.id, cleaned)
        self.log_operation("replace_weekly_schedule", spot_id=spot.id, rule_count=len(created))
        return created

    @BaseService.measure_operation("set_override")
    def set_override(
        self,
        caller: Caller,
        spot_id: str,
        override_date: date,
        *,
        is_available: bool,
        start_time: Optional[time] = None,
        end_time: Optional[time] = None,
        reason: Optional[str] = None,
    ) -> CalendarOverride:
        spot = self.get_spot(spot_id)
        require_spot_host(caller, spot)
        if (
            start_time is not None
            and end_time is not None
            and time_to_minutes(start_time) >= time_to_minutes(end_time, is_end=True)
        ):
            raise ValidationException(
                "start_time must be before end_time", code="INVALID_OVERRIDE_WINDOW"
            )
        with self.transaction():
            override = self.repository.replace_override(
                spot.id,
                override_date,
                is_available=is_available,
                start_time=start_time,
                end_time=end_time,
                reason=reason,
            )
        return override

    @BaseService.measure_operation("delete_override")
    def delete_override(self, caller: Caller, spot_id: str, override_date: date) -> bool:
        spot = self.get_spot(spot_id)
        require_spot_host(caller, spot)
        with self.transaction():
            return self.repository.delete_override(spot.id, override_date)

    @BaseService.measure_operation("open_availability")
    def open_availability(
        self, caller: Caller, spot_ids: Sequence[str], target_date: date
    ) -> List[CalendarOverride]:
        """Make each spot available for the whole of ``target_date``."""
        spots = [self.get_spot(spot_id) for spot_id in dict.fromkeys(spot_ids)]
        for spot in spots:
            require_spot_host(caller, spot)
        with self.transaction():
            overrides = [
                self.repository.replace_override(
                    spot.id,
                    target_date,
                    is_available=True,
                    start_time=None,
                    end_time=None,
                    reason="Host marked spot available",
                )
                for spot in spots
            ]
        self.log_operation(
            "open_availability", spot_ids=[s.id for s in spots], target_date=str(target_date)
        )
        return overrides
