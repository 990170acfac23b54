# backend/parkzy/models/availability.py
"""
Availability models for parking spots.

Two layers decide whether a spot can be booked on a local date:
- AvailabilityRule: the recurring weekly schedule, at most one rule per weekday
- CalendarOverride: a date-specific exception that supersedes the rule

All times are wall-clock times in the spot's timezone. Null override bounds
mean the whole day.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
import ulid

from ..database import Base
from .types import UTCDateTime


class AvailabilityRule(Base):
    """Recurring weekly availability (0 = Monday ... 6 = Sunday)."""

    __tablename__ = "availability_rules"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    spot_id = Column(
        String(26), ForeignKey("spots.id", ondelete="CASCADE"), nullable=False, index=True
    )
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)
    custom_rate = Column(Numeric(10, 2), nullable=True)

    spot = relationship("Spot", back_populates="availability_rules")

    __table_args__ = (
        UniqueConstraint("spot_id", "day_of_week", name="uq_availability_rules_spot_day"),
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_availability_rules_day"),
    )

    def __repr__(self) -> str:
        return (
            f"<AvailabilityRule spot={self.spot_id} day={self.day_of_week} "
            f"{self.start_time}-{self.end_time} available={self.is_available}>"
        )


class CalendarOverride(Base):
    """Date-specific availability exception. One per (spot, date)."""

    __tablename__ = "calendar_overrides"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    spot_id = Column(
        String(26), ForeignKey("spots.id", ondelete="CASCADE"), nullable=False, index=True
    )
    override_date = Column(Date, nullable=False)
    is_available = Column(Boolean, nullable=False, default=False)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    reason = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    spot = relationship("Spot", back_populates="calendar_overrides")

    __table_args__ = (
        UniqueConstraint("spot_id", "override_date", name="uq_calendar_overrides_spot_date"),
    )

    @property
    def is_whole_day(self) -> bool:
        return self.start_time is None and self.end_time is None

    def __repr__(self) -> str:
        return (
            f"<CalendarOverride spot={self.spot_id} date={self.override_date} "
            f"available={self.is_available} {self.start_time}-{self.end_time}>"
        )
