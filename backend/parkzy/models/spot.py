"""Parking spot model (only the fields the booking workflow reads)."""

from sqlalchemy import Boolean, CheckConstraint, Column, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base
from .types import UTCDateTime


class SpotStatus:
    ACTIVE = "active"
    INACTIVE = "inactive"


class Spot(Base):
    """A parking spot listed by a host."""

    __tablename__ = "spots"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    host_id = Column(String(26), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    address = Column(Text, nullable=True)
    hourly_rate = Column(Numeric(10, 2), nullable=False)
    instant_book = Column(Boolean, nullable=False, default=True)
    timezone = Column(String(64), nullable=False, default="UTC")
    status = Column(String(20), nullable=False, default=SpotStatus.ACTIVE)

    created_at = Column(UTCDateTime, server_default=func.now())

    availability_rules = relationship(
        "AvailabilityRule", back_populates="spot", cascade="all, delete-orphan"
    )
    calendar_overrides = relationship(
        "CalendarOverride", back_populates="spot", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("hourly_rate > 0", name="ck_spots_rate_positive"),
        CheckConstraint("status IN ('active', 'inactive')", name="ck_spots_status"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == SpotStatus.ACTIVE

    @property
    def display_address(self) -> str:
        return self.address or self.title or "your spot"

    def __repr__(self) -> str:
        return f"<Spot {self.id}: host={self.host_id} rate={self.hourly_rate}>"
