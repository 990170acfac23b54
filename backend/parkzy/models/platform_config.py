"""Platform-wide settings that change at runtime, such as the fee policy."""

from sqlalchemy import JSON, Column, String

from ..database import Base
from .types import UTCDateTime


class PlatformConfig(Base):
    """
    One JSON document per key.

    The ``fees`` document carries its own ``version``; bookings record the
    version they were priced under, so rows here are never backfilled.
    """

    __tablename__ = "platform_config"

    key = Column(String(64), primary_key=True)
    value_json = Column(JSON, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)


__all__ = ["PlatformConfig"]
