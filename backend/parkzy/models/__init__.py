# backend/parkzy/models/__init__.py
"""
Database models for the Parkzy booking workflow.

Importing this package registers every table on ``Base.metadata``.
"""

from .availability import AvailabilityRule, CalendarOverride
from .booking import (
    Booking,
    BookingAdjustment,
    BookingHold,
    BookingStatus,
    ExtensionCharge,
    PendingExtension,
    PendingExtensionStatus,
)
from .notification import Notification
from .platform_config import PlatformConfig
from .spot import Spot, SpotStatus

__all__ = [
    "AvailabilityRule",
    "Booking",
    "BookingAdjustment",
    "BookingHold",
    "BookingStatus",
    "CalendarOverride",
    "ExtensionCharge",
    "Notification",
    "PendingExtension",
    "PendingExtensionStatus",
    "PlatformConfig",
    "Spot",
    "SpotStatus",
]
