# backend/parkzy/repositories/__init__.py
"""
Repository layer for the Parkzy booking workflow.

Usage:
    from parkzy.repositories import RepositoryFactory

    repository = RepositoryFactory.create_booking_repository(db)
    conflicts = repository.find_conflicting([spot_id], start_at, end_at)
"""

from .availability_repository import AvailabilityRepository
from .base_repository import BaseRepository
from .booking_hold_repository import BookingHoldRepository
from .booking_repository import BookingRepository
from .factory import RepositoryFactory
from .notification_repository import NotificationRepository
from .platform_config_repository import PlatformConfigRepository
from .spot_repository import SpotRepository

__all__ = [
    "AvailabilityRepository",
    "BaseRepository",
    "BookingHoldRepository",
    "BookingRepository",
    "NotificationRepository",
    "PlatformConfigRepository",
    "RepositoryFactory",
    "SpotRepository",
]
