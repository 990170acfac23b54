# backend/parkzy/repositories/factory.py
"""
Repository Factory for the Parkzy platform.

Centralized creation of repository instances so services never construct
repositories with ad-hoc arguments.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

if TYPE_CHECKING:
    from .availability_repository import AvailabilityRepository
    from .booking_hold_repository import BookingHoldRepository
    from .booking_repository import BookingRepository
    from .notification_repository import NotificationRepository
    from .platform_config_repository import PlatformConfigRepository
    from .spot_repository import SpotRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        """Create repository for booking operations."""
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_booking_hold_repository(db: Session) -> "BookingHoldRepository":
        """Create repository for booking holds."""
        from .booking_hold_repository import BookingHoldRepository

        return BookingHoldRepository(db)

    @staticmethod
    def create_availability_repository(db: Session) -> "AvailabilityRepository":
        """Create repository for weekly rules and calendar overrides."""
        from .availability_repository import AvailabilityRepository

        return AvailabilityRepository(db)

    @staticmethod
    def create_spot_repository(db: Session) -> "SpotRepository":
        from .spot_repository import SpotRepository

        return SpotRepository(db)

    @staticmethod
    def create_notification_repository(db: Session) -> "NotificationRepository":
        from .notification_repository import NotificationRepository

        return NotificationRepository(db)

    @staticmethod
    def create_platform_config_repository(db: Session) -> "PlatformConfigRepository":
        from .platform_config_repository import PlatformConfigRepository

        return PlatformConfigRepository(db)
