"""
Booking notifications.

``Notifier`` is the delivery seam the lifecycle depends on. Delivery is
fire-and-forget: implementations report failure by returning False and
never raise into the transition that triggered them.
"""

from abc import ABC, abstractmethod
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


class Notifier(ABC):
    @abstractmethod
    def notify(
        self,
        user_id: str,
        title: str,
        message: str,
        related_booking_id: Optional[str] = None,
    ) -> bool:
        """Deliver a message; return whether delivery succeeded."""


class NotificationService(BaseService, Notifier):
    """Writes in-app notification rows."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.repository = RepositoryFactory.create_notification_repository(db)

    @BaseService.measure_operation("notify")
    def notify(
        self,
        user_id: str,
        title: str,
        message: str,
        related_booking_id: Optional[str] = None,
    ) -> bool:
        try:
            with self.transaction():
                self.repository.create(
                    user_id=user_id,
                    title=title,
                    message=message,
                    related_booking_id=related_booking_id,
                )
        except Exception as exc:
            logger.warning(
                "Notification delivery failed",
                extra={
                    "user_id": user_id,
                    "booking_id": related_booking_id,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            prometheus_metrics.record_notification("failed")
            return False
        prometheus_metrics.record_notification("sent")
        return True
