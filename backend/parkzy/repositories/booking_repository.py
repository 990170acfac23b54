# backend/parkzy/repositories/booking_repository.py
"""
Booking Repository for the Parkzy platform.

Data access for bookings and their satellite records:
- Conflict lookups using the half-open overlap test
- Sweep queries (stale requests, elapsed bookings)
- Extension charges, pending extensions and reschedule adjustments
"""

from datetime import datetime
import logging
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload, selectinload

from ..core.exceptions import RepositoryException
from ..models.booking import (
    Booking,
    BookingAdjustment,
    BookingStatus,
    ExtensionCharge,
    PendingExtension,
    PendingExtensionStatus,
)
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(
            joinedload(Booking.spot),
            selectinload(Booking.extension_charges),
            selectinload(Booking.adjustments),
        )

    def get_for_update(self, booking_id: str) -> Optional[Booking]:
        """Re-read a booking with a row lock where the backend supports it."""
        try:
            query = self._apply_eager_loading(
                self.db.query(Booking).filter(Booking.id == booking_id)
            )
            if self.db.get_bind().dialect.name != "sqlite":
                query = query.with_for_update(of=Booking)
            return query.populate_existing().first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error locking booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to lock booking: {str(e)}")

    def find_conflicting(
        self,
        spot_ids: Sequence[str],
        start_at: datetime,
        end_at: datetime,
        statuses: Optional[Iterable[str]] = None,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        """
        Bookings on ``spot_ids`` whose [start_at, end_at) intersects the interval.

        Adjacent intervals (one ends exactly when the other starts) do not conflict.
        """
        if not spot_ids:
            return []
        status_values = [
            s.value if isinstance(s, BookingStatus) else s
            for s in (statuses if statuses is not None else BookingStatus.conflicting())
        ]
        query = (
            self._build_query()
            .filter(
                Booking.spot_id.in_(list(spot_ids)),
                Booking.status.in_(status_values),
                Booking.start_at < end_at,
                Booking.end_at > start_at,
            )
            .order_by(Booking.start_at)
        )
        if exclude_booking_id:
            query = query.filter(Booking.id != exclude_booking_id)
        return self._execute_query(query)

    def get_stale_requests(self, created_before: datetime) -> List[Booking]:
        """Held/pending bookings the host never acted on."""
        query = self._build_query().filter(
            Booking.status.in_([BookingStatus.HELD.value, BookingStatus.PENDING.value]),
            Booking.created_at < created_before,
        )
        return self._execute_query(query)

    def get_elapsed_confirmed(self, now: datetime) -> List[Booking]:
        query = self._build_query().filter(
            Booking.status.in_([s.value for s in BookingStatus.confirmed()]),
            Booking.end_at <= now,
        )
        return self._execute_query(query)

    # Extension records

    def add_extension_charge(self, **kwargs) -> ExtensionCharge:
        try:
            charge = ExtensionCharge(**kwargs)
            self.db.add(charge)
            self.db.flush()
            return charge
        except SQLAlchemyError as e:
            self.logger.error(f"Error recording extension charge: {str(e)}")
            raise RepositoryException(f"Failed to record extension charge: {str(e)}")

    def create_pending_extension(self, **kwargs) -> PendingExtension:
        try:
            pending = PendingExtension(**kwargs)
            self.db.add(pending)
            self.db.flush()
            return pending
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating pending extension: {str(e)}")
            raise RepositoryException(f"Failed to create pending extension: {str(e)}")

    def get_pending_extension(self, pending_id: str) -> Optional[PendingExtension]:
        try:
            return (
                self.db.query(PendingExtension)
                .filter(PendingExtension.id == pending_id)
                .populate_existing()
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading pending extension {pending_id}: {str(e)}")
            raise RepositoryException(f"Failed to load pending extension: {str(e)}")

    def get_open_pending_extensions(self, booking_id: str) -> List[PendingExtension]:
        """Extensions of ``booking_id`` whose authorization was never captured or voided."""
        try:
            return (
                self.db.query(PendingExtension)
                .filter(
                    PendingExtension.booking_id == booking_id,
                    PendingExtension.status == PendingExtensionStatus.REQUIRES_ACTION.value,
                )
                .populate_existing()
                .order_by(PendingExtension.created_at)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading open extensions for {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to load pending extensions: {str(e)}")

    def add_adjustment(self, booking: Booking, **kwargs) -> BookingAdjustment:
        try:
            adjustment = BookingAdjustment(**kwargs)
            booking.adjustments.append(adjustment)
            self.db.flush()
            return adjustment
        except SQLAlchemyError as e:
            self.logger.error(f"Error recording booking adjustment: {str(e)}")
            raise RepositoryException(f"Failed to record booking adjustment: {str(e)}")
