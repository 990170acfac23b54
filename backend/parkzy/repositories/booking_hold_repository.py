"""Repository for booking holds (the short-lived double-booking guard)."""

from datetime import datetime
import logging
from typing import List, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import HoldConflictError, RepositoryException
from ..models.booking import BookingHold
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingHoldRepository(BaseRepository[BookingHold]):
    def __init__(self, db: Session):
        super().__init__(db, BookingHold)

    def insert_hold(
        self,
        *,
        spot_id: str,
        user_id: Optional[str],
        start_at: datetime,
        end_at: datetime,
        expires_at: datetime,
        idempotency_key: str,
    ) -> BookingHold:
        """
        Insert a hold, letting the unique constraint decide races.

        Raises:
            HoldConflictError: another hold already owns this spot/interval
        """
        hold = BookingHold(
            spot_id=spot_id,
            user_id=user_id,
            start_at=start_at,
            end_at=end_at,
            expires_at=expires_at,
            idempotency_key=idempotency_key,
        )
        try:
            self.db.add(hold)
            self.db.flush()
            return hold
        except IntegrityError as exc:
            self.db.rollback()
            self.logger.info(
                "Booking hold insert lost race",
                extra={"spot_id": spot_id, "start_at": start_at.isoformat()},
            )
            raise HoldConflictError(f"Spot {spot_id} is already held for this time") from exc

    def find_active_overlapping(
        self,
        spot_ids: Sequence[str],
        start_at: datetime,
        end_at: datetime,
        now: datetime,
        exclude_user_id: Optional[str] = None,
    ) -> List[BookingHold]:
        if not spot_ids:
            return []
        query = self._build_query().filter(
            BookingHold.spot_id.in_(list(spot_ids)),
            BookingHold.expires_at > now,
            BookingHold.start_at < end_at,
            BookingHold.end_at > start_at,
        )
        if exclude_user_id:
            query = query.filter(
                (BookingHold.user_id.is_(None)) | (BookingHold.user_id != exclude_user_id)
            )
        return self._execute_query(query)

    def delete_expired(self, now: datetime) -> int:
        try:
            deleted = (
                self.db.query(BookingHold)
                .filter(BookingHold.expires_at <= now)
                .delete(synchronize_session="fetch")
            )
            self.db.flush()
            return int(deleted or 0)
        except SQLAlchemyError as e:
            self.logger.error(f"Error purging expired holds: {str(e)}")
            raise RepositoryException(f"Failed to purge holds: {str(e)}")

    def delete_hold(self, hold_id: Optional[str]) -> bool:
        if not hold_id:
            return False
        return self.delete(hold_id)
