# backend/parkzy/repositories/availability_repository.py
"""
Availability Repository for the Parkzy platform.

Reads and writes the two availability layers of a spot:
- AvailabilityRule: weekly schedule
- CalendarOverride: date-specific exceptions (replace = delete, then insert)
"""

from datetime import date
import logging
from typing import Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.availability import AvailabilityRule, CalendarOverride
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class AvailabilityRepository(BaseRepository[CalendarOverride]):
    """Repository for weekly rules and calendar overrides."""

    def __init__(self, db: Session):
        super().__init__(db, CalendarOverride)
        self.logger = logging.getLogger(__name__)

    # Weekly rules

    def get_rules(self, spot_id: str) -> List[AvailabilityRule]:
        try:
            return (
                self.db.query(AvailabilityRule)
                .filter(AvailabilityRule.spot_id == spot_id)
                .order_by(AvailabilityRule.day_of_week)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading rules for spot {spot_id}: {str(e)}")
            raise RepositoryException(f"Failed to load availability rules: {str(e)}")

    def get_rule_for_day(self, spot_id: str, day_of_week: int) -> Optional[AvailabilityRule]:
        try:
            return (
                self.db.query(AvailabilityRule)
                .filter(
                    AvailabilityRule.spot_id == spot_id,
                    AvailabilityRule.day_of_week == day_of_week,
                )
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading rule for spot {spot_id}: {str(e)}")
            raise RepositoryException(f"Failed to load availability rule: {str(e)}")

    def replace_rules(self, spot_id: str, rules: Sequence[Dict]) -> List[AvailabilityRule]:
        """Delete the spot's weekly schedule and insert ``rules`` in its place."""
        try:
            self.db.query(AvailabilityRule).filter(AvailabilityRule.spot_id == spot_id).delete(
                synchronize_session="fetch"
            )
            self.db.flush()
            created = [AvailabilityRule(spot_id=spot_id, **data) for data in rules]
            self.db.add_all(created)
            self.db.flush()
            return created
        except SQLAlchemyError as e:
            self.logger.error(f"Error replacing rules for spot {spot_id}: {str(e)}")
            raise RepositoryException(f"Failed to replace availability rules: {str(e)}")

    # Calendar overrides

    def get_override(self, spot_id: str, override_date: date) -> Optional[CalendarOverride]:
        return self.find_one_by(spot_id=spot_id, override_date=override_date)

    def delete_override(self, spot_id: str, override_date: date) -> bool:
        try:
            deleted = (
                self.db.query(CalendarOverride)
                .filter(
                    CalendarOverride.spot_id == spot_id,
                    CalendarOverride.override_date == override_date,
                )
                .delete(synchronize_session="fetch")
            )
            self.db.flush()
            return bool(deleted)
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting override for spot {spot_id}: {str(e)}")
            raise RepositoryException(f"Failed to delete override: {str(e)}")

    def replace_override(self, spot_id: str, override_date: date, **fields) -> CalendarOverride:
        """Delete any override for (spot, date), then insert the new one."""
        self.delete_override(spot_id, override_date)
        return self.create(spot_id=spot_id, override_date=override_date, **fields)
