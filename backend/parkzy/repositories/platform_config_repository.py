# backend/parkzy/repositories/platform_config_repository.py
"""Key/value platform settings stored as JSON (the fee policy lives here)."""

from datetime import datetime
from typing import Any, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.platform_config import PlatformConfig
from .base_repository import BaseRepository


class PlatformConfigRepository(BaseRepository[PlatformConfig]):
    def __init__(self, db: Session):
        super().__init__(db, PlatformConfig)

    def get_by_key(self, key: str) -> Optional[PlatformConfig]:
        return self.find_one_by(key=key)

    def put(self, key: str, value: Mapping[str, Any], updated_at: datetime) -> PlatformConfig:
        """Insert or overwrite the value for ``key``. Flushes, never commits."""
        record = self.get_by_key(key)
        try:
            if record is None:
                record = PlatformConfig(key=key, value_json=dict(value), updated_at=updated_at)
                self.db.add(record)
            else:
                record.value_json = dict(value)
                record.updated_at = updated_at
            self.db.flush()
        except SQLAlchemyError as e:
            self.logger.error(f"Error storing config {key}: {str(e)}")
            raise RepositoryException(f"Failed to store config {key}: {str(e)}")
        return record
