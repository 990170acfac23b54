"""In-app notification records written by the booking lifecycle."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, String, Text
import ulid

from ..database import Base
from .types import UTCDateTime


class Notification(Base):
    """A message delivered to a user about one of their bookings."""

    __tablename__ = "notifications"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id = Column(String(26), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    related_booking_id = Column(String(26), nullable=True, index=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Notification user={self.user_id} title={self.title!r}>"


__all__ = ["Notification"]
