"""Repository for parking spots."""

import logging

from sqlalchemy.orm import Session

from ..models.spot import Spot
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class SpotRepository(BaseRepository[Spot]):
    def __init__(self, db: Session):
        super().__init__(db, Spot)
