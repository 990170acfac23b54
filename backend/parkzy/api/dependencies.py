# backend/parkzy/api/dependencies.py
"""
FastAPI dependencies: database session, caller identity and services.

Services are built per request around the request's session. Tests swap
``get_payment_gateway`` and ``get_notifier`` through dependency overrides.
"""

from functools import lru_cache
import logging
from typing import Generator, Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from sqlalchemy.orm import Session

from ..auth import decode_access_token
from ..core.enums import CallerRole
from ..database import get_db as original_get_db
from ..principal import Caller
from ..services.availability_block_service import AvailabilityBlockService
from ..services.availability_service import AvailabilityService
from ..services.booking_service import BookingService
from ..services.notification_service import NotificationService, Notifier
from ..services.payment_gateway import PaymentGateway, StripePaymentGateway

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

_TOKEN_ROLES = {CallerRole.RENTER.value: CallerRole.RENTER, CallerRole.HOST.value: CallerRole.HOST}


def get_db() -> Generator[Session, None, None]:
    """Database session dependency, closed after the request."""
    yield from original_get_db()


def get_current_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    x_guest_token: Optional[str] = Header(None, alias="X-Guest-Token"),
) -> Caller:
    """
    Resolve the caller from a bearer JWT (``sub`` + ``role``) or a guest token.

    A request with neither is treated as an anonymous guest; the services
    decide whether a guest may perform the action.
    """
    if credentials is not None:
        try:
            payload = decode_access_token(credentials.credentials)
        except jwt.PyJWTError as exc:
            logger.info(f"Rejected access token: {type(exc).__name__}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Could not validate credentials",
                headers={"WWW-Authenticate": "Bearer"},
            )
        role = _TOKEN_ROLES.get(str(payload.get("role", CallerRole.RENTER.value)))
        if role is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Unsupported caller role"
            )
        return Caller(user_id=str(payload["sub"]), role=role)
    return Caller.guest(x_guest_token)


@lru_cache(maxsize=1)
def _stripe_gateway() -> StripePaymentGateway:
    return StripePaymentGateway()


def get_payment_gateway() -> PaymentGateway:
    return _stripe_gateway()


def get_notifier(db: Session = Depends(get_db)) -> Notifier:
    return NotificationService(db)


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    return AvailabilityService(db)


def get_booking_service(
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: Notifier = Depends(get_notifier),
) -> BookingService:
    return BookingService(db, payment_gateway=gateway, notifier=notifier)


def get_availability_block_service(
    db: Session = Depends(get_db),
    booking_service: BookingService = Depends(get_booking_service),
) -> AvailabilityBlockService:
    return AvailabilityBlockService(db, booking_service=booking_service)
