"""
Ownership checks shared by the lifecycle and availability services.

Every check takes the caller explicitly; nothing here reads request state.
"""

from hmac import compare_digest

from ..core.enums import CallerRole
from ..core.exceptions import ForbiddenException, UnauthorizedException
from ..models.booking import Booking
from ..models.spot import Spot
from ..principal import Caller


def require_spot_host(caller: Caller, spot: Spot) -> None:
    """Host actions need host mode and ownership of the spot."""
    if caller.role != CallerRole.HOST or not caller.user_id:
        raise ForbiddenException(
            "Only the spot's host can perform this action", code="HOST_REQUIRED"
        )
    if caller.user_id != spot.host_id:
        raise ForbiddenException(
            "You do not own this spot", code="NOT_SPOT_HOST", details={"spot_id": spot.id}
        )


def is_booking_renter(caller: Caller, booking: Booking) -> bool:
    if booking.is_guest:
        token = caller.guest_token
        expected = booking.guest_access_token
        return bool(token and expected and compare_digest(token, expected))
    return bool(caller.user_id) and caller.user_id == booking.renter_id


def require_booking_renter(caller: Caller, booking: Booking) -> None:
    """Renter actions need the renter's identity or the guest access token."""
    if caller.role == CallerRole.GUEST and not caller.guest_token:
        raise UnauthorizedException("Guest access token required", code="GUEST_TOKEN_REQUIRED")
    if not is_booking_renter(caller, booking):
        raise ForbiddenException(
            "You do not have access to this booking",
            code="NOT_BOOKING_RENTER",
            details={"booking_id": booking.id},
        )
