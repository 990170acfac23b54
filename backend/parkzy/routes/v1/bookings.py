# backend/parkzy/routes/v1/bookings.py
"""
Booking routes - API v1

Thin wrappers over BookingService. Every handler converts DomainException
into its HTTP form; no business rules live here.

Endpoints:
    POST /bookings                        create (hold + authorize)
    POST /bookings/preview                cost preview
    POST /bookings/{id}/confirm-payment   finish payment authentication
    POST /bookings/{id}/approve           host approves (capture)
    POST /bookings/{id}/decline           host declines (void)
    POST /bookings/{id}/cancel            renter or host cancels
    POST /bookings/{id}/extend            extend, or finalize an extension
    POST /bookings/{id}/reschedule        move a booking before it starts
"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Path, status

from ...api.dependencies import get_booking_service, get_current_caller
from ...core.exceptions import DomainException
from ...principal import Caller
from ...schemas.booking import (
    BookingCancel,
    BookingCostPreviewRequest,
    BookingCreate,
    BookingCreateResponse,
    BookingDecline,
    BookingExtendRequest,
    BookingExtendResponse,
    BookingRescheduleRequest,
    BookingRescheduleResponse,
    BookingResponse,
    CostPreviewResponse,
)
from ...services.booking_service import BookingService, ExtensionResult
from .errors import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["bookings"])

BookingIdPath = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN)


def _extension_response(result: ExtensionResult) -> BookingExtendResponse:
    return BookingExtendResponse(
        status=result.status,
        booking=BookingResponse.model_validate(result.booking),
        extension_minutes=result.extension_minutes,
        amount=result.amount,
        pending_token=result.pending_token,
        client_secret=result.client_secret,
    )


@router.post("", response_model=BookingCreateResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: BookingCreate = Body(...),
    caller: Caller = Depends(get_current_caller),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingCreateResponse:
    """Hold a spot and authorize payment."""
    try:
        result = booking_service.create_booking(
            caller,
            payload.spot_id,
            payload.start_at,
            payload.end_at,
            payment_method_id=payload.payment_method_id,
            customer_id=payload.customer_id,
            guest_email=payload.guest_email,
        )
        return BookingCreateResponse(
            booking=BookingResponse.model_validate(result.booking),
            requires_action=result.requires_action,
            client_secret=result.client_secret,
            guest_access_token=result.guest_access_token,
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/preview", response_model=CostPreviewResponse)
def preview_booking_cost(
    payload: BookingCostPreviewRequest = Body(...),
    booking_service: BookingService = Depends(get_booking_service),
) -> CostPreviewResponse:
    try:
        quote = booking_service.preview_cost(payload.spot_id, payload.start_at, payload.end_at)
        return CostPreviewResponse.model_validate(quote)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/confirm-payment", response_model=BookingResponse)
def confirm_booking_payment(
    booking_id: str = BookingIdPath,
    caller: Caller = Depends(get_current_caller),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = booking_service.confirm_booking_payment(caller, booking_id)
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/approve", response_model=BookingResponse)
def approve_booking(
    booking_id: str = BookingIdPath,
    caller: Caller = Depends(get_current_caller),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Host approves a held request; payment is captured."""
    try:
        booking = booking_service.approve_booking(caller, booking_id)
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/decline", response_model=BookingResponse)
def decline_booking(
    booking_id: str = BookingIdPath,
    payload: Optional[BookingDecline] = Body(None),
    caller: Caller = Depends(get_current_caller),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = booking_service.decline_booking(
            caller, booking_id, reason=payload.reason if payload else None
        )
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(
    booking_id: str = BookingIdPath,
    payload: Optional[BookingCancel] = Body(None),
    caller: Caller = Depends(get_current_caller),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Cancel a booking."""
    try:
        booking = booking_service.cancel_booking(
            caller, booking_id, reason=payload.reason if payload else None
        )
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/extend", response_model=BookingExtendResponse)
def extend_booking(
    booking_id: str = BookingIdPath,
    payload: BookingExtendRequest = Body(...),
    caller: Caller = Depends(get_current_caller),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingExtendResponse:
    """
    Extend a booking.

    When the response status is ``requires_action`` the client completes
    authentication, then calls again with ``finalize=true`` and the
    ``pending_token``.
    """
    try:
        if payload.finalize:
            result = booking_service.finalize_extension(caller, booking_id, payload.pending_token)
        else:
            result = booking_service.extend_booking(
                caller,
                booking_id,
                payload.extension_minutes,
                payment_method_id=payload.payment_method_id,
            )
        return _extension_response(result)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/reschedule", response_model=BookingRescheduleResponse)
def reschedule_booking(
    booking_id: str = BookingIdPath,
    payload: BookingRescheduleRequest = Body(...),
    caller: Caller = Depends(get_current_caller),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingRescheduleResponse:
    """Change the times of a booking before it starts; the price difference is charged or refunded."""
    try:
        result = booking_service.modify_booking_times(
            caller,
            booking_id,
            payload.start_at,
            payload.end_at,
            payment_method_id=payload.payment_method_id,
        )
        return BookingRescheduleResponse(
            booking=BookingResponse.model_validate(result.booking),
            price_difference=result.price_difference,
            new_total_amount=result.booking.total_amount,
        )
    except DomainException as e:
        handle_domain_exception(e)
