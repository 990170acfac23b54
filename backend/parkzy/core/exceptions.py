# backend/parkzy/core/exceptions.py
"""
Domain-specific exceptions for the Parkzy platform.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Convert to an HTTPException using the class status code."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when input validation fails. No state change, no external calls."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class UnauthorizedException(DomainException):
    """Raised when the caller is not authenticated."""

    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenException(DomainException):
    """Raised when the caller is not the host, renter or guest-token holder required."""

    status_code = status.HTTP_403_FORBIDDEN


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class BookingConflictException(ConflictException):
    """Raised when a booking conflicts with existing bookings or holds."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "This spot is no longer available for the requested time",
            code="BOOKING_CONFLICT",
            details=details or {},
        )


class PreconditionException(BusinessRuleException):
    """Raised when an action is attempted from a status that does not allow it."""

    def __init__(
        self,
        action: str,
        current_status: str,
        message: Optional[str] = None,
    ):
        super().__init__(
            message=message or f"Booking cannot be {action}d - current status: {current_status}",
            code="INVALID_BOOKING_STATUS",
            details={"action": action, "current_status": current_status},
        )
        self.action = action
        self.current_status = current_status


class PaymentException(DomainException):
    """
    Raised when a gateway authorize/capture/void/refund call fails or is declined.

    The message is safe to show to the user; the raw gateway error lives in
    ``details["gateway_error"]``.
    """

    status_code = status.HTTP_402_PAYMENT_REQUIRED

    def __init__(
        self,
        message: str,
        *,
        code: str = "PAYMENT_FAILED",
        gateway_error: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        merged: Dict[str, Any] = dict(details or {})
        if gateway_error:
            merged["gateway_error"] = gateway_error
        super().__init__(message=message, code=code, details=merged)


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """


class HoldConflictError(RepositoryException):
    """Raised when a hold insert loses the race for a spot/interval."""
