# backend/parkzy/services/booking_service.py
"""
Booking Lifecycle Engine for the Parkzy platform.

Every operation that touches the payment gateway follows the same shape:

    Phase 1: read + validate in a short transaction
    Phase 2: gateway call with no transaction open
    Phase 3: re-read, re-validate, write in a short transaction

Status changes are resolved through ``core.booking_transitions`` and every
attempt is logged as a ``booking_transition`` record whatever its outcome.
Notifications are sent after commit and never fail the transition.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..core.booking_lock import booking_lock_sync
from ..core.booking_transitions import BookingAction, resolve_transition
from ..core.config import Settings, settings as default_settings
from ..core.constants import (
    HOST_DECLINED_REASON,
    REQUEST_EXPIRED_REASON,
)
from ..core.enums import CallerRole
from ..core.exceptions import (
    BookingConflictException,
    ConflictException,
    DomainException,
    ForbiddenException,
    HoldConflictError,
    NotFoundException,
    PaymentException,
    PreconditionException,
    RepositoryException,
    ServiceException,
    UnauthorizedException,
    ValidationException,
)
from ..core.timezone_utils import ensure_utc, utc_now
from ..core.ulid_helper import generate_guest_token, generate_ulid
from ..models.booking import (
    Booking,
    BookingHold,
    BookingStatus,
    PendingExtension,
    PendingExtensionStatus,
)
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..principal import Caller
from ..repositories.factory import RepositoryFactory
from .access_policy import require_booking_renter, require_spot_host
from .availability_service import AvailabilityService
from .base import BaseService
from .notification_service import Notifier
from .payment_gateway import AuthorizationResult, CaptureResult, PaymentGateway
from .pricing_service import PriceQuote, PricingService, to_cents, to_money

logger = logging.getLogger(__name__)


@dataclass
class BookingCreateResult:
    booking: Booking
    requires_action: bool = False
    client_secret: Optional[str] = None
    guest_access_token: Optional[str] = None


@dataclass
class ExtensionResult:
    status: str  # "completed" or "requires_action"
    booking: Booking
    extension_minutes: int
    amount: Decimal
    pending_token: Optional[str] = None
    client_secret: Optional[str] = None


@dataclass
class RescheduleResult:
    booking: Booking
    price_difference: Decimal  # > 0 charged, < 0 refunded


class BookingService(BaseService):
    """State machine for bookings: hold, approve/decline, extend, cancel, refund."""

    def __init__(
        self,
        db: Session,
        payment_gateway: PaymentGateway,
        notifier: Optional[Notifier] = None,
        availability_service: Optional[AvailabilityService] = None,
        pricing_service: Optional[PricingService] = None,
        config: Optional[Settings] = None,
    ):
        super().__init__(db)
        self.payment_gateway = payment_gateway
        self.notifier = notifier
        self.availability_service = availability_service or AvailabilityService(db)
        self.pricing_service = pricing_service or PricingService(db)
        self.config = config or default_settings
        self.repository = RepositoryFactory.create_booking_repository(db)
        self.hold_repository = RepositoryFactory.create_booking_hold_repository(db)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    @BaseService.measure_operation("create_booking")
    def create_booking(
        self,
        caller: Caller,
        spot_id: str,
        start_at: datetime,
        end_at: datetime,
        *,
        payment_method_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        guest_email: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BookingCreateResult:
        """
        Hold a spot and authorize payment.

        The hold row is committed before the gateway is called so a racing
        renter sees it; conflicts are re-checked after authorization and a
        lost race voids the authorization.

        Raises:
            ValidationException: bad interval, self-booking, guest without email
            BookingConflictException: the interval is taken or closed
            PaymentException: no payment method, or authorization failed
        """
        now = now or utc_now()
        start_at, end_at = ensure_utc(start_at), ensure_utc(end_at)
        self._validate_new_booking(caller, start_at, end_at, guest_email, now)
        if not payment_method_id:
            raise PaymentException(
                "Please add a payment method before booking", code="no_payment_method"
            )

        # Phase 1: validate availability and take the hold
        try:
            with self.transaction():
                spot = self.availability_service.get_spot(spot_id)
                if caller.user_id and caller.user_id == spot.host_id:
                    raise ValidationException(
                        "You cannot book your own spot", code="SELF_BOOKING"
                    )
                self.hold_repository.delete_expired(now)
                self.availability_service.check_bookable(
                    spot, start_at, end_at, exclude_user_id=caller.user_id, now=now
                )
                quote = self.pricing_service.quote_interval(spot.hourly_rate, start_at, end_at)
                hold = self.hold_repository.insert_hold(
                    spot_id=spot.id,
                    user_id=caller.user_id,
                    start_at=start_at,
                    end_at=end_at,
                    expires_at=BookingHold.expiry_from(now, self.config.booking_hold_ttl_minutes),
                    idempotency_key=generate_ulid(),
                )
                hold_id = hold.id
                instant_book = bool(spot.instant_book)
                host_id = spot.host_id
        except HoldConflictError as exc:
            self._log_transition(None, BookingAction.CREATE, None, None, caller, "rejected")
            raise BookingConflictException(
                details={"spot_id": spot_id, "reason": "held_by_another_renter"}
            ) from exc
        except DomainException as exc:
            self._log_transition(
                None, BookingAction.CREATE, None, None, caller, "rejected", error=exc.code
            )
            raise

        # Phase 2: authorize (no transaction)
        try:
            auth = self.payment_gateway.authorize(
                amount_cents=quote.total_cents,
                payment_method_id=payment_method_id,
                customer_id=customer_id,
                idempotency_key=f"booking-auth-{hold_id}",
                metadata={"spot_id": spot_id, "hold_id": hold_id},
            )
        except PaymentException as exc:
            with self.transaction():
                self.hold_repository.delete_hold(hold_id)
            self._log_transition(
                None, BookingAction.CREATE, None, None, caller, "payment_failed", error=exc.code
            )
            raise

        # Phase 3: re-check conflicts, then persist the booking
        with self.transaction():
            lost_race = self._lost_race(spot_id, start_at, end_at, hold_id, now)
            booking: Optional[Booking] = None
            guest_token: Optional[str] = None
            if not lost_race:
                guest_token = generate_guest_token() if caller.is_guest else None
                status = BookingStatus.PENDING if auth.requires_action else BookingStatus.HELD
                booking = self.repository.create(
                    spot_id=spot_id,
                    renter_id=caller.user_id,
                    is_guest=caller.is_guest,
                    guest_email=guest_email,
                    guest_access_token=guest_token,
                    status=status.value,
                    start_at=start_at,
                    end_at=end_at,
                    hourly_rate=quote.hourly_rate,
                    subtotal=quote.subtotal,
                    service_fee=quote.service_fee,
                    platform_fee=quote.platform_fee,
                    total_amount=quote.total_amount,
                    host_earnings=quote.host_earnings,
                    fee_policy_version=quote.fee_policy_version,
                    payment_method_id=payment_method_id,
                    customer_id=customer_id,
                    payment_intent_id=auth.intent_id,
                    hold_id=hold_id,
                    created_at=now,
                )

        if booking is None:
            self._void_quietly(auth.intent_id, f"booking-auth-void-{hold_id}")
            with self.transaction():
                self.hold_repository.delete_hold(hold_id)
            self._log_transition(None, BookingAction.CREATE, None, None, caller, "rejected")
            raise BookingConflictException(details={"spot_id": spot_id, "reason": "race_lost"})

        self._log_transition(
            booking.id, BookingAction.CREATE, None, booking.status, caller, "success"
        )
        result = BookingCreateResult(
            booking=booking,
            requires_action=auth.requires_action,
            client_secret=auth.client_secret,
            guest_access_token=guest_token,
        )
        if auth.requires_action:
            return result

        self._after_authorized(booking, caller, instant_book, host_id)
        result.booking = self._get_booking(booking.id)
        return result

    def _validate_new_booking(
        self,
        caller: Caller,
        start_at: datetime,
        end_at: datetime,
        guest_email: Optional[str],
        now: datetime,
    ) -> None:
        if caller.role not in (CallerRole.RENTER, CallerRole.GUEST):
            raise ForbiddenException(
                "Switch to renter mode to book a spot", code="RENTER_MODE_REQUIRED"
            )
        if caller.role == CallerRole.RENTER and not caller.user_id:
            raise UnauthorizedException("Sign in to book a spot")
        if caller.is_guest and not guest_email:
            raise ValidationException(
                "Guest bookings require a contact email", code="GUEST_EMAIL_REQUIRED"
            )
        if end_at <= start_at:
            raise ValidationException("End time must be after start time", code="INVALID_INTERVAL")
        if start_at < now - timedelta(minutes=self.config.max_booking_past_skew_minutes):
            raise ValidationException(
                "Booking cannot start in the past", code="START_IN_PAST"
            )

    def _lost_race(
        self,
        spot_id: str,
        start_at: datetime,
        end_at: datetime,
        hold_id: str,
        now: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> bool:
        """
        True when a booking now occupies the interval, or an overlapping hold
        was taken before ``hold_id``.

        Hold ids are ULIDs and sort by creation time, so of two renters racing
        for overlapping intervals the earlier hold proceeds and the later one
        backs off.
        """
        if self.availability_service.find_conflicting_bookings(
            [spot_id], start_at, end_at, exclude_booking_id=exclude_booking_id
        ):
            return True
        return any(
            hold.id < hold_id
            for hold in self.hold_repository.find_active_overlapping(
                [spot_id], start_at, end_at, now
            )
        )

    def _after_authorized(
        self, booking: Booking, caller: Caller, instant_book: bool, host_id: str
    ) -> None:
        """Instant-book spots capture immediately; others wait for the host."""
        if instant_book:
            try:
                self._capture_and_activate(booking.id, caller, BookingAction.AUTO_APPROVE)
                return
            except PaymentException as exc:
                logger.warning(
                    "Instant-book capture failed; leaving booking for host review",
                    extra={"booking_id": booking.id, "error": exc.message},
                )
        self._notify(
            host_id,
            "New Booking Request",
            "You have a new booking request awaiting your approval.",
            booking.id,
        )

    @BaseService.measure_operation("confirm_booking_payment")
    def confirm_booking_payment(self, caller: Caller, booking_id: str) -> Booking:
        """Move ``pending`` to ``held`` once the renter completed authentication."""
        with self.transaction():
            booking = self._get_booking(booking_id)
            require_booking_renter(caller, booking)
            from_status = booking.status
            self._resolve(booking, BookingAction.CONFIRM_PAYMENT, caller)
            intent_id = booking.payment_intent_id

        auth = self.payment_gateway.confirm(intent_id)
        if not auth.is_authorized:
            self._log_transition(
                booking_id, BookingAction.CONFIRM_PAYMENT, from_status, None, caller,
                "payment_failed", intent_status=auth.status,
            )
            if auth.requires_action:
                raise PaymentException(
                    "Please complete payment authentication to continue",
                    code="payment_requires_action",
                    details={"client_secret": auth.client_secret},
                )
            raise PaymentException(
                "Your payment could not be authorized. Please use a different payment method.",
                code="authorization_failed",
                details={"intent_status": auth.status},
            )

        with self.transaction():
            booking = self._get_booking(booking_id, for_update=True)
            target = self._resolve(booking, BookingAction.CONFIRM_PAYMENT, caller)
            booking.status = target.value
            spot = booking.spot

        self._log_transition(
            booking_id, BookingAction.CONFIRM_PAYMENT, from_status, target, caller, "success"
        )
        self._after_authorized(booking, caller, bool(spot.instant_book), spot.host_id)
        return self._get_booking(booking_id)

    # ------------------------------------------------------------------
    # Host decisions
    # ------------------------------------------------------------------

    @BaseService.measure_operation("approve_booking")
    def approve_booking(self, caller: Caller, booking_id: str) -> Booking:
        """
        Capture the authorization and activate the booking.

        Capture failure leaves the booking ``held``; the host can retry.
        """
        with self.transaction():
            booking = self._get_booking(booking_id)
            require_spot_host(caller, booking.spot)
            self._resolve(booking, BookingAction.APPROVE, caller)
        return self._capture_and_activate(booking_id, caller, BookingAction.APPROVE)

    def _capture_and_activate(
        self, booking_id: str, caller: Caller, action: BookingAction
    ) -> Booking:
        with booking_lock_sync(booking_id) as acquired:
            if not acquired:
                raise ConflictException(
                    "This booking is being updated. Please try again.", code="BOOKING_LOCKED"
                )
            with self.transaction():
                booking = self._get_booking(booking_id, for_update=True)
                from_status = booking.status
                self._resolve(booking, action, caller)
                intent_id = booking.payment_intent_id
            if not intent_id:
                raise PaymentException(
                    "This booking has no authorized payment to capture",
                    code="missing_payment_intent",
                )

            try:
                capture: CaptureResult = self.payment_gateway.capture(
                    intent_id, idempotency_key=f"capture-{booking_id}"
                )
            except PaymentException as exc:
                self._log_transition(
                    booking_id, action, from_status, None, caller, "payment_failed",
                    error=exc.code,
                )
                raise

            with self.transaction():
                booking = self._get_booking(booking_id, for_update=True)
                target = self._resolve(booking, action, caller)
                booking.status = target.value
                booking.charge_id = capture.charge_id
                booking.confirmed_at = utc_now()
                self.hold_repository.delete_hold(booking.hold_id)
                booking.hold_id = None
                renter_id = booking.renter_id
                address = booking.spot.display_address

        self._log_transition(
            booking_id, action, from_status, target, caller, "success",
            already_captured=capture.already_captured,
        )
        self._notify(
            renter_id,
            "Booking Approved!",
            f"Your booking at {address} has been approved.",
            booking_id,
        )
        return booking

    @BaseService.measure_operation("decline_booking")
    def decline_booking(
        self, caller: Caller, booking_id: str, reason: Optional[str] = None
    ) -> Booking:
        """Void the authorization; the renter is never charged."""
        with self.transaction():
            booking = self._get_booking(booking_id)
            require_spot_host(caller, booking.spot)
            from_status = booking.status
            self._resolve(booking, BookingAction.DECLINE, caller)

        with booking_lock_sync(booking_id) as acquired:
            if not acquired:
                raise ConflictException(
                    "This booking is being updated. Please try again.", code="BOOKING_LOCKED"
                )
            with self.transaction():
                booking = self._get_booking(booking_id, for_update=True)
                self._resolve(booking, BookingAction.DECLINE, caller)
                intent_id = booking.payment_intent_id

            if intent_id:
                try:
                    self.payment_gateway.void(intent_id, idempotency_key=f"void-{booking_id}")
                except PaymentException as exc:
                    self._log_transition(
                        booking_id, BookingAction.DECLINE, from_status, None, caller,
                        "payment_failed", error=exc.code,
                    )
                    raise

            with self.transaction():
                booking = self._get_booking(booking_id, for_update=True)
                target = self._resolve(booking, BookingAction.DECLINE, caller)
                booking.status = target.value
                booking.cancellation_reason = reason or HOST_DECLINED_REASON
                booking.canceled_at = utc_now()
                booking.canceled_by_id = caller.id
                self.hold_repository.delete_hold(booking.hold_id)
                booking.hold_id = None

        self._log_transition(booking_id, BookingAction.DECLINE, from_status, target, caller, "success")
        self._notify(
            booking.renter_id,
            "Booking Declined",
            f"Your booking request was declined: {booking.cancellation_reason}",
            booking_id,
        )
        return booking

    # ------------------------------------------------------------------
    # Extension
    # ------------------------------------------------------------------

    def _validate_extension_minutes(self, extension_minutes: int) -> None:
        low, high = self.config.min_extension_minutes, self.config.max_extension_minutes
        if not isinstance(extension_minutes, int) or not low <= extension_minutes <= high:
            raise ValidationException(
                f"Extensions must add between {low} and {high} minutes",
                code="INVALID_EXTENSION",
                details={"extension_minutes": extension_minutes, "min": low, "max": high},
            )

    @BaseService.measure_operation("quote_extension")
    def quote_extension(
        self, caller: Caller, booking_id: str, extension_minutes: int
    ) -> PriceQuote:
        self._validate_extension_minutes(extension_minutes)
        booking = self._get_booking(booking_id)
        require_booking_renter(caller, booking)
        return self.pricing_service.quote(booking.hourly_rate, extension_minutes)

    @BaseService.measure_operation("extend_booking")
    def extend_booking(
        self,
        caller: Caller,
        booking_id: str,
        extension_minutes: int,
        *,
        payment_method_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ExtensionResult:
        """
        Buy more time with a new authorize + capture.

        When the gateway needs customer authentication the result carries a
        ``pending_token``; ``end_at`` only moves once ``finalize_extension``
        succeeds with it.
        """
        self._validate_extension_minutes(extension_minutes)
        now = now or utc_now()

        # Phase 1
        with self.transaction():
            booking = self._get_booking(booking_id)
            require_booking_renter(caller, booking)
            from_status = booking.status
            self._resolve(booking, BookingAction.EXTEND, caller)
            if booking.end_at <= now:
                raise PreconditionException(
                    action=BookingAction.EXTEND.value,
                    current_status=booking.status,
                    message="This booking has already ended",
                )
            new_end = booking.end_at + timedelta(minutes=extension_minutes)
            self.availability_service.check_bookable(
                booking.spot,
                booking.end_at,
                new_end,
                exclude_booking_id=booking.id,
                exclude_user_id=booking.renter_id,
                now=now,
            )
            method = payment_method_id or booking.payment_method_id
            customer_id = booking.customer_id
            quote = self.pricing_service.quote(booking.hourly_rate, extension_minutes)
        if not method:
            raise PaymentException(
                "Please add a payment method to extend your booking", code="no_payment_method"
            )

        # Phase 2
        request_key = generate_ulid()
        try:
            auth: AuthorizationResult = self.payment_gateway.authorize(
                amount_cents=quote.total_cents,
                payment_method_id=method,
                customer_id=customer_id,
                idempotency_key=f"extend-auth-{booking_id}-{request_key}",
                metadata={"booking_id": booking_id, "type": "extension"},
            )
        except PaymentException as exc:
            self._log_transition(
                booking_id, BookingAction.EXTEND, from_status, None, caller, "payment_failed",
                error=exc.code,
            )
            raise

        # Phase 3: record the pending extension before anything is captured
        with self.transaction():
            pending = self.repository.create_pending_extension(
                booking_id=booking_id,
                payment_intent_id=auth.intent_id,
                extension_minutes=extension_minutes,
                subtotal=quote.subtotal,
                service_fee=quote.service_fee,
                platform_fee=quote.platform_fee,
                amount=quote.total_amount,
                host_earnings=quote.host_earnings,
                status=PendingExtensionStatus.REQUIRES_ACTION.value,
                created_at=now,
            )
            pending_id = pending.id

        if auth.requires_action:
            self._log_transition(
                booking_id, BookingAction.EXTEND, from_status, None, caller, "requires_action",
                pending_extension_id=pending_id,
            )
            return ExtensionResult(
                status="requires_action",
                booking=self._get_booking(booking_id),
                extension_minutes=extension_minutes,
                amount=quote.total_amount,
                pending_token=pending_id,
                client_secret=auth.client_secret,
            )

        return self._complete_extension(caller, booking_id, pending_id, confirm=False)

    @BaseService.measure_operation("finalize_extension")
    def finalize_extension(
        self, caller: Caller, booking_id: str, pending_token: str
    ) -> ExtensionResult:
        """Second step of an extension that needed customer authentication."""
        with self.transaction():
            booking = self._get_booking(booking_id)
            require_booking_renter(caller, booking)
            pending = self.repository.get_pending_extension(pending_token)
            if pending is None or pending.booking_id != booking_id:
                raise NotFoundException(
                    "Extension request not found", code="PENDING_EXTENSION_NOT_FOUND"
                )
            pending_status = pending.status
            minutes, amount = pending.extension_minutes, Decimal(pending.amount)

        if pending_status == PendingExtensionStatus.FINALIZED.value:
            return ExtensionResult(
                status="completed",
                booking=booking,
                extension_minutes=minutes,
                amount=amount,
                pending_token=pending_token,
            )
        if pending_status != PendingExtensionStatus.REQUIRES_ACTION.value:
            raise PreconditionException(
                action="finalize_extension",
                current_status=pending_status,
                message=f"Extension cannot be finalized - current status: {pending_status}",
            )
        return self._complete_extension(caller, booking_id, pending_token, confirm=True)

    def _complete_extension(
        self, caller: Caller, booking_id: str, pending_id: str, *, confirm: bool
    ) -> ExtensionResult:
        """
        Capture an authorized extension and apply it.

        The booking status and the extra time are re-checked under the lock
        before anything is captured. When either check fails the
        authorization is voided and the extension abandoned.
        """
        with booking_lock_sync(booking_id) as acquired:
            if not acquired:
                if not confirm:
                    # The token was never handed out, so nobody could finalize it
                    self._release_extensions(booking_id, [pending_id])
                raise ConflictException(
                    "This booking is being updated. Please try again.", code="BOOKING_LOCKED"
                )
            try:
                from_status, intent_id, minutes, amount = self._load_open_extension(
                    caller, booking_id, pending_id
                )
                if confirm:
                    self._confirm_extension_payment(caller, booking_id, intent_id, from_status)
                    # The extra time may have been booked during authentication
                    self._load_open_extension(caller, booking_id, pending_id)
            except (PreconditionException, BookingConflictException):
                self._release_extensions(booking_id, [pending_id])
                raise

            try:
                capture = self.payment_gateway.capture(
                    intent_id, idempotency_key=f"extension-capture-{pending_id}"
                )
            except PaymentException as exc:
                self._release_extensions(booking_id, [pending_id])
                self._log_transition(
                    booking_id, BookingAction.EXTEND, from_status, None, caller,
                    "payment_failed", error=exc.code,
                )
                raise

            try:
                with self.transaction():
                    booking = self._apply_extension(booking_id, pending_id, capture, caller)
            except (DomainException, RepositoryException) as exc:
                self._handle_finalize_failure(booking_id, pending_id, capture, amount, exc)

        self._log_transition(
            booking_id, BookingAction.EXTEND, from_status, booking.status, caller, "success",
            extension_minutes=minutes,
        )
        self._notify(
            booking.spot.host_id,
            "Booking Extended",
            f"A booking at {booking.spot.display_address} was extended by {minutes} minutes.",
            booking_id,
        )
        return ExtensionResult(
            status="completed",
            booking=booking,
            extension_minutes=minutes,
            amount=amount,
            pending_token=pending_id,
        )

    def _load_open_extension(
        self, caller: Caller, booking_id: str, pending_id: str
    ) -> Tuple[str, str, int, Decimal]:
        """Re-validate an unfinalized extension; returns (status, intent, minutes, amount)."""
        with self.transaction():
            booking = self._get_booking(booking_id, for_update=True)
            self._resolve(booking, BookingAction.EXTEND, caller)
            pending = self.repository.get_pending_extension(pending_id)
            if pending.status != PendingExtensionStatus.REQUIRES_ACTION.value:
                raise PreconditionException(
                    action="finalize_extension",
                    current_status=pending.status,
                    message=f"Extension cannot be finalized - current status: {pending.status}",
                )
            try:
                self._require_extension_window(booking, pending.extension_minutes)
            except BookingConflictException as exc:
                self._log_transition(
                    booking_id, BookingAction.EXTEND, booking.status, None, caller, "rejected",
                    error=exc.code, pending_extension_id=pending_id,
                )
                raise
            return (
                booking.status,
                pending.payment_intent_id,
                pending.extension_minutes,
                Decimal(pending.amount),
            )

    def _confirm_extension_payment(
        self, caller: Caller, booking_id: str, intent_id: str, from_status: str
    ) -> None:
        state = self.payment_gateway.confirm(intent_id)
        if state.is_authorized:
            return
        self._log_transition(
            booking_id, BookingAction.EXTEND, from_status, None, caller,
            "payment_failed", intent_status=state.status,
        )
        raise PaymentException(
            "Please complete payment authentication to extend your booking",
            code="payment_requires_action",
            details={"client_secret": state.client_secret},
        )

    def _require_extension_window(self, booking: Booking, extension_minutes: int) -> None:
        new_end = booking.end_at + timedelta(minutes=extension_minutes)
        conflicts = self.availability_service.find_conflicting_bookings(
            [booking.spot_id], booking.end_at, new_end, exclude_booking_id=booking.id
        )
        if conflicts:
            raise BookingConflictException(
                "The extended time is no longer available",
                details={"conflicting_booking_ids": [b.id for b in conflicts]},
            )

    def _release_extensions(
        self, booking_id: str, pending_ids: Optional[Sequence[str]] = None
    ) -> int:
        """
        Void the authorizations of extensions that will never be finalized.

        ``pending_ids`` defaults to every open extension of the booking. Rows
        no longer waiting on finalize are left alone.
        """
        with self.transaction():
            if pending_ids is None:
                rows = self.repository.get_open_pending_extensions(booking_id)
            else:
                rows = [self.repository.get_pending_extension(pid) for pid in pending_ids]
            open_rows = [
                (p.id, p.payment_intent_id)
                for p in rows
                if p is not None and p.status == PendingExtensionStatus.REQUIRES_ACTION.value
            ]
        if not open_rows:
            return 0

        for pending_id, intent_id in open_rows:
            self._void_quietly(intent_id, f"extension-void-{pending_id}")
        with self.transaction():
            for pending_id, _ in open_rows:
                pending = self.repository.get_pending_extension(pending_id)
                pending.status = PendingExtensionStatus.ABANDONED.value
        logger.info(
            "Released unfinalized extensions",
            extra={"booking_id": booking_id, "pending_extension_ids": [p for p, _ in open_rows]},
        )
        return len(open_rows)

    def _apply_extension(
        self, booking_id: str, pending_id: str, capture: CaptureResult, caller: Caller
    ) -> Booking:
        booking = self._get_booking(booking_id, for_update=True)
        target = self._resolve(booking, BookingAction.EXTEND, caller)
        pending: PendingExtension = self.repository.get_pending_extension(pending_id)
        new_end = booking.end_at + timedelta(minutes=pending.extension_minutes)
        self._require_extension_window(booking, pending.extension_minutes)
        charge = self.repository.add_extension_charge(
            booking_id=booking.id,
            amount=pending.amount,
            host_earnings=pending.host_earnings,
            minutes_added=pending.extension_minutes,
            hours_added=to_money(Decimal(pending.extension_minutes) / Decimal(60)),
            payment_intent_id=pending.payment_intent_id,
            charge_id=capture.charge_id,
        )
        booking.end_at = new_end
        booking.status = target.value
        booking.subtotal = Decimal(booking.subtotal) + Decimal(pending.subtotal)
        booking.service_fee = Decimal(booking.service_fee) + Decimal(pending.service_fee)
        booking.platform_fee = Decimal(booking.platform_fee) + Decimal(pending.platform_fee)
        booking.total_amount = Decimal(booking.total_amount) + Decimal(pending.amount)
        booking.host_earnings = Decimal(booking.host_earnings) + Decimal(pending.host_earnings)
        pending.status = PendingExtensionStatus.FINALIZED.value
        pending.extension_charge_id = charge.id
        pending.finalized_at = utc_now()
        return booking

    def _handle_finalize_failure(
        self,
        booking_id: str,
        pending_id: str,
        capture: CaptureResult,
        amount: Decimal,
        error: Exception,
    ) -> None:
        """Money moved but the booking write failed; apply the configured policy."""
        policy = self.config.extension_finalize_failure_policy
        logger.error(
            "Extension captured but could not be applied",
            extra={
                "booking_id": booking_id,
                "pending_extension_id": pending_id,
                "charge_id": capture.charge_id,
                "policy": policy,
                "error": str(error),
            },
        )
        outcome = PendingExtensionStatus.NEEDS_REVIEW
        if policy == "refund" and capture.charge_id:
            try:
                self.payment_gateway.refund(
                    capture.charge_id,
                    to_cents(amount),
                    idempotency_key=f"extension-refund-{pending_id}",
                )
                outcome = PendingExtensionStatus.REFUNDED
            except PaymentException as refund_error:
                logger.error(
                    "Automatic refund of failed extension failed",
                    extra={"booking_id": booking_id, "error": refund_error.message},
                )

        with self.transaction():
            pending = self.repository.get_pending_extension(pending_id)
            pending.status = outcome.value
        prometheus_metrics.record_booking_transition(BookingAction.EXTEND.value, outcome.value)

        if outcome == PendingExtensionStatus.REFUNDED:
            raise ServiceException(
                "Your extension could not be applied and the charge has been refunded",
                code="EXTENSION_REFUNDED",
                details={"pending_extension_id": pending_id},
            )
        raise ServiceException(
            "Your extension payment was received but could not be applied. "
            "Our support team will follow up.",
            code="EXTENSION_NEEDS_REVIEW",
            details={"pending_extension_id": pending_id},
        )

    # ------------------------------------------------------------------
    # Rescheduling
    # ------------------------------------------------------------------

    @BaseService.measure_operation("modify_booking_times")
    def modify_booking_times(
        self,
        caller: Caller,
        booking_id: str,
        start_at: datetime,
        end_at: datetime,
        *,
        payment_method_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> RescheduleResult:
        """
        Move a confirmed booking to a new interval before it starts.

        The new interval is checked, re-priced under the current fee policy
        and held while money moves. A higher price is captured as a separate
        charge. A lower one is refunded from the original charge first, then
        from later charges, newest first. Every movement is kept as a
        ``BookingAdjustment`` so a cancellation refunds exactly what each
        charge still holds.

        Raises:
            ValidationException: bad interval
            PreconditionException: not active/paid, or already started
            BookingConflictException: the new interval is closed or taken
            PaymentException: no payment method, or the gateway failed
        """
        now = now or utc_now()
        start_at, end_at = ensure_utc(start_at), ensure_utc(end_at)
        if end_at <= start_at:
            raise ValidationException("End time must be after start time", code="INVALID_INTERVAL")
        if start_at < now - timedelta(minutes=self.config.max_booking_past_skew_minutes):
            raise ValidationException("Booking cannot start in the past", code="START_IN_PAST")

        # Phase 1: validate, price and hold the new interval
        try:
            with self.transaction():
                booking = self._get_booking(booking_id)
                require_booking_renter(caller, booking)
                from_status = booking.status
                self._require_reschedulable(booking, caller, now)
                spot = booking.spot
                self.hold_repository.delete_expired(now)
                self.availability_service.check_bookable(
                    spot,
                    start_at,
                    end_at,
                    exclude_booking_id=booking.id,
                    exclude_user_id=booking.renter_id,
                    now=now,
                )
                quote = self.pricing_service.quote_interval(spot.hourly_rate, start_at, end_at)
                method = payment_method_id or booking.payment_method_id
                customer_id = booking.customer_id
                if quote.total_amount > Decimal(booking.total_amount) and not method:
                    raise PaymentException(
                        "Please add a payment method to reschedule your booking",
                        code="no_payment_method",
                    )
                hold_id = self.hold_repository.insert_hold(
                    spot_id=spot.id,
                    user_id=booking.renter_id,
                    start_at=start_at,
                    end_at=end_at,
                    expires_at=BookingHold.expiry_from(now, self.config.booking_hold_ttl_minutes),
                    idempotency_key=generate_ulid(),
                ).id
        except HoldConflictError as exc:
            self._log_transition(
                booking_id, BookingAction.MODIFY_TIMES, None, None, caller, "rejected"
            )
            raise BookingConflictException(
                details={"booking_id": booking_id, "reason": "held_by_another_renter"}
            ) from exc
        except (BookingConflictException, PaymentException) as exc:
            self._log_transition(
                booking_id, BookingAction.MODIFY_TIMES, None, None, caller, "rejected",
                error=exc.code,
            )
            raise

        # Phases 2 and 3 run under the booking lock
        try:
            with booking_lock_sync(booking_id) as acquired:
                if not acquired:
                    raise ConflictException(
                        "This booking is being updated. Please try again.", code="BOOKING_LOCKED"
                    )
                booking, difference = self._move_booking(
                    caller, booking_id, hold_id, start_at, end_at, quote, method, customer_id, now
                )
        except BookingConflictException as exc:
            self._log_transition(
                booking_id, BookingAction.MODIFY_TIMES, from_status, None, caller, "rejected",
                error=exc.code,
            )
            raise
        except PaymentException as exc:
            self._log_transition(
                booking_id, BookingAction.MODIFY_TIMES, from_status, None, caller,
                "payment_failed", error=exc.code,
            )
            raise
        finally:
            with self.transaction():
                self.hold_repository.delete_hold(hold_id)

        self._log_transition(
            booking_id, BookingAction.MODIFY_TIMES, from_status, booking.status, caller, "success",
            price_difference=str(difference),
        )
        self._notify(
            booking.spot.host_id,
            "Booking Times Modified",
            f"A booking at {booking.spot.display_address} has been rescheduled.",
            booking_id,
        )
        self._notify(
            booking.renter_id,
            "Booking Updated",
            "Your booking times have been successfully modified.",
            booking_id,
        )
        return RescheduleResult(booking=booking, price_difference=difference)

    def _require_reschedulable(self, booking: Booking, caller: Caller, now: datetime) -> None:
        self._resolve(booking, BookingAction.MODIFY_TIMES, caller)
        if booking.has_started(now):
            self._log_transition(
                booking.id, BookingAction.MODIFY_TIMES, booking.status, None, caller, "rejected"
            )
            raise PreconditionException(
                action=BookingAction.MODIFY_TIMES.value,
                current_status=booking.status,
                message="Bookings cannot be rescheduled after they start. Extend it instead.",
            )

    def _move_booking(
        self,
        caller: Caller,
        booking_id: str,
        hold_id: str,
        start_at: datetime,
        end_at: datetime,
        quote: PriceQuote,
        payment_method_id: Optional[str],
        customer_id: Optional[str],
        now: datetime,
    ) -> Tuple[Booking, Decimal]:
        with self.transaction():
            booking = self._get_booking(booking_id, for_update=True)
            self._require_reschedulable(booking, caller, now)
            if self._lost_race(
                booking.spot_id, start_at, end_at, hold_id, now, exclude_booking_id=booking_id
            ):
                raise BookingConflictException(
                    details={"booking_id": booking_id, "reason": "race_lost"}
                )
            difference = quote.total_amount - Decimal(booking.total_amount)
            allocation = self._allocate_refund(booking, -difference) if difference < 0 else []
            # One key prefix per committed reschedule; a retried attempt reuses it
            key = f"reschedule-{booking_id}-{len(booking.adjustments)}"
            previous = {"previous_start_at": booking.start_at, "previous_end_at": booking.end_at}

        if difference > 0:
            movements = [
                self._charge_difference(booking_id, difference, payment_method_id, customer_id, key)
            ]
        else:
            movements = self._refund_difference(booking_id, allocation, key)

        try:
            with self.transaction():
                booking = self._get_booking(booking_id, for_update=True)
                target = self._resolve(booking, BookingAction.MODIFY_TIMES, caller)
                for movement in movements:
                    self.repository.add_adjustment(
                        booking, new_start_at=start_at, new_end_at=end_at, **previous, **movement
                    )
                booking.status = target.value
                booking.start_at = start_at
                booking.end_at = end_at
                booking.hourly_rate = quote.hourly_rate
                booking.subtotal = quote.subtotal
                booking.service_fee = quote.service_fee
                booking.platform_fee = quote.platform_fee
                booking.total_amount = quote.total_amount
                booking.host_earnings = quote.host_earnings
                booking.fee_policy_version = quote.fee_policy_version
                self.hold_repository.delete_hold(hold_id)
        except (DomainException, RepositoryException) as exc:
            if movements:
                logger.error(
                    "Reschedule payment moved but the booking was not updated",
                    extra={
                        "booking_id": booking_id,
                        "charge_ids": [m["charge_id"] for m in movements],
                        "price_difference": str(difference),
                        "error": str(exc),
                    },
                )
            raise
        return booking, difference

    @staticmethod
    def _allocate_refund(booking: Booking, amount: Decimal) -> List[Tuple[str, Decimal]]:
        """Split ``amount`` over captured charges: the original first, then newest first."""
        sources: List[Tuple[str, Decimal]] = []
        if booking.charge_id:
            sources.append((booking.charge_id, booking.base_charge_amount))
        later = sorted(
            list(booking.extension_charges) + booking.reschedule_charges,
            key=lambda row: (row.created_at, row.id),
            reverse=True,
        )
        for row in later:
            if row.charge_id:
                sources.append(
                    (row.charge_id, Decimal(row.amount) - booking.refunded_from(row.charge_id))
                )

        allocation: List[Tuple[str, Decimal]] = []
        remaining = amount
        for charge_id, available in sources:
            take = min(remaining, available)
            if take > 0:
                allocation.append((charge_id, take))
                remaining -= take
        if remaining > 0:
            raise PaymentException(
                "This booking has no captured payment left to refund",
                code="refund_unavailable",
                details={"shortfall": str(remaining)},
            )
        return allocation

    def _charge_difference(
        self,
        booking_id: str,
        amount: Decimal,
        payment_method_id: str,
        customer_id: Optional[str],
        key: str,
    ) -> Dict[str, object]:
        auth = self.payment_gateway.authorize(
            amount_cents=to_cents(amount),
            payment_method_id=payment_method_id,
            customer_id=customer_id,
            idempotency_key=f"{key}-auth",
            metadata={"booking_id": booking_id, "type": "reschedule"},
        )
        if auth.requires_action:
            self._void_quietly(auth.intent_id, f"{key}-void")
            raise PaymentException(
                "Your bank asked to confirm this payment. Please try a different card.",
                code="payment_requires_action",
            )
        try:
            capture = self.payment_gateway.capture(auth.intent_id, idempotency_key=f"{key}-capture")
        except PaymentException:
            self._void_quietly(auth.intent_id, f"{key}-void")
            raise
        return {"amount": amount, "payment_intent_id": auth.intent_id, "charge_id": capture.charge_id}

    def _refund_difference(
        self, booking_id: str, allocation: List[Tuple[str, Decimal]], key: str
    ) -> List[Dict[str, object]]:
        movements: List[Dict[str, object]] = []
        for charge_id, amount in allocation:
            try:
                result = self.payment_gateway.refund(
                    charge_id, to_cents(amount), idempotency_key=f"{key}-refund-{charge_id}"
                )
            except PaymentException:
                if movements:
                    logger.error(
                        "Reschedule refund failed after partial refunds",
                        extra={
                            "booking_id": booking_id,
                            "refunded_charge_ids": [m["charge_id"] for m in movements],
                        },
                    )
                raise
            movements.append({"amount": -amount, "charge_id": charge_id, "refund_id": result.refund_id})
        return movements

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(
        self,
        caller: Caller,
        booking_id: str,
        reason: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Cancel a booking, voiding or refunding as needed.

        Renters may cancel only before start. Hosts may cancel at any time;
        a started booking then ends ``refunded``. Captured money is refunded
        in full: the original charge plus every extension charge.
        """
        now = now or utc_now()

        with self.transaction():
            booking = self._get_booking(booking_id)
            action = self._cancel_action(caller, booking, now)
            from_status = booking.status
            self._resolve(booking, action, caller)

        with booking_lock_sync(booking_id) as acquired:
            if not acquired:
                raise ConflictException(
                    "This booking is being updated. Please try again.", code="BOOKING_LOCKED"
                )
            # Re-read: status may have moved since phase 1
            with self.transaction():
                booking = self._get_booking(booking_id, for_update=True)
                self._resolve(booking, action, caller)
                refund_plan = self._refund_plan(booking)
                intent_id = booking.payment_intent_id

            refunded_total = Decimal("0")
            refund_id: Optional[str] = None
            try:
                if refund_plan:
                    for charge_id, refund_amount, key in refund_plan:
                        result = self.payment_gateway.refund(
                            charge_id, to_cents(refund_amount), idempotency_key=key
                        )
                        refunded_total += refund_amount
                        refund_id = refund_id or result.refund_id
                elif intent_id:
                    self.payment_gateway.void(intent_id, idempotency_key=f"cancel-void-{booking_id}")
            except PaymentException as exc:
                self._log_transition(
                    booking_id, action, from_status, None, caller, "payment_failed",
                    error=exc.code,
                )
                raise

            with self.transaction():
                booking = self._get_booking(booking_id, for_update=True)
                target = self._resolve(booking, action, caller)
                booking.status = target.value
                booking.cancellation_reason = reason
                booking.canceled_at = now
                booking.canceled_by_id = caller.id
                if refund_plan:
                    booking.refund_amount = refunded_total
                    booking.refund_id = refund_id
                self.hold_repository.delete_hold(booking.hold_id)
                booking.hold_id = None
                spot = booking.spot

            self._release_extensions(booking_id)

        self._log_transition(
            booking_id, action, from_status, target, caller, "success",
            refund_amount=str(refunded_total) if refund_plan else None,
        )
        detail = f" Reason: {reason}" if reason else ""
        if caller.is_host:
            self._notify(
                booking.renter_id,
                "Booking Cancelled",
                f"Your booking at {spot.display_address} was cancelled by the host.{detail}",
                booking_id,
            )
        else:
            self._notify(
                spot.host_id,
                "Booking Cancelled",
                f"A booking at {spot.display_address} was cancelled by the renter.{detail}",
                booking_id,
            )
        return booking

    def _cancel_action(self, caller: Caller, booking: Booking, now: datetime) -> BookingAction:
        if caller.is_host:
            require_spot_host(caller, booking.spot)
            return BookingAction.CANCEL_STARTED if booking.has_started(now) else BookingAction.CANCEL
        require_booking_renter(caller, booking)
        if booking.has_started(now) and not booking.is_terminal:
            self._log_transition(
                booking.id, BookingAction.CANCEL, booking.status, None, caller, "rejected"
            )
            raise PreconditionException(
                action=BookingAction.CANCEL.value,
                current_status=booking.status,
                message="Bookings can only be cancelled before they start",
            )
        return BookingAction.CANCEL

    @staticmethod
    def _refund_plan(booking: Booking) -> List[Tuple[str, Decimal, str]]:
        """(charge_id, amount, idempotency_key) for what each captured charge still holds."""
        if booking.booking_status not in BookingStatus.confirmed() or not booking.charge_id:
            return []
        plan = [(booking.charge_id, booking.base_charge_amount, f"refund-{booking.id}-base")]
        later = [
            (row.id, row.charge_id, Decimal(row.amount))
            for row in list(booking.extension_charges) + booking.reschedule_charges
            if row.charge_id
        ]
        for row_id, charge_id, amount in later:
            remaining = amount - booking.refunded_from(charge_id)
            if remaining > 0:
                plan.append((charge_id, remaining, f"refund-{booking.id}-{row_id}"))
        return [entry for entry in plan if entry[1] > 0]

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    @BaseService.measure_operation("expire_stale_requests")
    def expire_stale_requests(self, now: Optional[datetime] = None) -> int:
        """Cancel held/pending requests the host never answered."""
        now = now or utc_now()
        cutoff = now - timedelta(minutes=self.config.booking_request_expiry_minutes)
        stale_ids = [b.id for b in self.repository.get_stale_requests(cutoff)]
        expired = 0
        for booking_id in stale_ids:
            try:
                self._expire_request(booking_id, now)
                expired += 1
            except (DomainException, RepositoryException) as exc:
                logger.warning(
                    "Failed to expire booking request",
                    extra={"booking_id": booking_id, "error": str(exc)},
                )
        if stale_ids:
            self.log_operation("expire_stale_requests", expired=expired, found=len(stale_ids))
        return expired

    def _expire_request(self, booking_id: str, now: datetime) -> None:
        caller = Caller.system()
        with booking_lock_sync(booking_id) as acquired:
            if not acquired:
                raise ConflictException("Booking is locked", code="BOOKING_LOCKED")
            with self.transaction():
                booking = self._get_booking(booking_id, for_update=True)
                from_status = booking.status
                self._resolve(booking, BookingAction.EXPIRE, caller)
                intent_id = booking.payment_intent_id
            if intent_id:
                self.payment_gateway.void(intent_id, idempotency_key=f"expire-void-{booking_id}")
            with self.transaction():
                booking = self._get_booking(booking_id, for_update=True)
                target = self._resolve(booking, BookingAction.EXPIRE, caller)
                booking.status = target.value
                booking.cancellation_reason = REQUEST_EXPIRED_REASON
                booking.canceled_at = now
                booking.canceled_by_id = caller.id
                self.hold_repository.delete_hold(booking.hold_id)
                booking.hold_id = None
        self._log_transition(booking_id, BookingAction.EXPIRE, from_status, target, caller, "success")
        self._notify(
            booking.renter_id,
            "Booking Request Expired",
            "The host did not respond in time, so your request expired. You were not charged.",
            booking_id,
        )

    @BaseService.measure_operation("purge_expired_holds")
    def purge_expired_holds(self, now: Optional[datetime] = None) -> int:
        with self.transaction():
            return self.hold_repository.delete_expired(now or utc_now())

    @BaseService.measure_operation("complete_elapsed_bookings")
    def complete_elapsed_bookings(self, now: Optional[datetime] = None) -> int:
        now = now or utc_now()
        caller = Caller.system()
        completed: List[Tuple[str, str]] = []
        with self.transaction():
            for booking in self.repository.get_elapsed_confirmed(now):
                from_status = booking.status
                booking.status = self._resolve(booking, BookingAction.COMPLETE, caller).value
                booking.completed_at = now
                completed.append((booking.id, from_status))
        for booking_id, from_status in completed:
            self._log_transition(
                booking_id, BookingAction.COMPLETE, from_status, BookingStatus.COMPLETED,
                caller, "success",
            )
            self._release_extensions(booking_id)
        return len(completed)

    @staticmethod
    def effective_status(booking: Booking, now: Optional[datetime] = None) -> BookingStatus:
        """Status as of ``now``, treating elapsed confirmed bookings as completed."""
        now = now or utc_now()
        status = booking.booking_status
        if status in BookingStatus.confirmed() and booking.end_at <= now:
            return BookingStatus.COMPLETED
        return status

    # ------------------------------------------------------------------
    # Read-only helpers
    # ------------------------------------------------------------------

    @BaseService.measure_operation("preview_cost")
    def preview_cost(self, spot_id: str, start_at: datetime, end_at: datetime) -> PriceQuote:
        start_at, end_at = ensure_utc(start_at), ensure_utc(end_at)
        if end_at <= start_at:
            raise ValidationException("End time must be after start time", code="INVALID_INTERVAL")
        spot = self.availability_service.get_spot(spot_id)
        return self.pricing_service.quote_interval(spot.hourly_rate, start_at, end_at)

    def _get_booking(self, booking_id: str, *, for_update: bool = False) -> Booking:
        if for_update:
            booking = self.repository.get_for_update(booking_id)
        else:
            booking = self.repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException(f"Booking {booking_id} not found", code="BOOKING_NOT_FOUND")
        return booking

    def _resolve(self, booking: Booking, action: BookingAction, caller: Caller) -> BookingStatus:
        try:
            return resolve_transition(booking.status, action)
        except PreconditionException:
            self._log_transition(booking.id, action, booking.status, None, caller, "rejected")
            raise

    def _void_quietly(self, intent_id: Optional[str], key: str) -> None:
        if not intent_id:
            return
        try:
            self.payment_gateway.void(intent_id, idempotency_key=key)
        except PaymentException as exc:
            logger.error(
                "Failed to void authorization",
                extra={"payment_intent_id": intent_id, "error": exc.message},
            )

    def _log_transition(
        self,
        booking_id: Optional[str],
        action: BookingAction,
        from_status: Optional[str | BookingStatus],
        to_status: Optional[str | BookingStatus],
        caller: Caller,
        outcome: str,
        **context,
    ) -> None:
        record: Dict[str, object] = {
            "booking_id": booking_id,
            "action": action.value,
            "from_status": getattr(from_status, "value", from_status),
            "to_status": getattr(to_status, "value", to_status),
            "caller_id": caller.id,
            "caller_role": caller.role.value,
            "outcome": outcome,
        }
        record.update(context)
        level = logging.INFO if outcome in ("success", "requires_action") else logging.WARNING
        logger.log(level, "booking_transition", extra=record)
        try:
            prometheus_metrics.record_booking_transition(action.value, outcome)
        except Exception:
            # Metrics collection never breaks a transition
            pass

    def _notify(
        self, user_id: Optional[str], title: str, message: str, booking_id: str
    ) -> None:
        if not user_id or self.notifier is None:
            return
        try:
            delivered = self.notifier.notify(user_id, title, message, related_booking_id=booking_id)
        except Exception as exc:
            logger.warning(
                "Notifier raised; transition already committed",
                extra={"booking_id": booking_id, "error": str(exc)},
            )
            return
        if not delivered:
            logger.info("Notification not delivered", extra={"booking_id": booking_id})
