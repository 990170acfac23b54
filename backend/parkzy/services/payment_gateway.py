# backend/parkzy/services/payment_gateway.py
"""
Payment Gateway Adapter.

Translates lifecycle actions into authorize/capture/void/refund calls against
Stripe using manual-capture PaymentIntents. Every mutating call accepts an
idempotency key so a retried lifecycle action never moves money twice.

Gateway failures surface as PaymentException with a message the user can act
on; the raw Stripe error is kept in ``details["gateway_error"]``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging
from typing import Any, Dict, Optional

import stripe

from ..core.config import settings
from ..core.constants import BRAND_NAME
from ..core.exceptions import PaymentException

logger = logging.getLogger(__name__)

# PaymentIntent statuses meaning funds are earmarked or already moved
AUTHORIZED_STATUSES = frozenset({"requires_capture", "succeeded"})

GENERIC_PAYMENT_MESSAGE = (
    "We couldn't process your payment. Please try again or use a different payment method."
)
DECLINED_MESSAGE = "Your card was declined. Please use a different payment method."


@dataclass(frozen=True)
class AuthorizationResult:
    intent_id: str
    status: str
    requires_action: bool = False
    client_secret: Optional[str] = None

    @property
    def is_authorized(self) -> bool:
        return self.status in AUTHORIZED_STATUSES


@dataclass(frozen=True)
class CaptureResult:
    intent_id: str
    charge_id: Optional[str]
    amount_cents: Optional[int] = None
    already_captured: bool = False


@dataclass(frozen=True)
class RefundResult:
    refund_id: str
    charge_id: str
    amount_cents: Optional[int]
    status: str


class PaymentGateway(ABC):
    """Contract the booking lifecycle uses to move money."""

    @abstractmethod
    def authorize(
        self,
        *,
        amount_cents: int,
        payment_method_id: str,
        customer_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> AuthorizationResult:
        """Place a hold for ``amount_cents``; no funds move."""

    @abstractmethod
    def confirm(self, intent_id: str) -> AuthorizationResult:
        """Re-read an intent after client-side authentication."""

    @abstractmethod
    def capture(self, intent_id: str, *, idempotency_key: Optional[str] = None) -> CaptureResult:
        """Capture an authorized intent. Capturing twice never charges twice."""

    @abstractmethod
    def void(self, intent_id: str, *, idempotency_key: Optional[str] = None) -> None:
        """Release an authorization without moving funds."""

    @abstractmethod
    def refund(
        self,
        charge_id: str,
        amount_cents: Optional[int] = None,
        *,
        idempotency_key: Optional[str] = None,
    ) -> RefundResult:
        """Return funds for a captured charge; ``None`` refunds the full charge."""


def _charge_id_from_intent(pi: Any) -> Optional[str]:
    charge = getattr(pi, "latest_charge", None)
    if charge is None:
        return None
    if isinstance(charge, str):
        return charge
    return getattr(charge, "id", None)


def _payment_exception(action: str, exc: stripe.StripeError) -> PaymentException:
    if isinstance(exc, stripe.CardError):
        message = getattr(exc, "user_message", None) or DECLINED_MESSAGE
        return PaymentException(
            message,
            code=getattr(exc, "code", None) or "card_declined",
            gateway_error=str(exc),
            details={"action": action},
        )
    return PaymentException(
        GENERIC_PAYMENT_MESSAGE,
        code="payment_failed",
        gateway_error=str(exc),
        details={"action": action},
    )


class StripePaymentGateway(PaymentGateway):
    """Stripe implementation using manual-capture PaymentIntents."""

    def __init__(self, api_key: Optional[str] = None, currency: Optional[str] = None):
        key = api_key if api_key is not None else settings.stripe_secret_key.get_secret_value()
        if not key:
            logger.warning("Stripe secret key not configured - gateway calls will fail")
        stripe.api_key = key
        stripe.max_network_retries = 1
        self.currency = currency or settings.stripe_currency

    def authorize(
        self,
        *,
        amount_cents: int,
        payment_method_id: str,
        customer_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> AuthorizationResult:
        params: Dict[str, Any] = {
            "amount": amount_cents,
            "currency": self.currency,
            "payment_method": payment_method_id,
            "capture_method": "manual",
            "confirm": True,
            "return_url": settings.stripe_return_url,
            "metadata": {"platform": BRAND_NAME.lower(), **(metadata or {})},
        }
        if customer_id:
            params["customer"] = customer_id
        try:
            pi = stripe.PaymentIntent.create(idempotency_key=idempotency_key, **params)
        except stripe.StripeError as e:
            logger.error(f"Stripe error authorizing payment: {str(e)}")
            raise _payment_exception("authorize", e)

        requires_action = pi.status == "requires_action"
        if not requires_action and pi.status not in AUTHORIZED_STATUSES:
            logger.warning(
                "Authorization left intent in unexpected state",
                extra={"payment_intent_id": pi.id, "intent_status": pi.status},
            )
            raise PaymentException(
                DECLINED_MESSAGE,
                code="authorization_failed",
                details={"payment_intent_id": pi.id, "intent_status": pi.status},
            )
        return AuthorizationResult(
            intent_id=pi.id,
            status=pi.status,
            requires_action=requires_action,
            client_secret=getattr(pi, "client_secret", None) if requires_action else None,
        )

    def confirm(self, intent_id: str) -> AuthorizationResult:
        try:
            pi = stripe.PaymentIntent.retrieve(intent_id)
            if pi.status == "requires_confirmation":
                pi = stripe.PaymentIntent.confirm(intent_id, return_url=settings.stripe_return_url)
        except stripe.StripeError as e:
            logger.error(f"Stripe error confirming payment intent: {str(e)}")
            raise _payment_exception("confirm", e)
        requires_action = pi.status == "requires_action"
        return AuthorizationResult(
            intent_id=pi.id,
            status=pi.status,
            requires_action=requires_action,
            client_secret=getattr(pi, "client_secret", None) if requires_action else None,
        )

    def capture(self, intent_id: str, *, idempotency_key: Optional[str] = None) -> CaptureResult:
        try:
            pi = stripe.PaymentIntent.capture(intent_id, idempotency_key=idempotency_key)
        except stripe.InvalidRequestError as e:
            if getattr(e, "code", None) != "payment_intent_unexpected_state":
                logger.error(f"Stripe error capturing payment intent: {str(e)}")
                raise _payment_exception("capture", e)
            return self._already_captured(intent_id, e)
        except stripe.StripeError as e:
            logger.error(f"Stripe error capturing payment intent: {str(e)}")
            raise _payment_exception("capture", e)

        return CaptureResult(
            intent_id=pi.id,
            charge_id=_charge_id_from_intent(pi),
            amount_cents=getattr(pi, "amount_received", None),
        )

    def _already_captured(self, intent_id: str, original: stripe.StripeError) -> CaptureResult:
        try:
            pi = stripe.PaymentIntent.retrieve(intent_id)
        except stripe.StripeError as e:
            raise _payment_exception("capture", e)
        if pi.status != "succeeded":
            logger.error(
                "Capture refused for intent not awaiting capture",
                extra={"payment_intent_id": intent_id, "intent_status": pi.status},
            )
            raise _payment_exception("capture", original)
        logger.info("Payment intent already captured", extra={"payment_intent_id": intent_id})
        return CaptureResult(
            intent_id=pi.id,
            charge_id=_charge_id_from_intent(pi),
            amount_cents=getattr(pi, "amount_received", None),
            already_captured=True,
        )

    def void(self, intent_id: str, *, idempotency_key: Optional[str] = None) -> None:
        try:
            stripe.PaymentIntent.cancel(intent_id, idempotency_key=idempotency_key)
        except stripe.InvalidRequestError as e:
            # Canceling an already-canceled intent is a no-op
            if getattr(e, "code", None) == "payment_intent_unexpected_state":
                try:
                    pi = stripe.PaymentIntent.retrieve(intent_id)
                except stripe.StripeError as retrieve_error:
                    raise _payment_exception("void", retrieve_error)
                if pi.status == "canceled":
                    return
            logger.error(f"Stripe error canceling payment intent: {str(e)}")
            raise _payment_exception("void", e)
        except stripe.StripeError as e:
            logger.error(f"Stripe error canceling payment intent: {str(e)}")
            raise _payment_exception("void", e)

    def refund(
        self,
        charge_id: str,
        amount_cents: Optional[int] = None,
        *,
        idempotency_key: Optional[str] = None,
    ) -> RefundResult:
        params: Dict[str, Any] = {"charge": charge_id}
        if amount_cents is not None:
            params["amount"] = amount_cents
        try:
            refund = stripe.Refund.create(idempotency_key=idempotency_key, **params)
        except stripe.StripeError as e:
            logger.error(f"Stripe error refunding charge: {str(e)}")
            raise _payment_exception("refund", e)
        return RefundResult(
            refund_id=refund.id,
            charge_id=charge_id,
            amount_cents=getattr(refund, "amount", amount_cents),
            status=getattr(refund, "status", "succeeded"),
        )
