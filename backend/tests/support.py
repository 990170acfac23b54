"""Test doubles and time helpers shared across the suite."""

from datetime import date, datetime, time, timezone
import itertools
from typing import Dict, List, Optional

from parkzy.core.exceptions import PaymentException
from parkzy.services.notification_service import Notifier
from parkzy.services.payment_gateway import (
    AuthorizationResult,
    CaptureResult,
    PaymentGateway,
    RefundResult,
)
# Monday, so weekday() == 0
TEST_DAY = date(2030, 6, 3)


def at(hour: int, minute: int = 0, day: date = TEST_DAY) -> datetime:
    """UTC instant on the test day."""
    return datetime.combine(day, time(hour, minute), tzinfo=timezone.utc)


class FakePaymentGateway(PaymentGateway):
    """
    In-memory gateway with Stripe-like intent states.

    Capturing a ``succeeded`` intent returns the existing charge instead of
    creating a new one, so a retried approve never charges twice.
    """

    def __init__(self) -> None:
        self.intents: Dict[str, Dict] = {}
        self.charges: Dict[str, Dict] = {}
        self.refunds: List[Dict] = []
        self.calls: List[tuple] = []
        self.require_action = False
        self.authorize_error: Optional[PaymentException] = None
        self.capture_error: Optional[PaymentException] = None
        self.refund_error: Optional[PaymentException] = None
        self.failing_charge_ids: set = set()
        self._ids = itertools.count(1)

    def _next(self, prefix: str) -> str:
        return f"{prefix}_{next(self._ids)}"

    def authorize(
        self,
        *,
        amount_cents: int,
        payment_method_id: str,
        customer_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> AuthorizationResult:
        self.calls.append(("authorize", idempotency_key))
        if self.authorize_error is not None:
            raise self.authorize_error
        intent_id = self._next("pi")
        status = "requires_action" if self.require_action else "requires_capture"
        self.intents[intent_id] = {"status": status, "amount": amount_cents, "charge_id": None}
        return AuthorizationResult(
            intent_id=intent_id,
            status=status,
            requires_action=self.require_action,
            client_secret=f"{intent_id}_secret" if self.require_action else None,
        )

    def complete_action(self, intent_id: str) -> None:
        """Simulate the customer finishing 3-D Secure."""
        self.intents[intent_id]["status"] = "requires_capture"

    def confirm(self, intent_id: str) -> AuthorizationResult:
        self.calls.append(("confirm", intent_id))
        status = self.intents[intent_id]["status"]
        requires_action = status == "requires_action"
        return AuthorizationResult(
            intent_id=intent_id,
            status=status,
            requires_action=requires_action,
            client_secret=f"{intent_id}_secret" if requires_action else None,
        )

    def capture(self, intent_id: str, *, idempotency_key: Optional[str] = None) -> CaptureResult:
        self.calls.append(("capture", intent_id))
        if self.capture_error is not None:
            raise self.capture_error
        intent = self.intents[intent_id]
        if intent["status"] == "succeeded":
            return CaptureResult(
                intent_id=intent_id,
                charge_id=intent["charge_id"],
                amount_cents=intent["amount"],
                already_captured=True,
            )
        if intent["status"] != "requires_capture":
            raise PaymentException(
                "We couldn't process your payment.",
                code="payment_failed",
                details={"intent_status": intent["status"]},
            )
        charge_id = self._next("ch")
        intent["status"] = "succeeded"
        intent["charge_id"] = charge_id
        self.charges[charge_id] = {"intent_id": intent_id, "amount": intent["amount"]}
        return CaptureResult(intent_id=intent_id, charge_id=charge_id, amount_cents=intent["amount"])

    def void(self, intent_id: str, *, idempotency_key: Optional[str] = None) -> None:
        self.calls.append(("void", intent_id))
        intent = self.intents[intent_id]
        if intent["status"] == "succeeded":
            raise PaymentException("Cannot void a captured payment", code="payment_failed")
        intent["status"] = "canceled"

    def refund(
        self,
        charge_id: str,
        amount_cents: Optional[int] = None,
        *,
        idempotency_key: Optional[str] = None,
    ) -> RefundResult:
        self.calls.append(("refund", charge_id))
        if self.refund_error is not None or charge_id in self.failing_charge_ids:
            raise self.refund_error or PaymentException(
                "We couldn't process your refund.", code="payment_failed"
            )
        for existing in self.refunds:
            if idempotency_key and existing["key"] == idempotency_key:
                return existing["result"]
        amount = amount_cents if amount_cents is not None else self.charges[charge_id]["amount"]
        result = RefundResult(
            refund_id=self._next("re"), charge_id=charge_id, amount_cents=amount, status="succeeded"
        )
        self.refunds.append({"key": idempotency_key, "result": result, "amount": amount})
        return result

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)


class RecordingNotifier(Notifier):
    def __init__(self, fail: bool = False) -> None:
        self.sent: List[Dict] = []
        self.fail = fail

    def notify(self, user_id, title, message, related_booking_id=None) -> bool:
        if self.fail:
            raise RuntimeError("push provider down")
        self.sent.append(
            {
                "user_id": user_id,
                "title": title,
                "message": message,
                "booking_id": related_booking_id,
            }
        )
        return True

    def titles_for(self, user_id: str) -> List[str]:
        return [n["title"] for n in self.sent if n["user_id"] == user_id]


