"""Centralized pricing for bookings, extensions and cost previews."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ..core.exceptions import ValidationException
from ..schemas.fee_policy import FeePolicy
from .base import BaseService
from .config_service import ConfigService

CENTS = Decimal("0.01")


def to_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def to_cents(value: Decimal) -> int:
    return int((Decimal(value) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class PriceQuote:
    """Priced interval. Amounts are rounded to cents."""

    minutes: int
    hourly_rate: Decimal
    subtotal: Decimal
    service_fee: Decimal
    total_amount: Decimal
    platform_fee: Decimal
    host_earnings: Decimal
    fee_policy_version: int

    @property
    def total_cents(self) -> int:
        return to_cents(self.total_amount)


def calculate_quote(hourly_rate: Decimal, minutes: int, policy: FeePolicy) -> PriceQuote:
    """
    subtotal = rate x hours; the renter pays subtotal + service fee and the
    host keeps subtotal - platform fee. No tiers or discounts.
    """
    rate = Decimal(hourly_rate)
    subtotal = to_money(rate * Decimal(minutes) / Decimal(60))
    service_fee = to_money(subtotal * Decimal(str(policy.renter_service_fee_pct)))
    platform_fee = to_money(subtotal * Decimal(str(policy.host_platform_fee_pct)))
    return PriceQuote(
        minutes=minutes,
        hourly_rate=to_money(rate),
        subtotal=subtotal,
        service_fee=service_fee,
        total_amount=subtotal + service_fee,
        platform_fee=platform_fee,
        host_earnings=subtotal - platform_fee,
        fee_policy_version=policy.version,
    )


class PricingService(BaseService):
    """Compute booking and extension prices under the current fee policy."""

    def __init__(self, db: Session, config_service: Optional[ConfigService] = None) -> None:
        super().__init__(db)
        self.config_service = config_service or ConfigService(db)

    def quote(self, hourly_rate: Decimal, minutes: int) -> PriceQuote:
        if minutes <= 0:
            raise ValidationException(
                "Duration must be positive", code="INVALID_DURATION", details={"minutes": minutes}
            )
        if Decimal(hourly_rate) <= 0:
            raise ValidationException("Hourly rate must be positive", code="INVALID_RATE")
        return calculate_quote(hourly_rate, minutes, self.config_service.get_fee_policy())

    def quote_interval(
        self, hourly_rate: Decimal, start_at: datetime, end_at: datetime
    ) -> PriceQuote:
        minutes = int((end_at - start_at).total_seconds() // 60)
        return self.quote(hourly_rate, minutes)
