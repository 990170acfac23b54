from decimal import Decimal

import pytest

from parkzy.core.exceptions import ValidationException
from parkzy.schemas.fee_policy import FeePolicy
from parkzy.services.config_service import ConfigService
from parkzy.services.pricing_service import PricingService, calculate_quote, to_cents

from support import at


def test_quote_adds_service_fee_and_deducts_platform_fee():
    policy = FeePolicy(version=1, renter_service_fee_pct=0.10, host_platform_fee_pct=0.10)

    quote = calculate_quote(Decimal("10.00"), 120, policy)

    assert quote.subtotal == Decimal("20.00")
    assert quote.service_fee == Decimal("2.00")
    assert quote.total_amount == Decimal("22.00")
    assert quote.platform_fee == Decimal("2.00")
    assert quote.host_earnings == Decimal("18.00")
    assert quote.total_cents == 2200
    assert quote.fee_policy_version == 1


def test_quote_is_linear_in_time():
    policy = FeePolicy(version=1, renter_service_fee_pct=0.0, host_platform_fee_pct=0.0)

    one_hour = calculate_quote(Decimal("7.50"), 60, policy)
    ten_hours = calculate_quote(Decimal("7.50"), 600, policy)

    assert ten_hours.subtotal == one_hour.subtotal * 10


def test_quote_rounds_half_up_to_cents():
    policy = FeePolicy(version=3, renter_service_fee_pct=0.15, host_platform_fee_pct=0.2)

    quote = calculate_quote(Decimal("3.33"), 50, policy)

    assert quote.subtotal == Decimal("2.78")
    assert quote.service_fee == Decimal("0.42")
    assert quote.host_earnings == Decimal("2.22")
    assert to_cents(quote.total_amount) == 320


def test_pricing_service_uses_default_policy_without_config(db):
    service = PricingService(db)

    quote = service.quote_interval(Decimal("12.00"), at(9), at(10, 30))

    assert quote.minutes == 90
    assert quote.subtotal == Decimal("18.00")
    assert quote.fee_policy_version == 1


def test_pricing_service_rejects_empty_interval(db):
    with pytest.raises(ValidationException):
        PricingService(db).quote(Decimal("10.00"), 0)


def test_new_fee_policy_bumps_version_and_applies_to_new_quotes(db):
    config = ConfigService(db)

    policy = config.set_fee_policy(
        {"renter_service_fee_pct": 0.05, "host_platform_fee_pct": 0.15}
    )
    quote = PricingService(db, config_service=config).quote(Decimal("10.00"), 60)

    assert policy.version == 2
    assert config.get_fee_policy().version == 2
    assert quote.service_fee == Decimal("0.50")
    assert quote.host_earnings == Decimal("8.50")
    assert quote.fee_policy_version == 2


def test_invalid_fee_policy_is_rejected(db):
    with pytest.raises(ValidationException) as exc_info:
        ConfigService(db).set_fee_policy(
            {"renter_service_fee_pct": 1.5, "host_platform_fee_pct": 0.1}
        )

    assert exc_info.value.code == "INVALID_FEE_POLICY"
    assert ConfigService(db).get_fee_policy().version == 1
