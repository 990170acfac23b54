"""
Shared fixtures for the Parkzy backend tests.

Every test gets a fresh in-memory SQLite database, a fake payment gateway
that tracks intent state like Stripe does, and a notifier that records
what it was asked to send.
"""

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from parkzy.core.config import Settings
from parkzy.core.ulid_helper import generate_ulid
from parkzy.database import Base
import parkzy.models  # noqa: F401
from parkzy.models.availability import AvailabilityRule, CalendarOverride
from parkzy.models.booking import Booking, BookingStatus
from parkzy.models.spot import Spot
from parkzy.principal import Caller
from parkzy.services.booking_service import BookingService
from support import FakePaymentGateway, RecordingNotifier, at


@pytest.fixture
def db() -> Session:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, expire_on_commit=False, autoflush=False, future=True)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        environment="test",
        database_url="sqlite+pysqlite:///:memory:",
        redis_url="",
        max_booking_past_skew_minutes=5,
    )


@pytest.fixture
def booking_service(db, gateway, notifier, test_settings) -> BookingService:
    return BookingService(db, payment_gateway=gateway, notifier=notifier, config=test_settings)


@pytest.fixture
def host_id() -> str:
    return generate_ulid()


@pytest.fixture
def renter_id() -> str:
    return generate_ulid()


@pytest.fixture
def host(host_id) -> Caller:
    return Caller.host(host_id)


@pytest.fixture
def renter(renter_id) -> Caller:
    return Caller.renter(renter_id)


@pytest.fixture
def make_spot(db, host_id):
    """Create a spot open every day of the week, all day, unless told otherwise."""

    def _make_spot(
        *,
        owner_id: Optional[str] = None,
        hourly_rate: Decimal = Decimal("10.00"),
        instant_book: bool = False,
        tz: str = "UTC",
        open_days: tuple = tuple(range(7)),
        opens: time = time(0, 0),
        closes: time = time(23, 59),
        status: str = "active",
    ) -> Spot:
        spot = Spot(
            host_id=owner_id or host_id,
            title="Driveway spot",
            address="12 Elm St",
            hourly_rate=hourly_rate,
            instant_book=instant_book,
            timezone=tz,
            status=status,
        )
        db.add(spot)
        db.flush()
        for day in open_days:
            db.add(
                AvailabilityRule(
                    spot_id=spot.id,
                    day_of_week=day,
                    start_time=opens,
                    end_time=closes,
                    is_available=True,
                )
            )
        db.commit()
        return spot

    return _make_spot


@pytest.fixture
def make_booking(db, renter_id):
    """Insert a booking row directly, bypassing the lifecycle engine."""

    def _make_booking(
        spot: Spot,
        start_at: datetime,
        end_at: datetime,
        *,
        status: BookingStatus = BookingStatus.ACTIVE,
        owner_id: Optional[str] = None,
        total_amount: Decimal = Decimal("22.00"),
        payment_intent_id: Optional[str] = None,
        charge_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Booking:
        booking = Booking(
            spot_id=spot.id,
            renter_id=owner_id or renter_id,
            status=status.value,
            start_at=start_at,
            end_at=end_at,
            hourly_rate=spot.hourly_rate,
            subtotal=Decimal("20.00"),
            service_fee=total_amount - Decimal("20.00"),
            platform_fee=Decimal("2.00"),
            total_amount=total_amount,
            host_earnings=Decimal("18.00"),
            fee_policy_version=1,
            payment_method_id="pm_card_visa",
            payment_intent_id=payment_intent_id,
            charge_id=charge_id,
            created_at=created_at or at(0, 0),
        )
        db.add(booking)
        db.commit()
        return booking

    return _make_booking


@pytest.fixture
def add_override(db):
    def _add_override(
        spot: Spot,
        override_date: date,
        *,
        is_available: bool,
        start_time: Optional[time] = None,
        end_time: Optional[time] = None,
        reason: Optional[str] = None,
    ) -> CalendarOverride:
        override = CalendarOverride(
            spot_id=spot.id,
            override_date=override_date,
            is_available=is_available,
            start_time=start_time,
            end_time=end_time,
            reason=reason,
        )
        db.add(override)
        db.commit()
        return override

    return _add_override


@pytest.fixture
def create_held_booking(booking_service, renter):
    """Run the real create flow and return a ``held`` booking."""

    def _create(spot: Spot, start_at: datetime, end_at: datetime, *, caller: Caller = None, now=None):
        result = booking_service.create_booking(
            caller or renter,
            spot.id,
            start_at,
            end_at,
            payment_method_id="pm_card_visa",
            customer_id="cus_123",
            now=now or start_at - timedelta(hours=2),
        )
        return result.booking

    return _create
