"""HTTP surface for the booking lifecycle: status codes and error mapping."""

from datetime import datetime
from decimal import Decimal

from fastapi.testclient import TestClient
import pytest

from parkzy.api.dependencies import get_db, get_notifier, get_payment_gateway
from parkzy.auth import create_access_token
from parkzy.core.exceptions import PaymentException
from parkzy.main import create_app
from parkzy.models.booking import BookingStatus

from support import at


def _parse(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@pytest.fixture
def client(db, gateway, notifier):
    app = create_app()

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def renter_headers(renter_id):
    return {"Authorization": f"Bearer {create_access_token(renter_id, 'renter')}"}


@pytest.fixture
def host_headers(host_id):
    return {"Authorization": f"Bearer {create_access_token(host_id, 'host')}"}


def _create_payload(spot, start_hour=10, end_hour=12):
    return {
        "spot_id": spot.id,
        "start_at": at(start_hour).isoformat(),
        "end_at": at(end_hour).isoformat(),
        "payment_method_id": "pm_card_visa",
        "customer_id": "cus_123",
    }


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestCreateRoute:
    def test_request_to_book_returns_held_booking(self, client, make_spot, renter_headers):
        spot = make_spot()

        response = client.post("/api/v1/bookings", json=_create_payload(spot), headers=renter_headers)

        assert response.status_code == 201
        body = response.json()
        assert body["booking"]["status"] == BookingStatus.HELD.value
        assert body["requires_action"] is False
        assert body["guest_access_token"] is None

    def test_overlapping_request_is_409(
        self, client, make_spot, make_booking, renter_headers
    ):
        spot = make_spot()
        make_booking(spot, at(11), at(13))

        response = client.post("/api/v1/bookings", json=_create_payload(spot), headers=renter_headers)

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "BOOKING_CONFLICT"

    def test_inverted_interval_is_422(self, client, make_spot, renter_headers):
        spot = make_spot()

        response = client.post(
            "/api/v1/bookings", json=_create_payload(spot, 12, 10), headers=renter_headers
        )

        assert response.status_code == 422

    def test_unknown_fields_are_rejected(self, client, make_spot, renter_headers):
        payload = {**_create_payload(make_spot()), "total_amount": "0.01"}

        response = client.post("/api/v1/bookings", json=payload, headers=renter_headers)

        assert response.status_code == 422

    def test_declined_card_is_402(self, client, gateway, make_spot, renter_headers):
        gateway.authorize_error = PaymentException(
            "Your card was declined.", code="card_declined"
        )

        response = client.post(
            "/api/v1/bookings", json=_create_payload(make_spot()), headers=renter_headers
        )

        assert response.status_code == 402
        assert response.json()["detail"]["code"] == "card_declined"

    def test_bad_token_is_401(self, client, make_spot):
        response = client.post(
            "/api/v1/bookings",
            json=_create_payload(make_spot()),
            headers={"Authorization": "Bearer not-a-jwt"},
        )

        assert response.status_code == 401

    def test_guest_gets_access_token(self, client, make_spot):
        payload = {**_create_payload(make_spot()), "guest_email": "guest@example.com"}

        response = client.post("/api/v1/bookings", json=payload)

        assert response.status_code == 201
        assert response.json()["guest_access_token"]


class TestLifecycleRoutes:
    def test_host_approves_then_renter_cancels(
        self, client, gateway, make_spot, renter_headers, host_headers
    ):
        spot = make_spot()
        created = client.post(
            "/api/v1/bookings", json=_create_payload(spot), headers=renter_headers
        ).json()
        booking_id = created["booking"]["id"]

        approved = client.post(f"/api/v1/bookings/{booking_id}/approve", headers=host_headers)
        assert approved.status_code == 200
        assert approved.json()["status"] == BookingStatus.ACTIVE.value
        assert approved.json()["charge_id"]

        canceled = client.post(
            f"/api/v1/bookings/{booking_id}/cancel",
            json={"reason": "Plans changed"},
            headers=renter_headers,
        )
        assert canceled.status_code == 200
        body = canceled.json()
        assert body["status"] == BookingStatus.CANCELED.value
        assert Decimal(body["refund_amount"]) == Decimal(body["total_amount"])
        assert gateway.count("refund") == 1

    def test_renter_cannot_approve(self, client, make_spot, renter_headers):
        spot = make_spot()
        booking_id = client.post(
            "/api/v1/bookings", json=_create_payload(spot), headers=renter_headers
        ).json()["booking"]["id"]

        response = client.post(f"/api/v1/bookings/{booking_id}/approve", headers=renter_headers)

        assert response.status_code == 403

    def test_approving_twice_is_422(self, client, make_spot, renter_headers, host_headers):
        spot = make_spot()
        booking_id = client.post(
            "/api/v1/bookings", json=_create_payload(spot), headers=renter_headers
        ).json()["booking"]["id"]
        client.post(f"/api/v1/bookings/{booking_id}/approve", headers=host_headers)

        response = client.post(f"/api/v1/bookings/{booking_id}/approve", headers=host_headers)

        assert response.status_code == 422
        assert response.json()["detail"]["details"]["current_status"] == "active"

    def test_decline_with_reason(self, client, gateway, make_spot, renter_headers, host_headers):
        spot = make_spot()
        booking_id = client.post(
            "/api/v1/bookings", json=_create_payload(spot), headers=renter_headers
        ).json()["booking"]["id"]

        response = client.post(
            f"/api/v1/bookings/{booking_id}/decline",
            json={"reason": "Driveway repaving"},
            headers=host_headers,
        )

        assert response.status_code == 200
        assert response.json()["status"] == BookingStatus.DECLINED.value
        assert response.json()["cancellation_reason"] == "Driveway repaving"
        assert gateway.count("capture") == 0

    def test_extend_requires_minutes(self, client, make_spot, make_booking, renter_headers):
        booking = make_booking(make_spot(), at(10), at(12))

        response = client.post(
            f"/api/v1/bookings/{booking.id}/extend", json={}, headers=renter_headers
        )

        assert response.status_code == 422

    def test_extension_with_authentication_takes_two_calls(
        self, client, gateway, make_spot, make_booking, renter_headers
    ):
        booking = make_booking(make_spot(), at(10), at(12))
        gateway.require_action = True
        url = f"/api/v1/bookings/{booking.id}/extend"

        first = client.post(url, json={"extension_minutes": 60}, headers=renter_headers)

        assert first.status_code == 200
        body = first.json()
        assert body["status"] == "requires_action"
        assert body["pending_token"]
        assert body["client_secret"]
        assert _parse(body["booking"]["end_at"]) == at(12)

        finalize = {"finalize": True, "pending_token": body["pending_token"]}
        early = client.post(url, json=finalize, headers=renter_headers)
        assert early.status_code == 402
        assert early.json()["detail"]["code"] == "payment_requires_action"

        (intent_id,) = gateway.intents
        gateway.complete_action(intent_id)
        second = client.post(url, json=finalize, headers=renter_headers)

        assert second.status_code == 200
        assert second.json()["status"] == "completed"
        assert _parse(second.json()["booking"]["end_at"]) == at(13)
        assert Decimal(second.json()["booking"]["total_amount"]) == Decimal("33.00")

    def test_finalize_without_token_is_422(self, client, make_spot, make_booking, renter_headers):
        booking = make_booking(make_spot(), at(10), at(12))

        response = client.post(
            f"/api/v1/bookings/{booking.id}/extend", json={"finalize": True}, headers=renter_headers
        )

        assert response.status_code == 422

    def test_reschedule_charges_the_difference(
        self, client, gateway, make_spot, renter_headers, host_headers
    ):
        spot = make_spot()
        booking_id = client.post(
            "/api/v1/bookings", json=_create_payload(spot), headers=renter_headers
        ).json()["booking"]["id"]
        client.post(f"/api/v1/bookings/{booking_id}/approve", headers=host_headers)

        response = client.post(
            f"/api/v1/bookings/{booking_id}/reschedule",
            json={"start_at": at(14).isoformat(), "end_at": at(17).isoformat()},
            headers=renter_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["price_difference"]) == Decimal("11.00")
        assert Decimal(body["new_total_amount"]) == Decimal("33.00")
        assert _parse(body["booking"]["start_at"]) == at(14)
        assert gateway.count("capture") == 2

    def test_reschedule_by_host_is_403(self, client, make_spot, make_booking, host_headers):
        booking = make_booking(make_spot(), at(10), at(12))

        response = client.post(
            f"/api/v1/bookings/{booking.id}/reschedule",
            json={"start_at": at(14).isoformat(), "end_at": at(16).isoformat()},
            headers=host_headers,
        )

        assert response.status_code == 403

    def test_reschedule_into_a_taken_interval_is_409(
        self, client, make_spot, make_booking, renter_headers
    ):
        spot = make_spot()
        booking = make_booking(spot, at(10), at(12))
        make_booking(spot, at(14), at(16), owner_id="01ARZ3NDEKTSV4RRFFQ69G5FAV")

        response = client.post(
            f"/api/v1/bookings/{booking.id}/reschedule",
            json={"start_at": at(15).isoformat(), "end_at": at(17).isoformat()},
            headers=renter_headers,
        )

        assert response.status_code == 409

    def test_unknown_booking_is_404(self, client, host_headers):
        response = client.post(
            "/api/v1/bookings/01ARZ3NDEKTSV4RRFFQ69G5FAV/approve", headers=host_headers
        )

        assert response.status_code == 404

    def test_malformed_booking_id_is_422(self, client, host_headers):
        response = client.post("/api/v1/bookings/not-a-ulid/approve", headers=host_headers)

        assert response.status_code == 422


def test_preview_quotes_without_side_effects(client, gateway, make_spot):
    spot = make_spot(hourly_rate=Decimal("12.00"))

    response = client.post(
        "/api/v1/bookings/preview",
        json={"spot_id": spot.id, "start_at": at(9).isoformat(), "end_at": at(11).isoformat()},
    )

    assert response.status_code == 200
    assert Decimal(response.json()["subtotal"]) == Decimal("24.00")
    assert gateway.calls == []
