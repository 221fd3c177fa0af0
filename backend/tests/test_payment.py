"""
SmartPark Reservation System - Payment Endpoint Tests
Tests for gateway payment confirmation and payment lookups.

Run: pytest tests/test_payment.py -v
"""

import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, patch

from database.ledger import StorageError

STORAGE_TEXT = "db down: secret sql text"


@pytest.fixture
def reservation(user_client: TestClient, window) -> dict:
    """A pending 2 hour reservation on C-01 (16000 IDR)."""
    start, end = window(24, 2)
    response = user_client.post("/reservations", json={
        "locationId": 1, "spotId": 41, "vehicleId": 3,
        "startTime": start, "endTime": end
    })
    assert response.status_code == 201
    return response.json()


def confirm(client: TestClient, headers: dict, reservation_id: str, amount: float, **extra):
    payload = {"reservationId": reservation_id, "amount": amount, "paymentMethod": "ewallet"}
    payload.update(extra)
    return client.post("/api/v1/payments/confirm", json=payload, headers=headers)


class TestGatewayAuthentication:
    """Tests for the X-Gateway-Key requirement."""

    def test_missing_key(self, client: TestClient):
        """
        Test: Confirm without X-Gateway-Key
        Expected: 401
        """
        response = client.post("/api/v1/payments/confirm", json={
            "reservationId": "RES-1", "amount": 1000
        })

        assert response.status_code == 401

    def test_invalid_key(self, client: TestClient, invalid_gateway_headers):
        """
        Test: Confirm with a wrong key
        Expected: 401
        """
        response = confirm(client, invalid_gateway_headers, "RES-1", 1000)

        assert response.status_code == 401


class TestConfirmPayment:
    """Tests for POST /api/v1/payments/confirm."""

    def test_confirm_activates_reservation(self, user_client, gateway_headers, reservation):
        """
        Test: Pay the exact amount
        Expected: 201 payment record, reservation becomes active
        """
        response = confirm(
            user_client, gateway_headers, reservation["reservationId"], 16000,
            transactionRef="GW-778899"
        )

        assert response.status_code == 201
        data = response.json()
        assert data["paymentId"].startswith("PAY-")
        assert data["status"] == "completed"
        assert data["transactionRef"] == "GW-778899"

        stored = user_client.get(f"/reservations/{reservation['reservationId']}").json()
        assert stored["status"] == "active"

    def test_generated_transaction_ref(self, user_client, gateway_headers, reservation):
        """
        Test: Confirm without transactionRef
        Expected: A TRX- reference is generated
        """
        response = confirm(user_client, gateway_headers, reservation["reservationId"], 16000)

        assert response.json()["transactionRef"].startswith("TRX-")

    def test_wrong_amount(self, user_client, gateway_headers, reservation):
        """
        Test: Pay less than the reservation cost
        Expected: 400 InvalidRequest, reservation still pending
        """
        response = confirm(user_client, gateway_headers, reservation["reservationId"], 8000)

        assert response.status_code == 400
        assert response.json()["errorKind"] == "InvalidRequest"
        stored = user_client.get(f"/reservations/{reservation['reservationId']}").json()
        assert stored["status"] == "pending"

    def test_pay_twice(self, user_client, gateway_headers, reservation):
        """
        Test: Confirm the same reservation twice
        Expected: Second is 409 AlreadyTerminal
        """
        confirm(user_client, gateway_headers, reservation["reservationId"], 16000)
        response = confirm(user_client, gateway_headers, reservation["reservationId"], 16000)

        assert response.status_code == 409
        assert response.json()["errorKind"] == "AlreadyTerminal"

    def test_pay_cancelled(self, user_client, gateway_headers, reservation):
        """
        Test: Pay a cancelled reservation
        Expected: 409 AlreadyTerminal
        """
        user_client.put(f"/reservations/{reservation['reservationId']}/cancel")

        response = confirm(user_client, gateway_headers, reservation["reservationId"], 16000)

        assert response.status_code == 409

    def test_unknown_reservation(self, client: TestClient, gateway_headers):
        """
        Test: Pay a reservation that does not exist
        Expected: 404 NotFound
        """
        response = confirm(client, gateway_headers, "RES-NOPE", 16000)

        assert response.status_code == 404

    def test_non_positive_amount(self, client: TestClient, gateway_headers):
        """
        Test: amount = 0
        Expected: 400 validation error
        """
        response = confirm(client, gateway_headers, "RES-1", 0)

        assert response.status_code == 400


class TestGetPayment:
    """Tests for GET /api/v1/payments/reservation/{id}."""

    def test_owner_sees_payment(self, user_client, gateway_headers, reservation):
        """
        Test: Owner reads the payment of a paid reservation
        Expected: 200 with amount and currency
        """
        confirm(user_client, gateway_headers, reservation["reservationId"], 16000)

        response = user_client.get(f"/api/v1/payments/reservation/{reservation['reservationId']}")

        assert response.status_code == 200
        assert response.json()["amount"] == 16000
        assert response.json()["currency"] == "IDR"

    def test_unpaid_reservation(self, user_client, reservation):
        """
        Test: Read payment of an unpaid reservation
        Expected: 404 NotFound
        """
        response = user_client.get(f"/api/v1/payments/reservation/{reservation['reservationId']}")

        assert response.status_code == 404

    def test_other_user_forbidden(self, login, other_user, reservation):
        """
        Test: Another user reads my payment
        Expected: 403
        """
        response = login(other_user).get(
            f"/api/v1/payments/reservation/{reservation['reservationId']}"
        )

        assert response.status_code == 403


class TestPaymentHistory:
    """Tests for GET /api/v1/payments/history."""

    def test_requires_auth(self, client: TestClient):
        """
        Test: History without a token
        Expected: 401
        """
        assert client.get("/api/v1/payments/history").status_code == 401

    def test_history_newest_first(self, user_client, gateway_headers, window):
        """
        Test: Pay two reservations, read history
        Expected: Both payments, the latest first
        """
        ids = []
        for spot_id in (42, 43):
            start, end = window(24, 1)
            created = user_client.post("/reservations", json={
                "locationId": 1, "spotId": spot_id, "vehicleId": 3,
                "startTime": start, "endTime": end
            }).json()
            confirm(user_client, gateway_headers, created["reservationId"], 8000)
            ids.append(created["reservationId"])

        data = user_client.get("/api/v1/payments/history").json()

        assert data["count"] == 2
        assert {p["reservationId"] for p in data["payments"]} == set(ids)
        assert data["payments"][0]["createdAt"] >= data["payments"][1]["createdAt"]

    def test_history_is_per_user(self, login, user, other_user, gateway_headers, reservation):
        """
        Test: Another user reads their (empty) history
        Expected: count 0
        """
        confirm(login(user), gateway_headers, reservation["reservationId"], 16000)

        data = login(other_user).get("/api/v1/payments/history").json()

        assert data["count"] == 0

    def test_payment_shows_on_my_reservations(self, user_client, gateway_headers, reservation):
        """
        Test: Pay, then list my reservations
        Expected: Reservation active with paymentStatus completed
        """
        confirm(user_client, gateway_headers, reservation["reservationId"], 16000,
                paymentMethod="card")

        item = user_client.get("/reservations/my").json()["reservations"][0]

        assert item["status"] == "active"
        assert item["paymentStatus"] == "completed"
        assert item["paymentMethod"] == "card"


class TestPaymentStorageFaults:
    """Storage failures on payment reads come back as 503 AllocationFailed."""

    def _failing(self, client: TestClient, method: str):
        return patch.object(
            client.app.state.ledger, method, AsyncMock(side_effect=StorageError(STORAGE_TEXT))
        )

    def test_confirm(self, user_client, gateway_headers, reservation):
        """
        Test: Gateway confirms while the reservation lookup fails
        Expected: 503 AllocationFailed, storage text hidden
        """
        with self._failing(user_client, "get_reservation"):
            response = confirm(user_client, gateway_headers, reservation["reservationId"], 16000)

        assert response.status_code == 503
        assert response.json()["errorKind"] == "AllocationFailed"
        assert STORAGE_TEXT not in response.text

    def test_get_payment(self, user_client, reservation):
        """
        Test: Payment lookup fails after the reservation read
        Expected: 503 AllocationFailed
        """
        with self._failing(user_client, "get_payment_for_reservation"):
            response = user_client.get(
                f"/api/v1/payments/reservation/{reservation['reservationId']}"
            )

        assert response.status_code == 503
        assert response.json()["errorKind"] == "AllocationFailed"

    def test_history(self, user_client: TestClient):
        """
        Test: History while the ledger is down
        Expected: 503 AllocationFailed
        """
        with self._failing(user_client, "list_user_payments"):
            response = user_client.get("/api/v1/payments/history")

        assert response.status_code == 503
        assert response.json()["errorKind"] == "AllocationFailed"
