"""
SmartPark Reservation System - Admin Endpoint Tests
Tests for admin-only reservation management, maintenance and statistics.

Run: pytest tests/test_admin.py -v
"""

import pytest
from fastapi.testclient import TestClient


def book(client: TestClient, window, spot_id: int = 1) -> dict:
    start, end = window()
    response = client.post("/reservations", json={
        "locationId": 1, "spotId": spot_id, "vehicleId": 1,
        "startTime": start, "endTime": end
    })
    return response.json()


class TestAdminAuthentication:
    """Tests for admin authentication requirements."""

    @pytest.mark.parametrize("method, path", [
        ("get", "/admin/reservations"),
        ("post", "/admin/reservations/RES-1/cancel"),
        ("put", "/admin/spots/1/maintenance"),
        ("get", "/admin/stats"),
    ])
    def test_requires_auth(self, client: TestClient, method, path):
        """
        Test: Admin endpoints without a token
        Expected: 401
        """
        assert getattr(client, method)(path).status_code == 401

    def test_regular_user_forbidden(self, user_client: TestClient):
        """
        Test: Regular user calls an admin endpoint
        Expected: 403
        """
        assert user_client.get("/admin/stats").status_code == 403


class TestAdminReservations:
    """Tests for admin reservation management."""

    def test_list_all_and_filter(self, login, user, other_user, admin, window):
        """
        Test: Two users book, one cancels; admin lists all then cancelled only
        Expected: 2 total, 1 cancelled
        """
        mine = book(login(user), window, spot_id=1)
        book(login(other_user), window, spot_id=2)
        login(user).put(f"/reservations/{mine['reservationId']}/cancel")

        client = login(admin)
        everything = client.get("/admin/reservations").json()
        cancelled = client.get("/admin/reservations", params={"status": "cancelled"}).json()

        assert everything["count"] == 2
        assert cancelled["count"] == 1
        assert cancelled["reservations"][0]["reservationId"] == mine["reservationId"]

    def test_unknown_status_filter(self, admin_client: TestClient):
        """
        Test: status=lost
        Expected: 400 InvalidRequest
        """
        response = admin_client.get("/admin/reservations", params={"status": "lost"})

        assert response.status_code == 400

    def test_admin_cancel(self, login, user, admin, window):
        """
        Test: Admin cancels a user's reservation
        Expected: 200, cancelled by the admin with default reason
        """
        created = book(login(user), window)

        response = login(admin).post(f"/admin/reservations/{created['reservationId']}/cancel")

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert response.json()["cancelledBy"] == admin.uid
        assert response.json()["cancelReason"] == "Cancelled by administrator"


class TestMaintenance:
    """Tests for PUT /admin/spots/{spot_id}/maintenance."""

    def test_maintenance_blocks_booking(self, login, user, admin, window):
        """
        Test: Put A-01 under maintenance, then book it
        Expected: 400 NoAvailability
        """
        response = login(admin).put("/admin/spots/1/maintenance", json={"enabled": True})
        assert response.status_code == 200
        assert response.json()["status"] == "maintenance"

        start, end = window()
        booked = login(user).post("/reservations", json={
            "locationId": 1, "spotId": 1, "vehicleId": 1,
            "startTime": start, "endTime": end
        })

        assert booked.status_code == 400
        assert booked.json()["errorKind"] == "NoAvailability"

    def test_end_maintenance(self, admin_client: TestClient):
        """
        Test: Maintenance on then off for a spot with no current booking
        Expected: Spot available again
        """
        admin_client.put("/admin/spots/2/maintenance", json={"enabled": True})
        response = admin_client.put("/admin/spots/2/maintenance", json={"enabled": False})

        assert response.json()["status"] == "available"

    def test_unknown_spot(self, admin_client: TestClient):
        """
        Test: Maintenance on a missing spot
        Expected: 404
        """
        response = admin_client.put("/admin/spots/999/maintenance", json={"enabled": True})

        assert response.status_code == 404


class TestStats:
    """Tests for GET /admin/stats."""

    def test_stats_counts(self, login, user, admin, window):
        """
        Test: One booking, one spot in maintenance
        Expected: Counters reflect both
        """
        book(login(user), window, spot_id=1)
        client = login(admin)
        client.put("/admin/spots/2/maintenance", json={"enabled": True})

        data = client.get("/admin/stats").json()

        assert data["totalLocations"] == 1
        assert data["totalSpots"] == 65
        assert data["spots"]["reserved"] == 1
        assert data["spots"]["maintenance"] == 1
        assert data["spots"]["available"] == 63
        assert data["pendingReservations"] == 1
        assert data["occupancyRate"] == round(1 / 65 * 100, 1)
