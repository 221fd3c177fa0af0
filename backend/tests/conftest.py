"""
SmartPark Reservation System - Test Configuration & Fixtures
Reusable fixtures for all test modules.

Usage:
    pytest tests/ -v
    pytest tests/test_allocator.py -v
    pytest tests/ -v --tb=short
"""

import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone

# Add backend to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# In-memory storage, no background jobs, no Firebase app
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["ENABLE_SCHEDULER"] = "false"
os.environ["SEED_DEMO_DATA"] = "true"
os.environ["FIREBASE_PROJECT_ID"] = ""
os.environ["GATEWAY_API_KEY"] = "test-gateway-key"
os.environ["ALLOCATION_RETRY_BACKOFF_SECONDS"] = "0"

import pytest
from fastapi.testclient import TestClient

from config import get_settings
from database.memory_db import MemoryLedger
from models.parking import ParkingLocation, ParkingSpot, ZoneType
from models.user import UserProfile, UserRole
from security.firebase_auth import get_current_user
from services.reservation_service import ReservationAllocator

get_settings.cache_clear()


# ============================================================
# TIME HELPERS
# ============================================================

def _future_window(start_in_hours: int = 24, duration_hours: float = 2):
    """(start, end) ISO strings starting on a whole hour in the future."""
    base = datetime.now(timezone.utc).replace(minute=0, second=0, microsecond=0)
    start = base + timedelta(hours=start_in_hours)
    end = start + timedelta(hours=duration_hours)
    return start.isoformat(), end.isoformat()


@pytest.fixture
def window():
    """Factory: window(start_in_hours, duration_hours) -> (start, end) ISO strings."""
    return _future_window


# ============================================================
# PRINCIPAL FIXTURES
# ============================================================

@pytest.fixture
def user() -> UserProfile:
    """Regular user profile."""
    return UserProfile(uid="user-123", email="testuser@example.com", role=UserRole.USER)


@pytest.fixture
def other_user() -> UserProfile:
    """A second regular user."""
    return UserProfile(uid="user-456", email="other@example.com", role=UserRole.USER)


@pytest.fixture
def admin() -> UserProfile:
    """Admin user profile."""
    return UserProfile(uid="admin-123", email="admin@smartpark.id", role=UserRole.ADMIN)


# ============================================================
# API KEY FIXTURES
# ============================================================

@pytest.fixture
def gateway_headers() -> dict:
    """Headers with valid gateway API key."""
    return {"X-Gateway-Key": "test-gateway-key"}


@pytest.fixture
def invalid_gateway_headers() -> dict:
    """Headers with invalid gateway API key."""
    return {"X-Gateway-Key": "invalid-key-12345"}


# ============================================================
# CORE FIXTURES (no HTTP)
# ============================================================

def build_catalog(zone_counts, rate: float = 8000.0, location_id: int = 1):
    """
    Small catalog: one location, ``zone_counts`` = [(zone, count), ...].
    Spot numbers use the zone letter, ids are sequential.
    """
    location = ParkingLocation(location_id=location_id, name="Test Mall")
    spots = []
    spot_id = 1
    for zone_index, (zone, count) in enumerate(zone_counts):
        for index in range(1, count + 1):
            spots.append(ParkingSpot(
                spot_id=spot_id,
                location_id=location_id,
                spot_number=f"{chr(65 + zone_index)}-{index:02d}",
                zone=zone,
                hourly_rate=rate,
            ))
            spot_id += 1
    return [location], spots


@pytest.fixture
def make_allocator():
    """Factory building an allocator over a fresh, seeded memory ledger."""
    def factory(zone_counts=((ZoneType.REGULAR, 1),), rate: float = 8000.0, **kwargs):
        ledger = MemoryLedger()
        locations, spots = build_catalog(list(zone_counts), rate)
        asyncio.run(ledger.seed_catalog(locations, spots))
        return ReservationAllocator(ledger, **kwargs)

    return factory


# ============================================================
# TEST CLIENT FIXTURES
# ============================================================

@pytest.fixture
def client():
    """FastAPI TestClient on the demo catalog, unauthenticated."""
    from main import app

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    """Switch the authenticated principal: ``login(profile)``."""
    from main import app

    def _login(profile: UserProfile):
        app.dependency_overrides[get_current_user] = lambda: profile
        return client

    return _login


@pytest.fixture
def user_client(login, user) -> TestClient:
    """TestClient authenticated as a regular user."""
    return login(user)


@pytest.fixture
def admin_client(login, admin) -> TestClient:
    """TestClient authenticated as an admin."""
    return login(admin)
