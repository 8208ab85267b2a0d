"""
Unit Tests for Reconciliation API

Tests the HTTP trigger surface against an in-memory store:
- POST /api/reconciliation/seats/reset
- POST /api/reconciliation/bookings/archive
- POST /api/reconciliation/vehicles/{vehicle_id}/changed
- GET /api/reconciliation/status
- GET /api/health

Run with: pytest tests/test_reconciliation_api.py -v
"""

import pytest
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

from reconciliation.endpoints.reconciliation_api import get_vehicle_debouncer
from server import create_app
from store.base import StoreError
from store.memory import InMemoryDocumentStore
from factories import booked_seat_numbers, booking_data, passenger_data, trip_data, vehicle_data


class FailingDocumentStore(InMemoryDocumentStore):
    """Store whose reads always fail."""

    async def query(self, collection, field, value):
        raise StoreError(f"Failed to query {collection}")


@pytest.fixture
def client(store):
    app = create_app(document_store=store, enable_scheduler=False)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def failing_client():
    app = create_app(document_store=FailingDocumentStore(), enable_scheduler=False)
    with TestClient(app) as test_client:
        yield test_client


def seed_booking_trip(store):
    store.put("trips", "T1", trip_data("T1", "V1", [passenger_data("B1", "4"), passenger_data("B2", "7")]))
    store.put("vehicles", "V1", vehicle_data("V1", 10, booked=[4, 6, 7]))
    store.put("bookings", "b1", booking_data("b1", "B1", "T1"))
    store.put("bookings", "b2", booking_data("b2", "B2", "T1"))


class TestResetSeats:

    def test_resets_stale_seats(self, client, store):
        seed_booking_trip(store)

        response = client.post("/api/reconciliation/seats/reset")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == (
            "Seats reset successfully for 1 trip(s): "
            "1 seat(s) cleared on 1 vehicle(s), 0 trip(s) skipped."
        )
        assert booked_seat_numbers(store._collections["vehicles"]["V1"]) == [4, 7]

    def test_no_booking_trips_is_404(self, client, store):
        store.put("trips", "T1", trip_data("T1", "V1", status="Departed"))

        response = client.post("/api/reconciliation/seats/reset")

        assert response.status_code == 404
        assert response.text == "No trips found in Booking status."

    def test_inconsistent_trip_is_skipped_not_failed(self, client, store):
        seed_booking_trip(store)
        store.put("bookings", "b100", booking_data("b100", "B100", "T1"))

        response = client.post("/api/reconciliation/seats/reset")

        assert response.status_code == 200
        assert "1 trip(s) skipped" in response.text
        assert booked_seat_numbers(store._collections["vehicles"]["V1"]) == [4, 6, 7]

    def test_get_not_allowed(self, client):
        response = client.get("/api/reconciliation/seats/reset")

        assert response.status_code == 405

    def test_store_failure_is_500(self, failing_client):
        response = failing_client.post("/api/reconciliation/seats/reset")

        assert response.status_code == 500
        assert response.text == "Internal Server Error"


class TestArchiveBookings:

    def test_archives_old_bookings(self, client, store):
        store.put("bookings", "b1", booking_data("b1", "N1", "T1", departure_date="2001-01-01"))
        store.put("bookings", "b2", booking_data("b2", "N2", "T1", departure_date="2999-01-01"))

        response = client.post("/api/reconciliation/bookings/archive")

        assert response.status_code == 200
        assert response.text == "Old bookings archived successfully. 1 booking(s) archived."
        assert store._collections["bookings"]["b1"]["status"] == "Archived"
        assert store._collections["bookings"]["b2"]["status"] == "Active"

    def test_nothing_to_archive(self, client):
        response = client.post("/api/reconciliation/bookings/archive")

        assert response.status_code == 200
        assert response.text == "Old bookings archived successfully. No bookings to archive."

    def test_get_not_allowed(self, client):
        assert client.get("/api/reconciliation/bookings/archive").status_code == 405

    def test_store_failure_is_500(self, failing_client):
        response = failing_client.post("/api/reconciliation/bookings/archive")

        assert response.status_code == 500
        assert response.text == "Internal Server Error"


class TestVehicleChanged:

    def test_change_accepted_and_pending(self, client):
        response = client.post(
            "/api/reconciliation/vehicles/V1/changed",
            json=vehicle_data("V1", 4, booked=[1])
        )

        assert response.status_code == 202
        assert response.text == "Vehicle change accepted"

        status = client.get("/api/reconciliation/status").json()
        assert status["pending_vehicles"] == ["V1"]

    def test_missing_snapshot_rejected(self, client):
        response = client.post("/api/reconciliation/vehicles/V1/changed", json={})

        assert response.status_code == 400
        assert response.text == "Vehicle document not found"

    def test_settled_change_reconciles_vehicle(self, client, store):
        seed_booking_trip(store)
        debouncer = client.app.state.vehicle_debouncer
        debouncer.delay_seconds = 0

        response = client.post(
            "/api/reconciliation/vehicles/V1/changed",
            json=vehicle_data("V1", 10, booked=[4, 6, 7])
        )
        client.portal.call(debouncer.wait_idle)

        assert response.status_code == 202
        assert booked_seat_numbers(store._collections["vehicles"]["V1"]) == [4, 7]


class TestStatusAndHealth:

    def test_status_reports_disabled_scheduler(self, client):
        response = client.get("/api/reconciliation/status")

        assert response.status_code == 200
        data = response.json()
        assert data["module"] == "reconciliation"
        assert data["archive_scheduler"]["enabled"] is False
        assert data["pending_vehicles"] == []

    def test_status_reads_debouncer_through_dependency(self, client):
        debouncer = MagicMock(delay_seconds=5, pending=["V7"])
        client.app.dependency_overrides[get_vehicle_debouncer] = lambda: debouncer
        try:
            data = client.get("/api/reconciliation/status").json()
        finally:
            client.app.dependency_overrides.clear()

        assert data["seat_settling_delay_seconds"] == 5
        assert data["pending_vehicles"] == ["V7"]

    def test_health_with_working_store(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["checks"]["document_store"]["status"] == "connected"

    def test_health_with_failing_store(self, failing_client):
        response = failing_client.get("/api/health")

        assert response.status_code == 503

    def test_liveness(self, client):
        assert client.get("/api/health/live").json()["status"] == "alive"
