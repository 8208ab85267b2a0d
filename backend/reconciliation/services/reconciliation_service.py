"""
Seat Reconciliation Service

Orchestrates the seat matching rules against the document store:
- Reactive: one vehicle changed, reconcile the single trip that uses it
- Bulk: reconcile every trip currently in Booking status

Each trip/vehicle pair is read, reconciled in memory, and written back as one
atomic batch. Data problems with one pair (inconsistent bookings, a missing
vehicle, malformed seats) are logged and recorded, never raised; a bulk run
moves on to the next trip. Store failures propagate to the caller.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from reconciliation.exceptions import SeatDataError
from reconciliation.models import (
    BOOKINGS_COLLECTION,
    TRIPS_COLLECTION,
    VEHICLES_COLLECTION,
    Booking,
    Trip,
    TripStatus,
    Vehicle,
)
from reconciliation.seat_rules import SeatReconciliationResult, reconcile
from store.base import Document, DocumentRef, DocumentStore, DocumentUpdate

logger = logging.getLogger(__name__)


class ReconciliationAuditEvent:
    """Audit event types for reconciliation operations."""
    RUN_STARTED = "reconciliation.run_started"
    RUN_COMPLETED = "reconciliation.run_completed"
    SEATS_CLEARED = "reconciliation.seats_cleared"
    INCONSISTENT = "reconciliation.inconsistent"
    SKIPPED = "reconciliation.skipped"
    BOOKINGS_ARCHIVED = "reconciliation.bookings_archived"


def log_reconciliation_event(
    event_type: str,
    subject_id: Optional[str],
    details: Dict[str, Any],
    actor: str = "system"
):
    """Log reconciliation event for audit trail."""
    log_entry = {
        "event": event_type,
        "subject_id": subject_id,
        "details": details,
        "actor": actor,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
    logger.info(f"Reconciliation event: {event_type}", extra=log_entry)


class ReconciliationOutcome(str, Enum):
    """What happened to one trip/vehicle pair."""
    CORRECTED = "CORRECTED"                 # Stale seats cleared and written
    CLEAN = "CLEAN"                         # All booked seats are claimed
    INCONSISTENT = "INCONSISTENT"           # Bookings missing from the trip roster
    AMBIGUOUS_TARGET = "AMBIGUOUS_TARGET"   # More than one trip uses the vehicle
    NO_TRIP = "NO_TRIP"                     # No trip uses the vehicle
    NO_VEHICLE = "NO_VEHICLE"               # Trip's vehicle does not exist
    INVALID_DATA = "INVALID_DATA"           # Malformed trip or seat data


@dataclass
class TripReconciliationReport:
    """Outcome for a single trip/vehicle pair."""
    outcome: ReconciliationOutcome
    trip_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    cleared_seats: List[int] = field(default_factory=list)
    unmatched_booking_numbers: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "trip_id": self.trip_id,
            "vehicle_id": self.vehicle_id,
            "cleared_seats": self.cleared_seats,
            "unmatched_booking_numbers": self.unmatched_booking_numbers,
            "error": self.error
        }


@dataclass
class BulkReconciliationReport:
    """Result of reconciling every trip in Booking status."""
    trips: List[TripReconciliationReport] = field(default_factory=list)

    @property
    def trips_scanned(self) -> int:
        return len(self.trips)

    @property
    def vehicles_corrected(self) -> int:
        return sum(1 for t in self.trips if t.outcome == ReconciliationOutcome.CORRECTED)

    @property
    def seats_cleared(self) -> int:
        return sum(len(t.cleared_seats) for t in self.trips)

    def count(self, outcome: ReconciliationOutcome) -> int:
        return sum(1 for t in self.trips if t.outcome == outcome)

    def summary(self) -> str:
        skipped = self.trips_scanned - self.vehicles_corrected - self.count(ReconciliationOutcome.CLEAN)
        return (
            f"Seats reset successfully for {self.trips_scanned} trip(s): "
            f"{self.seats_cleared} seat(s) cleared on {self.vehicles_corrected} vehicle(s), "
            f"{skipped} trip(s) skipped."
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trips_scanned": self.trips_scanned,
            "vehicles_corrected": self.vehicles_corrected,
            "seats_cleared": self.seats_cleared,
            "trips": [t.to_dict() for t in self.trips]
        }


class SeatReconciliationService:
    """
    Clears stale booked seats on vehicles.

    The store is injected so the service can run against PostgreSQL in
    production and an in-memory fake in tests.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    # ==================== REACTIVE ====================

    async def reconcile_vehicle(
        self,
        vehicle_id: str,
        vehicle_snapshot: Optional[Dict[str, Any]] = None
    ) -> TripReconciliationReport:
        """
        Reconcile the trip bound to a vehicle after the vehicle changed.

        Args:
            vehicle_id: Id of the changed vehicle document
            vehicle_snapshot: Post-change vehicle data, if the caller has it.
                When omitted the vehicle is read from the store.

        Returns:
            TripReconciliationReport
        """
        trip_docs = await self.store.query(TRIPS_COLLECTION, "vehicleId", vehicle_id)

        if len(trip_docs) > 1:
            logger.warning(
                f"Multiple trips ({len(trip_docs)}) found for vehicle {vehicle_id}. Skipping reconciliation."
            )
            return self._skipped(ReconciliationOutcome.AMBIGUOUS_TARGET, vehicle_id=vehicle_id)

        if not trip_docs:
            logger.info(f"No trip found for vehicle {vehicle_id}")
            return self._skipped(ReconciliationOutcome.NO_TRIP, vehicle_id=vehicle_id)

        if vehicle_snapshot is not None:
            vehicle_doc = Document(ref=DocumentRef(VEHICLES_COLLECTION, vehicle_id), data=vehicle_snapshot)
        else:
            vehicle_doc = await self._find_vehicle(vehicle_id)

        return await self._reconcile_trip(trip_docs[0], vehicle_doc=vehicle_doc, vehicle_id=vehicle_id)

    # ==================== BULK ====================

    async def reconcile_booking_trips(self) -> BulkReconciliationReport:
        """
        Reconcile every trip in Booking status.

        A problem with one trip never stops the others.
        """
        trip_docs = await self.store.query(TRIPS_COLLECTION, "status", TripStatus.BOOKING.value)

        log_reconciliation_event(
            ReconciliationAuditEvent.RUN_STARTED,
            None,
            {"mode": "bulk", "trips": len(trip_docs)}
        )

        report = BulkReconciliationReport()
        for trip_doc in trip_docs:
            vehicle_id = trip_doc.data.get("vehicleId")
            vehicle_doc = await self._find_vehicle(vehicle_id) if vehicle_id else None
            report.trips.append(
                await self._reconcile_trip(trip_doc, vehicle_doc=vehicle_doc, vehicle_id=vehicle_id)
            )

        log_reconciliation_event(
            ReconciliationAuditEvent.RUN_COMPLETED,
            None,
            {
                "mode": "bulk",
                "trips_scanned": report.trips_scanned,
                "vehicles_corrected": report.vehicles_corrected,
                "seats_cleared": report.seats_cleared
            }
        )
        return report

    # ==================== INTERNAL ====================

    async def _find_vehicle(self, vehicle_id: str) -> Optional[Document]:
        vehicle_docs = await self.store.query(VEHICLES_COLLECTION, "id", vehicle_id)
        if not vehicle_docs:
            # Vehicles written without an id field are addressed by document id only
            return await self.store.get(DocumentRef(VEHICLES_COLLECTION, vehicle_id))
        if len(vehicle_docs) > 1:
            logger.warning(f"Multiple vehicle documents share id {vehicle_id}; using {vehicle_docs[0].ref.path}")
        return vehicle_docs[0]

    async def _reconcile_trip(
        self,
        trip_doc: Document,
        vehicle_doc: Optional[Document],
        vehicle_id: Optional[str]
    ) -> TripReconciliationReport:
        try:
            trip = Trip.from_document(trip_doc)
        except SeatDataError as e:
            logger.error(f"Invalid trip {trip_doc.id}: {e}")
            return self._skipped(ReconciliationOutcome.INVALID_DATA, trip_id=trip_doc.id, vehicle_id=vehicle_id, error=str(e))

        if vehicle_doc is None:
            logger.info(f"No vehicle {trip.vehicle_id} found for trip {trip.id}")
            return self._skipped(ReconciliationOutcome.NO_VEHICLE, trip_id=trip.id, vehicle_id=trip.vehicle_id)

        booking_docs = await self.store.query(BOOKINGS_COLLECTION, "tripId", trip.id)

        try:
            vehicle = Vehicle.from_document(vehicle_doc)
            bookings = [Booking.from_document(doc) for doc in booking_docs]
        except SeatDataError as e:
            logger.error(f"Invalid data for trip {trip.id} / vehicle {vehicle_doc.id}: {e}")
            return self._skipped(ReconciliationOutcome.INVALID_DATA, trip_id=trip.id, vehicle_id=vehicle_doc.id, error=str(e))

        result = reconcile(trip, bookings, vehicle)

        if not result.consistent:
            self._log_unmatched(result, bookings)
            return TripReconciliationReport(
                outcome=ReconciliationOutcome.INCONSISTENT,
                trip_id=trip.id,
                vehicle_id=vehicle.id,
                unmatched_booking_numbers=result.unmatched_booking_numbers
            )

        if not result.has_corrections:
            logger.info(f"All booked seats are valid for trip {trip.id} (vehicle {vehicle.id})")
            return TripReconciliationReport(
                outcome=ReconciliationOutcome.CLEAN,
                trip_id=trip.id,
                vehicle_id=vehicle.id
            )

        await self._write_corrections(vehicle_doc.ref, result)
        return TripReconciliationReport(
            outcome=ReconciliationOutcome.CORRECTED,
            trip_id=trip.id,
            vehicle_id=vehicle.id,
            cleared_seats=result.cleared_seat_numbers
        )

    async def _write_corrections(self, vehicle_ref: DocumentRef, result: SeatReconciliationResult):
        logger.info(
            f"Resetting invalid booked seats {result.cleared_seat_numbers} on vehicle {result.vehicle_id}"
        )
        await self.store.atomic_batch([
            DocumentUpdate(ref=vehicle_ref, changes={"seats": result.seat_documents()})
        ])
        log_reconciliation_event(
            ReconciliationAuditEvent.SEATS_CLEARED,
            result.vehicle_id,
            {"trip_id": result.trip_id, "cleared_seats": result.cleared_seat_numbers}
        )

    def _log_unmatched(self, result: SeatReconciliationResult, bookings: List[Booking]):
        for number in result.unmatched_booking_numbers:
            booking = next((b for b in bookings if b.booking_number == number), None)
            details = booking.model_dump(by_alias=True) if booking else None
            logger.warning(f"Booking {number} is not part of trip {result.trip_id}. Details: {details}")
        log_reconciliation_event(
            ReconciliationAuditEvent.INCONSISTENT,
            result.trip_id,
            {"vehicle_id": result.vehicle_id, "unmatched_booking_numbers": result.unmatched_booking_numbers}
        )

    def _skipped(self, outcome: ReconciliationOutcome, **kwargs) -> TripReconciliationReport:
        report = TripReconciliationReport(outcome=outcome, **kwargs)
        log_reconciliation_event(
            ReconciliationAuditEvent.SKIPPED,
            report.trip_id or report.vehicle_id,
            {"outcome": outcome.value, "vehicle_id": report.vehicle_id, "error": report.error}
        )
        return report
