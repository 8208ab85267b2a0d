"""
Reconciliation Engine Module

Keeps vehicle seat maps and bookings consistent with trips:
- Seat matching: clear seats marked booked that no passenger claims
- Booking archival: retire Active bookings over a month past departure
- Triggers: HTTP endpoints, debounced vehicle changes, recurring schedule
"""

from reconciliation.exceptions import ReconciliationError, SeatDataError
from reconciliation.models import (
    Booking,
    BookingStatus,
    Passenger,
    Seat,
    Trip,
    TripStatus,
    Vehicle,
    normalize_seat_number,
)
from reconciliation.seat_rules import SeatReconciliationResult, reconcile
from reconciliation.archive_rules import archive_cutoff, parse_departure_date, select_archivable
from reconciliation.services.reconciliation_service import (
    BulkReconciliationReport,
    ReconciliationOutcome,
    SeatReconciliationService,
    TripReconciliationReport,
)
from reconciliation.services.archive_service import ArchiveRunResult, BookingArchiveService
from reconciliation.debounce import VehicleChangeDebouncer
from reconciliation.scheduler import ArchiveScheduler
from reconciliation.endpoints.reconciliation_api import router as reconciliation_router

__all__ = [
    # Errors
    'ReconciliationError',
    'SeatDataError',
    # Models
    'Booking',
    'BookingStatus',
    'Passenger',
    'Seat',
    'Trip',
    'TripStatus',
    'Vehicle',
    'normalize_seat_number',
    # Rules
    'SeatReconciliationResult',
    'reconcile',
    'archive_cutoff',
    'parse_departure_date',
    'select_archivable',
    # Services
    'BulkReconciliationReport',
    'ReconciliationOutcome',
    'SeatReconciliationService',
    'TripReconciliationReport',
    'ArchiveRunResult',
    'BookingArchiveService',
    # Triggers
    'VehicleChangeDebouncer',
    'ArchiveScheduler',
    'reconciliation_router',
]
