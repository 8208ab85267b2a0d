"""
Reconciliation API Endpoints

Trigger surface for the seat reconciler and the booking archiver:
- POST /api/reconciliation/seats/reset - Reconcile seats for every trip in Booking status
- POST /api/reconciliation/bookings/archive - Archive bookings that departed over a month ago
- POST /api/reconciliation/vehicles/{vehicle_id}/changed - Vehicle change notification
- GET /api/reconciliation/status - Module status

The trigger endpoints answer with plain-text summaries. Only POST is routed on
them, so any other method gets 405 Method Not Allowed.
"""

import logging
from typing import Any, Dict, Optional
from datetime import datetime, timezone

from fastapi import APIRouter, Body, Depends, Request, status
from fastapi.responses import PlainTextResponse

from reconciliation.services.archive_service import BookingArchiveService
from reconciliation.services.reconciliation_service import SeatReconciliationService
from store.base import DocumentStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reconciliation", tags=["Reconciliation"])

INTERNAL_ERROR_MESSAGE = "Internal Server Error"


# ==================== Dependencies ====================

def get_document_store(request: Request) -> DocumentStore:
    """Document store configured for this application."""
    return request.app.state.document_store


def get_vehicle_debouncer(request: Request):
    return request.app.state.vehicle_debouncer


# ==================== Endpoints ====================

@router.get("/status", summary="Module status")
async def get_module_status(request: Request, debouncer=Depends(get_vehicle_debouncer)):
    """
    Get reconciliation module status.

    Returns the settling delay, scheduler state and vehicles awaiting reconciliation.
    """
    scheduler = getattr(request.app.state, "archive_scheduler", None)
    now = datetime.now(timezone.utc)

    return {
        "module": "reconciliation",
        "status": "operational",
        "seat_settling_delay_seconds": debouncer.delay_seconds,
        "pending_vehicles": debouncer.pending,
        "archive_scheduler": {
            "enabled": scheduler is not None,
            "running": scheduler.is_running if scheduler else False,
            "timezone": scheduler.timezone_name if scheduler else None,
            "interval_hours": scheduler.interval_hours if scheduler else None,
            "next_run": scheduler.next_run_after(now).isoformat() if scheduler else None,
            "last_run": scheduler.last_run_at.isoformat() if scheduler and scheduler.last_run_at else None,
        },
        "timestamp": now.isoformat()
    }


@router.post("/seats/reset", response_class=PlainTextResponse, summary="Reset stale seats")
async def reset_seats_for_trips(store: DocumentStore = Depends(get_document_store)):
    """
    Reconcile the seat map of every trip in Booking status.

    Trips with inconsistent bookings or a missing vehicle are skipped and
    logged; the remaining trips are still processed.

    Returns:
    - 200: Summary of the run
    - 404: No trips in Booking status
    - 500: Store failure
    """
    try:
        report = await SeatReconciliationService(store).reconcile_booking_trips()
    except Exception as e:
        logger.error(f"Error processing trips: {e}")
        return PlainTextResponse(INTERNAL_ERROR_MESSAGE, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    if report.trips_scanned == 0:
        return PlainTextResponse("No trips found in Booking status.", status_code=status.HTTP_404_NOT_FOUND)

    return PlainTextResponse(report.summary())


@router.post("/bookings/archive", response_class=PlainTextResponse, summary="Archive old bookings")
async def archive_old_bookings(store: DocumentStore = Depends(get_document_store)):
    """
    Archive every Active booking whose departure date is over a month old.

    Returns:
    - 200: Summary of the run
    - 500: Store failure
    """
    try:
        result = await BookingArchiveService(store).archive_old_bookings()
    except Exception as e:
        logger.error(f"Error archiving bookings: {e}")
        return PlainTextResponse(INTERNAL_ERROR_MESSAGE, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    return PlainTextResponse(f"Old bookings archived successfully. {result.summary()}")


@router.post(
    "/vehicles/{vehicle_id}/changed",
    response_class=PlainTextResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Vehicle change notification"
)
async def vehicle_changed(
    vehicle_id: str,
    snapshot: Optional[Dict[str, Any]] = Body(default=None),
    debouncer=Depends(get_vehicle_debouncer)
):
    """
    Accept a post-change vehicle snapshot.

    Seat reconciliation for the vehicle runs once the settling delay has
    passed without further changes to the same vehicle.
    """
    if not snapshot:
        logger.error(f"Vehicle document not found in change notification for {vehicle_id}")
        return PlainTextResponse("Vehicle document not found", status_code=status.HTTP_400_BAD_REQUEST)

    debouncer.notify(vehicle_id, snapshot)
    logger.info(f"Vehicle {vehicle_id} change accepted; reconciling in {debouncer.delay_seconds}s")
    return PlainTextResponse("Vehicle change accepted", status_code=status.HTTP_202_ACCEPTED)
