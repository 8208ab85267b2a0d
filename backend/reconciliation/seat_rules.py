"""
Seat Matching Rules

Pure reconciliation of a trip's passenger roster against its vehicle's seat map.

Cross-check:
- every booking number found for the trip must appear in the trip roster
- any that does not is a referential inconsistency: reconciliation stops,
  nothing is corrected, and the unmatched numbers are reported

Seat audit:
- a seat marked booked is valid only if some passenger claims that seat number
- every other booked seat is stale and is cleared (booked=False, bookedBy="")

Seats claimed by a passenger but not marked booked are left alone; the audit
only ever clears flags, it never sets them.

No I/O happens here. The caller decides whether and how to persist.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from reconciliation.models import Booking, Seat, Trip, Vehicle


@dataclass
class SeatReconciliationResult:
    """
    Correction descriptor for one trip/vehicle pair.

    updated_seats is the complete seat map with stale seats cleared, in the
    vehicle's original order. It is empty when nothing needs correcting.
    """
    trip_id: str
    vehicle_id: str
    consistent: bool
    unmatched_booking_numbers: List[str] = field(default_factory=list)
    stale_seats: List[Seat] = field(default_factory=list)
    updated_seats: List[Seat] = field(default_factory=list)

    @property
    def has_corrections(self) -> bool:
        return bool(self.updated_seats)

    @property
    def cleared_seat_numbers(self) -> List[int]:
        return [seat.number for seat in self.stale_seats]

    def seat_documents(self) -> List[Dict[str, Any]]:
        """Seat map to write back: cleared entries updated, every other entry as stored."""
        return [seat.to_document_data() for seat in self.updated_seats]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trip_id": self.trip_id,
            "vehicle_id": self.vehicle_id,
            "consistent": self.consistent,
            "unmatched_booking_numbers": self.unmatched_booking_numbers,
            "cleared_seats": self.cleared_seat_numbers,
            "has_corrections": self.has_corrections,
        }


def find_unmatched_booking_numbers(trip: Trip, bookings_for_trip: Sequence[Booking]) -> List[str]:
    """Booking numbers present in the bookings but absent from the trip roster."""
    roster = set(trip.booking_numbers)
    unmatched = []
    for booking in bookings_for_trip:
        number = booking.booking_number
        if number not in roster and number not in unmatched:
            unmatched.append(number)
    return unmatched


def find_stale_seats(trip: Trip, vehicle: Vehicle) -> List[Seat]:
    """Seats marked booked that no passenger on the trip claims."""
    claimed = set(trip.claimed_seats)
    return [seat for seat in vehicle.seats if seat.booked and seat.key not in claimed]


def reconcile(trip: Trip, bookings_for_trip: Sequence[Booking], vehicle: Vehicle) -> SeatReconciliationResult:
    """
    Compute the seat corrections for a trip and its vehicle.

    Args:
        trip: The trip, with its (possibly empty) passenger roster
        bookings_for_trip: Every booking whose tripId is this trip
        vehicle: The vehicle assigned to the trip, with its full seat map

    Returns:
        SeatReconciliationResult. consistent is False when any booking is
        missing from the roster, in which case no corrections are produced.
    """
    unmatched = find_unmatched_booking_numbers(trip, bookings_for_trip)
    if unmatched:
        return SeatReconciliationResult(
            trip_id=trip.id,
            vehicle_id=vehicle.id,
            consistent=False,
            unmatched_booking_numbers=unmatched
        )

    stale_seats = find_stale_seats(trip, vehicle)
    if not stale_seats:
        return SeatReconciliationResult(trip_id=trip.id, vehicle_id=vehicle.id, consistent=True)

    stale_numbers = {seat.number for seat in stale_seats}
    updated_seats = [
        seat.cleared() if seat.number in stale_numbers else seat
        for seat in vehicle.seats
    ]

    return SeatReconciliationResult(
        trip_id=trip.id,
        vehicle_id=vehicle.id,
        consistent=True,
        stale_seats=stale_seats,
        updated_seats=updated_seats
    )
