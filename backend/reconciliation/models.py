"""
Reconciliation Data Model

Typed views over the raw booking, trip and vehicle documents.

Documents are parsed once at the boundary. Seat numbers are numeric on the
vehicle and textual on the passenger record; both are normalized to the same
canonical text here so the matching rules can compare them directly.

Unknown fields are preserved (extra="allow") so that a corrected seat map is
written back with everything it originally carried.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError, field_validator, model_validator

from reconciliation.exceptions import SeatDataError
from store.base import Document


# ==================== COLLECTIONS ====================

BOOKINGS_COLLECTION = "bookings"
TRIPS_COLLECTION = "trips"
VEHICLES_COLLECTION = "vehicles"


# ==================== ENUMS ====================

class TripStatus(str, Enum):
    """Trip lifecycle states. Only BOOKING trips are bulk-reconciled."""
    SCHEDULED = "Scheduled"
    BOOKING = "Booking"
    BOARDING = "Boarding"
    DEPARTED = "Departed"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class BookingStatus(str, Enum):
    ACTIVE = "Active"
    ARCHIVED = "Archived"


# ==================== SEAT NUMBERS ====================

def normalize_seat_number(value: Any) -> str:
    """
    Canonical text form of a seat number.

    Accepts ints, integral floats and digit strings ("7", " 07 ").

    Raises:
        SeatDataError: For anything else (bools, "A1", 4.5, None)
    """
    if isinstance(value, bool):
        raise SeatDataError(f"Invalid seat number: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise SeatDataError(f"Invalid seat number: {value!r}")
        return str(value)
    if isinstance(value, float):
        if value.is_integer() and value >= 0:
            return str(int(value))
        raise SeatDataError(f"Invalid seat number: {value!r}")
    if isinstance(value, str):
        text = value.strip()
        if text.isascii() and text.isdigit():
            return str(int(text))
        raise SeatDataError(f"Invalid seat number: {value!r}")
    raise SeatDataError(f"Invalid seat number: {value!r}")


def _unwrap_validation_error(exc: ValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg", ""))
    return "; ".join(messages)


def _coerce_id(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class _DocumentModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    @classmethod
    def from_document(cls, document: Document, **overrides):
        """
        Parse a store document.

        Raises:
            SeatDataError: If the document does not validate
        """
        data = dict(document.data)
        data.update(overrides)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise SeatDataError(
                f"Invalid {document.ref.collection} document {document.id}: {_unwrap_validation_error(e)}",
                document_id=document.id
            ) from e

    def to_document_data(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


# ==================== MODELS ====================

class Seat(_DocumentModel):
    """
    One seat on a vehicle's seat map.

    The stored entry is kept as it was read; to_document_data returns it
    untouched unless the seat has been cleared.
    """
    number: int
    booked: bool = False
    booked_by: Any = Field(default="", alias="bookedBy")

    _raw: Optional[Dict[str, Any]] = PrivateAttr(default=None)

    @model_validator(mode="wrap")
    @classmethod
    def _keep_raw(cls, value, handler):
        seat = handler(value)
        if isinstance(value, dict):
            seat._raw = dict(value)
        return seat

    @field_validator("number", mode="before")
    @classmethod
    def _validate_number(cls, value):
        try:
            return int(normalize_seat_number(value))
        except SeatDataError as e:
            raise ValueError(str(e))

    @field_validator("booked", mode="before")
    @classmethod
    def _truthy_booked(cls, value):
        return bool(value)

    @field_validator("booked_by", mode="before")
    @classmethod
    def _default_booked_by(cls, value):
        return "" if value is None else value

    @property
    def key(self) -> str:
        """Canonical text form used when matching against passenger claims."""
        return str(self.number)

    def cleared(self) -> "Seat":
        seat = self.model_copy(update={"booked": False, "booked_by": ""})
        if self._raw is not None:
            seat._raw = {**self._raw, "booked": False, "bookedBy": ""}
        return seat

    def to_document_data(self) -> Dict[str, Any]:
        if self._raw is None:
            return super().to_document_data()
        return dict(self._raw)


class Passenger(_DocumentModel):
    """A passenger entry embedded in a trip's roster."""
    booking_number: str = Field(default="", alias="bookingNumber")
    booked_seat: Optional[str] = Field(default=None, alias="bookedSeat")
    is_checked_in: Any = Field(default=False, alias="isCheckedIn")

    @field_validator("booking_number", mode="before")
    @classmethod
    def _default_booking_number(cls, value):
        return "" if value is None else str(value)

    @field_validator("booked_seat", mode="before")
    @classmethod
    def _normalize_booked_seat(cls, value):
        # Empty means the passenger has not been assigned a seat yet
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        try:
            return normalize_seat_number(value)
        except SeatDataError as e:
            raise ValueError(str(e))

    @field_validator("is_checked_in", mode="before")
    @classmethod
    def _default_checked_in(cls, value):
        return False if value is None else value


class Trip(_DocumentModel):
    """A scheduled journey with an assigned vehicle and passenger roster."""
    id: str
    vehicle_id: str = Field(alias="vehicleId")
    status: str = ""
    passengers: List[Passenger] = Field(default_factory=list)

    @field_validator("id", "vehicle_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value):
        return _coerce_id(value)

    @field_validator("passengers", mode="before")
    @classmethod
    def _default_passengers(cls, value):
        return [] if value is None else value

    @classmethod
    def from_document(cls, document: Document, **overrides):
        if not document.data.get("id"):
            overrides.setdefault("id", document.id)
        return super().from_document(document, **overrides)

    @property
    def booking_numbers(self) -> List[str]:
        return [p.booking_number for p in self.passengers]

    @property
    def claimed_seats(self) -> List[str]:
        return [p.booked_seat for p in self.passengers if p.booked_seat is not None]


class Booking(_DocumentModel):
    """A customer's reservation, referencing a trip by id."""
    id: str
    booking_number: str = Field(default="", alias="bookingNumber")
    trip_id: Optional[str] = Field(default=None, alias="tripId")
    status: str = ""
    departure_date: Any = Field(default=None, alias="departureDate")

    _doc_id: Optional[str] = PrivateAttr(default=None)

    @field_validator("id", "trip_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value):
        return _coerce_id(value)

    @field_validator("booking_number", mode="before")
    @classmethod
    def _default_booking_number(cls, value):
        return "" if value is None else str(value)

    @classmethod
    def from_document(cls, document: Document, **overrides):
        if not document.data.get("id"):
            overrides.setdefault("id", document.id)
        booking = super().from_document(document, **overrides)
        booking._doc_id = document.id
        return booking

    @property
    def doc_id(self) -> str:
        """Store document id, which may differ from the booking's own id field."""
        return self._doc_id or self.id


class Vehicle(_DocumentModel):
    """A vehicle and its full seat map."""
    id: str
    seats: List[Seat]

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_ids(cls, value):
        return _coerce_id(value)

    @field_validator("seats", mode="before")
    @classmethod
    def _require_seats(cls, value):
        if value is None:
            raise ValueError("vehicle has no seat collection")
        if not isinstance(value, list):
            raise ValueError("seat collection must be a list")
        return value

    @field_validator("seats")
    @classmethod
    def _unique_seat_numbers(cls, seats: List[Seat]):
        seen = set()
        for seat in seats:
            if seat.number in seen:
                raise ValueError(f"duplicate seat number {seat.number}")
            seen.add(seat.number)
        return seats

    @classmethod
    def from_document(cls, document: Document, **overrides):
        if not document.data.get("id"):
            overrides.setdefault("id", document.id)
        return super().from_document(document, **overrides)
