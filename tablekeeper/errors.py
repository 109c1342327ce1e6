"""
Booking errors and their HTTP mapping.

Validation problems are exceptions; conflicts are never raised, they come back
as decision values from the availability engine.
"""
from __future__ import annotations

from fastapi import HTTPException

STATUS_NOT_FOUND = 404
STATUS_UNPROCESSABLE = 422
STATUS_UNAVAILABLE = 503


class BookingError(Exception):
    """Base class for booking engine and store errors."""


class InvalidTimeFormat(BookingError, ValueError):
    def __init__(self, value):
        self.value = value
        super().__init__(f"Invalid time {value!r}, expected HH:MM")


class InvalidTimeWindow(BookingError, ValueError):
    def __init__(self, start_time, end_time):
        self.start_time = start_time
        self.end_time = end_time
        super().__init__(f"Booking window {start_time}-{end_time} is empty")


class InvalidPartySize(BookingError, ValueError):
    def __init__(self, party_size):
        self.party_size = party_size
        super().__init__(f"Party size must be positive, got {party_size}")


class BookingBusy(BookingError):
    """Another commit held the restaurant day for longer than the lock wait."""

    def __init__(self, lock_name):
        self.lock_name = lock_name
        super().__init__(f"Bookings are being changed ({lock_name}), retry shortly")


class TableNotFound(BookingError):
    def __init__(self, table_id):
        self.table_id = table_id
        super().__init__(f"Table {table_id} not found")


class BookingNotFound(BookingError):
    def __init__(self, booking_id):
        self.booking_id = booking_id
        super().__init__(f"Booking {booking_id} not found")


# (exception type, status_code). First match wins.
ERROR_RULES: list[tuple[type[BookingError], int]] = [
    (InvalidTimeFormat, STATUS_UNPROCESSABLE),
    (InvalidTimeWindow, STATUS_UNPROCESSABLE),
    (InvalidPartySize, STATUS_UNPROCESSABLE),
    (TableNotFound, STATUS_NOT_FOUND),
    (BookingNotFound, STATUS_NOT_FOUND),
    (BookingBusy, STATUS_UNAVAILABLE),
]


def error_to_http(exc: BookingError) -> HTTPException:
    """Map a booking error to an HTTPException; unknown errors become 400."""
    for exc_type, status_code in ERROR_RULES:
        if isinstance(exc, exc_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))
