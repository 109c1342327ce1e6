from tablekeeper.models.schemas import Booking
from tablekeeper.services.timeslots import TimeInterval, booking_window


def intervals_overlap(a: TimeInterval, b: TimeInterval) -> bool:
    """Half-open intersection test. Ranges that only touch do not overlap."""
    return a.start < b.end and b.start < a.end


def booking_interval(booking: Booking, default_duration: int) -> TimeInterval:
    return booking_window(booking.start_time, booking.end_time, default_duration)


def buffered_interval(booking: Booking, buffer_minutes: int, default_duration: int) -> TimeInterval:
    """Booking window widened by the turnover buffer on both ends."""
    return booking_interval(booking, default_duration).buffered(buffer_minutes)
