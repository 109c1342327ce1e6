"""Wall-clock times as minutes since midnight, and half-open intervals over them."""
from typing import NamedTuple, Optional

from tablekeeper.errors import InvalidTimeFormat, InvalidTimeWindow

MINUTES_PER_DAY = 24 * 60


class TimeInterval(NamedTuple):
    """Half-open range [start, end) in minutes since midnight of one date."""

    start: int
    end: int

    def buffered(self, minutes: int) -> "TimeInterval":
        return TimeInterval(self.start - minutes, self.end + minutes)

    def contains(self, minute: int) -> bool:
        return self.start <= minute < self.end


def parse_time(value: str) -> int:
    """Parse "HH:MM" into minutes since midnight."""
    if not isinstance(value, str):
        raise InvalidTimeFormat(value)
    parts = value.strip().split(":")
    if len(parts) != 2 or not all(p.isascii() and p.isdigit() for p in parts):
        raise InvalidTimeFormat(value)
    hours, minutes = int(parts[0]), int(parts[1])
    if hours > 23 or minutes > 59:
        raise InvalidTimeFormat(value)
    return hours * 60 + minutes


def add_minutes(time: int, delta: int) -> int:
    """Wall-clock arithmetic; wraps within the day, never rolls the date."""
    return (time + delta) % MINUTES_PER_DAY


def format_time(minutes: int) -> str:
    minutes %= MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def booking_window(start_time: str, end_time: Optional[str], default_duration: int) -> TimeInterval:
    """
    Build the unbuffered window of a booking or request.

    A missing end means start + default_duration. An end before the start is
    read as past midnight, so the interval keeps start < end on the same date.
    An explicit end equal to the start is an empty window and is rejected.
    """
    start = parse_time(start_time)
    if end_time is None:
        end = add_minutes(start, default_duration)
    else:
        end = parse_time(end_time)
        if end == start:
            raise InvalidTimeWindow(start_time, end_time)
    if end <= start:
        end += MINUTES_PER_DAY
    return TimeInterval(start, end)
