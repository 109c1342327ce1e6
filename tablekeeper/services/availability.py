"""
Booking conflict and table-assignment engine.

Everything here is pure: callers pass already-fetched snapshots of tables and
bookings, nothing is mutated and nothing is written. The decision values
(Clear / ConflictWithAlternative / ConflictNoAlternative) are returned, never
raised.
"""
import logging
from itertools import combinations
from typing import Iterable, List, Optional, Sequence

from tablekeeper.errors import InvalidPartySize, TableNotFound
from tablekeeper.models.schemas import (
    AvailabilityDecision,
    AvailabilityQuery,
    Booking,
    Clear,
    ConflictNoAlternative,
    ConflictWithAlternative,
    DoubleBooking,
    Table,
    TableState,
)
from tablekeeper.services.overlap import booking_interval, buffered_interval, intervals_overlap
from tablekeeper.services.timeslots import TimeInterval, booking_window, format_time, parse_time

logger = logging.getLogger(__name__)

TURNOVER_BUFFER_MINUTES = 60
DEFAULT_DURATION_MINUTES = 120


def validate_party_size(party_size: int) -> None:
    if party_size <= 0:
        raise InvalidPartySize(party_size)


def label_key(label: str):
    """Numeric labels sort as numbers and before non-numeric ones."""
    text = label.strip()
    if text.isascii() and text.isdigit():
        return (0, int(text), text)
    return (1, 0, text)


def rank_tables(tables: Iterable[Table], party_size: int) -> List[Table]:
    """Tightest fit first, then by label, then by id."""
    return sorted(
        tables,
        key=lambda t: (abs(t.capacity - party_size), label_key(t.label), t.id),
    )


def active_bookings(
    bookings: Iterable[Booking],
    date: str,
    exclude_booking_id: Optional[int] = None,
) -> List[Booking]:
    """Bookings on `date` that can block a table: assigned and not cancelled."""
    return [
        b for b in bookings
        if b.date == date
        and b.status != "cancelled"
        and b.table_id is not None
        and b.id != exclude_booking_id
    ]


def conflicts_on_table(
    table_id: int,
    requested: TimeInterval,
    bookings: Sequence[Booking],
    buffer_minutes: int,
    default_duration_minutes: int,
) -> List[Booking]:
    """
    Bookings on `table_id` whose buffered window overlaps `requested`.

    `requested` must already be buffered. Result is ordered by start time, then id.
    """
    hits = [
        b for b in bookings
        if b.table_id == table_id
        and intervals_overlap(
            requested, buffered_interval(b, buffer_minutes, default_duration_minutes)
        )
    ]
    return sorted(hits, key=lambda b: (parse_time(b.start_time), b.id))


def _requested_interval(
    query: AvailabilityQuery, buffer_minutes: int, default_duration_minutes: int
) -> TimeInterval:
    window = booking_window(query.start_time, query.end_time, default_duration_minutes)
    return window.buffered(buffer_minutes)


def _free_candidates(
    tables: Iterable[Table],
    party_size: int,
    requested: TimeInterval,
    bookings: Sequence[Booking],
    buffer_minutes: int,
    default_duration_minutes: int,
) -> List[Table]:
    candidates = [t for t in tables if t.active and t.capacity >= party_size]
    free = [
        t for t in candidates
        if not conflicts_on_table(t.id, requested, bookings, buffer_minutes, default_duration_minutes)
    ]
    return rank_tables(free, party_size)


def _check_snapshot(bookings: Sequence[Booking], default_duration_minutes: int) -> None:
    # parse every relevant time up front so a bad row aborts before any decision
    for b in bookings:
        booking_window(b.start_time, b.end_time, default_duration_minutes)


def check_availability(
    query: AvailabilityQuery,
    tables: Sequence[Table],
    existing_bookings: Sequence[Booking],
    *,
    buffer_minutes: int = TURNOVER_BUFFER_MINUTES,
    default_duration_minutes: int = DEFAULT_DURATION_MINUTES,
) -> AvailabilityDecision:
    """
    Decide whether the requested window is free.

    With a preferred table: Clear(preferred) when it has no overlapping booking,
    otherwise the best free alternative (ConflictWithAlternative) or
    ConflictNoAlternative. Without one: Clear(best free table) or
    ConflictNoAlternative(None).

    Raises InvalidPartySize / InvalidTimeFormat / TableNotFound before any
    decision is made.
    """
    validate_party_size(query.party_size)
    requested = _requested_interval(query, buffer_minutes, default_duration_minutes)
    bookings = active_bookings(existing_bookings, query.date, query.exclude_booking_id)
    _check_snapshot(bookings, default_duration_minutes)

    if not tables:
        logger.info("No tables configured, nothing to offer for %s %s", query.date, query.start_time)
        return ConflictNoAlternative(conflict=None)

    conflict = None
    if query.preferred_table_id is not None:
        preferred = next((t for t in tables if t.id == query.preferred_table_id), None)
        if preferred is None:
            raise TableNotFound(query.preferred_table_id)
        hits = conflicts_on_table(
            preferred.id, requested, bookings, buffer_minutes, default_duration_minutes
        )
        if not hits:
            return Clear(table=preferred)
        conflict = hits[0]
        logger.info(
            "Table %s busy at %s %s (booking %s), searching alternative",
            preferred.id, query.date, query.start_time, conflict.id,
        )

    ranked = _free_candidates(
        tables,
        query.party_size,
        requested,
        bookings,
        buffer_minutes,
        default_duration_minutes,
    )
    if not ranked:
        return ConflictNoAlternative(conflict=conflict)
    if conflict is not None:
        return ConflictWithAlternative(conflict=conflict, alternative=ranked[0])
    return Clear(table=ranked[0])


def free_tables(
    query: AvailabilityQuery,
    tables: Sequence[Table],
    existing_bookings: Sequence[Booking],
    *,
    buffer_minutes: int = TURNOVER_BUFFER_MINUTES,
    default_duration_minutes: int = DEFAULT_DURATION_MINUTES,
) -> List[Table]:
    """All active tables with enough seats that are free for the query window, best first."""
    validate_party_size(query.party_size)
    requested = _requested_interval(query, buffer_minutes, default_duration_minutes)
    bookings = active_bookings(existing_bookings, query.date, query.exclude_booking_id)
    return _free_candidates(
        tables, query.party_size, requested, bookings, buffer_minutes, default_duration_minutes
    )


def table_states(
    tables: Sequence[Table],
    existing_bookings: Sequence[Booking],
    date: str,
    at_time: str,
    *,
    buffer_minutes: int = TURNOVER_BUFFER_MINUTES,
    default_duration_minutes: int = DEFAULT_DURATION_MINUTES,
) -> List[TableState]:
    """
    Live status of every active table at `at_time`, from confirmed and pending bookings.

    occupied: a booking's window contains the moment.
    reserved: the next booking on the table starts within the turnover buffer.
    available: otherwise.
    """
    now = parse_time(at_time)
    bookings = [
        b for b in active_bookings(existing_bookings, date)
        if b.status in ("confirmed", "pending")
    ]
    states = []
    for table in sorted((t for t in tables if t.active), key=lambda t: (label_key(t.label), t.id)):
        on_table = sorted(
            (b for b in bookings if b.table_id == table.id),
            key=lambda b: (parse_time(b.start_time), b.id),
        )
        current = next(
            (b for b in on_table if booking_interval(b, default_duration_minutes).contains(now)),
            None,
        )
        upcoming = next((b for b in on_table if parse_time(b.start_time) > now), None)
        if current is not None:
            state = "occupied"
        elif upcoming is not None and parse_time(upcoming.start_time) - now <= buffer_minutes:
            state = "reserved"
        else:
            state = "available"
        states.append(TableState(table=table, state=state, current_booking=current, next_booking=upcoming))
    return states


def detect_double_bookings(
    existing_bookings: Iterable[Booking],
    *,
    default_duration_minutes: int = DEFAULT_DURATION_MINUTES,
) -> List[DoubleBooking]:
    """Confirmed bookings sharing a table and date whose windows overlap (no buffer)."""
    groups = {}
    for b in existing_bookings:
        if b.status == "confirmed" and b.table_id is not None:
            groups.setdefault((b.table_id, b.date), []).append(b)

    found = []
    for (table_id, _date), group in sorted(groups.items()):
        group.sort(key=lambda b: (parse_time(b.start_time), b.id))
        for first, second in combinations(group, 2):
            a = booking_interval(first, default_duration_minutes)
            b = booking_interval(second, default_duration_minutes)
            if intervals_overlap(a, b):
                found.append(DoubleBooking(
                    table_id=table_id,
                    bookings=[first, second],
                    overlap_start=format_time(max(a.start, b.start)),
                    overlap_end=format_time(min(a.end, b.end)),
                ))
    return found
