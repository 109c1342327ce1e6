"""
Booking flows on top of the availability engine.

Every write goes through three separate phases so a retry only repeats the
one that failed:

  decide  - the engine on the (possibly cached) snapshot
  commit  - under the restaurant/day lock, re-decide on a fresh snapshot and
            write through the mutation gateway
  re-sync - drop the cached snapshot for the touched dates
"""
from datetime import datetime
from functools import lru_cache
from typing import List, Optional
import logging
import threading
from tablekeeper.config import settings
from tablekeeper.models.schemas import (
    AvailabilityDecision,
    AvailabilityQuery,
    Booking,
    BookingOutcome,
    BookingPatch,
    BookingSource,
    BookingStatus,
    Clear,
    ConflictWithAlternative,
    Customer,
    DoubleBooking,
    Table,
    TableState,
)
from tablekeeper.services import availability
from tablekeeper.services.providers import BookingStore
from tablekeeper.services.redis_client import SnapshotCache
from tablekeeper.services.sheets import get_sheets_client
from tablekeeper.services.timeslots import booking_window, format_time, parse_time

logger = logging.getLogger(__name__)


class BookingService:
    def __init__(
        self,
        store: BookingStore,
        cache: Optional[SnapshotCache] = None,
        buffer_minutes: Optional[int] = None,
        default_duration_minutes: Optional[int] = None,
    ):
        self.store = store
        self.cache = cache
        self.buffer_minutes = (
            settings.TURNOVER_BUFFER_MINUTES if buffer_minutes is None else buffer_minutes
        )
        self.default_duration_minutes = (
            settings.DEFAULT_DURATION_MINUTES if default_duration_minutes is None else default_duration_minutes
        )
        # without Redis, commits are serialized within this process only
        self._local_lock = threading.Lock()

    # -- snapshots ---------------------------------------------------------

    def _tables(self, tenant_id: int, restaurant_id: int, fresh: bool = False) -> List[Table]:
        if self.cache is not None and not fresh:
            cached = self.cache.get_tables(tenant_id, restaurant_id)
            if cached is not None:
                return cached
        tables = self.store.get_tables(tenant_id, restaurant_id)
        if self.cache is not None:
            self.cache.set_tables(tenant_id, restaurant_id, tables)
        return tables

    def _bookings(self, tenant_id: int, restaurant_id: int, date: str, fresh: bool = False) -> List[Booking]:
        if self.cache is not None and not fresh:
            cached = self.cache.get_bookings(tenant_id, restaurant_id, date)
            if cached is not None:
                return cached
        bookings = self.store.get_bookings(tenant_id, restaurant_id, date)
        if self.cache is not None:
            self.cache.set_bookings(tenant_id, restaurant_id, date, bookings)
        return bookings

    def _lock(self, tenant_id: int, restaurant_id: int, date: str):
        if self.cache is None:
            return self._local_lock
        return self.cache.commit_lock(tenant_id, restaurant_id, date)

    def _new_booking_id(self) -> Optional[int]:
        if self.cache is None:
            return None
        return self.cache.next_booking_id(self.store.last_booking_id)

    def _resync(self, tenant_id: int, restaurant_id: int, *dates: str):
        if self.cache is not None:
            self.cache.invalidate_bookings(tenant_id, restaurant_id, *set(dates))

    # -- decide ------------------------------------------------------------

    def _decide(self, query: AvailabilityQuery, tables: List[Table], bookings: List[Booking]) -> AvailabilityDecision:
        return availability.check_availability(
            query,
            tables,
            bookings,
            buffer_minutes=self.buffer_minutes,
            default_duration_minutes=self.default_duration_minutes,
        )

    def check(self, tenant_id: int, restaurant_id: int, query: AvailabilityQuery) -> AvailabilityDecision:
        """Decide only; never writes."""
        availability.validate_party_size(query.party_size)
        return self._decide(
            query,
            self._tables(tenant_id, restaurant_id),
            self._bookings(tenant_id, restaurant_id, query.date),
        )

    def free_tables(self, tenant_id: int, restaurant_id: int, query: AvailabilityQuery) -> List[Table]:
        """Every table that could take the query, best fit first."""
        return availability.free_tables(
            query,
            self._tables(tenant_id, restaurant_id),
            self._bookings(tenant_id, restaurant_id, query.date),
            buffer_minutes=self.buffer_minutes,
            default_duration_minutes=self.default_duration_minutes,
        )

    def refresh_tables(self, tenant_id: int, restaurant_id: int) -> List[Table]:
        """Drop the cached table catalog (after the floor plan changed) and reload it."""
        if self.cache is not None:
            self.cache.invalidate_tables(tenant_id, restaurant_id)
        return self._tables(tenant_id, restaurant_id, fresh=True)

    def _recheck(self, tenant_id: int, restaurant_id: int, query: AvailabilityQuery, table: Table) -> AvailabilityDecision:
        pinned = query.model_copy(update={"preferred_table_id": table.id})
        return self._decide(
            pinned,
            self._tables(tenant_id, restaurant_id, fresh=True),
            self._bookings(tenant_id, restaurant_id, query.date, fresh=True),
        )

    def _end_time(self, query: AvailabilityQuery) -> str:
        window = booking_window(query.start_time, query.end_time, self.default_duration_minutes)
        return format_time(window.end)

    # -- flows -------------------------------------------------------------

    def book(
        self,
        tenant_id: int,
        restaurant_id: int,
        query: AvailabilityQuery,
        customer: Customer,
        accept_alternative: bool = False,
        source: BookingSource = "staff",
    ) -> BookingOutcome:
        """
        Create a booking when the decision allows it.

        Commits on Clear, or on ConflictWithAlternative if the caller accepted the
        alternative table. Any other decision comes back without a booking.
        """
        decision = self.check(tenant_id, restaurant_id, query)
        if isinstance(decision, Clear):
            table = decision.table
        elif isinstance(decision, ConflictWithAlternative) and accept_alternative:
            table = decision.alternative
        else:
            return BookingOutcome(decision=decision)

        with self._lock(tenant_id, restaurant_id, query.date):
            fresh = self._recheck(tenant_id, restaurant_id, query, table)
            if not isinstance(fresh, Clear):
                logger.warning(
                    "Table %s was taken before commit (%s %s), not booking",
                    table.id, query.date, query.start_time,
                )
                return BookingOutcome(decision=fresh)
            booking = self.store.create_booking(
                tenant_id,
                restaurant_id,
                table.id,
                query.date,
                query.start_time,
                self._end_time(query),
                query.party_size,
                customer,
                source,
                booking_id=self._new_booking_id(),
            )
        self._resync(tenant_id, restaurant_id, query.date)
        return BookingOutcome(decision=decision, booking=booking)

    def walk_in(
        self,
        tenant_id: int,
        restaurant_id: int,
        party_size: int,
        now: datetime,
        customer: Optional[Customer] = None,
    ) -> BookingOutcome:
        """Seat a party right now on the tightest free table."""
        query = AvailabilityQuery(
            date=now.strftime("%Y-%m-%d"),
            start_time=now.strftime("%H:%M"),
            party_size=party_size,
        )
        return self.book(tenant_id, restaurant_id, query, customer or Customer(), source="walk-in")

    def reschedule(
        self,
        tenant_id: int,
        restaurant_id: int,
        booking_id: int,
        date: str,
        start_time: str,
        end_time: Optional[str] = None,
        table_id: Optional[int] = None,
    ) -> BookingOutcome:
        """
        Move a booking (drag-and-drop on the calendar).

        The booking keeps its table unless `table_id` is given, and keeps its
        duration unless `end_time` is given. It never conflicts with itself.
        Only a Clear decision is committed.
        """
        booking = self.store.get_booking(tenant_id, restaurant_id, booking_id)
        if end_time is None and booking.end_time is not None:
            old = booking_window(booking.start_time, booking.end_time, self.default_duration_minutes)
            end_time = format_time(parse_time(start_time) + (old.end - old.start))

        query = AvailabilityQuery(
            date=date,
            start_time=start_time,
            end_time=end_time,
            party_size=booking.party_size,
            preferred_table_id=table_id if table_id is not None else booking.table_id,
            exclude_booking_id=booking.id,
        )
        decision = self.check(tenant_id, restaurant_id, query)
        if not isinstance(decision, Clear):
            return BookingOutcome(decision=decision)

        with self._lock(tenant_id, restaurant_id, date):
            fresh = self._recheck(tenant_id, restaurant_id, query, decision.table)
            if not isinstance(fresh, Clear):
                logger.warning("Booking %s could not be moved, table %s taken", booking_id, decision.table.id)
                return BookingOutcome(decision=fresh)
            updated = self.store.update_booking(
                tenant_id,
                restaurant_id,
                booking_id,
                BookingPatch(
                    date=date,
                    start_time=start_time,
                    end_time=self._end_time(query),
                    table_id=decision.table.id,
                ),
            )
        self._resync(tenant_id, restaurant_id, booking.date, date)
        return BookingOutcome(decision=decision, booking=updated)

    def set_status(self, tenant_id: int, restaurant_id: int, booking_id: int, status: BookingStatus) -> Booking:
        updated = self.store.update_booking(tenant_id, restaurant_id, booking_id, BookingPatch(status=status))
        self._resync(tenant_id, restaurant_id, updated.date)
        return updated

    def cancel(self, tenant_id: int, restaurant_id: int, booking_id: int) -> Booking:
        return self.set_status(tenant_id, restaurant_id, booking_id, "cancelled")

    # -- dashboard reads ---------------------------------------------------

    def table_states(self, tenant_id: int, restaurant_id: int, date: str, at_time: str) -> List[TableState]:
        return availability.table_states(
            self._tables(tenant_id, restaurant_id),
            self._bookings(tenant_id, restaurant_id, date),
            date,
            at_time,
            buffer_minutes=self.buffer_minutes,
            default_duration_minutes=self.default_duration_minutes,
        )

    def double_bookings(self, tenant_id: int, restaurant_id: int, date: str) -> List[DoubleBooking]:
        return availability.detect_double_bookings(
            self._bookings(tenant_id, restaurant_id, date),
            default_duration_minutes=self.default_duration_minutes,
        )


@lru_cache(maxsize=1)
def get_booking_service() -> BookingService:
    return BookingService(get_sheets_client(), SnapshotCache())
