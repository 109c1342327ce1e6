from contextlib import nullcontext

import pytest

from tablekeeper.errors import BookingNotFound
from tablekeeper.models.schemas import Booking, BookingPatch, Customer, Table

TENANT = 58
RESTAURANT = 25
DATE = "2025-06-14"


class InMemoryStore:
    """Booking store over plain lists; counts reads so cache behaviour can be checked."""

    def __init__(self, tables=None, bookings=None):
        self.tables = list(tables or [])
        self.bookings = list(bookings or [])
        self.table_reads = 0
        self.booking_reads = 0

    def get_tables(self, tenant_id, restaurant_id):
        self.table_reads += 1
        return list(self.tables)

    def get_bookings(self, tenant_id, restaurant_id, date=None):
        self.booking_reads += 1
        return [b for b in self.bookings if date is None or b.date == date]

    def get_booking(self, tenant_id, restaurant_id, booking_id):
        for b in self.bookings:
            if b.id == booking_id:
                return b
        raise BookingNotFound(booking_id)

    def create_booking(self, tenant_id, restaurant_id, table_id, date, start_time, end_time,
                       party_size, customer: Customer, source="staff", booking_id=None):
        booking = Booking(
            id=booking_id if booking_id is not None else self.last_booking_id() + 1,
            table_id=table_id,
            date=date,
            start_time=start_time,
            end_time=end_time,
            party_size=party_size,
            customer_name=customer.name,
            customer_phone=customer.phone,
            customer_chat_id=customer.chat_id,
            source=source,
        )
        self.bookings.append(booking)
        return booking

    def last_booking_id(self):
        return max((b.id for b in self.bookings), default=0)

    def update_booking(self, tenant_id, restaurant_id, booking_id, patch: BookingPatch):
        for i, b in enumerate(self.bookings):
            if b.id == booking_id:
                self.bookings[i] = b.model_copy(update=patch.model_dump(exclude_none=True))
                return self.bookings[i]
        raise BookingNotFound(booking_id)


class DictCache:
    """Stand-in for SnapshotCache with the same method names."""

    def __init__(self):
        self.tables = {}
        self.bookings = {}
        self.invalidated = []
        self.locked = []
        self.last_id = None

    def get_tables(self, tenant_id, restaurant_id):
        return self.tables.get((tenant_id, restaurant_id))

    def set_tables(self, tenant_id, restaurant_id, tables):
        self.tables[(tenant_id, restaurant_id)] = list(tables)

    def get_bookings(self, tenant_id, restaurant_id, date):
        return self.bookings.get((tenant_id, restaurant_id, date))

    def set_bookings(self, tenant_id, restaurant_id, date, bookings):
        self.bookings[(tenant_id, restaurant_id, date)] = list(bookings)

    def invalidate_bookings(self, tenant_id, restaurant_id, *dates):
        for d in dates:
            self.invalidated.append(d)
            self.bookings.pop((tenant_id, restaurant_id, d), None)

    def invalidate_tables(self, tenant_id, restaurant_id):
        self.tables.pop((tenant_id, restaurant_id), None)

    def next_booking_id(self, last_id):
        if self.last_id is None:
            self.last_id = last_id()
        self.last_id += 1
        return self.last_id

    def commit_lock(self, tenant_id, restaurant_id, date):
        self.locked.append(date)
        return nullcontext()


def make_booking(id, table_id, start, end=None, date=DATE, status="confirmed", party_size=2, **kw):
    return Booking(
        id=id,
        table_id=table_id,
        date=date,
        start_time=start,
        end_time=end,
        party_size=party_size,
        status=status,
        **kw,
    )


@pytest.fixture
def tables():
    return [
        Table(id=1, capacity=2, label="1"),
        Table(id=2, capacity=4, label="2"),
        Table(id=3, capacity=4, label="3"),
    ]


@pytest.fixture
def dinner_booking():
    return make_booking(10, 2, "19:00", "21:00", party_size=3, customer_chat_id=555)
