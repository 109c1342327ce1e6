"""Data access interfaces the booking service depends on. The Sheets store implements all three."""
from typing import List, Optional, Protocol

from tablekeeper.models.schemas import Booking, BookingPatch, BookingSource, Customer, Table


class TableCatalogProvider(Protocol):
    def get_tables(self, tenant_id: int, restaurant_id: int) -> List[Table]:
        """All tables of a restaurant, active or not."""
        ...


class BookingSnapshotProvider(Protocol):
    def get_bookings(self, tenant_id: int, restaurant_id: int, date: Optional[str] = None) -> List[Booking]:
        """Bookings of a restaurant, optionally only those on `date`."""
        ...

    def get_booking(self, tenant_id: int, restaurant_id: int, booking_id: int) -> Booking:
        """Raises BookingNotFound."""
        ...


class BookingMutationGateway(Protocol):
    def create_booking(
        self,
        tenant_id: int,
        restaurant_id: int,
        table_id: int,
        date: str,
        start_time: str,
        end_time: str,
        party_size: int,
        customer: Customer,
        source: BookingSource = "staff",
        booking_id: Optional[int] = None,
    ) -> Booking:
        """Stores a confirmed booking; the store picks the id when none is given."""
        ...

    def last_booking_id(self) -> int:
        """Highest booking id in use, across all tenants."""
        ...

    def update_booking(self, tenant_id: int, restaurant_id: int, booking_id: int, patch: BookingPatch) -> Booking:
        """Raises BookingNotFound."""
        ...


class BookingStore(TableCatalogProvider, BookingSnapshotProvider, BookingMutationGateway, Protocol):
    pass
