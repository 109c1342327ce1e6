from google.oauth2 import service_account
from googleapiclient.discovery import build
from functools import lru_cache
from typing import List, Optional
from datetime import datetime
import logging
from tablekeeper.config import settings
from tablekeeper.errors import BookingNotFound
from tablekeeper.models.schemas import Table, Booking, BookingPatch, BookingSource, Customer

logger = logging.getLogger(__name__)

TABLE_COLUMNS = 7     # tenant_id, restaurant_id, table_id, label, capacity, active, room_id
BOOKING_COLUMNS = 14  # booking_id .. created_at, see _booking_to_row


def _pad(row: List, size: int) -> List:
    # Sheets drops trailing empty cells
    return list(row) + [''] * (size - len(row))


def _int_or_none(value) -> Optional[int]:
    value = str(value).strip()
    return int(value) if value else None


def _row_to_booking(row: List) -> Booking:
    row = _pad(row, BOOKING_COLUMNS)
    return Booking(
        id=int(row[0]),
        date=row[3],
        start_time=row[4],
        end_time=row[5] or None,
        party_size=int(row[6]),
        table_id=_int_or_none(row[7]),
        status=row[8] or 'confirmed',
        customer_name=row[9],
        customer_phone=row[10],
        customer_chat_id=_int_or_none(row[11]),
        source=row[12] or 'staff',
        created_at=row[13],
    )


def _booking_to_row(tenant_id: int, restaurant_id: int, booking: Booking) -> List:
    return [
        booking.id,
        tenant_id,
        restaurant_id,
        booking.date,
        booking.start_time,
        booking.end_time or '',
        booking.party_size,
        '' if booking.table_id is None else booking.table_id,
        booking.status,
        booking.customer_name,
        booking.customer_phone,
        '' if booking.customer_chat_id is None else booking.customer_chat_id,
        booking.source,
        booking.created_at,
    ]


def _owned_by(row: List, tenant_id: int, restaurant_id: int) -> bool:
    return str(row[0]) == str(tenant_id) and str(row[1]) == str(restaurant_id)


class SheetsClient:
    """Tables and bookings of every tenant, stored as rows of one spreadsheet."""

    def __init__(self, service=None, spreadsheet_id: Optional[str] = None):
        if service is None:
            credentials = service_account.Credentials.from_service_account_file(
                settings.GOOGLE_CREDENTIALS_JSON,
                scopes=['https://www.googleapis.com/auth/spreadsheets']
            )
            service = build('sheets', 'v4', credentials=credentials)
        self.service = service
        self.spreadsheet_id = spreadsheet_id or settings.GOOGLE_SHEETS_ID

    def _read_range(self, range_name: str) -> List[List]:
        result = self.service.spreadsheets().values().get(
            spreadsheetId=self.spreadsheet_id,
            range=range_name
        ).execute()
        return result.get('values', [])

    def _append_range(self, range_name: str, values: List[List]):
        self.service.spreadsheets().values().append(
            spreadsheetId=self.spreadsheet_id,
            range=range_name,
            valueInputOption='RAW',
            insertDataOption='INSERT_ROWS',
            body={'values': values}
        ).execute()

    def _update_range(self, range_name: str, values: List[List]):
        self.service.spreadsheets().values().update(
            spreadsheetId=self.spreadsheet_id,
            range=range_name,
            valueInputOption='RAW',
            body={'values': values}
        ).execute()

    def get_tables(self, tenant_id: int, restaurant_id: int) -> List[Table]:
        """Returns all tables of the restaurant, inactive ones included"""
        rows = self._read_range('tables!A2:G')
        tables = []
        for row in rows:
            if len(row) < 5:
                continue
            row = _pad(row, TABLE_COLUMNS)
            if not _owned_by(row, tenant_id, restaurant_id):
                continue
            tables.append(Table(
                id=int(row[2]),
                label=str(row[3]),
                capacity=int(row[4]),
                active=str(row[5]).upper() != 'FALSE',
                room_id=_int_or_none(row[6]),
            ))
        return tables

    def _booking_rows(self, tenant_id: int, restaurant_id: int):
        """Yields (sheet row number, row) for the restaurant's bookings"""
        rows = self._read_range('bookings!A2:N')
        for idx, row in enumerate(rows, start=2):
            if len(row) < 7:
                continue
            if _owned_by(row[1:3], tenant_id, restaurant_id):
                yield idx, row

    def get_bookings(self, tenant_id: int, restaurant_id: int, date: Optional[str] = None) -> List[Booking]:
        """Returns bookings for a date, or all of them"""
        return [
            _row_to_booking(row)
            for _, row in self._booking_rows(tenant_id, restaurant_id)
            if date is None or row[3] == date
        ]

    def get_booking(self, tenant_id: int, restaurant_id: int, booking_id: int) -> Booking:
        for _, row in self._booking_rows(tenant_id, restaurant_id):
            if str(row[0]) == str(booking_id):
                return _row_to_booking(row)
        raise BookingNotFound(booking_id)

    def last_booking_id(self) -> int:
        """Highest booking id across all tenants, 0 for an empty sheet"""
        rows = self._read_range('bookings!A2:A')
        last_num = 0
        for row in rows:
            if not row:
                continue
            try:
                last_num = max(last_num, int(row[0]))
            except ValueError:
                continue
        return last_num

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
        source: BookingSource = 'staff',
        booking_id: Optional[int] = None,
    ) -> Booking:
        """Appends a confirmed booking and returns it; without `booking_id` the next free id is used"""
        booking = Booking(
            id=booking_id if booking_id is not None else self.last_booking_id() + 1,
            table_id=table_id,
            date=date,
            start_time=start_time,
            end_time=end_time,
            party_size=party_size,
            status='confirmed',
            customer_name=customer.name,
            customer_phone=customer.phone,
            customer_chat_id=customer.chat_id,
            source=source,
            created_at=datetime.now().strftime('%Y-%m-%d %H:%M'),
        )
        self._append_range('bookings!A:N', [_booking_to_row(tenant_id, restaurant_id, booking)])
        logger.info("Booking %s created: table %s, %s %s-%s", booking.id, table_id, date, start_time, end_time)
        return booking

    def update_booking(self, tenant_id: int, restaurant_id: int, booking_id: int, patch: BookingPatch) -> Booking:
        """Rewrites the booking row with the patched fields"""
        for idx, row in self._booking_rows(tenant_id, restaurant_id):
            if str(row[0]) != str(booking_id):
                continue
            booking = _row_to_booking(row).model_copy(update=patch.model_dump(exclude_none=True))
            self._update_range(f'bookings!A{idx}:N{idx}', [_booking_to_row(tenant_id, restaurant_id, booking)])
            logger.info("Booking %s updated: %s", booking_id, patch.model_dump(exclude_none=True))
            return booking
        raise BookingNotFound(booking_id)


@lru_cache(maxsize=1)
def get_sheets_client() -> SheetsClient:
    return SheetsClient()
