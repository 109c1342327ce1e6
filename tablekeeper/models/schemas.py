from pydantic import BaseModel, Field
from typing import Annotated, Literal, Optional, List, Union


BookingStatus = Literal["confirmed", "pending", "cancelled", "completed", "no-show"]
BookingSource = Literal["staff", "walk-in", "online"]
TableStateName = Literal["available", "occupied", "reserved"]


class Table(BaseModel):
    id: int
    capacity: int
    label: str
    active: bool = True
    room_id: Optional[int] = None


class Customer(BaseModel):
    name: str = ""
    phone: str = ""
    chat_id: Optional[int] = None


class Booking(BaseModel):
    id: int
    table_id: Optional[int] = None
    date: str  # YYYY-MM-DD
    start_time: str  # HH:MM
    end_time: Optional[str] = None
    party_size: int
    status: BookingStatus = "confirmed"
    customer_name: str = ""
    customer_phone: str = ""
    customer_chat_id: Optional[int] = None
    source: BookingSource = "staff"
    created_at: str = ""


class BookingPatch(BaseModel):
    date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    party_size: Optional[int] = None
    table_id: Optional[int] = None
    status: Optional[BookingStatus] = None


class AvailabilityQuery(BaseModel):
    date: str
    start_time: str
    end_time: Optional[str] = None
    party_size: int
    preferred_table_id: Optional[int] = None
    # booking being moved; ignored when looking for conflicts
    exclude_booking_id: Optional[int] = None


class Clear(BaseModel):
    kind: Literal["Clear"] = "Clear"
    table: Table


class ConflictWithAlternative(BaseModel):
    kind: Literal["ConflictWithAlternative"] = "ConflictWithAlternative"
    conflict: Booking
    alternative: Table


class ConflictNoAlternative(BaseModel):
    kind: Literal["ConflictNoAlternative"] = "ConflictNoAlternative"
    conflict: Optional[Booking] = None


AvailabilityDecision = Annotated[
    Union[Clear, ConflictWithAlternative, ConflictNoAlternative],
    Field(discriminator="kind"),
]


class BookingOutcome(BaseModel):
    decision: AvailabilityDecision
    booking: Optional[Booking] = None


class TableState(BaseModel):
    table: Table
    state: TableStateName
    current_booking: Optional[Booking] = None
    next_booking: Optional[Booking] = None


class DoubleBooking(BaseModel):
    table_id: int
    bookings: List[Booking]
    overlap_start: str
    overlap_end: str


class BookingRequest(BaseModel):
    query: AvailabilityQuery
    customer: Customer = Customer()
    accept_alternative: bool = False
    source: BookingSource = "staff"


class WalkInRequest(BaseModel):
    party_size: int
    customer: Customer = Customer()


class RescheduleRequest(BaseModel):
    date: str
    start_time: str
    end_time: Optional[str] = None
    table_id: Optional[int] = None


class StatusRequest(BaseModel):
    status: BookingStatus
