from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional
from zoneinfo import ZoneInfo
from tablekeeper.config import settings
from tablekeeper.errors import BookingError, error_to_http
from tablekeeper.models.schemas import (
    AvailabilityDecision,
    AvailabilityQuery,
    Booking,
    BookingOutcome,
    BookingRequest,
    DoubleBooking,
    RescheduleRequest,
    StatusRequest,
    Table,
    TableState,
    WalkInRequest,
)
from tablekeeper.services.booking import BookingService, get_booking_service
from tablekeeper.services.notify import (
    TelegramNotifier,
    booking_confirmed_text,
    booking_moved_text,
    booking_status_text,
    notifier,
)
import logging
import sys

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO, stream=sys.stdout, force=True)


def get_notifier() -> TelegramNotifier:
    return notifier


def restaurant_now() -> datetime:
    return datetime.now(ZoneInfo(settings.TIMEZONE))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Booking rules: turnover buffer %s min, default duration %s min",
        settings.TURNOVER_BUFFER_MINUTES,
        settings.DEFAULT_DURATION_MINUTES,
    )
    yield
    await notifier.close()


app = FastAPI(lifespan=lifespan, debug=settings.DEBUG)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    http_exc = error_to_http(exc)
    logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})


router = APIRouter(prefix="/tenants/{tenant_id}/restaurants/{restaurant_id}")


def _committed(outcome: BookingOutcome, response: Response, status_code: int) -> BookingOutcome:
    # conflicts are answered with 409 and the decision, so the UI can offer the alternative
    response.status_code = status_code if outcome.booking is not None else 409
    return outcome


@router.post("/availability", response_model=AvailabilityDecision)
def check_availability(
    tenant_id: int,
    restaurant_id: int,
    query: AvailabilityQuery,
    service: BookingService = Depends(get_booking_service),
):
    return service.check(tenant_id, restaurant_id, query)


@router.post("/bookings", response_model=BookingOutcome)
def create_booking(
    tenant_id: int,
    restaurant_id: int,
    body: BookingRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    service: BookingService = Depends(get_booking_service),
    notify: TelegramNotifier = Depends(get_notifier),
):
    outcome = service.book(
        tenant_id,
        restaurant_id,
        body.query,
        body.customer,
        accept_alternative=body.accept_alternative,
        source=body.source,
    )
    if outcome.booking is not None:
        background_tasks.add_task(notify.notify_customer, outcome.booking, booking_confirmed_text(outcome.booking))
    return _committed(outcome, response, 201)


@router.post("/walk-ins", response_model=BookingOutcome)
def walk_in(
    tenant_id: int,
    restaurant_id: int,
    body: WalkInRequest,
    response: Response,
    service: BookingService = Depends(get_booking_service),
):
    outcome = service.walk_in(tenant_id, restaurant_id, body.party_size, restaurant_now(), body.customer)
    return _committed(outcome, response, 201)


@router.patch("/bookings/{booking_id}", response_model=BookingOutcome)
def reschedule_booking(
    tenant_id: int,
    restaurant_id: int,
    booking_id: int,
    body: RescheduleRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    service: BookingService = Depends(get_booking_service),
    notify: TelegramNotifier = Depends(get_notifier),
):
    outcome = service.reschedule(
        tenant_id,
        restaurant_id,
        booking_id,
        body.date,
        body.start_time,
        end_time=body.end_time,
        table_id=body.table_id,
    )
    if outcome.booking is not None:
        background_tasks.add_task(notify.notify_customer, outcome.booking, booking_moved_text(outcome.booking))
    return _committed(outcome, response, 200)


@router.post("/bookings/{booking_id}/status", response_model=Booking)
def set_booking_status(
    tenant_id: int,
    restaurant_id: int,
    booking_id: int,
    body: StatusRequest,
    background_tasks: BackgroundTasks,
    service: BookingService = Depends(get_booking_service),
    notify: TelegramNotifier = Depends(get_notifier),
):
    booking = service.set_status(tenant_id, restaurant_id, booking_id, body.status)
    if booking.status == "cancelled":
        background_tasks.add_task(notify.notify_customer, booking, booking_status_text(booking))
    return booking


@router.post("/tables/free", response_model=List[Table])
def list_free_tables(
    tenant_id: int,
    restaurant_id: int,
    query: AvailabilityQuery,
    service: BookingService = Depends(get_booking_service),
):
    return service.free_tables(tenant_id, restaurant_id, query)


@router.post("/tables/refresh", response_model=List[Table])
def refresh_tables(
    tenant_id: int,
    restaurant_id: int,
    service: BookingService = Depends(get_booking_service),
):
    return service.refresh_tables(tenant_id, restaurant_id)


@router.get("/tables/status", response_model=List[TableState])
def tables_status(
    tenant_id: int,
    restaurant_id: int,
    date: Optional[str] = None,
    time: Optional[str] = None,
    service: BookingService = Depends(get_booking_service),
):
    now = restaurant_now()
    return service.table_states(
        tenant_id,
        restaurant_id,
        date or now.strftime("%Y-%m-%d"),
        time or now.strftime("%H:%M"),
    )


@router.get("/conflicts", response_model=List[DoubleBooking])
def conflicts(
    tenant_id: int,
    restaurant_id: int,
    date: str,
    service: BookingService = Depends(get_booking_service),
):
    return service.double_bookings(tenant_id, restaurant_id, date)


app.include_router(router)


@app.get("/")
async def root():
    return {"status": "ok", "service": "tablekeeper"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
