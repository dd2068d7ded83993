"""
FastAPI application exposing availability and booking endpoints.

The HTTP layer is thin: it validates input, calls the services or the
store, and maps domain errors to status codes.
"""

import logging
from typing import List, Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..adapters.sqlite_store import BookingStore
from ..config import AppConfig
from ..domain.exceptions import (
    AppointmentConflictError,
    AvailabilityUnavailableError,
    BookingError,
    InvalidRequestError,
    NotFoundError,
    ReferentialIntegrityError,
    StorageError,
)
from ..domain.models import WorkWindow, parse_time_of_day
from ..domain.slot_calculator import SlotCalculator
from ..services.availability import AvailabilityService
from ..services.booking import BookingService, parse_start
from .schemas import (
    ApiResponse,
    AppointmentIn,
    AppointmentOut,
    AppointmentUpdate,
    ClientIn,
    ClientOut,
    ServiceIn,
    ServiceOut,
    WorkWindowIn,
    WorkWindowOut,
)

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    InvalidRequestError: 400,
    NotFoundError: 404,
    AppointmentConflictError: 409,
    ReferentialIntegrityError: 409,
    AvailabilityUnavailableError: 503,
    StorageError: 500,
}


def _envelope(success: bool, message: str, data=None) -> dict:
    return ApiResponse(success=success, message=message, data=data).model_dump()


def build_services(config: AppConfig, store: BookingStore):
    """Wire the availability and booking services from configuration."""
    calculator = SlotCalculator(
        fallback_start=config.fallback_window.get_start_time(),
        fallback_end=config.fallback_window.get_end_time(),
    )
    availability = AvailabilityService(
        store=store,
        slot_calculator=calculator,
        default_duration_minutes=config.defaults.duration_minutes,
        default_buffer_minutes=config.defaults.buffer_minutes,
        default_granularity_minutes=config.defaults.granularity_minutes,
    )
    booking = BookingService(store=store, allow_past=config.booking.allow_past)
    return availability, booking


def create_app(config: Optional[AppConfig] = None, store: Optional[BookingStore] = None) -> FastAPI:
    """
    Build the application.

    Args:
        config: Application configuration (defaults when omitted)
        store: Open store handle; opened from ``config`` when omitted
    """
    config = config or AppConfig()
    store = store or BookingStore(config.resolve_database_path())
    availability, booking = build_services(config, store)

    app = FastAPI(title="bookingslots", version=__version__)
    app.state.config = config
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(BookingError)
    async def booking_error_handler(request: Request, exc: BookingError):
        status_code = next(
            (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)),
            500,
        )
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status_code, content=_envelope(False, str(exc)))

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    @app.get("/availability", response_model=List[str], tags=["availability"])
    def get_availability(
        date: str = Query(..., description="YYYY-MM-DD"),
        duration: Optional[int] = Query(None, description="Requested duration in minutes"),
        buffer: Optional[int] = Query(None, description="Padding after each appointment, in minutes"),
        granularity: Optional[int] = Query(None, description="Scan step in minutes"),
    ):
        """Bookable start times for a date, as local ``YYYY-MM-DDTHH:MM:SS`` strings."""
        request = availability.build_request(
            date,
            duration_minutes=duration,
            buffer_minutes=buffer,
            granularity_minutes=granularity,
        )
        return availability.find_slots(request)

    # ------------------------------------------------------------------
    # Work windows
    # ------------------------------------------------------------------

    @app.get("/work_windows", response_model=List[WorkWindowOut], tags=["work-windows"])
    def list_work_windows():
        return [WorkWindowOut.from_domain(w) for w in store.list_work_windows()]

    @app.post("/work_windows", status_code=201, tags=["work-windows"])
    def create_work_window(payload: WorkWindowIn):
        window = store.add_work_window(
            WorkWindow(
                weekday=payload.weekday,
                start=parse_time_of_day(payload.start),
                end=parse_time_of_day(payload.end),
            )
        )
        return _envelope(True, "Work window created", WorkWindowOut.from_domain(window).model_dump())

    @app.delete("/work_windows/{window_id}", tags=["work-windows"])
    def delete_work_window(window_id: int):
        store.delete_work_window(window_id)
        return _envelope(True, "Work window deleted")

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------

    @app.get("/clients", response_model=List[ClientOut], tags=["clients"])
    def list_clients(
        search: Optional[str] = Query(None, description="Substring of the client name"),
        limit: int = Query(15, ge=1, le=500),
    ):
        if search:
            clients = store.list_clients(search=search, limit=limit)
        else:
            clients = store.list_clients()
        return [ClientOut.from_domain(c) for c in clients]

    @app.post("/clients", status_code=201, tags=["clients"])
    def create_client(payload: ClientIn):
        client = store.add_client(payload.to_domain())
        return _envelope(True, "Client created", ClientOut.from_domain(client).model_dump())

    @app.get("/clients/{client_id}", response_model=ClientOut, tags=["clients"])
    def get_client(client_id: int):
        return ClientOut.from_domain(store.get_client(client_id))

    @app.put("/clients/{client_id}", tags=["clients"])
    def update_client(client_id: int, payload: ClientIn):
        client = store.update_client(client_id, payload.to_domain())
        return _envelope(True, "Client updated", ClientOut.from_domain(client).model_dump())

    @app.delete("/clients/{client_id}", tags=["clients"])
    def delete_client(client_id: int):
        store.delete_client(client_id)
        return _envelope(True, "Client deleted")

    @app.get("/clients/{client_id}/appointments", response_model=List[AppointmentOut], tags=["clients"])
    def list_client_appointments(client_id: int):
        return [AppointmentOut.from_domain(a) for a in booking.appointments(client_id=client_id)]

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    @app.get("/services", response_model=List[ServiceOut], tags=["services"])
    def list_services(
        search: Optional[str] = Query(None, description="Substring of the service name"),
        limit: int = Query(15, ge=1, le=500),
    ):
        if search:
            services = store.list_services(search=search, limit=limit)
        else:
            services = store.list_services()
        return [ServiceOut.from_domain(s) for s in services]

    @app.post("/services", status_code=201, tags=["services"])
    def create_service(payload: ServiceIn):
        service = store.add_service(payload.to_domain())
        return _envelope(True, "Service created", ServiceOut.from_domain(service).model_dump())

    @app.get("/services/{service_id}", response_model=ServiceOut, tags=["services"])
    def get_service(service_id: int):
        return ServiceOut.from_domain(store.get_service(service_id))

    @app.put("/services/{service_id}", tags=["services"])
    def update_service(service_id: int, payload: ServiceIn):
        service = store.update_service(service_id, payload.to_domain())
        return _envelope(True, "Service updated", ServiceOut.from_domain(service).model_dump())

    @app.delete("/services/{service_id}", tags=["services"])
    def delete_service(service_id: int):
        store.delete_service(service_id)
        return _envelope(True, "Service deleted")

    # ------------------------------------------------------------------
    # Appointments
    # ------------------------------------------------------------------

    @app.get("/appointments", response_model=List[AppointmentOut], tags=["appointments"])
    def list_appointments(completed: Optional[bool] = Query(None)):
        return [AppointmentOut.from_domain(a) for a in booking.appointments(completed=completed)]

    @app.post("/appointments", status_code=201, tags=["appointments"])
    def create_appointment(payload: AppointmentIn):
        appointment = booking.book(
            client_id=payload.client_id,
            service_ids=payload.service_ids,
            start=parse_start(payload.start),
            price=payload.price,
            completed=payload.completed,
        )
        return _envelope(True, "Appointment created", AppointmentOut.from_domain(appointment).model_dump())

    @app.get("/appointments/{appointment_id}", response_model=AppointmentOut, tags=["appointments"])
    def get_appointment(appointment_id: int):
        return AppointmentOut.from_domain(store.get_appointment(appointment_id))

    @app.put("/appointments/{appointment_id}", tags=["appointments"])
    def update_appointment(appointment_id: int, payload: AppointmentUpdate):
        appointment = booking.reschedule(
            appointment_id,
            start=parse_start(payload.start) if payload.start is not None else None,
            service_ids=payload.service_ids,
            price=payload.price,
            completed=payload.completed,
        )
        return _envelope(True, "Appointment updated", AppointmentOut.from_domain(appointment).model_dump())

    @app.post("/appointments/{appointment_id}/complete", tags=["appointments"])
    def complete_appointment(appointment_id: int):
        appointment = booking.complete(appointment_id)
        return _envelope(True, "Appointment completed", AppointmentOut.from_domain(appointment).model_dump())

    @app.delete("/appointments/{appointment_id}", tags=["appointments"])
    def delete_appointment(appointment_id: int):
        booking.cancel(appointment_id)
        return _envelope(True, "Appointment deleted")

    return app
