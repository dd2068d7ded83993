"""
Pydantic schemas for request validation and response serialization.
"""

from typing import Any, List, Optional, Union

from pydantic import BaseModel, Field

from ..domain.models import (
    MAX_REQUEST_MINUTES,
    Appointment,
    Client,
    Service,
    WorkWindow,
    format_slot,
    format_time_of_day,
)


# ============================================================================
# Request Schemas (for incoming data)
# ============================================================================

class ClientIn(BaseModel):
    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    email: Optional[str] = None

    def to_domain(self) -> Client:
        return Client(name=self.name.strip(), phone=self.phone.strip(), email=self.email or None)


class ServiceIn(BaseModel):
    name: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    duration_minutes: int = Field(30, ge=0, le=MAX_REQUEST_MINUTES, description="Duration in minutes")

    def to_domain(self) -> Service:
        return Service(name=self.name.strip(), price=self.price, duration_minutes=self.duration_minutes)


class AppointmentIn(BaseModel):
    """
    Incoming appointment.

    ``start`` may be an ISO/RFC 3339 string, a naive ``YYYY-MM-DD HH:MM:SS``
    string, or epoch seconds.
    """
    client_id: int
    service_ids: List[int] = Field(..., min_length=1)
    start: Union[int, float, str]
    price: Optional[float] = Field(None, ge=0)
    completed: bool = False


class AppointmentUpdate(BaseModel):
    start: Optional[Union[int, float, str]] = None
    service_ids: Optional[List[int]] = None
    price: Optional[float] = Field(None, ge=0)
    completed: Optional[bool] = None


class WorkWindowIn(BaseModel):
    weekday: int = Field(..., ge=0, le=6, description="0=Monday, 6=Sunday")
    start: str = Field(..., description="HH:MM")
    end: str = Field(..., description="HH:MM")


# ============================================================================
# Response Schemas
# ============================================================================

class ApiResponse(BaseModel):
    """Envelope returned by mutating endpoints and errors."""
    success: bool
    message: str
    data: Optional[Any] = None


class ClientOut(BaseModel):
    id: int
    name: str
    phone: str
    email: Optional[str] = None

    @classmethod
    def from_domain(cls, client: Client) -> "ClientOut":
        return cls(id=client.id, name=client.name, phone=client.phone, email=client.email)


class ServiceOut(BaseModel):
    id: int
    name: str
    price: float
    duration_minutes: int

    @classmethod
    def from_domain(cls, service: Service) -> "ServiceOut":
        return cls(
            id=service.id,
            name=service.name,
            price=service.price,
            duration_minutes=service.duration_minutes,
        )


class AppointmentOut(BaseModel):
    id: int
    client_id: int
    service_ids: List[int]
    start: str
    price: float
    completed: bool

    @classmethod
    def from_domain(cls, appointment: Appointment) -> "AppointmentOut":
        return cls(
            id=appointment.id,
            client_id=appointment.client_id,
            service_ids=list(appointment.service_ids),
            start=format_slot(appointment.start),
            price=appointment.price,
            completed=appointment.completed,
        )


class WorkWindowOut(BaseModel):
    id: int
    weekday: int
    start: str
    end: str

    @classmethod
    def from_domain(cls, window: WorkWindow) -> "WorkWindowOut":
        return cls(
            id=window.id,
            weekday=window.weekday,
            start=format_time_of_day(window.start),
            end=format_time_of_day(window.end),
        )
