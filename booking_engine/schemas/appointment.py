from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Annotated, Any, List, Optional, Tuple

from pydantic import AliasChoices, BeforeValidator, ConfigDict, EmailStr, Field, field_validator

from booking_engine.schemas.base import WireModel
from booking_engine.schemas.settings import DEFAULT_DURATION_MINUTES
from booking_engine.utils.wallclock import interval_on, normalize_wall_time, parse_wall_time


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


def _coerce_duration(value: Any) -> int:
    try:
        minutes = int(value)
    except (TypeError, ValueError):
        return DEFAULT_DURATION_MINUTES
    return minutes if minutes > 0 else DEFAULT_DURATION_MINUTES


def _coerce_service(value: Any) -> Any:
    # Older records stored the service as a bare display name.
    if value is None:
        return {}
    if isinstance(value, str):
        return {"displayName": value}
    return value


DurationMinutes = Annotated[int, BeforeValidator(_coerce_duration)]


class ServiceRef(WireModel):
    id: Optional[str] = None
    display_name: str = Field(
        default="General Appointment",
        validation_alias=AliasChoices("displayName", "display_name", "name"),
    )


ServiceField = Annotated[ServiceRef, BeforeValidator(_coerce_service)]


class Customer(WireModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    notes: Optional[str] = None


class BookingRequest(WireModel):
    date: dt.date
    time: str = Field(..., description="12-hour wall clock, e.g. '9:00 AM'")
    duration_minutes: DurationMinutes = Field(
        default=DEFAULT_DURATION_MINUTES,
        validation_alias=AliasChoices("durationMinutes", "duration_minutes", "duration"),
    )
    service: ServiceField = Field(default_factory=ServiceRef)
    customer: Customer

    @field_validator("time")
    @classmethod
    def _normalize_time(cls, value: str) -> str:
        return normalize_wall_time(value)


class Appointment(WireModel):
    id: str
    date: dt.date
    time: str
    duration_minutes: DurationMinutes = Field(
        default=DEFAULT_DURATION_MINUTES,
        validation_alias=AliasChoices("durationMinutes", "duration_minutes", "duration"),
    )
    service: ServiceField = Field(default_factory=ServiceRef)
    customer: Customer
    status: AppointmentStatus = AppointmentStatus.PENDING
    created_at: dt.datetime
    confirmed_at: Optional[dt.datetime] = None
    cancelled_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None

    @field_validator("time")
    @classmethod
    def _normalize_time(cls, value: str) -> str:
        return normalize_wall_time(value)

    @property
    def blocks_calendar(self) -> bool:
        return self.status is not AppointmentStatus.CANCELLED

    def interval(self) -> Tuple[dt.datetime, dt.datetime]:
        return interval_on(self.date, parse_wall_time(self.time), self.duration_minutes)


class AppointmentPatch(WireModel):
    """Fields an operator may edit on an existing appointment."""

    model_config = ConfigDict(extra="forbid")

    date: Optional[dt.date] = None
    time: Optional[str] = None
    duration_minutes: Optional[int] = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("durationMinutes", "duration_minutes", "duration"),
    )
    service: Optional[ServiceField] = None
    customer: Optional[Customer] = None
    status: Optional[AppointmentStatus] = None

    @field_validator("time")
    @classmethod
    def _normalize_time(cls, value: Optional[str]) -> Optional[str]:
        return normalize_wall_time(value) if value is not None else None


class PublicAppointment(WireModel):
    """Busy time shown to anonymous visitors; carries no id or customer details."""

    date: dt.date
    time: str
    duration_minutes: int
    service: ServiceRef
    status: AppointmentStatus

    @classmethod
    def from_appointment(cls, appointment: Appointment) -> "PublicAppointment":
        return cls(
            date=appointment.date,
            time=appointment.time,
            duration_minutes=appointment.duration_minutes,
            service=appointment.service,
            status=appointment.status,
        )


class AppointmentResult(WireModel):
    success: bool = True
    appointment: Appointment


class AppointmentList(WireModel):
    appointments: List[Appointment] = Field(default_factory=list)


class PublicAppointmentList(WireModel):
    appointments: List[PublicAppointment] = Field(default_factory=list)


class PendingCount(WireModel):
    count: int


class CleanupResult(WireModel):
    success: bool = True
    removed: int
