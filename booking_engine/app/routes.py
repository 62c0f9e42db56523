from __future__ import annotations

import datetime as dt
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from booking_engine.app.config import Settings
from booking_engine.app.dependencies import (
    get_availability_calculator,
    get_booking_service,
    get_clock,
    get_lifecycle,
    get_repository,
    get_settings,
    require_appointments_enabled,
    require_operator,
)
from booking_engine.schemas.appointment import (
    AppointmentList,
    AppointmentPatch,
    AppointmentResult,
    BookingRequest,
    CleanupResult,
    PendingCount,
    PublicAppointment,
    PublicAppointmentList,
)
from booking_engine.schemas.availability import DayAvailability, MonthAvailability
from booking_engine.schemas.base import Ack, WireModel
from booking_engine.schemas.settings import TenantSettings
from booking_engine.schemas.site import SiteProfile
from booking_engine.services.authorization import OperatorSession
from booking_engine.services.availability import AvailabilityCalculator
from booking_engine.services.booking import BookingService
from booking_engine.services.lifecycle import AppointmentLifecycle
from booking_engine.services.repository import AppointmentRepository
from booking_engine.utils.wallclock import Clock

router = APIRouter()

appointments = APIRouter(
    prefix="/api/v1/sites/{site_id}/appointments",
    tags=["appointments"],
    dependencies=[Depends(require_appointments_enabled)],
)


class SaveSettingsRequest(WireModel):
    settings: TenantSettings


@router.get("/health", status_code=status.HTTP_200_OK)
def health(settings: Settings = Depends(get_settings)) -> dict:
    return {"app": settings.app_name, "status": "ok"}


@appointments.get("/settings", response_model=TenantSettings)
def read_settings(
    site_id: str,
    repository: AppointmentRepository = Depends(get_repository),
) -> TenantSettings:
    return repository.load_settings(site_id)


@appointments.put("/settings", response_model=Ack)
def save_settings(
    site_id: str,
    payload: SaveSettingsRequest,
    operator: OperatorSession = Depends(require_operator),
    repository: AppointmentRepository = Depends(get_repository),
) -> Ack:
    repository.save_settings(operator.site_id, payload.settings)
    return Ack()


@appointments.get("/availability", response_model=DayAvailability)
def day_availability(
    site_id: str,
    date: dt.date = Query(..., description="Target day, yyyy-MM-dd"),
    duration: Optional[int] = Query(default=None, gt=0),
    calculator: AvailabilityCalculator = Depends(get_availability_calculator),
    repository: AppointmentRepository = Depends(get_repository),
    clock: Clock = Depends(get_clock),
) -> DayAvailability:
    settings = repository.load_settings(site_id)
    bookings = repository.load_bookings(site_id).appointments
    return calculator.day_availability(settings, date, bookings, clock(), requested_duration=duration)


@appointments.get("/availability/month", response_model=MonthAvailability)
def month_availability(
    site_id: str,
    year: int = Query(..., ge=1, le=9999),
    month: int = Query(..., ge=1, le=12),
    calculator: AvailabilityCalculator = Depends(get_availability_calculator),
    repository: AppointmentRepository = Depends(get_repository),
    clock: Clock = Depends(get_clock),
) -> MonthAvailability:
    settings = repository.load_settings(site_id)
    return calculator.month_availability(settings, year, month, clock())


@appointments.post("/book", response_model=AppointmentResult, status_code=status.HTTP_201_CREATED)
def book_appointment(
    site_id: str,
    payload: BookingRequest,
    profile: SiteProfile = Depends(require_appointments_enabled),
    booking_service: BookingService = Depends(get_booking_service),
) -> AppointmentResult:
    appointment = booking_service.book(site_id, payload, profile)
    return AppointmentResult(appointment=appointment)


@appointments.get("", response_model=PublicAppointmentList)
def list_public_appointments(
    site_id: str,
    start: Optional[dt.date] = None,
    end: Optional[dt.date] = None,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
) -> PublicAppointmentList:
    listed = lifecycle.list_appointments(site_id, start, end)
    return PublicAppointmentList(appointments=[PublicAppointment.from_appointment(item) for item in listed])


@appointments.get("/admin", response_model=AppointmentList)
def list_admin_appointments(
    site_id: str,
    start: Optional[dt.date] = None,
    end: Optional[dt.date] = None,
    operator: OperatorSession = Depends(require_operator),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
) -> AppointmentList:
    return AppointmentList(appointments=lifecycle.list_appointments(operator.site_id, start, end))


@appointments.get("/pending-count", response_model=PendingCount)
def pending_count(
    site_id: str,
    operator: OperatorSession = Depends(require_operator),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
) -> PendingCount:
    return PendingCount(count=lifecycle.pending_count(operator.site_id))


@appointments.post("/cleanup", response_model=CleanupResult)
def cleanup_appointments(
    site_id: str,
    operator: OperatorSession = Depends(require_operator),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
) -> CleanupResult:
    return CleanupResult(removed=lifecycle.cleanup(operator.site_id))


@appointments.patch("/{appointment_id}", response_model=AppointmentResult)
def update_appointment(
    site_id: str,
    appointment_id: str,
    payload: AppointmentPatch,
    operator: OperatorSession = Depends(require_operator),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
) -> AppointmentResult:
    appointment = lifecycle.update(operator.site_id, appointment_id, payload)
    return AppointmentResult(appointment=appointment)


@appointments.post("/{appointment_id}/confirm", response_model=AppointmentResult)
def confirm_appointment(
    site_id: str,
    appointment_id: str,
    operator: OperatorSession = Depends(require_operator),
    profile: SiteProfile = Depends(require_appointments_enabled),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
) -> AppointmentResult:
    appointment = lifecycle.confirm(operator.site_id, appointment_id, profile)
    return AppointmentResult(appointment=appointment)


@appointments.post("/{appointment_id}/cancel", response_model=AppointmentResult)
def cancel_appointment_as_operator(
    site_id: str,
    appointment_id: str,
    operator: OperatorSession = Depends(require_operator),
    profile: SiteProfile = Depends(require_appointments_enabled),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
) -> AppointmentResult:
    appointment = lifecycle.cancel(operator.site_id, appointment_id, profile)
    return AppointmentResult(appointment=appointment)


@appointments.delete("/{appointment_id}", response_model=Ack)
def cancel_appointment(
    site_id: str,
    appointment_id: str,
    profile: SiteProfile = Depends(require_appointments_enabled),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
) -> Ack:
    lifecycle.cancel(site_id, appointment_id, profile)
    return Ack()


router.include_router(appointments)
