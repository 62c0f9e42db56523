from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Iterable, Optional

from booking_engine.schemas.appointment import Appointment, AppointmentStatus, BookingRequest
from booking_engine.schemas.site import SiteProfile
from booking_engine.services.errors import Conflict, ValidationError
from booking_engine.services.notifications import AppointmentNotifier
from booking_engine.services.repository import AppointmentRepository, BookingLedger
from booking_engine.utils.wallclock import Clock, interval_on, parse_wall_time

logger = logging.getLogger(__name__)

SLOT_TAKEN_MESSAGE = "This time slot is no longer available. Please select another time."


def intervals_overlap(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    """Half-open overlap: starts inside, ends inside, or encloses the other interval."""
    return (
        (other_start <= start < other_end)
        or (other_start < end <= other_end)
        or (start <= other_start and end >= other_end)
    )


def find_conflict(
    bookings: Iterable[Appointment],
    start: datetime,
    end: datetime,
    exclude_id: Optional[str] = None,
) -> Optional[Appointment]:
    for booking in bookings:
        if booking.id == exclude_id or not booking.blocks_calendar:
            continue
        if booking.date != start.date():
            continue
        booking_start, booking_end = booking.interval()
        if intervals_overlap(start, end, booking_start, booking_end):
            return booking
    return None


def new_appointment_id() -> str:
    return uuid.uuid4().hex


class BookingService:
    """Accepts public booking requests that do not collide with existing ones."""

    def __init__(
        self,
        repository: AppointmentRepository,
        notifier: AppointmentNotifier,
        clock: Clock,
    ) -> None:
        self._repository = repository
        self._notifier = notifier
        self._clock = clock

    def book(self, site_id: str, request: BookingRequest, profile: Optional[SiteProfile] = None) -> Appointment:
        start, end = interval_on(request.date, parse_wall_time(request.time), request.duration_minutes)
        if end.date() != start.date():
            raise ValidationError("Appointment must end on the day it starts")
        now = self._clock()
        if start <= now:
            raise ValidationError("Appointment time must be in the future")
        self._check_working_hours(site_id, request, start, end)

        def add_booking(ledger: BookingLedger):
            clash = find_conflict(ledger.appointments, start, end)
            if clash is not None:
                logger.info(
                    "Rejected booking for site %s on %s at %s: overlaps %s",
                    site_id,
                    request.date,
                    request.time,
                    clash.id,
                )
                raise Conflict(SLOT_TAKEN_MESSAGE)
            appointment = Appointment(
                id=new_appointment_id(),
                date=request.date,
                time=request.time,
                duration_minutes=request.duration_minutes,
                service=request.service,
                customer=request.customer,
                status=AppointmentStatus.PENDING,
                created_at=now,
            )
            ledger.appointments.append(appointment)
            return appointment, True

        appointment = self._repository.mutate_bookings(site_id, add_booking)
        logger.info("Booked appointment %s for site %s on %s at %s", appointment.id, site_id, appointment.date, appointment.time)
        self._notifier.booking_requested(site_id, appointment, profile or SiteProfile())
        return appointment

    def _check_working_hours(self, site_id: str, request: BookingRequest, start: datetime, end: datetime) -> None:
        hours = self._repository.load_settings(site_id).hours_for(request.date)
        if hours is None or not hours.enabled:
            raise ValidationError("Appointments are not available on this day")
        opens, closes = hours.bounds()
        if start.time() < opens or end > datetime.combine(request.date, closes):
            raise ValidationError("Appointment must fall within working hours")
