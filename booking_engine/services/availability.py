from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Tuple

from booking_engine.schemas.appointment import Appointment
from booking_engine.schemas.availability import DayAvailability, MonthAvailability, TimeSlot
from booking_engine.schemas.settings import DurationOption, ServiceType, TenantSettings
from booking_engine.services.booking import intervals_overlap
from booking_engine.services.errors import ValidationError
from booking_engine.utils.wallclock import format_wall_time

FALLBACK_SERVICE = ServiceType(id="general", name="General Appointment", enabled=True)


class SlotStepPolicy(str, Enum):
    """How far apart consecutive candidate slots start."""

    DURATION = "duration"
    DURATION_PLUS_BUFFER = "duration_plus_buffer"


@dataclass(frozen=True, eq=False)
class AvailableDates:
    """Bookable dates of one month; each iteration recomputes from the same inputs."""

    settings: TenantSettings
    year: int
    month: int
    now: datetime

    def __iter__(self) -> Iterator[str]:
        days_in_month = calendar.monthrange(self.year, self.month)[1]
        for day_number in range(1, days_in_month + 1):
            day = date(self.year, self.month, day_number)
            if datetime.combine(day, time.min) <= self.now:
                continue
            hours = self.settings.hours_for(day)
            if hours is not None and hours.enabled:
                yield day.isoformat()


class AvailabilityCalculator:
    """Turns weekly hours and existing bookings into offerable dates and slots."""

    def __init__(self, step_policy: SlotStepPolicy = SlotStepPolicy.DURATION) -> None:
        self.step_policy = SlotStepPolicy(step_policy)

    def dates_for_month(self, settings: TenantSettings, year: int, month: int, now: datetime) -> AvailableDates:
        if not 1 <= month <= 12:
            raise ValidationError("Month must be between 1 and 12")
        if not 1 <= year <= 9999:
            raise ValidationError("Year is out of range")
        return AvailableDates(settings=settings, year=year, month=month, now=now)

    def month_availability(self, settings: TenantSettings, year: int, month: int, now: datetime) -> MonthAvailability:
        dates = self.dates_for_month(settings, year, month, now)
        return MonthAvailability(year=year, month=month, available_dates=list(dates))

    def slots_for_date(
        self,
        settings: TenantSettings,
        target: date,
        bookings: Iterable[Appointment],
        now: datetime,
        duration_minutes: Optional[int] = None,
    ) -> List[TimeSlot]:
        hours = settings.hours_for(target)
        if hours is None or not hours.enabled:
            return []
        if target < now.date():
            return []

        duration = timedelta(minutes=duration_minutes or settings.default_duration_minutes)
        step = duration
        if self.step_policy is SlotStepPolicy.DURATION_PLUS_BUFFER:
            step += timedelta(minutes=settings.buffer_minutes)

        opens, closes = hours.bounds()
        midnight = datetime.combine(target, time.min)
        start = midnight + timedelta(hours=opens.hour, minutes=opens.minute)
        end = midnight + timedelta(hours=closes.hour, minutes=closes.minute)

        busy = [
            booking.interval()
            for booking in bookings
            if booking.date == target and booking.blocks_calendar
        ]
        is_today = target == now.date()

        slots: List[TimeSlot] = []
        cursor = start
        while cursor + duration <= end:
            slot_end = cursor + duration
            taken = any(intervals_overlap(cursor, slot_end, b_start, b_end) for b_start, b_end in busy)
            passed = is_today and cursor <= now
            if not taken and not passed:
                slots.append(TimeSlot(time=format_wall_time(cursor)))
            cursor += step
        return slots

    def day_availability(
        self,
        settings: TenantSettings,
        target: date,
        bookings: Iterable[Appointment],
        now: datetime,
        requested_duration: Optional[int] = None,
    ) -> DayAvailability:
        durations, service_types = offerings(settings)
        duration = resolve_duration(settings, requested_duration)
        return DayAvailability(
            date=target,
            duration_minutes=duration,
            available_slots=self.slots_for_date(settings, target, bookings, now, duration),
            durations=durations,
            service_types=service_types,
        )


def offerings(settings: TenantSettings) -> Tuple[List[DurationOption], List[ServiceType]]:
    service_types = settings.enabled_service_types() or [FALLBACK_SERVICE.model_copy()]
    return settings.enabled_durations(), service_types


def resolve_duration(settings: TenantSettings, requested: Optional[int]) -> int:
    """Use ``requested`` only when it names an enabled duration option."""
    if requested is not None and any(option.minutes == requested for option in settings.enabled_durations()):
        return requested
    return settings.default_duration_minutes
