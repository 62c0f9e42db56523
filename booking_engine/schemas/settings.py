from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Dict, List, Tuple

from pydantic import AliasChoices, Field, field_validator

from booking_engine.schemas.base import WireModel
from booking_engine.utils.wallclock import parse_hhmm

DEFAULT_DURATION_MINUTES = 30
DEFAULT_BUFFER_MINUTES = 5


class Weekday(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def of(cls, day: dt.date) -> "Weekday":
        return list(cls)[day.weekday()]


class WorkingDay(WireModel):
    start: str = Field(..., description="Opening time, 24-hour HH:MM")
    end: str = Field(..., description="Closing time, 24-hour HH:MM")
    enabled: bool = False

    @field_validator("start", "end")
    @classmethod
    def _check_clock(cls, value: str) -> str:
        parse_hhmm(value)
        return value

    def bounds(self) -> Tuple[dt.time, dt.time]:
        return parse_hhmm(self.start), parse_hhmm(self.end)


class DurationOption(WireModel):
    minutes: int = Field(..., gt=0, validation_alias=AliasChoices("minutes", "value"))
    enabled: bool = True
    label: str = ""


class ServiceType(WireModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    enabled: bool = True


class TenantSettings(WireModel):
    default_duration_minutes: int = Field(
        default=DEFAULT_DURATION_MINUTES,
        gt=0,
        validation_alias=AliasChoices("defaultDurationMinutes", "default_duration_minutes", "duration"),
    )
    buffer_minutes: int = Field(
        default=DEFAULT_BUFFER_MINUTES,
        ge=0,
        validation_alias=AliasChoices("bufferMinutes", "buffer_minutes", "bufferTime"),
    )
    working_hours: Dict[Weekday, WorkingDay]
    durations: List[DurationOption]
    service_types: List[ServiceType] = Field(default_factory=list)

    @field_validator("working_hours")
    @classmethod
    def _require_full_week(cls, value: Dict[Weekday, WorkingDay]) -> Dict[Weekday, WorkingDay]:
        missing = [day.value for day in Weekday if day not in value]
        if missing:
            raise ValueError(f"Working hours missing for: {', '.join(missing)}")
        return {day: value[day] for day in Weekday}

    def hours_for(self, day: dt.date) -> WorkingDay | None:
        return self.working_hours.get(Weekday.of(day))

    def enabled_durations(self) -> List[DurationOption]:
        return [option for option in self.durations if option.enabled]

    def enabled_service_types(self) -> List[ServiceType]:
        return [service for service in self.service_types if service.enabled]


def default_tenant_settings() -> TenantSettings:
    """Build a fresh settings object; callers own the result."""
    weekday_hours = {"start": "09:00", "end": "17:00", "enabled": True}
    weekend_hours = {"start": "10:00", "end": "15:00", "enabled": False}
    return TenantSettings(
        default_duration_minutes=DEFAULT_DURATION_MINUTES,
        buffer_minutes=DEFAULT_BUFFER_MINUTES,
        working_hours={
            day: WorkingDay(**(weekend_hours if day in (Weekday.SATURDAY, Weekday.SUNDAY) else weekday_hours))
            for day in Weekday
        },
        durations=[
            DurationOption(minutes=15, enabled=True, label="15 minutes"),
            DurationOption(minutes=30, enabled=True, label="30 minutes"),
            DurationOption(minutes=60, enabled=True, label="1 hour"),
        ],
        service_types=[
            ServiceType(id="general", name="General Appointment", enabled=True),
            ServiceType(id="consultation", name="Consultation", enabled=True),
            ServiceType(id="followup", name="Follow-up", enabled=True),
        ],
    )
