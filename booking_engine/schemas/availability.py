from __future__ import annotations

import datetime as dt
from typing import List

from pydantic import Field

from booking_engine.schemas.base import WireModel
from booking_engine.schemas.settings import DurationOption, ServiceType


class TimeSlot(WireModel):
    time: str = Field(..., description="Slot start as a 12-hour wall clock")
    available: bool = True


class DayAvailability(WireModel):
    date: dt.date
    duration_minutes: int
    available_slots: List[TimeSlot] = Field(default_factory=list)
    durations: List[DurationOption] = Field(default_factory=list)
    service_types: List[ServiceType] = Field(default_factory=list)


class MonthAvailability(WireModel):
    year: int
    month: int
    available_dates: List[str] = Field(default_factory=list)
