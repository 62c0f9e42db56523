from __future__ import annotations

import logging
from datetime import date
from typing import Dict, FrozenSet, List, Optional

from booking_engine.schemas.appointment import Appointment, AppointmentPatch, AppointmentStatus
from booking_engine.schemas.site import SiteProfile
from booking_engine.services.booking import SLOT_TAKEN_MESSAGE, find_conflict
from booking_engine.services.errors import Conflict, NotFound, ValidationError
from booking_engine.services.notifications import AppointmentNotifier
from booking_engine.services.repository import AppointmentRepository, BookingLedger
from booking_engine.utils.wallclock import Clock, months_before

logger = logging.getLogger(__name__)

# Allowed status moves; staying in the same status is always a no-op.
TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.CANCELLED}),
    AppointmentStatus.CANCELLED: frozenset(),
}

STATUS_STAMPS: Dict[AppointmentStatus, str] = {
    AppointmentStatus.PENDING: "updated_at",
    AppointmentStatus.CONFIRMED: "confirmed_at",
    AppointmentStatus.CANCELLED: "cancelled_at",
}

# Statuses exempt from retention cleanup. The legacy "upcoming" pin was never
# produced by any transition, so nothing is pinned today.
RETENTION_PINNED_STATUSES: FrozenSet[str] = frozenset()


def check_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    """Return True when the status changes, False for a no-op; raise if forbidden."""
    if current is target:
        return False
    if target not in TRANSITIONS[current]:
        raise Conflict(f"Cannot change a {current.value} appointment to {target.value}")
    return True


class AppointmentLifecycle:
    """Operator-facing transitions, edits, listings and maintenance."""

    def __init__(
        self,
        repository: AppointmentRepository,
        notifier: AppointmentNotifier,
        clock: Clock,
        retention_months: int = 6,
    ) -> None:
        self._repository = repository
        self._notifier = notifier
        self._clock = clock
        self._retention_months = retention_months

    def list_appointments(self, site_id: str, start: Optional[date] = None, end: Optional[date] = None) -> List[Appointment]:
        if start is not None and end is not None and start > end:
            raise ValidationError("Range start must not be after range end")
        appointments = [
            appointment
            for appointment in self._repository.load_bookings(site_id).appointments
            if (start is None or appointment.date >= start) and (end is None or appointment.date <= end)
        ]
        return sorted(appointments, key=lambda appointment: appointment.interval()[0])

    def pending_count(self, site_id: str) -> int:
        ledger = self._repository.load_bookings(site_id)
        return sum(1 for appointment in ledger.appointments if appointment.status is AppointmentStatus.PENDING)

    def confirm(self, site_id: str, appointment_id: str, profile: Optional[SiteProfile] = None) -> Appointment:
        appointment, changed = self._transition(site_id, appointment_id, AppointmentStatus.CONFIRMED)
        if changed:
            logger.info("Confirmed appointment %s for site %s", appointment_id, site_id)
            self._notifier.confirmed(site_id, appointment, profile or SiteProfile())
        return appointment

    def cancel(self, site_id: str, appointment_id: str, profile: Optional[SiteProfile] = None) -> Appointment:
        appointment, changed = self._transition(site_id, appointment_id, AppointmentStatus.CANCELLED)
        if changed:
            logger.info("Cancelled appointment %s for site %s", appointment_id, site_id)
            self._notifier.cancelled(site_id, appointment, profile or SiteProfile())
        return appointment

    def update(self, site_id: str, appointment_id: str, patch: AppointmentPatch) -> Appointment:
        changes = patch.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No fields to update")
        if any(value is None for value in changes.values()):
            raise ValidationError("Updated fields cannot be null")

        def apply_patch(ledger: BookingLedger):
            index = self._locate(ledger, appointment_id)
            current = ledger.appointments[index]
            now = self._clock()
            merged = {**current.model_dump(), **changes, "updated_at": now}
            if patch.status is not None and check_transition(current.status, patch.status):
                merged[STATUS_STAMPS[patch.status]] = now
            updated = Appointment.model_validate(merged)
            if updated.blocks_calendar:
                start, end = updated.interval()
                if end.date() != start.date():
                    raise ValidationError("Appointment must end on the day it starts")
                if find_conflict(ledger.appointments, start, end, exclude_id=updated.id) is not None:
                    raise Conflict(SLOT_TAKEN_MESSAGE)
            ledger.appointments[index] = updated
            return updated, True

        appointment = self._repository.mutate_bookings(site_id, apply_patch)
        logger.info("Updated appointment %s for site %s: %s", appointment_id, site_id, sorted(changes))
        return appointment

    def cleanup(self, site_id: str) -> int:
        threshold = months_before(self._clock().date(), self._retention_months)

        def drop_expired(ledger: BookingLedger):
            kept = [
                appointment
                for appointment in ledger.appointments
                if appointment.date >= threshold or appointment.status.value in RETENTION_PINNED_STATUSES
            ]
            removed = len(ledger.appointments) - len(kept)
            ledger.appointments = kept
            return removed, removed > 0

        removed = self._repository.mutate_bookings(site_id, drop_expired)
        logger.info("Retention cleanup for site %s removed %d appointments older than %s", site_id, removed, threshold)
        return removed

    def _transition(self, site_id: str, appointment_id: str, target: AppointmentStatus):
        stamp_field = STATUS_STAMPS[target]

        def move(ledger: BookingLedger):
            index = self._locate(ledger, appointment_id)
            current = ledger.appointments[index]
            if not check_transition(current.status, target):
                return (current, False), False
            updated = current.model_copy(update={"status": target, stamp_field: self._clock()})
            ledger.appointments[index] = updated
            return (updated, True), True

        return self._repository.mutate_bookings(site_id, move)

    @staticmethod
    def _locate(ledger: BookingLedger, appointment_id: str) -> int:
        index = ledger.find(appointment_id)
        if index is None:
            raise NotFound("Appointment not found")
        return index
