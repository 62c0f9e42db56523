from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple, TypeVar

from pydantic import ValidationError as SchemaValidationError

from booking_engine.adapters.tenant_store import TenantStoreProtocol
from booking_engine.schemas.appointment import Appointment
from booking_engine.schemas.settings import TenantSettings, default_tenant_settings
from booking_engine.schemas.site import SiteProfile
from booking_engine.services.errors import Conflict, Unavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def settings_key(site_id: str) -> str:
    return f"site:{site_id}:appointments:settings"


def bookings_key(site_id: str) -> str:
    return f"site:{site_id}:appointments:bookings"


def profile_key(site_id: str) -> str:
    return f"site:{site_id}:client"


@dataclass
class BookingLedger:
    """A tenant's appointment list as read from the store."""

    appointments: List[Appointment] = field(default_factory=list)
    # Stored records that failed validation; written back untouched.
    unreadable: List[Any] = field(default_factory=list)

    def find(self, appointment_id: str) -> Optional[int]:
        for index, appointment in enumerate(self.appointments):
            if appointment.id == appointment_id:
                return index
        return None

    def encode(self) -> List[Any]:
        return [appointment.to_wire() for appointment in self.appointments] + list(self.unreadable)


Mutation = Callable[[BookingLedger], Tuple[T, bool]]


class AppointmentRepository:
    """Reads and writes one tenant's scheduling data in the tenant store."""

    def __init__(
        self,
        store: TenantStoreProtocol,
        write_retries: int = 8,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._write_retries = max(1, write_retries)
        self._sleep = sleep

    def load_settings(self, site_id: str) -> TenantSettings:
        raw = self._store.get(settings_key(site_id))
        if raw is None:
            return default_tenant_settings()
        try:
            return TenantSettings.model_validate(raw)
        except SchemaValidationError:
            logger.warning("Stored settings for site %s are malformed; using defaults", site_id)
            return default_tenant_settings()

    def save_settings(self, site_id: str, settings: TenantSettings) -> None:
        self._store.set(settings_key(site_id), settings.to_wire())

    def load_profile(self, site_id: str) -> Optional[SiteProfile]:
        raw = self._store.get(profile_key(site_id))
        if not isinstance(raw, dict):
            return None
        try:
            return SiteProfile.model_validate(raw)
        except SchemaValidationError:
            logger.warning("Site profile for %s is malformed", site_id)
            return None

    def load_bookings(self, site_id: str) -> BookingLedger:
        return self._decode(site_id, self._store.get(bookings_key(site_id)))

    def mutate_bookings(self, site_id: str, mutation: Mutation[T]) -> T:
        """Apply ``mutation`` to the latest ledger and store it only if nobody wrote in between.

        ``mutation`` returns ``(result, changed)``; it may raise to abort without
        writing. A lost race re-reads and re-runs the mutation, so validations
        inside it always see the committed state.
        """
        key = bookings_key(site_id)
        for attempt in range(1, self._write_retries + 1):
            current = self._store.get_versioned(key)
            ledger = self._decode(site_id, current.value)
            result, changed = mutation(ledger)
            if not changed:
                return result
            if self._store.compare_and_set(key, ledger.encode(), current.version):
                return result
            logger.info("Concurrent write to %s detected; retrying (attempt %d)", key, attempt)
            self._sleep(random.uniform(0, 0.01 * attempt))
        logger.warning("Giving up on %s after %d contended writes", key, self._write_retries)
        raise Conflict("The schedule changed while saving. Please try again.")

    def _decode(self, site_id: str, raw: Any) -> BookingLedger:
        if raw is None:
            return BookingLedger()
        if not isinstance(raw, list):
            logger.error("Appointment list for site %s is not a list", site_id)
            raise Unavailable("Stored appointments are unreadable")
        ledger = BookingLedger()
        for record in raw:
            try:
                ledger.appointments.append(Appointment.model_validate(record))
            except SchemaValidationError:
                logger.warning("Skipping malformed appointment record for site %s", site_id)
                ledger.unreadable.append(record)
        return ledger
