from __future__ import annotations

import threading
from datetime import date, datetime

import pytest

from booking_engine.adapters.email_client import EmailClient, EmailMessage
from booking_engine.adapters.tenant_store import MemoryTenantStore
from booking_engine.services.notifications import AppointmentNotifier, NotificationDispatcher
from booking_engine.services.repository import AppointmentRepository

# Monday morning; the following Monday is fully in the future.
FIXED_NOW = datetime(2026, 10, 19, 10, 0)
NEXT_MONDAY = date(2026, 10, 26)


def fixed_clock() -> datetime:
    return FIXED_NOW


class StubEmailClient(EmailClient):
    def __init__(self, responses=None) -> None:
        super().__init__(api_key="stub", sender_email="bookings@example.com")
        self.sent = []
        self._responses = list(responses or [])
        self._lock = threading.Lock()

    def send(self, message: EmailMessage):
        with self._lock:
            self.sent.append(message)
            if self._responses:
                return self._responses.pop(0)
        return {"success": True, "status": 200, "recipient": message.to}

    @property
    def subjects(self):
        return sorted(message.subject for message in self.sent)


def customer(name: str = "Jordan Lee", email: str = "jordan@example.com") -> dict:
    return {"name": name, "email": email, "phone": "+1 555 010 2000"}


def booking_payload(day: date = NEXT_MONDAY, time: str = "10:00 AM", **extra) -> dict:
    payload = {
        "date": day.isoformat(),
        "time": time,
        "service": {"id": "consultation", "displayName": "Consultation"},
        "customer": customer(),
    }
    payload.update(extra)
    return payload


@pytest.fixture()
def store() -> MemoryTenantStore:
    return MemoryTenantStore()


@pytest.fixture()
def repository(store) -> AppointmentRepository:
    return AppointmentRepository(store=store, sleep=lambda _: None)


@pytest.fixture()
def email() -> StubEmailClient:
    return StubEmailClient()


@pytest.fixture()
def dispatcher(email):
    dispatcher = NotificationDispatcher(email_client=email, sleep=lambda _: None)
    yield dispatcher
    dispatcher.shutdown()


@pytest.fixture()
def notifier(dispatcher) -> AppointmentNotifier:
    return AppointmentNotifier(dispatcher=dispatcher, site_domain="example.org")
