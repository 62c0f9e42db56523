from __future__ import annotations

import threading
from datetime import date

import pytest

from booking_engine.schemas.appointment import AppointmentStatus, BookingRequest
from booking_engine.schemas.site import SiteProfile
from booking_engine.services.booking import BookingService, intervals_overlap
from booking_engine.services.errors import Conflict, ValidationError
from booking_engine.services.notifications import AppointmentNotifier, NotificationDispatcher
from booking_engine.services.repository import bookings_key
from booking_engine.utils.wallclock import interval_on, parse_wall_time
from conftest import FIXED_NOW, NEXT_MONDAY, StubEmailClient, booking_payload, fixed_clock

SITE = "acme-dental"
PROFILE = SiteProfile.model_validate(
    {"adminEmail": "owner@acme.example", "businessName": "Acme Dental", "config": {"showAppointments": True}}
)


@pytest.fixture()
def service(repository, notifier) -> BookingService:
    return BookingService(repository=repository, notifier=notifier, clock=fixed_clock)


def _request(**overrides) -> BookingRequest:
    return BookingRequest.model_validate(booking_payload(**overrides))


def test_booking_creates_pending_appointment(service, repository):
    appointment = service.book(SITE, _request(), PROFILE)

    assert appointment.status is AppointmentStatus.PENDING
    assert appointment.created_at == FIXED_NOW
    assert appointment.time == "10:00 AM"
    assert appointment.duration_minutes == 30
    assert len(appointment.id) == 32

    stored = repository.load_bookings(SITE).appointments
    assert [item.id for item in stored] == [appointment.id]


def test_booking_notifies_customer_and_owner(service, dispatcher, email):
    service.book(SITE, _request(), PROFILE)
    dispatcher.flush(timeout=5)

    assert email.subjects == [
        "Appointment Request Received - Acme Dental",
        "New Appointment Request - Acme Dental",
    ]
    recipients = sorted(message.to for message in email.sent)
    assert recipients == ["jordan@example.com", "owner@acme.example"]


def test_booking_without_owner_email_only_notifies_customer(service, dispatcher, email):
    service.book(SITE, _request(), SiteProfile())
    dispatcher.flush(timeout=5)

    assert [message.to for message in email.sent] == ["jordan@example.com"]


def test_overlapping_booking_is_rejected(service):
    service.book(SITE, _request(time="10:00 AM", durationMinutes=60))

    with pytest.raises(Conflict):
        service.book(SITE, _request(time="10:30 AM"))


def test_adjacent_booking_is_accepted(service, repository):
    service.book(SITE, _request(time="10:00 AM"))
    service.book(SITE, _request(time="10:30 AM"))

    assert len(repository.load_bookings(SITE).appointments) == 2


def test_same_time_on_another_tenant_is_independent(service, repository):
    service.book(SITE, _request())
    service.book("other-site", _request())

    assert len(repository.load_bookings(SITE).appointments) == 1
    assert len(repository.load_bookings("other-site").appointments) == 1


def test_cancelled_booking_frees_the_slot(service, store, repository):
    first = service.book(SITE, _request())
    raw = store.get(bookings_key(SITE))
    raw[0]["status"] = "cancelled"
    store.set(bookings_key(SITE), raw)

    second = service.book(SITE, _request())

    assert second.id != first.id
    statuses = sorted(item.status.value for item in repository.load_bookings(SITE).appointments)
    assert statuses == ["cancelled", "pending"]


def test_booking_in_the_past_is_rejected(service):
    with pytest.raises(ValidationError):
        service.book(SITE, _request(day=FIXED_NOW.date(), time="9:30 AM"))


def test_booking_crossing_midnight_is_rejected(service):
    with pytest.raises(ValidationError):
        service.book(SITE, _request(time="11:30 PM", durationMinutes=60))


def test_missing_or_bad_duration_defaults_to_thirty_minutes():
    payload = booking_payload()
    assert BookingRequest.model_validate(payload).duration_minutes == 30
    payload["duration"] = "abc"
    assert BookingRequest.model_validate(payload).duration_minutes == 30
    payload["duration"] = 45
    assert BookingRequest.model_validate(payload).duration_minutes == 45


def test_service_as_plain_string_is_accepted():
    request = BookingRequest.model_validate(booking_payload(service="Cleaning"))
    assert request.service.display_name == "Cleaning"


def test_concurrent_bookings_for_one_slot_admit_exactly_one(repository, notifier):
    service = BookingService(repository=repository, notifier=notifier, clock=fixed_clock)
    barrier = threading.Barrier(8)
    outcomes = []
    lock = threading.Lock()

    def attempt():
        barrier.wait()
        try:
            service.book(SITE, _request())
            result = "booked"
        except Conflict:
            result = "conflict"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=attempt) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ["booked"] + ["conflict"] * 7
    assert len(repository.load_bookings(SITE).appointments) == 1


def test_failed_notification_does_not_fail_booking(repository):
    class ExplodingEmailClient(StubEmailClient):
        def send(self, message):
            raise RuntimeError("provider down")

    dispatcher = NotificationDispatcher(email_client=ExplodingEmailClient(), max_attempts=2, sleep=lambda _: None)
    try:
        service = BookingService(
            repository=repository,
            notifier=AppointmentNotifier(dispatcher=dispatcher, site_domain="example.org"),
            clock=fixed_clock,
        )
        appointment = service.book(SITE, _request(), PROFILE)
        dispatcher.flush(timeout=5)
    finally:
        dispatcher.shutdown()

    assert repository.load_bookings(SITE).find(appointment.id) == 0


@pytest.mark.parametrize(
    "other_start, other_minutes, expected",
    [
        ("10:00 AM", 30, True),
        ("10:15 AM", 30, True),
        ("9:45 AM", 30, True),
        ("9:00 AM", 120, True),
        ("10:10 AM", 10, True),
        ("10:30 AM", 30, False),
        ("9:30 AM", 30, False),
    ],
)
def test_interval_overlap_rule(other_start, other_minutes, expected):
    day = date(2026, 10, 26)
    start, end = interval_on(day, parse_wall_time("10:00 AM"), 30)
    other = interval_on(day, parse_wall_time(other_start), other_minutes)

    assert intervals_overlap(start, end, *other) is expected


@pytest.mark.parametrize(
    "overrides",
    [
        {"day": date(2026, 10, 24)},
        {"time": "8:30 AM"},
        {"time": "4:45 PM"},
        {"time": "9:00 AM", "durationMinutes": 600},
    ],
)
def test_booking_outside_working_hours_is_rejected(service, repository, overrides):
    with pytest.raises(ValidationError):
        service.book(SITE, _request(**overrides))

    assert repository.load_bookings(SITE).appointments == []


def test_last_slot_of_the_day_can_be_booked(service):
    appointment = service.book(SITE, _request(time="4:30 PM"))

    assert appointment.time == "4:30 PM"
