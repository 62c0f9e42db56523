from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from booking_engine.adapters.tenant_store import MemoryTenantStore
from booking_engine.app.dependencies import get_clock, get_dispatcher, get_tenant_store
from booking_engine.app.main import app
from booking_engine.services.authorization import AuthorizationGate
from booking_engine.services.errors import Unavailable
from booking_engine.services.repository import profile_key
from conftest import booking_payload, fixed_clock

SITE = "acme-dental"
BASE = f"/api/v1/sites/{SITE}/appointments"


@pytest.fixture()
def client(store, dispatcher):
    store.set(
        profile_key(SITE),
        {
            "adminEmail": "owner@acme.example",
            "businessName": "Acme Dental",
            "config": {"showAppointments": True},
        },
    )
    overrides = {
        get_tenant_store: lambda: store,
        get_dispatcher: lambda: dispatcher,
        get_clock: lambda: fixed_clock,
    }
    app.dependency_overrides.update(overrides)
    try:
        yield TestClient(app)
    finally:
        for key in overrides:
            app.dependency_overrides.pop(key, None)


@pytest.fixture()
def operator(store):
    issued = AuthorizationGate(store=store).issue_session(SITE)
    return {"Authorization": f"Bearer {issued.session_token}", "X-CSRF-Token": issued.csrf_token}


def _book(client: TestClient, **overrides) -> dict:
    response = client.post(f"{BASE}/book", json=booking_payload(**overrides))
    assert response.status_code == 201, response.text
    return response.json()["appointment"]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_disabled_feature_is_not_found(client, store):
    store.set(profile_key("quiet-site"), {"config": {"showAppointments": False}})

    for site in ("quiet-site", "no-such-site"):
        response = client.get(f"/api/v1/sites/{site}/appointments/settings")
        assert response.status_code == 404
        assert response.json()["error"]["kind"] == "not_found"


def test_settings_default_to_weekday_hours(client):
    response = client.get(f"{BASE}/settings")
    data = response.json()

    assert response.status_code == 200
    assert data["defaultDurationMinutes"] == 30
    assert data["bufferMinutes"] == 5
    assert data["workingHours"]["monday"] == {"start": "09:00", "end": "17:00", "enabled": True}
    assert data["workingHours"]["sunday"]["enabled"] is False


def test_saving_settings_requires_operator(client, operator):
    settings = client.get(f"{BASE}/settings").json()
    settings["workingHours"]["saturday"]["enabled"] = True

    anonymous = client.put(f"{BASE}/settings", json={"settings": settings})
    assert anonymous.status_code == 401
    assert anonymous.json()["error"]["kind"] == "unauthenticated"

    bad_csrf = client.put(
        f"{BASE}/settings",
        json={"settings": settings},
        headers={**operator, "X-CSRF-Token": "forged"},
    )
    assert bad_csrf.status_code == 403

    saved = client.put(f"{BASE}/settings", json={"settings": settings}, headers=operator)
    assert saved.status_code == 200
    assert saved.json() == {"success": True}
    assert client.get(f"{BASE}/settings").json()["workingHours"]["saturday"]["enabled"] is True


def test_session_cookie_is_accepted(client, store):
    issued = AuthorizationGate(store=store).issue_session(SITE)
    headers = {"Cookie": f"adminToken={issued.session_token}", "X-CSRF-Token": issued.csrf_token}

    response = client.get(f"{BASE}/pending-count", headers=headers)

    assert response.status_code == 200
    assert response.json() == {"count": 0}


def test_operator_of_another_site_is_forbidden(client, store):
    issued = AuthorizationGate(store=store).issue_session("someone-else")
    headers = {"Authorization": f"Bearer {issued.session_token}", "X-CSRF-Token": issued.csrf_token}

    response = client.get(f"{BASE}/admin", headers=headers)

    assert response.status_code == 403
    assert response.json()["error"]["kind"] == "forbidden"


def test_day_availability(client):
    response = client.get(f"{BASE}/availability", params={"date": "2026-10-26"})
    data = response.json()

    assert response.status_code == 200
    assert data["durationMinutes"] == 30
    assert len(data["availableSlots"]) == 16
    assert data["availableSlots"][0] == {"time": "9:00 AM", "available": True}
    assert [option["minutes"] for option in data["durations"]] == [15, 30, 60]
    assert data["serviceTypes"][0]["id"] == "general"


def test_month_availability(client):
    response = client.get(f"{BASE}/availability/month", params={"year": 2026, "month": 10})

    assert response.status_code == 200
    assert response.json()["availableDates"][0] == "2026-10-20"
    assert len(response.json()["availableDates"]) == 9


def test_bad_query_is_a_validation_error(client):
    response = client.get(f"{BASE}/availability/month", params={"year": 2026, "month": 13})

    assert response.status_code == 400
    assert response.json()["error"]["kind"] == "validation_error"


def test_booking_blocks_the_slot(client, dispatcher):
    appointment = _book(client)
    assert appointment["status"] == "pending"
    assert appointment["time"] == "10:00 AM"
    assert appointment["customer"]["email"] == "jordan@example.com"

    again = client.post(f"{BASE}/book", json=booking_payload())
    assert again.status_code == 409
    assert again.json()["error"]["kind"] == "conflict"

    slots = client.get(f"{BASE}/availability", params={"date": "2026-10-26"}).json()["availableSlots"]
    assert "10:00 AM" not in [slot["time"] for slot in slots]
    dispatcher.flush(timeout=5)


def test_booking_with_invalid_customer_is_rejected(client):
    payload = booking_payload()
    payload["customer"]["email"] = "not-an-email"

    response = client.post(f"{BASE}/book", json=payload)

    assert response.status_code == 400
    assert response.json()["error"]["kind"] == "validation_error"


def test_public_listing_hides_customer_details(client, operator):
    _book(client)

    public = client.get(BASE).json()["appointments"]
    assert len(public) == 1
    assert "customer" not in public[0]
    assert "id" not in public[0]
    assert public[0]["time"] == "10:00 AM"

    unauthenticated = client.get(f"{BASE}/admin")
    assert unauthenticated.status_code == 401

    admin = client.get(f"{BASE}/admin", headers=operator).json()["appointments"]
    assert admin[0]["customer"]["name"] == "Jordan Lee"


def test_operator_workflow(client, operator, dispatcher):
    first = _book(client, time="10:00 AM")
    second = _book(client, time="11:00 AM")
    assert client.get(f"{BASE}/pending-count", headers=operator).json() == {"count": 2}

    confirmed = client.post(f"{BASE}/{first['id']}/confirm", headers=operator)
    assert confirmed.status_code == 200
    assert confirmed.json()["appointment"]["status"] == "confirmed"
    assert client.get(f"{BASE}/pending-count", headers=operator).json() == {"count": 1}

    moved = client.patch(f"{BASE}/{second['id']}", json={"time": "2:00 PM"}, headers=operator)
    assert moved.status_code == 200
    assert moved.json()["appointment"]["updatedAt"].startswith("2026-10-19T10:00")

    clash = client.patch(f"{BASE}/{second['id']}", json={"time": "10:00 AM"}, headers=operator)
    assert clash.status_code == 409

    cancelled = client.post(f"{BASE}/{first['id']}/cancel", headers=operator)
    assert cancelled.json()["appointment"]["status"] == "cancelled"

    reconfirm = client.post(f"{BASE}/{first['id']}/confirm", headers=operator)
    assert reconfirm.status_code == 409

    missing = client.post(f"{BASE}/does-not-exist/confirm", headers=operator)
    assert missing.status_code == 404
    dispatcher.flush(timeout=5)


def test_unknown_patch_fields_are_rejected(client, operator):
    appointment = _book(client)

    response = client.patch(f"{BASE}/{appointment['id']}", json={"id": "hijack"}, headers=operator)

    assert response.status_code == 400


def test_public_cancel(client, dispatcher, email):
    appointment = _book(client)

    response = client.delete(f"{BASE}/{appointment['id']}")

    assert response.status_code == 200
    assert response.json() == {"success": True}
    slots = client.get(f"{BASE}/availability", params={"date": "2026-10-26"}).json()["availableSlots"]
    assert "10:00 AM" in [slot["time"] for slot in slots]
    dispatcher.flush(timeout=5)
    assert "Appointment Cancelled - Acme Dental" in email.subjects


def test_cleanup_requires_operator(client, operator):
    assert client.post(f"{BASE}/cleanup").status_code == 401

    response = client.post(f"{BASE}/cleanup", headers=operator)

    assert response.status_code == 200
    assert response.json() == {"success": True, "removed": 0}


class UnreachableStore(MemoryTenantStore):
    def get_versioned(self, key):
        raise Unavailable("Tenant store is unreachable")


def test_unreachable_store_is_reported_as_unavailable(client, operator):
    app.dependency_overrides[get_tenant_store] = lambda: UnreachableStore()

    public = client.get(f"{BASE}/settings")
    gated = client.get(f"{BASE}/pending-count", headers=operator)

    for response in (public, gated):
        assert response.status_code == 503
        assert response.json()["error"]["kind"] == "unavailable"


def test_dispatcher_is_rebuilt_after_shutdown():
    app.dependency_overrides.pop(get_dispatcher, None)
    get_dispatcher.cache_clear()
    try:
        first = get_dispatcher()
        with TestClient(app):
            pass
        assert get_dispatcher.cache_info().currsize == 0
        assert get_dispatcher() is not first
    finally:
        get_dispatcher().shutdown()
        get_dispatcher.cache_clear()
