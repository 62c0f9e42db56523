from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from fastapi import Cookie, Depends, Header

from booking_engine.adapters.email_client import EmailClient
from booking_engine.adapters.mongo_client import MongoClientFactory, MongoTenantStore
from booking_engine.adapters.tenant_store import MemoryTenantStore, TenantStoreProtocol
from booking_engine.app.config import Settings, get_settings
from booking_engine.schemas.site import SiteProfile
from booking_engine.services.authorization import AuthorizationGate, OperatorSession
from booking_engine.services.availability import AvailabilityCalculator, SlotStepPolicy
from booking_engine.services.booking import BookingService
from booking_engine.services.errors import NotFound, Unavailable
from booking_engine.services.lifecycle import AppointmentLifecycle
from booking_engine.services.notifications import AppointmentNotifier, NotificationDispatcher
from booking_engine.services.repository import AppointmentRepository
from booking_engine.utils.wallclock import Clock, site_clock

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_tenant_store() -> TenantStoreProtocol:
    settings = get_settings()
    if settings.store_backend == "memory":
        logger.warning("Using the in-process tenant store; data is lost on restart")
        return MemoryTenantStore()
    factory = MongoClientFactory(settings.mongo_uri, settings.mongo_database)
    store = MongoTenantStore(factory.get_collection(settings.tenant_store_collection))
    try:
        store.ensure_indexes()
    except Unavailable:
        logger.warning("Could not ensure tenant store indexes; expiry falls back to read-time checks")
    return store


@lru_cache(maxsize=1)
def get_email_client() -> EmailClient:
    settings = get_settings()
    return EmailClient(api_key=settings.email_api_key, sender_email=settings.email_sender_email)


@lru_cache(maxsize=1)
def get_dispatcher() -> NotificationDispatcher:
    settings = get_settings()
    return NotificationDispatcher(
        email_client=get_email_client(),
        max_attempts=settings.notification_max_attempts,
        backoff_seconds=settings.notification_backoff_seconds,
        workers=settings.notification_workers,
    )


def get_clock(settings: Settings = Depends(get_settings)) -> Clock:
    return site_clock(settings.site_timezone)


def get_repository(
    settings: Settings = Depends(get_settings),
    store: TenantStoreProtocol = Depends(get_tenant_store),
) -> AppointmentRepository:
    return AppointmentRepository(store=store, write_retries=settings.booking_write_retries)


def get_notifier(
    settings: Settings = Depends(get_settings),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> AppointmentNotifier:
    return AppointmentNotifier(dispatcher=dispatcher, site_domain=settings.site_domain)


def get_availability_calculator(settings: Settings = Depends(get_settings)) -> AvailabilityCalculator:
    return AvailabilityCalculator(step_policy=SlotStepPolicy(settings.slot_step_policy))


def get_booking_service(
    repository: AppointmentRepository = Depends(get_repository),
    notifier: AppointmentNotifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> BookingService:
    return BookingService(repository=repository, notifier=notifier, clock=clock)


def get_lifecycle(
    settings: Settings = Depends(get_settings),
    repository: AppointmentRepository = Depends(get_repository),
    notifier: AppointmentNotifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> AppointmentLifecycle:
    return AppointmentLifecycle(
        repository=repository,
        notifier=notifier,
        clock=clock,
        retention_months=settings.retention_months,
    )


def get_authorization_gate(
    settings: Settings = Depends(get_settings),
    store: TenantStoreProtocol = Depends(get_tenant_store),
) -> AuthorizationGate:
    return AuthorizationGate(store=store, session_ttl_seconds=settings.session_ttl_seconds)


def require_appointments_enabled(
    site_id: str,
    repository: AppointmentRepository = Depends(get_repository),
) -> SiteProfile:
    try:
        profile = repository.load_profile(site_id)
    except Unavailable:
        logger.warning("Could not read site profile for %s; skipping feature check", site_id)
        return SiteProfile()
    if profile is None or not profile.config.show_appointments:
        raise NotFound("Appointment feature not enabled for this site")
    return profile


def require_operator(
    site_id: str,
    admin_token: Optional[str] = Cookie(default=None, alias="adminToken"),
    authorization: Optional[str] = Header(default=None),
    csrf_token: Optional[str] = Header(default=None, alias="X-CSRF-Token"),
    gate: AuthorizationGate = Depends(get_authorization_gate),
) -> OperatorSession:
    session_token = admin_token or _bearer_token(authorization)
    return gate.authorize(site_id, session_token, csrf_token)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
