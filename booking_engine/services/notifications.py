from __future__ import annotations

import html
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, Optional, Set

from booking_engine.adapters.email_client import EmailClient, EmailMessage
from booking_engine.schemas.appointment import Appointment
from booking_engine.schemas.site import SiteProfile

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Delivers emails on a background pool so callers never wait on the provider."""

    def __init__(
        self,
        email_client: EmailClient,
        max_attempts: int = 3,
        backoff_seconds: float = 2.0,
        workers: int = 2,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._email = email_client
        self._max_attempts = max(1, max_attempts)
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="notify")
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()

    def submit(self, message: EmailMessage) -> None:
        try:
            future = self._executor.submit(self._deliver, message)
        except RuntimeError:
            logger.warning("Dispatcher is shut down; dropping email to %s (%s)", message.to, message.subject)
            return
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def flush(self, timeout: Optional[float] = None) -> None:
        """Block until every submitted email has been attempted."""
        with self._lock:
            pending = list(self._pending)
        wait(pending, timeout=timeout)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def _deliver(self, message: EmailMessage) -> bool:
        for attempt in range(1, self._max_attempts + 1):
            try:
                result = self._email.send(message)
            except Exception:
                logger.warning(
                    "Email delivery raised (attempt %d/%d) to %s",
                    attempt,
                    self._max_attempts,
                    message.to,
                    exc_info=True,
                )
                result = {"success": False, "error": "delivery raised"}
            if result.get("success"):
                return True
            if result.get("retryable") is False:
                break
            if attempt < self._max_attempts:
                self._sleep(self._backoff_seconds * 2 ** (attempt - 1))
        logger.error(
            "Email to %s was not sent (%s): %s",
            message.to,
            message.subject,
            result.get("error"),
        )
        return False


class AppointmentNotifier:
    """Composes the customer and owner emails for lifecycle events."""

    def __init__(self, dispatcher: NotificationDispatcher, site_domain: str) -> None:
        self._dispatcher = dispatcher
        self._site_domain = site_domain

    def booking_requested(self, site_id: str, appointment: Appointment, profile: SiteProfile) -> None:
        business = profile.business_name or site_id
        customer = appointment.customer
        service = appointment.service.display_name
        self._send(
            EmailMessage(
                to=customer.email,
                subject=f"Appointment Request Received - {business}",
                text=(
                    f"Thank you for your appointment request on {appointment.date} at {appointment.time}. "
                    "We will confirm your request shortly."
                ),
                html=(
                    "<h2>Appointment Request Received</h2>"
                    f"<p>Thank you for requesting an appointment with {_e(business)}.</p>"
                    f"<p><strong>Date:</strong> {appointment.date}</p>"
                    f"<p><strong>Time:</strong> {appointment.time}</p>"
                    f"<p><strong>Service:</strong> {_e(service)}</p>"
                    "<p>We will review your request and send you a confirmation email shortly.</p>"
                ),
            )
        )

        owner_email = profile.owner_email
        if not owner_email:
            logger.info("No owner email on file for site %s; skipping owner notification", site_id)
            return
        dashboard = f"https://{site_id}.{self._site_domain}/admin/appointments"
        self._send(
            EmailMessage(
                to=owner_email,
                subject=f"New Appointment Request - {business}",
                text=f"A new appointment has been requested for {appointment.date} at {appointment.time}.",
                html=(
                    "<h2>New Appointment Request</h2>"
                    f"<p><strong>Customer:</strong> {_e(customer.name)}</p>"
                    f"<p><strong>Email:</strong> {_e(customer.email)}</p>"
                    f"<p><strong>Phone:</strong> {_e(customer.phone)}</p>"
                    f"<p><strong>Date:</strong> {appointment.date}</p>"
                    f"<p><strong>Time:</strong> {appointment.time}</p>"
                    f"<p><strong>Service:</strong> {_e(service)}</p>"
                    f"<p><strong>Notes:</strong> {_e(customer.notes or 'No notes provided')}</p>"
                    f'<p>To confirm or cancel this appointment, log in to your <a href="{dashboard}">'
                    "appointment dashboard</a>.</p>"
                ),
            )
        )

    def confirmed(self, site_id: str, appointment: Appointment, profile: SiteProfile) -> None:
        business = profile.business_name or site_id
        self._send(
            EmailMessage(
                to=appointment.customer.email,
                subject=f"Appointment Confirmed - {business}",
                text=f"Your appointment on {appointment.date} at {appointment.time} has been confirmed.",
                html=(
                    "<h2>Appointment Confirmed</h2>"
                    f"<p><strong>Date:</strong> {appointment.date}</p>"
                    f"<p><strong>Time:</strong> {appointment.time}</p>"
                    "<p>We look forward to seeing you!</p>"
                ),
            )
        )

    def cancelled(self, site_id: str, appointment: Appointment, profile: SiteProfile) -> None:
        business = profile.business_name or site_id
        self._send(
            EmailMessage(
                to=appointment.customer.email,
                subject=f"Appointment Cancelled - {business}",
                text=f"Your appointment on {appointment.date} at {appointment.time} has been cancelled.",
                html=(
                    "<h2>Appointment Cancelled</h2>"
                    f"<p><strong>Date:</strong> {appointment.date}</p>"
                    f"<p><strong>Time:</strong> {appointment.time}</p>"
                    "<p>If you did not request this cancellation, please contact us.</p>"
                ),
            )
        )

    def _send(self, message: EmailMessage) -> None:
        try:
            self._dispatcher.submit(message)
        except Exception:  # pragma: no cover
            logger.exception("Could not queue email to %s", message.to)


def _e(value: str) -> str:
    return html.escape(value, quote=True)
