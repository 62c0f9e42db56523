from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass
from typing import Optional

from booking_engine.adapters.tenant_store import TenantStoreProtocol
from booking_engine.services.errors import Forbidden, Unauthenticated, ValidationError

logger = logging.getLogger(__name__)


def session_key(session_token: str) -> str:
    return f"auth:{session_token}"


def csrf_key(session_token: str) -> str:
    return f"csrf:{session_token}"


@dataclass(frozen=True)
class OperatorSession:
    site_id: str
    session_token: str


@dataclass(frozen=True)
class IssuedSession:
    session_token: str
    csrf_token: str


class AuthorizationGate:
    """Checks that an admin call carries a live session and CSRF token for its site."""

    def __init__(self, store: TenantStoreProtocol, session_ttl_seconds: int = 86400) -> None:
        self._store = store
        self._session_ttl_seconds = session_ttl_seconds

    def authorize(
        self,
        site_id: str,
        session_token: Optional[str],
        csrf_token: Optional[str],
    ) -> OperatorSession:
        if not site_id:
            raise ValidationError("Site ID is required")
        if not session_token:
            raise Unauthenticated("Authentication required")

        owner = self._store.get(session_key(session_token))
        if owner is None:
            raise Unauthenticated("Session is invalid or has expired")
        if owner != site_id:
            logger.warning("Session for site %s used against site %s", owner, site_id)
            raise Forbidden("Not authorized for this site")

        expected = self._store.get(csrf_key(session_token))
        if not csrf_token or not isinstance(expected, str):
            raise Forbidden("CSRF token missing. Please refresh the page and try again.")
        if not secrets.compare_digest(expected.encode("utf-8"), csrf_token.encode("utf-8")):
            logger.warning("CSRF token mismatch for site %s", site_id)
            raise Forbidden("CSRF token invalid. Please refresh the page and try again.")

        return OperatorSession(site_id=site_id, session_token=session_token)

    def issue_session(self, site_id: str) -> IssuedSession:
        """Record a session/CSRF pair the way a successful login does."""
        issued = IssuedSession(session_token=str(uuid.uuid4()), csrf_token=secrets.token_urlsafe(32))
        for key, value in (
            (session_key(issued.session_token), site_id),
            (csrf_key(issued.session_token), issued.csrf_token),
        ):
            self._store.set(key, value)
            self._store.expire(key, self._session_ttl_seconds)
        return issued
