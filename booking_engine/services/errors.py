from __future__ import annotations


class BookingEngineError(Exception):
    """Base class for failures reported to callers with a stable kind."""

    kind = "error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {"error": {"kind": self.kind, "message": self.message}}


class ValidationError(BookingEngineError):
    kind = "validation_error"
    status_code = 400


class Unauthenticated(BookingEngineError):
    kind = "unauthenticated"
    status_code = 401


class Forbidden(BookingEngineError):
    kind = "forbidden"
    status_code = 403


class NotFound(BookingEngineError):
    kind = "not_found"
    status_code = 404


class Conflict(BookingEngineError):
    kind = "conflict"
    status_code = 409


class Unavailable(BookingEngineError):
    kind = "unavailable"
    status_code = 503
