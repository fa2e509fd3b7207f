# File: civiceye/core/errors.py
"""Error taxonomy shared by the engine and the HTTP layer.

Every error carries the HTTP status it maps to and a short machine code; the
exception handlers in ``civiceye.main`` turn them into the response envelope.
"""
from typing import Optional


class CivicEyeError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CivicEyeError):
    """Malformed, missing or out-of-range input. The client must fix and resend."""

    status_code = 400
    code = "validation_error"

    def __init__(self, field: Optional[str], message: str):
        super().__init__(message)
        self.field = field


class InvalidLocationError(ValidationError):
    code = "invalid_location"

    def __init__(self, message: str, field: str = "location"):
        super().__init__(field, message)


class ForbiddenError(CivicEyeError):
    status_code = 403
    code = "forbidden"


class NotFoundError(CivicEyeError):
    status_code = 404
    code = "not_found"


class StoreUnavailableError(CivicEyeError):
    """The backing store timed out or is down. Safe to retry with backoff."""

    status_code = 503
    code = "store_unavailable"
