"""Domain error types shared by services and routers."""
from __future__ import annotations


class DomainError(Exception):
    """Base domain error."""

    code = "domain_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(DomainError):
    """Referenced masjid, user, question or event does not exist."""

    code = "not_found"

    def __init__(self, resource: str, identifier: object | None = None):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found")


class ForbiddenError(DomainError):
    """Permission check failed. Carries a reason meant for the caller."""

    code = "forbidden"

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message)


class ValidationFailedError(DomainError):
    code = "validation_failed"


class ConflictError(DomainError):
    code = "conflict"


class DeliveryFailure(DomainError):
    """Push delivery problem. Logged inside fan-out, never returned to a request."""

    code = "delivery_failure"

    def __init__(self, message: str, *, error_code: str | None = None, token_invalid: bool = False):
        self.error_code = error_code or "unknown"
        self.token_invalid = token_invalid
        super().__init__(message)


class FanoutTimeout(DeliveryFailure):
    """Candidate or preference loading ran past its bound."""

    code = "fanout_timeout"

    def __init__(self, message: str):
        super().__init__(message, error_code="timeout")
