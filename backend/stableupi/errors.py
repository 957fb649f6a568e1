"""
Gateway Errors — Domain exception taxonomy.

Every error carries a human-readable message and a machine-checkable code.
The FastAPI handler in main.py renders them as ErrorResponse bodies.
"""
from typing import Optional, Dict


class GatewayError(Exception):
    """Base class for all errors surfaced to API callers."""

    status_code: int = 500
    code: str = "GATEWAY_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"detail": self.message, "error_code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(GatewayError):
    """Malformed field or out-of-range amount. Never retried automatically."""

    status_code = 400
    code = "VALIDATION_ERROR"


class InvalidAmount(ValidationError):
    code = "INVALID_AMOUNT"


class NotFoundError(GatewayError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(GatewayError):
    """Duplicate payout attempt or already-settled transaction. No state is mutated."""

    status_code = 409
    code = "CONFLICT"


class AuthenticationError(GatewayError):
    status_code = 401
    code = "INVALID_SIGNATURE"


class UpstreamUnavailable(GatewayError):
    """Price source or payout provider unreachable, or returned unusable data."""

    status_code = 502
    code = "UPSTREAM_UNAVAILABLE"


class UpstreamTimeout(UpstreamUnavailable):
    code = "UPSTREAM_TIMEOUT"


class PersistenceError(GatewayError):
    status_code = 500
    code = "PERSISTENCE_ERROR"


class ProviderRejected(GatewayError):
    """The payout provider answered but refused the request."""

    status_code = 502
    code = "PROVIDER_REJECTED"
