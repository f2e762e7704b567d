"""
Domain error taxonomy shared by services, HTTP routes and the realtime layer
"""

from typing import Any, Optional


class TripSyncError(Exception):
    """Base class for every caller-visible failure"""

    kind = "integrity"
    status_code = 500
    default_message = "Unexpected store failure"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
        }


class ValidationFailed(TripSyncError):
    """Missing or malformed input, rejected before any store access"""

    kind = "validation"
    status_code = 422
    default_message = "Invalid request"


class NotAuthorized(TripSyncError):
    """Caller is unknown, not a member, or not the host"""

    kind = "authorization"
    status_code = 403
    default_message = "Not allowed"


class NotAuthenticated(NotAuthorized):
    status_code = 401
    default_message = "Authentication required"


class NotFound(TripSyncError):
    kind = "not_found"
    status_code = 404
    default_message = "Resource not found"

    def __init__(self, resource: str = "Resource", details: Any = None):
        super().__init__(f"{resource} not found", details)
        self.resource = resource


class ConflictError(TripSyncError):
    kind = "conflict"
    status_code = 409
    default_message = "Conflicting state"


class VersionConflict(ConflictError):
    """Expected version does not match the stored version"""

    def __init__(self, resource: str, expected: int, actual: int):
        super().__init__(
            f"{resource} was modified concurrently (expected version {expected}, found {actual})",
            {"expected_version": expected, "current_version": actual},
        )
        self.expected = expected
        self.actual = actual


class RetryExhausted(TripSyncError):
    """Lock contention persisted through every retry attempt"""

    kind = "contention"
    status_code = 503
    default_message = "Lock contention retries exhausted"

    def __init__(self, attempts: int):
        super().__init__(f"Lock contention retries exhausted after {attempts} attempts", {"attempts": attempts})
        self.attempts = attempts


class IntegrityFailure(TripSyncError):
    """Any other store failure during a multi-statement mutation"""
