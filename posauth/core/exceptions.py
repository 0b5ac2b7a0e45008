"""
Error taxonomy for the access core.

Expected authentication outcomes (invalid credentials, lockout, policy
violations) are caught at the service boundary and returned as structured
results. Storage failures propagate to the caller unchanged.
"""
import math
from datetime import timedelta
from enum import Enum
from typing import Optional


class AuthErrorCode(str, Enum):
    """Stable error codes carried by results and HTTP responses."""
    NOT_FOUND = "NOT_FOUND"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    LOCKED_OUT = "LOCKED_OUT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    CONFLICT = "CONFLICT"
    FORBIDDEN = "FORBIDDEN"


class PosAuthError(Exception):
    """Base class for every error raised by the access core."""

    code: AuthErrorCode = AuthErrorCode.INVALID_CREDENTIALS
    default_message = "Authentication error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(PosAuthError):
    """A record lookup missed."""
    code = AuthErrorCode.NOT_FOUND
    default_message = "Record not found"


class InvalidCredentialsError(PosAuthError):
    """Unknown username or wrong password (deliberately indistinguishable)."""
    code = AuthErrorCode.INVALID_CREDENTIALS
    default_message = "Invalid username or password"


class LockedOutError(PosAuthError):
    """Too many failed attempts; carries the remaining cool-down."""
    code = AuthErrorCode.LOCKED_OUT

    def __init__(self, retry_after: timedelta):
        self.retry_after = max(retry_after, timedelta(0))
        minutes = max(1, math.ceil(self.retry_after.total_seconds() / 60))
        unit = "minute" if minutes == 1 else "minutes"
        super().__init__(f"Account locked for {minutes} {unit}")

    @property
    def retry_after_seconds(self) -> int:
        return math.ceil(self.retry_after.total_seconds())


class ValidationError(PosAuthError):
    """A new password does not satisfy the password policy."""
    code = AuthErrorCode.VALIDATION_ERROR

    def __init__(self, violations: list[str]):
        self.violations = list(violations)
        super().__init__("; ".join(self.violations) or "Validation failed")


class StorageUnavailableError(PosAuthError):
    """The credential store could not be reached. Retryable."""
    code = AuthErrorCode.STORAGE_UNAVAILABLE
    default_message = "Credential store unavailable"


class SessionExpiredError(PosAuthError):
    """A session was read after its inactivity window elapsed."""
    code = AuthErrorCode.SESSION_EXPIRED
    default_message = "Session expired"


class ConflictError(PosAuthError):
    """A concurrent writer changed the record first."""
    code = AuthErrorCode.CONFLICT
    default_message = "Record was modified concurrently"


class PermissionDeniedError(PosAuthError):
    """The acting user's role lacks the module action."""
    code = AuthErrorCode.FORBIDDEN
    default_message = "Permission denied"
