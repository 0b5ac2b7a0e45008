"""Authentication request/response schemas."""
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from posauth.core.exceptions import AuthErrorCode, PosAuthError
from posauth.models.enums import SessionState

from .base import BaseSchema


class UserPublic(BaseSchema):
    """User as returned to callers: no hash, salt or attempt counters."""

    id: UUID
    username: str
    email: str
    role: str
    access_level: int = Field(..., ge=1, le=5)
    is_active: bool
    last_login: Optional[datetime] = None
    last_activity: Optional[datetime] = None
    password_changed_at: Optional[datetime] = None


class SessionInfo(BaseSchema):
    """Live session details (token included for the local caller only)."""

    id: UUID
    token: str
    user_id: UUID
    issued_at: datetime
    last_activity: datetime
    state: SessionState


class AuthResult(BaseSchema):
    """Outcome of an authentication attempt."""

    success: bool
    user: Optional[UserPublic] = None
    session_token: Optional[str] = None
    error: Optional[AuthErrorCode] = None
    message: Optional[str] = None
    retry_after_seconds: Optional[int] = None

    @classmethod
    def ok(cls, user: UserPublic, session_token: str) -> "AuthResult":
        return cls(success=True, user=user, session_token=session_token)

    @classmethod
    def failure(cls, exc: PosAuthError) -> "AuthResult":
        return cls(
            success=False,
            error=exc.code,
            message=exc.message,
            retry_after_seconds=getattr(exc, "retry_after_seconds", None),
        )


class PasswordChangeResult(BaseSchema):
    """Outcome of a password change; truthy only on success."""

    success: bool
    error: Optional[AuthErrorCode] = None
    message: Optional[str] = None
    violations: list[str] = Field(default_factory=list)
    retry_after_seconds: Optional[int] = None
    revoked_sessions: int = 0

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def failure(cls, exc: PosAuthError) -> "PasswordChangeResult":
        return cls(
            success=False,
            error=exc.code,
            message=exc.message,
            violations=getattr(exc, "violations", []),
            retry_after_seconds=getattr(exc, "retry_after_seconds", None),
        )


class UserLogin(BaseSchema):
    """User login credentials."""

    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1)


class DemoLogin(BaseSchema):
    """Passwordless demo login request."""

    username: str = Field(..., min_length=1, max_length=50)


class PasswordChange(BaseSchema):
    """Password change request for the logged-in user."""

    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1)


class PasswordReset(BaseSchema):
    """Administrative password reset for another account."""

    new_password: str = Field(..., min_length=1)
