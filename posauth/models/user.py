"""User model for authentication."""
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, UTCDateTime, VersionMixin


class User(BaseModel, VersionMixin):
    """User account for terminal authentication.

    Password is stored as a bcrypt hash (salt embedded in the encoding).
    Attempt counters, lockout and activity timestamps are only mutated by
    the auth service through compare-and-set on ``version``.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("failed_attempts >= 0", name="failed_attempts_non_negative"),
    )

    username: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    access_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)

    failed_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lockout_until: Mapped[Optional[datetime]] = mapped_column(UTCDateTime())
    last_activity: Mapped[Optional[datetime]] = mapped_column(UTCDateTime())
    last_login: Mapped[Optional[datetime]] = mapped_column(UTCDateTime())
    password_changed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime())

    def is_locked(self, now: datetime) -> bool:
        """Check if the account is locked at ``now``."""
        return self.lockout_until is not None and self.lockout_until > now

    def __repr__(self) -> str:
        return (
            f"<User(username={self.username}, role={self.role}, "
            f"is_active={self.is_active})>"
        )
