"""Authenticated session records."""
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, UTCDateTime, VersionMixin
from .enums import SessionState


class AuthSession(BaseModel, VersionMixin):
    """Proof that a user authenticated on this installation.

    Only the record referenced by the current-session marker may be ACTIVE
    for the installation; superseded, expired and revoked records are kept
    for audit.
    """

    __tablename__ = "auth_sessions"

    token: Mapped[str] = mapped_column(
        String(128), unique=True, nullable=False, index=True
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    issued_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    last_activity: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    state: Mapped[SessionState] = mapped_column(
        SAEnum(SessionState, name="session_state", native_enum=False, length=20),
        nullable=False,
        default=SessionState.ACTIVE,
    )
    ended_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime())

    def idle_since(self, now: datetime):
        """Elapsed time since the last recorded activity."""
        return now - self.last_activity
