"""Key/value configuration entries sharing the credential store."""
from typing import Optional

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from posauth.db.database import Base

from .base import TimestampMixin, VersionMixin


class SystemConfig(Base, TimestampMixin, VersionMixin):
    """Miscellaneous setting, also used for the current-session marker."""

    __tablename__ = "system_config"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[str] = mapped_column(
        String(50), nullable=False, default="general", index=True
    )

    def __repr__(self) -> str:
        return f"<SystemConfig(key={self.key}, category={self.category})>"
