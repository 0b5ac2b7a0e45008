"""Role configuration model (data-driven RBAC)."""
from sqlalchemy import JSON, CheckConstraint, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from posauth.db.database import Base

from .base import TimestampMixin


class RoleConfig(Base, TimestampMixin):
    """Display metadata, access level and permitted views for one role."""

    __tablename__ = "role_configs"
    __table_args__ = (
        CheckConstraint(
            "access_level >= 1 AND access_level <= 5", name="access_level_range"
        ),
    )

    role: Mapped[str] = mapped_column(String(50), primary_key=True)
    label: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    access_level: Mapped[int] = mapped_column(Integer, nullable=False)
    permitted_views: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=list
    )
    # module -> list of actions; "*" grants every action
    permissions: Mapped[dict[str, list[str]]] = mapped_column(
        JSON, nullable=False, default=dict
    )

    def __repr__(self) -> str:
        return f"<RoleConfig(role={self.role}, access_level={self.access_level})>"
