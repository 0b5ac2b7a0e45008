"""
SQLAlchemy ORM models for the access core.
"""

# Enums
from posauth.models.enums import AppView, AuthState, Role, SessionState

# Base
from posauth.models.base import (
    BaseModel,
    TimestampMixin,
    UTCDateTime,
    UUIDPrimaryKeyMixin,
    VersionMixin,
)

# Domain Models
from posauth.models.user import User
from posauth.models.role import RoleConfig
from posauth.models.system_config import SystemConfig
from posauth.models.session import AuthSession

__all__ = [
    # Enums
    "AppView",
    "AuthState",
    "Role",
    "SessionState",
    # Base
    "BaseModel",
    "TimestampMixin",
    "UTCDateTime",
    "UUIDPrimaryKeyMixin",
    "VersionMixin",
    # Domain Models
    "User",
    "RoleConfig",
    "SystemConfig",
    "AuthSession",
]
