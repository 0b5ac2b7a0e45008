"""
Pydantic schemas for the access core.
"""
from posauth.schemas.base import BaseSchema
from posauth.schemas.auth import (
    AuthResult,
    DemoLogin,
    PasswordChange,
    PasswordChangeResult,
    PasswordReset,
    SessionInfo,
    UserLogin,
    UserPublic,
)
from posauth.schemas.role import RoleConfigSchema

__all__ = [
    "BaseSchema",
    "AuthResult",
    "DemoLogin",
    "PasswordChange",
    "PasswordChangeResult",
    "PasswordReset",
    "SessionInfo",
    "UserLogin",
    "UserPublic",
    "RoleConfigSchema",
]
