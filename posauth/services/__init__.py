"""
Services of the access core.
"""
from posauth.services.auth import AuthService
from posauth.services.monitor import SessionMonitor
from posauth.services.roles import DEFAULT_ROLE_CONFIGS, RoleConfigProvider
from posauth.services.sessions import SessionLedger, session_is_expired

__all__ = [
    "AuthService",
    "SessionMonitor",
    "RoleConfigProvider",
    "DEFAULT_ROLE_CONFIGS",
    "SessionLedger",
    "session_is_expired",
]
