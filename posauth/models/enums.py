"""
Enum type definitions for the access core.
"""
from enum import Enum


class Role(str, Enum):
    """
    Built-in roles, ordered by privilege.

    Additional roles may be provisioned as data in the role_configs table;
    authentication never branches on these values.
    """
    STAFF = "staff"
    MANAGER = "manager"
    OWNER = "owner"
    DEVELOPER = "developer"
    SUPPORT = "support"


class AppView(str, Enum):
    """Application surfaces gated by role."""
    POS = "pos"
    INVENTORY = "inventory"
    SALES = "sales"
    CUSTOMERS = "customers"
    SETTINGS = "settings"
    PAYROLL = "payroll"
    EMPLOYEES = "employees"
    TIME_TRACKING = "time_tracking"
    DEBUG = "debug"
    SUPPORT = "support"


class SessionState(str, Enum):
    """Persisted session record status."""
    ACTIVE = "ACTIVE"            # Current proof of authentication
    EXPIRED = "EXPIRED"          # Idle past the inactivity window
    SUPERSEDED = "SUPERSEDED"    # Replaced by a newer login
    REVOKED = "REVOKED"          # Invalidated by a password change
    ENDED = "ENDED"              # Explicit logout

    @property
    def is_terminal(self) -> bool:
        return self != SessionState.ACTIVE


class AuthState(str, Enum):
    """Caller-visible authentication lifecycle."""
    LOGGED_OUT = "LOGGED_OUT"
    AUTHENTICATING = "AUTHENTICATING"
    LOGGED_IN = "LOGGED_IN"
    EXPIRED = "EXPIRED"
