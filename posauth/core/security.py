"""Security utilities for password hashing and session tokens."""
import logging
import re
import secrets
from typing import Optional

from passlib.context import CryptContext

from posauth.core.config import get_settings

logger = logging.getLogger(__name__)

_DIGIT = re.compile(r"\d")


def build_password_context(rounds: int = 12) -> CryptContext:
    """Create a bcrypt hashing context with the given work factor."""
    return CryptContext(
        schemes=["bcrypt"],
        deprecated="auto",
        bcrypt__rounds=rounds,
        # Hashes below the current work factor are flagged by needs_update
        bcrypt__min_rounds=rounds,
    )


# Password hashing context (bcrypt)
pwd_context = build_password_context(get_settings().bcrypt_rounds)


def verify_password(
    plain_password: str,
    hashed_password: Optional[str],
    context: Optional[CryptContext] = None,
) -> bool:
    """Verify a plain password against a hashed password.

    Args:
        plain_password: User input password
        hashed_password: Stored bcrypt hash
        context: Hashing context (defaults to the module context)

    Returns:
        True if password matches, False otherwise (including malformed hashes)
    """
    if not plain_password or not hashed_password:
        return False
    try:
        return (context or pwd_context).verify(plain_password, hashed_password)
    except ValueError:
        logger.error("Stored password hash is malformed or uses an unknown scheme")
        return False


def get_password_hash(password: str, context: Optional[CryptContext] = None) -> str:
    """Hash a password using bcrypt.

    Args:
        password: Plain text password

    Returns:
        Bcrypt hash string (salt embedded)
    """
    return (context or pwd_context).hash(password)


def password_needs_update(
    hashed_password: str, context: Optional[CryptContext] = None
) -> bool:
    """True when a stored hash uses a deprecated scheme or weaker work factor."""
    try:
        return (context or pwd_context).needs_update(hashed_password)
    except ValueError:
        return True


def check_password_policy(password: str, min_length: int = 8) -> list[str]:
    """Return the list of policy violations for a candidate password."""
    violations = []
    if len(password or "") < min_length:
        violations.append(f"Password must be at least {min_length} characters")
    if not _DIGIT.search(password or ""):
        violations.append("Password must contain at least one digit")
    return violations


def generate_session_token(nbytes: int = 32) -> str:
    """Generate an opaque, URL-safe session token."""
    return secrets.token_urlsafe(nbytes)
