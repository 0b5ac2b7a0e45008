"""
Provisioning of built-in roles and demo users.

Used by the seed script and by the reset flow of demo terminals.
"""
import asyncio
import logging
from typing import Optional

from passlib.context import CryptContext

from posauth.core.config import Settings
from posauth.core.security import get_password_hash
from posauth.db.store import CredentialStore, RecordKind
from posauth.models import Role, User
from posauth.services.roles import DEFAULT_ROLE_CONFIGS, default_role_records

logger = logging.getLogger(__name__)

DEMO_USERS: list[tuple[str, Role, str]] = [
    ("staff", Role.STAFF, "staff@business.com"),
    ("manager", Role.MANAGER, "manager@business.com"),
    ("owner", Role.OWNER, "owner@business.com"),
    ("developer", Role.DEVELOPER, "dev@possystem.com"),
    ("support", Role.SUPPORT, "support@possystem.com"),
]


async def seed_roles(store: CredentialStore) -> int:
    """Provision the built-in roles if none exist."""
    if await store.count(RecordKind.ROLE_CONFIG):
        return 0
    return await store.bulk_seed(RecordKind.ROLE_CONFIG, default_role_records())


async def seed_demo_users(
    store: CredentialStore,
    settings: Settings,
    context: Optional[CryptContext] = None,
) -> int:
    """Create the demo accounts that are missing; returns how many."""
    password_hash = await asyncio.to_thread(
        get_password_hash, settings.demo_password, context
    )
    users = []
    for username, role, email in DEMO_USERS:
        if await store.find_one(RecordKind.USER, username=username):
            continue
        users.append(
            User(
                username=username,
                email=email,
                hashed_password=password_hash,
                role=role.value,
                access_level=DEFAULT_ROLE_CONFIGS[role].access_level,
                is_active=True,
                failed_attempts=0,
                version=1,
            )
        )
    if not users:
        return 0
    return await store.bulk_seed(RecordKind.USER, users)


async def reset_demo_data(
    store: CredentialStore,
    settings: Settings,
    context: Optional[CryptContext] = None,
) -> None:
    """Wipe sessions, settings, users and roles, then seed them again."""
    for kind in (
        RecordKind.SESSION,
        RecordKind.SYSTEM_CONFIG,
        RecordKind.USER,
        RecordKind.ROLE_CONFIG,
    ):
        removed = await store.clear(kind)
        logger.info(f"Cleared {removed} {kind.value} record(s)")
    await seed_roles(store)
    await seed_demo_users(store, settings, context)
