"""Seed script to provision built-in roles and demo users.

Run this once against a fresh credential store:
    python seed_demo_users.py
    python seed_demo_users.py --reset   # wipe users, sessions and roles first
"""
import argparse
import asyncio

from posauth.core.config import get_settings
from posauth.core.logging import configure_logging
from posauth.db.store import CredentialStore, RecordKind
from posauth.services.seeding import (
    DEMO_USERS,
    reset_demo_data,
    seed_demo_users,
    seed_roles,
)


async def seed(reset: bool) -> None:
    """Create default roles and demo users if they do not exist."""
    settings = get_settings()
    configure_logging(settings)

    async with CredentialStore.open(settings.database_url) as store:
        if reset:
            await reset_demo_data(store, settings)
            print("[OK] Demo data reset.")
        else:
            roles = await seed_roles(store)
            users = await seed_demo_users(store, settings)
            print(f"[OK] Seeded {roles} role(s) and {users} user(s).")

        print(f"     Users in store: {await store.count(RecordKind.USER)}")
        for username, role, _ in DEMO_USERS:
            print(f"     {username:<10} role={role.value}")
        print(f"     Password: {settings.demo_password}")
        print("\n[!] IMPORTANT: Change the demo passwords in production!")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--reset", action="store_true", help="wipe and reseed")
    asyncio.run(seed(parser.parse_args().reset))
