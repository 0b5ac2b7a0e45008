"""
Composition root: one credential store and the services wired around it.

Each AuthContext is independent, so several can run side by side (tests,
multiple terminals in one process) without shared module state.
"""
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from passlib.context import CryptContext

from posauth.core.clock import Clock, utcnow
from posauth.core.config import Settings, get_settings
from posauth.core.security import build_password_context
from posauth.db.store import CredentialStore
from posauth.services.auth import AuthService
from posauth.services.monitor import SessionMonitor
from posauth.services.roles import RoleConfigProvider
from posauth.services.sessions import SessionLedger

logger = logging.getLogger(__name__)


@dataclass
class AuthContext:
    """Store plus services for one installation."""

    settings: Settings
    store: CredentialStore
    roles: RoleConfigProvider
    ledger: SessionLedger
    monitor: SessionMonitor
    auth: AuthService

    @classmethod
    def build(
        cls,
        store: CredentialStore,
        settings: Settings,
        *,
        clock: Clock = utcnow,
        password_context: Optional[CryptContext] = None,
    ) -> "AuthContext":
        roles = RoleConfigProvider(store)
        ledger = SessionLedger(store, settings, clock)
        monitor = SessionMonitor(ledger, settings, clock)
        auth = AuthService(
            store,
            roles,
            settings,
            ledger=ledger,
            monitor=monitor,
            clock=clock,
            password_context=password_context
            or build_password_context(settings.bcrypt_rounds),
        )
        monitor.add_listener(auth.handle_session_expired)
        return cls(
            settings=settings,
            store=store,
            roles=roles,
            ledger=ledger,
            monitor=monitor,
            auth=auth,
        )

    @classmethod
    @asynccontextmanager
    async def open(
        cls,
        settings: Optional[Settings] = None,
        *,
        clock: Clock = utcnow,
        password_context: Optional[CryptContext] = None,
    ) -> AsyncIterator["AuthContext"]:
        """Open the store once, yield the wired services, release on exit."""
        settings = settings or get_settings()
        async with CredentialStore.open(
            settings.database_url,
            echo=settings.db_echo,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            create_schema=settings.auto_create_schema,
        ) as store:
            context = cls.build(
                store, settings, clock=clock, password_context=password_context
            )
            try:
                await context.resume()
                yield context
            finally:
                await context.monitor.stop()

    async def resume(self) -> None:
        """Re-arm the monitor for a session that outlived a restart."""
        if await self.auth.get_current_user() is not None:
            logger.info("Resuming persisted session")
            self.monitor.start()
