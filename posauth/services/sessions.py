"""
Session ledger: session records plus the installation's current-session marker.

The marker is a SystemConfig entry holding the token of the current session.
All transitions are compare-and-set on a single record, so a newer login
always wins over an expiry or logout decided against an older token.
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional
from uuid import UUID

from posauth.core.clock import Clock, utcnow
from posauth.core.config import Settings
from posauth.core.exceptions import ConflictError, SessionExpiredError
from posauth.core.security import generate_session_token
from posauth.db.store import CredentialStore, RecordKind
from posauth.models import AuthSession, SessionState, SystemConfig

logger = logging.getLogger(__name__)

CURRENT_SESSION_KEY = "session.current"
SESSION_CATEGORY = "session"
MAX_MARKER_RETRIES = 5

ExpiryHook = Callable[[AuthSession], Awaitable[None]]


def session_is_expired(
    session: AuthSession, now: datetime, timeout: timedelta
) -> bool:
    """True once the idle time strictly exceeds the inactivity window."""
    return session.idle_since(now) > timeout


def token_matches(session: AuthSession, token: Optional[str]) -> bool:
    """None trusts the installation marker; otherwise compare in constant time."""
    return token is None or secrets.compare_digest(session.token, token)


class SessionLedger:
    """Issues, supersedes, refreshes and ends sessions."""

    def __init__(
        self,
        store: CredentialStore,
        settings: Settings,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._settings = settings
        self._clock = clock
        self._expiry_hooks: list[ExpiryHook] = []

    @property
    def timeout(self) -> timedelta:
        return timedelta(minutes=self._settings.session_timeout_minutes)

    def add_expiry_hook(self, hook: ExpiryHook) -> None:
        """Awaited with the session each time ``expire`` commits."""
        if hook not in self._expiry_hooks:
            self._expiry_hooks.append(hook)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def marker(self) -> Optional[SystemConfig]:
        return await self._store.find_one(
            RecordKind.SYSTEM_CONFIG, key=CURRENT_SESSION_KEY
        )

    async def current(self) -> Optional[AuthSession]:
        """Session the marker points at, whatever its state."""
        marker = await self.marker()
        if marker is None or not marker.value:
            return None
        session = await self._store.find_one(RecordKind.SESSION, token=marker.value)
        if session is None:
            # Dangling marker (session row removed); drop it
            await self.clear_marker(marker.value)
        return session

    async def current_live(self) -> Optional[AuthSession]:
        """Current ACTIVE session, or None.

        If the expiry loses to a concurrent touch or login, the fresher
        session is re-read and returned.

        Raises:
            SessionExpiredError: The session was idle past the timeout; it
                has been marked EXPIRED and the marker cleared.
        """
        for _ in range(MAX_MARKER_RETRIES):
            session = await self.current()
            if session is None:
                return None
            if session.state != SessionState.ACTIVE:
                await self.clear_marker(session.token)
                return None
            if not session_is_expired(session, self._clock(), self.timeout):
                return session
            if await self.expire(session):
                raise SessionExpiredError()
            logger.debug("Expiry skipped: session changed since it was read")
        raise ConflictError("Current session kept changing")

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    async def issue(self, user_id: UUID) -> AuthSession:
        """Create a session for ``user_id`` and make it current."""
        now = self._clock()
        session = AuthSession(
            token=generate_session_token(self._settings.session_token_bytes),
            user_id=user_id,
            issued_at=now,
            last_activity=now,
            state=SessionState.ACTIVE,
            version=1,
        )
        await self._store.add(RecordKind.SESSION, session)
        try:
            previous = await self._swap_marker(session.token)
        except ConflictError:
            await self._finish(session.token, SessionState.SUPERSEDED, session)
            raise
        if previous and previous != session.token:
            if await self._finish(previous, SessionState.SUPERSEDED):
                logger.info("Previous session superseded by a new login")
        return session

    async def touch(self, session: AuthSession) -> Optional[AuthSession]:
        """Refresh last_activity; None if the session is no longer live."""
        now = self._clock()
        if session_is_expired(session, now, self.timeout):
            return None
        updated = await self._store.compare_and_set(
            RecordKind.SESSION,
            session.id,
            {"version": session.version, "state": SessionState.ACTIVE},
            {"last_activity": now},
        )
        if not updated:
            return None
        session.last_activity = now
        session.version += 1
        return session

    async def expire(self, session: AuthSession) -> bool:
        """Mark ``session`` EXPIRED unless it changed since it was read.

        A concurrent supersession or activity bumps the version, so an
        expiry decided on a stale read is dropped.
        """
        expired = await self._store.compare_and_set(
            RecordKind.SESSION,
            session.id,
            {"version": session.version, "state": SessionState.ACTIVE},
            {"state": SessionState.EXPIRED, "ended_at": self._clock()},
        )
        if expired:
            await self.clear_marker(session.token)
            logger.info(f"Session for user {session.user_id} expired after inactivity")
            for hook in list(self._expiry_hooks):
                await hook(session)
        return expired

    async def end_current(self, token: Optional[str] = None) -> Optional[AuthSession]:
        """Explicit logout of the current session; idempotent.

        With ``token``, only that session is ended; a stale token is a no-op.
        """
        session = await self.current()
        if session is None or not token_matches(session, token):
            return None
        await self._finish(session.token, SessionState.ENDED)
        await self.clear_marker(session.token)
        return session

    async def revoke_for_user(
        self, user_id: UUID, keep_token: Optional[str] = None
    ) -> int:
        """Revoke every ACTIVE session of a user except ``keep_token``."""
        sessions = await self._store.find(
            RecordKind.SESSION, user_id=user_id, state=SessionState.ACTIVE
        )
        revoked = 0
        for session in sessions:
            if session.token == keep_token:
                continue
            if await self._finish(session.token, SessionState.REVOKED, session):
                await self.clear_marker(session.token)
                revoked += 1
        if revoked:
            logger.info(f"Revoked {revoked} session(s) for user {user_id}")
        return revoked

    async def clear_marker(self, token: str) -> bool:
        """Remove the marker only if it still points at ``token``."""
        return await self._store.compare_and_delete(
            RecordKind.SYSTEM_CONFIG, CURRENT_SESSION_KEY, {"value": token}
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _swap_marker(self, token: str) -> Optional[str]:
        """Point the marker at ``token``; returns the token it replaced."""
        for _ in range(MAX_MARKER_RETRIES):
            marker = await self.marker()
            if marker is None:
                try:
                    await self._store.add(
                        RecordKind.SYSTEM_CONFIG,
                        SystemConfig(
                            key=CURRENT_SESSION_KEY,
                            value=token,
                            category=SESSION_CATEGORY,
                            version=1,
                        ),
                    )
                    return None
                except ConflictError:
                    continue
            if await self._store.compare_and_set(
                RecordKind.SYSTEM_CONFIG,
                CURRENT_SESSION_KEY,
                {"version": marker.version},
                {"value": token},
            ):
                return marker.value
        raise ConflictError("Could not update the current-session marker")

    async def _finish(
        self,
        token: str,
        state: SessionState,
        session: Optional[AuthSession] = None,
    ) -> bool:
        if session is None:
            session = await self._store.find_one(RecordKind.SESSION, token=token)
            if session is None:
                return False
        return await self._store.compare_and_set(
            RecordKind.SESSION,
            session.id,
            {"state": SessionState.ACTIVE},
            {"state": state, "ended_at": self._clock()},
        )
