"""
Authentication service: credential verification, lockout, password changes
and the current session.

Expected outcomes (bad credentials, lockout, policy violations) come back
as AuthResult / PasswordChangeResult. StorageUnavailableError propagates.

User mutations are read-modify-write under a per-account asyncio.Lock and
are committed with compare-and-set on the record version; a version
conflict (another process or tab got there first) recomputes the change
from a fresh read. Locks are keyed by user id, so unknown usernames never
allocate one.

Session reads take an optional bearer token. Without one the installation's
current session is trusted (in-process callers); with one it must be the
current session's token.
"""
import asyncio
import logging
from datetime import timedelta
from typing import Any, Callable, Optional
from uuid import UUID

from passlib.context import CryptContext

from posauth.core.clock import Clock, utcnow
from posauth.core.config import Settings
from posauth.core.exceptions import (
    ConflictError,
    InvalidCredentialsError,
    LockedOutError,
    NotFoundError,
    PermissionDeniedError,
    SessionExpiredError,
    ValidationError,
)
from posauth.core.security import (
    build_password_context,
    check_password_policy,
    get_password_hash,
    password_needs_update,
    verify_password,
)
from posauth.db.store import CredentialStore, RecordKind
from posauth.models import AuthSession, AuthState, User
from posauth.schemas.auth import (
    AuthResult,
    PasswordChangeResult,
    SessionInfo,
    UserPublic,
)
from posauth.services.monitor import SessionMonitor
from posauth.services.roles import RoleConfigProvider
from posauth.services.sessions import SessionLedger, token_matches

logger = logging.getLogger(__name__)

MAX_CAS_RETRIES = 5

UserChanges = Callable[[User], dict[str, Any]]


class AuthService:
    """
    Authentication and session tracking for one installation.

    Usage:
        auth = AuthService(store, roles, settings)
        result = await auth.authenticate_user("staff", "password123")
        if result.success:
            user = await auth.get_current_user()
    """

    def __init__(
        self,
        store: CredentialStore,
        roles: RoleConfigProvider,
        settings: Settings,
        *,
        ledger: Optional[SessionLedger] = None,
        monitor: Optional[SessionMonitor] = None,
        clock: Clock = utcnow,
        password_context: Optional[CryptContext] = None,
    ) -> None:
        self._store = store
        self._roles = roles
        self._settings = settings
        self._clock = clock
        self._ledger = ledger or SessionLedger(store, settings, clock)
        self._monitor = monitor
        self._pwd = password_context or build_password_context(settings.bcrypt_rounds)
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._dummy_hash: Optional[str] = None
        self._state = AuthState.LOGGED_OUT

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def lockout_duration(self) -> timedelta:
        return timedelta(minutes=self._settings.lockout_minutes)

    # ------------------------------------------------------------------
    # Public operations
    #
    # Each is shielded: if the caller goes away mid-flight the attempt
    # still runs to completion and its counters/sessions are committed.
    # ------------------------------------------------------------------
    async def login(self, username: str) -> Optional[UserPublic]:
        """Passwordless demo login; only for allow-listed users in demo mode."""
        return await asyncio.shield(self._tracked(self._demo_login(username)))

    async def authenticate_user(self, username: str, password: str) -> AuthResult:
        """Verify a username/password pair and open a session."""
        return await asyncio.shield(
            self._tracked(self._authenticate(username, password))
        )

    async def change_password(
        self, user_id: UUID | str, current_password: str, new_password: str
    ) -> PasswordChangeResult:
        """Replace a password after re-verifying the current one."""
        return await asyncio.shield(
            self._change_password(user_id, current_password, new_password)
        )

    async def get_current_user(
        self, token: Optional[str] = None
    ) -> Optional[UserPublic]:
        """User owning the live session, or None (logged out or expired).

        A ``token`` that is not the current session's yields None and leaves
        the installation's session alone.
        """
        try:
            session = await self._ledger.current_live()
        except SessionExpiredError:
            self._state = AuthState.LOGGED_OUT
            await self._stop_monitor()
            return None
        if session is None:
            self._state = AuthState.LOGGED_OUT
            return None
        if not token_matches(session, token):
            return None

        user = await self._store.find_one(RecordKind.USER, id=session.user_id)
        if user is None or not user.is_active:
            logger.warning("Current session belongs to a missing or disabled account")
            await self._ledger.end_current()
            self._state = AuthState.LOGGED_OUT
            return None
        self._state = AuthState.LOGGED_IN
        return self._sanitize(user)

    async def current_session(
        self, token: Optional[str] = None
    ) -> Optional[SessionInfo]:
        """Live session details, or None."""
        session = await self._live_session(token)
        return SessionInfo.model_validate(session) if session else None

    async def record_activity(self, token: Optional[str] = None) -> bool:
        """Refresh last-activity on the live session and its user."""
        session = await self._live_session(token)
        if session is None or await self._ledger.touch(session) is None:
            return False

        now = session.last_activity
        async with self._lock_for(session.user_id):
            try:
                await self._mutate_user(
                    session.user_id, lambda u: {"last_activity": now}
                )
            except NotFoundError:
                logger.warning("Activity recorded for a session whose user is gone")
        return True

    async def logout(self, token: Optional[str] = None) -> None:
        """End the current session; calling it again is a no-op.

        A stale ``token`` ends nothing and leaves the newer session running.
        """
        session = await self._ledger.end_current(token)
        if session is None and token is not None:
            return
        await self._stop_monitor()
        self._state = AuthState.LOGGED_OUT
        if session is not None:
            logger.info(f"User {session.user_id} logged out")

    # ------------------------------------------------------------------
    # User administration
    #
    # Gated by the acting user's role permissions on the "users" module.
    # ------------------------------------------------------------------
    async def list_users(
        self, actor_id: UUID | str, *, include_inactive: bool = False
    ) -> list[UserPublic]:
        """Accounts ordered by username; needs ``users:read``."""
        await self._require_permission(actor_id, "users", "read")
        filters = {} if include_inactive else {"is_active": True}
        users = await self._store.find(RecordKind.USER, **filters)
        return [self._sanitize(u) for u in sorted(users, key=lambda u: u.username)]

    async def users_by_role(self, actor_id: UUID | str, role: str) -> list[UserPublic]:
        """Active accounts holding ``role``; needs ``users:read``."""
        await self._require_permission(actor_id, "users", "read")
        users = await self._store.find(RecordKind.USER, role=role, is_active=True)
        return [self._sanitize(u) for u in sorted(users, key=lambda u: u.username)]

    async def reset_user_password(
        self, actor_id: UUID | str, user_id: UUID | str, new_password: str
    ) -> PasswordChangeResult:
        """Set a password without the current one and clear any lockout."""
        return await asyncio.shield(
            self._reset_user_password(actor_id, user_id, new_password)
        )

    async def deactivate_user(self, actor_id: UUID | str, user_id: UUID | str) -> UserPublic:
        """Soft-delete an account and revoke its sessions; needs ``users:delete``.

        Raises:
            PermissionDeniedError: The actor may not delete users.
            NotFoundError: No such account.
        """
        return await asyncio.shield(self._deactivate_user(actor_id, user_id))

    async def handle_session_expired(self, info: SessionInfo) -> None:
        """SessionMonitor listener: move to EXPIRED until the next read."""
        self._state = AuthState.EXPIRED

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------
    async def _tracked(self, flow):
        """Run a login flow with the AUTHENTICATING transient state."""
        previous, self._state = self._state, AuthState.AUTHENTICATING
        try:
            outcome = await flow
        except BaseException:
            self._state = previous
            raise
        succeeded = outcome.success if isinstance(outcome, AuthResult) else outcome is not None
        self._state = AuthState.LOGGED_IN if succeeded else previous
        return outcome

    async def _demo_login(self, username: str) -> Optional[UserPublic]:
        if not self._settings.demo_mode:
            logger.warning("Demo login rejected: demo mode is disabled")
            return None
        if username not in self._settings.demo_usernames:
            logger.warning("Demo login rejected: username not in the demo allow-list")
            return None

        user = await self._store.find_one(RecordKind.USER, username=username)
        if user is None or not user.is_active:
            return None

        async with self._lock_for(user.id):
            config = await self._roles.find_role_config(user.role)
            if config is None:
                logger.error(f"User '{username}' has unconfigured role '{user.role}'")
                return None

            now = self._clock()
            user = await self._mutate_user(
                user.id,
                lambda u: {
                    "last_login": now,
                    "last_activity": now,
                    "access_level": config.access_level,
                },
            )
            await self._ledger.issue(user.id)

        await self._start_monitor()
        logger.info(f"Demo login for '{username}'")
        return self._sanitize(user)

    async def _authenticate(self, username: str, password: str) -> AuthResult:
        user = await self._store.find_one(RecordKind.USER, username=username)
        if user is None or not user.is_active:
            return await self._reject_unknown(password)

        async with self._lock_for(user.id):
            user = await self._store.find_one(RecordKind.USER, id=user.id)
            if user is None or not user.is_active:
                return await self._reject_unknown(password)

            try:
                user = await self._release_elapsed_lockout(user)
            except LockedOutError as exc:
                logger.warning(f"Login attempt rejected: '{username}' is locked out")
                return AuthResult.failure(exc)

            matches = await asyncio.to_thread(
                verify_password, password, user.hashed_password, self._pwd
            )
            if not matches:
                return await self._record_failure(user)

            config = await self._roles.find_role_config(user.role)
            if config is None:
                logger.error(f"User '{username}' has unconfigured role '{user.role}'")
                return AuthResult.failure(InvalidCredentialsError())

            original_hash = user.hashed_password
            rehashed = None
            if password_needs_update(user.hashed_password, self._pwd):
                rehashed = await asyncio.to_thread(get_password_hash, password, self._pwd)

            now = self._clock()

            def reset(current: User) -> dict[str, Any]:
                if current.is_locked(now):
                    raise LockedOutError(current.lockout_until - now)
                changes = {
                    "failed_attempts": 0,
                    "lockout_until": None,
                    "last_activity": now,
                    "last_login": now,
                    "access_level": config.access_level,
                }
                if rehashed and current.hashed_password == original_hash:
                    changes["hashed_password"] = rehashed
                return changes

            try:
                user = await self._mutate_user(user.id, reset)
            except LockedOutError as exc:
                return AuthResult.failure(exc)
            session = await self._ledger.issue(user.id)

        await self._start_monitor()
        logger.info(f"User '{username}' logged in successfully")
        return AuthResult.ok(self._sanitize(user), session.token)

    async def _change_password(
        self, user_id: UUID | str, current_password: str, new_password: str
    ) -> PasswordChangeResult:
        try:
            user = await self._store.get(RecordKind.USER, user_id)
        except NotFoundError:
            return PasswordChangeResult.failure(InvalidCredentialsError())

        async with self._lock_for(user.id):
            user = await self._store.get(RecordKind.USER, user.id)
            now = self._clock()
            if user.is_locked(now):
                return PasswordChangeResult.failure(
                    LockedOutError(user.lockout_until - now)
                )

            matches = user.is_active and await asyncio.to_thread(
                verify_password, current_password, user.hashed_password, self._pwd
            )
            if not matches:
                logger.warning(f"Password change rejected for '{user.username}': wrong current password")
                return PasswordChangeResult.failure(InvalidCredentialsError())

            violations = check_password_policy(
                new_password, self._settings.password_min_length
            )
            if violations:
                return PasswordChangeResult.failure(ValidationError(violations))

            original_hash = user.hashed_password
            new_hash = await asyncio.to_thread(get_password_hash, new_password, self._pwd)

            def replace(current: User) -> dict[str, Any]:
                if current.hashed_password != original_hash:
                    raise ConflictError("Password was changed concurrently")
                return {"hashed_password": new_hash, "password_changed_at": now}

            try:
                await self._mutate_user(user.id, replace)
            except ConflictError as exc:
                return PasswordChangeResult.failure(exc)

            current = await self._ledger.current()
            keep = current.token if current and current.user_id == user.id else None
            revoked = await self._ledger.revoke_for_user(user.id, keep_token=keep)

        logger.info(f"Password changed for '{user.username}'")
        return PasswordChangeResult(success=True, revoked_sessions=revoked)

    async def _reset_user_password(
        self, actor_id: UUID | str, user_id: UUID | str, new_password: str
    ) -> PasswordChangeResult:
        try:
            actor = await self._require_permission(actor_id, "users", "update")
            user = await self._store.get(RecordKind.USER, user_id)
        except (PermissionDeniedError, NotFoundError) as exc:
            return PasswordChangeResult.failure(exc)

        violations = check_password_policy(
            new_password, self._settings.password_min_length
        )
        if violations:
            return PasswordChangeResult.failure(ValidationError(violations))

        new_hash = await asyncio.to_thread(get_password_hash, new_password, self._pwd)
        now = self._clock()
        async with self._lock_for(user.id):
            await self._mutate_user(
                user.id,
                lambda u: {
                    "hashed_password": new_hash,
                    "password_changed_at": now,
                    "failed_attempts": 0,
                    "lockout_until": None,
                },
            )
            current = await self._ledger.current()
            keep = current.token if current and current.user_id == actor.id else None
            revoked = await self._ledger.revoke_for_user(user.id, keep_token=keep)

        logger.info(f"Password for '{user.username}' reset by '{actor.username}'")
        return PasswordChangeResult(success=True, revoked_sessions=revoked)

    async def _deactivate_user(
        self, actor_id: UUID | str, user_id: UUID | str
    ) -> UserPublic:
        actor = await self._require_permission(actor_id, "users", "delete")
        user = await self._store.get(RecordKind.USER, user_id)
        async with self._lock_for(user.id):
            user = await self._mutate_user(user.id, lambda u: {"is_active": False})
            await self._ledger.revoke_for_user(user.id)

        logger.info(f"User '{user.username}' deactivated by '{actor.username}'")
        return self._sanitize(user)

    # ------------------------------------------------------------------
    # Lockout bookkeeping
    # ------------------------------------------------------------------
    async def _release_elapsed_lockout(self, user: User) -> User:
        """Raise LockedOutError while locked; reset counters once it elapsed."""
        now = self._clock()
        if user.is_locked(now):
            raise LockedOutError(user.lockout_until - now)
        if user.lockout_until is None:
            return user

        def release(current: User) -> dict[str, Any]:
            if current.is_locked(now):
                raise LockedOutError(current.lockout_until - now)
            if current.lockout_until is None:
                return {}
            return {"failed_attempts": 0, "lockout_until": None}

        return await self._mutate_user(user.id, release)

    async def _record_failure(self, user: User) -> AuthResult:
        now = self._clock()
        threshold = self._settings.max_failed_attempts

        def increment(current: User) -> dict[str, Any]:
            if current.is_locked(now):
                raise LockedOutError(current.lockout_until - now)
            attempts = current.failed_attempts + 1
            changes: dict[str, Any] = {"failed_attempts": attempts}
            if attempts >= threshold:
                changes["lockout_until"] = now + self.lockout_duration
            return changes

        try:
            user = await self._mutate_user(user.id, increment)
        except LockedOutError as exc:
            return AuthResult.failure(exc)

        if user.is_locked(now):
            logger.warning(
                f"Account '{user.username}' locked for {self._settings.lockout_minutes} "
                f"minutes after {user.failed_attempts} failed attempts"
            )
            return AuthResult.failure(LockedOutError(user.lockout_until - now))

        logger.warning(
            f"Login attempt failed: invalid password for '{user.username}' "
            f"({user.failed_attempts}/{threshold})"
        )
        return AuthResult.failure(InvalidCredentialsError())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _lock_for(self, user_id: UUID) -> asyncio.Lock:
        return self._locks.setdefault(user_id, asyncio.Lock())

    async def _reject_unknown(self, password: str) -> AuthResult:
        # Spend a hash comparison anyway so timing matches a wrong password
        await asyncio.to_thread(
            verify_password, password, await self._get_dummy_hash(), self._pwd
        )
        logger.warning("Login attempt failed: unknown or disabled account")
        return AuthResult.failure(InvalidCredentialsError())

    async def _live_session(self, token: Optional[str]) -> Optional[AuthSession]:
        try:
            session = await self._ledger.current_live()
        except SessionExpiredError:
            return None
        if session is None or not token_matches(session, token):
            return None
        return session

    async def _require_permission(
        self, actor_id: UUID | str, module: str, action: str
    ) -> User:
        try:
            actor = await self._store.get(RecordKind.USER, actor_id)
        except NotFoundError:
            raise PermissionDeniedError() from None
        if not actor.is_active or not await self._roles.has_permission(
            actor.role, module, action
        ):
            logger.warning(
                f"'{actor.username}' denied {module}:{action} (role '{actor.role}')"
            )
            raise PermissionDeniedError()
        return actor

    async def _mutate_user(self, user_id: UUID, compute: UserChanges) -> User:
        """Apply ``compute`` to the freshest copy of a user via compare-and-set."""
        for _ in range(MAX_CAS_RETRIES):
            user = await self._store.get(RecordKind.USER, user_id)
            changes = compute(user)
            if not changes:
                return user
            if await self._store.compare_and_set(
                RecordKind.USER, user.id, {"version": user.version}, changes
            ):
                for name, value in changes.items():
                    setattr(user, name, value)
                user.version += 1
                return user
            logger.debug(f"Version conflict updating user {user_id}; retrying")
        raise ConflictError(f"User {user_id} kept changing; giving up")

    async def _get_dummy_hash(self) -> str:
        if self._dummy_hash is None:
            self._dummy_hash = await asyncio.to_thread(
                get_password_hash, "timing-equalizer-0", self._pwd
            )
        return self._dummy_hash

    async def _start_monitor(self) -> None:
        if self._monitor is not None:
            await self._monitor.restart()

    async def _stop_monitor(self) -> None:
        if self._monitor is not None:
            await self._monitor.stop()

    @staticmethod
    def _sanitize(user: User) -> UserPublic:
        return UserPublic.model_validate(user)
