"""
Session inactivity monitor.

Runs as an asyncio task and re-checks the persisted current session every
``session_check_interval_seconds``. Idle time is computed from the stored
``last_activity`` timestamp, so a monitor started after a process restart
reaches the same verdict as one that ran the whole time.
"""
import asyncio
import inspect
import logging
from contextlib import suppress
from typing import Awaitable, Callable, Optional, Union

from posauth.core.clock import Clock, utcnow
from posauth.core.config import Settings
from posauth.core.exceptions import StorageUnavailableError
from posauth.models import AuthSession, SessionState
from posauth.schemas.auth import SessionInfo
from posauth.services.sessions import SessionLedger, session_is_expired

logger = logging.getLogger(__name__)

ExpiryListener = Callable[[SessionInfo], Union[None, Awaitable[None]]]


def expired_info(session: AuthSession) -> SessionInfo:
    return SessionInfo.model_validate(session).model_copy(
        update={"state": SessionState.EXPIRED}
    )


class SessionMonitor:
    """Expires the current session after sustained inactivity.

    Usage:
        monitor = SessionMonitor(ledger, settings)
        monitor.add_listener(lambda info: redirect_to_login())
        monitor.start()
        ...
        await monitor.stop()
    """

    def __init__(
        self,
        ledger: SessionLedger,
        settings: Settings,
        clock: Clock = utcnow,
    ) -> None:
        self._ledger = ledger
        self._interval = settings.session_check_interval_seconds
        self._clock = clock
        self._listeners: list[ExpiryListener] = []
        self._task: Optional[asyncio.Task] = None
        # Expiries noticed by a read path notify listeners too
        ledger.add_expiry_hook(self._handle_expired)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def add_listener(self, listener: ExpiryListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: ExpiryListener) -> None:
        with suppress(ValueError):
            self._listeners.remove(listener)

    def start(self) -> None:
        """Start ticking; no-op if already running. Needs a running loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="session-monitor"
        )
        logger.debug("Session monitor started")

    async def stop(self) -> None:
        """Cancel the periodic check; safe to call when not running."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        if task is asyncio.current_task():
            return
        with suppress(asyncio.CancelledError):
            await task
        logger.debug("Session monitor stopped")

    async def restart(self) -> None:
        await self.stop()
        self.start()

    async def check_once(self) -> Optional[SessionInfo]:
        """Expire the current session if idle too long.

        Returns:
            The expired session, or None if nothing was expired (no session,
            still fresh, or superseded/refreshed since it was read).
        """
        session = await self._ledger.current()
        if session is None or session.state != SessionState.ACTIVE:
            return None
        if not session_is_expired(session, self._clock(), self._ledger.timeout):
            return None
        if not await self._ledger.expire(session):
            logger.debug("Expiry skipped: session changed since it was read")
            return None
        return expired_info(session)

    async def _run(self) -> None:
        while True:
            try:
                if await self.check_once() is not None:
                    return
            except StorageUnavailableError:
                logger.warning("Session check skipped: credential store unavailable")
            except Exception:
                logger.exception("Session check failed; retrying on the next tick")
            await asyncio.sleep(self._interval)

    async def _handle_expired(self, session: AuthSession) -> None:
        await self._notify(expired_info(session))

    async def _notify(self, info: SessionInfo) -> None:
        for listener in list(self._listeners):
            try:
                outcome = listener(info)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception("Session expiry listener failed")
