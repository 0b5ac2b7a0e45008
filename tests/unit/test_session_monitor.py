"""Tests for the session ledger and the inactivity monitor."""
import asyncio
from datetime import timedelta

import pytest

from posauth.context import AuthContext
from posauth.core.exceptions import SessionExpiredError
from posauth.db.store import CredentialStore, RecordKind
from posauth.models import AuthState, SessionState
from posauth.services.monitor import SessionMonitor
from posauth.services.sessions import CURRENT_SESSION_KEY, session_is_expired


async def staff_id(store):
    return (await store.find_one(RecordKind.USER, username="staff")).id


class TestSessionLedger:

    async def test_issue_sets_marker(self, auth_context, seeded_store):
        session = await auth_context.ledger.issue(await staff_id(seeded_store))
        marker = await seeded_store.get(RecordKind.SYSTEM_CONFIG, CURRENT_SESSION_KEY)
        assert marker.value == session.token
        assert marker.category == "session"

    async def test_issue_supersedes_previous(self, auth_context, seeded_store):
        ledger = auth_context.ledger
        user_id = await staff_id(seeded_store)
        first = await ledger.issue(user_id)
        second = await ledger.issue(user_id)

        assert (await ledger.current()).token == second.token
        first = await seeded_store.get(RecordKind.SESSION, first.id)
        assert first.state == SessionState.SUPERSEDED

    async def test_current_live_raises_when_idle(
        self, auth_context, seeded_store, clock
    ):
        ledger = auth_context.ledger
        session = await ledger.issue(await staff_id(seeded_store))
        clock.advance(hours=9)
        with pytest.raises(SessionExpiredError):
            await ledger.current_live()
        assert await ledger.marker() is None
        stored = await seeded_store.get(RecordKind.SESSION, session.id)
        assert stored.state == SessionState.EXPIRED

    async def test_touch_refreshes_activity(self, auth_context, seeded_store, clock):
        ledger = auth_context.ledger
        session = await ledger.issue(await staff_id(seeded_store))
        clock.advance(hours=1)
        touched = await ledger.touch(session)
        assert touched.last_activity == clock.now
        stored = await seeded_store.get(RecordKind.SESSION, session.id)
        assert stored.last_activity == clock.now

    async def test_touch_after_supersession_fails(self, auth_context, seeded_store):
        ledger = auth_context.ledger
        user_id = await staff_id(seeded_store)
        first = await ledger.issue(user_id)
        await ledger.issue(user_id)
        assert await ledger.touch(first) is None

    async def test_dangling_marker_is_dropped(self, auth_context, seeded_store):
        ledger = auth_context.ledger
        session = await ledger.issue(await staff_id(seeded_store))
        await seeded_store.delete(RecordKind.SESSION, session.id)
        assert await ledger.current() is None
        assert await ledger.marker() is None

    async def test_end_current_is_idempotent(self, auth_context, seeded_store):
        ledger = auth_context.ledger
        await ledger.issue(await staff_id(seeded_store))
        assert await ledger.end_current() is not None
        assert await ledger.end_current() is None


class TestExpiryRule:

    async def test_strictly_greater_than_timeout(
        self, auth_context, seeded_store, clock
    ):
        session = await auth_context.ledger.issue(await staff_id(seeded_store))
        timeout = timedelta(hours=8)
        assert not session_is_expired(session, clock.now + timeout, timeout)
        assert session_is_expired(
            session, clock.now + timeout + timedelta(seconds=1), timeout
        )


class TestSessionMonitor:

    async def test_check_once_expires_idle_session(
        self, auth_context, seeded_store, clock
    ):
        notified = []
        auth_context.monitor.add_listener(notified.append)
        session = await auth_context.ledger.issue(await staff_id(seeded_store))

        clock.advance(hours=8, minutes=1)
        info = await auth_context.monitor.check_once()

        assert info.token == session.token
        assert info.state == SessionState.EXPIRED
        assert notified == [info]
        assert await auth_context.ledger.marker() is None

    async def test_fresh_session_untouched(self, auth_context, seeded_store, clock):
        await auth_context.ledger.issue(await staff_id(seeded_store))
        clock.advance(hours=7, minutes=59)
        assert await auth_context.monitor.check_once() is None
        assert await auth_context.ledger.current() is not None

    async def test_no_session(self, auth_context):
        assert await auth_context.monitor.check_once() is None

    async def test_expiry_moves_auth_to_expired_then_logged_out(
        self, auth_context, clock
    ):
        auth = auth_context.auth
        await auth.authenticate_user("staff", "password123")
        await auth_context.monitor.stop()

        clock.advance(hours=8, minutes=1)
        await auth_context.monitor.check_once()
        assert auth.state == AuthState.EXPIRED

        assert await auth.get_current_user() is None
        assert auth.state == AuthState.LOGGED_OUT

    async def test_supersession_wins_over_stale_expiry(
        self, auth_context, seeded_store, clock
    ):
        ledger = auth_context.ledger
        user_id = await staff_id(seeded_store)
        stale = await ledger.issue(user_id)
        clock.advance(hours=9)
        fresh = await ledger.issue(user_id)

        # Expiry decided against the stale read must not clobber the new login
        assert await ledger.expire(stale) is False
        assert (await ledger.current()).token == fresh.token
        assert await auth_context.monitor.check_once() is None

    async def test_activity_wins_over_stale_expiry(
        self, auth_context, seeded_store, clock
    ):
        ledger = auth_context.ledger
        session = await ledger.issue(await staff_id(seeded_store))
        stale_read = await ledger.current()
        clock.advance(hours=8)
        await ledger.touch(session)
        assert await ledger.expire(stale_read) is False
        assert (await ledger.current()).state == SessionState.ACTIVE

    async def test_current_live_returns_login_that_beat_expiry(
        self, auth_context, seeded_store, clock, monkeypatch
    ):
        ledger = auth_context.ledger
        notified = []
        auth_context.monitor.add_listener(notified.append)
        user_id = await staff_id(seeded_store)
        await ledger.issue(user_id)
        clock.advance(hours=9)

        read_current = ledger.current
        fresh = []

        async def current_then_new_login():
            session = await read_current()
            if not fresh:
                # Another terminal logs in between this read and the expiry
                fresh.append(await ledger.issue(user_id))
            return session

        monkeypatch.setattr(ledger, "current", current_then_new_login)
        live = await ledger.current_live()

        assert live.token == fresh[0].token
        assert live.state == SessionState.ACTIVE
        assert notified == []

    async def test_get_current_user_survives_lost_expiry(
        self, auth_context, seeded_store, clock, monkeypatch
    ):
        auth = auth_context.auth
        ledger = auth_context.ledger
        await auth.authenticate_user("staff", "password123")
        await auth_context.monitor.stop()
        clock.advance(hours=9)

        manager_id = (await seeded_store.find_one(RecordKind.USER, username="manager")).id
        read_current = ledger.current
        raced = []

        async def current_then_new_login():
            session = await read_current()
            if not raced:
                raced.append(await ledger.issue(manager_id))
            return session

        monkeypatch.setattr(ledger, "current", current_then_new_login)
        current = await auth.get_current_user()

        assert current.username == "manager"
        assert auth.state == AuthState.LOGGED_IN

    async def test_listener_failure_is_contained(
        self, auth_context, seeded_store, clock
    ):
        def broken(info):
            raise RuntimeError("listener bug")

        calls = []

        async def recording(info):
            calls.append(info.token)

        auth_context.monitor.add_listener(broken)
        auth_context.monitor.add_listener(recording)
        session = await auth_context.ledger.issue(await staff_id(seeded_store))
        clock.advance(hours=9)

        assert await auth_context.monitor.check_once() is not None
        assert calls == [session.token]

    async def test_remove_listener(self, auth_context, seeded_store, clock):
        calls = []
        auth_context.monitor.add_listener(calls.append)
        auth_context.monitor.remove_listener(calls.append)
        auth_context.monitor.remove_listener(calls.append)
        await auth_context.ledger.issue(await staff_id(seeded_store))
        clock.advance(hours=9)
        await auth_context.monitor.check_once()
        assert calls == []

    async def test_background_task_expires_session(
        self, auth_context, seeded_store, test_settings, clock
    ):
        test_settings.session_check_interval_seconds = 0.01
        monitor = SessionMonitor(auth_context.ledger, test_settings, clock)
        expired = asyncio.Event()
        monitor.add_listener(lambda info: expired.set())

        await auth_context.ledger.issue(await staff_id(seeded_store))
        monitor.start()
        assert monitor.running
        clock.advance(hours=9)

        await asyncio.wait_for(expired.wait(), timeout=2)
        await asyncio.sleep(0)
        assert not monitor.running
        await monitor.stop()

    async def test_background_task_survives_unexpected_error(
        self, auth_context, seeded_store, test_settings, clock, monkeypatch, caplog
    ):
        test_settings.session_check_interval_seconds = 0.01
        monitor = SessionMonitor(auth_context.ledger, test_settings, clock)
        expired = asyncio.Event()
        monitor.add_listener(lambda info: expired.set())
        await auth_context.ledger.issue(await staff_id(seeded_store))

        real_check = monitor.check_once
        failures = []

        async def flaky_check():
            if not failures:
                failures.append("boom")
                raise RuntimeError("driver hiccup")
            return await real_check()

        monkeypatch.setattr(monitor, "check_once", flaky_check)
        clock.advance(hours=9)
        monitor.start()

        await asyncio.wait_for(expired.wait(), timeout=2)
        assert failures == ["boom"]
        assert "Session check failed" in caplog.text
        await monitor.stop()

    async def test_stop_and_restart(self, auth_context):
        monitor = auth_context.monitor
        monitor.start()
        monitor.start()
        assert monitor.running
        await monitor.restart()
        assert monitor.running
        await monitor.stop()
        await monitor.stop()
        assert not monitor.running

    async def test_logout_stops_monitor(self, auth_context):
        await auth_context.auth.authenticate_user("staff", "password123")
        assert auth_context.monitor.running
        await auth_context.auth.logout()
        assert not auth_context.monitor.running


class TestRestart:

    async def test_expiry_uses_persisted_activity(
        self, seeded_store, test_settings, clock, pwd_context
    ):
        first = AuthContext.build(
            seeded_store, test_settings, clock=clock, password_context=pwd_context
        )
        await first.auth.authenticate_user("staff", "password123")
        await first.monitor.stop()

        clock.advance(hours=8, minutes=1)
        # A process restart: fresh services over the same store
        second = AuthContext.build(
            seeded_store, test_settings, clock=clock, password_context=pwd_context
        )
        assert await second.auth.get_current_user() is None

    async def test_session_survives_reopen(self, test_settings, clock, pwd_context):
        from posauth.services.seeding import seed_demo_users, seed_roles

        async with CredentialStore.open(test_settings.database_url) as store:
            await seed_roles(store)
            await seed_demo_users(store, test_settings, pwd_context)
            context = AuthContext.build(
                store, test_settings, clock=clock, password_context=pwd_context
            )
            result = await context.auth.authenticate_user("staff", "password123")
            await context.monitor.stop()

        clock.advance(hours=2)
        async with AuthContext.open(
            test_settings, clock=clock, password_context=pwd_context
        ) as context:
            assert context.monitor.running
            current = await context.auth.get_current_user()
            assert current.id == result.user.id
