"""Root conftest.py -- shared fixtures for all test modules."""
import os
from datetime import datetime, timedelta, timezone

import pytest

# Set env vars BEFORE any posauth imports so module-level settings stay local
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DATABASE_URL_SYNC", "sqlite:///:memory:")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from posauth.context import AuthContext
from posauth.core.config import Settings, get_settings
from posauth.core.security import build_password_context
from posauth.db.store import CredentialStore
from posauth.services.seeding import seed_demo_users, seed_roles


class FakeClock:
    """Deterministic wall clock; tests move time with ``advance``."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


# =========================================================================
# Settings
# =========================================================================
@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Clear LRU cache before each test to prevent stale settings."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "pos.db"


@pytest.fixture
def test_settings(db_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{db_path}",
        database_url_sync=f"sqlite:///{db_path}",
        bcrypt_rounds=4,
        # Background ticks stay out of the way; tests call check_once directly
        session_check_interval_seconds=3600,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="session")
def pwd_context():
    """Low work factor keeps hashing fast in tests."""
    return build_password_context(rounds=4)


# =========================================================================
# Store & Services
# =========================================================================
@pytest.fixture
async def store(test_settings):
    async with CredentialStore.open(test_settings.database_url) as s:
        yield s


@pytest.fixture
async def seeded_store(store, test_settings, pwd_context):
    """Store with the built-in roles and demo users provisioned."""
    await seed_roles(store)
    await seed_demo_users(store, test_settings, pwd_context)
    return store


@pytest.fixture
async def auth_context(seeded_store, test_settings, clock, pwd_context):
    context = AuthContext.build(
        seeded_store, test_settings, clock=clock, password_context=pwd_context
    )
    yield context
    await context.monitor.stop()


@pytest.fixture
def auth(auth_context):
    return auth_context.auth


# =========================================================================
# FastAPI Test Client
# =========================================================================
@pytest.fixture
def app(test_settings):
    from posauth.main import create_application
    return create_application(test_settings)


@pytest.fixture
async def client(app, auth_context):
    """httpx.AsyncClient bound to a seeded, isolated AuthContext.

    ASGITransport does not run the lifespan, so the context is attached
    to app.state directly.
    """
    from httpx import AsyncClient, ASGITransport

    app.state.auth_context = auth_context
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c
    app.state.auth_context = None
