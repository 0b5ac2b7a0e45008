"""Tests for posauth.db.store -- keyed records, compare-and-set, failures."""
from uuid import uuid4

import pytest

from posauth.core.exceptions import (
    ConflictError,
    NotFoundError,
    StorageUnavailableError,
)
from posauth.db.store import CredentialStore, RecordKind
from posauth.models import RoleConfig, SystemConfig, User


def make_user(username="alice", **overrides) -> User:
    fields = dict(
        username=username,
        email=f"{username}@business.com",
        hashed_password="$2b$04$placeholder",
        role="staff",
        access_level=1,
        is_active=True,
        failed_attempts=0,
        version=1,
    )
    fields.update(overrides)
    return User(**fields)


class TestRecordOperations:

    async def test_add_then_get(self, store):
        user = await store.add(RecordKind.USER, make_user())
        fetched = await store.get(RecordKind.USER, user.id)
        assert fetched.username == "alice"
        assert fetched.failed_attempts == 0

    async def test_get_accepts_string_key(self, store):
        user = await store.add(RecordKind.USER, make_user())
        fetched = await store.get(RecordKind.USER, str(user.id))
        assert fetched.id == user.id

    async def test_get_missing_raises_not_found(self, store):
        with pytest.raises(NotFoundError):
            await store.get(RecordKind.USER, uuid4())

    async def test_get_malformed_key_raises_not_found(self, store):
        with pytest.raises(NotFoundError):
            await store.get(RecordKind.USER, "not-a-uuid")

    async def test_find_one(self, store):
        await store.add(RecordKind.USER, make_user("bob"))
        assert (await store.find_one(RecordKind.USER, username="bob")) is not None
        assert (await store.find_one(RecordKind.USER, username="carol")) is None

    async def test_put_upserts(self, store):
        await store.put(
            RecordKind.SYSTEM_CONFIG,
            SystemConfig(key="store.name", value="Main St", category="general"),
        )
        await store.put(
            RecordKind.SYSTEM_CONFIG,
            SystemConfig(key="store.name", value="Elm St", category="general"),
        )
        record = await store.get(RecordKind.SYSTEM_CONFIG, "store.name")
        assert record.value == "Elm St"
        assert await store.count(RecordKind.SYSTEM_CONFIG) == 1

    async def test_put_rejects_wrong_kind(self, store):
        with pytest.raises(TypeError):
            await store.put(RecordKind.USER, SystemConfig(key="x", value="y"))

    async def test_duplicate_username_conflicts(self, store):
        await store.add(RecordKind.USER, make_user("dave"))
        with pytest.raises(ConflictError):
            await store.add(RecordKind.USER, make_user("dave"))

    async def test_all_and_count(self, store):
        await store.bulk_seed(
            RecordKind.USER, [make_user("u1"), make_user("u2"), make_user("u3")]
        )
        assert await store.count(RecordKind.USER) == 3
        assert len(await store.all(RecordKind.USER)) == 3

    async def test_all_orders_by_key(self, store):
        await store.bulk_seed(
            RecordKind.ROLE_CONFIG,
            [
                RoleConfig(role="b", label="B", access_level=2),
                RoleConfig(role="a", label="A", access_level=1),
            ],
        )
        assert [r.role for r in await store.all(RecordKind.ROLE_CONFIG)] == ["a", "b"]

    async def test_clear(self, store):
        await store.bulk_seed(RecordKind.USER, [make_user("u1"), make_user("u2")])
        assert await store.clear(RecordKind.USER) == 2
        assert await store.count(RecordKind.USER) == 0

    async def test_delete(self, store):
        user = await store.add(RecordKind.USER, make_user())
        assert await store.delete(RecordKind.USER, user.id) is True
        assert await store.delete(RecordKind.USER, user.id) is False

    async def test_records_survive_reopen(self, store, test_settings):
        await store.add(RecordKind.USER, make_user("erin"))
        await store.close()
        async with CredentialStore.open(test_settings.database_url) as reopened:
            assert await reopened.find_one(RecordKind.USER, username="erin")


class TestCompareAndSet:

    async def test_matching_version_updates_and_bumps(self, store):
        user = await store.add(RecordKind.USER, make_user())
        assert await store.compare_and_set(
            RecordKind.USER, user.id, {"version": 1}, {"failed_attempts": 1}
        )
        fetched = await store.get(RecordKind.USER, user.id)
        assert fetched.failed_attempts == 1
        assert fetched.version == 2

    async def test_stale_version_is_rejected(self, store):
        user = await store.add(RecordKind.USER, make_user())
        await store.compare_and_set(
            RecordKind.USER, user.id, {"version": 1}, {"failed_attempts": 1}
        )
        assert not await store.compare_and_set(
            RecordKind.USER, user.id, {"version": 1}, {"failed_attempts": 5}
        )
        assert (await store.get(RecordKind.USER, user.id)).failed_attempts == 1

    async def test_expected_none_matches_null(self, store):
        user = await store.add(RecordKind.USER, make_user())
        assert await store.compare_and_set(
            RecordKind.USER, user.id, {"lockout_until": None}, {"failed_attempts": 2}
        )

    async def test_missing_record(self, store):
        assert not await store.compare_and_set(
            RecordKind.USER, uuid4(), {"version": 1}, {"failed_attempts": 1}
        )

    async def test_compare_and_delete(self, store):
        await store.add(
            RecordKind.SYSTEM_CONFIG,
            SystemConfig(key="k", value="one", category="general", version=1),
        )
        assert not await store.compare_and_delete(
            RecordKind.SYSTEM_CONFIG, "k", {"value": "two"}
        )
        assert await store.compare_and_delete(
            RecordKind.SYSTEM_CONFIG, "k", {"value": "one"}
        )
        assert await store.count(RecordKind.SYSTEM_CONFIG) == 0


class TestStorageFailures:

    async def test_closed_store_is_unavailable(self, store):
        await store.close()
        with pytest.raises(StorageUnavailableError):
            await store.count(RecordKind.USER)

    async def test_close_twice_is_safe(self, store):
        await store.close()
        await store.close()
        assert store.closed

    async def test_unreachable_path_is_unavailable(self, tmp_path):
        url = f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'dir' / 'pos.db'}"
        with pytest.raises(StorageUnavailableError):
            async with CredentialStore.open(url):
                pass

    async def test_drop_and_recreate_schema(self, store):
        await store.add(RecordKind.USER, make_user())
        await store.drop_schema()
        with pytest.raises(StorageUnavailableError):
            await store.count(RecordKind.USER)
        await store.create_schema()
        assert await store.count(RecordKind.USER) == 0
