"""
Credential store: durable keyed records over async SQLAlchemy.

Every public operation runs in its own transaction and is atomic on its
own; there is no multi-record transaction. Callers that need two fields to
change together (failed attempts and lockout, session state and activity)
express it as one ``compare_and_set`` call on a single record.
"""
import logging
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Iterable, Mapping, Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, func, inspect, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from sqlalchemy.types import Uuid

from posauth.core.exceptions import (
    ConflictError,
    NotFoundError,
    StorageUnavailableError,
)
from posauth.db.database import (
    Base,
    create_engine,
    create_session_maker,
    drop_db,
    init_db,
)
from posauth.models import AuthSession, RoleConfig, SystemConfig, User

logger = logging.getLogger(__name__)


class RecordKind(str, Enum):
    """Record families held by the store."""
    USER = "user"
    ROLE_CONFIG = "role_config"
    SYSTEM_CONFIG = "system_config"
    SESSION = "session"

    @property
    def model(self) -> type[Base]:
        return _MODELS[self]


_MODELS: dict[RecordKind, type[Base]] = {
    RecordKind.USER: User,
    RecordKind.ROLE_CONFIG: RoleConfig,
    RecordKind.SYSTEM_CONFIG: SystemConfig,
    RecordKind.SESSION: AuthSession,
}


class CredentialStore:
    """
    Async keyed storage for users, role configs, sessions and settings.

    Usage:
        async with CredentialStore.open("sqlite+aiosqlite:///pos.db") as store:
            user = await store.find_one(RecordKind.USER, username="staff")

    Raises StorageUnavailableError on I/O failure (and after close) and
    NotFoundError when ``get`` misses.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._session_maker = create_session_maker(engine)
        self._closed = False

    @classmethod
    @asynccontextmanager
    async def open(
        cls,
        database_url: str,
        *,
        echo: bool = False,
        pool_size: int = 5,
        max_overflow: int = 10,
        create_schema: bool = True,
    ) -> AsyncIterator["CredentialStore"]:
        """Open the store for the lifetime of the ``async with`` block."""
        store = cls(
            create_engine(
                database_url,
                echo=echo,
                pool_size=pool_size,
                max_overflow=max_overflow,
            )
        )
        try:
            if create_schema:
                await store.create_schema()
            logger.info("Credential store opened")
            yield store
        finally:
            await store.close()

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Release every pooled connection. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        await self._engine.dispose()
        logger.info("Credential store closed")

    # ------------------------------------------------------------------
    # Schema helpers
    # ------------------------------------------------------------------
    async def create_schema(self) -> None:
        async with self._guard():
            await init_db(self._engine)

    async def drop_schema(self) -> None:
        async with self._guard():
            await drop_db(self._engine)

    # ------------------------------------------------------------------
    # Record operations
    # ------------------------------------------------------------------
    async def get(self, kind: RecordKind, key: Any) -> Any:
        """Fetch a record by primary key or raise NotFoundError."""
        model = kind.model
        async with self._transaction() as session:
            record = await session.get(model, self._coerce_key(model, key))
        if record is None:
            raise NotFoundError(f"{kind.value} '{key}' not found")
        return record

    async def find_one(self, kind: RecordKind, **criteria: Any) -> Optional[Any]:
        """Fetch the single record matching ``criteria``, or None."""
        async with self._transaction() as session:
            result = await session.execute(
                select(kind.model).filter_by(**criteria)
            )
            return result.scalar_one_or_none()

    async def find(self, kind: RecordKind, **criteria: Any) -> list[Any]:
        """Fetch every record matching ``criteria``."""
        async with self._transaction() as session:
            result = await session.execute(
                select(kind.model).filter_by(**criteria)
            )
            return list(result.scalars().all())

    async def put(self, kind: RecordKind, record: Any) -> Any:
        """Insert or replace one record atomically; returns the stored copy."""
        self._check_record(kind, record)
        async with self._transaction() as session:
            merged = await session.merge(record)
            await session.flush()
            return merged

    async def add(self, kind: RecordKind, record: Any) -> Any:
        """Insert one record; raises ConflictError if the key already exists."""
        self._check_record(kind, record)
        async with self._transaction() as session:
            session.add(record)
            await session.flush()
            return record

    async def all(self, kind: RecordKind) -> list[Any]:
        model = kind.model
        async with self._transaction() as session:
            result = await session.execute(
                select(model).order_by(*self._primary_key(model))
            )
            return list(result.scalars().all())

    async def count(self, kind: RecordKind) -> int:
        async with self._transaction() as session:
            total = await session.scalar(
                select(func.count()).select_from(kind.model)
            )
            return int(total or 0)

    async def clear(self, kind: RecordKind) -> int:
        """Delete every record of ``kind``; returns how many were removed."""
        async with self._transaction() as session:
            result = await session.execute(delete(kind.model))
            return result.rowcount or 0

    async def delete(self, kind: RecordKind, key: Any) -> bool:
        model = kind.model
        pk = self._primary_key(model)[0]
        async with self._transaction() as session:
            result = await session.execute(
                delete(model).where(pk == self._coerce_key(model, key))
            )
            return result.rowcount == 1

    async def bulk_seed(self, kind: RecordKind, records: Iterable[Any]) -> int:
        """Insert many records in one transaction (demo and reset flows)."""
        records = list(records)
        for record in records:
            self._check_record(kind, record)
        async with self._transaction() as session:
            session.add_all(records)
            await session.flush()
        logger.info(f"Seeded {len(records)} {kind.value} record(s)")
        return len(records)

    async def compare_and_set(
        self,
        kind: RecordKind,
        key: Any,
        expected: Mapping[str, Any],
        values: Mapping[str, Any],
    ) -> bool:
        """Update one record only if it still holds every ``expected`` value.

        Records with a ``version`` column get it incremented, so passing
        ``{"version": n}`` as expected gives optimistic concurrency.

        Returns:
            True if the record was updated, False if it changed or is gone.
        """
        model = kind.model
        new_values = dict(values)
        if "version" in model.__table__.columns and "version" not in new_values:
            new_values["version"] = model.version + 1

        stmt = (
            update(model)
            .where(*self._match(model, key, expected))
            .values(**new_values)
            .execution_options(synchronize_session=False)
        )
        async with self._transaction() as session:
            result = await session.execute(stmt)
            return result.rowcount == 1

    async def compare_and_delete(
        self, kind: RecordKind, key: Any, expected: Mapping[str, Any]
    ) -> bool:
        """Delete one record only if it still holds every ``expected`` value."""
        model = kind.model
        stmt = (
            delete(model)
            .where(*self._match(model, key, expected))
            .execution_options(synchronize_session=False)
        )
        async with self._transaction() as session:
            result = await session.execute(stmt)
            return result.rowcount == 1

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    @asynccontextmanager
    async def _guard(self) -> AsyncIterator[None]:
        """Translate driver failures into the store's error taxonomy."""
        if self._closed:
            raise StorageUnavailableError("Credential store is closed")
        try:
            yield
        except IntegrityError as exc:
            raise ConflictError(f"Integrity violation: {exc.orig}") from exc
        except (DBAPIError, OSError) as exc:
            logger.error(f"Credential store I/O failure: {exc.__class__.__name__}")
            raise StorageUnavailableError() from exc

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        async with self._guard():
            async with self._session_maker() as session:
                async with session.begin():
                    yield session

    @staticmethod
    def _check_record(kind: RecordKind, record: Any) -> None:
        if not isinstance(record, kind.model):
            raise TypeError(
                f"Expected {kind.model.__name__} for {kind.value}, "
                f"got {type(record).__name__}"
            )

    @staticmethod
    def _primary_key(model: type[Base]) -> Sequence[Any]:
        return inspect(model).primary_key

    @classmethod
    def _coerce_key(cls, model: type[Base], key: Any) -> Any:
        column = cls._primary_key(model)[0]
        if isinstance(column.type, Uuid) and isinstance(key, str):
            try:
                return UUID(key)
            except ValueError:
                raise NotFoundError(f"Malformed key '{key}'") from None
        return key

    @classmethod
    def _match(
        cls, model: type[Base], key: Any, expected: Mapping[str, Any]
    ) -> list[Any]:
        column = cls._primary_key(model)[0]
        clauses = [column == cls._coerce_key(model, key)]
        for name, value in expected.items():
            attr = getattr(model, name)
            clauses.append(attr.is_(None) if value is None else attr == value)
        return clauses
