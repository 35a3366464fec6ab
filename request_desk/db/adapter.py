"""
Persistence adapter: one row-oriented interface over two stores.

The primary store is the embedded SQLite database behind the async engine.
The fallback store is :class:`MemoryBackend`. A logical operation is a
coroutine that receives a backend and does all of its reads and writes on it;
:meth:`PersistenceAdapter.run` tries the primary first, bounded by a timeout,
and re-runs the whole operation against memory when the primary fails. The
two stores are never reconciled.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol, TypeVar

from sqlalchemy import delete, func, insert, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlmodel import SQLModel

from request_desk import models  # noqa: F401  registers the tables on SQLModel.metadata
from request_desk.core.config import settings
from request_desk.core.errors import BackendUnavailableError, ConflictError
from request_desk.db.memory_store import MemoryBackend

logger = logging.getLogger(__name__)

T = TypeVar("T")

OrderBy = Optional[Iterable[tuple[str, bool]]]


class StorageBackend(Protocol):
    name: str

    async def query(self, sql: str, params: Optional[dict[str, Any]] = None) -> list[dict[str, Any]]: ...

    async def select(
        self,
        table: str,
        where: Optional[dict[str, Any]] = None,
        order_by: OrderBy = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]: ...

    async def get(self, table: str, where: dict[str, Any]) -> Optional[dict[str, Any]]: ...

    async def count(self, table: str, where: Optional[dict[str, Any]] = None) -> int: ...

    async def insert(self, table: str, values: dict[str, Any]) -> dict[str, Any]: ...

    async def update(self, table: str, values: dict[str, Any], where: dict[str, Any]) -> int: ...

    async def delete(self, table: str, where: dict[str, Any]) -> int: ...

    async def sync(self) -> None: ...


class SQLiteBackend:
    name = "sqlite"

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    def _table(self, table: str):
        try:
            return SQLModel.metadata.tables[table]
        except KeyError:
            raise BackendUnavailableError(f"Unknown table: {table}") from None

    def _where(self, statement, table, where: Optional[dict[str, Any]]):
        for column, value in (where or {}).items():
            statement = statement.where(table.c[column] == value)
        return statement

    async def query(self, sql: str, params: Optional[dict[str, Any]] = None) -> list[dict[str, Any]]:
        async with self._engine.connect() as conn:
            result = await conn.execute(text(sql), params or {})
            if not result.returns_rows:
                await conn.commit()
                return []
            return [dict(row) for row in result.mappings().all()]

    async def select(
        self,
        table: str,
        where: Optional[dict[str, Any]] = None,
        order_by: OrderBy = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        tbl = self._table(table)
        statement = self._where(select(tbl), tbl, where)
        for column, descending in order_by or []:
            statement = statement.order_by(tbl.c[column].desc() if descending else tbl.c[column].asc())
        if limit is not None:
            statement = statement.limit(limit)

        async with self._engine.connect() as conn:
            result = await conn.execute(statement)
            return [dict(row) for row in result.mappings().all()]

    async def get(self, table: str, where: dict[str, Any]) -> Optional[dict[str, Any]]:
        rows = await self.select(table, where, limit=1)
        return rows[0] if rows else None

    async def count(self, table: str, where: Optional[dict[str, Any]] = None) -> int:
        tbl = self._table(table)
        statement = self._where(select(func.count()).select_from(tbl), tbl, where)
        async with self._engine.connect() as conn:
            return int((await conn.execute(statement)).scalar_one() or 0)

    async def insert(self, table: str, values: dict[str, Any]) -> dict[str, Any]:
        tbl = self._table(table)
        payload = {key: value for key, value in values.items() if not (key == "id" and value is None)}
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(insert(tbl).values(**payload))
                row = dict(payload)
                row["id"] = result.inserted_primary_key[0]
                return row
        except IntegrityError as exc:
            raise ConflictError(f"Duplicate value in {table}") from exc

    async def update(self, table: str, values: dict[str, Any], where: dict[str, Any]) -> int:
        tbl = self._table(table)
        statement = self._where(update(tbl), tbl, where).values(**values)
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(statement)
                return result.rowcount or 0
        except IntegrityError as exc:
            raise ConflictError(f"Duplicate value in {table}") from exc

    async def delete(self, table: str, where: dict[str, Any]) -> int:
        tbl = self._table(table)
        async with self._engine.begin() as conn:
            result = await conn.execute(self._where(delete(tbl), tbl, where))
            return result.rowcount or 0

    async def sync(self) -> None:
        if self._engine.dialect.name != "sqlite":
            return
        try:
            async with self._engine.begin() as conn:
                await conn.execute(text("PRAGMA synchronous = FULL"))
        except SQLAlchemyError as exc:
            logger.warning("Database sync warning: %s", exc)


class PersistenceAdapter:
    PRIMARY_FAILURES = (SQLAlchemyError, OSError, BackendUnavailableError)

    def __init__(
        self,
        primary: Optional[StorageBackend] = None,
        memory: Optional[MemoryBackend] = None,
        timeout: float = 5.0,
        probe: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        self.primary = primary
        self.memory = memory or MemoryBackend()
        self.timeout = timeout
        self._probe = probe
        self.primary_ready: Optional[bool] = None if primary is not None else False
        self.backend_name: Optional[str] = None

    @property
    def mode(self) -> str:
        if not self.primary_ready or self.backend_name == self.memory.name:
            return "fallback"
        return "primary"

    async def probe(self) -> bool:
        if self.primary is None:
            self.primary_ready = False
            return False
        if self._probe is None:
            self.primary_ready = True
            return True

        try:
            await asyncio.wait_for(self._probe(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Primary backend probe timed out after %.1fs; running in fallback mode.", self.timeout)
            self.primary_ready = False
        except self.PRIMARY_FAILURES as exc:
            logger.warning("Primary backend probe failed; running in fallback mode: %s", exc)
            self.primary_ready = False
        else:
            logger.info("Primary backend (%s) ready.", self.primary.name)
            self.primary_ready = True
        return self.primary_ready

    async def run(
        self,
        operation: str,
        work: Callable[[StorageBackend], Awaitable[T]],
        fallback_work: Optional[Callable[[StorageBackend], Awaitable[T]]] = None,
    ) -> T:
        if self.primary_ready is None:
            await self.probe()

        if self.primary_ready and self.primary is not None:
            try:
                result = await asyncio.wait_for(work(self.primary), timeout=self.timeout)
                self.backend_name = self.primary.name
                return result
            except asyncio.TimeoutError:
                logger.warning(
                    "Primary backend timed out after %.1fs during %s; using fallback.",
                    self.timeout,
                    operation,
                )
            except self.PRIMARY_FAILURES as exc:
                logger.warning("Primary backend failed during %s; using fallback: %s", operation, exc)

        self.memory.ensure_seeded()
        result = await (fallback_work or work)(self.memory)
        self.backend_name = self.memory.name
        return result

    # Single-statement conveniences for callers that need no read-then-write pinning.

    async def query(self, sql: str, params: Optional[dict[str, Any]] = None) -> list[dict[str, Any]]:
        return await self.run("query", lambda backend: backend.query(sql, params))

    async def select(self, table: str, where=None, order_by: OrderBy = None, limit=None) -> list[dict[str, Any]]:
        return await self.run(f"select {table}", lambda backend: backend.select(table, where, order_by, limit))

    async def insert(self, table: str, values: dict[str, Any]) -> dict[str, Any]:
        async def _insert(backend: StorageBackend) -> dict[str, Any]:
            row = await backend.insert(table, values)
            await backend.sync()
            return row

        return await self.run(f"insert {table}", _insert)

    async def update(self, table: str, values: dict[str, Any], where: dict[str, Any]) -> int:
        async def _update(backend: StorageBackend) -> int:
            count = await backend.update(table, values, where)
            await backend.sync()
            return count

        return await self.run(f"update {table}", _update)


def _build_default_adapter() -> PersistenceAdapter:
    from request_desk.db.engine import engine, init_db

    return PersistenceAdapter(
        primary=SQLiteBackend(engine),
        timeout=settings.DB_QUERY_TIMEOUT_SECONDS,
        probe=init_db,
    )


persistence = _build_default_adapter()
