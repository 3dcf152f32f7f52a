from __future__ import annotations

import re
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any
from uuid import UUID

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from app.services.store import (
    Filter,
    OrderBy,
    RepositoryConflictError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_collection_spec,
    normalize_order_by,
)

IDENTIFIER_RE = re.compile(r"^[a-z_][a-z0-9_]*$")
COMMAND_COUNT_RE = re.compile(r"(\d+)$")


def quote_identifier(name: str) -> str:
    if not IDENTIFIER_RE.match(name):
        raise RepositoryValidationError(f"invalid identifier: {name!r}")
    return f'"{name}"'


def build_where(filter: Filter | None, *, start: int = 1) -> tuple[str, list[Any]]:
    """Render an equality filter as a ``where`` clause with positional parameters."""
    if not filter:
        return "", []
    clauses: list[str] = []
    params: list[Any] = []
    for column, value in filter.items():
        quoted = quote_identifier(column)
        if value is None:
            clauses.append(f"{quoted} is null")
            continue
        params.append(list(value) if isinstance(value, (list, tuple, set, frozenset)) else value)
        placeholder = f"${start + len(params) - 1}"
        if isinstance(value, (list, tuple, set, frozenset)):
            clauses.append(f"{quoted} = any({placeholder})")
        else:
            clauses.append(f"{quoted} = {placeholder}")
    return " where " + " and ".join(clauses), params


def parse_command_count(status: str) -> int:
    match = COMMAND_COUNT_RE.search(status or "")
    return int(match.group(1)) if match else 0


class _PostgresSession:
    """CRUD over one asyncpg executor (a pool or a connection inside a transaction)."""

    def __init__(self, executor: asyncpg.Pool | asyncpg.Connection) -> None:
        self._executor = executor

    async def find(
        self,
        collection: str,
        filter: Filter | None = None,
        *,
        order_by: OrderBy = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        table = quote_identifier(get_collection_spec(collection).table)
        where, params = build_where(filter)
        sql = f"select * from {table}{where}"
        ordering = normalize_order_by(order_by)
        if ordering:
            sql += " order by " + ", ".join(
                f"{quote_identifier(column)} {'desc' if descending else 'asc'}" for column, descending in ordering
            )
        if limit is not None:
            params.append(int(limit))
            sql += f" limit ${len(params)}"
        rows = await self._call("fetch", sql, *params)
        return [_row_to_dict(row) for row in rows]

    async def insert(self, collection: str, record: Mapping[str, Any]) -> dict[str, Any]:
        rows = await self.insert_many(collection, [record])
        return rows[0]

    async def insert_many(self, collection: str, records: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
        if not records:
            return []
        sql, params = _build_insert(collection, records)
        rows = await self._call("fetch", sql + " returning *", *params)
        return [_row_to_dict(row) for row in rows]

    async def update(self, collection: str, filter: Filter, patch: Mapping[str, Any]) -> int:
        if not patch:
            raise RepositoryValidationError("update patch must not be empty")
        spec = get_collection_spec(collection)
        assignments = []
        params: list[Any] = []
        for column, value in patch.items():
            params.append(value)
            assignments.append(f"{quote_identifier(column)} = ${len(params)}")
        if spec.touch_on_update and spec.touch_on_update not in patch:
            assignments.append(f"{quote_identifier(spec.touch_on_update)} = now()")
        where, where_params = build_where(filter, start=len(params) + 1)
        sql = f"update {quote_identifier(spec.table)} set {', '.join(assignments)}{where}"
        status = await self._call("execute", sql, *params, *where_params)
        return parse_command_count(status)

    async def upsert(
        self,
        collection: str,
        records: Sequence[Mapping[str, Any]],
        *,
        conflict_keys: Sequence[str],
        ignore_duplicates: bool,
    ) -> int:
        if not records:
            return 0
        sql, params = _build_insert(collection, records)
        target = ", ".join(quote_identifier(key) for key in conflict_keys)
        if ignore_duplicates:
            sql += f" on conflict ({target}) do nothing"
        else:
            columns = [column for column in records[0] if column not in conflict_keys]
            if not columns:
                sql += f" on conflict ({target}) do nothing"
            else:
                updates = ", ".join(
                    f"{quote_identifier(column)} = excluded.{quote_identifier(column)}" for column in columns
                )
                sql += f" on conflict ({target}) do update set {updates}"
        status = await self._call("execute", sql, *params)
        return parse_command_count(status)

    async def delete(self, collection: str, filter: Filter) -> int:
        if not filter:
            raise RepositoryValidationError("delete requires a filter")
        table = quote_identifier(get_collection_spec(collection).table)
        where, params = build_where(filter)
        status = await self._call("execute", f"delete from {table}{where}", *params)
        return parse_command_count(status)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[_PostgresSession]:
        # Nested blocks become savepoints on the same connection.
        async with self._executor.transaction():
            yield self

    async def close(self) -> None:
        return None

    async def _get_executor(self) -> asyncpg.Pool | asyncpg.Connection:
        return self._executor

    async def _call(self, method: str, sql: str, *params: Any) -> Any:
        executor = await self._get_executor()
        try:
            return await getattr(executor, method)(sql, *params)
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError(exc.detail or "duplicate key") from exc
        except (
            pg_exc.ForeignKeyViolationError,
            pg_exc.CheckViolationError,
            pg_exc.NotNullViolationError,
        ) as exc:
            raise RepositoryValidationError(exc.detail or str(exc)) from exc
        except (pg_exc.PostgresSyntaxError, pg_exc.UndefinedColumnError, asyncpg.DataError) as exc:
            raise RepositoryValidationError(str(exc)) from exc
        except (OSError, asyncpg.InterfaceError, pg_exc.PostgresConnectionError) as exc:
            raise RepositoryUnavailableError("database unavailable") from exc


class PostgresDataStore(_PostgresSession):
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
        command_timeout_seconds: float,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.command_timeout_seconds = command_timeout_seconds
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def _get_executor(self) -> asyncpg.Pool:
        return await self._get_pool()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[_PostgresSession]:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    yield _PostgresSession(conn)
        except (OSError, asyncpg.InterfaceError, pg_exc.PostgresConnectionError) as exc:
            raise RepositoryUnavailableError("database unavailable") from exc

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("RC_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=self.command_timeout_seconds,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc


def _build_insert(collection: str, records: Sequence[Mapping[str, Any]]) -> tuple[str, list[Any]]:
    table = quote_identifier(get_collection_spec(collection).table)
    columns = list(records[0].keys())
    params: list[Any] = []
    value_groups: list[str] = []
    for record in records:
        if list(record.keys()) != columns:
            raise RepositoryValidationError("all records in one insert must share the same columns")
        placeholders = []
        for column in columns:
            params.append(record[column])
            placeholders.append(f"${len(params)}")
        value_groups.append(f"({', '.join(placeholders)})")
    column_sql = ", ".join(quote_identifier(column) for column in columns)
    return f"insert into {table} ({column_sql}) values {', '.join(value_groups)}", params


def _row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
    return {key: str(value) if isinstance(value, UUID) else value for key, value in row.items()}
