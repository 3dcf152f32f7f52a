from __future__ import annotations

import asyncio
from typing import Any

import pytest
from asyncpg import exceptions as pg_exc

from app.services.postgres_store import (
    PostgresDataStore,
    _PostgresSession,
    build_where,
    parse_command_count,
    quote_identifier,
)
from app.services.store import (
    RepositoryConflictError,
    RepositoryUnavailableError,
    RepositoryValidationError,
)


class RecordingExecutor:
    def __init__(self, *, rows: list[dict[str, Any]] | None = None, status: str = "UPDATE 1") -> None:
        self.rows = rows or []
        self.status = status
        self.calls: list[tuple[str, str, tuple[Any, ...]]] = []
        self.error: BaseException | None = None

    async def fetch(self, sql: str, *params: Any) -> list[dict[str, Any]]:
        self.calls.append(("fetch", sql, params))
        if self.error is not None:
            raise self.error
        return self.rows

    async def execute(self, sql: str, *params: Any) -> str:
        self.calls.append(("execute", sql, params))
        if self.error is not None:
            raise self.error
        return self.status


def test_build_where_renders_null_membership_and_equality() -> None:
    where, params = build_where({"decision": None, "validator_unit_id": [1, 2], "proposal_id": 7}, start=3)

    assert where == ' where "decision" is null and "validator_unit_id" = any($3) and "proposal_id" = $4'
    assert params == [[1, 2], 7]


def test_build_where_empty_filter() -> None:
    assert build_where(None) == ("", [])
    assert build_where({}) == ("", [])


def test_quote_identifier_rejects_injection() -> None:
    assert quote_identifier("facility_code") == '"facility_code"'
    with pytest.raises(RepositoryValidationError):
        quote_identifier('status"; drop table campaigns; --')


def test_parse_command_count() -> None:
    assert parse_command_count("UPDATE 3") == 3
    assert parse_command_count("INSERT 0 2") == 2
    assert parse_command_count("") == 0


def test_find_uses_catalog_table_order_and_limit() -> None:
    executor = RecordingExecutor(rows=[{"id": 1, "name": "Médico General"}])
    session = _PostgresSession(executor)

    rows = _run(session.find("positions", {"id": [1, 2]}, order_by="-name", limit=5))

    assert rows == [{"id": 1, "name": "Médico General"}]
    method, sql, params = executor.calls[0]
    assert method == "fetch"
    assert sql == 'select * from "positions_catalog" where "id" = any($1) order by "name" desc limit $2'
    assert params == ([1, 2], 5)


def test_conditional_update_touches_updated_at_and_counts_rows() -> None:
    executor = RecordingExecutor(status="UPDATE 0")
    session = _PostgresSession(executor)

    affected = _run(session.update("campaigns", {"id": 4, "status": "DRAFT"}, {"status": "UNDER_REVIEW"}))

    assert affected == 0
    _, sql, params = executor.calls[0]
    assert sql == (
        'update "campaigns" set "status" = $1, "updated_at" = now() where "id" = $2 and "status" = $3'
    )
    assert params == ("UNDER_REVIEW", 4, "DRAFT")


def test_insert_many_renders_multi_row_values() -> None:
    executor = RecordingExecutor(rows=[{"id": 1}, {"id": 2}])
    session = _PostgresSession(executor)

    _run(
        session.insert_many(
            "proposal_validations",
            [
                {"proposal_id": 9, "validator_unit_id": 1},
                {"proposal_id": 9, "validator_unit_id": 2},
            ],
        )
    )

    _, sql, params = executor.calls[0]
    assert sql == (
        'insert into "proposal_validations" ("proposal_id", "validator_unit_id") '
        "values ($1, $2), ($3, $4) returning *"
    )
    assert params == (9, 1, 9, 2)


def test_insert_many_requires_uniform_columns() -> None:
    session = _PostgresSession(RecordingExecutor())
    with pytest.raises(RepositoryValidationError):
        _run(session.insert_many("files", [{"bucket": "cvs"}, {"path": "a.pdf"}]))


def test_upsert_ignore_duplicates_uses_do_nothing() -> None:
    executor = RecordingExecutor(status="INSERT 0 1")
    session = _PostgresSession(executor)

    affected = _run(
        session.upsert(
            "campaign_authorized_facilities",
            [{"campaign_id": 1, "facility_code": "DFSSA000001"}],
            conflict_keys=("campaign_id", "facility_code"),
            ignore_duplicates=True,
        )
    )

    assert affected == 1
    assert executor.calls[0][1].endswith('on conflict ("campaign_id", "facility_code") do nothing')


def test_delete_requires_filter() -> None:
    session = _PostgresSession(RecordingExecutor())
    with pytest.raises(RepositoryValidationError):
        _run(session.delete("campaign_validators", {}))


def test_unique_violation_maps_to_conflict() -> None:
    executor = RecordingExecutor()
    executor.error = pg_exc.UniqueViolationError("duplicate key value violates unique constraint")
    session = _PostgresSession(executor)

    with pytest.raises(RepositoryConflictError):
        _run(session.insert("campaign_positions", {"campaign_id": 1, "position_id": 1, "slots_authorized": 1}))


@pytest.mark.parametrize(
    "error",
    [
        pg_exc.ForeignKeyViolationError("insert or update violates foreign key constraint"),
        pg_exc.CheckViolationError("new row violates check constraint"),
        pg_exc.NotNullViolationError("null value in column violates not-null constraint"),
    ],
)
def test_integrity_violations_map_to_validation_error(error: Exception) -> None:
    executor = RecordingExecutor()
    executor.error = error
    session = _PostgresSession(executor)

    with pytest.raises(RepositoryValidationError):
        _run(session.insert("campaign_validators", {"campaign_id": 1, "position_id": 1, "validator_unit_id": 9}))


def test_connection_errors_map_to_unavailable() -> None:
    executor = RecordingExecutor()
    executor.error = ConnectionRefusedError("refused")
    session = _PostgresSession(executor)

    with pytest.raises(RepositoryUnavailableError):
        _run(session.find("campaigns"))


def test_store_without_database_url_is_unavailable() -> None:
    store = PostgresDataStore(database_url=None, min_pool_size=1, max_pool_size=2, command_timeout_seconds=1.0)

    with pytest.raises(RepositoryUnavailableError, match="RC_DATABASE_URL"):
        _run(store.find("campaigns"))


def _run(coro):
    return asyncio.run(coro)
