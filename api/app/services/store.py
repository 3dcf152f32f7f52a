"""Collection-style data store boundary consumed by the workflow services.

Filters are column equality maps: ``None`` matches NULL and a list, tuple,
set or frozenset matches any of its members.
"""

from __future__ import annotations

import copy
from collections.abc import AsyncIterator, Iterable, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

Filter = Mapping[str, Any]
OrderBy = str | Sequence[str] | None


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryConflictError(RepositoryError):
    """Raised when a write violates a unique constraint."""


class RepositoryValidationError(RepositoryError):
    """Raised when a collection, column or payload is not accepted by the store."""


@dataclass(frozen=True, slots=True)
class CollectionSpec:
    table: str
    unique_keys: tuple[tuple[str, ...], ...] = ()
    insert_timestamps: tuple[str, ...] = ()
    touch_on_update: str | None = None


COLLECTIONS: dict[str, CollectionSpec] = {
    "campaigns": CollectionSpec(
        table="campaigns",
        insert_timestamps=("created_at", "updated_at"),
        touch_on_update="updated_at",
    ),
    "campaign_positions": CollectionSpec(
        table="campaign_positions",
        unique_keys=(("campaign_id", "position_id"),),
        insert_timestamps=("created_at",),
    ),
    "campaign_authorized_facilities": CollectionSpec(
        table="campaign_authorized_facilities",
        unique_keys=(("campaign_id", "facility_code"),),
        insert_timestamps=("created_at",),
    ),
    "campaign_validators": CollectionSpec(
        table="campaign_validators",
        unique_keys=(("campaign_id", "position_id", "validator_unit_id"),),
        insert_timestamps=("created_at",),
    ),
    "proposals": CollectionSpec(
        table="proposals",
        insert_timestamps=("submitted_at", "updated_at"),
        touch_on_update="updated_at",
    ),
    "proposal_validations": CollectionSpec(
        table="proposal_validations",
        unique_keys=(("proposal_id", "validator_unit_id"),),
        insert_timestamps=("created_at",),
    ),
    "files": CollectionSpec(table="files", insert_timestamps=("created_at",)),
    "user_validator_units": CollectionSpec(
        table="user_validator_units",
        unique_keys=(("user_id", "validator_unit_id"),),
    ),
    "positions": CollectionSpec(table="positions_catalog"),
    "facilities": CollectionSpec(table="health_facilities", unique_keys=(("facility_code",),)),
    "validator_units": CollectionSpec(table="validator_units"),
}


def get_collection_spec(collection: str) -> CollectionSpec:
    spec = COLLECTIONS.get(collection)
    if spec is None:
        raise RepositoryValidationError(f"unknown collection: {collection}")
    return spec


def normalize_order_by(order_by: OrderBy) -> list[tuple[str, bool]]:
    """Return ``(column, descending)`` pairs; a leading ``-`` sorts descending."""
    if order_by is None:
        return []
    items = [order_by] if isinstance(order_by, str) else list(order_by)
    return [(item[1:], True) if item.startswith("-") else (item, False) for item in items]


class DataStore(Protocol):
    async def find(
        self,
        collection: str,
        filter: Filter | None = None,
        *,
        order_by: OrderBy = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]: ...

    async def insert(self, collection: str, record: Mapping[str, Any]) -> dict[str, Any]: ...

    async def insert_many(self, collection: str, records: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]: ...

    async def update(self, collection: str, filter: Filter, patch: Mapping[str, Any]) -> int: ...

    async def upsert(
        self,
        collection: str,
        records: Sequence[Mapping[str, Any]],
        *,
        conflict_keys: Sequence[str],
        ignore_duplicates: bool,
    ) -> int: ...

    async def delete(self, collection: str, filter: Filter) -> int: ...

    def transaction(self) -> Any: ...

    async def close(self) -> None: ...


def _matches(row: Mapping[str, Any], filter: Filter | None) -> bool:
    if not filter:
        return True
    for column, expected in filter.items():
        actual = row.get(column)
        if expected is None:
            if actual is not None:
                return False
        elif isinstance(expected, (list, tuple, set, frozenset)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


class InMemoryDataStore:
    """Process-local store for development and tests.

    Transactions snapshot every table and restore them when the block raises.
    """

    def __init__(self, seed: Mapping[str, Iterable[Mapping[str, Any]]] | None = None) -> None:
        self._tables: dict[str, list[dict[str, Any]]] = {name: [] for name in COLLECTIONS}
        self._sequences: dict[str, int] = {name: 0 for name in COLLECTIONS}
        for collection, rows in (seed or {}).items():
            for row in rows:
                self._insert_row(collection, row, stamp=False)

    async def close(self) -> None:
        return None

    async def find(
        self,
        collection: str,
        filter: Filter | None = None,
        *,
        order_by: OrderBy = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        rows = [dict(row) for row in self._table(collection) if _matches(row, filter)]
        for column, descending in reversed(normalize_order_by(order_by)):
            rows.sort(key=lambda row: (row.get(column) is None, row.get(column)), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    async def insert(self, collection: str, record: Mapping[str, Any]) -> dict[str, Any]:
        return dict(self._insert_row(collection, record, stamp=True))

    async def insert_many(self, collection: str, records: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
        async with self.transaction():
            return [await self.insert(collection, record) for record in records]

    async def update(self, collection: str, filter: Filter, patch: Mapping[str, Any]) -> int:
        spec = get_collection_spec(collection)
        matched = [row for row in self._table(collection) if _matches(row, filter)]
        for row in matched:
            candidate = {**row, **patch}
            self._check_unique(collection, candidate, ignore=row)
            row.update(patch)
            if spec.touch_on_update:
                row[spec.touch_on_update] = datetime.now(timezone.utc)
        return len(matched)

    async def upsert(
        self,
        collection: str,
        records: Sequence[Mapping[str, Any]],
        *,
        conflict_keys: Sequence[str],
        ignore_duplicates: bool,
    ) -> int:
        affected = 0
        async with self.transaction():
            for record in records:
                key_filter = {key: record.get(key) for key in conflict_keys}
                existing = [row for row in self._table(collection) if _matches(row, key_filter)]
                if not existing:
                    self._insert_row(collection, record, stamp=True)
                    affected += 1
                elif not ignore_duplicates:
                    affected += await self.update(collection, key_filter, record)
        return affected

    async def delete(self, collection: str, filter: Filter) -> int:
        table = self._table(collection)
        kept = [row for row in table if not _matches(row, filter)]
        removed = len(table) - len(kept)
        table[:] = kept
        return removed

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[InMemoryDataStore]:
        tables_snapshot = copy.deepcopy(self._tables)
        sequences_snapshot = dict(self._sequences)
        try:
            yield self
        except BaseException:
            self._tables = tables_snapshot
            self._sequences = sequences_snapshot
            raise

    def _table(self, collection: str) -> list[dict[str, Any]]:
        get_collection_spec(collection)
        return self._tables[collection]

    def _insert_row(self, collection: str, record: Mapping[str, Any], *, stamp: bool) -> dict[str, Any]:
        spec = get_collection_spec(collection)
        row = dict(record)
        if row.get("id") is None:
            self._sequences[collection] += 1
            row["id"] = self._sequences[collection]
        else:
            self._sequences[collection] = max(self._sequences[collection], int(row["id"]))
        if stamp:
            now = datetime.now(timezone.utc)
            for column in spec.insert_timestamps:
                row.setdefault(column, now)
        self._check_unique(collection, row)
        self._tables[collection].append(row)
        return row

    def _check_unique(
        self,
        collection: str,
        candidate: Mapping[str, Any],
        *,
        ignore: Mapping[str, Any] | None = None,
    ) -> None:
        spec = get_collection_spec(collection)
        for row in self._tables[collection]:
            if row is ignore:
                continue
            if row.get("id") == candidate.get("id"):
                raise RepositoryConflictError(f"duplicate id in {collection}: {candidate.get('id')}")
            for keys in spec.unique_keys:
                if all(row.get(key) == candidate.get(key) for key in keys):
                    raise RepositoryConflictError(f"duplicate key in {collection}: {', '.join(keys)}")
