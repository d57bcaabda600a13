from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, Protocol

import psycopg2

from ..models.config_models import SyncConfig

"""Record lookup / persist collaborators for the sync core.

The reconciliation core never talks to a database directly; it is handed a
RecordStore. PgRecordStore runs parameterised SQL through a psycopg2 cursor
(one explicit BEGIN/COMMIT/ROLLBACK per record). InMemoryRecordStore keeps
everything in dicts and backs dry-run / mock mode.

The secondary table (properties) is owned by the primary (sellers): lookups go
through the owner id and at most one row per owner is used.
"""

__all__ = [
    "RecordStoreError",
    "RecordStore",
    "PgRecordStore",
    "InMemoryRecordStore",
]

logger = logging.getLogger(__name__)


class RecordStoreError(Exception):
    """Write or read rejected by the store."""


class RecordStore(Protocol):
    def transaction(self) -> Any: ...

    def find_by_natural_key(self, key: Any) -> dict[str, Any] | None: ...

    def insert_primary(self, record: Mapping[str, Any]) -> Any: ...

    def update_primary(self, key: Any, changes: Mapping[str, Any]) -> None: ...

    def find_secondary_by_owner(self, owner_id: Any) -> dict[str, Any] | None: ...

    def insert_secondary(self, entity: Mapping[str, Any]) -> Any: ...

    def update_secondary(self, entity_id: Any, changes: Mapping[str, Any]) -> None: ...

    def list_natural_keys(self) -> set[str]: ...


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


class PgRecordStore:
    """psycopg2-backed store.

    The connection is expected in autocommit mode so that the explicit
    BEGIN/COMMIT issued per record are the only transaction boundaries.
    """

    def __init__(self, cursor: Any, config: SyncConfig) -> None:
        self.cursor = cursor
        self.tables = config.tables
        self.key_field = config.natural_key.field
        self.owner_field = config.property.owner_field if config.property else None

    @contextmanager
    def transaction(self) -> Iterator[None]:
        self.cursor.execute("BEGIN")
        try:
            yield
        except Exception:
            try:
                self.cursor.execute("ROLLBACK")
            except psycopg2.Error:  # pragma: no cover
                logger.debug("rollback failed", exc_info=True)
            raise
        else:
            self.cursor.execute("COMMIT")

    def _execute(self, sql: str, params: tuple[Any, ...] = ()) -> None:
        try:
            self.cursor.execute(sql, params)
        except psycopg2.Error as e:
            raise RecordStoreError(str(e).strip()) from e

    def _fetch_dicts(self) -> list[dict[str, Any]]:
        rows = self.cursor.fetchall() or []
        if rows and not isinstance(rows[0], Mapping):
            # RealDictCursor 以外: description から列名を復元
            names = [d[0] for d in self.cursor.description]
            return [dict(zip(names, r, strict=False)) for r in rows]
        return [dict(r) for r in rows]

    def _insert(self, table: str, record: Mapping[str, Any]) -> Any:
        columns = list(record.keys())
        cols_sql = ",".join(_quote(c) for c in columns)
        placeholders = ",".join(["%s"] * len(columns))
        self._execute(
            f"INSERT INTO {_quote(table)} ({cols_sql}) VALUES ({placeholders}) "
            f"RETURNING {_quote(self.tables.id_column)}",
            tuple(record[c] for c in columns),
        )
        returned = self._fetch_dicts()
        if not returned:
            raise RecordStoreError(f"INSERT INTO {table} returned no id")
        return returned[0][self.tables.id_column]

    def _update(self, table: str, where_column: str, where_value: Any, changes: Mapping[str, Any]) -> None:
        if not changes:
            return
        assignments = ",".join(f"{_quote(c)} = %s" for c in changes)
        self._execute(
            f"UPDATE {_quote(table)} SET {assignments} WHERE {_quote(where_column)} = %s",
            (*changes.values(), where_value),
        )

    def find_by_natural_key(self, key: Any) -> dict[str, Any] | None:
        self._execute(
            f"SELECT * FROM {_quote(self.tables.primary)} WHERE {_quote(self.key_field)} = %s LIMIT 1",
            (key,),
        )
        rows = self._fetch_dicts()
        return rows[0] if rows else None

    def insert_primary(self, record: Mapping[str, Any]) -> Any:
        return self._insert(self.tables.primary, record)

    def update_primary(self, key: Any, changes: Mapping[str, Any]) -> None:
        self._update(self.tables.primary, self.key_field, key, changes)

    def find_secondary_by_owner(self, owner_id: Any) -> dict[str, Any] | None:
        if self.owner_field is None:
            return None
        self._execute(
            f"SELECT * FROM {_quote(self.tables.secondary)} WHERE {_quote(self.owner_field)} = %s "
            f"ORDER BY {_quote(self.tables.created_at_column)} DESC",
            (owner_id,),
        )
        rows = self._fetch_dicts()
        if len(rows) > 1:
            logger.warning(
                "owner=%s has %d %s rows; using the latest (%s)",
                owner_id,
                len(rows),
                self.tables.secondary,
                rows[0].get(self.tables.id_column),
            )
        return rows[0] if rows else None

    def insert_secondary(self, entity: Mapping[str, Any]) -> Any:
        return self._insert(self.tables.secondary, entity)

    def update_secondary(self, entity_id: Any, changes: Mapping[str, Any]) -> None:
        self._update(self.tables.secondary, self.tables.id_column, entity_id, changes)

    def list_natural_keys(self) -> set[str]:
        self._execute(f"SELECT {_quote(self.key_field)} FROM {_quote(self.tables.primary)}")
        return {r[self.key_field] for r in self._fetch_dicts() if r.get(self.key_field)}


class InMemoryRecordStore:
    """Dict-backed store with the same contract (dry-run / mock mode, tests).

    Lookups go through a natural-key index and an owner index. A transaction
    journals the first state of every row it touches; rollback restores only
    those rows.
    """

    def __init__(
        self,
        config: SyncConfig,
        primary: list[Mapping[str, Any]] | None = None,
        secondary: list[Mapping[str, Any]] | None = None,
    ) -> None:
        self.tables = config.tables
        self.key_field = config.natural_key.field
        self.owner_field = config.property.owner_field if config.property else None
        self._next_id = 1
        self.primary: dict[Any, dict[str, Any]] = {}
        self.secondary: dict[Any, dict[str, Any]] = {}
        self._key_index: dict[Any, Any] = {}  # 自然キー -> id
        self._owner_index: dict[Any, list[Any]] = {}  # owner id -> 物件 id
        self._journal: dict[tuple[str, Any], dict[str, Any] | None] | None = None
        for record in primary or []:
            self._put("primary", record)
        for entity in secondary or []:
            self._put("secondary", entity)

    # 索引 -------------------------------------------------------------
    def _index(self, table_name: str, row: Mapping[str, Any]) -> None:
        row_id = row[self.tables.id_column]
        if table_name == "primary":
            key = row.get(self.key_field)
            if key is not None:
                self._key_index[key] = row_id
        elif self.owner_field is not None:
            self._owner_index.setdefault(row.get(self.owner_field), []).append(row_id)

    def _unindex(self, table_name: str, row: Mapping[str, Any]) -> None:
        row_id = row[self.tables.id_column]
        if table_name == "primary":
            key = row.get(self.key_field)
            if key is not None and self._key_index.get(key) == row_id:
                del self._key_index[key]
        elif self.owner_field is not None:
            owned = self._owner_index.get(row.get(self.owner_field), [])
            if row_id in owned:
                owned.remove(row_id)

    # 取消ジャーナル ---------------------------------------------------
    def _remember(self, table_name: str, row_id: Any) -> None:
        if self._journal is None or (table_name, row_id) in self._journal:
            return
        current = getattr(self, table_name).get(row_id)
        self._journal[(table_name, row_id)] = None if current is None else dict(current)

    def _rollback(self, journal: dict[tuple[str, Any], dict[str, Any] | None]) -> None:
        for (table_name, row_id), previous in reversed(list(journal.items())):
            table = getattr(self, table_name)
            current = table.pop(row_id, None)
            if current is not None:
                self._unindex(table_name, current)
            if previous is not None:
                table[row_id] = previous
                self._index(table_name, previous)

    def _put(self, table_name: str, record: Mapping[str, Any]) -> Any:
        row = dict(record)
        row.setdefault(self.tables.id_column, self._next_id)
        row_id = row[self.tables.id_column]
        if isinstance(row_id, int):
            self._next_id = max(self._next_id, row_id + 1)
        row.setdefault(self.tables.created_at_column, datetime.now(UTC))
        self._remember(table_name, row_id)
        table = getattr(self, table_name)
        if row_id in table:
            self._unindex(table_name, table[row_id])
        table[row_id] = row
        self._index(table_name, row)
        return row_id

    def _patch(self, table_name: str, row_id: Any, changes: Mapping[str, Any]) -> None:
        self._remember(table_name, row_id)
        row = getattr(self, table_name)[row_id]
        self._unindex(table_name, row)
        row.update(changes)
        self._index(table_name, row)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._journal is not None:
            # 入れ子は外側のトランザクションに合流
            yield
            return
        journal: dict[tuple[str, Any], dict[str, Any] | None] = {}
        self._journal = journal
        try:
            yield
        except Exception:
            self._journal = None
            self._rollback(journal)
            raise
        finally:
            self._journal = None

    def find_by_natural_key(self, key: Any) -> dict[str, Any] | None:
        row_id = self._key_index.get(key) if key is not None else None
        if row_id is None:
            return None
        return dict(self.primary[row_id])

    def insert_primary(self, record: Mapping[str, Any]) -> Any:
        key = record.get(self.key_field)
        if key is not None and key in self._key_index:
            raise RecordStoreError(f"duplicate {self.key_field}: {key}")
        return self._put("primary", record)

    def update_primary(self, key: Any, changes: Mapping[str, Any]) -> None:
        row_id = self._key_index.get(key) if key is not None else None
        if row_id is None:
            raise RecordStoreError(f"no {self.tables.primary} row with {self.key_field}={key}")
        self._patch("primary", row_id, changes)

    def find_secondary_by_owner(self, owner_id: Any) -> dict[str, Any] | None:
        if self.owner_field is None:
            return None
        owned = [self.secondary[i] for i in self._owner_index.get(owner_id, [])]
        if not owned:
            return None
        owned.sort(key=lambda r: r[self.tables.created_at_column], reverse=True)
        if len(owned) > 1:
            logger.warning("owner=%s has %d %s rows; using the latest", owner_id, len(owned), self.tables.secondary)
        return dict(owned[0])

    def insert_secondary(self, entity: Mapping[str, Any]) -> Any:
        return self._put("secondary", entity)

    def update_secondary(self, entity_id: Any, changes: Mapping[str, Any]) -> None:
        if entity_id not in self.secondary:
            raise RecordStoreError(f"no {self.tables.secondary} row with id={entity_id}")
        self._patch("secondary", entity_id, changes)

    def list_natural_keys(self) -> set[str]:
        return set(self._key_index) - {""}
