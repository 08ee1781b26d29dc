"""
SQLite row store for memberbase.

This module is the persistence collaborator of the core. It manages one
SQLite database whose tables are generated from the schema registry and
provides:
- Table creation from the generated DDL
- Row CRUD with payload validation and default application
- Explicit transactions that serialize all readers and writers
- Deletes that apply the declared referential-integrity policies

Invariants:
    - One connection per Database, guarded by a re-entrant lock
    - Every write runs inside a transaction (BEGIN IMMEDIATE ... COMMIT)
    - A failed operation rolls back; no partial writes are ever visible
    - Computed fields are never written
    - delete() checks references and deletes within the same transaction

How to change safely:
    - Add columns in the schema document, never by hand here
    - Keep value conversion in FieldDef.to_storage/from_storage

Table schema:
    Generated from the schema document, see memberbase.schema.ddl
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from ..errors import NotFoundError, ValidationError
from ..integrity import DeleteOutcome, ReferentialIntegrityEnforcer
from ..schema import SchemaRegistry, TableDef, generate_ddl
from ..schema.ddl import quote_ident

logger = logging.getLogger(__name__)

MEMORY = ":memory:"


class Database:
    """SQLite-backed store for the tables of one schema.

    Thread safety:
        All operations take the same re-entrant lock, so a transaction
        opened by one thread excludes every other reader and writer until
        it commits or rolls back. Nested transaction() blocks join the
        outermost one.

    Example:
        >>> db = Database(registry)
        >>> db.create_schema()
        >>> note = db.insert("note", {"title": "Welcome"})
        >>> db.get("note", note["id"])["title"]
        'Welcome'
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        path: str = MEMORY,
        busy_timeout_ms: int = 5000,
        wal_mode: bool = True,
    ) -> None:
        """Open the database.

        Args:
            registry: Loaded schema registry
            path: SQLite file path, or ":memory:"
            busy_timeout_ms: SQLite busy timeout
            wal_mode: Enable SQLite WAL mode for file databases
        """
        self.registry = registry
        self.path = path
        self.enforcer = ReferentialIntegrityEnforcer(registry)
        self._lock = threading.RLock()
        self._depth = 0

        if path != MEMORY:
            Path(path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(
            path,
            timeout=busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
            check_same_thread=False,
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms}")
        if wal_mode and path != MEMORY:
            self._conn.execute("PRAGMA journal_mode = WAL")
        self._conn.execute("PRAGMA foreign_keys = ON")

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def create_schema(self) -> None:
        """Create all tables and indexes declared by the schema."""
        with self._lock:
            self._conn.executescript(generate_ddl(self.registry))
        logger.info(
            "Database schema created",
            extra={"path": self.path, "fingerprint": self.registry.fingerprint},
        )

    @contextmanager
    def transaction(self) -> Iterator[Database]:
        """Run a block as one atomic, serialized unit.

        Yields:
            This Database; every call made inside the block joins the
            transaction

        Raises:
            Whatever the block raises, after rolling back
        """
        with self._lock:
            if self._depth > 0:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            self._conn.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield self
                self._conn.execute("COMMIT")
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            finally:
                self._depth = 0

    # -- Rows ------------------------------------------------------------------

    def insert(self, table: str, values: dict[str, Any]) -> dict[str, Any]:
        """Insert a row, applying schema defaults.

        Args:
            table: Table name
            values: Field values; omitted fields take their declared default

        Returns:
            The stored row, including its primary key and defaults

        Raises:
            ValidationError: If the payload violates the schema or a constraint
        """
        table_def = self._table(table)
        self._validate(table_def, values, partial=False)

        columns = list(values)
        params = [table_def.get_field(c).to_storage(values[c]) for c in columns]
        if columns:
            names = ", ".join(quote_ident(c) for c in columns)
            placeholders = ", ".join("?" for _ in columns)
            sql = f"INSERT INTO {quote_ident(table)} ({names}) VALUES ({placeholders})"
        else:
            sql = f"INSERT INTO {quote_ident(table)} DEFAULT VALUES"

        with self.transaction():
            cursor = self._execute(table, sql, params)
            row_id = values.get(table_def.primary_key.name, cursor.lastrowid)
            row = self.get(table, row_id)

        logger.debug("Inserted row", extra={"table": table, "id": row_id})
        return row

    def get(self, table: str, row_id: Any) -> dict[str, Any] | None:
        """Get a row by primary key, None if it does not exist."""
        table_def = self._table(table)
        pk = table_def.primary_key.name
        with self._lock:
            cursor = self._conn.execute(
                f"SELECT * FROM {quote_ident(table)} WHERE {quote_ident(pk)} = ?",
                (row_id,),
            )
            row = cursor.fetchone()
        return self._to_dict(table_def, row) if row else None

    def require(self, table: str, row_id: Any) -> dict[str, Any]:
        """Get a row by primary key.

        Raises:
            NotFoundError: If the row does not exist
        """
        row = self.get(table, row_id)
        if row is None:
            raise NotFoundError(f"{table} {row_id} not found", table, str(row_id))
        return row

    def find(self, table: str, **criteria: Any) -> list[dict[str, Any]]:
        """Rows whose fields equal the given values (NULL matches None).

        Example:
            >>> db.find("member", service_id=3)
        """
        table_def = self._table(table)
        clauses = []
        params = []
        for name, value in criteria.items():
            f = table_def.get_field(name)
            if f is None:
                raise ValidationError(f"Unknown field '{table}.{name}'", table=table)
            if value is None:
                clauses.append(f"{quote_ident(name)} IS NULL")
            else:
                clauses.append(f"{quote_ident(name)} = ?")
                params.append(f.to_storage(value))

        sql = f"SELECT * FROM {quote_ident(table)}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += f" ORDER BY {quote_ident(table_def.primary_key.name)}"

        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [self._to_dict(table_def, row) for row in rows]

    def count(self, table: str) -> int:
        self._table(table)
        with self._lock:
            cursor = self._conn.execute(f"SELECT COUNT(*) AS c FROM {quote_ident(table)}")
            return cursor.fetchone()["c"]

    def lookup(self, table: str, row_id: Any, column: str) -> Any:
        """Single column of a row, None if the row does not exist."""
        if row_id is None:
            return None
        row = self.get(table, row_id)
        return row.get(column) if row else None

    def update(self, table: str, row_id: Any, patch: dict[str, Any]) -> dict[str, Any]:
        """Update fields of a row (PATCH semantics).

        Returns:
            The updated row

        Raises:
            NotFoundError: If the row does not exist
            ValidationError: If the patch violates the schema or a constraint
        """
        table_def = self._table(table)
        pk = table_def.primary_key.name
        if pk in patch:
            raise ValidationError(f"Primary key '{table}.{pk}' cannot be updated", table=table)
        self._validate(table_def, patch, partial=True)

        with self.transaction():
            self.require(table, row_id)
            if patch:
                assignments = ", ".join(f"{quote_ident(c)} = ?" for c in patch)
                params = [table_def.get_field(c).to_storage(v) for c, v in patch.items()]
                self._execute(
                    table,
                    f"UPDATE {quote_ident(table)} SET {assignments} WHERE {quote_ident(pk)} = ?",
                    params + [row_id],
                )
            row = self.require(table, row_id)

        logger.debug("Updated row", extra={"table": table, "id": row_id, "fields": sorted(patch)})
        return row

    def delete(self, table: str, row_id: Any) -> DeleteOutcome:
        """Delete a row after applying the declared delete policies.

        The reference check, the clearing of SET NULL references and the
        delete itself form one transaction.

        Returns:
            DeleteOutcome listing the cleared references

        Raises:
            NotFoundError: If the row does not exist
            ReferentialIntegrityError: If a RESTRICT relation blocks the delete
        """
        table_def = self._table(table)
        pk = table_def.primary_key.name

        with self.transaction() as rows:
            self.require(table, row_id)
            outcome = self.enforcer.before_delete(table, row_id, rows)
            self._conn.execute(
                f"DELETE FROM {quote_ident(table)} WHERE {quote_ident(pk)} = ?",
                (row_id,),
            )

        logger.info(
            "Deleted row",
            extra={"table": table, "id": row_id, "cleared": outcome.cleared_count},
        )
        return outcome

    # -- RowAccess for the integrity enforcer ------------------------------------

    def referencing_ids(self, table: str, field_name: str, value: Any) -> list[Any]:
        pk = self._table(table).primary_key.name
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {quote_ident(pk)} AS pk FROM {quote_ident(table)} "
                f"WHERE {quote_ident(field_name)} = ? ORDER BY {quote_ident(pk)}",
                (value,),
            ).fetchall()
        return [row["pk"] for row in rows]

    def clear_reference(self, table: str, field_name: str, ids: list[Any]) -> int:
        if not ids:
            return 0
        pk = self._table(table).primary_key.name
        placeholders = ", ".join("?" for _ in ids)
        with self._lock:
            cursor = self._conn.execute(
                f"UPDATE {quote_ident(table)} SET {quote_ident(field_name)} = NULL "
                f"WHERE {quote_ident(pk)} IN ({placeholders})",
                list(ids),
            )
        return cursor.rowcount

    # -- Helpers -------------------------------------------------------------------

    def _table(self, name: str) -> TableDef:
        table = self.registry.get_table(name)
        if table is None:
            raise NotFoundError(f"Unknown table '{name}'", "table", name)
        return table

    def _validate(self, table: TableDef, payload: dict[str, Any], partial: bool) -> None:
        is_valid, errors = table.validate_payload(payload, partial=partial)
        if not is_valid:
            raise ValidationError(
                f"Validation failed for {table.name}: {'; '.join(errors)}",
                table=table.name,
                errors=errors,
            )

    def _execute(self, table: str, sql: str, params: list[Any]) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, params)
        except sqlite3.IntegrityError as exc:
            raise ValidationError(
                f"Constraint violated on {table}: {exc}",
                table=table,
                errors=[str(exc)],
            ) from exc

    @staticmethod
    def _to_dict(table: TableDef, row: sqlite3.Row) -> dict[str, Any]:
        return {f.name: f.from_storage(row[f.name]) for f in table.fields}
