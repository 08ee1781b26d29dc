"""
SQLite DDL generation from a loaded schema.

Every table becomes a CREATE TABLE statement carrying the declared
constraints (NOT NULL, UNIQUE, length/minimum/enum CHECKs, defaults and
foreign keys with their ON DELETE policy), followed by the declared indexes.

Invariants:
    - Statements are idempotent (IF NOT EXISTS)
    - Computed fields never produce columns
    - Output order follows declaration order, so it is deterministic
"""

from __future__ import annotations

from typing import Any

from .registry import SchemaRegistry
from .types import FieldDef, IndexDef, TableDef

RAW_DEFAULTS = frozenset({"CURRENT_TIMESTAMP", "CURRENT_DATE"})


def quote_ident(name: str) -> str:
    """Quote an SQL identifier."""
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: Any) -> str:
    """Render a Python value as an SQL literal."""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return repr(value)
    return "'" + str(value).replace("'", "''") + "'"


def column_ddl(f: FieldDef) -> str:
    """Column definition for one field."""
    name = quote_ident(f.name)
    parts = [name, f.kind.value]

    if f.primary_key:
        parts.append("PRIMARY KEY")
        if f.auto_increment:
            parts.append("AUTOINCREMENT")
    elif not f.nullable:
        parts.append("NOT NULL")
    if f.unique and not f.primary_key:
        parts.append("UNIQUE")

    if f.default is not None:
        if f.default in RAW_DEFAULTS:
            parts.append(f"DEFAULT {f.default}")
        else:
            parts.append(f"DEFAULT {quote_literal(f.default)}")

    if f.max_length is not None:
        parts.append(f"CHECK (length({name}) <= {f.max_length})")
    if f.minimum is not None:
        parts.append(f"CHECK ({name} >= {quote_literal(f.minimum)})")
    if f.enum_values:
        allowed = ", ".join(quote_literal(v) for v in f.enum_values)
        parts.append(f"CHECK ({name} IN ({allowed}))")

    if f.foreign_key is not None:
        fk = f.foreign_key
        parts.append(
            f"REFERENCES {quote_ident(fk.table)}({quote_ident(fk.field)}) "
            f"ON DELETE {fk.on_delete.value}"
        )

    return " ".join(parts)


def table_ddl(table: TableDef) -> str:
    columns = ",\n".join(f"    {column_ddl(f)}" for f in table.fields)
    return f"CREATE TABLE IF NOT EXISTS {quote_ident(table.name)} (\n{columns}\n);"


def index_ddl(index: IndexDef) -> str:
    unique = "UNIQUE " if index.unique else ""
    columns = ", ".join(quote_ident(name) for name in index.fields)
    return (
        f"CREATE {unique}INDEX IF NOT EXISTS {quote_ident(index.name)} "
        f"ON {quote_ident(index.table)} ({columns});"
    )


def generate_ddl(registry: SchemaRegistry) -> str:
    """Generate the full DDL script for a schema.

    Args:
        registry: Loaded schema registry

    Returns:
        SQL script suitable for sqlite3.Connection.executescript()
    """
    statements = [table_ddl(t) for t in registry.tables()]
    statements.extend(index_ddl(i) for i in registry.indexes())
    return "\n\n".join(statements) + "\n"
