"""
Unit tests for SQLite DDL generation.

Tests cover:
- Column constraints
- Foreign keys with delete policies
- Index statements
- Computed fields producing no columns
"""

import sqlite3

import pytest

from memberbase.schema import FieldDef, SchemaRegistry, generate_ddl
from memberbase.schema.ddl import column_ddl, quote_ident, quote_literal


class TestQuoting:
    """Tests for identifier and literal quoting."""

    def test_quote_ident(self):
        """Identifiers are double-quoted; SQL keywords stay usable."""
        assert quote_ident("key") == '"key"'
        assert quote_ident('we"ird') == '"we""ird"'

    def test_quote_literal(self):
        """Literals are rendered per Python type."""
        assert quote_literal("it's") == "'it''s'"
        assert quote_literal(1) == "1"
        assert quote_literal(True) == "1"


class TestColumnDDL:
    """Tests for column_ddl."""

    def test_primary_key(self):
        """Auto-increment primary key."""
        f = FieldDef.from_dict(
            {"name": "id", "type": "INTEGER", "primaryKey": True, "autoIncrement": True}
        )
        assert column_ddl(f) == '"id" INTEGER PRIMARY KEY AUTOINCREMENT'

    def test_text_constraints(self):
        """NOT NULL, UNIQUE and length checks."""
        f = FieldDef.from_dict(
            {"name": "key", "type": "TEXT", "nullable": False, "unique": True, "maxLength": 100}
        )
        assert column_ddl(f) == '"key" TEXT NOT NULL UNIQUE CHECK (length("key") <= 100)'

    def test_enum_check(self):
        """Enumerations become IN checks."""
        f = FieldDef.from_dict({"name": "term", "type": "TEXT", "enum": ["one-off", "monthly"]})
        assert "CHECK (\"term\" IN ('one-off', 'monthly'))" in column_ddl(f)

    def test_timestamp_default(self):
        """CURRENT_TIMESTAMP stays unquoted."""
        f = FieldDef.from_dict(
            {"name": "created_at", "type": "DATETIME", "default": "CURRENT_TIMESTAMP"}
        )
        assert column_ddl(f).endswith("DEFAULT CURRENT_TIMESTAMP")

    def test_foreign_key(self):
        """Foreign keys carry their delete policy."""
        f = FieldDef.from_dict(
            {
                "name": "price_id",
                "type": "INTEGER",
                "nullable": False,
                "foreignKey": {"table": "price", "field": "id", "onDelete": "RESTRICT"},
            }
        )
        assert column_ddl(f).endswith('REFERENCES "price"("id") ON DELETE RESTRICT')


class TestGenerateDDL:
    """Tests for generate_ddl on the bundled schema."""

    @pytest.fixture
    def ddl(self):
        return generate_ddl(SchemaRegistry.load_default())

    def test_all_tables(self, ddl):
        """One CREATE TABLE per table."""
        for name in ("note", "config_entry", "price", "service", "member"):
            assert f'CREATE TABLE IF NOT EXISTS "{name}"' in ddl

    def test_no_computed_columns(self, ddl):
        """Computed fields are not stored."""
        assert '"net_amount"' not in ddl
        assert '"age"' not in ddl

    def test_indexes(self, ddl):
        """Declared indexes are created."""
        assert (
            'CREATE UNIQUE INDEX IF NOT EXISTS "idx_config_entry_key" ON "config_entry" ("key");'
            in ddl
        )
        assert 'ON "member" ("name", "first_name");' in ddl

    def test_executes_on_sqlite(self, ddl):
        """The script runs twice without error."""
        conn = sqlite3.connect(":memory:")
        try:
            conn.executescript(ddl)
            conn.executescript(ddl)
            tables = {
                row[0]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            }
        finally:
            conn.close()

        assert {"note", "config_entry", "price", "service", "member"} <= tables
