"""
Schema CLI tool for memberbase.

This tool manages schema documents and databases built from them:
- validate: Check a schema document and list every violation
- snapshot: Export the canonical schema with its fingerprint
- ddl: Print the SQLite DDL generated from a schema
- init: Create tables and seed settings in a database file
- settings: List settings stored in a database file

Usage:
    memberbase validate --file structure.yaml
    memberbase snapshot > schema.lock.json
    memberbase init --db members.sqlite
    memberbase settings --db members.sqlite --category finance

Invariants:
    - Invalid schemas cause a non-zero exit code
    - Snapshots are deterministic (sorted JSON)
    - init is idempotent: tables use IF NOT EXISTS and settings seed once

How to change safely:
    - Add new commands, don't modify existing ones
    - Keep output format stable for CI parsing
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Optional

from ..config import Settings
from ..errors import MemberbaseError, ParseError, SchemaValidationError
from ..logs import setup_logging
from ..schema import SchemaRegistry, generate_ddl
from ..settings import ConfigStore
from ..store import Database

logger = logging.getLogger(__name__)


class SchemaCLI:
    """CLI tool for schema and database management.

    Example:
        >>> cli = SchemaCLI()
        >>> cli.validate("structure.yaml")
        []
        >>> print(cli.snapshot(SchemaRegistry.load_default()))
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or Settings()

    def load(self, path: Optional[str] = None) -> SchemaRegistry:
        """Load the schema at path, the configured path, or the bundled one.

        Raises:
            SchemaValidationError: If the document is invalid
        """
        path = path or self.settings.schema_path
        if path:
            return SchemaRegistry.from_file(path)
        return SchemaRegistry.load_default()

    def validate(self, path: Optional[str] = None) -> list[str]:
        """Validate a schema document.

        Returns:
            List of violations, empty if the document is valid
        """
        try:
            self.load(path)
        except SchemaValidationError as exc:
            return list(exc.errors)
        return []

    def snapshot(self, registry: SchemaRegistry) -> str:
        """Export schema to JSON.

        Args:
            registry: Schema registry to export

        Returns:
            JSON string representation
        """
        output = {
            "version": 1,
            "fingerprint": registry.fingerprint,
            "schema": registry.to_dict(),
        }
        return json.dumps(output, indent=2, sort_keys=True)

    def ddl(self, registry: SchemaRegistry) -> str:
        return generate_ddl(registry)

    def init(self, registry: SchemaRegistry, db_path: str) -> int:
        """Create tables and seed settings.

        Returns:
            Number of settings seeded (0 if already seeded)
        """
        with Database(
            registry, path=db_path, busy_timeout_ms=self.settings.busy_timeout_ms
        ) as db:
            db.create_schema()
            return ConfigStore(db).seed()

    def settings_table(
        self,
        registry: SchemaRegistry,
        db_path: str,
        category: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """Settings of a database as display rows.

        Values that fail to parse are shown as their stored text.
        """
        rows = []
        with Database(
            registry, path=db_path, busy_timeout_ms=self.settings.busy_timeout_ms
        ) as db:
            for entry in ConfigStore(db).entries(category):
                try:
                    value = entry.typed()
                except ParseError:
                    logger.warning("Unparseable setting", extra={"key": entry.key})
                    value = entry.value
                rows.append(
                    {
                        "key": entry.key,
                        "type": entry.type.value,
                        "category": entry.category,
                        "value": value,
                        "editable": entry.editable,
                    }
                )
        return rows


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entry point for the memberbase tool."""
    parser = argparse.ArgumentParser(description="memberbase schema management tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # validate command
    validate_parser = subparsers.add_parser("validate", help="Validate a schema document")
    validate_parser.add_argument("--file", help="Schema JSON/YAML file (default: bundled)")

    # snapshot command
    snapshot_parser = subparsers.add_parser("snapshot", help="Export schema to JSON")
    snapshot_parser.add_argument("--file", help="Schema JSON/YAML file (default: bundled)")
    snapshot_parser.add_argument("--output", "-o", help="Output file (default: stdout)")

    # ddl command
    ddl_parser = subparsers.add_parser("ddl", help="Print SQLite DDL for a schema")
    ddl_parser.add_argument("--file", help="Schema JSON/YAML file (default: bundled)")

    # init command
    init_parser = subparsers.add_parser("init", help="Create tables and seed settings")
    init_parser.add_argument("--file", help="Schema JSON/YAML file (default: bundled)")
    init_parser.add_argument("--db", help="SQLite file (default: MEMBERBASE_DATABASE_PATH)")

    # settings command
    settings_parser = subparsers.add_parser("settings", help="List stored settings")
    settings_parser.add_argument("--file", help="Schema JSON/YAML file (default: bundled)")
    settings_parser.add_argument("--db", help="SQLite file (default: MEMBERBASE_DATABASE_PATH)")
    settings_parser.add_argument("--category", help="Only list this category")

    args = parser.parse_args(argv)
    settings = Settings()
    setup_logging(settings)
    cli = SchemaCLI(settings)

    if args.command == "validate":
        errors = cli.validate(args.file)

        if not errors:
            print("Schema is valid")
            sys.exit(0)
        else:
            print(f"Schema validation failed with {len(errors)} error(s):")
            for error in errors:
                print(f"  - {error}")
            sys.exit(1)

    try:
        registry = cli.load(args.file)

        if args.command == "snapshot":
            output = cli.snapshot(registry)

            if args.output:
                with open(args.output, "w", encoding="utf-8") as f:
                    f.write(output)
                print(f"Schema exported to {args.output}", file=sys.stderr)
            else:
                print(output)

        elif args.command == "ddl":
            print(cli.ddl(registry))

        elif args.command == "init":
            db_path = args.db or settings.database_path
            seeded = cli.init(registry, db_path)
            print(f"Initialized {db_path} ({seeded} setting(s) seeded)")

        elif args.command == "settings":
            db_path = args.db or settings.database_path
            for row in cli.settings_table(registry, db_path, args.category):
                flag = "" if row["editable"] else " (read-only)"
                print(f"{row['category']:<10} {row['key']:<24} {row['type']:<8} {row['value']}{flag}")

    except MemberbaseError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        for error in exc.details.get("errors", []):
            print(f"  - {error}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
