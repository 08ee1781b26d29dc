"""
CLI tools for memberbase administration.

This module provides command-line tools for:
- validate/snapshot/ddl: Inspect and check schema documents
- init: Create a database and seed its settings
- settings: List settings with their typed values

Invariants:
    - Tools work offline against a schema file or SQLite file
    - Invalid schemas cause a non-zero exit code
"""

from .schema_cli import SchemaCLI

__all__ = ["SchemaCLI"]
