"""
Persistence for memberbase.

The Database owns the SQLite file generated from the schema and is the
transaction boundary for settings writes and integrity-checked deletes.
"""

from .database import MEMORY, Database

__all__ = [
    "Database",
    "MEMORY",
]
