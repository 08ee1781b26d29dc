"""
Schema module for memberbase.

This module provides the declarative model read from the schema document:
- Type definitions (TableDef, FieldDef, RelationDef, AutoCalculationRule, ...)
- The SchemaRegistry that loads, validates and exposes them
- SQLite DDL generation from a loaded registry

Invariants:
    - A registry is only built from a document that validated completely
    - The registry is read-only after load
    - Every other component is built from a loaded registry

How to change safely:
    - Add tables and fields in the schema document, then run
      `memberbase validate` before deploying
    - Keep delete policies on the foreign keys; relations may restate them
"""

from .ddl import generate_ddl
from .registry import SchemaRegistry
from .types import (
    AutoCalculationRule,
    ComputedFieldDef,
    FieldDef,
    FieldKind,
    ForeignKey,
    IndexDef,
    OnDelete,
    RelationDef,
    TableDef,
    TermOffset,
)

__all__ = [
    # Types
    "FieldDef",
    "FieldKind",
    "ForeignKey",
    "ComputedFieldDef",
    "TableDef",
    "IndexDef",
    "RelationDef",
    "OnDelete",
    "TermOffset",
    "AutoCalculationRule",
    # Registry
    "SchemaRegistry",
    # DDL
    "generate_ddl",
]
