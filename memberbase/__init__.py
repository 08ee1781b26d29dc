"""
memberbase - Schema-driven core for a small member administration.

This package implements the non-UI core of a membership database:
- SchemaRegistry: loads and validates the declarative schema document
- Database: SQLite tables generated from the schema
- ConfigStore: typed key/value settings with read-only entries
- ComputedFieldResolver: read-time derived fields (net amount, age)
- AutoCalculationEngine: contract end date derivation while editing
- ReferentialIntegrityEnforcer: set-null and restrict delete policies

Architecture:
    schema document ──▶ SchemaRegistry ──┬──▶ Database ──▶ ConfigStore
                                         │       │
                                         │       └──▶ ReferentialIntegrityEnforcer
                                         ├──▶ ComputedFieldResolver (reads settings)
                                         └──▶ AutoCalculationEngine (edit sessions)

Invariants:
    - The schema is validated completely before anything else is built
    - Computed fields are never stored
    - Non-editable settings are never written
    - A refused delete mutates nothing

How to change safely:
    - Change the schema document, not the code, for new fields and settings
    - Run `memberbase validate` on every schema change
"""

from ._version import __version__
from .autocalc import AutoCalculationEngine, CalcState, EditSession, derive_end_date
from .computed import ComputedFieldResolver
from .config import Settings
from .errors import (
    ComputedFieldError,
    MemberbaseError,
    NotFoundError,
    ParseError,
    ReadOnlySettingError,
    ReferentialIntegrityError,
    SchemaValidationError,
    ValidationError,
)
from .integrity import DeleteOutcome, ReferentialIntegrityEnforcer
from .schema import SchemaRegistry
from .settings import ConfigSnapshot, ConfigStore, SettingType
from .store import Database

__all__ = [
    "__version__",
    # Components
    "SchemaRegistry",
    "Database",
    "ConfigStore",
    "ConfigSnapshot",
    "SettingType",
    "ComputedFieldResolver",
    "AutoCalculationEngine",
    "EditSession",
    "CalcState",
    "derive_end_date",
    "ReferentialIntegrityEnforcer",
    "DeleteOutcome",
    "Settings",
    # Errors
    "MemberbaseError",
    "SchemaValidationError",
    "NotFoundError",
    "ParseError",
    "ReadOnlySettingError",
    "ComputedFieldError",
    "ReferentialIntegrityError",
    "ValidationError",
]
