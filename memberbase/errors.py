"""
Error types for memberbase.

This module defines all exception types raised by the core:
- MemberbaseError: Base exception
- SchemaValidationError: Schema document failed validation (fatal)
- NotFoundError: Missing config key or row
- ParseError: Stored text does not parse under its declared type
- ReadOnlySettingError: Write to a non-editable setting
- ComputedFieldError: A computed field cannot be evaluated
- ReferentialIntegrityError: Delete refused by a RESTRICT relation
- ValidationError: Row payload violates the schema

Invariants:
    - All errors inherit from MemberbaseError
    - Only SchemaValidationError is fatal; every other error leaves state unchanged
    - Errors include context for debugging
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class MemberbaseError(Exception):
    """Base exception for all memberbase errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "MEMBERBASE_ERROR"
        self.details = details or {}


class SchemaValidationError(MemberbaseError):
    """Schema document is invalid.

    Carries every violation found in one validation pass.
    """

    def __init__(self, errors: List[str]) -> None:
        count = len(errors)
        message = f"Schema validation failed with {count} error(s)"
        if errors:
            message += ": " + "; ".join(errors)
        super().__init__(
            message,
            code="SCHEMA_INVALID",
            details={"errors": list(errors)},
        )
        self.errors = list(errors)


class NotFoundError(MemberbaseError):
    """Resource not found.

    Raised when:
    - A config key does not exist
    - A pointer setting names a key that does not exist
    - A row id does not exist in its table
    """

    def __init__(
        self,
        message: str,
        resource_type: str,
        resource_id: str,
    ) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ParseError(MemberbaseError):
    """Text value does not parse under its declared type."""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        value_type: Optional[str] = None,
        raw: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="PARSE_ERROR",
            details={"key": key, "type": value_type, "raw": raw},
        )
        self.key = key
        self.value_type = value_type
        self.raw = raw


class ReadOnlySettingError(MemberbaseError):
    """Attempted to write a setting declared as not editable."""

    def __init__(self, key: str) -> None:
        super().__init__(
            f"Setting '{key}' is read-only",
            code="READ_ONLY_SETTING",
            details={"key": key},
        )
        self.key = key


class ComputedFieldError(MemberbaseError):
    """A computed field is undefined for the given inputs."""

    def __init__(
        self,
        message: str,
        entity_kind: Optional[str] = None,
        field_name: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="COMPUTED_FIELD_ERROR",
            details={"entity_kind": entity_kind, "field": field_name},
        )
        self.entity_kind = entity_kind
        self.field_name = field_name


class ReferentialIntegrityError(MemberbaseError):
    """Delete refused because RESTRICT references still exist.

    Attributes:
        table: Table of the row that could not be deleted
        row_id: Id of that row
        blocking: Mapping of "table.field" to referencing row ids
    """

    def __init__(
        self,
        table: str,
        row_id: Any,
        blocking: Dict[str, List[Any]],
    ) -> None:
        refs = ", ".join(f"{ref} ({len(ids)} row(s))" for ref, ids in sorted(blocking.items()))
        super().__init__(
            f"Cannot delete {table} {row_id}: still referenced by {refs}",
            code="REFERENTIAL_INTEGRITY",
            details={"table": table, "id": row_id, "blocking": blocking},
        )
        self.table = table
        self.row_id = row_id
        self.blocking = blocking


class ValidationError(MemberbaseError):
    """Row payload validation failed.

    Raised when:
    - Required field is missing
    - Field value has wrong type or exceeds its bounds
    - Enum value is invalid
    """

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"table": table, "errors": errors or []},
        )
        self.table = table
        self.errors = errors or []
