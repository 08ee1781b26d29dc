"""
Core type definitions for the memberbase schema document.

This module defines the declarative shapes read from the schema document:
- FieldDef: A stored column of a table
- ComputedFieldDef: A derived, never-persisted value of a table
- TableDef: A table with its fields, computed fields and seed rows
- IndexDef: A (possibly unique) index over table fields
- RelationDef: A many-to-one edge between two tables with a delete policy
- AutoCalculationRule: A trigger-driven date derivation rule

Invariants:
    - Names are the canonical identifiers; there are no numeric ids
    - enum_values are a closed set; values outside it are rejected on write
    - Computed fields never appear among stored fields

How to change safely:
    - Add new optional keys to from_dict with defaults
    - Keep to_dict output sorted and stable (it feeds the fingerprint)

Example:
    >>> title = FieldDef.from_dict(
    ...     {"name": "title", "type": "TEXT", "nullable": False, "maxLength": 200}
    ... )
    >>> title.validate_value("x" * 201)
    (False, "Field 'title' exceeds maximum length 200")
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field as dataclass_field
from datetime import date, datetime
from enum import Enum
from typing import Any


class FieldKind(Enum):
    """Supported column types.

    These map one-to-one to SQLite column affinities.
    """

    INTEGER = "INTEGER"
    TEXT = "TEXT"
    REAL = "REAL"
    DATE = "DATE"  # ISO 8601 YYYY-MM-DD
    DATETIME = "DATETIME"  # ISO 8601 timestamp

    @classmethod
    def from_str(cls, value: str) -> FieldKind:
        """Convert string representation to FieldKind.

        Raises:
            ValueError: If value is not a valid field kind
        """
        for kind in cls:
            if kind.value == str(value).upper():
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid field type '{value}'. Valid types: {valid}")


class OnDelete(Enum):
    """Delete policies for foreign keys."""

    SET_NULL = "SET NULL"
    RESTRICT = "RESTRICT"

    @classmethod
    def from_str(cls, value: str) -> OnDelete:
        normalized = " ".join(str(value).upper().replace("_", " ").split())
        for policy in cls:
            if policy.value == normalized:
                return policy
        valid = [p.value for p in cls]
        raise ValueError(f"Invalid onDelete policy '{value}'. Valid policies: {valid}")


@dataclass(frozen=True)
class ForeignKey:
    """Foreign key declared on a field."""

    table: str
    field: str
    on_delete: OnDelete = OnDelete.RESTRICT

    def to_dict(self) -> dict[str, Any]:
        return {"table": self.table, "field": self.field, "onDelete": self.on_delete.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ForeignKey:
        return cls(
            table=data["table"],
            field=data.get("field", "id"),
            on_delete=OnDelete.from_str(data.get("onDelete", "RESTRICT")),
        )


@dataclass(frozen=True)
class FieldDef:
    """Definition of a single stored field.

    Attributes:
        name: Column name
        kind: Column type
        primary_key: Whether this is the table's primary key
        auto_increment: Whether the key is assigned by the database
        nullable: Whether the field may be absent
        unique: Whether values must be unique across rows
        max_length: Maximum text length (TEXT only)
        minimum: Inclusive lower bound (INTEGER/REAL only)
        enum_values: Closed set of allowed values
        default: Default applied on insert ("CURRENT_TIMESTAMP" for timestamps)
        foreign_key: Referenced table/field and delete policy
        description: Free-form comment from the document
    """

    name: str
    kind: FieldKind
    primary_key: bool = False
    auto_increment: bool = False
    nullable: bool = True
    unique: bool = False
    max_length: int | None = None
    minimum: float | None = None
    enum_values: tuple[str, ...] | None = None
    default: Any = None
    foreign_key: ForeignKey | None = None
    description: str = ""

    @property
    def required(self) -> bool:
        """Whether a value must be present on write."""
        return not self.nullable and not self.primary_key and self.default is None

    def validate_value(self, value: Any) -> tuple[bool, str | None]:
        """Validate a value against this field definition.

        Args:
            value: The value to validate

        Returns:
            Tuple of (is_valid, error_message)
        """
        if value is None:
            if not self.nullable and not self.primary_key:
                return False, f"Field '{self.name}' is required"
            return True, None

        if self.kind == FieldKind.INTEGER:
            if not isinstance(value, int) or isinstance(value, bool):
                return False, f"Field '{self.name}' must be an integer, got {type(value).__name__}"
        elif self.kind == FieldKind.REAL:
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                return False, f"Field '{self.name}' must be a number, got {type(value).__name__}"
        elif self.kind == FieldKind.TEXT:
            if not isinstance(value, str):
                return False, f"Field '{self.name}' must be a string, got {type(value).__name__}"
            if self.max_length is not None and len(value) > self.max_length:
                return (
                    False,
                    f"Field '{self.name}' exceeds maximum length {self.max_length}",
                )
        elif self.kind == FieldKind.DATE:
            if isinstance(value, datetime) or not isinstance(value, (date, str)):
                return False, f"Field '{self.name}' must be a date, got {type(value).__name__}"
            if isinstance(value, str):
                try:
                    date.fromisoformat(value)
                except ValueError:
                    return False, f"Field '{self.name}' must be an ISO date, got '{value}'"
        elif self.kind == FieldKind.DATETIME:
            if not isinstance(value, (datetime, str)):
                return (
                    False,
                    f"Field '{self.name}' must be a timestamp, got {type(value).__name__}",
                )

        if self.minimum is not None and value < self.minimum:
            return False, f"Field '{self.name}' must be >= {self.minimum}, got {value}"

        if self.enum_values and value not in self.enum_values:
            return False, f"Field '{self.name}' must be one of {self.enum_values}, got '{value}'"

        return True, None

    def to_storage(self, value: Any) -> Any:
        """Convert a Python value to its SQLite representation."""
        if value is None:
            return None
        if self.kind == FieldKind.DATE and isinstance(value, date):
            return value.isoformat()
        if self.kind == FieldKind.DATETIME and isinstance(value, datetime):
            return value.isoformat(sep=" ", timespec="seconds")
        return value

    def from_storage(self, value: Any) -> Any:
        """Convert a SQLite value to its canonical Python form."""
        if value is None:
            return None
        if self.kind == FieldKind.DATE and isinstance(value, str):
            return date.fromisoformat(value)
        if self.kind == FieldKind.DATETIME and isinstance(value, str):
            return datetime.fromisoformat(value)
        return value

    def to_dict(self) -> dict[str, Any]:
        """Convert to document representation."""
        result: dict[str, Any] = {"name": self.name, "type": self.kind.value}
        if self.primary_key:
            result["primaryKey"] = True
        if self.auto_increment:
            result["autoIncrement"] = True
        if not self.nullable:
            result["nullable"] = False
        if self.unique:
            result["unique"] = True
        if self.max_length is not None:
            result["maxLength"] = self.max_length
        if self.minimum is not None:
            result["minimum"] = self.minimum
        if self.enum_values:
            result["enum"] = list(self.enum_values)
        if self.default is not None:
            result["default"] = self.default
        if self.foreign_key is not None:
            result["foreignKey"] = self.foreign_key.to_dict()
        if self.description:
            result["comment"] = self.description
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FieldDef:
        """Create from document representation."""
        enum_values = data.get("enum")
        foreign_key = data.get("foreignKey")
        return cls(
            name=data["name"],
            kind=FieldKind.from_str(data["type"]),
            primary_key=data.get("primaryKey", False),
            auto_increment=data.get("autoIncrement", False),
            nullable=data.get("nullable", True),
            unique=data.get("unique", False),
            max_length=data.get("maxLength"),
            minimum=data.get("minimum"),
            enum_values=tuple(enum_values) if enum_values is not None else None,
            default=data.get("default"),
            foreign_key=ForeignKey.from_dict(foreign_key) if foreign_key else None,
            description=data.get("comment", ""),
        )


@dataclass(frozen=True)
class ComputedFieldDef:
    """A value derived at read time, never persisted."""

    name: str
    formula: str = ""
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        result = {"name": self.name, "formula": self.formula}
        if self.description:
            result["comment"] = self.description
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ComputedFieldDef:
        return cls(
            name=data["name"],
            formula=data.get("formula", ""),
            description=data.get("comment", ""),
        )


@dataclass(frozen=True)
class TableDef:
    """Definition of a table.

    Attributes:
        name: Table name (canonical identifier)
        fields: Stored fields in declaration order
        computed_fields: Derived fields resolved at read time
        seed_rows: Rows inserted once when the table is first initialized
        description: Free-form comment from the document
    """

    name: str
    fields: tuple[FieldDef, ...] = dataclass_field(default_factory=tuple)
    computed_fields: tuple[ComputedFieldDef, ...] = dataclass_field(default_factory=tuple)
    seed_rows: tuple[dict[str, Any], ...] = dataclass_field(default_factory=tuple)
    description: str = ""

    @property
    def primary_key(self) -> FieldDef | None:
        """The single primary key field, or None if not exactly one."""
        keys = [f for f in self.fields if f.primary_key]
        return keys[0] if len(keys) == 1 else None

    def get_field(self, name: str) -> FieldDef | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def get_computed_field(self, name: str) -> ComputedFieldDef | None:
        for c in self.computed_fields:
            if c.name == name:
                return c
        return None

    def get_field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def validate_payload(
        self,
        payload: dict[str, Any],
        partial: bool = False,
    ) -> tuple[bool, list[str]]:
        """Validate a row payload against this table.

        Args:
            payload: Dictionary of field values
            partial: Only validate the fields present (update semantics)

        Returns:
            Tuple of (is_valid, list_of_errors)
        """
        errors: list[str] = []

        known_names = {f.name for f in self.fields}
        unknown = set(payload.keys()) - known_names
        computed = unknown & {c.name for c in self.computed_fields}
        if computed:
            errors.append(f"Computed fields cannot be written: {sorted(computed)}")
        if unknown - computed:
            errors.append(f"Unknown fields: {sorted(unknown - computed)}")

        for f in self.fields:
            if f.primary_key and f.name not in payload:
                continue
            if partial and f.name not in payload:
                continue
            value = payload.get(f.name, f.default)
            is_valid, error = f.validate_value(value)
            if not is_valid and error:
                errors.append(error)

        return len(errors) == 0, errors

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "fields": [f.to_dict() for f in self.fields],
        }
        if self.computed_fields:
            result["computedFields"] = [c.to_dict() for c in self.computed_fields]
        if self.seed_rows:
            result["seedData"] = [dict(row) for row in self.seed_rows]
        if self.description:
            result["comment"] = self.description
        return result


@dataclass(frozen=True)
class IndexDef:
    """Index over one or more fields of a table."""

    table: str
    name: str
    fields: tuple[str, ...]
    unique: bool = False

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "table": self.table,
            "name": self.name,
            "fields": list(self.fields),
        }
        if self.unique:
            result["unique"] = True
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IndexDef:
        return cls(
            table=data["table"],
            name=data["name"],
            fields=tuple(data.get("fields", ())),
            unique=data.get("unique", False),
        )


def split_ref(ref: str) -> tuple[str, str]:
    """Split a "table.field" reference.

    Raises:
        ValueError: If the reference is not of the form table.field
    """
    table, sep, field_name = str(ref).partition(".")
    if not sep or not table or not field_name or "." in field_name:
        raise ValueError(f"Invalid field reference '{ref}', expected 'table.field'")
    return table, field_name


@dataclass(frozen=True)
class RelationDef:
    """Many-to-one relation from a referencing field to a referenced field.

    Attributes:
        from_table: Table holding the foreign key
        from_field: Foreign key field
        to_table: Referenced table
        to_field: Referenced field (the primary key)
        kind: Relation cardinality label ("many-to-one")
        on_delete: Policy applied when the referenced row is deleted (always
            set on relations held by a loaded registry)
        label: Human-readable description
    """

    from_table: str
    from_field: str
    to_table: str
    to_field: str
    kind: str = "many-to-one"
    on_delete: OnDelete | None = None
    label: str = ""

    @property
    def from_ref(self) -> str:
        return f"{self.from_table}.{self.from_field}"

    @property
    def to_ref(self) -> str:
        return f"{self.to_table}.{self.to_field}"

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "from": self.from_ref,
            "to": self.to_ref,
            "type": self.kind,
        }
        if self.on_delete is not None:
            result["onDelete"] = self.on_delete.value
        if self.label:
            result["label"] = self.label
        return result


@dataclass(frozen=True)
class TermOffset:
    """Calendar offset applied to a start date: whole months, then days."""

    months: int = 0
    days: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"months": self.months, "days": self.days}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TermOffset:
        return cls(months=int(data.get("months", 0)), days=int(data.get("days", 0)))


@dataclass(frozen=True)
class AutoCalculationRule:
    """Rule deriving one date field from a start date and a term.

    Attributes:
        table: Table the rule operates on
        target: Field written by the rule
        triggers: Fields whose change fires the rule
        source: Date field the offset is applied to
        selector: Foreign key field selecting the term-bearing row
        lookup_table: Table the selector points to
        lookup_field: Column of lookup_table holding the term
        offsets: Offset per term value
    """

    table: str
    target: str
    triggers: tuple[str, ...]
    source: str
    selector: str
    lookup_table: str
    lookup_field: str
    offsets: dict[str, TermOffset] = dataclass_field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "target": self.target,
            "triggers": list(self.triggers),
            "source": self.source,
            "selector": self.selector,
            "lookup": f"{self.lookup_table}.{self.lookup_field}",
            "offsets": {term: offset.to_dict() for term, offset in sorted(self.offsets.items())},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AutoCalculationRule:
        lookup_table, lookup_field = split_ref(data["lookup"])
        return cls(
            table=data["table"],
            target=data["target"],
            triggers=tuple(data.get("triggers", ())),
            source=data["source"],
            selector=data["selector"],
            lookup_table=lookup_table,
            lookup_field=lookup_field,
            offsets={
                term: TermOffset.from_dict(offset)
                for term, offset in data.get("offsets", {}).items()
            },
        )
