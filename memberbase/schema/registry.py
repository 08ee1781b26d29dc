"""
Schema Registry for memberbase.

The SchemaRegistry is the central, read-only authority for the schema
document. It provides:
- Loading from a mapping, a JSON/YAML file or the bundled document
- Exhaustive validation (every violation is reported in one pass)
- Lookup of tables, fields, relations, indexes, seed rows and rules
- Schema fingerprinting for consistency checks

Invariants:
    - A registry only exists if its document validated; load() either
      returns a frozen registry or raises SchemaValidationError
    - Every foreign key is covered by exactly one relation
    - The registry is never mutated after load

How to change safely:
    - Add new checks to _validate(); never stop at the first error
    - Keep to_dict() canonical so fingerprints stay comparable

Example:
    >>> registry = SchemaRegistry.load_default()
    >>> registry.get_table("member").primary_key.name
    'id'
    >>> [r.from_ref for r in registry.relations_to("note")]
    ['member.note_id', 'service.note_id', 'price.note_id']
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Mapping
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

import yaml

from ..codec import SettingType, parse_value
from ..errors import ParseError, SchemaValidationError
from .types import (
    AutoCalculationRule,
    ComputedFieldDef,
    FieldDef,
    FieldKind,
    IndexDef,
    OnDelete,
    RelationDef,
    TableDef,
    split_ref,
)

logger = logging.getLogger(__name__)

DEFAULT_DOCUMENT = "structure.json"
DEFAULT_CONFIG_TABLE = "config_entry"
CONFIG_TABLE_FIELDS = ("key", "value", "type", "editable")
TIMESTAMP_DEFAULTS = frozenset({"CURRENT_TIMESTAMP", "CURRENT_DATE"})
SUPPORTED_RELATION_KINDS = frozenset({"many-to-one"})


class SchemaRegistry:
    """Validated, frozen view of a schema document.

    Instances are created through load(), from_file() or load_default().

    Attributes:
        fingerprint: SHA-256 hash of the canonical schema
        meta: The document's _meta section
        config_table: Name of the key/value settings table
    """

    def __init__(
        self,
        tables: Dict[str, TableDef],
        relations: List[RelationDef],
        indexes: List[IndexDef],
        rules: List[AutoCalculationRule],
        config_table: str,
        meta: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._tables = tables
        self._relations = tuple(relations)
        self._indexes = tuple(indexes)
        self._rules = {(r.table, r.target): r for r in rules}
        self._config_table = config_table
        self._meta = dict(meta or {})
        self._fingerprint = self._compute_fingerprint()

    # -- Loading -------------------------------------------------------------

    @classmethod
    def load(cls, document: Mapping) -> SchemaRegistry:
        """Validate a parsed schema document and build a registry.

        Args:
            document: Parsed document; either the full document with a
                "database" section or the database section itself

        Returns:
            Frozen SchemaRegistry

        Raises:
            SchemaValidationError: With every violation found
        """
        if not isinstance(document, Mapping):
            raise SchemaValidationError(["Schema document must be a mapping"])

        database = document.get("database", document)
        if not isinstance(database, Mapping):
            raise SchemaValidationError(["'database' section must be a mapping"])

        errors: List[str] = []
        tables = _parse_tables(database.get("tables", []), errors)
        relations = _parse_relations(database.get("relations", []), errors)
        indexes = _parse_indexes(database.get("indexes", []), errors)
        rules = _parse_rules(database.get("autoCalculationRules", []), errors)
        config_table = database.get("configTable", DEFAULT_CONFIG_TABLE)
        if not isinstance(config_table, str) or not config_table:
            errors.append(f"'configTable' must be a non-empty string, got {config_table!r}")
            config_table = DEFAULT_CONFIG_TABLE

        relations = _validate(tables, relations, indexes, rules, config_table, errors)

        if errors:
            logger.error(
                "Schema validation failed",
                extra={"error_count": len(errors)},
            )
            raise SchemaValidationError(errors)

        registry = cls(
            tables={t.name: t for t in tables},
            relations=relations,
            indexes=indexes,
            rules=rules,
            config_table=config_table,
            meta=document.get("_meta"),
        )
        logger.info(
            f"Schema loaded with {len(tables)} tables, {len(relations)} relations, "
            f"fingerprint={registry.fingerprint}"
        )
        return registry

    @classmethod
    def from_file(cls, path: str | Path) -> SchemaRegistry:
        """Load a schema document from a .json, .yaml or .yml file.

        Raises:
            SchemaValidationError: If the file cannot be read or is invalid
        """
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                if path.suffix.lower() in (".yaml", ".yml"):
                    document = yaml.safe_load(f)
                else:
                    document = json.load(f)
        except (OSError, ValueError, yaml.YAMLError) as exc:
            raise SchemaValidationError([f"Cannot read schema document {path}: {exc}"]) from exc
        return cls.load(document)

    @classmethod
    def load_default(cls) -> SchemaRegistry:
        """Load the schema document bundled with the package."""
        text = resources.files(__package__).joinpath(DEFAULT_DOCUMENT).read_text(encoding="utf-8")
        return cls.load(json.loads(text))

    # -- Lookups -------------------------------------------------------------

    @property
    def fingerprint(self) -> str:
        return self._fingerprint

    @property
    def meta(self) -> Dict[str, Any]:
        return dict(self._meta)

    @property
    def config_table(self) -> str:
        return self._config_table

    def get_table(self, name: str) -> Optional[TableDef]:
        """Get a table by name, None if unknown."""
        return self._tables.get(name)

    def require_table(self, name: str) -> TableDef:
        """Get a table by name.

        Raises:
            KeyError: If the table is unknown
        """
        table = self._tables.get(name)
        if table is None:
            raise KeyError(f"Unknown table '{name}'")
        return table

    def tables(self) -> Iterator[TableDef]:
        """Iterate over tables in declaration order."""
        yield from self._tables.values()

    def relations(self) -> Tuple[RelationDef, ...]:
        return self._relations

    def relations_to(self, table: str) -> List[RelationDef]:
        """Relations whose referenced table is `table`."""
        return [r for r in self._relations if r.to_table == table]

    def relations_from(self, table: str) -> List[RelationDef]:
        """Relations whose referencing table is `table`."""
        return [r for r in self._relations if r.from_table == table]

    def indexes(self, table: Optional[str] = None) -> List[IndexDef]:
        return [i for i in self._indexes if table is None or i.table == table]

    def computed_fields(self, table: str) -> Tuple[ComputedFieldDef, ...]:
        return self.require_table(table).computed_fields

    def seed_rows(self, table: str) -> Tuple[Dict[str, Any], ...]:
        return self.require_table(table).seed_rows

    def auto_calculation(self, table: str, target: str) -> Optional[AutoCalculationRule]:
        """Get the auto-calculation rule writing `table.target`, if any."""
        return self._rules.get((table, target))

    def auto_calculations(self) -> List[AutoCalculationRule]:
        return list(self._rules.values())

    def enum_values(self, table: str, field_name: str) -> Tuple[str, ...]:
        """Closed value set of an enumerated field.

        Raises:
            KeyError: If the table or field is unknown or not enumerated
        """
        f = self.require_table(table).get_field(field_name)
        if f is None or not f.enum_values:
            raise KeyError(f"'{table}.{field_name}' is not an enumerated field")
        return f.enum_values

    def enum_domains(self) -> Dict[str, Tuple[str, ...]]:
        """All enumerated domains, keyed by "table.field"."""
        return {
            f"{t.name}.{f.name}": f.enum_values
            for t in self._tables.values()
            for f in t.fields
            if f.enum_values
        }

    # -- Serialization -------------------------------------------------------

    def to_dict(self) -> dict:
        """Canonical dictionary representation of the database section."""
        return {
            "configTable": self._config_table,
            "tables": [t.to_dict() for t in self._tables.values()],
            "indexes": [i.to_dict() for i in self._indexes],
            "relations": [r.to_dict() for r in self._relations],
            "autoCalculationRules": [r.to_dict() for r in self._rules.values()],
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True, ensure_ascii=False)

    def _compute_fingerprint(self) -> str:
        """Compute SHA-256 fingerprint of the canonical schema.

        Returns:
            Fingerprint string in format 'sha256:<hash>'
        """
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        hash_bytes = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
        return f"sha256:{hash_bytes}"


# -- Parsing -----------------------------------------------------------------

SCALAR_TYPES = (str, int, float, bool)


def _shape_error(raw: Any, required: Tuple[str, ...]) -> Optional[str]:
    """Describe why an entry cannot be parsed, None if its shape is usable."""
    if not isinstance(raw, Mapping):
        return f"must be a mapping, got {type(raw).__name__}"
    for key in required:
        if not isinstance(raw.get(key), str) or not raw.get(key):
            return f"'{key}' must be a non-empty string"
    return None


def _field_shape_error(raw: Any) -> Optional[str]:
    error = _shape_error(raw, ("name", "type"))
    if error:
        return error
    max_length = raw.get("maxLength")
    if max_length is not None and (isinstance(max_length, bool) or not isinstance(max_length, int)):
        return f"maxLength must be an integer, got {max_length!r}"
    minimum = raw.get("minimum")
    if minimum is not None and (
        isinstance(minimum, bool) or not isinstance(minimum, (int, float))
    ):
        return f"minimum must be a number, got {minimum!r}"
    enum_values = raw.get("enum")
    if enum_values is not None and (
        not isinstance(enum_values, list)
        or not all(isinstance(v, SCALAR_TYPES) for v in enum_values)
    ):
        return "enum must be a list of scalar values"
    default = raw.get("default")
    if default is not None and not isinstance(default, SCALAR_TYPES):
        return f"default must be a scalar value, got {type(default).__name__}"
    foreign_key = raw.get("foreignKey")
    if foreign_key is not None:
        error = _shape_error(foreign_key, ("table",))
        if error:
            return f"foreignKey {error}"
        if not isinstance(foreign_key.get("field", "id"), str):
            return "foreignKey 'field' must be a string"
    return None


def _as_list(raw: Any, label: str, errors: List[str]) -> list:
    if raw is None:
        return []
    if not isinstance(raw, list):
        errors.append(f"{label} must be a list")
        return []
    return raw


def _parse_tables(raw_tables: Any, errors: List[str]) -> List[TableDef]:
    if not isinstance(raw_tables, list):
        errors.append("'tables' must be a list")
        return []

    tables: List[TableDef] = []
    for i, raw in enumerate(raw_tables):
        error = _shape_error(raw, ("name",))
        if error:
            errors.append(f"Table #{i}: {error}")
            continue
        name = raw["name"]

        fields: List[FieldDef] = []
        raw_fields = _as_list(raw.get("fields"), f"Table '{name}' fields", errors)
        for j, raw_field in enumerate(raw_fields):
            error = _field_shape_error(raw_field)
            if error:
                errors.append(f"Table '{name}' field #{j}: {error}")
                continue
            try:
                fields.append(FieldDef.from_dict(raw_field))
            except (KeyError, TypeError, ValueError) as exc:
                errors.append(f"Table '{name}' field #{j}: {_describe(exc)}")

        computed: List[ComputedFieldDef] = []
        raw_computed_fields = _as_list(
            raw.get("computedFields"), f"Table '{name}' computedFields", errors
        )
        for j, raw_computed in enumerate(raw_computed_fields):
            error = _shape_error(raw_computed, ("name",))
            if error:
                errors.append(f"Table '{name}' computed field #{j}: {error}")
                continue
            computed.append(ComputedFieldDef.from_dict(raw_computed))

        seed_rows = raw.get("seedData", [])
        if not isinstance(seed_rows, list) or not all(isinstance(r, Mapping) for r in seed_rows):
            errors.append(f"Table '{name}' seedData must be a list of mappings")
            seed_rows = []

        tables.append(
            TableDef(
                name=name,
                fields=tuple(fields),
                computed_fields=tuple(computed),
                seed_rows=tuple(dict(r) for r in seed_rows),
                description=raw.get("comment", ""),
            )
        )
    return tables


def _parse_relations(raw_relations: Any, errors: List[str]) -> List[RelationDef]:
    relations: List[RelationDef] = []
    for i, raw in enumerate(_as_list(raw_relations, "'relations'", errors)):
        error = _shape_error(raw, ("from", "to"))
        if error is None and not isinstance(raw.get("type", "many-to-one"), str):
            error = "'type' must be a string"
        if error:
            errors.append(f"Relation #{i}: {error}")
            continue
        try:
            from_table, from_field = split_ref(raw["from"])
            to_table, to_field = split_ref(raw["to"])
            on_delete = raw.get("onDelete")
            relations.append(
                RelationDef(
                    from_table=from_table,
                    from_field=from_field,
                    to_table=to_table,
                    to_field=to_field,
                    kind=raw.get("type", "many-to-one"),
                    on_delete=OnDelete.from_str(on_delete) if on_delete else None,
                    label=raw.get("label", ""),
                )
            )
        except ValueError as exc:
            errors.append(f"Relation #{i}: {_describe(exc)}")
    return relations


def _parse_indexes(raw_indexes: Any, errors: List[str]) -> List[IndexDef]:
    indexes: List[IndexDef] = []
    for i, raw in enumerate(_as_list(raw_indexes, "'indexes'", errors)):
        error = _shape_error(raw, ("table", "name"))
        if error is None:
            index_fields = raw.get("fields", [])
            if not isinstance(index_fields, list) or not all(
                isinstance(f, str) for f in index_fields
            ):
                error = "'fields' must be a list of field names"
        if error:
            errors.append(f"Index #{i}: {error}")
            continue
        indexes.append(IndexDef.from_dict(raw))
    return indexes


def _parse_rules(raw_rules: Any, errors: List[str]) -> List[AutoCalculationRule]:
    rules: List[AutoCalculationRule] = []
    for i, raw in enumerate(_as_list(raw_rules, "'autoCalculationRules'", errors)):
        error = _shape_error(raw, ("table", "target", "source", "selector", "lookup"))
        if error is None and not (
            isinstance(raw.get("triggers", []), list)
            and all(isinstance(t, str) for t in raw.get("triggers", []))
        ):
            error = "'triggers' must be a list of field names"
        if error is None and not isinstance(raw.get("offsets", {}), Mapping):
            error = "'offsets' must be a mapping of term to offset"
        if error:
            errors.append(f"Auto-calculation rule #{i}: {error}")
            continue
        try:
            rules.append(AutoCalculationRule.from_dict(raw))
        except (TypeError, ValueError, AttributeError) as exc:
            errors.append(f"Auto-calculation rule #{i}: {_describe(exc)}")
    return rules


def _describe(exc: Exception) -> str:
    if isinstance(exc, KeyError):
        return f"missing key {exc}"
    return str(exc)


# -- Validation --------------------------------------------------------------


def _validate(
    tables: List[TableDef],
    relations: List[RelationDef],
    indexes: List[IndexDef],
    rules: List[AutoCalculationRule],
    config_table: str,
    errors: List[str],
) -> List[RelationDef]:
    """Run every cross-check, appending to errors.

    Returns:
        The complete relation list: declared relations with their delete
        policy resolved, plus one relation per undeclared foreign key
    """
    by_name: Dict[str, TableDef] = {}
    for table in tables:
        if table.name in by_name:
            errors.append(f"Duplicate table name '{table.name}'")
            continue
        by_name[table.name] = table

    for table in tables:
        _validate_table(table, by_name, errors)

    resolved = _validate_relations(relations, by_name, errors)
    _validate_indexes(indexes, by_name, errors)
    _validate_config_table(config_table, by_name, errors)
    for rule in rules:
        _validate_rule(rule, by_name, errors)
    return resolved


def _validate_table(table: TableDef, tables: Dict[str, TableDef], errors: List[str]) -> None:
    keys = [f for f in table.fields if f.primary_key]
    if len(keys) != 1:
        errors.append(
            f"Table '{table.name}' must have exactly one primary key, found {len(keys)}"
        )

    seen: set[str] = set()
    for f in table.fields:
        ref = f"{table.name}.{f.name}"
        if f.name in seen:
            errors.append(f"Duplicate field name '{ref}'")
        seen.add(f.name)

        if f.enum_values is not None:
            if not f.enum_values:
                errors.append(f"Enum field '{ref}' must declare at least one value")
            elif len(set(f.enum_values)) != len(f.enum_values):
                errors.append(f"Enum field '{ref}' declares duplicate values")
        if f.max_length is not None and (f.kind != FieldKind.TEXT or f.max_length <= 0):
            errors.append(f"Field '{ref}' maxLength must be a positive length on a TEXT field")
        if f.minimum is not None and f.kind not in (FieldKind.INTEGER, FieldKind.REAL):
            errors.append(f"Field '{ref}' minimum is only valid on numeric fields")
        if f.default is not None and f.default not in TIMESTAMP_DEFAULTS:
            is_valid, error = f.validate_value(f.default)
            if not is_valid:
                errors.append(f"Default of '{ref}' is invalid: {error}")

        fk = f.foreign_key
        if fk is None:
            continue
        target = tables.get(fk.table)
        if target is None:
            errors.append(f"Foreign key '{ref}' references unknown table '{fk.table}'")
            continue
        target_field = target.get_field(fk.field)
        if target_field is None:
            errors.append(f"Foreign key '{ref}' references unknown field '{fk.table}.{fk.field}'")
        elif not target_field.primary_key:
            errors.append(
                f"Foreign key '{ref}' must reference the primary key of '{fk.table}'"
            )
        if fk.on_delete == OnDelete.SET_NULL and not f.nullable:
            errors.append(f"Foreign key '{ref}' uses SET NULL but is not nullable")

    for c in table.computed_fields:
        if c.name in seen:
            errors.append(
                f"Computed field '{table.name}.{c.name}' clashes with a stored field"
            )

    for i, row in enumerate(table.seed_rows):
        _, row_errors = table.validate_payload(row)
        for error in row_errors:
            errors.append(f"Seed row #{i} of '{table.name}': {error}")


def _validate_relations(
    relations: List[RelationDef],
    tables: Dict[str, TableDef],
    errors: List[str],
) -> List[RelationDef]:
    resolved: List[RelationDef] = []
    covered: set[str] = set()

    for relation in relations:
        label = f"Relation '{relation.from_ref}' -> '{relation.to_ref}'"
        if relation.kind not in SUPPORTED_RELATION_KINDS:
            errors.append(f"{label} has unsupported type '{relation.kind}'")

        from_table = tables.get(relation.from_table)
        to_table = tables.get(relation.to_table)
        from_field = from_table.get_field(relation.from_field) if from_table else None
        to_field = to_table.get_field(relation.to_field) if to_table else None
        if from_field is None:
            errors.append(f"{label}: 'from' field '{relation.from_ref}' does not exist")
        if to_field is None:
            errors.append(f"{label}: 'to' field '{relation.to_ref}' does not exist")
        if from_field is None or to_field is None:
            continue

        fk = from_field.foreign_key
        if fk is None or (fk.table, fk.field) != (relation.to_table, relation.to_field):
            errors.append(f"{label} is not backed by a matching foreign key")
            continue
        if relation.on_delete is not None and relation.on_delete != fk.on_delete:
            errors.append(
                f"{label} declares onDelete {relation.on_delete.value} but the foreign key "
                f"declares {fk.on_delete.value}"
            )
            continue
        if relation.from_ref in covered:
            errors.append(f"{label} is declared more than once")
            continue

        covered.add(relation.from_ref)
        resolved.append(
            RelationDef(
                from_table=relation.from_table,
                from_field=relation.from_field,
                to_table=relation.to_table,
                to_field=relation.to_field,
                kind=relation.kind,
                on_delete=fk.on_delete,
                label=relation.label,
            )
        )

    for table in tables.values():
        for f in table.fields:
            ref = f"{table.name}.{f.name}"
            if f.foreign_key is None or ref in covered:
                continue
            if f.foreign_key.table not in tables:
                continue
            logger.debug(f"Adding implicit relation for undeclared foreign key {ref}")
            resolved.append(
                RelationDef(
                    from_table=table.name,
                    from_field=f.name,
                    to_table=f.foreign_key.table,
                    to_field=f.foreign_key.field,
                    on_delete=f.foreign_key.on_delete,
                )
            )

    return resolved


def _validate_indexes(
    indexes: List[IndexDef],
    tables: Dict[str, TableDef],
    errors: List[str],
) -> None:
    names: set[str] = set()
    for index in indexes:
        if index.name in names:
            errors.append(f"Duplicate index name '{index.name}'")
        names.add(index.name)

        table = tables.get(index.table)
        if table is None:
            errors.append(f"Index '{index.name}' references unknown table '{index.table}'")
            continue
        if not index.fields:
            errors.append(f"Index '{index.name}' must list at least one field")
        for field_name in index.fields:
            if table.get_field(field_name) is None:
                errors.append(
                    f"Index '{index.name}' references unknown field '{index.table}.{field_name}'"
                )


def _validate_config_table(
    config_table: str,
    tables: Dict[str, TableDef],
    errors: List[str],
) -> None:
    table = tables.get(config_table)
    if table is None:
        errors.append(f"Config table '{config_table}' is not declared")
        return

    missing = [name for name in CONFIG_TABLE_FIELDS if table.get_field(name) is None]
    if missing:
        errors.append(f"Config table '{config_table}' is missing fields {missing}")
        return

    keys: set[str] = set()
    for i, row in enumerate(table.seed_rows):
        key = row.get("key")
        if not isinstance(key, str) or not key:
            errors.append(f"Seed row #{i} of '{config_table}': 'key' must be a non-empty string")
            continue
        text = row.get("value")
        if text is not None and not isinstance(text, str):
            errors.append(
                f"Seed row #{i} of '{config_table}': value of '{key}' must be text, "
                f"got {type(text).__name__}"
            )
            continue
        if key in keys:
            errors.append(f"Seed row #{i} of '{config_table}' repeats key '{key}'")
        keys.add(key)
        try:
            value_type = SettingType.from_str(row.get("type"))
        except ValueError as exc:
            errors.append(f"Seed row #{i} of '{config_table}': {exc}")
            continue
        try:
            parse_value(value_type, text, key=key)
        except ParseError as exc:
            errors.append(f"Seed row #{i} of '{config_table}': {exc.message}")


def _validate_rule(
    rule: AutoCalculationRule,
    tables: Dict[str, TableDef],
    errors: List[str],
) -> None:
    label = f"Auto-calculation rule for '{rule.table}.{rule.target}'"
    table = tables.get(rule.table)
    if table is None:
        errors.append(f"{label} references unknown table '{rule.table}'")
        return

    for role, name in (("target", rule.target), ("source", rule.source)):
        f = table.get_field(name)
        if f is None:
            errors.append(f"{label}: {role} field '{rule.table}.{name}' does not exist")
        elif f.kind != FieldKind.DATE:
            errors.append(f"{label}: {role} field '{rule.table}.{name}' must be a DATE")

    if not rule.triggers:
        errors.append(f"{label} must declare at least one trigger")
    for name in rule.triggers:
        if table.get_field(name) is None:
            errors.append(f"{label}: trigger field '{rule.table}.{name}' does not exist")
    if rule.target in rule.triggers:
        errors.append(f"{label}: the target cannot be its own trigger")

    selector = table.get_field(rule.selector)
    if selector is None:
        errors.append(f"{label}: selector field '{rule.table}.{rule.selector}' does not exist")
    elif selector.foreign_key is None or selector.foreign_key.table != rule.lookup_table:
        errors.append(
            f"{label}: selector '{rule.table}.{rule.selector}' must reference "
            f"'{rule.lookup_table}'"
        )

    lookup = tables.get(rule.lookup_table)
    term_field = lookup.get_field(rule.lookup_field) if lookup else None
    if term_field is None or not term_field.enum_values:
        errors.append(
            f"{label}: lookup '{rule.lookup_table}.{rule.lookup_field}' must be an "
            f"enumerated field"
        )
        return

    declared = set(term_field.enum_values)
    missing = sorted(declared - set(rule.offsets))
    extra = sorted(set(rule.offsets) - declared)
    if missing:
        errors.append(f"{label} has no offset for terms {missing}")
    if extra:
        errors.append(f"{label} declares offsets for unknown terms {extra}")
