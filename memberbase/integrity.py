"""
Referential integrity enforcement for deletes.

Before a row is deleted, every relation pointing at its table is applied
according to its declared policy:

    RESTRICT  any referencing row refuses the delete
    SET NULL  referencing rows have the foreign key cleared

Invariants:
    - All RESTRICT relations are checked before any reference is cleared,
      so a refused delete never mutates a row
    - Only rows that reference the deleted id are touched
    - Referenced rows (e.g. notes) are never deleted by a cascade
    - The caller runs before_delete() and the delete itself inside one
      transaction; the enforcer does not open transactions

How to change safely:
    - New policies need a branch here and a DDL rendering in schema.ddl
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from .errors import ReferentialIntegrityError
from .schema import OnDelete, SchemaRegistry

logger = logging.getLogger(__name__)


class RowAccess(Protocol):
    """Transaction-scoped access to referencing rows."""

    def referencing_ids(self, table: str, field_name: str, value: Any) -> list[Any]:
        """Primary keys of rows in `table` whose `field_name` equals `value`."""
        ...

    def clear_reference(self, table: str, field_name: str, ids: list[Any]) -> int:
        """Set `field_name` to NULL on the given rows, returning the count."""
        ...


@dataclass
class DeleteOutcome:
    """Result of applying delete policies for one row.

    Attributes:
        table: Table of the row being deleted
        row_id: Primary key of the row being deleted
        cleared: Mapping of "table.field" to the ids whose reference was cleared
    """

    table: str
    row_id: Any
    cleared: dict[str, list[Any]] = field(default_factory=dict)

    @property
    def cleared_count(self) -> int:
        return sum(len(ids) for ids in self.cleared.values())


class ReferentialIntegrityEnforcer:
    """Applies declared delete policies across relations.

    Example:
        >>> enforcer = ReferentialIntegrityEnforcer(registry)
        >>> with db.transaction() as rows:
        ...     outcome = enforcer.before_delete("note", 7, rows)
        ...     # delete the note row here
    """

    def __init__(self, registry: SchemaRegistry) -> None:
        self.registry = registry

    def before_delete(self, entity_kind: str, row_id: Any, rows: RowAccess) -> DeleteOutcome:
        """Apply delete policies for `entity_kind` row `row_id`.

        Args:
            entity_kind: Table of the row about to be deleted
            row_id: Primary key of that row
            rows: Row access bound to the caller's transaction

        Returns:
            DeleteOutcome describing the cleared references

        Raises:
            ReferentialIntegrityError: If a RESTRICT relation still has references
            KeyError: If entity_kind is not a known table
        """
        self.registry.require_table(entity_kind)
        relations = self.registry.relations_to(entity_kind)

        blocking: dict[str, list[Any]] = {}
        for relation in relations:
            if relation.on_delete != OnDelete.RESTRICT:
                continue
            ids = rows.referencing_ids(relation.from_table, relation.from_field, row_id)
            if ids:
                blocking[relation.from_ref] = ids

        if blocking:
            logger.info(
                "Delete refused by restrict policy",
                extra={"table": entity_kind, "id": row_id, "blocking": sorted(blocking)},
            )
            raise ReferentialIntegrityError(entity_kind, row_id, blocking)

        outcome = DeleteOutcome(table=entity_kind, row_id=row_id)
        for relation in relations:
            if relation.on_delete != OnDelete.SET_NULL:
                continue
            ids = rows.referencing_ids(relation.from_table, relation.from_field, row_id)
            if not ids:
                continue
            rows.clear_reference(relation.from_table, relation.from_field, ids)
            outcome.cleared[relation.from_ref] = ids

        logger.debug(
            "Applied delete policies",
            extra={"table": entity_kind, "id": row_id, "cleared": outcome.cleared_count},
        )
        return outcome
