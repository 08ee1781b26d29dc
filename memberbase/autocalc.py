"""
Auto-calculation of derived date fields within an editing session.

A rule (declared in the schema document) derives a target date from a start
date and a term looked up through a selector foreign key:

    member.contract_end_date = contract_start_date + offset[service.term]

    one-off    s
    monthly    s + 1 month  - 1 day
    quarterly  s + 3 months - 1 day
    yearly     s + 12 months - 1 day

Months are added first and clamp to the last day of a shorter month, then
days are added (2026-01-31 monthly -> 2026-02-28 - 1 day = 2026-02-27).

Each EditSession is a small state machine:

    CLEAN       --trigger-->  COMPUTED
    COMPUTED    --edit target-->  OVERRIDDEN
    OVERRIDDEN  --trigger-->  COMPUTED
    CLEAN       --edit target-->  OVERRIDDEN

Invariants:
    - A trigger change always re-derives the target, even after an override
    - A trigger change with no start date or no term writes nothing
    - Edits to fields that are neither trigger nor target never change state
    - The cascade settles inside set(); submit() never sees a pending write

How to change safely:
    - New terms need an offset in the rule; the registry rejects rules whose
      offsets do not cover the term enumeration exactly
"""

from __future__ import annotations

import logging
from datetime import date
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from .dates import as_date, shift
from .schema import AutoCalculationRule, SchemaRegistry

logger = logging.getLogger(__name__)

# Maps a selector value (e.g. a service id) to its term, None if unknown.
TermLookup = Callable[[Any], Optional[str]]


class CalcState(str, Enum):
    """State of the target field within one editing session."""

    CLEAN = "clean"
    COMPUTED = "computed"
    OVERRIDDEN = "overridden"


def derive_end_date(start: date, term: str, rule: AutoCalculationRule) -> date:
    """Apply the rule's offset for `term` to `start`.

    Raises:
        ValueError: If the rule has no offset for the term
    """
    offset = rule.offsets.get(term)
    if offset is None:
        raise ValueError(f"No offset for term '{term}' in rule for {rule.table}.{rule.target}")
    return shift(start, months=offset.months, days=offset.days)


class EditSession:
    """Editing state of one row for one auto-calculation rule.

    Attributes:
        rule: The rule being applied
        state: Current CalcState
    """

    def __init__(
        self,
        rule: AutoCalculationRule,
        term_of: TermLookup,
        values: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Open a session on a row's current values.

        Raises:
            ValueError: If the start or target date is text that is not an ISO date
        """
        self.rule = rule
        self._term_of = term_of
        self._initial = dict(values or {})
        for name in (rule.source, rule.target):
            if name in self._initial:
                self._initial[name] = as_date(self._initial[name])
        self._values = dict(self._initial)
        self.state = CalcState.CLEAN

    @property
    def values(self) -> dict[str, Any]:
        return dict(self._values)

    def get(self, field_name: str) -> Any:
        return self._values.get(field_name)

    def set(self, field_name: str, value: Any) -> CalcState:
        """Record an edit and settle any resulting recomputation.

        Returns:
            The state after the edit

        Raises:
            ValueError: If a date field receives text that is not an ISO date
        """
        rule = self.rule
        if field_name == rule.target:
            self._values[field_name] = as_date(value)
            self.state = CalcState.OVERRIDDEN
            logger.debug("Target overridden", extra={"table": rule.table, "field": field_name})
        elif field_name in rule.triggers:
            if field_name == rule.source:
                value = as_date(value)
            self._values[field_name] = value
            self._fire()
        else:
            self._values[field_name] = value
        return self.state

    def submit(self) -> dict[str, Any]:
        """Values to persist; the session state is left as is."""
        logger.debug(
            "Edit session submitted",
            extra={"table": self.rule.table, "state": self.state.value},
        )
        return self.values

    def discard(self) -> None:
        """Drop all edits and return to the opening values."""
        self._values = dict(self._initial)
        self.state = CalcState.CLEAN

    def _fire(self) -> None:
        rule = self.rule
        start = self._values.get(rule.source)
        selected = self._values.get(rule.selector)
        term = self._term_of(selected) if selected is not None else None
        if start is None or term is None:
            logger.debug(
                "Rule inputs incomplete",
                extra={"table": rule.table, "target": rule.target},
            )
            return

        self._values[rule.target] = derive_end_date(start, term, rule)
        self.state = CalcState.COMPUTED
        logger.debug(
            "Target derived",
            extra={
                "table": rule.table,
                "target": rule.target,
                "term": term,
                "value": self._values[rule.target].isoformat(),
            },
        )


class AutoCalculationEngine:
    """Opens edit sessions for one auto-calculation rule.

    Example:
        >>> engine = AutoCalculationEngine.from_database(db)
        >>> session = engine.open_session({"service_id": 1})
        >>> session.set("contract_start_date", "2026-01-15")
        <CalcState.COMPUTED: 'computed'>
        >>> session.get("contract_end_date")
        datetime.date(2026, 2, 14)
    """

    def __init__(self, rule: AutoCalculationRule, term_of: TermLookup) -> None:
        self.rule = rule
        self.term_of = term_of

    def open_session(self, values: Optional[Mapping[str, Any]] = None) -> EditSession:
        return EditSession(self.rule, self.term_of, values)

    @classmethod
    def for_registry(
        cls,
        registry: SchemaRegistry,
        term_of: TermLookup,
        table: str = "member",
        target: str = "contract_end_date",
    ) -> AutoCalculationEngine:
        """Build an engine for the rule writing `table.target`.

        Raises:
            KeyError: If the schema declares no such rule
        """
        rule = registry.auto_calculation(table, target)
        if rule is None:
            raise KeyError(f"No auto-calculation rule for '{table}.{target}'")
        return cls(rule, term_of)

    @classmethod
    def from_database(
        cls,
        db: Any,
        table: str = "member",
        target: str = "contract_end_date",
    ) -> AutoCalculationEngine:
        """Build an engine whose terms are read from the database."""
        rule = db.registry.auto_calculation(table, target)
        if rule is None:
            raise KeyError(f"No auto-calculation rule for '{table}.{target}'")

        def term_of(selected: Any) -> Optional[str]:
            return db.lookup(rule.lookup_table, selected, rule.lookup_field)

        return cls(rule, term_of)
