"""
Computed field resolution.

Computed fields are declared per table in the schema document and are
never persisted. Every read recomputes them from the row and a settings
snapshot:

    price.net_amount = gross_amount / (1 + rate / 100)
        rate is the number named by the active-rate pointer setting
    member.age = floor(days_between(birth_date, reference_date) / 365.25)
        absent when birth_date is absent

Invariants:
    - Resolution is pure: no caching, no writes, same inputs same output
    - A degenerate rate (<= -100) is an error, never a displayed value
    - Every computed field in the schema has a formula here
"""

from __future__ import annotations

import logging
import math
from datetime import date
from typing import Any, Callable, Mapping, Optional

from .codec import SettingType
from .config import Settings
from .dates import as_date
from .errors import ComputedFieldError, NotFoundError, ParseError
from .schema import SchemaRegistry
from .settings import SettingsReader

logger = logging.getLogger(__name__)

DEFAULT_RATE_POINTER = "active_rate_key"
DAYS_PER_YEAR = 365.25


def net_amount(gross_amount: float, rate_percent: float) -> float:
    """Net amount of a gross amount under a percentage rate.

    Raises:
        ComputedFieldError: If rate_percent <= -100
    """
    if rate_percent <= -100:
        raise ComputedFieldError(
            f"Rate {rate_percent}% leaves no net amount",
            entity_kind="price",
            field_name="net_amount",
        )
    return gross_amount / (1 + rate_percent / 100)


def age_in_years(birth_date: date, reference_date: date) -> int:
    """Whole years between birth_date and reference_date."""
    return math.floor((reference_date - birth_date).days / DAYS_PER_YEAR)


Formula = Callable[[Mapping[str, Any], SettingsReader, date], Any]


class ComputedFieldResolver:
    """Resolves computed fields of table rows.

    Example:
        >>> resolver = ComputedFieldResolver(registry)
        >>> resolver.resolve("price", {"gross_amount": 119.0}, config.snapshot())
        100.0
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        rate_pointer_key: str = DEFAULT_RATE_POINTER,
    ) -> None:
        """Bind the resolver to a schema.

        Raises:
            ComputedFieldError: If the schema declares a computed field
                without a formula
        """
        self.registry = registry
        self.rate_pointer_key = rate_pointer_key
        self._formulas: dict[tuple[str, str], Formula] = {
            ("price", "net_amount"): self._net_amount,
            ("member", "age"): self._age,
        }

        for table in registry.tables():
            for computed in table.computed_fields:
                if (table.name, computed.name) not in self._formulas:
                    raise ComputedFieldError(
                        f"No formula for computed field '{table.name}.{computed.name}'",
                        entity_kind=table.name,
                        field_name=computed.name,
                    )

    @classmethod
    def from_settings(cls, registry: SchemaRegistry, settings: Settings) -> ComputedFieldResolver:
        return cls(registry, rate_pointer_key=settings.active_rate_pointer_key)

    def resolve(
        self,
        entity_kind: str,
        instance: Mapping[str, Any],
        config: SettingsReader,
        field: Optional[str] = None,
        reference_date: Optional[date] = None,
    ) -> Any:
        """Compute one computed field of a row.

        Args:
            entity_kind: Table name
            instance: Row values
            config: Settings snapshot (or live store)
            field: Computed field name; may be omitted when the table has
                exactly one computed field
            reference_date: "Today" for date-relative formulas

        Returns:
            The computed value, or None when it is not defined for the row
            (e.g. age without a birth date)

        Raises:
            ComputedFieldError: If the field is unknown or the computation
                is undefined for these inputs
            NotFoundError, ParseError: If a required setting is missing or
                malformed
        """
        name = self._field_name(entity_kind, field)
        formula = self._formulas[(entity_kind, name)]
        return formula(instance, config, reference_date or date.today())

    def resolve_all(
        self,
        entity_kind: str,
        instance: Mapping[str, Any],
        config: SettingsReader,
        reference_date: Optional[date] = None,
    ) -> dict[str, Any]:
        """Compute every computed field of a row for display.

        Fields whose computation fails (undefined result, missing or
        malformed setting) are reported as None and logged.
        """
        values: dict[str, Any] = {}
        for computed in self._computed(entity_kind):
            try:
                values[computed.name] = self.resolve(
                    entity_kind, instance, config, computed.name, reference_date
                )
            except (ComputedFieldError, NotFoundError, ParseError) as exc:
                logger.warning(
                    "Computed field unavailable",
                    extra={"table": entity_kind, "field": computed.name, "reason": exc.message},
                )
                values[computed.name] = None
        return values

    # -- Formulas -----------------------------------------------------------------

    def _net_amount(self, instance: Mapping[str, Any], config: SettingsReader, today: date) -> float:
        gross = instance.get("gross_amount")
        if gross is None:
            raise ComputedFieldError(
                "Price has no gross amount",
                entity_kind="price",
                field_name="net_amount",
            )
        rate = config.resolve_indirect(self.rate_pointer_key, expected=SettingType.NUMBER)
        return net_amount(gross, rate)

    def _age(self, instance: Mapping[str, Any], config: SettingsReader, today: date) -> Optional[int]:
        try:
            birth_date = as_date(instance.get("birth_date"))
        except ValueError as exc:
            raise ComputedFieldError(
                f"Invalid birth date: {exc}",
                entity_kind="member",
                field_name="age",
            ) from exc
        if birth_date is None:
            return None
        return age_in_years(birth_date, today)

    # -- Helpers -------------------------------------------------------------------

    def _computed(self, entity_kind: str):
        table = self.registry.get_table(entity_kind)
        if table is None:
            raise ComputedFieldError(f"Unknown table '{entity_kind}'", entity_kind=entity_kind)
        return table.computed_fields

    def _field_name(self, entity_kind: str, field: Optional[str]) -> str:
        computed = self._computed(entity_kind)
        if field is None:
            if len(computed) != 1:
                raise ComputedFieldError(
                    f"Table '{entity_kind}' has {len(computed)} computed fields; name one",
                    entity_kind=entity_kind,
                )
            return computed[0].name
        if not any(c.name == field for c in computed):
            raise ComputedFieldError(
                f"'{entity_kind}.{field}' is not a computed field",
                entity_kind=entity_kind,
                field_name=field,
            )
        return field
