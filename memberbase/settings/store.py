"""
Typed key/value settings store.

The ConfigStore is backed by the schema's config table. Rows are seeded
once from the schema document when the table is empty; afterwards only
their value changes.

Invariants:
    - Keys are unique and, like types, never change after seeding
    - Stored text always re-parses under the declared type
    - Non-editable settings are never written by set()
    - The editable check and the write run in one transaction
    - A failed set() leaves the stored value unchanged

How to change safely:
    - Add settings as seed rows in the schema document; existing
      databases keep their values because seeding only runs once

Example:
    >>> store = ConfigStore(db)
    >>> store.seed()
    10
    >>> store.resolve_indirect("active_rate_key")
    19
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from ..codec import SettingType, format_value
from ..errors import NotFoundError, ReadOnlySettingError
from ..store import Database
from .entries import ConfigEntry, ConfigSnapshot, SettingsReader

logger = logging.getLogger(__name__)


class ConfigStore(SettingsReader):
    """Live settings backed by the config table of a Database.

    Attributes:
        db: The backing database
        table: Name of the config table
    """

    def __init__(self, db: Database) -> None:
        self.db = db
        self.table = db.registry.config_table

    def seed(self) -> int:
        """Insert the schema's seed rows if the table is empty.

        Returns:
            Number of rows inserted (0 if the table was already populated)
        """
        with self.db.transaction():
            if self.db.count(self.table) > 0:
                logger.debug("Settings already seeded", extra={"table": self.table})
                return 0
            rows = self.db.registry.seed_rows(self.table)
            for row in rows:
                self.db.insert(self.table, dict(row))

        logger.info("Seeded settings", extra={"table": self.table, "count": len(rows)})
        return len(rows)

    def entry(self, key: str) -> ConfigEntry:
        return ConfigEntry.from_row(self._row(key))

    def entries(self, category: Optional[str] = None) -> List[ConfigEntry]:
        """All settings, optionally restricted to one category."""
        if category is None:
            rows = self.db.find(self.table)
        else:
            rows = self.db.find(self.table, category=category)
        return [ConfigEntry.from_row(row) for row in rows]

    def set(self, key: str, value: Any) -> Any:
        """Write a setting.

        Args:
            key: Existing setting key
            value: Typed value, or its text form

        Returns:
            The typed value now stored

        Raises:
            NotFoundError: If the key does not exist
            ReadOnlySettingError: If the setting is not editable
            ParseError: If the value is not valid for the setting's type
        """
        with self.db.transaction():
            row = self._row(key)
            entry = ConfigEntry.from_row(row)
            if not entry.editable:
                logger.warning("Rejected write to read-only setting", extra={"key": key})
                raise ReadOnlySettingError(key)

            text = format_value(entry.type, value, key=key)
            pk = self.db.registry.require_table(self.table).primary_key.name
            self.db.update(self.table, row[pk], {"value": text})

        logger.info("Setting updated", extra={"key": key, "type": entry.type.value})
        return ConfigEntry.from_row({**row, "value": text}).typed()

    def resolve_indirect(
        self,
        pointer_key: str,
        expected: Optional[SettingType] = None,
    ) -> Any:
        with self.db.transaction():
            return super().resolve_indirect(pointer_key, expected)

    def snapshot(self) -> ConfigSnapshot:
        """Consistent, immutable copy of all settings."""
        with self.db.transaction():
            entries = self.entries()
        return ConfigSnapshot({e.key: e for e in entries})

    def _row(self, key: str) -> dict[str, Any]:
        rows = self.db.find(self.table, key=key)
        if not rows:
            raise NotFoundError(f"Setting '{key}' not found", "setting", key)
        return rows[0]
