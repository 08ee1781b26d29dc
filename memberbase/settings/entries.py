"""
Setting entries, pointers and read-only snapshots.

A setting is a typed, named value with an editability flag. Its value is
stored as text and parsed on every read through memberbase.codec.

A pointer setting is a string setting whose value is the *name* of another
setting (for example "active_rate_key" -> "vat_standard"). Pointers are
resolved only through resolve_indirect(), never through get(), so the
indirection stays explicit.

Invariants:
    - Reads never coerce: a value that does not parse raises ParseError
    - A snapshot never changes after it is taken
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional

from ..codec import SettingType, parse_value
from ..errors import NotFoundError, ParseError


@dataclass(frozen=True)
class ConfigEntry:
    """One setting as stored.

    Attributes:
        key: Unique, immutable setting name
        value: Stored text (None only for never-set string settings)
        type: Declared type used to parse value
        category: Grouping tag for settings screens
        label: Human-readable label
        help_text: Tooltip / help text
        editable: Whether user actions may write the value
    """

    key: str
    value: Optional[str]
    type: SettingType
    category: str
    label: str
    help_text: Optional[str] = None
    editable: bool = True

    def typed(self) -> Any:
        """Parse the stored text under the declared type.

        Raises:
            ParseError: If the text does not parse
        """
        return parse_value(self.type, self.value, key=self.key)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> ConfigEntry:
        return cls(
            key=row["key"],
            value=row["value"],
            type=SettingType.from_str(row["type"]),
            category=row.get("category", "other"),
            label=row.get("label", row["key"]),
            help_text=row.get("help_text"),
            editable=bool(row.get("editable", 1)),
        )


@dataclass(frozen=True)
class SettingPointer:
    """A setting whose value names another setting."""

    pointer_key: str
    target_key: str


class SettingsReader(ABC):
    """Typed reads shared by the live store and its snapshots.

    Subclasses provide entry(); everything else is defined in terms of it.
    """

    @abstractmethod
    def entry(self, key: str) -> ConfigEntry:
        """Stored entry for a key.

        Raises:
            NotFoundError: If the key does not exist
        """
        ...

    def get(self, key: str) -> Any:
        """Typed value of a setting.

        Raises:
            NotFoundError: If the key does not exist
            ParseError: If the stored text does not parse under its type
        """
        return self.entry(key).typed()

    def pointer(self, pointer_key: str) -> SettingPointer:
        """Read a pointer setting without following it.

        Raises:
            NotFoundError: If the pointer key does not exist or is empty
            ParseError: If the pointer setting is not a string setting
        """
        entry = self.entry(pointer_key)
        if entry.type != SettingType.STRING:
            raise ParseError(
                f"Setting '{pointer_key}' is a {entry.type.value} and cannot name another setting",
                key=pointer_key,
                value_type=entry.type.value,
                raw=entry.value,
            )
        target = (entry.value or "").strip()
        if not target:
            raise NotFoundError(
                f"Pointer setting '{pointer_key}' does not name a setting",
                "setting",
                pointer_key,
            )
        return SettingPointer(pointer_key=pointer_key, target_key=target)

    def resolve_indirect(
        self,
        pointer_key: str,
        expected: Optional[SettingType] = None,
    ) -> Any:
        """Follow a pointer setting and return the typed value it names.

        Args:
            pointer_key: Key of the pointer setting
            expected: Setting type the caller requires of the final value

        Raises:
            NotFoundError: If either hop is missing
            ParseError: If the final value does not parse, or is not of the
                expected type
        """
        pointer = self.pointer(pointer_key)
        target = self.entry(pointer.target_key)
        if expected is not None and target.type != expected:
            raise ParseError(
                f"Setting '{target.key}' (via '{pointer_key}') is a {target.type.value}, "
                f"expected {expected.value}",
                key=target.key,
                value_type=target.type.value,
                raw=target.value,
            )
        return target.typed()


class ConfigSnapshot(SettingsReader):
    """Immutable point-in-time copy of all settings.

    Example:
        >>> snapshot = ConfigSnapshot({"vat_standard": entry})
        >>> snapshot.get("vat_standard")
        19
    """

    def __init__(self, entries: Mapping[str, ConfigEntry]) -> None:
        self._entries = MappingProxyType(dict(entries))

    def entry(self, key: str) -> ConfigEntry:
        try:
            return self._entries[key]
        except KeyError:
            raise NotFoundError(f"Setting '{key}' not found", "setting", key) from None

    def keys(self) -> Iterator[str]:
        return iter(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
