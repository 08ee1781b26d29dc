"""
Typed text codec for settings values.

Setting values are stored as text and tagged with a type. Each tag has
exactly one parse function and one format function:

    string   any text, returned unchanged
    number   decimal text; integral text parses to int, others to float
    boolean  true/false/1/0 (case-insensitive), formatted as true/false
    date     ISO 8601 calendar date YYYY-MM-DD

Invariants:
    - parse(format(v)) == v for every valid typed value v
    - A failed parse raises ParseError; there are no silent defaults
    - NaN and infinities are not numbers for the purpose of settings
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable

from .errors import ParseError

_INTEGER_RE = re.compile(r"^[+-]?\d+$")
_DECIMAL_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_TRUE = frozenset({"true", "1"})
_FALSE = frozenset({"false", "0"})


class SettingType(Enum):
    """Declared type of a setting value."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"

    @classmethod
    def from_str(cls, value: str) -> SettingType:
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid setting type '{value}'. Valid types: {valid}")


def _parse_string(text: str) -> str:
    return text


def _parse_number(text: str) -> int | float:
    stripped = text.strip()
    if _INTEGER_RE.match(stripped):
        return int(stripped)
    if not _DECIMAL_RE.match(stripped):
        raise ValueError(f"'{text}' is not a number")
    value = float(stripped)
    if not math.isfinite(value):
        raise ValueError(f"'{text}' is not a finite number")
    return value


def _parse_boolean(text: str) -> bool:
    lowered = text.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"'{text}' is not a boolean")


def _parse_date(text: str) -> date:
    return date.fromisoformat(text.strip())


def _format_string(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError(f"expected text, got {type(value).__name__}")
    return value


def _format_number(value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"expected a number, got {type(value).__name__}")
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"{value} is not a finite number")
        return repr(value)
    return str(value)


def _format_boolean(value: Any) -> str:
    if not isinstance(value, bool):
        raise ValueError(f"expected a boolean, got {type(value).__name__}")
    return "true" if value else "false"


def _format_date(value: Any) -> str:
    if isinstance(value, datetime) or not isinstance(value, date):
        raise ValueError(f"expected a date, got {type(value).__name__}")
    return value.isoformat()


_PARSERS: dict[SettingType, Callable[[str], Any]] = {
    SettingType.STRING: _parse_string,
    SettingType.NUMBER: _parse_number,
    SettingType.BOOLEAN: _parse_boolean,
    SettingType.DATE: _parse_date,
}

_FORMATTERS: dict[SettingType, Callable[[Any], str]] = {
    SettingType.STRING: _format_string,
    SettingType.NUMBER: _format_number,
    SettingType.BOOLEAN: _format_boolean,
    SettingType.DATE: _format_date,
}


def parse_value(value_type: SettingType, text: str | None, key: str | None = None) -> Any:
    """Parse stored text under its declared type.

    Args:
        value_type: Declared setting type
        text: Stored text (None is only valid for string settings, as "")
        key: Setting key, for error context

    Returns:
        The typed value

    Raises:
        ParseError: If the text does not parse under value_type
    """
    if text is None:
        if value_type == SettingType.STRING:
            return ""
        raise ParseError(
            f"Setting '{key}' has no value for type {value_type.value}",
            key=key,
            value_type=value_type.value,
            raw=None,
        )
    try:
        return _PARSERS[value_type](text)
    except ValueError as exc:
        raise ParseError(
            f"Setting '{key}' value '{text}' is not a valid {value_type.value}: {exc}",
            key=key,
            value_type=value_type.value,
            raw=text,
        ) from exc


def format_value(value_type: SettingType, value: Any, key: str | None = None) -> str:
    """Format a value as canonical stored text.

    Text input is parsed first so that only valid, canonical text is stored.

    Raises:
        ParseError: If the value is not valid for value_type
    """
    if isinstance(value, str) and value_type != SettingType.STRING:
        value = parse_value(value_type, value, key=key)
    try:
        return _FORMATTERS[value_type](value)
    except ValueError as exc:
        raise ParseError(
            f"Setting '{key}' cannot store {value!r} as {value_type.value}: {exc}",
            key=key,
            value_type=value_type.value,
            raw=str(value),
        ) from exc
