"""
Settings for memberbase.

Typed key/value settings with a per-entry editability flag and one level of
key indirection ("active selection" pointers).
"""

from ..codec import SettingType, format_value, parse_value
from .entries import ConfigEntry, ConfigSnapshot, SettingPointer, SettingsReader
from .store import ConfigStore

__all__ = [
    "ConfigEntry",
    "ConfigSnapshot",
    "ConfigStore",
    "SettingPointer",
    "SettingsReader",
    "SettingType",
    "format_value",
    "parse_value",
]
