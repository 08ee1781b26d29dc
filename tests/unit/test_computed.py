"""
Unit tests for computed field resolution.

Tests cover:
- net_amount through the active rate pointer
- age from birth date
- Degenerate inputs and missing settings
- resolve_all display semantics
"""

from datetime import date

import pytest

from memberbase.codec import SettingType
from memberbase.computed import ComputedFieldResolver, age_in_years, net_amount
from memberbase.config import Settings
from memberbase.errors import ComputedFieldError, NotFoundError, ParseError
from memberbase.schema import SchemaRegistry
from memberbase.settings import ConfigEntry, ConfigSnapshot


def snapshot(**values):
    """Snapshot with a standard/reduced rate and a pointer."""
    entries = {
        "vat_standard": ConfigEntry("vat_standard", "19", SettingType.NUMBER, "finance", "VAT"),
        "vat_reduced": ConfigEntry("vat_reduced", "7", SettingType.NUMBER, "finance", "VAT"),
        "active_rate_key": ConfigEntry(
            "active_rate_key", "vat_standard", SettingType.STRING, "finance", "Rate"
        ),
    }
    for key, (text, kind) in values.items():
        entries[key] = ConfigEntry(key, text, kind, "finance", key)
    return ConfigSnapshot(entries)


@pytest.fixture
def resolver():
    return ComputedFieldResolver(SchemaRegistry.load_default())


class TestFormulas:
    """Tests for the plain formula functions."""

    def test_net_amount(self):
        """119 gross at 19% is 100 net."""
        assert net_amount(119.0, 19) == pytest.approx(100.0)

    def test_net_amount_zero_rate(self):
        """A zero rate leaves the amount unchanged."""
        assert net_amount(50.0, 0) == 50.0

    def test_net_amount_degenerate_rate(self):
        """A rate of -100% or less is undefined."""
        with pytest.raises(ComputedFieldError):
            net_amount(10.0, -100)

    def test_age(self):
        """Age counts whole years."""
        assert age_in_years(date(1990, 6, 15), date(2026, 6, 14)) == 35
        assert age_in_years(date(1990, 6, 15), date(2026, 6, 16)) == 36


class TestNetAmount:
    """Tests for price.net_amount."""

    def test_standard_rate(self, resolver):
        """The pointer selects vat_standard by default."""
        value = resolver.resolve("price", {"gross_amount": 119.0}, snapshot())
        assert value == pytest.approx(100.0)

    def test_pointer_change(self, resolver):
        """Changing the pointer changes the rate used."""
        config = snapshot(active_rate_key=("vat_reduced", SettingType.STRING))
        value = resolver.resolve("price", {"gross_amount": 107.0}, config, "net_amount")
        assert value == pytest.approx(100.0)

    def test_decimal_rate(self, resolver):
        """Fractional rates are supported."""
        config = snapshot(vat_standard=("5.5", SettingType.NUMBER))
        value = resolver.resolve("price", {"gross_amount": 105.5}, config)
        assert value == pytest.approx(100.0)

    def test_degenerate_rate(self, resolver):
        """A rate of -100 is an error, not a value."""
        config = snapshot(vat_standard=("-100", SettingType.NUMBER))
        with pytest.raises(ComputedFieldError):
            resolver.resolve("price", {"gross_amount": 10.0}, config)

    def test_dangling_pointer(self, resolver):
        """A pointer to a missing setting raises NotFoundError."""
        config = snapshot(active_rate_key=("vat_zero", SettingType.STRING))
        with pytest.raises(NotFoundError):
            resolver.resolve("price", {"gross_amount": 10.0}, config)

    def test_pointer_to_non_number(self, resolver):
        """The pointed-to setting must be a number."""
        config = snapshot(
            company_name=("ACME", SettingType.STRING),
            active_rate_key=("company_name", SettingType.STRING),
        )
        with pytest.raises(ParseError):
            resolver.resolve("price", {"gross_amount": 10.0}, config)

    def test_missing_gross_amount(self, resolver):
        """A price without gross amount has no net amount."""
        with pytest.raises(ComputedFieldError):
            resolver.resolve("price", {}, snapshot())


class TestAge:
    """Tests for member.age."""

    def test_age(self, resolver):
        """Age is computed relative to the reference date."""
        member = {"birth_date": date(2000, 1, 1)}
        assert resolver.resolve("member", member, snapshot(), reference_date=date(2026, 1, 1)) == 26

    def test_iso_text_birth_date(self, resolver):
        """ISO text birth dates are accepted."""
        member = {"birth_date": "2000-01-01"}
        assert resolver.resolve("member", member, snapshot(), reference_date=date(2025, 1, 1)) == 25

    def test_absent_birth_date(self, resolver):
        """No birth date means no age."""
        assert resolver.resolve("member", {"birth_date": None}, snapshot()) is None

    def test_invalid_birth_date(self, resolver):
        """Malformed birth dates are errors."""
        with pytest.raises(ComputedFieldError):
            resolver.resolve("member", {"birth_date": "01.01.2000"}, snapshot())


class TestResolver:
    """Tests for resolver lookup and resolve_all."""

    def test_unknown_field(self, resolver):
        """Stored fields are not computed fields."""
        with pytest.raises(ComputedFieldError, match="not a computed field"):
            resolver.resolve("price", {"gross_amount": 1.0}, snapshot(), "gross_amount")

    def test_unknown_table(self, resolver):
        """Unknown tables are rejected."""
        with pytest.raises(ComputedFieldError):
            resolver.resolve("invoice", {}, snapshot())

    def test_resolve_all(self, resolver):
        """resolve_all returns every computed field."""
        values = resolver.resolve_all(
            "member", {"birth_date": date(2000, 1, 1)}, snapshot(), date(2026, 1, 1)
        )
        assert values == {"age": 26}

    def test_resolve_all_failure_is_none(self, resolver):
        """Failures are displayed as absent values."""
        config = snapshot(vat_standard=("-150", SettingType.NUMBER))
        assert resolver.resolve_all("price", {"gross_amount": 10.0}, config) == {"net_amount": None}

    def test_table_without_computed_fields(self, resolver):
        """Tables without computed fields resolve to nothing."""
        assert resolver.resolve_all("note", {"title": "x"}, snapshot()) == {}

    def test_unsupported_formula(self):
        """A schema with an unknown computed field is rejected."""
        document = SchemaRegistry.load_default().to_dict()
        for table in document["tables"]:
            if table["name"] == "member":
                table["computedFields"].append({"name": "tenure", "formula": "today - start"})
        registry = SchemaRegistry.load(document)

        with pytest.raises(ComputedFieldError, match="member.tenure"):
            ComputedFieldResolver(registry)


class TestFromSettings:
    """Tests for ComputedFieldResolver.from_settings."""

    def test_custom_pointer_key(self):
        """The rate pointer key comes from Settings."""
        registry = SchemaRegistry.load_default()
        resolver = ComputedFieldResolver.from_settings(
            registry, Settings(active_rate_pointer_key="reduced_pointer")
        )
        config = snapshot(reduced_pointer=("vat_reduced", SettingType.STRING))

        assert resolver.resolve("price", {"gross_amount": 107.0}, config) == pytest.approx(100.0)
