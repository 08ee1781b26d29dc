"""
Integration tests for ConfigStore.

Tests cover:
- Seeding once from the schema
- Typed reads and writes
- Read-only settings
- Indirect (pointer) resolution
- Snapshots
- The SettingsReader base class
"""

from datetime import date

import pytest

from memberbase.codec import SettingType
from memberbase.errors import NotFoundError, ParseError, ReadOnlySettingError
from memberbase.settings import ConfigStore, SettingsReader


class TestSeed:
    """Tests for ConfigStore.seed."""

    def test_seeded_defaults(self, config):
        """Declared defaults are readable after seeding."""
        assert config.get("vat_standard") == 19
        assert config.get("vat_reduced") == 7
        assert config.get("db_version") == 1
        assert config.get("company_name") == ""

    def test_seed_runs_once(self, db, config):
        """A second seed inserts nothing and keeps edited values."""
        config.set("vat_standard", 20)

        assert ConfigStore(db).seed() == 0
        assert config.get("vat_standard") == 20

    def test_seed_count(self, db, registry):
        """The first seed inserts every declared row."""
        assert ConfigStore(db).seed() == len(registry.seed_rows("config_entry"))

    def test_entries_by_category(self, config):
        """Entries can be listed per category."""
        keys = [e.key for e in config.entries("finance")]
        assert keys == ["vat_standard", "vat_reduced", "active_rate_key"]

    def test_entry_metadata(self, config):
        """Entries expose their metadata."""
        entry = config.entry("db_version")
        assert entry.type == SettingType.NUMBER
        assert entry.category == "program"
        assert entry.editable is False


class TestSet:
    """Tests for ConfigStore.set."""

    def test_round_trip_number(self, config):
        """A written number reads back equal."""
        assert config.set("vat_standard", 21.5) == 21.5
        assert config.get("vat_standard") == 21.5

    def test_round_trip_text_input(self, config):
        """Text input is stored canonically."""
        config.set("vat_reduced", " 5 ")
        assert config.entry("vat_reduced").value == "5"
        assert config.get("vat_reduced") == 5

    def test_round_trip_string(self, config):
        """String settings store any text."""
        config.set("company_name", "Sportverein e.V.")
        assert config.get("company_name") == "Sportverein e.V."

    def test_round_trip_boolean(self, db, config):
        """Booleans are stored as true/false and read back as bool."""
        db.insert(
            "config_entry",
            {
                "key": "send_reminders",
                "value": "false",
                "type": "boolean",
                "category": "program",
                "label": "Send reminders",
            },
        )

        assert config.set("send_reminders", True) is True
        assert config.entry("send_reminders").value == "true"
        assert config.get("send_reminders") is True

        config.set("send_reminders", "0")
        assert config.entry("send_reminders").value == "false"
        assert config.get("send_reminders") is False

    def test_round_trip_date(self, db, config):
        """Dates are stored as ISO text and read back as dates."""
        db.insert(
            "config_entry",
            {
                "key": "season_start",
                "value": "2026-04-01",
                "type": "date",
                "category": "program",
                "label": "Season start",
            },
        )

        assert config.set("season_start", date(2026, 9, 1)) == date(2026, 9, 1)
        assert config.entry("season_start").value == "2026-09-01"
        assert config.get("season_start") == date(2026, 9, 1)

        config.set("season_start", "2027-03-15")
        assert config.get("season_start") == date(2027, 3, 15)

    def test_boolean_rejects_number(self, db, config):
        """A boolean setting does not accept a number."""
        db.insert(
            "config_entry",
            {
                "key": "send_reminders",
                "value": "true",
                "type": "boolean",
                "category": "program",
                "label": "Send reminders",
            },
        )

        with pytest.raises(ParseError):
            config.set("send_reminders", 1)

        assert config.entry("send_reminders").value == "true"

    def test_read_only(self, config):
        """Non-editable settings cannot be written."""
        with pytest.raises(ReadOnlySettingError, match="'db_version' is read-only"):
            config.set("db_version", 2)

        assert config.get("db_version") == 1

    def test_invalid_value(self, config):
        """Invalid values are rejected and nothing is written."""
        with pytest.raises(ParseError):
            config.set("vat_standard", "nineteen")

        assert config.entry("vat_standard").value == "19"

    def test_unknown_key(self, config):
        """Unknown keys are not created by set()."""
        with pytest.raises(NotFoundError):
            config.set("vat_super", 25)

    def test_get_unknown_key(self, config):
        """Unknown keys raise NotFoundError."""
        with pytest.raises(NotFoundError):
            config.get("vat_super")

    def test_corrupt_stored_value(self, db, config):
        """Stored text that does not parse raises instead of defaulting."""
        row = db.find("config_entry", key="vat_standard")[0]
        db.update("config_entry", row["id"], {"value": "abc"})

        with pytest.raises(ParseError):
            config.get("vat_standard")


class TestIndirect:
    """Tests for pointer resolution."""

    def test_resolve_indirect(self, config):
        """The default pointer resolves to the standard rate."""
        assert config.resolve_indirect("active_rate_key") == 19

    def test_repoint(self, config):
        """Changing the pointer changes the resolved value."""
        config.set("active_rate_key", "vat_reduced")
        assert config.resolve_indirect("active_rate_key", expected=SettingType.NUMBER) == 7

    def test_pointer_read(self, config):
        """pointer() returns the named target without following it."""
        pointer = config.pointer("active_rate_key")
        assert pointer.target_key == "vat_standard"

    def test_dangling_pointer(self, config):
        """A pointer to a missing key raises NotFoundError."""
        config.set("active_rate_key", "vat_zero")
        with pytest.raises(NotFoundError):
            config.resolve_indirect("active_rate_key")

    def test_empty_pointer(self, config):
        """An empty pointer raises NotFoundError."""
        config.set("active_rate_key", "")
        with pytest.raises(NotFoundError):
            config.resolve_indirect("active_rate_key")

    def test_wrong_target_type(self, config):
        """The target must have the expected type."""
        config.set("active_rate_key", "company_name")
        with pytest.raises(ParseError):
            config.resolve_indirect("active_rate_key", expected=SettingType.NUMBER)

    def test_non_string_pointer(self, config):
        """Only string settings can act as pointers."""
        with pytest.raises(ParseError):
            config.resolve_indirect("vat_standard")

    def test_unparseable_target(self, db, config):
        """A target whose text does not parse raises ParseError."""
        row = db.find("config_entry", key="vat_standard")[0]
        db.update("config_entry", row["id"], {"value": "n/a"})

        with pytest.raises(ParseError):
            config.resolve_indirect("active_rate_key")


class TestSnapshot:
    """Tests for ConfigStore.snapshot."""

    def test_snapshot_is_frozen(self, config):
        """Later writes do not change a snapshot."""
        snapshot = config.snapshot()
        config.set("vat_standard", 16)

        assert snapshot.get("vat_standard") == 19
        assert config.get("vat_standard") == 16

    def test_snapshot_indirect(self, config):
        """Snapshots resolve pointers like the store."""
        snapshot = config.snapshot()
        assert snapshot.resolve_indirect("active_rate_key") == 19
        assert "db_version" in snapshot
        assert len(snapshot) == 10

    def test_snapshot_date(self, db, config):
        """Date settings parse to dates."""
        db.insert(
            "config_entry",
            {
                "key": "season_start",
                "value": "2026-04-01",
                "type": "date",
                "category": "program",
                "label": "Season start",
            },
        )
        assert config.snapshot().get("season_start") == date(2026, 4, 1)


class TestSettingsReader:
    """Tests for the SettingsReader base class."""

    def test_entry_is_abstract(self):
        """A reader without entry() cannot be created."""
        with pytest.raises(TypeError):
            SettingsReader()

    def test_store_and_snapshot_are_readers(self, config):
        """The live store and its snapshots share the reader interface."""
        assert isinstance(config, SettingsReader)
        assert isinstance(config.snapshot(), SettingsReader)
