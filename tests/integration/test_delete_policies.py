"""
Integration tests for delete policies on the SQLite store.

Tests cover:
- Note deletion clearing every reference
- Restricted price deletion leaving all rows unchanged
- Service deletion clearing member references
"""

import pytest

from memberbase.errors import NotFoundError, ReferentialIntegrityError


def add_member(db, **values):
    row = {"name": "Muster", "first_name": "Max"}
    row.update(values)
    return db.insert("member", row)


class TestNoteDelete:
    """Tests for deleting notes."""

    def test_references_cleared(self, db, catalog):
        """All rows referencing the note lose the reference; the rows stay."""
        note = db.insert("note", {"title": "Shared"})
        other = db.insert("note", {"title": "Other"})
        members = [add_member(db, note_id=note["id"]) for _ in range(3)]
        keeper = add_member(db, note_id=other["id"])
        service_id = catalog["services"]["monthly"]["id"]
        db.update("service", service_id, {"note_id": note["id"]})
        db.update("price", catalog["price"]["id"], {"note_id": note["id"]})

        outcome = db.delete("note", note["id"])

        assert outcome.cleared_count == 5
        assert outcome.cleared["member.note_id"] == [m["id"] for m in members]
        assert db.get("note", note["id"]) is None
        assert db.find("member", note_id=note["id"]) == []
        assert db.count("member") == 4
        assert db.get("member", keeper["id"])["note_id"] == other["id"]
        assert db.get("service", service_id)["note_id"] is None
        assert db.get("price", catalog["price"]["id"])["note_id"] is None

    def test_unreferenced_note(self, db):
        """Deleting an unreferenced note clears nothing."""
        note = db.insert("note", {"title": "Alone"})

        outcome = db.delete("note", note["id"])

        assert outcome.cleared == {}
        assert db.count("note") == 0

    def test_missing_row(self, db):
        """Deleting a missing row raises NotFoundError."""
        with pytest.raises(NotFoundError):
            db.delete("note", 42)


class TestPriceDelete:
    """Tests for deleting prices."""

    def test_referenced_price_refused(self, db, catalog):
        """A price used by services cannot be deleted and nothing changes."""
        note = db.insert("note", {"title": "Price note"})
        price_id = catalog["price"]["id"]
        db.update("price", price_id, {"note_id": note["id"]})

        with pytest.raises(ReferentialIntegrityError) as exc_info:
            db.delete("price", price_id)

        blocking = exc_info.value.blocking["service.price_id"]
        assert sorted(blocking) == sorted(s["id"] for s in catalog["services"].values())
        assert db.get("price", price_id)["note_id"] == note["id"]
        assert db.count("service") == 4
        assert all(s["price_id"] == price_id for s in db.find("service"))

    def test_unreferenced_price(self, db):
        """A price no service uses can be deleted."""
        price = db.insert("price", {"gross_amount": 10.0})

        db.delete("price", price["id"])

        assert db.get("price", price["id"]) is None

    def test_delete_after_services_removed(self, db, catalog):
        """Once its services are gone the price can be deleted."""
        for service in catalog["services"].values():
            db.delete("service", service["id"])

        db.delete("price", catalog["price"]["id"])

        assert db.count("price") == 0


class TestServiceDelete:
    """Tests for deleting services."""

    def test_members_keep_existing(self, db, catalog):
        """Members of a deleted service stay, without a service."""
        service_id = catalog["services"]["yearly"]["id"]
        other_id = catalog["services"]["monthly"]["id"]
        first = add_member(db, service_id=service_id)
        second = add_member(db, service_id=other_id)

        outcome = db.delete("service", service_id)

        assert outcome.cleared == {"member.service_id": [first["id"]]}
        assert db.get("member", first["id"])["service_id"] is None
        assert db.get("member", second["id"])["service_id"] == other_id
