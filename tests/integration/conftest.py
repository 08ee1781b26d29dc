"""
Integration test fixtures for memberbase.

Every test gets a fresh in-memory database built from the bundled schema,
with settings seeded.
"""

import pytest

from memberbase.schema import SchemaRegistry
from memberbase.settings import ConfigStore
from memberbase.store import Database


@pytest.fixture(scope="session")
def registry():
    """Bundled schema, loaded once."""
    return SchemaRegistry.load_default()


@pytest.fixture
def db(registry):
    """Empty database with all tables created."""
    database = Database(registry)
    database.create_schema()
    yield database
    database.close()


@pytest.fixture
def config(db):
    """Seeded settings store."""
    store = ConfigStore(db)
    store.seed()
    return store


@pytest.fixture
def catalog(db):
    """One price and one service per term."""
    price = db.insert("price", {"gross_amount": 119.0})
    services = {
        term: db.insert("service", {"name": f"Plan {term}", "price_id": price["id"], "term": term})
        for term in ("one-off", "monthly", "quarterly", "yearly")
    }
    return {"price": price, "services": services}
