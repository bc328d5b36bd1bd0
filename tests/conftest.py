"""Pytest fixtures for billbook tests."""

import tempfile
from decimal import Decimal
from pathlib import Path

import pytest

from billbook.billing import BillingService
from billbook.catalog import Catalog
from billbook.store import RecordStore


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def isolated_env(temp_dir, monkeypatch):
    """Point every default-constructed store at the temp dir."""
    monkeypatch.setenv("BILLBOOK_DATA_DIR", str(temp_dir / "data"))
    monkeypatch.setenv("BILLBOOK_TAX_RATE", "0.15")
    monkeypatch.delenv("BILLBOOK_LOCK_TIMEOUT", raising=False)
    monkeypatch.delenv("BILLBOOK_LOG_LEVEL", raising=False)


@pytest.fixture
def store(temp_dir):
    """A record store in its own directory."""
    return RecordStore(temp_dir / "store", lock_timeout=10.0)


@pytest.fixture
def catalog(store):
    return Catalog(store)


@pytest.fixture
def service(store):
    return BillingService(store, tax_rate=Decimal("0.15"))


@pytest.fixture
def customer(catalog):
    return catalog.add_customer("ACC-001", "Nimal Perera", address="12 Galle Road, Colombo")


@pytest.fixture
def item_x(catalog):
    """Stock 10 at 100.00."""
    return catalog.add_item("BK-X", "Madol Doova", Decimal("100.00"), stock_quantity=10)


@pytest.fixture
def item_y(catalog):
    """Stock 2 at 50.00."""
    return catalog.add_item("BK-Y", "Gamperaliya", Decimal("50.00"), stock_quantity=2)


def stock_of(store: RecordStore, item_id: str) -> int:
    """Committed stock quantity of an item."""
    return store.snapshot().get_item(item_id).stock_quantity
