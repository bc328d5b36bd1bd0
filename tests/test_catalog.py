"""Tests for the customer and item catalog."""

from decimal import Decimal

import pytest

from billbook.errors import DuplicateRecordError, InvalidArgumentError, ItemNotFoundError

from .conftest import stock_of


class TestCustomers:
    def test_add_and_get(self, catalog):
        customer = catalog.add_customer(" ACC-7 ", "Ruwan", phone="0771234567")

        assert customer.account_number == "ACC-7"
        assert catalog.get_customer(customer.id) == customer

    def test_duplicate_account(self, catalog, customer):
        with pytest.raises(DuplicateRecordError):
            catalog.add_customer("ACC-001", "Someone Else")

    @pytest.mark.parametrize("account,name", [("", "Name"), ("ACC-8", "  ")])
    def test_blank_fields(self, catalog, account, name):
        with pytest.raises(InvalidArgumentError):
            catalog.add_customer(account, name)

    def test_list_sorted(self, catalog):
        catalog.add_customer("ACC-B", "B")
        catalog.add_customer("ACC-A", "A")

        assert [c.account_number for c in catalog.list_customers()] == ["ACC-A", "ACC-B"]


class TestItems:
    def test_add_normalizes(self, catalog):
        item = catalog.add_item(" bk-1 ", "Book", "12.5", stock_quantity=3)

        assert item.code == "BK-1"
        assert item.price == Decimal("12.50")
        assert catalog.get_item(item.id) == item

    def test_duplicate_code(self, catalog, item_x):
        with pytest.raises(DuplicateRecordError):
            catalog.add_item("bk-x", "Other", "1.00")

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"price": "0"},
            {"price": "abc"},
            {"price": "5", "stock_quantity": -1},
            {"price": "5", "minimum_stock_level": -1},
        ],
    )
    def test_invalid_values(self, catalog, kwargs):
        with pytest.raises(InvalidArgumentError):
            catalog.add_item("BK-9", "Book", **kwargs)

    def test_price_too_large(self, catalog):
        with pytest.raises(InvalidArgumentError) as exc_info:
            catalog.add_item("BK-Z", "Big", "1e30")

        assert exc_info.value.field == "price"
        assert catalog.list_items() == []

    def test_restock(self, store, catalog, item_x):
        item = catalog.restock_item(item_x.id, 5)

        assert item.stock_quantity == 15
        assert stock_of(store, item_x.id) == 15

    def test_restock_negative(self, store, catalog, item_x):
        with pytest.raises(InvalidArgumentError):
            catalog.restock_item(item_x.id, -5)
        assert stock_of(store, item_x.id) == 10

    def test_restock_unknown(self, catalog):
        with pytest.raises(ItemNotFoundError):
            catalog.restock_item("missing", 1)

    def test_deactivate_hides_from_default_list(self, catalog, item_x, item_y):
        catalog.deactivate_item(item_x.id)

        assert [i.code for i in catalog.list_items()] == ["BK-Y"]
        assert [i.code for i in catalog.list_items(include_inactive=True)] == ["BK-X", "BK-Y"]
        assert not catalog.get_item(item_x.id).active
