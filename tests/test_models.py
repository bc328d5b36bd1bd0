"""Tests for data models and the bill status machine."""

from decimal import Decimal

import pytest

from billbook.errors import InvalidDiscountError
from billbook.models import Bill, BillLine, BillStatus, Customer, Item


def _line(price="100.00", qty=3, pct="0"):
    return BillLine(
        item_id="item-1",
        item_code="BK-1",
        item_name="Book",
        quantity=qty,
        unit_price=Decimal(price),
        discount_percentage=Decimal(pct),
    )


class TestBillStatus:
    @pytest.mark.parametrize(
        "status,modifiable",
        [
            (BillStatus.DRAFT, True),
            (BillStatus.PENDING, True),
            (BillStatus.PARTIAL_PAID, False),
            (BillStatus.OVERDUE, False),
            (BillStatus.PAID, False),
            (BillStatus.CANCELLED, False),
        ],
    )
    def test_modifiable(self, status, modifiable):
        assert status.is_modifiable is modifiable

    def test_terminal_states_have_no_exits(self):
        for target in BillStatus:
            assert not BillStatus.PAID.can_transition_to(target)
            assert not BillStatus.CANCELLED.can_transition_to(target)

    def test_pending_reaches_side_states(self):
        assert BillStatus.PENDING.can_transition_to(BillStatus.OVERDUE)
        assert BillStatus.PENDING.can_transition_to(BillStatus.PARTIAL_PAID)
        assert not BillStatus.OVERDUE.can_transition_to(BillStatus.PENDING)

    def test_requires_payment(self):
        assert BillStatus.OVERDUE.requires_payment
        assert not BillStatus.PAID.requires_payment
        assert not BillStatus.DRAFT.requires_payment

    def test_display_name(self):
        assert BillStatus.PARTIAL_PAID.display_name == "Partially Paid"


class TestBill:
    def test_recalculate_sets_totals(self):
        bill = Bill.create("BILL000001", "cust-1", [_line()], tax_rate=Decimal("0.15"))
        bill.recalculate()

        assert bill.lines[0].total_price == Decimal("300.00")
        assert bill.subtotal == Decimal("300.00")
        assert bill.tax_amount == Decimal("45.00")
        assert bill.total_amount == Decimal("345.00")
        assert bill.status == BillStatus.PENDING

    def test_totals_only_change_on_recalculate(self):
        bill = Bill.create("BILL000001", "cust-1", [_line()], tax_rate=Decimal("0.15"))
        bill.recalculate()
        bill.lines.append(_line(price="10.00", qty=1))

        assert bill.subtotal == Decimal("300.00")
        bill.recalculate()
        assert bill.subtotal == Decimal("310.00")

    def test_recalculate_rejects_excess_discount(self):
        bill = Bill.create(
            "BILL000001", "cust-1", [_line(qty=1)], tax_rate=Decimal("0"),
            discount_amount=Decimal("150.00"),
        )
        with pytest.raises(InvalidDiscountError):
            bill.recalculate()

    def test_line_discount_and_total_add_up(self):
        line = _line(price="10.05", qty=1, pct="50")
        bill = Bill.create("BILL000001", "cust-1", [line], tax_rate=Decimal("0"))
        bill.recalculate()

        assert line.total_price == Decimal("5.03")
        assert line.discount_amount == Decimal("5.02")
        assert line.discount_amount + line.total_price == Decimal("10.05")

    def test_total_quantity(self):
        bill = Bill.create("BILL000001", "cust-1", [_line(qty=3), _line(qty=4)], Decimal("0"))
        assert bill.total_quantity == 7

    def test_roundtrip_preserves_data(self):
        bill = Bill.create(
            "BILL000042",
            "cust-1",
            [_line(price="50.00", qty=4, pct="10")],
            tax_rate=Decimal("0.15"),
            discount_amount=Decimal("5.00"),
            notes="Gift wrap",
        )
        bill.recalculate()

        loaded = Bill.from_dict(bill.to_dict())

        assert loaded == bill
        assert loaded.lines[0].total_price == Decimal("180.00")
        assert loaded.lines[0].discount_amount == Decimal("20.00")

    def test_to_dict_stores_money_as_strings(self):
        bill = Bill.create("BILL000001", "cust-1", [_line()], tax_rate=Decimal("0.15"))
        bill.recalculate()
        data = bill.to_dict()

        assert data["total_amount"] == "345.00"
        assert data["lines"][0]["unit_price"] == "100.00"
        assert "notes" not in data


class TestItemAndCustomer:
    def test_item_stock_flags(self):
        item = Item.create("BK-1", "Book", Decimal("10.00"), stock_quantity=10)
        assert item.is_low_stock
        assert item.is_in_stock
        item.stock_quantity = 11
        assert not item.is_low_stock
        item.stock_quantity = 0
        assert not item.is_in_stock

    def test_display_names(self):
        item = Item.create("BK-1", "Book", Decimal("10.00"), stock_quantity=1)
        customer = Customer.create("ACC-1", "Kamal")
        assert item.display_name == "Book (BK-1)"
        assert customer.display_name == "Kamal (ACC-1)"

    def test_item_roundtrip(self):
        item = Item.create("BK-1", "Book", Decimal("10.50"), stock_quantity=4, category="Fiction")
        assert Item.from_dict(item.to_dict()) == item
