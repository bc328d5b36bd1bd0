"""Tests for bill and stock reports."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from billbook.errors import InvalidArgumentError
from billbook.models import BillStatus, LineRequest
from billbook.reports import BillReports

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def _backdate(store, bill_id, when):
    with store.transaction() as txn:
        bill = txn.get_bill(bill_id)
        bill.bill_date = when.isoformat().replace("+00:00", "Z")
        txn.put_bill(bill)


@pytest.fixture
def reports(store):
    return BillReports(store)


@pytest.fixture
def history(store, service, catalog, customer, item_x):
    """Four bills for two customers, spread over a month."""
    other = catalog.add_customer("ACC-002", "Kamala Silva")
    old = service.create_bill(customer.id, [LineRequest(item_x.id, 1)])
    paid = service.create_bill(customer.id, [LineRequest(item_x.id, 2)])
    other_paid = service.create_bill(other.id, [LineRequest(item_x.id, 1)])
    cancelled = service.create_bill(other.id, [LineRequest(item_x.id, 1)])

    service.mark_bill_paid(paid.id)
    service.mark_bill_paid(other_paid.id)
    service.cancel_bill(cancelled.id)

    _backdate(store, old.id, NOW - timedelta(days=40))
    _backdate(store, paid.id, NOW - timedelta(days=10))
    _backdate(store, other_paid.id, NOW - timedelta(hours=2))
    _backdate(store, cancelled.id, NOW - timedelta(hours=1))
    return {"old": old, "paid": paid, "other_paid": other_paid, "cancelled": cancelled, "other": other}


class TestBillQueries:
    def test_list_newest_first(self, reports, history):
        numbers = [b.bill_number for b in reports.list_bills()]

        assert numbers == ["BILL000004", "BILL000003", "BILL000002", "BILL000001"]
        assert len(reports.list_bills(limit=2)) == 2

    def test_by_status(self, reports, history):
        paid = reports.bills_by_status(BillStatus.PAID)
        assert {b.id for b in paid} == {history["paid"].id, history["other_paid"].id}

    def test_by_customer(self, reports, history, customer):
        bills = reports.bills_by_customer(customer.id)
        assert [b.id for b in bills] == [history["paid"].id, history["old"].id]

    def test_between(self, reports, history):
        start = (NOW - timedelta(days=15)).replace(tzinfo=None)
        bills = reports.bills_between(start, NOW)

        assert len(bills) == 3
        assert history["old"].id not in {b.id for b in bills}

    def test_search(self, reports, history):
        assert {b.customer_id for b in reports.search("kamala")} == {history["other"].id}
        assert [b.bill_number for b in reports.search("bill000002")] == ["BILL000002"]
        assert reports.search("nobody") == []

    def test_blank_search_matches_nothing(self, reports, history):
        assert reports.search("   ") == []
        assert reports.search("") == []

    def test_by_account_number(self, reports, history):
        bills = reports.bills_by_account_number("ACC-002")

        assert [b.id for b in bills] == [history["cancelled"].id, history["other_paid"].id]
        assert reports.bills_by_account_number("ACC-404") == []

    def test_above_amount(self, reports, history):
        assert [b.id for b in reports.bills_above("115.00")] == [history["paid"].id]

        everything = reports.bills_above(0)
        assert len(everything) == 4
        assert everything[0].id == history["paid"].id

    def test_above_rejects_garbage(self, reports):
        with pytest.raises(InvalidArgumentError):
            reports.bills_above("lots")

    def test_todays_bills(self, reports, history):
        today = reports.todays_bills(now=NOW)
        assert {b.id for b in today} == {history["other_paid"].id, history["cancelled"].id}

    def test_overdue(self, reports, history):
        overdue = reports.overdue_bills(30, now=NOW)
        assert [b.id for b in overdue] == [history["old"].id]
        assert reports.overdue_bills(60, now=NOW) == []

    def test_containing_item(self, reports, history, item_x, item_y):
        assert len(reports.bills_containing_item(item_x.id)) == 4
        assert reports.bills_containing_item(item_y.id) == []


class TestAggregates:
    def test_total_sales(self, reports, history):
        total = reports.total_sales(NOW - timedelta(days=30), NOW)
        assert total == Decimal("345.00")

    def test_daily_sales(self, reports, history):
        days = reports.daily_sales(NOW - timedelta(days=30), NOW)

        assert [(d.day, d.bill_count, d.total_amount) for d in days] == [
            (date(2024, 3, 5), 1, Decimal("230.00")),
            (date(2024, 3, 15), 1, Decimal("115.00")),
        ]

    def test_daily_sales_groups_same_day(self, store, reports, history):
        _backdate(store, history["paid"].id, NOW - timedelta(hours=3))

        days = reports.daily_sales(NOW - timedelta(days=1), NOW)
        assert [(d.bill_count, d.total_amount) for d in days] == [(2, Decimal("345.00"))]

    def test_monthly_sales(self, store, reports, history):
        _backdate(store, history["paid"].id, datetime(2024, 2, 20, tzinfo=timezone.utc))

        months = reports.monthly_sales(NOW - timedelta(days=60), NOW)
        assert [(m.year, m.month, m.bill_count, m.total_amount) for m in months] == [
            (2024, 2, 1, Decimal("230.00")),
            (2024, 3, 1, Decimal("115.00")),
        ]

    def test_sales_outside_range(self, reports, history):
        start = NOW + timedelta(days=1)
        assert reports.daily_sales(start, start + timedelta(days=5)) == []
        assert reports.monthly_sales(start, start + timedelta(days=5)) == []

    def test_average(self, reports, history):
        assert reports.average_bill_amount() == Decimal("172.50")

    def test_average_with_no_sales(self, reports):
        assert reports.average_bill_amount() == Decimal("0.00")

    def test_count_by_status(self, reports, history):
        counts = reports.count_by_status()

        assert counts[BillStatus.PENDING] == 1
        assert counts[BillStatus.PAID] == 2
        assert counts[BillStatus.CANCELLED] == 1
        assert counts[BillStatus.OVERDUE] == 0

    def test_top_customers(self, reports, history, customer):
        top = reports.top_customers()

        assert [t.customer.id for t in top] == [customer.id, history["other"].id]
        assert top[0].total_amount == Decimal("230.00")
        assert top[0].bill_count == 1
        assert len(reports.top_customers(limit=1)) == 1


class TestStockReports:
    def test_low_and_out_of_stock(self, reports, catalog, item_x, item_y):
        empty = catalog.add_item("BK-0", "Sold Out", "5.00", stock_quantity=0)
        plenty = catalog.add_item("BK-P", "Plenty", "5.00", stock_quantity=50)

        low = [i.id for i in reports.low_stock_items()]
        assert low == [empty.id, item_y.id, item_x.id]
        assert plenty.id not in low
        assert [i.id for i in reports.out_of_stock_items()] == [empty.id]

    def test_inactive_items_are_ignored(self, reports, catalog, item_y):
        catalog.deactivate_item(item_y.id)
        assert reports.low_stock_items() == []
