"""Read-only bill and stock projections."""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from .models import Bill, BillStatus, Customer, Item
from .pricing import round2, to_decimal
from .store import RecordStore

# Statuses whose totals count as sales
SALES_STATUSES = (BillStatus.PAID, BillStatus.PARTIAL_PAID)


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _newest_first(bills: list[Bill]) -> list[Bill]:
    return sorted(bills, key=lambda b: (b.bill_date, b.bill_number), reverse=True)


@dataclass
class CustomerTotal:
    """Sales total for one customer."""

    customer: Customer
    total_amount: Decimal
    bill_count: int


@dataclass
class DailySales:
    """Paid bills and their total for one UTC day."""

    day: date
    bill_count: int
    total_amount: Decimal


@dataclass
class MonthlySales:
    """Paid bills and their total for one UTC calendar month."""

    year: int
    month: int
    bill_count: int
    total_amount: Decimal


class BillReports:
    """Queries over committed bills. Nothing here changes state."""

    def __init__(self, store: RecordStore | None = None):
        self.store = store or RecordStore()

    def _bills(self) -> list[Bill]:
        return self.store.snapshot().bills()

    def list_bills(self, limit: int | None = None) -> list[Bill]:
        bills = _newest_first(self._bills())
        if limit:
            bills = bills[:limit]
        return bills

    def bills_by_customer(self, customer_id: str) -> list[Bill]:
        return _newest_first([b for b in self._bills() if b.customer_id == customer_id])

    def bills_by_account_number(self, account_number: str) -> list[Bill]:
        """Bills of the customer holding ``account_number``; empty if no such customer."""
        view = self.store.snapshot()
        customer = view.find_customer_by_account(account_number.strip())
        if customer is None:
            return []
        return _newest_first([b for b in view.bills() if b.customer_id == customer.id])

    def bills_by_status(self, status: BillStatus) -> list[Bill]:
        return _newest_first([b for b in self._bills() if b.status == status])

    def bills_between(self, start: datetime, end: datetime) -> list[Bill]:
        """Bills dated within [start, end]. Naive datetimes are taken as UTC."""
        start, end = _aware(start), _aware(end)
        return _newest_first([b for b in self._bills() if start <= b.bill_datetime <= end])

    def search(self, term: str) -> list[Bill]:
        """Case-insensitive match on customer name or bill number. Blank terms match nothing."""
        needle = term.strip().lower()
        if not needle:
            return []
        view = self.store.snapshot()
        names = {c.id: c.name.lower() for c in view.customers()}
        return _newest_first(
            [
                b
                for b in view.bills()
                if needle in b.bill_number.lower() or needle in names.get(b.customer_id, "")
            ]
        )

    def todays_bills(self, now: datetime | None = None) -> list[Bill]:
        today = _aware(now or datetime.now(timezone.utc)).astimezone(timezone.utc).date()
        return _newest_first(
            [b for b in self._bills() if b.bill_datetime.astimezone(timezone.utc).date() == today]
        )

    def overdue_bills(self, days: int, now: datetime | None = None) -> list[Bill]:
        """Pending bills dated more than ``days`` ago, oldest first."""
        cutoff = _aware(now or datetime.now(timezone.utc)) - timedelta(days=days)
        bills = [
            b
            for b in self._bills()
            if b.status == BillStatus.PENDING and b.bill_datetime < cutoff
        ]
        return sorted(bills, key=lambda b: (b.bill_date, b.bill_number))

    def bills_containing_item(self, item_id: str) -> list[Bill]:
        return _newest_first(
            [b for b in self._bills() if any(line.item_id == item_id for line in b.lines)]
        )

    def bills_above(self, amount: Decimal | str) -> list[Bill]:
        """
        Bills whose total is strictly greater than ``amount``, largest first.

        Raises:
            InvalidArgumentError: If amount isn't a number.
        """
        threshold = to_decimal(amount, "amount")
        bills = [b for b in self._bills() if b.total_amount > threshold]
        return sorted(bills, key=lambda b: (b.total_amount, b.bill_number), reverse=True)

    def _sales_between(self, start: datetime, end: datetime) -> list[Bill]:
        start, end = _aware(start), _aware(end)
        bills = [
            b
            for b in self._bills()
            if b.status in SALES_STATUSES and start <= b.bill_datetime <= end
        ]
        return sorted(bills, key=lambda b: (b.bill_datetime, b.bill_number))

    def total_sales(self, start: datetime, end: datetime) -> Decimal:
        """Sum of totals of paid (or partially paid) bills dated within [start, end]."""
        return sum((b.total_amount for b in self._sales_between(start, end)), Decimal("0.00"))

    def daily_sales(self, start: datetime, end: datetime) -> list[DailySales]:
        """Paid sales within [start, end] grouped by UTC day, earliest day first."""
        days: dict[date, DailySales] = {}
        for bill in self._sales_between(start, end):
            day = bill.bill_datetime.astimezone(timezone.utc).date()
            entry = days.setdefault(day, DailySales(day, 0, Decimal("0.00")))
            entry.bill_count += 1
            entry.total_amount += bill.total_amount
        return list(days.values())

    def monthly_sales(self, start: datetime, end: datetime) -> list[MonthlySales]:
        """Paid sales within [start, end] grouped by UTC calendar month, earliest first."""
        months: dict[tuple[int, int], MonthlySales] = {}
        for bill in self._sales_between(start, end):
            when = bill.bill_datetime.astimezone(timezone.utc)
            entry = months.setdefault(
                (when.year, when.month), MonthlySales(when.year, when.month, 0, Decimal("0.00"))
            )
            entry.bill_count += 1
            entry.total_amount += bill.total_amount
        return list(months.values())

    def average_bill_amount(self) -> Decimal:
        totals = [b.total_amount for b in self._bills() if b.status in SALES_STATUSES]
        if not totals:
            return Decimal("0.00")
        return round2(sum(totals, Decimal("0")) / len(totals))

    def count_by_status(self) -> dict[BillStatus, int]:
        counts = {status: 0 for status in BillStatus}
        for bill in self._bills():
            counts[bill.status] += 1
        return counts

    def top_customers(self, limit: int = 10) -> list[CustomerTotal]:
        """Customers ranked by paid bill totals."""
        view = self.store.snapshot()
        totals: dict[str, CustomerTotal] = {}
        for bill in view.bills():
            if bill.status not in SALES_STATUSES:
                continue
            entry = totals.get(bill.customer_id)
            if entry is None:
                entry = CustomerTotal(view.get_customer(bill.customer_id), Decimal("0.00"), 0)
                totals[bill.customer_id] = entry
            entry.total_amount += bill.total_amount
            entry.bill_count += 1
        ranked = sorted(totals.values(), key=lambda t: t.total_amount, reverse=True)
        return ranked[:limit]

    def low_stock_items(self) -> list[Item]:
        items = [i for i in self.store.snapshot().items() if i.active and i.is_low_stock]
        return sorted(items, key=lambda i: (i.stock_quantity, i.code))

    def out_of_stock_items(self) -> list[Item]:
        items = [i for i in self.store.snapshot().items() if i.active and not i.is_in_stock]
        return sorted(items, key=lambda i: i.code)
