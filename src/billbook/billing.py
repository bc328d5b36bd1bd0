"""Billing workflow: create, update, pay and cancel bills."""

import logging
import time
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping, TypeVar

from .config import load_settings
from .errors import (
    BillNotFoundError,
    ContentionError,
    InsufficientStockError,
    InvalidArgumentError,
    InvalidStateError,
)
from .models import Bill, BillLine, BillStatus, LineRequest, _utc_now
from .numbering import BillNumberAllocator
from .pricing import (
    validate_discount_amount,
    validate_discount_percentage,
    validate_quantity,
    validate_tax_rate,
)
from .stock_ledger import StockLedger
from .store import RecordStore, Transaction

logger = logging.getLogger(__name__)

MAX_NOTES_LENGTH = 1000

T = TypeVar("T")

LineSpec = LineRequest | Mapping[str, Any]


def normalize_lines(lines: Iterable[LineSpec]) -> list[LineRequest]:
    """
    Turn request lines (LineRequest or dicts) into validated LineRequests.

    Raises:
        InvalidArgumentError: If no lines are given or a line is malformed.
    """
    result: list[LineRequest] = []
    for line in lines or []:
        if isinstance(line, LineRequest):
            item_id, quantity, pct = line.item_id, line.quantity, line.discount_percentage
        else:
            if "item_id" not in line:
                raise InvalidArgumentError("item_id", None, "is required")
            item_id = line["item_id"]
            quantity = line.get("quantity")
            pct = line.get("discount_percentage")
        result.append(
            LineRequest(
                item_id=str(item_id),
                quantity=validate_quantity(quantity),
                discount_percentage=validate_discount_percentage(pct if pct is not None else 0),
            )
        )
    if not result:
        raise InvalidArgumentError("lines", 0, "bill must contain at least one item")
    return result


def _check_notes(notes: str | None) -> str | None:
    if notes is not None and len(notes) > MAX_NOTES_LENGTH:
        raise InvalidArgumentError(
            "notes", f"{len(notes)} characters", f"must not exceed {MAX_NOTES_LENGTH}"
        )
    return notes


def retry_on_contention(
    operation: Callable[[], T], attempts: int = 3, delay: float = 0.05
) -> T:
    """
    Run ``operation``, re-running it when it fails with ContentionError.

    The last ContentionError is re-raised once attempts are exhausted.
    """
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except ContentionError:
            if attempt == attempts:
                raise
            logger.warning("Store contention, retrying (%d/%d)", attempt, attempts)
            time.sleep(delay * attempt)
    raise ValueError("attempts must be at least 1")


class BillingService:
    """
    Orchestrates bill operations over the record store.

    Each mutating method runs as one store transaction: stock checks, stock
    changes, number allocation and the bill write either all commit or none
    do.
    """

    def __init__(self, store: RecordStore | None = None, tax_rate: Decimal | str | None = None):
        """
        Args:
            store: Record store to use (defaults to the configured data dir).
            tax_rate: Flat rate applied to new bills (defaults to BILLBOOK_TAX_RATE).
        """
        self.store = store or RecordStore()
        if tax_rate is None:
            tax_rate = load_settings().tax_rate
        self.tax_rate = validate_tax_rate(tax_rate)

    # --- Helpers ---

    def _validate_stock(self, txn: Transaction, requests: list[LineRequest]) -> None:
        """Check every requested item before anything is reserved."""
        ledger = StockLedger(txn)
        requested: dict[str, int] = {}
        for req in requests:
            requested[req.item_id] = requested.get(req.item_id, 0) + req.quantity

        for item_id, quantity in requested.items():
            item = txn.get_item(item_id)
            if not item.active:
                raise InsufficientStockError(
                    item.name, quantity, item.stock_quantity, inactive=True
                )
            if not ledger.check_availability(item_id, quantity):
                raise InsufficientStockError(item.name, quantity, item.stock_quantity)

    def _build_lines(self, txn: Transaction, requests: list[LineRequest]) -> list[BillLine]:
        lines = []
        for req in requests:
            item = txn.get_item(req.item_id)
            lines.append(
                BillLine(
                    item_id=item.id,
                    item_code=item.code,
                    item_name=item.name,
                    quantity=req.quantity,
                    unit_price=item.price,
                    discount_percentage=req.discount_percentage,
                )
            )
        return lines

    def _reserve_lines(self, txn: Transaction, lines: list[BillLine]) -> None:
        ledger = StockLedger(txn)
        for line in lines:
            ledger.reserve(line.item_id, line.quantity)

    def _release_lines(self, txn: Transaction, lines: list[BillLine]) -> None:
        ledger = StockLedger(txn)
        for line in lines:
            ledger.release(line.item_id, line.quantity)

    def _transition(self, bill: Bill, target: BillStatus, action: str) -> None:
        if not bill.status.can_transition_to(target):
            raise InvalidStateError(bill.bill_number, bill.status.value, action)
        bill.status = target

    # --- Commands ---

    def create_bill(
        self,
        customer_id: str,
        lines: Iterable[LineSpec],
        discount_amount: Decimal | str | int | None = None,
        notes: str | None = None,
    ) -> Bill:
        """
        Create a pending bill and reserve stock for its lines.

        Returns:
            The persisted Bill.

        Raises:
            CustomerNotFoundError: If the customer doesn't exist.
            ItemNotFoundError: If a line references a missing item.
            InsufficientStockError: If an item is inactive or short.
            InvalidArgumentError: If a line, the discount or the notes are malformed.
            InvalidDiscountError: If the discount would make the total negative.
            ContentionError: If the store is busy. Safe to retry.
        """
        requests = normalize_lines(lines)
        discount = validate_discount_amount(discount_amount)
        notes = _check_notes(notes)

        with self.store.transaction() as txn:
            customer = txn.get_customer(customer_id)
            self._validate_stock(txn, requests)

            bill_lines = self._build_lines(txn, requests)
            bill = Bill.create(
                bill_number="",
                customer_id=customer.id,
                lines=bill_lines,
                tax_rate=self.tax_rate,
                discount_amount=discount,
                notes=notes,
            )
            bill.recalculate()

            self._reserve_lines(txn, bill_lines)
            bill.bill_number = BillNumberAllocator(txn).next()
            txn.put_bill(bill)

        logger.info(
            "Created bill %s for customer %s: %d line(s), total %s",
            bill.bill_number,
            customer.account_number,
            len(bill.lines),
            bill.total_amount,
        )
        return bill

    def update_bill(
        self,
        bill_id: str,
        lines: Iterable[LineSpec],
        discount_amount: Decimal | str | int | None = None,
        notes: str | None = None,
    ) -> Bill:
        """
        Replace a modifiable bill's lines, discount and notes.

        Stock held by the old lines is released before the new lines are
        checked, so a bill can be re-edited up to its own previous quantities.

        Raises:
            BillNotFoundError: If the bill doesn't exist.
            InvalidStateError: If the bill isn't DRAFT or PENDING.
            ItemNotFoundError, InsufficientStockError, InvalidArgumentError,
            InvalidDiscountError, ContentionError: As for create_bill.
        """
        requests = normalize_lines(lines)
        discount = validate_discount_amount(discount_amount)
        notes = _check_notes(notes)

        with self.store.transaction() as txn:
            bill = txn.get_bill(bill_id)
            if not bill.is_modifiable:
                raise InvalidStateError(bill.bill_number, bill.status.value, "update")

            self._release_lines(txn, bill.lines)
            self._validate_stock(txn, requests)

            bill.lines = self._build_lines(txn, requests)
            bill.discount_amount = discount
            bill.notes = notes
            bill.recalculate()

            self._reserve_lines(txn, bill.lines)
            bill.updated_at = _utc_now()
            txn.put_bill(bill)

        logger.info(
            "Updated bill %s: %d line(s), total %s",
            bill.bill_number,
            len(bill.lines),
            bill.total_amount,
        )
        return bill

    def mark_bill_paid(self, bill_id: str) -> Bill:
        """
        Mark a bill as paid. No stock or pricing side effects.

        Raises:
            BillNotFoundError: If the bill doesn't exist.
            InvalidStateError: If the bill is already PAID or CANCELLED.
        """
        with self.store.transaction() as txn:
            bill = txn.get_bill(bill_id)
            self._transition(bill, BillStatus.PAID, "mark paid")
            bill.recalculate()
            bill.updated_at = _utc_now()
            txn.put_bill(bill)

        logger.info("Bill %s marked paid (%s)", bill.bill_number, bill.total_amount)
        return bill

    def mark_bill_overdue(self, bill_id: str) -> Bill:
        """
        Flag a pending bill as overdue.

        Raises:
            BillNotFoundError: If the bill doesn't exist.
            InvalidStateError: If the bill isn't PENDING.
        """
        with self.store.transaction() as txn:
            bill = txn.get_bill(bill_id)
            self._transition(bill, BillStatus.OVERDUE, "mark overdue")
            bill.recalculate()
            bill.updated_at = _utc_now()
            txn.put_bill(bill)

        logger.info("Bill %s marked overdue", bill.bill_number)
        return bill

    def cancel_bill(self, bill_id: str) -> Bill:
        """
        Cancel a bill and return its reserved stock.

        Raises:
            BillNotFoundError: If the bill doesn't exist.
            InvalidStateError: If the bill is already CANCELLED or PAID.
        """
        with self.store.transaction() as txn:
            bill = txn.get_bill(bill_id)
            self._transition(bill, BillStatus.CANCELLED, "cancel")
            self._release_lines(txn, bill.lines)
            bill.recalculate()
            bill.updated_at = _utc_now()
            txn.put_bill(bill)

        logger.info("Cancelled bill %s, released %d unit(s)", bill.bill_number, bill.total_quantity)
        return bill

    # --- Queries ---

    def get_bill(self, bill_id: str) -> Bill:
        """
        Raises:
            BillNotFoundError: If the bill doesn't exist.
        """
        return self.store.snapshot().get_bill(bill_id)

    def get_bill_by_number(self, bill_number: str) -> Bill:
        """
        Raises:
            BillNotFoundError: If no bill has this number.
        """
        bill = self.store.snapshot().find_bill_by_number(bill_number)
        if bill is None:
            raise BillNotFoundError(bill_number, field="bill_number")
        return bill

    def list_bills_by_customer(self, customer_id: str) -> list[Bill]:
        """
        List a customer's bills, newest first.

        Raises:
            CustomerNotFoundError: If the customer doesn't exist.
        """
        view = self.store.snapshot()
        view.get_customer(customer_id)
        bills = [b for b in view.bills() if b.customer_id == customer_id]
        bills.sort(key=lambda b: (b.bill_date, b.bill_number), reverse=True)
        return bills
