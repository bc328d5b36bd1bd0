"""Bill number allocation."""

import re

from .store import Transaction

BILL_PREFIX = "BILL"
SEQUENCE_NAME = "bill_number"
_NUMBER_RE = re.compile(rf"^{BILL_PREFIX}(\d+)$")


def format_bill_number(sequence: int) -> str:
    return f"{BILL_PREFIX}{sequence:06d}"


def parse_bill_number(bill_number: str) -> int | None:
    """Return the numeric suffix of a bill number, or None if it isn't one."""
    match = _NUMBER_RE.match(bill_number)
    if match is None:
        return None
    return int(match.group(1))


class BillNumberAllocator:
    """
    Mint bill numbers from a counter kept in the store.

    The counter is advanced inside the caller's transaction, so allocation
    is serialized by the store's writer lock and a rolled-back transaction
    leaves the counter untouched.
    """

    def __init__(self, txn: Transaction):
        self.txn = txn

    def _current(self) -> int:
        current = self.txn.get_sequence(SEQUENCE_NAME)
        if current is not None:
            return current
        # Data written before the counter existed: continue after the highest number
        suffixes = [parse_bill_number(n) for n in self.txn.bill_numbers()]
        return max((s for s in suffixes if s is not None), default=0)

    def next(self) -> str:
        """Return a bill number greater than every number issued before."""
        sequence = self._current() + 1
        self.txn.set_sequence(SEQUENCE_NAME, sequence)
        return format_bill_number(sequence)
