"""Stock ledger: the only code path that changes item stock quantities."""

import logging

from .errors import InsufficientStockError, InvalidArgumentError
from .models import _utc_now
from .store import Transaction

logger = logging.getLogger(__name__)


def _check_quantity(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidArgumentError("quantity", quantity, "must be an integer")
    if quantity < 0:
        raise InvalidArgumentError("quantity", quantity, "cannot be negative")


class StockLedger:
    """
    Reserve and release item stock inside a store transaction.

    Every change is written back to the transaction's working copy, so it
    commits or rolls back together with whatever else the transaction does.
    Stock is never clamped: a reservation either fits or fails.
    """

    def __init__(self, txn: Transaction):
        self.txn = txn

    def check_availability(self, item_id: str, quantity: int) -> bool:
        """
        Return True if the item is active and has at least ``quantity`` in stock.

        Raises:
            ItemNotFoundError: If the item doesn't exist.
        """
        item = self.txn.get_item(item_id)
        return item.active and item.stock_quantity >= quantity

    def reserve(self, item_id: str, quantity: int) -> int:
        """
        Take ``quantity`` units out of stock.

        Returns:
            The item's new stock quantity.

        Raises:
            ItemNotFoundError: If the item doesn't exist.
            InvalidArgumentError: If quantity is negative.
            InsufficientStockError: If the item is inactive or short.
        """
        _check_quantity(quantity)
        item = self.txn.get_item(item_id)
        if not item.active:
            raise InsufficientStockError(item.name, quantity, item.stock_quantity, inactive=True)
        if quantity > item.stock_quantity:
            raise InsufficientStockError(item.name, quantity, item.stock_quantity)

        item.stock_quantity -= quantity
        item.updated_at = _utc_now()
        self.txn.put_item(item)
        logger.debug("Reserved %d x %s, stock now %d", quantity, item.code, item.stock_quantity)
        return item.stock_quantity

    def release(self, item_id: str, quantity: int) -> int:
        """
        Put ``quantity`` units back into stock. No upper bound.

        Returns:
            The item's new stock quantity.

        Raises:
            ItemNotFoundError: If the item doesn't exist.
            InvalidArgumentError: If quantity is negative.
        """
        _check_quantity(quantity)
        item = self.txn.get_item(item_id)
        item.stock_quantity += quantity
        item.updated_at = _utc_now()
        self.txn.put_item(item)
        logger.debug("Released %d x %s, stock now %d", quantity, item.code, item.stock_quantity)
        return item.stock_quantity
