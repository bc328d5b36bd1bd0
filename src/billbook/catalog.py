"""Customer and item registry consumed by the billing workflow."""

import logging
from decimal import Decimal

from .errors import DuplicateRecordError, InvalidArgumentError
from .models import Customer, Item, _utc_now
from .pricing import round2, validate_unit_price
from .stock_ledger import StockLedger
from .store import RecordStore

logger = logging.getLogger(__name__)


class Catalog:
    """Registers and looks up customers and items."""

    def __init__(self, store: RecordStore | None = None):
        self.store = store or RecordStore()

    # --- Customers ---

    def add_customer(
        self,
        account_number: str,
        name: str,
        address: str = "",
        phone: str = "",
        email: str | None = None,
    ) -> Customer:
        """
        Register a customer.

        Raises:
            InvalidArgumentError: If account number or name is blank.
            DuplicateRecordError: If the account number is taken.
        """
        account_number = account_number.strip()
        if not account_number:
            raise InvalidArgumentError("account_number", account_number, "is required")
        if not name.strip():
            raise InvalidArgumentError("name", name, "is required")

        with self.store.transaction() as txn:
            if txn.find_customer_by_account(account_number) is not None:
                raise DuplicateRecordError("Customer", "account_number", account_number)
            customer = Customer.create(
                account_number=account_number,
                name=name.strip(),
                address=address,
                phone=phone,
                email=email,
            )
            txn.put_customer(customer)

        logger.info("Added customer %s", customer.display_name)
        return customer

    def get_customer(self, customer_id: str) -> Customer:
        """
        Raises:
            CustomerNotFoundError: If the customer doesn't exist.
        """
        return self.store.snapshot().get_customer(customer_id)

    def list_customers(self) -> list[Customer]:
        customers = self.store.snapshot().customers()
        customers.sort(key=lambda c: c.account_number)
        return customers

    # --- Items ---

    def add_item(
        self,
        code: str,
        name: str,
        price: Decimal | str,
        stock_quantity: int = 0,
        minimum_stock_level: int = 10,
        category: str | None = None,
        description: str | None = None,
    ) -> Item:
        """
        Register an item.

        Raises:
            InvalidArgumentError: If a field is blank or out of range.
            DuplicateRecordError: If the item code is taken.
        """
        code = code.strip().upper()
        if not code:
            raise InvalidArgumentError("code", code, "is required")
        if not name.strip():
            raise InvalidArgumentError("name", name, "is required")
        unit_price = round2(validate_unit_price(price), "price")
        if stock_quantity < 0:
            raise InvalidArgumentError("stock_quantity", stock_quantity, "cannot be negative")
        if minimum_stock_level < 0:
            raise InvalidArgumentError(
                "minimum_stock_level", minimum_stock_level, "cannot be negative"
            )

        with self.store.transaction() as txn:
            if txn.find_item_by_code(code) is not None:
                raise DuplicateRecordError("Item", "code", code)
            item = Item.create(
                code=code,
                name=name.strip(),
                price=unit_price,
                stock_quantity=stock_quantity,
                minimum_stock_level=minimum_stock_level,
                category=category,
                description=description,
            )
            txn.put_item(item)

        logger.info("Added item %s at %s, stock %d", item.display_name, item.price, item.stock_quantity)
        return item

    def get_item(self, item_id: str) -> Item:
        """
        Raises:
            ItemNotFoundError: If the item doesn't exist.
        """
        return self.store.snapshot().get_item(item_id)

    def list_items(self, include_inactive: bool = False) -> list[Item]:
        """
        List items by code.

        Args:
            include_inactive: If True, include soft-deleted items.
        """
        items = self.store.snapshot().items()
        if not include_inactive:
            items = [i for i in items if i.active]
        items.sort(key=lambda i: i.code)
        return items

    def restock_item(self, item_id: str, quantity: int) -> Item:
        """
        Add stock to an item through the stock ledger.

        Raises:
            ItemNotFoundError: If the item doesn't exist.
            InvalidArgumentError: If quantity is negative.
        """
        with self.store.transaction() as txn:
            StockLedger(txn).release(item_id, quantity)
            item = txn.get_item(item_id)

        logger.info("Restocked %s by %d, stock now %d", item.code, quantity, item.stock_quantity)
        return item

    def deactivate_item(self, item_id: str) -> Item:
        """
        Soft-delete an item. It stays referenced by existing bills.

        Raises:
            ItemNotFoundError: If the item doesn't exist.
        """
        with self.store.transaction() as txn:
            item = txn.get_item(item_id)
            item.active = False
            item.updated_at = _utc_now()
            txn.put_item(item)

        logger.info("Deactivated item %s", item.code)
        return item
