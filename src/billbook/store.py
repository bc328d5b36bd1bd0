"""Transactional JSON record store for billbook."""

import fcntl
import json
import logging
import os
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from .config import load_settings
from .errors import (
    BillNotFoundError,
    ContentionError,
    CustomerNotFoundError,
    InvalidSchemaVersionError,
    ItemNotFoundError,
)
from .models import Bill, Customer, Item

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
DATA_FILE = "billbook.json"
LOCK_FILE = ".billbook.lock"
LOCK_POLL_INTERVAL = 0.01


def _empty_data() -> dict[str, Any]:
    return {
        "schema_version": SCHEMA_VERSION,
        "customers": {},
        "items": {},
        "bills": {},
        "sequences": {},
    }


class Transaction:
    """
    Working copy of the store contents.

    Records are handed out as fresh model objects; changes only land in the
    working copy through the put_* methods, and only reach disk when the
    enclosing RecordStore.transaction() block exits without an exception.
    """

    def __init__(self, data: dict[str, Any]):
        self._data = data

    # --- Customers ---

    def get_customer(self, customer_id: str) -> Customer:
        """
        Raises:
            CustomerNotFoundError: If the customer doesn't exist.
        """
        raw = self._data["customers"].get(customer_id)
        if raw is None:
            raise CustomerNotFoundError(customer_id)
        return Customer.from_dict(raw)

    def put_customer(self, customer: Customer) -> None:
        self._data["customers"][customer.id] = customer.to_dict()

    def customers(self) -> list[Customer]:
        return [Customer.from_dict(c) for c in self._data["customers"].values()]

    def find_customer_by_account(self, account_number: str) -> Customer | None:
        for raw in self._data["customers"].values():
            if raw["account_number"] == account_number:
                return Customer.from_dict(raw)
        return None

    # --- Items ---

    def get_item(self, item_id: str) -> Item:
        """
        Raises:
            ItemNotFoundError: If the item doesn't exist.
        """
        raw = self._data["items"].get(item_id)
        if raw is None:
            raise ItemNotFoundError(item_id)
        return Item.from_dict(raw)

    def put_item(self, item: Item) -> None:
        self._data["items"][item.id] = item.to_dict()

    def items(self) -> list[Item]:
        return [Item.from_dict(i) for i in self._data["items"].values()]

    def find_item_by_code(self, code: str) -> Item | None:
        for raw in self._data["items"].values():
            if raw["code"] == code:
                return Item.from_dict(raw)
        return None

    # --- Bills ---

    def get_bill(self, bill_id: str) -> Bill:
        """
        Raises:
            BillNotFoundError: If the bill doesn't exist.
        """
        raw = self._data["bills"].get(bill_id)
        if raw is None:
            raise BillNotFoundError(bill_id)
        return Bill.from_dict(raw)

    def put_bill(self, bill: Bill) -> None:
        self._data["bills"][bill.id] = bill.to_dict()

    def bills(self) -> list[Bill]:
        return [Bill.from_dict(b) for b in self._data["bills"].values()]

    def find_bill_by_number(self, bill_number: str) -> Bill | None:
        for raw in self._data["bills"].values():
            if raw["bill_number"] == bill_number:
                return Bill.from_dict(raw)
        return None

    def bill_numbers(self) -> list[str]:
        return [raw["bill_number"] for raw in self._data["bills"].values()]

    # --- Sequences ---

    def get_sequence(self, name: str) -> int | None:
        return self._data["sequences"].get(name)

    def set_sequence(self, name: str, value: int) -> None:
        self._data["sequences"][name] = value


class RecordStore:
    """Durable store for customers, items and bills with all-or-nothing commits."""

    def __init__(self, config_dir: Path | None = None, lock_timeout: float | None = None):
        """
        Initialize RecordStore.

        Args:
            config_dir: Override data directory (for testing).
            lock_timeout: Seconds to wait for the writer lock before failing.
        """
        if config_dir is None or lock_timeout is None:
            settings = load_settings()
            config_dir = config_dir or settings.data_dir
            lock_timeout = lock_timeout if lock_timeout is not None else settings.lock_timeout
        self.config_dir = Path(config_dir)
        self.data_path = self.config_dir / DATA_FILE
        self.lock_path = self.config_dir / LOCK_FILE
        self.lock_timeout = lock_timeout

    def _ensure_dir(self) -> None:
        """Ensure data directory exists."""
        self.config_dir.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _lock(self) -> Iterator[None]:
        """
        Acquire the exclusive writer lock, polling until lock_timeout.

        Raises:
            ContentionError: If the lock isn't acquired in time.
        """
        self._ensure_dir()
        deadline = time.monotonic() + self.lock_timeout
        with open(self.lock_path, "w") as lock_file:
            while True:
                try:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if time.monotonic() >= deadline:
                        logger.warning(
                            "Lock wait on %s exceeded %.2fs", self.lock_path, self.lock_timeout
                        )
                        raise ContentionError(str(self.lock_path), self.lock_timeout)
                    time.sleep(LOCK_POLL_INTERVAL)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def exists(self) -> bool:
        """Check if the data file exists."""
        return self.data_path.exists()

    def _load_data(self) -> dict[str, Any]:
        """
        Load the store document from disk.

        Raises:
            InvalidSchemaVersionError: If schema version is unsupported.
        """
        if not self.exists():
            return _empty_data()

        with open(self.data_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        version = data.get("schema_version", 0)
        if version != SCHEMA_VERSION:
            raise InvalidSchemaVersionError(version, SCHEMA_VERSION)

        for key, value in _empty_data().items():
            data.setdefault(key, value)
        return data

    def _save_data(self, data: dict[str, Any]) -> None:
        """Save the store document atomically (write temp, then rename)."""
        self._ensure_dir()

        fd, temp_path = tempfile.mkstemp(
            dir=self.config_dir, prefix=".billbook_", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.data_path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """
        Run a read-modify-write unit under the writer lock.

        The working copy is committed only if the block completes; any
        exception discards every change made inside the block.

        Raises:
            ContentionError: If the writer lock isn't acquired in time.
        """
        with self._lock():
            data = self._load_data()
            yield Transaction(data)
            self._save_data(data)
            logger.debug("Committed transaction to %s", self.data_path)

    def snapshot(self) -> Transaction:
        """
        Load a read-only view of the last committed state.

        Changes made through the returned object are never saved.
        """
        return Transaction(self._load_data())
