"""Custom exceptions for billbook."""


class BillbookError(Exception):
    """Base exception for all billbook errors."""

    retryable = False


class ConfigError(BillbookError):
    """Raised when an environment setting cannot be parsed."""

    def __init__(self, name: str, value: str, reason: str):
        self.name = name
        self.value = value
        super().__init__(f"Invalid value for {name}: {value!r} ({reason})")


class InvalidSchemaVersionError(BillbookError):
    """Raised when the data file has an unsupported schema version."""

    def __init__(self, found: int, supported: int):
        self.found = found
        self.supported = supported
        super().__init__(
            f"Unsupported schema version {found}. This tool supports version {supported}."
        )


class NotFoundError(BillbookError):
    """Raised when a referenced record doesn't exist."""

    kind = "Record"

    def __init__(self, key: str, field: str = "id"):
        self.key = key
        self.field = field
        super().__init__(f"{self.kind} not found with {field}: {key}")


class CustomerNotFoundError(NotFoundError):
    kind = "Customer"


class ItemNotFoundError(NotFoundError):
    kind = "Item"


class BillNotFoundError(NotFoundError):
    kind = "Bill"


class InsufficientStockError(BillbookError):
    """Raised when an item cannot cover the requested quantity."""

    def __init__(self, item_name: str, requested: int, available: int, inactive: bool = False):
        self.item_name = item_name
        self.requested = requested
        self.available = available
        self.inactive = inactive
        if inactive:
            msg = f"Item is not active: {item_name}"
        else:
            msg = (
                f"Insufficient stock for item: {item_name}. "
                f"Available: {available}, Requested: {requested}"
            )
        super().__init__(msg)


class InvalidStateError(BillbookError):
    """Raised when an operation isn't permitted in the bill's current status."""

    def __init__(self, bill_number: str, status: str, action: str):
        self.bill_number = bill_number
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action} bill {bill_number} in status {status}")


class InvalidArgumentError(BillbookError):
    """Raised when a quantity, price, rate or discount is malformed."""

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        super().__init__(f"Invalid {field}: {value} ({reason})")


class InvalidDiscountError(InvalidArgumentError):
    """Raised when a bill discount would push the total below zero."""

    def __init__(self, discount_amount: object, gross_amount: object):
        self.gross_amount = gross_amount
        super().__init__(
            "discount_amount",
            discount_amount,
            f"exceeds bill amount {gross_amount} before discount",
        )


class DuplicateRecordError(BillbookError):
    """Raised when a unique catalog key is already taken."""

    def __init__(self, kind: str, field: str, value: str):
        self.kind = kind
        self.field = field
        self.value = value
        super().__init__(f"{kind} already exists with {field}: {value}")


class ContentionError(BillbookError):
    """Raised when the store lock can't be acquired in time. Safe to retry."""

    retryable = True

    def __init__(self, path: str, timeout: float):
        self.path = path
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout:g}s waiting for lock on {path}")


class UnexpectedError(BillbookError):
    """Opaque failure reported to callers in place of an internal exception."""

    def __init__(self, message: str = "Unexpected error, see server log for details"):
        super().__init__(message)
