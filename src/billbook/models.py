"""Data models for billbook."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
import uuid

from .pricing import LineInput, calculate_bill, round2, to_decimal


def _utc_now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _generate_id() -> str:
    """Generate a new record ID."""
    return str(uuid.uuid4())


def parse_timestamp(value: str) -> datetime:
    """Parse a stored ISO 8601 timestamp into an aware datetime."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _money(value: Any) -> Decimal:
    return to_decimal(value if value is not None else "0.00")


class BillStatus(str, Enum):
    """Lifecycle states of a bill."""

    DRAFT = "DRAFT"
    PENDING = "PENDING"
    PARTIAL_PAID = "PARTIAL_PAID"
    OVERDUE = "OVERDUE"
    PAID = "PAID"
    CANCELLED = "CANCELLED"

    @property
    def display_name(self) -> str:
        return _STATUS_DISPLAY[self]

    @property
    def is_final(self) -> bool:
        return self in (BillStatus.PAID, BillStatus.CANCELLED)

    @property
    def is_modifiable(self) -> bool:
        return self in (BillStatus.DRAFT, BillStatus.PENDING)

    @property
    def requires_payment(self) -> bool:
        return self in (BillStatus.PENDING, BillStatus.PARTIAL_PAID, BillStatus.OVERDUE)

    def can_transition_to(self, target: "BillStatus") -> bool:
        return target in _TRANSITIONS[self]


_STATUS_DISPLAY = {
    BillStatus.DRAFT: "Draft",
    BillStatus.PENDING: "Pending",
    BillStatus.PARTIAL_PAID: "Partially Paid",
    BillStatus.OVERDUE: "Overdue",
    BillStatus.PAID: "Paid",
    BillStatus.CANCELLED: "Cancelled",
}

_TRANSITIONS: dict[BillStatus, frozenset[BillStatus]] = {
    BillStatus.DRAFT: frozenset({BillStatus.PENDING, BillStatus.PAID, BillStatus.CANCELLED}),
    BillStatus.PENDING: frozenset(
        {BillStatus.PAID, BillStatus.CANCELLED, BillStatus.PARTIAL_PAID, BillStatus.OVERDUE}
    ),
    BillStatus.PARTIAL_PAID: frozenset({BillStatus.PAID, BillStatus.CANCELLED}),
    BillStatus.OVERDUE: frozenset({BillStatus.PAID, BillStatus.CANCELLED}),
    BillStatus.PAID: frozenset(),
    BillStatus.CANCELLED: frozenset(),
}


@dataclass
class Customer:
    """A bookshop customer account."""

    id: str
    account_number: str
    name: str
    address: str = ""
    phone: str = ""
    email: str | None = None
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    @property
    def display_name(self) -> str:
        return f"{self.name} ({self.account_number})"

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "account_number": self.account_number,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.email is not None:
            result["email"] = self.email
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Customer":
        return cls(
            id=data["id"],
            account_number=data["account_number"],
            name=data["name"],
            address=data.get("address", ""),
            phone=data.get("phone", ""),
            email=data.get("email"),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )

    @classmethod
    def create(
        cls,
        account_number: str,
        name: str,
        address: str = "",
        phone: str = "",
        email: str | None = None,
    ) -> "Customer":
        """Create a new customer with generated ID and timestamps."""
        now = _utc_now()
        return cls(
            id=_generate_id(),
            account_number=account_number,
            name=name,
            address=address,
            phone=phone,
            email=email,
            created_at=now,
            updated_at=now,
        )


@dataclass
class Item:
    """An inventory item. Stock is only changed through the stock ledger."""

    id: str
    code: str
    name: str
    price: Decimal
    stock_quantity: int
    minimum_stock_level: int = 10
    category: str | None = None
    description: str | None = None
    active: bool = True
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    @property
    def display_name(self) -> str:
        return f"{self.name} ({self.code})"

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity <= self.minimum_stock_level

    @property
    def is_in_stock(self) -> bool:
        return self.stock_quantity > 0

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "price": str(self.price),
            "stock_quantity": self.stock_quantity,
            "minimum_stock_level": self.minimum_stock_level,
            "active": self.active,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.category is not None:
            result["category"] = self.category
        if self.description is not None:
            result["description"] = self.description
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Item":
        return cls(
            id=data["id"],
            code=data["code"],
            name=data["name"],
            price=_money(data["price"]),
            stock_quantity=data["stock_quantity"],
            minimum_stock_level=data.get("minimum_stock_level", 10),
            category=data.get("category"),
            description=data.get("description"),
            active=data.get("active", True),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )

    @classmethod
    def create(
        cls,
        code: str,
        name: str,
        price: Decimal,
        stock_quantity: int,
        minimum_stock_level: int = 10,
        category: str | None = None,
        description: str | None = None,
    ) -> "Item":
        """Create a new active item with generated ID and timestamps."""
        now = _utc_now()
        return cls(
            id=_generate_id(),
            code=code,
            name=name,
            price=price,
            stock_quantity=stock_quantity,
            minimum_stock_level=minimum_stock_level,
            category=category,
            description=description,
            active=True,
            created_at=now,
            updated_at=now,
        )


@dataclass
class BillLine:
    """One item entry on a bill. References the item by id only."""

    item_id: str
    item_code: str
    item_name: str
    quantity: int
    unit_price: Decimal  # captured when the line was created
    discount_percentage: Decimal = Decimal("0")
    total_price: Decimal = Decimal("0.00")

    @property
    def discount_amount(self) -> Decimal:
        """Gross line amount minus total_price, so the two always add up."""
        return round2(self.unit_price * self.quantity) - self.total_price

    def to_input(self) -> LineInput:
        return LineInput(
            unit_price=self.unit_price,
            quantity=self.quantity,
            discount_percentage=self.discount_percentage,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "item_code": self.item_code,
            "item_name": self.item_name,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "discount_percentage": str(self.discount_percentage),
            "total_price": str(self.total_price),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BillLine":
        return cls(
            item_id=data["item_id"],
            item_code=data.get("item_code", ""),
            item_name=data.get("item_name", ""),
            quantity=data["quantity"],
            unit_price=_money(data["unit_price"]),
            discount_percentage=_money(data.get("discount_percentage", "0")),
            total_price=_money(data.get("total_price")),
        )


@dataclass
class Bill:
    """A customer invoice. Owns its lines; money fields come from recalculate()."""

    id: str
    bill_number: str
    customer_id: str
    bill_date: str
    lines: list[BillLine]
    tax_rate: Decimal
    subtotal: Decimal = Decimal("0.00")
    tax_amount: Decimal = Decimal("0.00")
    discount_amount: Decimal = Decimal("0.00")
    total_amount: Decimal = Decimal("0.00")
    status: BillStatus = BillStatus.PENDING
    notes: str | None = None
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    @property
    def is_modifiable(self) -> bool:
        return self.status.is_modifiable

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def bill_datetime(self) -> datetime:
        return parse_timestamp(self.bill_date)

    def recalculate(self) -> None:
        """
        Recompute line totals and bill totals from the current lines.

        Must be called explicitly after any change to lines, discount or rate.

        Raises:
            InvalidArgumentError: If the lines or discount are invalid.
            InvalidDiscountError: If the discount exceeds subtotal plus tax.
        """
        totals = calculate_bill(
            [line.to_input() for line in self.lines],
            discount_amount=self.discount_amount,
            tax_rate=self.tax_rate,
        )
        for line, line_price in zip(self.lines, totals.line_totals):
            line.total_price = line_price
        self.subtotal = totals.subtotal
        self.tax_amount = totals.tax_amount
        self.discount_amount = totals.discount_amount
        self.total_amount = totals.total_amount

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "bill_number": self.bill_number,
            "customer_id": self.customer_id,
            "bill_date": self.bill_date,
            "lines": [line.to_dict() for line in self.lines],
            "subtotal": str(self.subtotal),
            "tax_rate": str(self.tax_rate),
            "tax_amount": str(self.tax_amount),
            "discount_amount": str(self.discount_amount),
            "total_amount": str(self.total_amount),
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.notes is not None:
            result["notes"] = self.notes
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Bill":
        return cls(
            id=data["id"],
            bill_number=data["bill_number"],
            customer_id=data["customer_id"],
            bill_date=data["bill_date"],
            lines=[BillLine.from_dict(line) for line in data.get("lines", [])],
            tax_rate=_money(data["tax_rate"]),
            subtotal=_money(data.get("subtotal")),
            tax_amount=_money(data.get("tax_amount")),
            discount_amount=_money(data.get("discount_amount")),
            total_amount=_money(data.get("total_amount")),
            status=BillStatus(data.get("status", BillStatus.PENDING.value)),
            notes=data.get("notes"),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )

    @classmethod
    def create(
        cls,
        bill_number: str,
        customer_id: str,
        lines: list[BillLine],
        tax_rate: Decimal,
        discount_amount: Decimal = Decimal("0.00"),
        notes: str | None = None,
    ) -> "Bill":
        """Create a new pending bill. Totals are zero until recalculate()."""
        now = _utc_now()
        return cls(
            id=_generate_id(),
            bill_number=bill_number,
            customer_id=customer_id,
            bill_date=now,
            lines=lines,
            tax_rate=tax_rate,
            discount_amount=discount_amount,
            status=BillStatus.PENDING,
            notes=notes,
            created_at=now,
            updated_at=now,
        )


@dataclass(frozen=True)
class LineRequest:
    """A requested bill line: which item, how many, at what percentage off."""

    item_id: str
    quantity: int
    discount_percentage: Decimal = Decimal("0")
