"""Pure price calculations for bill lines and bill totals."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable

from .errors import InvalidArgumentError, InvalidDiscountError

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
MAX_LINE_QUANTITY = 9999


def to_decimal(value: object, field: str = "amount") -> Decimal:
    """Coerce an int, str or Decimal to Decimal. Floats go through str()."""
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise InvalidArgumentError(field, value, "not a number")
    if not result.is_finite():
        raise InvalidArgumentError(field, value, "not a finite number")
    return result


def round2(value: Decimal, field: str = "amount") -> Decimal:
    """
    Round half-up to 2 decimal places.

    Raises:
        InvalidArgumentError: If the value is too large to hold in cents.
    """
    try:
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidArgumentError(field, value, "out of range")


@dataclass(frozen=True)
class LineInput:
    """The raw money inputs of one bill line."""

    unit_price: Decimal
    quantity: int
    discount_percentage: Decimal = Decimal("0")


@dataclass(frozen=True)
class BillTotals:
    """Computed money fields of a bill."""

    line_totals: tuple[Decimal, ...]
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal


def validate_quantity(quantity: int) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidArgumentError("quantity", quantity, "must be an integer")
    if quantity <= 0:
        raise InvalidArgumentError("quantity", quantity, "must be at least 1")
    if quantity > MAX_LINE_QUANTITY:
        raise InvalidArgumentError("quantity", quantity, f"cannot exceed {MAX_LINE_QUANTITY}")
    return quantity


def validate_discount_percentage(value: object) -> Decimal:
    pct = to_decimal(value, "discount_percentage")
    if pct < 0 or pct > HUNDRED:
        raise InvalidArgumentError("discount_percentage", value, "must be between 0 and 100")
    return pct


def validate_unit_price(value: object) -> Decimal:
    price = to_decimal(value, "unit_price")
    if price <= 0:
        raise InvalidArgumentError("unit_price", value, "must be greater than 0")
    return price


def validate_tax_rate(value: object) -> Decimal:
    rate = to_decimal(value, "tax_rate")
    if rate < 0 or rate > 1:
        raise InvalidArgumentError("tax_rate", value, "must be between 0 and 1")
    return rate


def validate_discount_amount(value: object) -> Decimal:
    amount = to_decimal(value if value is not None else 0, "discount_amount")
    if amount < 0:
        raise InvalidArgumentError("discount_amount", value, "cannot be negative")
    return round2(amount, "discount_amount")


def line_total(unit_price: object, quantity: int, discount_percentage: object = 0) -> Decimal:
    """
    Price one line: unit_price * quantity * (1 - discount_percentage / 100).

    Raises:
        InvalidArgumentError: If any input is out of range.
    """
    price = validate_unit_price(unit_price)
    qty = validate_quantity(quantity)
    pct = validate_discount_percentage(discount_percentage)
    gross = price * qty
    return round2(gross - gross * pct / HUNDRED, "unit_price")


def calculate_bill(
    lines: Iterable[LineInput],
    discount_amount: object = 0,
    tax_rate: object = 0,
) -> BillTotals:
    """
    Compute line totals, subtotal, tax and grand total.

    The same inputs always produce the same outputs.

    Raises:
        InvalidArgumentError: If a line or rate is malformed, or no lines given.
        InvalidDiscountError: If the discount exceeds subtotal plus tax.
    """
    totals = tuple(
        line_total(line.unit_price, line.quantity, line.discount_percentage)
        for line in lines
    )
    if not totals:
        raise InvalidArgumentError("lines", 0, "bill must contain at least one item")

    rate = validate_tax_rate(tax_rate)
    discount = validate_discount_amount(discount_amount)

    subtotal = sum(totals, Decimal("0.00"))
    tax_amount = round2(subtotal * rate)
    gross = subtotal + tax_amount
    total = gross - discount
    if total < 0:
        raise InvalidDiscountError(discount, gross)

    return BillTotals(
        line_totals=totals,
        subtotal=round2(subtotal),
        tax_rate=rate,
        tax_amount=tax_amount,
        discount_amount=discount,
        total_amount=round2(total),
    )
