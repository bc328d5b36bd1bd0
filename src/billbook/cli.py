"""Command-line interface for billbook."""

import argparse
import json
import logging
import sys
from datetime import datetime
from decimal import Decimal

from . import __version__
from .billing import BillingService
from .catalog import Catalog
from .config import configure_logging, load_settings
from .errors import BillbookError, InvalidArgumentError, UnexpectedError
from .models import Bill, BillStatus, LineRequest
from .numbering import parse_bill_number
from .pricing import to_decimal
from .reports import BillReports
from .store import RecordStore

logger = logging.getLogger(__name__)


def get_store() -> RecordStore:
    """Get a RecordStore for the configured data directory."""
    return RecordStore()


def parse_line_spec(spec: str) -> LineRequest:
    """
    Parse a bill line given as ITEM_ID:QTY or ITEM_ID:QTY:DISCOUNT_PCT.

    Raises:
        InvalidArgumentError: If the spec is malformed.
    """
    parts = spec.split(":")
    if len(parts) not in (2, 3) or not parts[0]:
        raise InvalidArgumentError("line", spec, "expected ITEM_ID:QTY[:DISCOUNT_PCT]")
    try:
        quantity = int(parts[1])
    except ValueError:
        raise InvalidArgumentError("line", spec, "quantity must be an integer")
    discount = Decimal("0")
    if len(parts) == 3 and parts[2]:
        discount = to_decimal(parts[2], "discount_percentage")
    return LineRequest(item_id=parts[0], quantity=quantity, discount_percentage=discount)


def _resolve_bill(service: BillingService, ref: str) -> Bill:
    """Look up a bill by bill number (BILL000001) or by id."""
    if parse_bill_number(ref) is not None:
        return service.get_bill_by_number(ref)
    return service.get_bill(ref)


def format_bill(bill: Bill, verbose: bool = False) -> str:
    """Format a bill for terminal display."""
    header = (
        f"{bill.bill_number}  {bill.bill_date[:19]}  {bill.status.display_name:<14} "
        f"{bill.total_amount:>12}"
    )
    if not verbose:
        return header

    rows = [header, f"  Customer: {bill.customer_id}"]
    for line in bill.lines:
        discount = f" -{line.discount_percentage}%" if line.discount_percentage else ""
        rows.append(
            f"  {line.item_code:<12} {line.item_name[:30]:<30} "
            f"{line.quantity:>5} x {line.unit_price:>10}{discount:<8} {line.total_price:>12}"
        )
    rows.append(f"  {'Subtotal':<62}{bill.subtotal:>12}")
    rows.append(f"  {'Tax @ ' + str(bill.tax_rate):<62}{bill.tax_amount:>12}")
    if bill.discount_amount:
        rows.append(f"  {'Discount':<62}{-bill.discount_amount:>12}")
    rows.append(f"  {'Total':<62}{bill.total_amount:>12}")
    if bill.notes:
        rows.append(f"  Notes: {bill.notes}")
    return "\n".join(rows)


def cmd_customer_add(args: argparse.Namespace) -> int:
    """Register a customer."""
    customer = Catalog(get_store()).add_customer(
        account_number=args.account_number,
        name=args.name,
        address=args.address or "",
        phone=args.phone or "",
        email=args.email,
    )
    print(f"Added customer: {customer.id}")
    print(f"  {customer.display_name}")
    return 0


def cmd_customer_list(args: argparse.Namespace) -> int:
    """List customers."""
    customers = Catalog(get_store()).list_customers()
    if args.json:
        print(json.dumps([c.to_dict() for c in customers], indent=2))
        return 0
    if not customers:
        print("No customers.")
        return 0
    for c in customers:
        print(f"{c.id}  {c.display_name}")
    return 0


def cmd_item_add(args: argparse.Namespace) -> int:
    """Register an item."""
    item = Catalog(get_store()).add_item(
        code=args.code,
        name=args.name,
        price=args.price,
        stock_quantity=args.stock,
        minimum_stock_level=args.min_stock,
        category=args.category,
    )
    print(f"Added item: {item.id}")
    print(f"  {item.display_name} @ {item.price}, stock {item.stock_quantity}")
    return 0


def cmd_item_list(args: argparse.Namespace) -> int:
    """List items."""
    items = Catalog(get_store()).list_items(include_inactive=args.all)
    if args.json:
        print(json.dumps([i.to_dict() for i in items], indent=2))
        return 0
    if not items:
        print("No items.")
        return 0
    for i in items:
        flags = []
        if not i.active:
            flags.append("inactive")
        elif i.is_low_stock:
            flags.append("low stock")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        print(f"{i.id}  {i.code:<12} {i.name[:30]:<30} {i.price:>10} {i.stock_quantity:>6}{suffix}")
    return 0


def cmd_item_restock(args: argparse.Namespace) -> int:
    """Add stock to an item."""
    item = Catalog(get_store()).restock_item(args.item_id, args.quantity)
    print(f"Restocked {item.code}: stock now {item.stock_quantity}")
    return 0


def cmd_item_deactivate(args: argparse.Namespace) -> int:
    """Soft-delete an item."""
    item = Catalog(get_store()).deactivate_item(args.item_id)
    print(f"Deactivated {item.display_name}")
    return 0


def cmd_bill_create(args: argparse.Namespace) -> int:
    """Create a bill."""
    service = BillingService(get_store())
    bill = service.create_bill(
        customer_id=args.customer_id,
        lines=[parse_line_spec(s) for s in args.line],
        discount_amount=args.discount,
        notes=args.notes,
    )
    print(f"Created bill {bill.bill_number} ({bill.id})")
    print(format_bill(bill, verbose=True))
    return 0


def cmd_bill_update(args: argparse.Namespace) -> int:
    """Replace a bill's lines."""
    service = BillingService(get_store())
    bill = _resolve_bill(service, args.bill)
    bill = service.update_bill(
        bill.id,
        lines=[parse_line_spec(s) for s in args.line],
        discount_amount=args.discount,
        notes=args.notes,
    )
    print(f"Updated bill {bill.bill_number}")
    print(format_bill(bill, verbose=True))
    return 0


def cmd_bill_show(args: argparse.Namespace) -> int:
    """Show one bill."""
    bill = _resolve_bill(BillingService(get_store()), args.bill)
    if args.json:
        print(json.dumps(bill.to_dict(), indent=2))
    else:
        print(format_bill(bill, verbose=True))
    return 0


def cmd_bill_list(args: argparse.Namespace) -> int:
    """List bills."""
    reports = BillReports(get_store())
    if args.customer:
        bills = BillingService(get_store()).list_bills_by_customer(args.customer)
    elif args.status:
        bills = reports.bills_by_status(BillStatus(args.status))
    else:
        bills = reports.list_bills()
    if args.limit:
        bills = bills[: args.limit]

    if args.json:
        print(json.dumps([b.to_dict() for b in bills], indent=2))
        return 0
    if not bills:
        print("No bills.")
        return 0
    for b in bills:
        print(format_bill(b))
    return 0


def cmd_bill_pay(args: argparse.Namespace) -> int:
    """Mark a bill paid."""
    service = BillingService(get_store())
    bill = service.mark_bill_paid(_resolve_bill(service, args.bill).id)
    print(f"Bill {bill.bill_number} marked paid ({bill.total_amount})")
    return 0


def cmd_bill_cancel(args: argparse.Namespace) -> int:
    """Cancel a bill and return its stock."""
    service = BillingService(get_store())
    bill = service.cancel_bill(_resolve_bill(service, args.bill).id)
    print(f"Bill {bill.bill_number} cancelled, {bill.total_quantity} unit(s) returned to stock")
    return 0


def cmd_report_sales(args: argparse.Namespace) -> int:
    """Print paid sales for a date range."""
    reports = BillReports(get_store())
    total = reports.total_sales(args.start, args.end)
    print(f"Sales {args.start.date()} to {args.end.date()}: {total}")
    if args.by == "day":
        for d in reports.daily_sales(args.start, args.end):
            print(f"  {d.day}  {d.bill_count:>5} bill(s) {d.total_amount:>14}")
    elif args.by == "month":
        for m in reports.monthly_sales(args.start, args.end):
            print(f"  {m.year}-{m.month:02d}  {m.bill_count:>5} bill(s) {m.total_amount:>14}")
    print(f"Average paid bill: {reports.average_bill_amount()}")
    for status, count in reports.count_by_status().items():
        if count:
            print(f"  {status.display_name:<16}{count:>6}")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    import uvicorn

    settings = load_settings()
    print("Starting billbook API server...")
    print(f"Data directory: {settings.data_dir}")
    print(f"API docs: http://{args.host}:{args.port}/docs")
    print()

    # When reload is enabled, uvicorn requires the app as an import string
    app_target = "billbook.api:app" if args.reload else None
    if app_target is None:
        from .api import app
        app_target = app

    uvicorn.run(
        app_target,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )
    return 0


def _datetime_arg(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid ISO date/time: {value}")


def _add_line_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--line", "-l", action="append", required=True,
        help="Bill line as ITEM_ID:QTY[:DISCOUNT_PCT] (repeatable)",
    )
    parser.add_argument(
        "--discount", "-d", default="0", help="Bill-level discount amount (default: 0)"
    )
    parser.add_argument("--notes", "-n", help="Notes printed on the bill")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="billbook",
        description="Bookshop billing: customers, stock and invoices.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # customer
    customer_parser = subparsers.add_parser("customer", help="Manage customers")
    customer_subparsers = customer_parser.add_subparsers(dest="customer_command")

    customer_add = customer_subparsers.add_parser("add", help="Register a customer")
    customer_add.add_argument("account_number", help="Unique account number")
    customer_add.add_argument("name", help="Customer name")
    customer_add.add_argument("--address", help="Postal address")
    customer_add.add_argument("--phone", help="Phone number")
    customer_add.add_argument("--email", help="Email address")

    customer_list = customer_subparsers.add_parser("list", help="List customers")
    customer_list.add_argument("--json", action="store_true", help="Output as JSON")

    # item
    item_parser = subparsers.add_parser("item", help="Manage items")
    item_subparsers = item_parser.add_subparsers(dest="item_command")

    item_add = item_subparsers.add_parser("add", help="Register an item")
    item_add.add_argument("code", help="Unique item code")
    item_add.add_argument("name", help="Item name")
    item_add.add_argument("price", help="Unit price")
    item_add.add_argument("--stock", "-s", type=int, default=0, help="Opening stock (default: 0)")
    item_add.add_argument(
        "--min-stock", type=int, default=10, help="Low-stock threshold (default: 10)"
    )
    item_add.add_argument("--category", "-c", help="Category")

    item_list = item_subparsers.add_parser("list", help="List items")
    item_list.add_argument("--all", "-a", action="store_true", help="Include inactive items")
    item_list.add_argument("--json", action="store_true", help="Output as JSON")

    item_restock = item_subparsers.add_parser("restock", help="Add stock to an item")
    item_restock.add_argument("item_id", help="Item ID")
    item_restock.add_argument("quantity", type=int, help="Units to add")

    item_deactivate = item_subparsers.add_parser("deactivate", help="Soft-delete an item")
    item_deactivate.add_argument("item_id", help="Item ID")

    # bill
    bill_parser = subparsers.add_parser("bill", help="Manage bills")
    bill_subparsers = bill_parser.add_subparsers(dest="bill_command")

    bill_create = bill_subparsers.add_parser("create", help="Create a bill")
    bill_create.add_argument("customer_id", help="Customer ID")
    _add_line_args(bill_create)

    bill_update = bill_subparsers.add_parser("update", help="Replace a bill's lines")
    bill_update.add_argument("bill", help="Bill ID or bill number")
    _add_line_args(bill_update)

    bill_show = bill_subparsers.add_parser("show", help="Show a bill")
    bill_show.add_argument("bill", help="Bill ID or bill number")
    bill_show.add_argument("--json", action="store_true", help="Output as JSON")

    bill_list = bill_subparsers.add_parser("list", help="List bills")
    bill_list.add_argument("--customer", help="Only bills for this customer ID")
    bill_list.add_argument(
        "--status", choices=[s.value for s in BillStatus], help="Only bills in this status"
    )
    bill_list.add_argument("--limit", type=int, help="Show at most this many")
    bill_list.add_argument("--json", action="store_true", help="Output as JSON")

    bill_pay = bill_subparsers.add_parser("pay", help="Mark a bill paid")
    bill_pay.add_argument("bill", help="Bill ID or bill number")

    bill_cancel = bill_subparsers.add_parser("cancel", help="Cancel a bill")
    bill_cancel.add_argument("bill", help="Bill ID or bill number")

    # report
    report_parser = subparsers.add_parser("report", help="Sales reports")
    report_subparsers = report_parser.add_subparsers(dest="report_command")

    report_sales = report_subparsers.add_parser("sales", help="Paid sales for a date range")
    report_sales.add_argument("--start", type=_datetime_arg, required=True, help="ISO start")
    report_sales.add_argument("--end", type=_datetime_arg, required=True, help="ISO end")
    report_sales.add_argument(
        "--by", choices=["day", "month"], help="Also break the total down by day or month"
    )

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument(
        "--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)"
    )
    serve_parser.add_argument(
        "--port", "-p", type=int, default=8000, help="Port to bind to (default: 8000)"
    )
    serve_parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )

    return parser


SUBCOMMANDS = {
    "customer": ("customer_command", {"add": cmd_customer_add, "list": cmd_customer_list}),
    "item": (
        "item_command",
        {
            "add": cmd_item_add,
            "list": cmd_item_list,
            "restock": cmd_item_restock,
            "deactivate": cmd_item_deactivate,
        },
    ),
    "bill": (
        "bill_command",
        {
            "create": cmd_bill_create,
            "update": cmd_bill_update,
            "show": cmd_bill_show,
            "list": cmd_bill_list,
            "pay": cmd_bill_pay,
            "cancel": cmd_bill_cancel,
        },
    ),
    "report": ("report_command", {"sales": cmd_report_sales}),
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        configure_logging(load_settings().log_level)
    except BillbookError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.command == "serve":
        cmd_func = cmd_serve
    else:
        dest, commands = SUBCOMMANDS[args.command]
        cmd_func = commands.get(getattr(args, dest, None))
        if cmd_func is None:
            parser.parse_args([args.command, "--help"])
            return 0

    try:
        return cmd_func(args)
    except BillbookError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception:
        logger.exception("Unexpected failure running '%s'", args.command)
        print(f"Error: {UnexpectedError()}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
