"""Integration tests for CLI."""

import json
import subprocess
import sys

import pytest

from billbook import cli
from billbook.errors import InvalidArgumentError
from billbook.reports import BillReports


def run_billbook(args: list[str]) -> subprocess.CompletedProcess:
    """Run billbook CLI command against BILLBOOK_DATA_DIR."""
    return subprocess.run(
        [sys.executable, "-m", "billbook.cli"] + args,
        capture_output=True,
        text=True,
    )


def _created_id(result: subprocess.CompletedProcess) -> str:
    first_line = result.stdout.splitlines()[0]
    return first_line.rsplit(" ", 1)[-1].strip("()")


@pytest.fixture
def shop():
    """A customer and one item with stock 10 @ 100.00, created through the CLI."""
    customer = run_billbook(["customer", "add", "ACC-001", "Nimal Perera"])
    item = run_billbook(["item", "add", "BK-X", "Madol Doova", "100.00", "--stock", "10"])
    assert customer.returncode == 0, customer.stderr
    assert item.returncode == 0, item.stderr
    return {"customer": _created_id(customer), "item": _created_id(item)}


class TestCLIIntegration:
    """Integration tests for CLI commands."""

    def test_no_command_prints_help(self):
        result = run_billbook([])
        assert result.returncode == 0
        assert "usage:" in result.stdout

    def test_customer_list_json(self, shop):
        result = run_billbook(["customer", "list", "--json"])

        assert result.returncode == 0
        data = json.loads(result.stdout)
        assert [c["account_number"] for c in data] == ["ACC-001"]

    def test_duplicate_customer(self, shop):
        result = run_billbook(["customer", "add", "ACC-001", "Someone"])
        assert result.returncode == 1
        assert "already exists" in result.stderr

    def test_create_show_pay(self, shop):
        created = run_billbook(
            ["bill", "create", shop["customer"], "--line", f"{shop['item']}:3"]
        )
        assert created.returncode == 0, created.stderr
        assert "Created bill BILL000001" in created.stdout
        assert "345.00" in created.stdout

        shown = run_billbook(["bill", "show", "BILL000001", "--json"])
        assert json.loads(shown.stdout)["total_amount"] == "345.00"

        paid = run_billbook(["bill", "pay", "BILL000001"])
        assert paid.returncode == 0
        assert "marked paid" in paid.stdout

        again = run_billbook(["bill", "pay", "BILL000001"])
        assert again.returncode == 1
        assert "Cannot mark paid" in again.stderr

    def test_line_discount_and_bill_discount(self, shop):
        result = run_billbook(
            [
                "bill", "create", shop["customer"],
                "-l", f"{shop['item']}:2:10",
                "--discount", "7",
                "--notes", "Member",
            ]
        )
        assert result.returncode == 0, result.stderr

        bill = json.loads(run_billbook(["bill", "show", "BILL000001", "--json"]).stdout)
        assert bill["lines"][0]["total_price"] == "180.00"
        assert bill["total_amount"] == "200.00"
        assert bill["notes"] == "Member"

    def test_insufficient_stock(self, shop):
        result = run_billbook(["bill", "create", shop["customer"], "-l", f"{shop['item']}:11"])

        assert result.returncode == 1
        assert "Insufficient stock for item: Madol Doova" in result.stderr
        listing = run_billbook(["bill", "list"])
        assert "No bills." in listing.stdout

    def test_update_and_cancel(self, shop):
        run_billbook(["bill", "create", shop["customer"], "-l", f"{shop['item']}:3"])

        updated = run_billbook(["bill", "update", "BILL000001", "-l", f"{shop['item']}:10"])
        assert updated.returncode == 0, updated.stderr

        cancelled = run_billbook(["bill", "cancel", "BILL000001"])
        assert "10 unit(s) returned to stock" in cancelled.stdout

        items = json.loads(run_billbook(["item", "list", "--json"]).stdout)
        assert items[0]["stock_quantity"] == 10

    def test_bad_line_spec(self, shop):
        result = run_billbook(["bill", "create", shop["customer"], "-l", "nonsense"])
        assert result.returncode == 1
        assert "ITEM_ID:QTY" in result.stderr

    def test_report_sales(self, shop):
        run_billbook(["bill", "create", shop["customer"], "-l", f"{shop['item']}:1"])
        run_billbook(["bill", "pay", "BILL000001"])

        result = run_billbook(
            ["report", "sales", "--start", "2000-01-01", "--end", "2100-01-01"]
        )
        assert result.returncode == 0
        assert "115.00" in result.stdout

    def test_report_sales_by_month(self, shop):
        run_billbook(["bill", "create", shop["customer"], "-l", f"{shop['item']}:1"])
        run_billbook(["bill", "pay", "BILL000001"])

        result = run_billbook(
            ["report", "sales", "--start", "2000-01-01", "--end", "2100-01-01", "--by", "month"]
        )
        assert result.returncode == 0, result.stderr
        assert "1 bill(s)" in result.stdout

    def test_invalid_config(self, monkeypatch):
        monkeypatch.setenv("BILLBOOK_TAX_RATE", "2")
        result = run_billbook(["customer", "list"])

        assert result.returncode == 1
        assert "BILLBOOK_TAX_RATE" in result.stderr


class TestParseLineSpec:
    def test_with_discount(self):
        line = cli.parse_line_spec("abc:4:12.5")
        assert (line.item_id, line.quantity, str(line.discount_percentage)) == ("abc", 4, "12.5")

    @pytest.mark.parametrize("spec", ["abc", ":3", "abc:x", "abc:1:pct", "a:1:2:3"])
    def test_malformed(self, spec):
        with pytest.raises(InvalidArgumentError):
            cli.parse_line_spec(spec)


class TestMainErrors:
    def test_unexpected_error_is_opaque(self, monkeypatch, capsys):
        def broken(self, *args, **kwargs):
            raise RuntimeError("secret internals")

        monkeypatch.setattr(BillReports, "list_bills", broken)

        assert cli.main(["bill", "list"]) == 1
        err = capsys.readouterr().err
        assert "Unexpected error" in err
        assert "secret internals" not in err.split("Traceback")[0]
