"""
Unit tests for the command line interface.

Commands are run in-process through main(argv) and their printed output is
checked with capsys.
"""

import json
import pytest
from datetime import date, timedelta
from decimal import Decimal

from debttrack.cli.main import fmt_money, main
from debttrack.core.database import LedgerStore
from debttrack.parsers.sms.models import CreditCardRecord, datetime_to_ms, utc_now

from conftest import AXIS_SPENT, AXIS_STATEMENT, HDFC_PURCHASE, ICICI_MULTI, SBI_PURCHASE


@pytest.fixture
def messages_file(tmp_path):
    """Message export with receipt times relative to the real clock."""
    now_ms = datetime_to_ms(utc_now())
    hour = 3600 * 1000
    records = [
        {"address": "ICICIBK", "body": ICICI_MULTI, "date": str(now_ms - hour)},
        {"address": "AXISBK", "body": AXIS_STATEMENT, "date": str(now_ms - 2 * hour)},
        {"address": "AXISBK", "body": AXIS_SPENT, "date": str(now_ms - 3 * hour)},
        {"address": "AD-HDFCBK", "body": HDFC_PURCHASE, "date": str(now_ms - 4 * hour)},
        {"address": "AD-SBICAR", "body": SBI_PURCHASE, "date": str(now_ms - 5 * hour)},
        {"address": "VM-SWIGGY", "body": "Your order is on the way!", "date": str(now_ms)},
    ]
    path = tmp_path / "sms.json"
    path.write_text(json.dumps({"messages": records}))
    return str(path)


@pytest.fixture
def ledger_path(tmp_path):
    """Ledger with one payable and one never-amortizing account."""
    path = str(tmp_path / "ledger.db")
    with LedgerStore(path) as store:
        store.save_accounts([
            CreditCardRecord(bank_name="Axis Bank", last_four_digits="2546", total_due=Decimal("10000"),
                             minimum_due=Decimal("500"), estimated_apr=Decimal("36"),
                             credit_limit=Decimal("50000"), due_date=date.today() + timedelta(days=10)),
            CreditCardRecord(bank_name="HDFC Bank", last_four_digits="1234", total_due=Decimal("10000"),
                             minimum_due=Decimal("100"), estimated_apr=Decimal("42")),
        ])
    return path


class TestParseCommand:
    """Tests for the parse command."""

    def test_parse(self, capsys):
        code = main(["parse", HDFC_PURCHASE, "--sender", "AD-HDFCBK"])
        out = capsys.readouterr().out

        assert code == 0
        assert "HDFC Bank xx1234" in out
        assert "AMAZON" in out
        assert "Rs.2,500.00" in out

    def test_parse_json(self, capsys):
        code = main(["parse", AXIS_STATEMENT, "-s", "AXISBK", "--json"])
        data = json.loads(capsys.readouterr().out)

        assert code == 0
        assert data["success"] is True
        assert data["accounts"][0]["id"] == "axis_bank_2546"
        assert data["statements"][0]["total_due"] == "84356.07"
        assert data["rewards"][0]["amount"] == "22.00"

    def test_parse_json_warnings(self, capsys):
        body = ("Rs.500 spent on HDFC Bank Credit Card xx1234 at AMAZON on 12/08/24. "
                "Card xx1234 was used at SWIGGY INSTAMART on 12/08/24.")
        code = main(["parse", body, "-s", "AD-HDFCBK", "--json"])
        data = json.loads(capsys.readouterr().out)

        assert code == 0
        assert len(data["transactions"]) == 1
        assert data["warnings"][0].startswith("AMOUNT_NOT_FOUND")

    def test_parse_irrelevant(self, capsys):
        code = main(["parse", "Your order is on the way!"])
        assert code == 2
        assert "Not a credit card message" in capsys.readouterr().out

    def test_parse_unrecognized_bank(self, capsys):
        code = main(["parse", "Rs.100 spent on credit card xx1234", "-s", "VK-123456"])
        assert code == 2
        assert "BANK_NOT_RECOGNIZED" in capsys.readouterr().out


class TestScanCommand:
    """Tests for the scan command."""

    def test_dry_run(self, capsys, messages_file):
        code = main(["scan", "--messages", messages_file])
        out = capsys.readouterr().out

        assert code == 0
        assert "Messages read:       6" in out
        assert "Relevant:            5" in out
        assert "Accounts:            5" in out
        assert "Ledger saved" not in out

    def test_scan_saves_and_exports(self, capsys, messages_file, tmp_path):
        db = str(tmp_path / "scan.db")
        export = str(tmp_path / "ledger.xlsx")
        code = main(["scan", "-m", messages_file, "--db", db, "--export", export, "--workers", "2"])
        out = capsys.readouterr().out

        assert code == 0
        assert f"Ledger saved to {db}" in out
        assert f"Report written to {export}" in out
        with LedgerStore(db) as store:
            assert len(store.load_accounts()) == 5
            assert store.get_last_scan_timestamp() is not None

    def test_missing_messages_file(self, capsys, tmp_path):
        code = main(["scan", "--messages", str(tmp_path / "missing.json")])
        assert code == 1
        assert "Failed to read messages" in capsys.readouterr().out


class TestProjectCommand:
    """Tests for the project command."""

    def test_all_accounts(self, capsys, ledger_path):
        code = main(["project", "--db", ledger_path])
        out = capsys.readouterr().out

        assert code == 0
        assert "Axis Bank xx2546" in out
        assert "31 months" in out
        assert "Rs.300.00/month" in out

    def test_non_convergent_warning(self, capsys, ledger_path):
        code = main(["project", "--db", ledger_path, "--account", "hdfc_bank_1234"])
        out = capsys.readouterr().out

        assert code == 0
        assert "never pays off" in out
        assert "Warning" in out
        assert "Axis Bank" not in out

    def test_unknown_account(self, capsys, ledger_path):
        assert main(["project", "--db", ledger_path, "-a", "kotak_bank_0001"]) == 1
        assert "Account not found" in capsys.readouterr().out


class TestStatsCommand:
    def test_stats(self, capsys, ledger_path):
        code = main(["stats", "--db", ledger_path])
        out = capsys.readouterr().out

        assert code == 0
        assert "Accounts:           2" in out
        assert "Total debt:         Rs.20,000.00" in out
        assert "Last scan (ms):     never" in out


class TestMain:
    """Tests for argument handling and error exits."""

    def test_no_command(self, capsys):
        assert main([]) == 1

    def test_bad_config(self, capsys, tmp_path):
        config = tmp_path / "config.json"
        config.write_text(json.dumps({"max_threads": 4}))

        code = main(["--config", str(config), "parse", HDFC_PURCHASE])
        assert code == 1
        assert "Unknown config keys" in capsys.readouterr().out

    def test_config_applied(self, capsys, tmp_path):
        config = tmp_path / "config.json"
        config.write_text(json.dumps({"apr_overrides": {"HDFC Bank": 18.0}}))

        main(["-c", str(config), "parse", HDFC_PURCHASE, "-s", "AD-HDFCBK", "--json"])
        data = json.loads(capsys.readouterr().out)
        assert data["accounts"][0]["estimated_apr"] == "18.0"

    def test_fmt_money(self):
        assert fmt_money(Decimal("361544.58")) == "Rs.361,544.58"
        assert fmt_money(None) == "-"
