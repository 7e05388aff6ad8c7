"""
Unit tests for ledger reports.

Tests the pandas views and the Excel workbook.
"""

import pandas as pd
import pytest
from datetime import date, datetime
from decimal import Decimal

from openpyxl import load_workbook

from debttrack.parsers.sms.models import (
    CreditCardRecord,
    StatementRecord,
    TransactionRecord,
    TransactionType,
)
from debttrack.reports import (
    account_summary,
    accounts_frame,
    export_excel,
    monthly_spending,
    spending_by_category,
    statements_frame,
    transactions_frame,
)


def txn(day: int, amount: str, merchant: str, category, month: int = 8,
        type_=TransactionType.PURCHASE, declined: bool = False) -> TransactionRecord:
    return TransactionRecord(
        card_id="axis_bank_2546",
        amount=Decimal(amount),
        type=type_,
        date=date(2025, month, day),
        occurred_at=datetime(2025, month, day, 12, 0),
        received_at_ms=day,
        merchant=merchant,
        category=category,
        declined=declined,
    )


@pytest.fixture
def transactions():
    return [
        txn(9, "444", "FLIPKART PA", "Shopping"),
        txn(10, "212.20", "ZOMATO", "Food & Dining", month=7),
        txn(12, "300", "SWIGGY", "Food & Dining"),
        txn(17, "75", "CANVA* PAAA", None, type_=TransactionType.REFUND),
        txn(18, "8000", None, None, type_=TransactionType.PAYMENT),
        txn(19, "999", "AMAZON", "Shopping", declined=True),
        txn(20, "50", "CANVA* PAAA", None),
    ]


@pytest.fixture
def accounts():
    return [
        CreditCardRecord(bank_name="Axis Bank", last_four_digits="2546", total_due=Decimal("2500"),
                         credit_limit=Decimal("10000"), minimum_due=Decimal("250")),
        CreditCardRecord(bank_name="HDFC Bank", last_four_digits="1234", current_balance=Decimal("500")),
    ]


class TestFrames:
    """Tests for the DataFrame views."""

    def test_transactions_newest_first(self, transactions):
        df = transactions_frame(transactions)
        assert len(df) == 7
        assert df.iloc[0]["merchant"] == "CANVA* PAAA"
        assert df.iloc[-1]["merchant"] == "ZOMATO"
        assert df.iloc[0]["amount"] == 50.0

    def test_empty_transactions(self):
        df = transactions_frame([])
        assert df.empty
        assert "amount" in df.columns

    def test_accounts_utilization(self, accounts):
        df = accounts_frame(accounts)
        assert list(df["id"]) == ["axis_bank_2546", "hdfc_bank_1234"]
        assert df.iloc[0]["utilization_percent"] == 25.0
        assert pd.isna(df.iloc[1]["utilization_percent"])

    def test_statements(self):
        statement = StatementRecord(card_id="axis_bank_2546", statement_date=date(2025, 8, 22),
                                    received_at_ms=1, total_due=Decimal("84356.07"))
        df = statements_frame([statement])
        assert df.iloc[0]["total_due"] == 84356.07


class TestSummaries:
    """Tests for spend summaries."""

    def test_spending_by_category(self, transactions):
        df = spending_by_category(transactions)

        assert list(df["category"]) == ["Food & Dining", "Shopping", "Other"]
        assert df.iloc[0]["total"] == pytest.approx(512.20)
        assert df.iloc[0]["count"] == 2
        assert df.iloc[1]["total"] == pytest.approx(444.0)

    def test_refunds_payments_and_declines_excluded(self, transactions):
        df = spending_by_category(transactions)
        assert df["total"].sum() == pytest.approx(444 + 212.20 + 300 + 50)

    def test_monthly_spending(self, transactions):
        df = monthly_spending(transactions)
        assert list(df["month"]) == ["2025-07", "2025-08"]
        assert df.iloc[1]["count"] == 3

    def test_empty_summaries(self):
        assert spending_by_category([]).empty
        assert monthly_spending([]).empty

    def test_account_summary(self, accounts):
        summary = account_summary(accounts)
        assert summary["accounts"] == 2
        assert summary["total_debt"] == Decimal("3000")
        assert summary["total_credit_limit"] == Decimal("10000")
        assert summary["utilization_percent"] == Decimal("30.00")
        assert summary["needs_verification"] == 2


class TestExportExcel:
    """Tests for the Excel workbook."""

    def test_sheets(self, tmp_path, accounts, transactions):
        path = export_excel(str(tmp_path / "out" / "ledger.xlsx"), accounts, transactions)

        wb = load_workbook(path)
        assert wb.sheetnames == ["Accounts", "Transactions", "Statements", "Category_Summary"]

    def test_contents(self, tmp_path, accounts, transactions):
        path = export_excel(str(tmp_path / "ledger.xlsx"), accounts, transactions)
        wb = load_workbook(path)

        ws = wb["Accounts"]
        assert ws.cell(row=1, column=1).value == "id"
        assert ws.cell(row=2, column=1).value == "axis_bank_2546"
        assert ws.max_row == 3

        ws = wb["Transactions"]
        assert ws.max_row == 8
        assert ws.freeze_panes == "A2"

        ws = wb["Category_Summary"]
        assert ws.cell(row=2, column=1).value == "Food & Dining"

    def test_empty_ledger(self, tmp_path):
        path = export_excel(str(tmp_path / "empty.xlsx"), [], [])
        wb = load_workbook(path)
        assert wb["Transactions"].max_row == 1
