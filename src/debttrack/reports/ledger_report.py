"""
Ledger reports.

pandas views over accounts and transactions, and an Excel workbook with:
- Accounts sheet with utilization per card
- Transactions sheet, newest first
- Statements sheet
- Category_Summary sheet for purchases
"""

from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils.dataframe import dataframe_to_rows

from debttrack.parsers.sms.models import (
    CreditCardRecord,
    StatementRecord,
    TransactionRecord,
    TransactionType,
)

TRANSACTION_COLUMNS = [
    "date", "time", "card_id", "type", "merchant", "category", "amount", "declined", "description",
]
ACCOUNT_COLUMNS = [
    "id", "bank_name", "last_four_digits", "credit_limit", "current_balance", "available_credit",
    "total_due", "minimum_due", "due_date", "statement_date", "estimated_apr", "utilization_percent",
    "confidence", "needs_verification",
]
STATEMENT_COLUMNS = [
    "card_id", "statement_date", "due_date", "total_due", "minimum_due", "previous_balance",
    "payments_received", "new_charges", "interest_charged", "late_fees",
]


def _float(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def _utilization(account: CreditCardRecord) -> Optional[float]:
    if account.outstanding is None or not account.credit_limit:
        return None
    return round(float(account.outstanding / account.credit_limit * 100), 2)


def transactions_frame(transactions: Iterable[TransactionRecord]) -> pd.DataFrame:
    """One row per transaction, newest first."""
    rows = [
        {
            "date": t.date,
            "time": t.time,
            "card_id": t.card_id,
            "type": t.type.value,
            "merchant": t.merchant,
            "category": t.category,
            "amount": float(t.amount),
            "declined": t.declined,
            "description": t.description,
            "occurred_at": t.occurred_at,
        }
        for t in transactions
    ]
    if not rows:
        return pd.DataFrame(columns=TRANSACTION_COLUMNS)
    df = pd.DataFrame(rows).sort_values("occurred_at", ascending=False, kind="stable")
    return df[TRANSACTION_COLUMNS].reset_index(drop=True)


def accounts_frame(accounts: Iterable[CreditCardRecord]) -> pd.DataFrame:
    """One row per account with utilization."""
    rows = []
    for a in accounts:
        rows.append({
            "id": a.id,
            "bank_name": a.bank_name,
            "last_four_digits": a.last_four_digits,
            "credit_limit": _float(a.credit_limit),
            "current_balance": _float(a.current_balance),
            "available_credit": _float(a.available_credit),
            "total_due": _float(a.total_due),
            "minimum_due": _float(a.minimum_due),
            "due_date": a.due_date,
            "statement_date": a.statement_date,
            "estimated_apr": float(a.estimated_apr),
            "utilization_percent": _utilization(a),
            "confidence": a.confidence,
            "needs_verification": a.needs_verification,
        })
    return pd.DataFrame(rows, columns=ACCOUNT_COLUMNS)


def statements_frame(statements: Iterable[StatementRecord]) -> pd.DataFrame:
    rows = [
        {
            "card_id": s.card_id,
            "statement_date": s.statement_date,
            "due_date": s.due_date,
            "total_due": _float(s.total_due),
            "minimum_due": _float(s.minimum_due),
            "previous_balance": _float(s.previous_balance),
            "payments_received": _float(s.payments_received),
            "new_charges": _float(s.new_charges),
            "interest_charged": _float(s.interest_charged),
            "late_fees": _float(s.late_fees),
        }
        for s in statements
    ]
    return pd.DataFrame(rows, columns=STATEMENT_COLUMNS)


def _purchases(transactions: Iterable[TransactionRecord]) -> pd.DataFrame:
    df = transactions_frame(transactions)
    if df.empty:
        return df
    return df[(df["type"] == TransactionType.PURCHASE.value) & (~df["declined"].astype(bool))]


def spending_by_category(transactions: Iterable[TransactionRecord]) -> pd.DataFrame:
    """Total and count of purchases per category, largest first."""
    df = _purchases(transactions)
    if df.empty:
        return pd.DataFrame(columns=["category", "total", "count"])
    summary = (
        df.assign(category=df["category"].fillna("Other"))
        .groupby("category")["amount"]
        .agg(total="sum", count="count")
        .reset_index()
        .sort_values(["total", "category"], ascending=[False, True])
    )
    return summary.reset_index(drop=True)


def monthly_spending(transactions: Iterable[TransactionRecord]) -> pd.DataFrame:
    """Purchase totals per calendar month (YYYY-MM), oldest first."""
    df = _purchases(transactions)
    if df.empty:
        return pd.DataFrame(columns=["month", "total", "count"])
    df = df.assign(month=pd.to_datetime(df["date"]).dt.strftime("%Y-%m"))
    summary = df.groupby("month")["amount"].agg(total="sum", count="count").reset_index()
    return summary.sort_values("month").reset_index(drop=True)


def account_summary(accounts: Iterable[CreditCardRecord]) -> Dict[str, Any]:
    """Portfolio totals: debt, credit limit and overall utilization."""
    accounts = list(accounts)
    total_debt = sum((a.outstanding for a in accounts if a.outstanding is not None), Decimal(0))
    total_limit = sum((a.credit_limit for a in accounts if a.credit_limit is not None), Decimal(0))
    utilization = (total_debt / total_limit * 100).quantize(Decimal("0.01")) if total_limit else Decimal(0)
    return {
        "accounts": len(accounts),
        "total_debt": total_debt,
        "total_credit_limit": total_limit,
        "utilization_percent": utilization,
        "needs_verification": sum(1 for a in accounts if a.needs_verification),
    }


def _write_headers(ws, headers: List[str]) -> None:
    """Write header row with styling."""
    header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
    header_font = Font(bold=True, color="FFFFFF")
    header_alignment = Alignment(horizontal="center", vertical="center")
    thin = Side(style="thin")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)

    for col_idx, header in enumerate(headers, start=1):
        cell = ws.cell(row=1, column=col_idx, value=header)
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = header_alignment
        cell.border = border


def _adjust_column_widths(ws) -> None:
    for column_cells in ws.columns:
        max_length = max((len(str(c.value)) for c in column_cells if c.value is not None), default=0)
        ws.column_dimensions[column_cells[0].column_letter].width = max(min(max_length + 2, 50), 10)


def _write_sheet(wb: Workbook, title: str, df: pd.DataFrame, money_columns: Iterable[str] = ()) -> None:
    ws = wb.create_sheet(title)
    headers = [str(c) for c in df.columns]
    _write_headers(ws, headers)

    for row_idx, row in enumerate(dataframe_to_rows(df, index=False, header=False), start=2):
        for col_idx, value in enumerate(row, start=1):
            if value is not None and pd.isna(value):
                value = None
            ws.cell(row=row_idx, column=col_idx, value=value)

    for name in money_columns:
        if name not in headers:
            continue
        col_idx = headers.index(name) + 1
        for row_idx in range(2, len(df) + 2):
            ws.cell(row=row_idx, column=col_idx).number_format = "#,##0.00"

    ws.auto_filter.ref = ws.dimensions
    ws.freeze_panes = "A2"
    _adjust_column_widths(ws)


def export_excel(
    output_path: str,
    accounts: Iterable[CreditCardRecord],
    transactions: Iterable[TransactionRecord],
    statements: Iterable[StatementRecord] = (),
) -> str:
    """
    Write the ledger workbook.

    Returns:
        Path to generated file
    """
    transactions = list(transactions)
    wb = Workbook()
    wb.remove(wb.active)

    _write_sheet(wb, "Accounts", accounts_frame(accounts),
                 ["credit_limit", "current_balance", "available_credit", "total_due", "minimum_due"])
    _write_sheet(wb, "Transactions", transactions_frame(transactions), ["amount"])
    _write_sheet(wb, "Statements", statements_frame(statements),
                 ["total_due", "minimum_due", "previous_balance", "payments_received", "new_charges"])
    _write_sheet(wb, "Category_Summary", spending_by_category(transactions), ["total"])

    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    wb.save(output_path)
    return output_path
