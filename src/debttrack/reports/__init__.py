"""Reports module for the card ledger.

Provides pandas views and an Excel workbook:
- Accounts with utilization
- Transactions, newest first
- Purchase spending by category and by month
"""

from .ledger_report import (
    account_summary,
    accounts_frame,
    export_excel,
    monthly_spending,
    spending_by_category,
    statements_frame,
    transactions_frame,
)

__all__ = [
    "account_summary",
    "accounts_frame",
    "export_excel",
    "monthly_spending",
    "spending_by_category",
    "statements_frame",
    "transactions_frame",
]
