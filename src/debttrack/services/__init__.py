"""
Services for debttrack.

Provides:
- merger: ScanAggregate and newest-wins account merging
- projections: Interest and payoff projections
- message_source: Static and JSON file message sources
- scanner: ScanOrchestrator driving a full scan
"""

from debttrack.services.merger import ScanAggregate, merge_account, is_duplicate_transaction
from debttrack.services.projections import compute_projections, minimum_payment_warning
from debttrack.services.message_source import StaticMessageSource, JsonFileMessageSource

__all__ = [
    "ScanAggregate",
    "merge_account",
    "is_duplicate_transaction",
    "compute_projections",
    "minimum_payment_warning",
    "StaticMessageSource",
    "JsonFileMessageSource",
]
