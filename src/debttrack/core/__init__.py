"""
Core module - Foundation components for debttrack.

Provides:
- Exceptions: DebtTrackError hierarchy with error codes
- ScanConfig: Tunable scan parameters with JSON loading
- database: LedgerStore, SQLite persistence with newest-wins merging
"""

from debttrack.core.exceptions import (
    DebtTrackError,
    InvalidMessageFormat,
    BankNotRecognized,
    CardNumberNotFound,
    AmountNotFound,
    DateParseFailure,
    DuplicateRecord,
    StorageFailure,
    MessageSourceError,
    ScanCancelled,
    ValidationError,
    ConfigError,
)
from debttrack.core.config import ScanConfig

__all__ = [
    "DebtTrackError",
    "InvalidMessageFormat",
    "BankNotRecognized",
    "CardNumberNotFound",
    "AmountNotFound",
    "DateParseFailure",
    "DuplicateRecord",
    "StorageFailure",
    "MessageSourceError",
    "ScanCancelled",
    "ValidationError",
    "ConfigError",
    "ScanConfig",
]
