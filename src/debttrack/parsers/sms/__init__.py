"""
Bank SMS extraction engine.

Pipeline: relevance filter and bank identification, segmentation, field
extraction, classification, confidence scoring.
"""

from debttrack.parsers.sms.models import (
    RawMessage,
    BankSignature,
    CreditCardRecord,
    TransactionRecord,
    TransactionType,
    StatementRecord,
    ReminderRecord,
    RewardRecord,
    ParseOutcome,
    ScanStats,
)
from debttrack.parsers.sms.signatures import BANK_SIGNATURES, filter_message, identify_bank, is_relevant
from debttrack.parsers.sms.segmenter import Segment, segment_message
from debttrack.parsers.sms.classifier import categorize, classify_transaction
from debttrack.parsers.sms.scoring import score_account, apply_score
from debttrack.parsers.sms.parser import MessageParser, parse_one

__all__ = [
    "RawMessage",
    "BankSignature",
    "CreditCardRecord",
    "TransactionRecord",
    "TransactionType",
    "StatementRecord",
    "ReminderRecord",
    "RewardRecord",
    "ParseOutcome",
    "ScanStats",
    "BANK_SIGNATURES",
    "filter_message",
    "identify_bank",
    "is_relevant",
    "Segment",
    "segment_message",
    "categorize",
    "classify_transaction",
    "score_account",
    "apply_score",
    "MessageParser",
    "parse_one",
]
