"""
Credit card ledger data models.

Dataclasses for raw messages, bank signatures and the normalized records
extracted from them. Amounts are Decimal; optional fields are None when not
extracted.
"""

import hashlib
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Pattern, Tuple

from debttrack.core.exceptions import InvalidMessageFormat, ValidationError


LAST4_RE = re.compile(r"^\d{4}$")

# Account fields merged with newest-wins resolution
MERGEABLE_FIELDS: Tuple[str, ...] = (
    "credit_limit",
    "current_balance",
    "available_credit",
    "total_due",
    "minimum_due",
    "due_date",
    "statement_date",
    "previous_balance",
    "interest_charged",
    "late_fee",
)


def ms_to_datetime(ms: int) -> datetime:
    """Convert epoch milliseconds to a naive UTC datetime."""
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).replace(tzinfo=None)


def datetime_to_ms(value: datetime) -> int:
    """Convert a naive UTC datetime to epoch milliseconds."""
    return int(value.replace(tzinfo=timezone.utc).timestamp() * 1000)


def utc_now() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def make_account_id(bank_name: str, last_four_digits: str) -> str:
    """Deterministic account id: same bank and last four digits, same account."""
    slug = re.sub(r"\s+", "_", bank_name.strip()).lower()
    return f"{slug}_{last_four_digits}"


def make_uid(*parts: Any) -> str:
    """Generate SHA256 hash over the identifying parts of a record."""
    data = "|".join("" if p is None else str(p) for p in parts)
    return hashlib.sha256(data.encode()).hexdigest()


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _to_date(value: Any) -> Optional[date]:
    if value is None or (isinstance(value, date) and not isinstance(value, datetime)):
        return value
    if isinstance(value, datetime):
        return value.date()
    return date.fromisoformat(str(value)[:10])


class TransactionType(Enum):
    """Semantic type of a card transaction."""

    PURCHASE = "purchase"
    PAYMENT = "payment"
    FEE = "fee"
    INTEREST = "interest"
    REFUND = "refund"
    CASH_ADVANCE = "cash_advance"
    BALANCE_UPDATE = "balance_update"
    STATEMENT = "statement"
    REMINDER = "reminder"


@dataclass(frozen=True)
class RawMessage:
    """One notification message as supplied by the message source."""

    sender: str
    body: str
    received_at_ms: int

    @property
    def received_at(self) -> datetime:
        return ms_to_datetime(self.received_at_ms)

    def preview(self, length: int = 100) -> str:
        return self.body[:length].replace("\n", " ")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawMessage":
        """
        Build a message from a loosely shaped source record.

        Accepts ``sender`` or ``address`` and ``receivedAtMs``,
        ``received_at_ms`` or ``date`` (string or integer).

        Raises:
            InvalidMessageFormat: If body, sender or timestamp is missing
        """
        if not isinstance(data, dict):
            raise InvalidMessageFormat("Message record is not a mapping")

        body = data.get("body")
        if not isinstance(body, str) or not body.strip():
            raise InvalidMessageFormat("Message body missing", field="body")

        sender = data.get("sender", data.get("address"))
        if not isinstance(sender, str):
            raise InvalidMessageFormat("Message sender missing", field="sender")

        raw_ts = data.get("receivedAtMs", data.get("received_at_ms", data.get("date")))
        if isinstance(raw_ts, bool) or raw_ts is None:
            raise InvalidMessageFormat("Message timestamp missing", field="receivedAtMs")
        try:
            received_at_ms = int(str(raw_ts).strip())
        except ValueError:
            raise InvalidMessageFormat(f"Invalid message timestamp: {raw_ts!r}", field="receivedAtMs")
        if received_at_ms < 0:
            raise InvalidMessageFormat(f"Negative message timestamp: {raw_ts!r}", field="receivedAtMs")

        return cls(sender=sender, body=body, received_at_ms=received_at_ms)


@dataclass(frozen=True)
class BankSignature:
    """
    Static reference data identifying one card issuer.

    amount_patterns and merchant_patterns are issuer-specific extractor
    layers, tried before the generic patterns.
    """

    bank_name: str
    sender_patterns: Tuple[Pattern, ...]
    body_patterns: Tuple[Pattern, ...]
    estimated_annual_rate_percent: Optional[float] = None
    amount_patterns: Tuple[Pattern, ...] = ()
    merchant_patterns: Tuple[Pattern, ...] = ()

    def matches_sender(self, sender: str) -> bool:
        return any(p.search(sender) for p in self.sender_patterns)

    def matches_body(self, body: str) -> bool:
        return any(p.search(body) for p in self.body_patterns)


@dataclass
class CreditCardRecord:
    """A tracked credit line identified by bank and last four digits."""

    bank_name: str
    last_four_digits: str
    card_type: str = "Credit Card"
    credit_limit: Optional[Decimal] = None
    current_balance: Optional[Decimal] = None
    available_credit: Optional[Decimal] = None
    total_due: Optional[Decimal] = None
    minimum_due: Optional[Decimal] = None
    due_date: Optional[date] = None
    statement_date: Optional[date] = None
    previous_balance: Optional[Decimal] = None
    interest_charged: Optional[Decimal] = None
    late_fee: Optional[Decimal] = None
    estimated_apr: Decimal = field(default_factory=lambda: Decimal("40.0"))
    confidence: int = 0
    needs_verification: bool = True
    last_updated: datetime = field(default_factory=utc_now)
    last_message_at_ms: int = 0
    field_sources: Dict[str, int] = field(default_factory=dict)
    id: str = ""

    def __post_init__(self):
        if not LAST4_RE.match(self.last_four_digits or ""):
            raise ValidationError(
                f"lastFourDigits must be exactly four digits: {self.last_four_digits!r}",
                field="last_four_digits",
            )
        for name in ("credit_limit", "current_balance", "available_credit", "total_due",
                     "minimum_due", "previous_balance", "interest_charged", "late_fee"):
            value = _to_decimal(getattr(self, name))
            if value is not None and value < 0:
                raise ValidationError(f"{name} must not be negative: {value}", field=name)
            setattr(self, name, value)
        self.estimated_apr = _to_decimal(self.estimated_apr)
        self.due_date = _to_date(self.due_date)
        self.statement_date = _to_date(self.statement_date)
        if not self.id:
            self.id = make_account_id(self.bank_name, self.last_four_digits)

    def set_field(self, name: str, value: Any, source_ms: int) -> None:
        """Set a mergeable field and remember the timestamp it came from."""
        setattr(self, name, value)
        self.field_sources[name] = source_ms

    @property
    def outstanding(self) -> Optional[Decimal]:
        """Balance used for projections: total due, else current balance."""
        return self.total_due if self.total_due is not None else self.current_balance

    def to_dict(self) -> dict:
        """Convert to dictionary for storage and export."""
        return {
            "id": self.id,
            "bank_name": self.bank_name,
            "last_four_digits": self.last_four_digits,
            "card_type": self.card_type,
            "credit_limit": _str_or_none(self.credit_limit),
            "current_balance": _str_or_none(self.current_balance),
            "available_credit": _str_or_none(self.available_credit),
            "total_due": _str_or_none(self.total_due),
            "minimum_due": _str_or_none(self.minimum_due),
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "statement_date": self.statement_date.isoformat() if self.statement_date else None,
            "previous_balance": _str_or_none(self.previous_balance),
            "interest_charged": _str_or_none(self.interest_charged),
            "late_fee": _str_or_none(self.late_fee),
            "estimated_apr": str(self.estimated_apr),
            "confidence": self.confidence,
            "needs_verification": self.needs_verification,
            "last_updated": self.last_updated.isoformat(),
            "last_message_at_ms": self.last_message_at_ms,
            "field_sources": dict(self.field_sources),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CreditCardRecord":
        """Rebuild a record from to_dict() output."""
        values = dict(data)
        if isinstance(values.get("last_updated"), str):
            values["last_updated"] = datetime.fromisoformat(values["last_updated"])
        values["field_sources"] = {k: int(v) for k, v in (values.get("field_sources") or {}).items()}
        values["needs_verification"] = bool(values.get("needs_verification", True))
        return cls(**values)


@dataclass
class TransactionRecord:
    """A single card transaction."""

    card_id: str
    amount: Decimal
    type: TransactionType
    date: date
    occurred_at: datetime
    received_at_ms: int
    merchant: Optional[str] = None
    category: Optional[str] = None
    time: Optional[str] = None
    declined: bool = False
    description: str = ""
    id: Optional[str] = None

    def __post_init__(self):
        self.amount = _to_decimal(self.amount)
        if self.amount is None or self.amount <= 0:
            raise ValidationError(f"Transaction amount must be positive: {self.amount}", field="amount")
        if not isinstance(self.type, TransactionType):
            self.type = TransactionType(self.type)
        self.date = _to_date(self.date)
        if self.id is None:
            self.id = make_uid("txn", self.card_id, self.occurred_at.isoformat(), self.amount,
                               self.merchant, self.type.value, self.received_at_ms, self.description)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "card_id": self.card_id,
            "amount": str(self.amount),
            "type": self.type.value,
            "merchant": self.merchant,
            "category": self.category,
            "date": self.date.isoformat(),
            "time": self.time,
            "occurred_at": self.occurred_at.isoformat(),
            "received_at_ms": self.received_at_ms,
            "declined": self.declined,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TransactionRecord":
        values = dict(data)
        values["occurred_at"] = datetime.fromisoformat(values["occurred_at"])
        values["declined"] = bool(values.get("declined", False))
        return cls(**values)


@dataclass
class StatementRecord:
    """Billing statement summary for one card."""

    card_id: str
    statement_date: date
    received_at_ms: int
    due_date: Optional[date] = None
    total_due: Optional[Decimal] = None
    minimum_due: Optional[Decimal] = None
    previous_balance: Optional[Decimal] = None
    payments_received: Optional[Decimal] = None
    new_charges: Optional[Decimal] = None
    interest_charged: Optional[Decimal] = None
    late_fees: Optional[Decimal] = None
    id: Optional[str] = None

    def __post_init__(self):
        for name in ("total_due", "minimum_due", "previous_balance", "payments_received",
                     "new_charges", "interest_charged", "late_fees"):
            setattr(self, name, _to_decimal(getattr(self, name)))
        self.statement_date = _to_date(self.statement_date)
        self.due_date = _to_date(self.due_date)
        if self.id is None:
            self.id = make_uid("stmt", self.card_id, self.statement_date.isoformat())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "card_id": self.card_id,
            "statement_date": self.statement_date.isoformat(),
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "total_due": _str_or_none(self.total_due),
            "minimum_due": _str_or_none(self.minimum_due),
            "previous_balance": _str_or_none(self.previous_balance),
            "payments_received": _str_or_none(self.payments_received),
            "new_charges": _str_or_none(self.new_charges),
            "interest_charged": _str_or_none(self.interest_charged),
            "late_fees": _str_or_none(self.late_fees),
            "received_at_ms": self.received_at_ms,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StatementRecord":
        return cls(**data)


@dataclass
class ReminderRecord:
    """Payment-due reminder for one card."""

    card_id: str
    amount: Decimal
    received_at_ms: int
    minimum_due: Optional[Decimal] = None
    due_date: Optional[date] = None
    description: str = ""
    id: Optional[str] = None

    def __post_init__(self):
        self.amount = _to_decimal(self.amount)
        self.minimum_due = _to_decimal(self.minimum_due)
        self.due_date = _to_date(self.due_date)
        if self.id is None:
            self.id = make_uid("rem", self.card_id, self.due_date, self.amount)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "card_id": self.card_id,
            "amount": str(self.amount),
            "minimum_due": _str_or_none(self.minimum_due),
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "description": self.description,
            "received_at_ms": self.received_at_ms,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ReminderRecord":
        return cls(**data)


@dataclass
class RewardRecord:
    """Cashback or reward credit earned on one card."""

    card_id: str
    amount: Decimal
    date: date
    received_at_ms: int
    description: str = ""
    id: Optional[str] = None

    def __post_init__(self):
        self.amount = _to_decimal(self.amount)
        self.date = _to_date(self.date)
        if self.id is None:
            self.id = make_uid("rew", self.card_id, self.amount, self.date.isoformat())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "card_id": self.card_id,
            "amount": str(self.amount),
            "date": self.date.isoformat(),
            "description": self.description,
            "received_at_ms": self.received_at_ms,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RewardRecord":
        return cls(**data)


@dataclass
class ParseOutcome:
    """Result of parsing a single message."""

    success: bool
    message: Optional[RawMessage] = None
    relevant: bool = False
    bank_name: Optional[str] = None
    accounts: List[CreditCardRecord] = field(default_factory=list)
    transactions: List[TransactionRecord] = field(default_factory=list)
    statements: List[StatementRecord] = field(default_factory=list)
    reminders: List[ReminderRecord] = field(default_factory=list)
    rewards: List[RewardRecord] = field(default_factory=list)
    segments: int = 0
    error: Optional[str] = None
    error_code: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    def add_warning(self, warning: str) -> None:
        """Add a warning message."""
        self.warnings.append(warning)

    @property
    def is_empty(self) -> bool:
        return not (self.accounts or self.transactions or self.statements
                    or self.reminders or self.rewards)


@dataclass
class ScanStats:
    """Counters describing one scan."""

    total_messages: int = 0
    relevant_messages: int = 0
    accounts: int = 0
    transactions: int = 0
    statements: int = 0
    reminders: int = 0
    rewards: int = 0
    malformed: int = 0
    unrecognized: int = 0
    failed: int = 0
    duplicates: int = 0

    def to_dict(self) -> dict:
        return dict(self.__dict__)

    def __str__(self) -> str:
        return (
            f"{self.total_messages} messages, {self.relevant_messages} relevant, "
            f"{self.accounts} accounts, {self.transactions} transactions, "
            f"{self.statements} statements, {self.reminders} reminders, "
            f"{self.rewards} rewards ({self.duplicates} duplicates skipped, "
            f"{self.failed} failed)"
        )


def _str_or_none(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None
