"""
Field extractors for credit card messages.

Each extractor is an ordered list of patterns tried in priority order; the
first success wins. Extractors are pure functions of the text they are given
and return None when nothing is found, they never raise for a miss.

Formats:
    Amounts: optional currency marker (symbol, "Rs", "INR" in any case, an
    optional "Dr."/"Cr." tag) followed by a number with comma separators.
    Cards: a run of X or asterisks followed by exactly four digits, or
    "ending 1234".
    Dates: D-M-Y with "-", "." or "/" separators, or D-Mon-Y. Two-digit
    years map to 2000-2099.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional, Pattern, Sequence, Tuple

from debttrack.core.exceptions import DateParseFailure

logger = logging.getLogger(__name__)

Span = Tuple[int, int]

CURRENCY_MARKER = r"(?:₹|(?<![a-z])(?:rs\.?|inr)(?![a-z]))"
CURRENCY_PREFIX = rf"{CURRENCY_MARKER}\s*(?:(?:dr|cr)\.?\s*)?"
# A number that is not the head of a date such as 30-08-25 or 04.09.25
AMOUNT_NUMBER = r"\d[\d,]*(?:\.\d+)?(?!\d)(?!\.\d)(?![\d,.]*[-/]\d)"

CURRENCY_AMOUNT_RE = re.compile(rf"{CURRENCY_PREFIX}({AMOUNT_NUMBER})", re.IGNORECASE)
MASKED_CARD_RE = re.compile(r"[x*]{2,}(\d{4})(?!\d)", re.IGNORECASE)

CARD_PATTERNS: List[Pattern] = [
    re.compile(
        r"(?:card|cc)\s*(?:no\.?|number|ending(?:\s*(?:with|in))?)?\s*[:\-]?\s*[x*]{2,}(\d{4})(?!\d)",
        re.IGNORECASE,
    ),
    MASKED_CARD_RE,
    re.compile(r"ending\s*(?:with\s*|in\s*)?[:\-]?\s*[x*]*(\d{4})(?!\d)", re.IGNORECASE),
]

MONTHS: Dict[str, int] = {
    "jan": 1, "january": 1, "feb": 2, "february": 2, "mar": 3, "march": 3,
    "apr": 4, "april": 4, "may": 5, "jun": 6, "june": 6, "jul": 7, "july": 7,
    "aug": 8, "august": 8, "sep": 9, "sept": 9, "september": 9,
    "oct": 10, "october": 10, "nov": 11, "november": 11, "dec": 12, "december": 12,
}

NUMERIC_DATE_RE = re.compile(r"(?<![\d.])(\d{1,2})[-./](\d{1,2})[-./](\d{4}|\d{2})(?!\d)")
NAMED_DATE_RE = re.compile(
    r"(?<!\d)(\d{1,2})(?:st|nd|rd|th)?[- ]?([A-Za-z]{3,9})[-, ]?\s?(\d{4}|\d{2})(?!\d)"
)
DATE_TOKEN = r"(\d{1,2}[-./]\d{1,2}[-./]\d{2,4}|\d{1,2}(?:st|nd|rd|th)?[- ]?[A-Za-z]{3,9}[-, ]?\s?\d{2,4})"

DUE_DATE_PATTERNS: List[Pattern] = [
    re.compile(p, re.IGNORECASE) for p in (
        rf"due\s*date\s*(?:is\s*)?[:\-]?\s*{DATE_TOKEN}",
        rf"(?:due|payable|pay)\s*(?:on|by|before)\s*[:\-]?\s*{DATE_TOKEN}",
        rf"\bdue\s*[:\-]\s*{DATE_TOKEN}",
        rf"\bdue\b[^\n]{{0,60}}?\bby\s*{DATE_TOKEN}",
    )
]

STATEMENT_DATE_PATTERNS: List[Pattern] = [
    re.compile(p, re.IGNORECASE) for p in (
        rf"(?:statement|bill)\s*(?:date|dated)\s*[:\-]?\s*{DATE_TOKEN}",
        rf"(?:statement|bill)\b[^\n]{{0,60}}?\bgenerated\s*(?:on\s*)?[:\-]?\s*{DATE_TOKEN}",
        rf"(?:statement|bill)\s*(?:for|as\s*on|as\s*of)\s*{DATE_TOKEN}",
    )
]

TIME_RE = re.compile(
    r"(?<![\d:])([01]?\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?(?![\d:])(?:\s*([ap])\.?m\b\.?)?",
    re.IGNORECASE,
)

# Label phrase, separator, optional currency, number
LABEL_GLUE = r"\s*(?:(?:of|is|was)\s*)?[:=\-]?\s*"

LABELED_FIELD_PATTERNS: Dict[str, Tuple[str, ...]] = {
    "minimum_due": (
        r"min(?:imum)?\.?\s*(?:amt\.?|amount)?\s*(?:due|payable)",
        r"minimum\s*payment",
    ),
    "total_due": (
        r"total\s*(?:(?:amt\.?|amount)\s*(?:due|outstanding|payable)?|due|outstanding|payable)",
        r"(?<!min\s)(?<!minimum\s)(?<!min\.\s)(?:amt|amount)\s*due",
        r"(?:statement|bill)\s*(?:amt\.?|amount|balance)",
    ),
    "available_credit": (
        r"(?:available|avl\.?|avbl\.?)\s*(?:credit\s*)?(?:limit|lmt|credit|bal(?:ance)?)",
        r"(?:credit|limit)\s*available",
    ),
    "credit_limit": (
        r"(?<!available\s)(?<!avl\s)(?<!avl\.\s)credit\s*limit",
        r"(?:total|card)\s*(?:credit\s*)?limit",
    ),
    "current_balance": (
        r"(?:current|new)\s*outstanding",
        r"outstanding\s*(?:balance|bal|amt\.?|amount)?",
        r"current\s*bal(?:ance)?",
    ),
    "previous_balance": (
        r"(?:previous|prev\.?|opening)\s*(?:balance|bal|outstanding)",
    ),
    "payments_received": (
        r"payments?\s*(?:received|(?:&|and)\s*credits)\s*:",
    ),
    "new_charges": (
        r"new\s*(?:charges|purchases|debits)",
        r"purchases?\s*(?:&|and)\s*(?:other\s*)?(?:charges|debits)\s*:",
    ),
    "interest_charged": (
        r"interest\s*charged",
        r"finance\s*charges?",
        r"interest\s*(?:amount|amt)?\s*:",
    ),
    "late_fee": (
        r"late\s*(?:payment\s*)?(?:fee|charge|penalty)s?",
        r"over\s*limit\s*(?:fee|charge)s?",
    ),
}

# Charges are also transactions in their own right; their amounts stay
# available to the transaction amount extractor.
CHARGE_FIELDS = ("interest_charged", "late_fee")

_COMPILED_LABELS: Dict[str, List[Pattern]] = {
    name: [
        re.compile(rf"(?<![a-z])(?:{label}){LABEL_GLUE}(?:{CURRENCY_PREFIX})?({AMOUNT_NUMBER})", re.IGNORECASE)
        for label in labels
    ]
    for name, labels in LABELED_FIELD_PATTERNS.items()
}

ACTION_AMOUNT_PATTERNS: List[Pattern] = [
    re.compile(p, re.IGNORECASE) for p in (
        rf"(?:spent|used\s+for|charged|debited|paid|purchase\s+of|(?:transaction|txn)\s+of|"
        rf"payment\s+of|refund\s+of|reversal\s+of|credited|withdrawn|withdrawal\s+of)"
        rf"\s*(?:for\s*|with\s*|of\s*|by\s*)?{CURRENCY_PREFIX}({AMOUNT_NUMBER})",
        rf"{CURRENCY_PREFIX}({AMOUNT_NUMBER})\s*(?:has\s+been\s+|was\s+|is\s+)?"
        rf"(?:spent|used|charged|debited|paid|credited|received|refunded|reversed|withdrawn)",
    )
]

AT_MERCHANT_RE = re.compile(
    r"(?i:\bat)\s+([A-Z0-9][A-Za-z0-9&.,'*+/\- ]{2,60}?)"
    r"(?=\s+(?i:on|dated|has|for|with|via|using|ref|txn|is|was|avl|available)\b"
    r"|\s*[.,;]\s|\s*[.,;]?\s*$|\s*\n)"
)
UPI_MERCHANT_RE = re.compile(
    r"for\s+UPI-\d+-([A-Z0-9][A-Z0-9 &.*'-]{2,49}?)(?=\.\s|\.?$|\s+on\b|\.[A-Z])",
    re.IGNORECASE,
)
MERCHANT_FILLER_RE = re.compile(r"\s+(?:on|at|for|has|have|with|dated|via|using|is|was|been)$", re.IGNORECASE)

DECLINED_PATTERNS: List[Pattern] = [
    re.compile(p, re.IGNORECASE) for p in (
        r"\bdeclined\b",
        r"\b(?:was\s+)?(?:not\s+successful|unsuccessful)\b",
        r"\bfailed\b",
        r"could\s+not\s+be\s+(?:processed|completed)",
        r"transaction\s+(?:denied|rejected)",
        r"insufficient\s+(?:credit\s+)?(?:limit|balance)",
    )
]


@dataclass(frozen=True)
class AmountMatch:
    """A currency-marked amount and where it sits in the text."""

    value: Decimal
    start: int
    end: int


@dataclass
class LabeledFields:
    """Labelled monetary fields found in one piece of text."""

    values: Dict[str, Decimal] = field(default_factory=dict)
    spans: Dict[str, Span] = field(default_factory=dict)

    def get(self, name: str) -> Optional[Decimal]:
        return self.values.get(name)

    @property
    def consumed_spans(self) -> List[Span]:
        """Spans of balance-like fields, never reused as a transaction amount."""
        return [span for name, span in self.spans.items() if name not in CHARGE_FIELDS]


def _overlaps(span: Span, others: Iterable[Span]) -> bool:
    return any(span[0] < end and start < span[1] for start, end in others)


def parse_amount(value: str) -> Optional[Decimal]:
    """
    Parse a numeric token such as "3,61,544.58" into a Decimal.

    Returns:
        Decimal amount, or None for non-numeric input
    """
    if value is None:
        return None
    clean = value.replace(",", "").strip().rstrip(".")
    if not re.fullmatch(r"\d+(?:\.\d+)?", clean):
        return None
    try:
        return Decimal(clean)
    except InvalidOperation:
        return None


def extract_amounts(text: str) -> List[AmountMatch]:
    """All currency-marked amounts, in order of appearance."""
    matches = []
    for m in CURRENCY_AMOUNT_RE.finditer(text):
        value = parse_amount(m.group(1))
        if value is not None:
            matches.append(AmountMatch(value=value, start=m.start(), end=m.end()))
    return matches


def has_currency_amount(text: str) -> bool:
    return bool(extract_amounts(text))


def find_card_mentions(text: str) -> List[Tuple[str, int]]:
    """All masked card numbers as (last4, position), in order of appearance."""
    found: Dict[int, str] = {}
    for pattern in CARD_PATTERNS:
        for m in pattern.finditer(text):
            position = m.start(1)
            if position not in found:
                found[position] = m.group(1)
    return [(last4, position) for position, last4 in sorted(found.items())]


def extract_card_last4(text: str) -> Optional[str]:
    """Last four digits of the first masked card number in text."""
    for pattern in CARD_PATTERNS:
        m = pattern.search(text)
        if m:
            return m.group(1)
    return None


def parse_date(token: str) -> date:
    """
    Parse one date token in D-M-Y or D-Mon-Y form.

    Raises:
        DateParseFailure: If the token is not a valid calendar date
    """
    token = token.strip()
    m = NUMERIC_DATE_RE.fullmatch(token)
    if m:
        day, month, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
    else:
        m = NAMED_DATE_RE.fullmatch(token)
        if not m or m.group(2).lower() not in MONTHS:
            raise DateParseFailure(token)
        day, month, year = int(m.group(1)), MONTHS[m.group(2).lower()], int(m.group(3))

    if year < 100:
        year += 2000
    try:
        return date(year, month, day)
    except ValueError:
        raise DateParseFailure(token)


def find_dates(text: str) -> List[Tuple[date, Span]]:
    """Every valid date in text, in order of appearance."""
    candidates = []
    for pattern in (NUMERIC_DATE_RE, NAMED_DATE_RE):
        for m in pattern.finditer(text):
            candidates.append(m)
    candidates.sort(key=lambda m: m.start())

    dates: List[Tuple[date, Span]] = []
    for m in candidates:
        if dates and _overlaps(m.span(), [dates[-1][1]]):
            continue
        try:
            dates.append((parse_date(m.group(0)), m.span()))
        except DateParseFailure as e:
            logger.debug(e.message)
    return dates


def extract_date(text: str) -> Optional[date]:
    """First valid date in text."""
    dates = find_dates(text)
    return dates[0][0] if dates else None


def _labelled_dates(patterns: Sequence[Pattern], text: str) -> List[Tuple[date, Span]]:
    found = []
    for pattern in patterns:
        for m in pattern.finditer(text):
            try:
                found.append((parse_date(m.group(1)), m.span(1)))
            except DateParseFailure as e:
                logger.debug(e.message)
    return found


def extract_due_date(text: str) -> Optional[date]:
    """Payment due date. Due dates may lie in the future."""
    found = _labelled_dates(DUE_DATE_PATTERNS, text)
    return found[0][0] if found else None


def extract_statement_date(text: str, now: Optional[datetime] = None) -> Optional[date]:
    """Statement generation date; a date after ``now`` is rejected."""
    now = now or datetime.now()
    for found, _ in _labelled_dates(STATEMENT_DATE_PATTERNS, text):
        if found > now.date():
            logger.debug(f"Rejected future statement date {found}")
            continue
        return found
    return None


def extract_transaction_date(
    text: str,
    fallback: datetime,
    now: Optional[datetime] = None,
) -> Tuple[date, bool]:
    """
    Date the transaction happened.

    Due and statement dates are skipped. A future date is rejected in favour
    of the fallback (the message receipt time).

    Returns:
        Tuple of (date, found_in_text)
    """
    now = now or datetime.now()
    labelled = [span for _, span in _labelled_dates(DUE_DATE_PATTERNS, text)]
    labelled += [span for _, span in _labelled_dates(STATEMENT_DATE_PATTERNS, text)]

    for found, span in find_dates(text):
        if _overlaps(span, labelled):
            continue
        if found > now.date():
            logger.debug(f"Rejected future transaction date {found}, using receipt time")
            break
        return (found, True)

    return (fallback.date(), False)


def extract_time(text: str) -> Optional[str]:
    """Time of day as "HH:MM" (24 hour), or "HH:MM:SS" when the text gives seconds."""
    m = TIME_RE.search(text)
    if not m:
        return None
    hour, minute = int(m.group(1)), m.group(2)
    meridiem = (m.group(4) or "").lower()
    if meridiem == "p" and hour < 12:
        hour += 12
    elif meridiem == "a" and hour == 12:
        hour = 0
    if m.group(3):
        return f"{hour:02d}:{minute}:{m.group(3)}"
    return f"{hour:02d}:{minute}"


def extract_labeled_fields(text: str) -> LabeledFields:
    """
    Extract every labelled monetary field from text.

    Fields are tried in a fixed order and an amount claimed by one field is
    not reused by another.
    """
    result = LabeledFields()
    claimed: List[Span] = []

    for name, patterns in _COMPILED_LABELS.items():
        for pattern in patterns:
            match = None
            for m in pattern.finditer(text):
                if not _overlaps(m.span(1), claimed):
                    match = m
                    break
            if match is None:
                continue
            value = parse_amount(match.group(1))
            if value is None:
                continue
            result.values[name] = value
            result.spans[name] = match.span()
            claimed.append(match.span(1))
            break

    return result


def extract_transaction_amount(
    text: str,
    consumed_spans: Iterable[Span] = (),
    bank_patterns: Sequence[Pattern] = (),
) -> Optional[Decimal]:
    """
    Amount of the transaction described by text.

    Layers: bank-specific patterns, action-verb patterns, then the first
    currency amount that is not part of a labelled field.
    """
    consumed = list(consumed_spans)

    for pattern in list(bank_patterns) + ACTION_AMOUNT_PATTERNS:
        for m in pattern.finditer(text):
            if _overlaps(m.span(1), consumed):
                continue
            value = parse_amount(m.group(1))
            if value is not None and value > 0:
                return value

    for amount in extract_amounts(text):
        if not _overlaps((amount.start, amount.end), consumed) and amount.value > 0:
            return amount.value

    return None


def _clean_merchant(name: str) -> Optional[str]:
    name = name.strip()
    previous = None
    while previous != name:
        previous = name
        name = MERCHANT_FILLER_RE.sub("", name).rstrip(" .,;:-")
    if not 3 <= len(name) <= 50 or name.replace(" ", "").isdigit():
        return None
    return name


def extract_merchant(text: str, bank_patterns: Sequence[Pattern] = ()) -> Optional[str]:
    """
    Merchant name.

    Layers: bank-specific patterns, "at NAME", then "for UPI-<ref>-NAME".
    Names outside 3-50 characters are rejected.
    """
    for pattern in list(bank_patterns) + [AT_MERCHANT_RE, UPI_MERCHANT_RE]:
        for m in pattern.finditer(text):
            merchant = _clean_merchant(m.group(1))
            if merchant:
                return merchant
    return None


def is_declined(text: str) -> bool:
    return any(p.search(text) for p in DECLINED_PATTERNS)
