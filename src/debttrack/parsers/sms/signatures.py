"""
Bank signatures and the relevance filter.

BANK_SIGNATURES is evaluated top to bottom: sender patterns of every
signature are tried before any body pattern, and the first match wins.
"""

import logging
import re
from typing import Iterable, Optional, Tuple

from debttrack.core.config import ScanConfig
from debttrack.parsers.sms.extractors import AMOUNT_NUMBER, CURRENCY_PREFIX, MASKED_CARD_RE, has_currency_amount
from debttrack.parsers.sms.models import BankSignature, RawMessage

logger = logging.getLogger(__name__)


def _compile(*patterns: str) -> Tuple[re.Pattern, ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


BANK_SIGNATURES: Tuple[BankSignature, ...] = (
    BankSignature(
        bank_name="HDFC Bank",
        sender_patterns=_compile(r"hdfc"),
        body_patterns=_compile(r"hdfc\s*bank", r"hdfcbank", r"\bhdfc\b"),
        estimated_annual_rate_percent=42.0,
        amount_patterns=_compile(rf"you\s+have\s+spent\s*{CURRENCY_PREFIX}\s*({AMOUNT_NUMBER})"),
    ),
    BankSignature(
        bank_name="ICICI Bank",
        sender_patterns=_compile(r"icici"),
        body_patterns=_compile(r"icici\s*bank", r"icicibank", r"\bicici\b"),
        estimated_annual_rate_percent=39.6,
        amount_patterns=_compile(rf"used\s+for\s*{CURRENCY_PREFIX}\s*({AMOUNT_NUMBER})"),
    ),
    BankSignature(
        bank_name="Axis Bank",
        sender_patterns=_compile(r"axis"),
        body_patterns=_compile(r"axis\s*bank", r"axisbank"),
        estimated_annual_rate_percent=42.0,
        # "Spent / Card no. XX1234 / INR 444 / 09-08-25 14:29:25 / MERCHANT" layout
        merchant_patterns=(
            re.compile(r"\d{1,2}:\d{2}(?::\d{2})?(?:\s*IST)?[ \t]*\n\s*([A-Z0-9][A-Z0-9 &*.'-]{2,49}?)[ \t]*(?:\n|$)"),
        ),
    ),
    BankSignature(
        bank_name="Kotak Mahindra Bank",
        sender_patterns=_compile(r"kotak"),
        body_patterns=_compile(r"kotak\s*mahindra", r"kotakbank", r"\bkotak\b"),
        estimated_annual_rate_percent=41.4,
    ),
    BankSignature(
        bank_name="SBI Card",
        sender_patterns=_compile(r"sbi"),
        body_patterns=_compile(r"sbi\s*card", r"sbicard", r"state\s+bank\s+of\s+india", r"\bsbi\b"),
        estimated_annual_rate_percent=38.4,
    ),
    BankSignature(
        bank_name="American Express",
        sender_patterns=_compile(r"amex", r"am-ex"),
        body_patterns=_compile(r"american\s*express", r"\bamex\b"),
        estimated_annual_rate_percent=36.0,
    ),
    BankSignature(
        bank_name="Standard Chartered",
        sender_patterns=_compile(r"stanc", r"scbank", r"stcbk"),
        body_patterns=_compile(r"standard\s*chartered", r"stan\s*chart"),
        estimated_annual_rate_percent=42.0,
    ),
    BankSignature(
        bank_name="Citibank",
        sender_patterns=_compile(r"citi"),
        body_patterns=_compile(r"citi\s*bank", r"\bciti\b"),
        estimated_annual_rate_percent=39.6,
    ),
    BankSignature(
        bank_name="Yes Bank",
        sender_patterns=_compile(r"yesbnk", r"yesbank", r"yesbk"),
        body_patterns=_compile(r"yes\s*bank"),
        estimated_annual_rate_percent=42.0,
    ),
    BankSignature(
        bank_name="IndusInd Bank",
        sender_patterns=_compile(r"indus"),
        body_patterns=_compile(r"indusind"),
        estimated_annual_rate_percent=41.4,
    ),
    BankSignature(
        bank_name="HSBC Bank",
        sender_patterns=_compile(r"hsbc"),
        body_patterns=_compile(r"\bhsbc\b"),
    ),
    BankSignature(
        bank_name="IDFC First Bank",
        sender_patterns=_compile(r"idfc"),
        body_patterns=_compile(r"idfc\s*first", r"\bidfc\b"),
    ),
    BankSignature(
        bank_name="RBL Bank",
        sender_patterns=_compile(r"rbl"),
        body_patterns=_compile(r"rbl\s*bank", r"rblbank"),
    ),
    BankSignature(
        bank_name="Federal Bank",
        sender_patterns=_compile(r"fedbnk", r"federal"),
        body_patterns=_compile(r"federal\s*bank"),
    ),
    BankSignature(
        bank_name="DBS Bank",
        sender_patterns=_compile(r"dbs", r"digibk"),
        body_patterns=_compile(r"dbs\s*bank", r"digibank"),
    ),
    BankSignature(
        bank_name="Barclays Bank",
        sender_patterns=_compile(r"barclay"),
        body_patterns=_compile(r"barclays"),
    ),
    BankSignature(
        bank_name="Bank of India",
        sender_patterns=_compile(r"boiind", r"^(?:[a-z]{2}-)?boi"),
        body_patterns=_compile(r"bank\s*of\s*india", r"\bboi\b"),
    ),
    BankSignature(
        bank_name="Punjab National Bank",
        sender_patterns=_compile(r"pnb"),
        body_patterns=_compile(r"punjab\s*national", r"\bpnb\b"),
    ),
    BankSignature(
        bank_name="Canara Bank",
        sender_patterns=_compile(r"canara", r"canbnk"),
        body_patterns=_compile(r"canara\s*bank"),
    ),
    BankSignature(
        bank_name="Union Bank",
        sender_patterns=_compile(r"union", r"ubin"),
        body_patterns=_compile(r"union\s*bank"),
    ),
    BankSignature(
        bank_name="Bank of Baroda",
        sender_patterns=_compile(r"^(?:[a-z]{2}-)?bob", r"barodm"),
        body_patterns=_compile(r"bank\s*of\s*baroda", r"\bbob\b"),
    ),
    BankSignature(
        bank_name="South Indian Bank",
        sender_patterns=_compile(r"sibsms", r"sibank"),
        body_patterns=_compile(r"south\s*indian\s*bank"),
    ),
    BankSignature(
        bank_name="IDBI Bank",
        sender_patterns=_compile(r"idbi"),
        body_patterns=_compile(r"idbi\s*bank", r"\bidbi\b"),
    ),
    BankSignature(
        bank_name="CSB Bank",
        sender_patterns=_compile(r"csbbnk", r"csbank"),
        body_patterns=_compile(r"catholic\s*syrian\s*bank", r"csb\s*bank"),
    ),
    BankSignature(
        bank_name="Karur Vysya Bank",
        sender_patterns=_compile(r"kvbank", r"kvbsms"),
        body_patterns=_compile(r"karur\s*vysya", r"\bkvb\b"),
    ),
    BankSignature(
        bank_name="AU Small Finance Bank",
        sender_patterns=_compile(r"aubank", r"au-?bnk"),
        body_patterns=_compile(r"au\s*small\s*finance", r"\bau\s*bank\b"),
    ),
)


# Credit card context keywords (lower case substrings)
CREDIT_CARD_KEYWORDS = [
    "credit card", "credit limit", "available limit", "available credit",
    "avl limit", "avl lmt", "avl credit", "outstanding", "total due",
    "minimum due", "min due", "min amt due", "amount due", "statement",
    "bill generated", "payment due", "due date", "pay by", "overdue",
    "late payment", "interest charged", "finance charge", "card ending",
    "card xx", "card ****", "cr card", "transaction on card", "debited on card",
    "credited to card", "txn alert", "transaction alert", "cash back",
]

# "CC" as a word, never the tail of "acc"
CC_WORD_RE = re.compile(r"\bcc\b", re.IGNORECASE)

# Markers of debit card and deposit account messages
EXCLUSION_KEYWORDS = [
    "debit card", "savings account", "current account", "account balance",
    "withdrawn from atm", "atm withdrawal", "upi debit", "pos debit", "net banking",
]


def is_relevant(body: str) -> bool:
    """
    Check whether a message body is about a credit card.

    Requires a credit-card context keyword, or a masked card number together
    with a currency-marked amount, and no debit/deposit account marker.
    """
    body_lower = body.lower()

    if any(exclusion in body_lower for exclusion in EXCLUSION_KEYWORDS):
        return False

    if any(keyword in body_lower for keyword in CREDIT_CARD_KEYWORDS) or CC_WORD_RE.search(body):
        return True

    return bool(MASKED_CARD_RE.search(body)) and has_currency_amount(body)


def identify_bank(
    sender: str,
    body: str,
    signatures: Iterable[BankSignature] = BANK_SIGNATURES,
) -> Optional[BankSignature]:
    """
    Identify the issuing bank.

    Sender patterns are checked first (higher precision), then the body.

    Returns:
        Matching BankSignature or None
    """
    signatures = tuple(signatures)

    if sender:
        for signature in signatures:
            if signature.matches_sender(sender):
                return signature

    for signature in signatures:
        if signature.matches_body(body):
            return signature

    return None


def filter_message(
    message: RawMessage,
    signatures: Iterable[BankSignature] = BANK_SIGNATURES,
) -> Tuple[bool, Optional[str]]:
    """
    Relevance filter and bank identifier in one call.

    Returns:
        Tuple of (is_relevant, bank_name). bank_name is None when the message
        is irrelevant or no signature matched.
    """
    if not is_relevant(message.body):
        return (False, None)

    signature = identify_bank(message.sender, message.body, signatures)
    if signature is None:
        logger.debug(f"No bank signature matched sender {message.sender!r}")
        return (True, None)

    return (True, signature.bank_name)


def get_signature(
    bank_name: str,
    signatures: Iterable[BankSignature] = BANK_SIGNATURES,
) -> Optional[BankSignature]:
    """Look up a signature by bank name."""
    for signature in signatures:
        if signature.bank_name == bank_name:
            return signature
    return None


def default_apr_for(bank_name: Optional[str], config: Optional[ScanConfig] = None) -> float:
    """
    Estimated annual rate (percent) used for projections.

    A configured override wins over the signature table, which wins over the
    configured default.
    """
    config = config or ScanConfig()
    signature = get_signature(bank_name) if bank_name else None
    rate = signature.estimated_annual_rate_percent if signature else None
    return config.apr_for(bank_name, rate)
