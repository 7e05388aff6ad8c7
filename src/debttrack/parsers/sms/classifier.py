"""
Transaction classification and spend categorization.

Classification walks an ordered rule table top to bottom and the first
matching rule wins. Categorization is an independent keyword lookup applied
to purchases only.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Tuple

from debttrack.parsers.sms.models import TransactionType


@dataclass
class ClassificationRule:
    """
    One row of the classification table.

    A rule matches when any keyword is present, at least one of
    ``requires`` is present (if given) and none of ``excludes`` is.
    """
    type: TransactionType
    keywords: Tuple[str, ...]
    requires: Tuple[str, ...] = ()
    excludes: Tuple[str, ...] = ()

    def __post_init__(self):
        self._keywords = [re.compile(k, re.IGNORECASE) for k in self.keywords]
        self._requires = [re.compile(k, re.IGNORECASE) for k in self.requires]
        self._excludes = [re.compile(k, re.IGNORECASE) for k in self.excludes]

    def matches(self, text: str) -> bool:
        if not any(p.search(text) for p in self._keywords):
            return False
        if self._requires and not any(p.search(text) for p in self._requires):
            return False
        return not any(p.search(text) for p in self._excludes)


CLASSIFICATION_RULES: List[ClassificationRule] = [
    ClassificationRule(
        type=TransactionType.REFUND,
        keywords=(r"\brefund", r"\brevers(?:ed|al)\b", r"credited\s+back", r"chargeback"),
    ),
    ClassificationRule(
        type=TransactionType.REFUND,
        keywords=(r"\bcredited\b",),
        excludes=(r"\bpayment\b", r"will\s+be\s+credited", r"cash\s*back", r"\breward"),
    ),
    ClassificationRule(
        type=TransactionType.PAYMENT,
        keywords=(r"\b(?:re)?payments?\b",),
        requires=(r"\breceived\b", r"\bcredited\b", r"\bthank", r"\bsuccessful", r"\bposted\b"),
    ),
    ClassificationRule(
        type=TransactionType.FEE,
        keywords=(r"\bfees?\b", r"\bpenalty\b", r"late\s+(?:payment\s+)?charges?", r"annual\s+charges?"),
        excludes=(r"fees\s*(?:&|and)\s*charges,?\s*visit",),
    ),
    ClassificationRule(
        type=TransactionType.INTEREST,
        keywords=(r"\binterest\b", r"finance\s+charges?"),
    ),
    ClassificationRule(
        type=TransactionType.CASH_ADVANCE,
        keywords=(r"cash\s+advance", r"cash\s+withdrawal", r"\batm\b.{0,20}withdraw"),
    ),
    ClassificationRule(
        type=TransactionType.PURCHASE,
        keywords=(r"\bspent\b", r"\bused\b", r"\bcharged\b", r"\bdebited\b", r"\bpurchase",
                  r"\btxn\b", r"\btransaction\b"),
    ),
    ClassificationRule(
        type=TransactionType.STATEMENT,
        keywords=(r"\bstatement\b", r"\bbill\s+(?:is\s+|has\s+been\s+)?generated"),
    ),
    ClassificationRule(
        type=TransactionType.REMINDER,
        keywords=(r"remind", r"\boverdue\b", r"payment\s+due", r"\bis\s+due\b", r"\bdue\s+(?:on|by|date)\b",
                  r"\b(?:minimum|min|total)\s+(?:amt\.?\s+|amount\s+)?due\b", r"\bpay\s+by\b"),
    ),
]


@dataclass
class CategoryMapping:
    """Spend category and the merchant/text keywords that select it."""
    category: str
    keywords: List[str]


CATEGORY_MAPPINGS: List[CategoryMapping] = [
    CategoryMapping(
        category="Food & Dining",
        keywords=["zomato", "swiggy", "restaurant", "cafe", "food", "dominos", "pizza",
                  "mcdonald", "kfc", "starbucks", "eatsure", "dining", "bakery"],
    ),
    CategoryMapping(
        category="Shopping",
        keywords=["amazon", "flipkart", "myntra", "ajio", "nykaa", "meesho", "mall",
                  "shopping", "store", "mart", "tata cliq", "reliance digital", "croma"],
    ),
    CategoryMapping(
        category="Transport",
        keywords=["uber", "ola", "rapido", "metro", "irctc", "fuel", "petrol", "diesel",
                  "indian oil", "hpcl", "bpcl", "fastag", "redbus", "indigo", "airlines"],
    ),
    CategoryMapping(
        category="Entertainment",
        keywords=["netflix", "hotstar", "prime video", "spotify", "bookmyshow", "pvr",
                  "inox", "movie", "youtube", "gaming"],
    ),
    CategoryMapping(
        category="Utilities",
        keywords=["electricity", "water bill", "gas", "broadband", "airtel", "jio",
                  "vodafone", "recharge", "bescom", "tata power", "dth"],
    ),
    CategoryMapping(
        category="Medical",
        keywords=["hospital", "pharmacy", "apollo", "medplus", "clinic", "1mg",
                  "pharmeasy", "medical", "diagnostic", "netmeds"],
    ),
    CategoryMapping(
        category="Education",
        keywords=["school", "college", "university", "course", "udemy", "coursera",
                  "byju", "tuition", "education", "unacademy"],
    ),
]

DEFAULT_CATEGORY = "Other"

_CATEGORY_PATTERNS: List[Tuple[str, List[Pattern]]] = [
    (m.category, [re.compile(rf"\b{re.escape(k)}\b", re.IGNORECASE) for k in m.keywords])
    for m in CATEGORY_MAPPINGS
]

REWARD_RE = re.compile(r"\b(?:earned|credited|received|won)\b", re.IGNORECASE)
REWARD_KIND_RE = re.compile(r"cash\s*back|reward\s*points?", re.IGNORECASE)
STATEMENT_RE = re.compile(r"\bstatement\b", re.IGNORECASE)
STATEMENT_DETAIL_RE = re.compile(
    r"generated|total\s*(?:amt|amount|due)|min(?:imum)?\.?\s*(?:amt\.?\s*|amount\s*)?due|amount\s*due",
    re.IGNORECASE,
)
BILL_GENERATED_RE = re.compile(r"\bbill\s+(?:is\s+|has\s+been\s+)?generated", re.IGNORECASE)


def classify_transaction(text: str, merchant: Optional[str] = None) -> TransactionType:
    """
    Assign a semantic transaction type to a segment.

    Args:
        text: Segment text
        merchant: Extracted merchant, if any

    Returns:
        The first matching rule's type; purchase when only a merchant is
        known, balance_update otherwise
    """
    for rule in CLASSIFICATION_RULES:
        if rule.matches(text):
            return rule.type
    if merchant:
        return TransactionType.PURCHASE
    return TransactionType.BALANCE_UPDATE


def categorize(merchant: Optional[str], text: str = "") -> str:
    """Spend category for a purchase, "Other" when nothing matches."""
    haystack = f"{merchant or ''} {text}"
    for category, patterns in _CATEGORY_PATTERNS:
        if any(p.search(haystack) for p in patterns):
            return category
    return DEFAULT_CATEGORY


def is_reward(text: str) -> bool:
    """Cash back or reward points earned/credited."""
    return bool(REWARD_KIND_RE.search(text) and REWARD_RE.search(text))


def is_statement_message(body: str) -> bool:
    """Statement or bill generation notice."""
    if BILL_GENERATED_RE.search(body):
        return True
    return bool(STATEMENT_RE.search(body) and STATEMENT_DETAIL_RE.search(body))
