"""
Confidence scoring for account records.

The score is advisory: it never blocks a merge, it only flags accounts that
should be checked by hand.
"""

from typing import Dict, Tuple

from debttrack.parsers.sms.models import CreditCardRecord

# (field, weight); last_four_digits is always present on a valid record
SCORE_WEIGHTS: Tuple[Tuple[str, int], ...] = (
    ("last_four_digits", 20),
    ("total_due", 20),
    ("minimum_due", 15),
    ("due_date", 15),
    ("credit_limit", 10),
    ("available_credit", 10),
    ("interest_charged", 5),
    ("late_fee", 5),
)

MAX_CONFIDENCE = 100
DEFAULT_VERIFICATION_THRESHOLD = 60


def score_fields(fields: Dict[str, object]) -> int:
    """Additive confidence score over the present fields, capped at 100."""
    score = sum(weight for name, weight in SCORE_WEIGHTS if fields.get(name) is not None)
    return min(score, MAX_CONFIDENCE)


def score_account(account: CreditCardRecord) -> int:
    return score_fields({name: getattr(account, name) for name, _ in SCORE_WEIGHTS})


def apply_score(account: CreditCardRecord, threshold: int = DEFAULT_VERIFICATION_THRESHOLD) -> CreditCardRecord:
    """Set confidence and needs_verification on the account in place."""
    account.confidence = score_account(account)
    account.needs_verification = account.confidence < threshold
    return account
