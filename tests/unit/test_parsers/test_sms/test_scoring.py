"""Unit tests for account confidence scoring."""

import pytest
from datetime import date
from decimal import Decimal
from itertools import combinations

from debttrack.parsers.sms.models import CreditCardRecord
from debttrack.parsers.sms.scoring import (
    MAX_CONFIDENCE,
    SCORE_WEIGHTS,
    apply_score,
    score_account,
    score_fields,
)


FIELD_VALUES = {
    "total_due": Decimal("84356.07"),
    "minimum_due": Decimal("5893.00"),
    "due_date": date(2025, 9, 4),
    "credit_limit": Decimal("100000"),
    "available_credit": Decimal("15643.93"),
    "interest_charged": Decimal("1200"),
    "late_fee": Decimal("750"),
}


def make_account(**fields) -> CreditCardRecord:
    return CreditCardRecord(bank_name="Axis Bank", last_four_digits="2546", **fields)


class TestScoreFields:
    """Tests for the additive score."""

    def test_weights_sum_to_max(self):
        assert sum(weight for _, weight in SCORE_WEIGHTS) == MAX_CONFIDENCE

    def test_last_four_only(self):
        assert score_account(make_account()) == 20

    def test_statement_fields(self):
        account = make_account(
            total_due=FIELD_VALUES["total_due"],
            minimum_due=FIELD_VALUES["minimum_due"],
            due_date=FIELD_VALUES["due_date"],
        )
        assert score_account(account) == 70

    def test_all_fields(self):
        assert score_account(make_account(**FIELD_VALUES)) == MAX_CONFIDENCE

    def test_unscored_fields_ignored(self):
        assert score_fields({"last_four_digits": "2546", "current_balance": Decimal("5")}) == 20

    def test_capped(self):
        fields = {name: 1 for name, _ in SCORE_WEIGHTS}
        fields["extra"] = 1
        assert score_fields(fields) <= MAX_CONFIDENCE


class TestMonotonicity:
    """Adding a previously absent scored field never lowers the score."""

    @pytest.mark.parametrize("present_count", [0, 1, 2, 3, 4, 5, 6])
    def test_adding_field_never_decreases(self, present_count):
        names = list(FIELD_VALUES)
        for present in combinations(names, present_count):
            base = {name: FIELD_VALUES[name] for name in present}
            base_score = score_account(make_account(**base))
            for extra in names:
                if extra in present:
                    continue
                extended = dict(base, **{extra: FIELD_VALUES[extra]})
                assert score_account(make_account(**extended)) >= base_score


class TestApplyScore:
    """Tests for the verification flag."""

    def test_below_threshold_needs_verification(self):
        account = apply_score(make_account(total_due=Decimal("100")))
        assert account.confidence == 40
        assert account.needs_verification is True

    def test_at_threshold_verified(self):
        account = apply_score(make_account(
            total_due=Decimal("100"), minimum_due=Decimal("10"), late_fee=Decimal("5"),
        ))
        assert account.confidence == 60
        assert account.needs_verification is False

    def test_custom_threshold(self):
        account = apply_score(make_account(**FIELD_VALUES), threshold=101)
        assert account.confidence == 100
        assert account.needs_verification is True
