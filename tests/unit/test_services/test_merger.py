"""
Unit tests for the record merger.

Tests newest-wins field resolution, transaction deduplication and the
in-scan aggregate.
"""

import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal
from itertools import permutations

from debttrack.core.exceptions import DuplicateRecord, ValidationError
from debttrack.parsers.sms.models import (
    CreditCardRecord,
    ParseOutcome,
    ReminderRecord,
    StatementRecord,
    TransactionRecord,
    TransactionType,
)
from debttrack.services.merger import (
    ScanAggregate,
    is_duplicate_transaction,
    merge_account,
    merge_accounts,
    merge_transactions,
)


def make_account(ts: int, **fields) -> CreditCardRecord:
    account = CreditCardRecord(bank_name="Axis Bank", last_four_digits="2546", last_message_at_ms=ts)
    for name, value in fields.items():
        account.set_field(name, value, ts)
    return account


def make_txn(offset_seconds: int = 0, amount: str = "444", merchant="FLIPKART PA",
             card_id: str = "axis_bank_2546", received_at_ms: int = 1) -> TransactionRecord:
    return TransactionRecord(
        card_id=card_id,
        amount=Decimal(amount),
        type=TransactionType.PURCHASE,
        date=date(2025, 8, 9),
        occurred_at=datetime(2025, 8, 9, 14, 29) + timedelta(seconds=offset_seconds),
        received_at_ms=received_at_ms,
        merchant=merchant,
    )


class TestMergeAccount:
    """Tests for newest-wins per-field merge."""

    def test_newer_value_wins(self):
        existing = make_account(1000, available_credit=Decimal("8240.31"))
        incoming = make_account(2000, available_credit=Decimal("3052.39"))

        merge_account(existing, incoming)
        assert existing.available_credit == Decimal("3052.39")
        assert existing.field_sources["available_credit"] == 2000
        assert existing.last_message_at_ms == 2000

    def test_older_value_loses(self):
        existing = make_account(2000, available_credit=Decimal("3052.39"))
        incoming = make_account(1000, available_credit=Decimal("8240.31"))

        merge_account(existing, incoming)
        assert existing.available_credit == Decimal("3052.39")
        assert existing.last_message_at_ms == 2000

    def test_absent_value_never_erases(self):
        existing = make_account(1000, total_due=Decimal("84356.07"))
        incoming = make_account(2000, available_credit=Decimal("3052.39"))

        merge_account(existing, incoming)
        assert existing.total_due == Decimal("84356.07")
        assert existing.available_credit == Decimal("3052.39")

    def test_older_fills_missing_field(self):
        existing = make_account(2000, available_credit=Decimal("3052.39"))
        incoming = make_account(1000, minimum_due=Decimal("5893"))

        merge_account(existing, incoming)
        assert existing.minimum_due == Decimal("5893")
        assert existing.available_credit == Decimal("3052.39")

    def test_tie_later_merge_wins(self):
        existing = make_account(1000, minimum_due=Decimal("100"))
        incoming = make_account(1000, minimum_due=Decimal("200"))

        merge_account(existing, incoming)
        assert existing.minimum_due == Decimal("200")

    def test_different_accounts_rejected(self):
        other = CreditCardRecord(bank_name="HDFC Bank", last_four_digits="1234")
        with pytest.raises(ValidationError):
            merge_account(make_account(1000), other)

    def test_merge_order_independent(self):
        """Test merging with distinct timestamps gives the same result in any order."""
        snapshots = [
            make_account(1000, available_credit=Decimal("9000"), minimum_due=Decimal("500")),
            make_account(2000, available_credit=Decimal("8000")),
            make_account(3000, total_due=Decimal("84356.07"), minimum_due=Decimal("5893")),
        ]

        results = set()
        for order in permutations(range(3)):
            merged = merge_accounts([], [make_account(0)] + [snapshots[i] for i in order])[0]
            results.add((merged.available_credit, merged.minimum_due, merged.total_due))

        assert results == {(Decimal("8000"), Decimal("5893"), Decimal("84356.07"))}


class TestMergeAccounts:
    """Tests for folding new accounts into stored ones."""

    def test_inputs_not_modified(self):
        stored = [make_account(1000, available_credit=Decimal("9000"))]
        new = [make_account(2000, available_credit=Decimal("8000"))]

        merged = merge_accounts(stored, new)
        assert merged[0].available_credit == Decimal("8000")
        assert stored[0].available_credit == Decimal("9000")

    def test_merged_account_rescored(self):
        stored = make_account(1000, total_due=Decimal("100"))
        stored.confidence = 40
        new = make_account(2000, minimum_due=Decimal("10"), due_date=date(2025, 9, 4))

        merged = merge_accounts([stored], [new])[0]
        assert merged.confidence == 70
        assert merged.needs_verification is False

    def test_new_accounts_appended(self):
        hdfc = CreditCardRecord(bank_name="HDFC Bank", last_four_digits="1234")
        merged = merge_accounts([make_account(1000)], [hdfc])
        assert [a.id for a in merged] == ["axis_bank_2546", "hdfc_bank_1234"]


class TestTransactionDedup:
    """Tests for the duplicate transaction window."""

    def test_within_window(self):
        assert is_duplicate_transaction(make_txn(0), make_txn(119))

    def test_outside_window(self):
        assert not is_duplicate_transaction(make_txn(0), make_txn(121))

    def test_window_boundary_excluded(self):
        assert not is_duplicate_transaction(make_txn(0), make_txn(120))

    def test_merchant_case_insensitive(self):
        assert is_duplicate_transaction(make_txn(merchant="FLIPKART PA"), make_txn(merchant="flipkart pa"))

    def test_both_merchants_absent(self):
        assert is_duplicate_transaction(make_txn(merchant=None), make_txn(30, merchant=None))

    @pytest.mark.parametrize("changes", [
        {"amount": "445"},
        {"merchant": "AMAZON"},
        {"merchant": None},
        {"card_id": "hdfc_bank_1234"},
    ])
    def test_different_fields(self, changes):
        assert not is_duplicate_transaction(make_txn(), make_txn(**changes))

    def test_merge_transactions(self):
        stored = [make_txn(0)]
        new = [make_txn(60), make_txn(600), make_txn(620)]

        accepted, duplicates = merge_transactions(stored, new)
        assert [t.occurred_at.minute for t in accepted] == [39]
        assert duplicates == 2

    def test_custom_window(self):
        accepted, duplicates = merge_transactions([make_txn(0)], [make_txn(60)], window_seconds=30)
        assert len(accepted) == 1
        assert duplicates == 0


class TestScanAggregate:
    """Tests for the in-scan reduction."""

    def test_duplicate_transaction_counted(self):
        aggregate = ScanAggregate()
        outcome = ParseOutcome(success=True, accounts=[make_account(1000)],
                               transactions=[make_txn(0), make_txn(90)])

        assert aggregate.add_outcome(outcome) == 1
        assert aggregate.duplicates == 1
        assert len(aggregate.transactions) == 1

    def test_add_transaction_raises_duplicate(self):
        aggregate = ScanAggregate()
        aggregate.add_transaction(make_txn(0))
        with pytest.raises(DuplicateRecord):
            aggregate.add_transaction(make_txn(5))

    def test_duplicate_statement(self):
        aggregate = ScanAggregate()
        first = StatementRecord(card_id="axis_bank_2546", statement_date=date(2025, 8, 22), received_at_ms=2)
        again = StatementRecord(card_id="axis_bank_2546", statement_date=date(2025, 8, 22), received_at_ms=1,
                                total_due=Decimal("1"))
        aggregate.add_statement(first)
        with pytest.raises(DuplicateRecord):
            aggregate.add_statement(again)
        assert aggregate.statements == [first]

    def test_accounts_merged_by_id(self):
        aggregate = ScanAggregate()
        aggregate.add_account(make_account(2000, available_credit=Decimal("3052.39")))
        aggregate.add_account(make_account(1000, available_credit=Decimal("8240.31"),
                                           minimum_due=Decimal("5893")))

        assert len(aggregate.accounts) == 1
        account = aggregate.account_list()[0]
        assert account.available_credit == Decimal("3052.39")
        assert account.minimum_due == Decimal("5893")

    def test_finalize_sorts_and_scores(self):
        aggregate = ScanAggregate()
        aggregate.add_account(make_account(1000, total_due=Decimal("10"), minimum_due=Decimal("1"),
                                           due_date=date(2025, 9, 4)))
        aggregate.add_transaction(make_txn(0, merchant="A"))
        aggregate.add_transaction(make_txn(3600, merchant="B"))
        aggregate.add_reminder(ReminderRecord(card_id="axis_bank_2546", amount=Decimal("5"),
                                              received_at_ms=1))
        aggregate.add_reminder(ReminderRecord(card_id="axis_bank_2546", amount=Decimal("6"),
                                              received_at_ms=1, due_date=date(2025, 9, 4)))
        aggregate.finalize()

        assert [t.merchant for t in aggregate.transactions] == ["B", "A"]
        assert aggregate.reminders[0].due_date == date(2025, 9, 4)
        assert aggregate.reminders[-1].due_date is None
        account = aggregate.account_list()[0]
        assert account.confidence == 70
        assert account.needs_verification is False
