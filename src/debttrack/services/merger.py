"""
Record merger and deduplicator.

Folds per-message facts into per-account aggregates with newest-wins
resolution per field, and drops repeated transactions, statements, reminders
and rewards.

Tie rule: when two values carry the same source timestamp, the value merged
later wins. A scan merges its batch newest-first with a stable sort, so among
messages with equal timestamps the one later in the batch wins.
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Set, Tuple

from debttrack.core.exceptions import DuplicateRecord, ValidationError
from debttrack.parsers.sms.models import (
    MERGEABLE_FIELDS,
    CreditCardRecord,
    ParseOutcome,
    ReminderRecord,
    RewardRecord,
    StatementRecord,
    TransactionRecord,
)
from debttrack.parsers.sms.scoring import DEFAULT_VERIFICATION_THRESHOLD, apply_score

logger = logging.getLogger(__name__)

DEFAULT_DEDUP_WINDOW_SECONDS = 120


def merge_account(existing: CreditCardRecord, incoming: CreditCardRecord) -> CreditCardRecord:
    """
    Fold incoming into existing in place.

    A field is overwritten only when the incoming value is present and its
    source timestamp is not older than the existing one.

    Raises:
        ValidationError: If the two records are different accounts
    """
    if existing.id != incoming.id:
        raise ValidationError(f"Cannot merge account {incoming.id} into {existing.id}", field="id")

    for name in MERGEABLE_FIELDS:
        value = getattr(incoming, name)
        if value is None:
            continue
        incoming_ts = incoming.field_sources.get(name, incoming.last_message_at_ms)
        existing_ts = existing.field_sources.get(name)
        if getattr(existing, name) is None or existing_ts is None or incoming_ts >= existing_ts:
            existing.set_field(name, value, incoming_ts)

    if incoming.last_message_at_ms >= existing.last_message_at_ms:
        existing.estimated_apr = incoming.estimated_apr
        existing.card_type = incoming.card_type
        existing.last_message_at_ms = incoming.last_message_at_ms
    existing.last_updated = max(existing.last_updated, incoming.last_updated)
    return existing


def is_duplicate_transaction(
    existing: TransactionRecord,
    incoming: TransactionRecord,
    window_seconds: int = DEFAULT_DEDUP_WINDOW_SECONDS,
) -> bool:
    """
    Same account, same amount, same merchant (or both absent) and
    occurred less than ``window_seconds`` apart.
    """
    if existing.card_id != incoming.card_id or existing.amount != incoming.amount:
        return False
    if _merchant_key(existing.merchant) != _merchant_key(incoming.merchant):
        return False
    delta = abs((existing.occurred_at - incoming.occurred_at).total_seconds())
    return delta < window_seconds


def _merchant_key(merchant: Optional[str]) -> Optional[str]:
    return merchant.strip().casefold() if merchant else None


def merge_accounts(
    stored: List[CreditCardRecord],
    new: List[CreditCardRecord],
    verification_threshold: int = DEFAULT_VERIFICATION_THRESHOLD,
) -> List[CreditCardRecord]:
    """
    Fold newly parsed accounts into previously stored ones.

    Inputs are not modified. Order: stored accounts first, then new ones.
    Accounts that received a merge are rescored.
    """
    merged: Dict[str, CreditCardRecord] = {}
    for account in stored:
        merged[account.id] = copy.deepcopy(account)
    for account in new:
        if account.id in merged:
            apply_score(merge_account(merged[account.id], account), verification_threshold)
        else:
            merged[account.id] = copy.deepcopy(account)
    return list(merged.values())


def merge_transactions(
    stored: List[TransactionRecord],
    new: List[TransactionRecord],
    window_seconds: int = DEFAULT_DEDUP_WINDOW_SECONDS,
) -> Tuple[List[TransactionRecord], int]:
    """
    Select the new transactions that are not duplicates of stored ones.

    Returns:
        Tuple of (accepted new transactions, duplicates skipped)
    """
    by_card: Dict[str, List[TransactionRecord]] = {}
    for txn in stored:
        by_card.setdefault(txn.card_id, []).append(txn)

    accepted = []
    duplicates = 0
    for txn in new:
        known = by_card.setdefault(txn.card_id, [])
        if any(is_duplicate_transaction(other, txn, window_seconds) for other in known):
            duplicates += 1
            continue
        known.append(txn)
        accepted.append(txn)
    return accepted, duplicates


@dataclass
class ScanAggregate:
    """
    In-memory reduction of one scan.

    Owns the account map and the ordered record lists. Outcomes must be
    added in merge order (newest message first).
    """

    dedup_window_seconds: int = DEFAULT_DEDUP_WINDOW_SECONDS
    accounts: Dict[str, CreditCardRecord] = field(default_factory=dict)
    transactions: List[TransactionRecord] = field(default_factory=list)
    statements: List[StatementRecord] = field(default_factory=list)
    reminders: List[ReminderRecord] = field(default_factory=list)
    rewards: List[RewardRecord] = field(default_factory=list)
    duplicates: int = 0
    _by_card: Dict[str, List[TransactionRecord]] = field(default_factory=dict, repr=False)
    _seen: Set[tuple] = field(default_factory=set, repr=False)

    def add_account(self, account: CreditCardRecord) -> CreditCardRecord:
        if account.id in self.accounts:
            return merge_account(self.accounts[account.id], account)
        self.accounts[account.id] = account
        return account

    def add_transaction(self, txn: TransactionRecord) -> None:
        """
        Raises:
            DuplicateRecord: If an equivalent transaction is already present
        """
        known = self._by_card.setdefault(txn.card_id, [])
        for other in known:
            if is_duplicate_transaction(other, txn, self.dedup_window_seconds):
                raise DuplicateRecord(txn.id)
        known.append(txn)
        self.transactions.append(txn)

    def _add_keyed(self, records: list, record, key: tuple) -> None:
        if key in self._seen:
            raise DuplicateRecord(record.id)
        self._seen.add(key)
        records.append(record)

    def add_statement(self, statement: StatementRecord) -> None:
        self._add_keyed(self.statements, statement,
                        ("stmt", statement.card_id, statement.statement_date))

    def add_reminder(self, reminder: ReminderRecord) -> None:
        self._add_keyed(self.reminders, reminder,
                        ("rem", reminder.card_id, reminder.due_date, reminder.amount))

    def add_reward(self, reward: RewardRecord) -> None:
        self._add_keyed(self.rewards, reward, ("rew", reward.card_id, reward.amount, reward.date))

    def add_outcome(self, outcome: ParseOutcome) -> int:
        """
        Merge one message's outcome.

        Returns:
            Number of new secondary records kept (duplicates excluded)
        """
        for account in outcome.accounts:
            self.add_account(account)

        added = 0
        records = (
            [(self.add_transaction, t) for t in outcome.transactions]
            + [(self.add_statement, s) for s in outcome.statements]
            + [(self.add_reminder, r) for r in outcome.reminders]
            + [(self.add_reward, r) for r in outcome.rewards]
        )
        for add, record in records:
            try:
                add(record)
                added += 1
            except DuplicateRecord as e:
                self.duplicates += 1
                logger.debug(e.message)
        return added

    def finalize(self, verification_threshold: int = DEFAULT_VERIFICATION_THRESHOLD) -> "ScanAggregate":
        """Sort record lists for presentation and rescore every account."""
        self.transactions.sort(key=lambda t: (t.occurred_at, t.received_at_ms), reverse=True)
        self.statements.sort(key=lambda s: s.statement_date, reverse=True)
        self.reminders.sort(key=lambda r: (r.due_date is None, r.due_date or date.max))
        self.rewards.sort(key=lambda r: (r.date, r.received_at_ms), reverse=True)
        for account in self.accounts.values():
            apply_score(account, verification_threshold)
        return self

    def account_list(self) -> List[CreditCardRecord]:
        return list(self.accounts.values())
