"""
Single-message extraction.

MessageParser turns one RawMessage into the accounts, transactions,
statements, reminders and rewards it describes. It is a pure function of
(message, signatures, config, now) and is safe to call from worker threads.
"""

import logging
from datetime import datetime, time as dt_time
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional, Union

from debttrack.core.config import ScanConfig
from debttrack.core.exceptions import (
    AmountNotFound,
    BankNotRecognized,
    CardNumberNotFound,
    DebtTrackError,
)
from debttrack.parsers.sms.classifier import (
    categorize,
    classify_transaction,
    is_reward,
    is_statement_message,
)
from debttrack.parsers.sms.extractors import (
    LabeledFields,
    extract_amounts,
    extract_card_last4,
    extract_due_date,
    extract_labeled_fields,
    extract_merchant,
    extract_statement_date,
    extract_time,
    extract_transaction_amount,
    extract_transaction_date,
    find_card_mentions,
    is_declined,
)
from debttrack.parsers.sms.models import (
    BankSignature,
    CreditCardRecord,
    ParseOutcome,
    RawMessage,
    ReminderRecord,
    RewardRecord,
    StatementRecord,
    TransactionRecord,
    TransactionType,
    utc_now,
)
from debttrack.parsers.sms.scoring import apply_score
from debttrack.parsers.sms.segmenter import Segment, segment_message
from debttrack.parsers.sms.signatures import BANK_SIGNATURES, identify_bank, is_relevant

logger = logging.getLogger(__name__)

# Labelled amounts copied onto the account record
ACCOUNT_FIELDS = (
    "credit_limit",
    "current_balance",
    "available_credit",
    "total_due",
    "minimum_due",
    "previous_balance",
    "interest_charged",
    "late_fee",
)

# Types that describe the account rather than a money movement
NON_TRANSACTION_TYPES = (TransactionType.STATEMENT, TransactionType.REMINDER)


class MessageParser:
    """
    Extracts ledger records from bank messages.

    Usage:
        parser = MessageParser()
        outcome = parser.parse_one(RawMessage("AD-HDFCBK", body, received_at_ms))
        for account in outcome.accounts:
            print(account.bank_name, account.last_four_digits)
    """

    def __init__(
        self,
        config: Optional[ScanConfig] = None,
        signatures: Iterable[BankSignature] = BANK_SIGNATURES,
    ):
        self.config = config or ScanConfig()
        self.signatures = tuple(signatures)

    def parse_one(
        self,
        raw: Union[RawMessage, Dict[str, Any]],
        now: Optional[datetime] = None,
    ) -> ParseOutcome:
        """
        Parse one message.

        Extraction problems never raise; they are reported on the outcome.

        Args:
            raw: RawMessage or a loosely shaped source record
            now: Scan time used to reject future dates (defaults to utcnow)

        Returns:
            ParseOutcome with the extracted records
        """
        try:
            message = raw if isinstance(raw, RawMessage) else RawMessage.from_dict(raw)
        except DebtTrackError as e:
            return ParseOutcome(success=False, error=e.message, error_code=e.code)

        if not is_relevant(message.body):
            return ParseOutcome(success=False, message=message)

        try:
            signature = identify_bank(message.sender, message.body, self.signatures)
            if signature is None:
                raise BankNotRecognized()
            outcome = self.extract(message, signature, now or utc_now())
        except DebtTrackError as e:
            logger.debug(f"{e.code} for {message.sender}: {message.preview(self.config.body_preview_chars)}")
            return ParseOutcome(success=False, message=message, relevant=True,
                                error=e.message, error_code=e.code)

        return outcome

    def extract(self, message: RawMessage, signature: BankSignature, now: datetime) -> ParseOutcome:
        """
        Run segmentation and field extraction for a message of a known bank.

        Raises:
            CardNumberNotFound: If the message names no masked card at all
        """
        cards = find_card_mentions(message.body)
        if not cards:
            raise CardNumberNotFound()

        outcome = ParseOutcome(success=True, message=message, relevant=True,
                               bank_name=signature.bank_name)
        apr = Decimal(str(self.config.apr_for(signature.bank_name, signature.estimated_annual_rate_percent)))

        accounts: Dict[str, CreditCardRecord] = {}
        for last4, _ in cards:
            if last4 not in accounts:
                accounts[last4] = CreditCardRecord(
                    bank_name=signature.bank_name,
                    last_four_digits=last4,
                    estimated_apr=apr,
                    last_updated=now,
                    last_message_at_ms=message.received_at_ms,
                )

        statement_extras: Dict[str, Dict[str, Decimal]] = {}
        reminder_amounts: Dict[str, Optional[Decimal]] = {}
        segments = segment_message(message.body)
        outcome.segments = len(segments)
        previous_card = None

        for segment in segments:
            last4 = self._resolve_card(segment, previous_card, cards[0][0])
            previous_card = last4
            account = accounts[last4]

            labeled = extract_labeled_fields(segment.text)
            self._apply_account_fields(account, segment, labeled, message, now)
            extras = statement_extras.setdefault(last4, {})
            for name in ("payments_received", "new_charges"):
                if labeled.get(name) is not None:
                    extras[name] = labeled.get(name)

            if is_reward(segment.text):
                reward = self._build_reward(account, segment, message, now)
                if reward:
                    outcome.rewards.append(reward)
                continue

            merchant = extract_merchant(segment.text, signature.merchant_patterns)
            txn_type = classify_transaction(segment.text, merchant)

            if txn_type == TransactionType.REMINDER:
                amounts = extract_amounts(segment.text)
                fallback = amounts[0].value if amounts else None
                reminder_amounts[last4] = reminder_amounts.get(last4) or fallback
                continue
            if txn_type in NON_TRANSACTION_TYPES:
                continue

            amount = extract_transaction_amount(segment.text, labeled.consumed_spans,
                                                signature.amount_patterns)
            if amount is None:
                if txn_type != TransactionType.BALANCE_UPDATE:
                    miss = AmountNotFound()
                    outcome.add_warning(f"{miss.code}: segment {segment.index} {segment.text[:40]!r}")
                    logger.debug(f"{miss.code} in segment {segment.index}: {segment.text[:40]!r}")
                continue

            outcome.transactions.append(
                self._build_transaction(account, segment, txn_type, amount, merchant, message, now)
            )

        # A lone transaction takes a decline notice from anywhere in the message
        if len(outcome.transactions) == 1 and is_declined(message.body):
            outcome.transactions[0].declined = True

        if is_statement_message(message.body):
            for last4, account in accounts.items():
                outcome.statements.append(
                    self._build_statement(account, statement_extras.get(last4, {}), message, now)
                )
        else:
            for last4, fallback in reminder_amounts.items():
                reminder = self._build_reminder(accounts[last4], fallback, message)
                if reminder:
                    outcome.reminders.append(reminder)

        for account in accounts.values():
            apply_score(account, self.config.verification_threshold)
        outcome.accounts = list(accounts.values())

        logger.debug(
            f"{signature.bank_name}: {len(segments)} segments -> {len(outcome.accounts)} accounts, "
            f"{len(outcome.transactions)} transactions"
        )
        return outcome

    def _resolve_card(self, segment: Segment, previous: Optional[str], first: str) -> str:
        """Segment's own card, else its sentence's, else the previous one, else the first."""
        return (
            extract_card_last4(segment.text)
            or extract_card_last4(segment.sentence)
            or previous
            or first
        )

    def _apply_account_fields(
        self,
        account: CreditCardRecord,
        segment: Segment,
        labeled: LabeledFields,
        message: RawMessage,
        now: datetime,
    ) -> None:
        source_ms = message.received_at_ms
        for name in ACCOUNT_FIELDS:
            value = labeled.get(name)
            if value is not None:
                account.set_field(name, value, source_ms)

        due_date = extract_due_date(segment.text)
        if due_date:
            account.set_field("due_date", due_date, source_ms)

        statement_date = extract_statement_date(segment.text, now)
        if statement_date:
            account.set_field("statement_date", statement_date, source_ms)

    def _occurred_at(self, segment: Segment, message: RawMessage, now: datetime):
        txn_date, found = extract_transaction_date(segment.text, message.received_at, now)
        time_text = extract_time(segment.text)
        if not found:
            return txn_date, message.received_at, time_text
        if time_text:
            parts = [int(part) for part in time_text.split(":")]
            return txn_date, datetime.combine(txn_date, dt_time(*parts)), time_text
        return txn_date, datetime.combine(txn_date, dt_time()), None

    def _build_transaction(
        self,
        account: CreditCardRecord,
        segment: Segment,
        txn_type: TransactionType,
        amount: Decimal,
        merchant: Optional[str],
        message: RawMessage,
        now: datetime,
    ) -> TransactionRecord:
        txn_date, occurred_at, time_text = self._occurred_at(segment, message, now)
        category = categorize(merchant, segment.text) if txn_type == TransactionType.PURCHASE else None
        return TransactionRecord(
            card_id=account.id,
            amount=amount,
            type=txn_type,
            date=txn_date,
            occurred_at=occurred_at,
            received_at_ms=message.received_at_ms,
            merchant=merchant,
            category=category,
            time=time_text,
            declined=is_declined(segment.sentence),
            description=segment.text,
        )

    def _build_reward(
        self,
        account: CreditCardRecord,
        segment: Segment,
        message: RawMessage,
        now: datetime,
    ) -> Optional[RewardRecord]:
        amounts = extract_amounts(segment.text)
        if not amounts:
            return None
        reward_date, _ = extract_transaction_date(segment.text, message.received_at, now)
        return RewardRecord(
            card_id=account.id,
            amount=amounts[0].value,
            date=reward_date,
            received_at_ms=message.received_at_ms,
            description=segment.text,
        )

    def _build_statement(
        self,
        account: CreditCardRecord,
        extras: Dict[str, Decimal],
        message: RawMessage,
        now: datetime,
    ) -> StatementRecord:
        statement_date = account.statement_date or extract_statement_date(message.body, now)
        if statement_date is None:
            statement_date = message.received_at.date()
            account.set_field("statement_date", statement_date, message.received_at_ms)
        return StatementRecord(
            card_id=account.id,
            statement_date=statement_date,
            received_at_ms=message.received_at_ms,
            due_date=account.due_date,
            total_due=account.total_due,
            minimum_due=account.minimum_due,
            previous_balance=account.previous_balance,
            payments_received=extras.get("payments_received"),
            new_charges=extras.get("new_charges"),
            interest_charged=account.interest_charged,
            late_fees=account.late_fee,
        )

    def _build_reminder(
        self,
        account: CreditCardRecord,
        fallback: Optional[Decimal],
        message: RawMessage,
    ) -> Optional[ReminderRecord]:
        amount = account.outstanding if account.total_due is not None else account.minimum_due
        if amount is None:
            amount = fallback
        if amount is None:
            return None
        return ReminderRecord(
            card_id=account.id,
            amount=amount,
            received_at_ms=message.received_at_ms,
            minimum_due=account.minimum_due,
            due_date=account.due_date,
            description=message.preview(self.config.body_preview_chars),
        )


def parse_one(raw: Union[RawMessage, Dict[str, Any]], config: Optional[ScanConfig] = None,
              now: Optional[datetime] = None) -> ParseOutcome:
    """Parse a single message with a default parser."""
    return MessageParser(config).parse_one(raw, now=now)
