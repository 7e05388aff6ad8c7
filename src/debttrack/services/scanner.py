"""
Scan orchestrator.

Drives one analysis run over a batch of raw messages: fetch, relevance
filter, per-message extraction, serial newest-first merge, then handoff to
the ledger store. Progress is reported through a callback and the run can be
cancelled between messages with a threading.Event.

Stages and progress ranges:
    fetching    0-10
    filtering   10-30
    extracting  30-90
    merging     90-95
    saving      95-100
    complete    100
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from debttrack.core.config import ScanConfig
from debttrack.core.database import LedgerStore
from debttrack.core.exceptions import (
    InvalidMessageFormat,
    MessageSourceError,
    ScanCancelled,
    StorageFailure,
)
from debttrack.parsers.sms.models import (
    CreditCardRecord,
    ParseOutcome,
    RawMessage,
    ReminderRecord,
    RewardRecord,
    ScanStats,
    StatementRecord,
    TransactionRecord,
    datetime_to_ms,
    utc_now,
)
from debttrack.parsers.sms.parser import MessageParser
from debttrack.parsers.sms.signatures import is_relevant
from debttrack.services.merger import ScanAggregate
from debttrack.services.message_source import MessageSource
from debttrack.services.projections import ProjectionSet, compute_projections as project_account

logger = logging.getLogger(__name__)

UNRECOGNIZED_CODES = ("BANK_NOT_RECOGNIZED", "CARD_NUMBER_NOT_FOUND")


@dataclass
class ScanProgress:
    """One progress report."""
    stage: str
    message: str
    percent: int
    processed: int = 0
    total: int = 0
    found_accounts: int = 0
    found_transactions: int = 0


ProgressCallback = Callable[[ScanProgress], None]


@dataclass
class ScanResult:
    """The aggregate of one scan plus its statistics."""
    aggregate: ScanAggregate
    stats: ScanStats
    scanned_at_ms: int
    saved: bool = False

    @property
    def accounts(self) -> List[CreditCardRecord]:
        return self.aggregate.account_list()

    @property
    def transactions(self) -> List[TransactionRecord]:
        return self.aggregate.transactions

    @property
    def statements(self) -> List[StatementRecord]:
        return self.aggregate.statements

    @property
    def reminders(self) -> List[ReminderRecord]:
        return self.aggregate.reminders

    @property
    def rewards(self) -> List[RewardRecord]:
        return self.aggregate.rewards

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accounts": [a.to_dict() for a in self.accounts],
            "transactions": [t.to_dict() for t in self.transactions],
            "statements": [s.to_dict() for s in self.statements],
            "reminders": [r.to_dict() for r in self.reminders],
            "rewards": [r.to_dict() for r in self.rewards],
            "stats": self.stats.to_dict(),
            "scanned_at_ms": self.scanned_at_ms,
        }


class ScanOrchestrator:
    """
    Runs scans over a message source.

    Usage:
        orchestrator = ScanOrchestrator(JsonFileMessageSource("sms.json"), store=LedgerStore("ledger.db"))
        result = orchestrator.run_scan(progress_callback=print)
        print(result.stats)
    """

    def __init__(
        self,
        source: MessageSource,
        store: Optional[LedgerStore] = None,
        parser: Optional[MessageParser] = None,
        config: Optional[ScanConfig] = None,
    ):
        self.source = source
        self.store = store
        self.config = config or (parser.config if parser else ScanConfig())
        self.parser = parser or MessageParser(self.config)

    def run_scan(
        self,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
        now: Optional[datetime] = None,
    ) -> ScanResult:
        """
        Run one scan.

        Returns:
            ScanResult with accounts, records and statistics

        Raises:
            MessageSourceError: If messages cannot be fetched
            StorageFailure: If the result cannot be saved (carries the result)
            ScanCancelled: If cancel_event was set; nothing is persisted
        """
        now = now or utc_now()
        stats = ScanStats()
        report = self._reporter(progress_callback)

        report(ScanProgress("fetching", "Reading messages", 0))
        records = self._fetch(now)
        stats.total_messages = len(records)
        report(ScanProgress("fetching", f"Read {len(records)} messages", 10, total=len(records)))

        messages = self._filter(records, stats, report, cancel_event)
        stats.relevant_messages = len(messages)
        # Newest message first; stable so equal timestamps keep batch order
        messages.sort(key=lambda m: m.received_at_ms, reverse=True)

        outcomes = self._extract(messages, now, stats, report, cancel_event)

        report(ScanProgress("merging", "Merging records", 90, total=len(messages)))
        aggregate = ScanAggregate(dedup_window_seconds=self.config.dedup_window_seconds)
        for index, outcome in enumerate(outcomes):
            self._check_cancel(cancel_event, index, len(outcomes))
            aggregate.add_outcome(outcome)
        aggregate.finalize(self.config.verification_threshold)

        stats.accounts = len(aggregate.accounts)
        stats.transactions = len(aggregate.transactions)
        stats.statements = len(aggregate.statements)
        stats.reminders = len(aggregate.reminders)
        stats.rewards = len(aggregate.rewards)
        stats.duplicates = aggregate.duplicates
        result = ScanResult(aggregate=aggregate, stats=stats, scanned_at_ms=datetime_to_ms(now))
        report(ScanProgress("merging", f"Found {stats.accounts} accounts", 95,
                            processed=len(messages), total=len(messages),
                            found_accounts=stats.accounts, found_transactions=stats.transactions))

        self._check_cancel(cancel_event, len(messages), len(messages))
        if self.store is not None:
            report(ScanProgress("saving", "Saving ledger", 95,
                                found_accounts=stats.accounts, found_transactions=stats.transactions))
            self.persist(result)

        report(ScanProgress("complete", "Scan complete", 100, processed=len(messages), total=len(messages),
                            found_accounts=stats.accounts, found_transactions=stats.transactions))
        logger.info(f"Scan complete: {stats}")
        return result

    def parse_one(self, raw: Any, now: Optional[datetime] = None) -> ParseOutcome:
        """Ad-hoc single message parse, no merge and no persistence."""
        return self.parser.parse_one(raw, now=now)

    def compute_projections(self, account: CreditCardRecord) -> Optional[ProjectionSet]:
        return project_account(account)

    def persist(self, result: ScanResult) -> ScanResult:
        """
        Hand a scan result to the ledger store.

        Can be called again with the result carried by a StorageFailure to
        retry the save without re-running extraction.
        """
        if self.store is None:
            raise StorageFailure("No ledger store configured", operation="persist", result=result)
        try:
            self.store.save_accounts(result.accounts, self.config.verification_threshold)
            self.store.save_transactions(result.transactions, self.config.dedup_window_seconds)
            self.store.save_statements(result.statements)
            self.store.save_reminders(result.reminders)
            self.store.save_rewards(result.rewards)
            self.store.save_last_scan_timestamp(result.scanned_at_ms)
        except StorageFailure as e:
            e.result = result
            logger.error(f"Failed to save scan result: {e.message}")
            raise
        result.saved = True
        return result

    def _reporter(self, callback: Optional[ProgressCallback]) -> ProgressCallback:
        def report(progress: ScanProgress) -> None:
            logger.debug(f"[{progress.stage}] {progress.percent}% {progress.message}")
            if callback is not None:
                callback(progress)
        return report

    def _check_cancel(self, cancel_event: Optional[threading.Event], processed: int, total: int) -> None:
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f"Scan cancelled after {processed} of {total}")
            raise ScanCancelled(processed=processed, total=total)

    def _fetch(self, now: datetime) -> List[Any]:
        min_received_at_ms = datetime_to_ms(now - timedelta(days=self.config.lookback_days))
        try:
            records = self.source.fetch_messages(
                min_received_at_ms=min_received_at_ms,
                max_count=self.config.max_messages,
            )
        except MessageSourceError:
            raise
        except Exception as e:
            raise MessageSourceError(f"Failed to read messages: {e}") from e
        return list(records or [])

    def _filter(
        self,
        records: List[Any],
        stats: ScanStats,
        report: ProgressCallback,
        cancel_event: Optional[threading.Event],
    ) -> List[RawMessage]:
        messages = []
        total = len(records)
        for index, record in enumerate(records):
            self._check_cancel(cancel_event, index, total)
            try:
                message = RawMessage.from_dict(record)
            except InvalidMessageFormat as e:
                stats.malformed += 1
                logger.warning(f"Dropped malformed message #{index}: {e.message}")
                continue
            if is_relevant(message.body):
                messages.append(message)
            report(ScanProgress("filtering", "Filtering banking messages", 10 + (20 * (index + 1)) // total,
                                processed=index + 1, total=total))
        return messages

    def _extract_one(self, message: RawMessage, now: datetime) -> Optional[ParseOutcome]:
        try:
            return self.parser.parse_one(message, now=now)
        except Exception:
            logger.exception(
                f"Extraction failed (stage: extract) for {message.sender}: "
                f"{message.preview(self.config.body_preview_chars)}"
            )
            return None

    def _extract(
        self,
        messages: List[RawMessage],
        now: datetime,
        stats: ScanStats,
        report: ProgressCallback,
        cancel_event: Optional[threading.Event],
    ) -> List[ParseOutcome]:
        total = len(messages)
        results: Dict[int, Optional[ParseOutcome]] = {}
        found = {"accounts": set(), "transactions": 0}

        def record(index: int, outcome: Optional[ParseOutcome]) -> None:
            results[index] = outcome
            if outcome is not None:
                found["accounts"].update(a.id for a in outcome.accounts)
                found["transactions"] += len(outcome.transactions)
            done = len(results)
            report(ScanProgress("extracting", f"Processed {done} of {total} messages",
                                30 + (60 * done) // total, processed=done, total=total,
                                found_accounts=len(found["accounts"]),
                                found_transactions=found["transactions"]))

        if self.config.max_workers > 1 and total > 1:
            executor = ThreadPoolExecutor(max_workers=self.config.max_workers)
            try:
                futures = {executor.submit(self._extract_one, m, now): i for i, m in enumerate(messages)}
                for future in as_completed(futures):
                    self._check_cancel(cancel_event, len(results), total)
                    record(futures[future], future.result())
            finally:
                executor.shutdown(wait=True, cancel_futures=True)
        else:
            for index, message in enumerate(messages):
                self._check_cancel(cancel_event, index, total)
                record(index, self._extract_one(message, now))

        outcomes = []
        for index in sorted(results):
            outcome = results[index]
            if outcome is None:
                stats.failed += 1
            elif outcome.error_code in UNRECOGNIZED_CODES:
                stats.unrecognized += 1
            elif outcome.success:
                outcomes.append(outcome)
        logger.info(
            f"Extracted {len(outcomes)} of {total} messages "
            f"({stats.unrecognized} unrecognized, {stats.failed} failed)"
        )
        return outcomes
