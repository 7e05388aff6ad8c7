"""
SQLite persistence for the credit card ledger.

LedgerStore keeps long-term history across scans. Accounts are merged with
the same newest-wins-per-field rule as a scan; transactions are deduplicated
against stored rows with the same time window.

Thread Safety Notes:
- Uses check_same_thread=False so a scan running in a worker can save
- WAL mode is enabled for file databases
- Use the transaction() context manager for atomic operations
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from debttrack.core.exceptions import StorageFailure
from debttrack.parsers.sms.models import (
    CreditCardRecord,
    ReminderRecord,
    RewardRecord,
    StatementRecord,
    TransactionRecord,
    utc_now,
)
from debttrack.parsers.sms.scoring import DEFAULT_VERIFICATION_THRESHOLD
from debttrack.services.merger import DEFAULT_DEDUP_WINDOW_SECONDS, merge_accounts, merge_transactions

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS credit_cards (
    id TEXT PRIMARY KEY,
    bank_name TEXT NOT NULL,
    last_four_digits TEXT NOT NULL CHECK(length(last_four_digits) = 4),
    card_type TEXT,
    credit_limit DECIMAL(15,2),
    current_balance DECIMAL(15,2),
    available_credit DECIMAL(15,2),
    total_due DECIMAL(15,2),
    minimum_due DECIMAL(15,2),
    due_date DATE,
    statement_date DATE,
    previous_balance DECIMAL(15,2),
    interest_charged DECIMAL(15,2),
    late_fee DECIMAL(15,2),
    estimated_apr DECIMAL(6,2),
    confidence INTEGER CHECK(confidence BETWEEN 0 AND 100),
    needs_verification BOOLEAN,
    last_updated TIMESTAMP,
    last_message_at_ms INTEGER,
    field_sources TEXT
);

CREATE INDEX IF NOT EXISTS idx_cards_bank ON credit_cards(bank_name);

CREATE TABLE IF NOT EXISTS card_transactions (
    id TEXT PRIMARY KEY,
    card_id TEXT NOT NULL,
    amount DECIMAL(15,2) NOT NULL,
    type TEXT NOT NULL,
    merchant TEXT,
    category TEXT,
    date DATE NOT NULL,
    time TEXT,
    occurred_at TIMESTAMP NOT NULL,
    received_at_ms INTEGER,
    declined BOOLEAN DEFAULT FALSE,
    description TEXT
);

CREATE INDEX IF NOT EXISTS idx_txn_card ON card_transactions(card_id);
CREATE INDEX IF NOT EXISTS idx_txn_date ON card_transactions(date);

CREATE TABLE IF NOT EXISTS card_statements (
    id TEXT PRIMARY KEY,
    card_id TEXT NOT NULL,
    statement_date DATE NOT NULL,
    due_date DATE,
    total_due DECIMAL(15,2),
    minimum_due DECIMAL(15,2),
    previous_balance DECIMAL(15,2),
    payments_received DECIMAL(15,2),
    new_charges DECIMAL(15,2),
    interest_charged DECIMAL(15,2),
    late_fees DECIMAL(15,2),
    received_at_ms INTEGER,
    UNIQUE(card_id, statement_date)
);

CREATE TABLE IF NOT EXISTS card_reminders (
    id TEXT PRIMARY KEY,
    card_id TEXT NOT NULL,
    amount DECIMAL(15,2) NOT NULL,
    minimum_due DECIMAL(15,2),
    due_date DATE,
    description TEXT,
    received_at_ms INTEGER
);

CREATE TABLE IF NOT EXISTS card_rewards (
    id TEXT PRIMARY KEY,
    card_id TEXT NOT NULL,
    amount DECIMAL(15,2) NOT NULL,
    date DATE NOT NULL,
    description TEXT,
    received_at_ms INTEGER
);

CREATE TABLE IF NOT EXISTS scan_metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

CHILD_TABLES = ("card_transactions", "card_statements", "card_reminders", "card_rewards")


class LedgerStore:
    """
    Long-term store for accounts and their records.

    Usage:
        with LedgerStore("ledger.db") as store:
            store.save_accounts(result.accounts)
            store.save_transactions(result.transactions)
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self.conn: Optional[sqlite3.Connection] = None

    def connect(self) -> None:
        """Connect to database and initialize schema."""
        try:
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            if self.db_path != ":memory:":
                self.conn.execute("PRAGMA journal_mode=WAL")
            self.conn.executescript(SCHEMA_SQL)
            self.conn.commit()
        except sqlite3.Error as e:
            raise StorageFailure(f"Failed to open ledger database {self.db_path}: {e}", operation="connect")
        logger.debug(f"Opened ledger database {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self) -> "LedgerStore":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def connection(self) -> sqlite3.Connection:
        if self.conn is None:
            self.connect()
        return self.conn

    @contextmanager
    def transaction(self, operation: str):
        """
        Atomic unit of work; rolls back and raises StorageFailure on error.
        """
        conn = self.connection
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageFailure(f"{operation} failed: {e}", operation=operation) from e

    def _query(self, sql: str, params: tuple = (), operation: str = "query") -> List[Dict[str, Any]]:
        try:
            cursor = self.connection.execute(sql, params)
            return [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise StorageFailure(f"{operation} failed: {e}", operation=operation) from e

    @staticmethod
    def _insert(conn: sqlite3.Connection, table: str, data: Dict[str, Any], conflict: str = "IGNORE") -> int:
        columns = list(data)
        sql = (
            f"INSERT OR {conflict} INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )
        return conn.execute(sql, [data[c] for c in columns]).rowcount

    # Loading

    def load_accounts(self) -> List[CreditCardRecord]:
        rows = self._query("SELECT * FROM credit_cards ORDER BY bank_name, last_four_digits",
                           operation="load_accounts")
        accounts = []
        for row in rows:
            row["field_sources"] = json.loads(row["field_sources"] or "{}")
            accounts.append(CreditCardRecord.from_dict(row))
        return accounts

    def load_transactions(self, card_id: Optional[str] = None) -> List[TransactionRecord]:
        sql = "SELECT * FROM card_transactions"
        params: tuple = ()
        if card_id:
            sql += " WHERE card_id = ?"
            params = (card_id,)
        sql += " ORDER BY occurred_at DESC"
        return [TransactionRecord.from_dict(row) for row in self._query(sql, params, "load_transactions")]

    def load_statements(self) -> List[StatementRecord]:
        rows = self._query("SELECT * FROM card_statements ORDER BY statement_date DESC",
                           operation="load_statements")
        return [StatementRecord.from_dict(row) for row in rows]

    def load_reminders(self) -> List[ReminderRecord]:
        rows = self._query("SELECT * FROM card_reminders ORDER BY due_date", operation="load_reminders")
        return [ReminderRecord.from_dict(row) for row in rows]

    def load_rewards(self) -> List[RewardRecord]:
        rows = self._query("SELECT * FROM card_rewards ORDER BY date DESC", operation="load_rewards")
        return [RewardRecord.from_dict(row) for row in rows]

    # Saving

    def save_accounts(
        self,
        records: Iterable[CreditCardRecord],
        verification_threshold: int = DEFAULT_VERIFICATION_THRESHOLD,
    ) -> List[CreditCardRecord]:
        """
        Merge accounts into the stored ones (newest wins per field).

        Returns:
            The merged accounts as stored
        """
        merged = merge_accounts(self.load_accounts(), list(records), verification_threshold)
        with self.transaction("save_accounts") as conn:
            for account in merged:
                data = account.to_dict()
                data["field_sources"] = json.dumps(data["field_sources"], sort_keys=True)
                self._insert(conn, "credit_cards", data, conflict="REPLACE")
        logger.info(f"Saved {len(merged)} accounts")
        return merged

    def save_transactions(
        self,
        records: Iterable[TransactionRecord],
        window_seconds: int = DEFAULT_DEDUP_WINDOW_SECONDS,
    ) -> int:
        """
        Insert transactions that are not duplicates of stored ones.

        Returns:
            Number of transactions inserted
        """
        accepted, duplicates = merge_transactions(self.load_transactions(), list(records), window_seconds)
        inserted = 0
        with self.transaction("save_transactions") as conn:
            for txn in accepted:
                inserted += self._insert(conn, "card_transactions", txn.to_dict())
        logger.info(f"Saved {inserted} transactions ({duplicates} duplicates skipped)")
        return inserted

    def _save_simple(self, table: str, records: Iterable[Any], operation: str) -> int:
        inserted = 0
        with self.transaction(operation) as conn:
            for record in records:
                inserted += self._insert(conn, table, record.to_dict())
        return inserted

    def save_statements(self, records: Iterable[StatementRecord]) -> int:
        return self._save_simple("card_statements", records, "save_statements")

    def save_reminders(self, records: Iterable[ReminderRecord]) -> int:
        return self._save_simple("card_reminders", records, "save_reminders")

    def save_rewards(self, records: Iterable[RewardRecord]) -> int:
        return self._save_simple("card_rewards", records, "save_rewards")

    def save_last_scan_timestamp(self, timestamp_ms: int) -> None:
        with self.transaction("save_last_scan_timestamp") as conn:
            conn.execute(
                "INSERT OR REPLACE INTO scan_metadata (key, value) VALUES ('last_scan_ms', ?)",
                (str(int(timestamp_ms)),),
            )

    def get_last_scan_timestamp(self) -> Optional[int]:
        rows = self._query("SELECT value FROM scan_metadata WHERE key = 'last_scan_ms'",
                           operation="get_last_scan_timestamp")
        return int(rows[0]["value"]) if rows else None

    # Maintenance

    def delete_account(self, account_id: str) -> bool:
        """
        Delete an account and its records. Explicit user action only; scans
        never delete accounts.
        """
        with self.transaction("delete_account") as conn:
            for table in CHILD_TABLES:
                conn.execute(f"DELETE FROM {table} WHERE card_id = ?", (account_id,))
            deleted = conn.execute("DELETE FROM credit_cards WHERE id = ?", (account_id,)).rowcount
        if deleted:
            logger.info(f"Deleted account {account_id}")
        return bool(deleted)

    def clear_all_data(self) -> None:
        with self.transaction("clear_all_data") as conn:
            for table in CHILD_TABLES + ("credit_cards", "scan_metadata"):
                conn.execute(f"DELETE FROM {table}")

    def get_storage_stats(self) -> Dict[str, Any]:
        """Record counts, total debt, total credit limit and utilization %."""
        accounts = self.load_accounts()
        counts = {}
        for table in CHILD_TABLES:
            counts[table] = self._query(f"SELECT COUNT(*) AS n FROM {table}", operation="stats")[0]["n"]

        total_debt = sum((a.outstanding for a in accounts if a.outstanding is not None), Decimal(0))
        total_limit = sum((a.credit_limit for a in accounts if a.credit_limit is not None), Decimal(0))
        utilization = (total_debt / total_limit * 100).quantize(Decimal("0.01")) if total_limit else Decimal(0)

        return {
            "accounts": len(accounts),
            "transactions": counts["card_transactions"],
            "statements": counts["card_statements"],
            "reminders": counts["card_reminders"],
            "rewards": counts["card_rewards"],
            "total_debt": total_debt,
            "total_credit_limit": total_limit,
            "utilization_percent": utilization,
            "last_scan_ms": self.get_last_scan_timestamp(),
        }

    def export_data(self) -> Dict[str, Any]:
        """All stored records as a JSON-ready dict."""
        return {
            "version": EXPORT_VERSION,
            "exported_at": utc_now().isoformat(),
            "accounts": [a.to_dict() for a in self.load_accounts()],
            "transactions": [t.to_dict() for t in self.load_transactions()],
            "statements": [s.to_dict() for s in self.load_statements()],
            "reminders": [r.to_dict() for r in self.load_reminders()],
            "rewards": [r.to_dict() for r in self.load_rewards()],
            "last_scan_ms": self.get_last_scan_timestamp(),
        }

    def import_data(self, data: Dict[str, Any]) -> Dict[str, int]:
        """Merge an export_data() payload into the store."""
        accounts = [CreditCardRecord.from_dict(a) for a in data.get("accounts", [])]
        self.save_accounts(accounts)
        return {
            "accounts": len(accounts),
            "transactions": self.save_transactions(
                TransactionRecord.from_dict(t) for t in data.get("transactions", [])
            ),
            "statements": self.save_statements(StatementRecord.from_dict(s) for s in data.get("statements", [])),
            "reminders": self.save_reminders(ReminderRecord.from_dict(r) for r in data.get("reminders", [])),
            "rewards": self.save_rewards(RewardRecord.from_dict(r) for r in data.get("rewards", [])),
        }
