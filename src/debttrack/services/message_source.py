"""
Message sources.

A message source hands the orchestrator raw, loosely shaped message records
(dicts). Validation happens in the orchestrator so a malformed record is
dropped without failing the batch.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence

from debttrack.core.exceptions import MessageSourceError

logger = logging.getLogger(__name__)

TIMESTAMP_KEYS = ("receivedAtMs", "received_at_ms", "date")


class MessageSource(Protocol):
    """Bulk fetch of raw message records."""

    def fetch_messages(
        self,
        min_received_at_ms: Optional[int] = None,
        max_count: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        ...


def _timestamp(record: Any) -> Optional[int]:
    if not isinstance(record, dict):
        return None
    for key in TIMESTAMP_KEYS:
        if key in record:
            try:
                return int(str(record[key]).strip())
            except ValueError:
                return None
    return None


def _window(records: Sequence[Any], min_received_at_ms: Optional[int], max_count: Optional[int]) -> List[Any]:
    """Apply the lookback and count limits; unparseable records are passed through."""
    selected = []
    for record in records:
        ts = _timestamp(record)
        if min_received_at_ms is not None and ts is not None and ts < min_received_at_ms:
            continue
        selected.append(record)
    if max_count is not None:
        selected = selected[:max_count]
    return selected


class StaticMessageSource:
    """In-memory message source, mainly for tests and ad-hoc runs."""

    def __init__(self, records: Sequence[Any]):
        self.records = list(records)

    def fetch_messages(
        self,
        min_received_at_ms: Optional[int] = None,
        max_count: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        return _window(self.records, min_received_at_ms, max_count)


class JsonFileMessageSource:
    """
    Messages exported to a JSON file.

    The file holds an array of records, or an object with a "messages" array.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def fetch_messages(
        self,
        min_received_at_ms: Optional[int] = None,
        max_count: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise MessageSourceError(f"Failed to read messages from {self.path}: {e}")

        if isinstance(data, dict):
            data = data.get("messages")
        if not isinstance(data, list):
            raise MessageSourceError(f"Expected a JSON array of messages in {self.path}")

        logger.info(f"Loaded {len(data)} message records from {self.path}")
        return _window(data, min_received_at_ms, max_count)
