"""
Scan configuration.

Loaded from a JSON file when one is given, otherwise the built-in defaults
apply. The per-bank APR table is a coarse default, not a rate read from the
messages; override it per bank with ``apr_overrides``.
"""

import json
import logging
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Any, Dict, Optional

from debttrack.core.exceptions import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class ScanConfig:
    """Tunable parameters of the extraction engine and the scan orchestrator."""

    default_apr_percent: float = 40.0
    apr_overrides: Dict[str, float] = field(default_factory=dict)
    dedup_window_seconds: int = 120
    verification_threshold: int = 60
    lookback_days: int = 730
    max_messages: int = 3000
    max_workers: int = 1
    body_preview_chars: int = 100

    def __post_init__(self):
        if self.dedup_window_seconds <= 0:
            raise ConfigError("dedup_window_seconds must be positive")
        if not 0 <= self.verification_threshold <= 100:
            raise ConfigError("verification_threshold must be within 0-100")
        if self.max_workers < 1:
            raise ConfigError("max_workers must be at least 1")
        if self.default_apr_percent < 0:
            raise ConfigError("default_apr_percent must not be negative")

    def apr_for(self, bank_name: Optional[str], signature_rate: Optional[float] = None) -> float:
        """
        Estimated APR for a bank.

        Priority: user override, then the signature's rate, then the default.
        """
        if bank_name and bank_name in self.apr_overrides:
            return float(self.apr_overrides[bank_name])
        if signature_rate is not None:
            return float(signature_rate)
        return float(self.default_apr_percent)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScanConfig":
        """Create config from dictionary, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        return cls(**data)

    @classmethod
    def from_json(cls, json_path: str) -> "ScanConfig":
        """Load configuration from JSON file."""
        path = Path(json_path)
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Failed to load config from {path}: {e}")
        if not isinstance(data, dict):
            raise ConfigError(f"Config root must be an object: {path}")
        logger.debug(f"Loaded scan config from {path}")
        return cls.from_dict(data)

    def to_json(self, json_path: str) -> None:
        """Save configuration to JSON file."""
        with open(json_path, "w", encoding="utf-8") as f:
            json.dump(asdict(self), f, indent=4)
