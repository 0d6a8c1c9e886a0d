"""
Ledger configuration from the environment.

Environment variables:
- AGRI_LEDGER_STATE: state directory (default: ./state)
- AGRI_LEDGER_AUTHORITY: protocol authority identity (required on first init)
- AGRI_LEDGER_JOURNAL: write the hash-chained audit journal (default: true)
- AGRI_LEDGER_LOG_LEVEL: logging level name (default: INFO)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional


def _opt(name: str, default: str) -> str:
    """Get optional environment variable with default."""
    return os.getenv(name, default)


def _opt_bool(name: str, default: bool) -> bool:
    """Parse boolean environment variable."""
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the ledger surfaces (CLI, REST, observability)."""

    STATE_DIR: str = "./state"
    AUTHORITY: Optional[str] = None
    JOURNAL_ENABLED: bool = True
    LOG_LEVEL: str = "INFO"

    @property
    def state_path(self) -> str:
        return os.path.join(self.STATE_DIR, "ledger_state.json")

    @property
    def journal_path(self) -> str:
        return os.path.join(self.STATE_DIR, "journal.jsonl")

    @staticmethod
    def load() -> Settings:
        """Load settings from environment variables."""
        return Settings(
            STATE_DIR=_opt("AGRI_LEDGER_STATE", "./state"),
            AUTHORITY=os.getenv("AGRI_LEDGER_AUTHORITY") or None,
            JOURNAL_ENABLED=_opt_bool("AGRI_LEDGER_JOURNAL", True),
            LOG_LEVEL=_opt("AGRI_LEDGER_LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
