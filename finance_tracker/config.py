"""Configuration management for the finance tracker.

This module centralizes all configuration values including paths,
thresholds, display defaults and environment variable overrides.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

# Base project root - assumes this file is in finance_tracker/
_PROJECT_ROOT = Path(__file__).parent.parent.resolve()

# Data directories
DATA_DIR = Path(os.getenv("FINTRACK_DATA_DIR", _PROJECT_ROOT / "data"))

# Database
DB_PATH = Path(
    os.getenv("FINTRACK_DB_PATH", DATA_DIR / "finance.db")
).resolve()

# Share of the limit above which a budget needs attention
ATTENTION_RATIO = float(os.getenv("FINTRACK_ATTENTION_RATIO", "0.8"))

# Display
CURRENCY_SYMBOL = os.getenv("FINTRACK_CURRENCY_SYMBOL", "R$")
UNCATEGORIZED_LABEL = os.getenv("FINTRACK_UNCATEGORIZED_LABEL", "Uncategorized")

# Notifications
DEFAULT_UPCOMING_DAYS = int(os.getenv("FINTRACK_UPCOMING_DAYS", "3"))

LOG_LEVEL = os.getenv("FINTRACK_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def ensure_data_directories() -> None:
    """Create all required data directories if they don't exist."""
    for directory in [DATA_DIR, DB_PATH.parent]:
        directory.mkdir(parents=True, exist_ok=True)


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for scripts and interactive use."""
    logging.basicConfig(level=getattr(logging, level or LOG_LEVEL, logging.INFO), format=LOG_FORMAT)
