"""
Configuration management for symbi-progress.

Loads storage, logging and notification settings from environment variables.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file from project root
load_dotenv()

DB_PATH = os.getenv("SYMBI_DB_PATH")
LOG_LEVEL = os.getenv("SYMBI_LOG_LEVEL", "INFO")
NOTIFICATIONS_ENABLED = os.getenv("SYMBI_NOTIFICATIONS_ENABLED", "true").lower() == "true"
NOTIFICATION_DURATION_MS = os.getenv("SYMBI_NOTIFICATION_DURATION_MS")

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def get_db_path() -> Path:
    """Get the progress database path, honoring SYMBI_DB_PATH."""
    if DB_PATH:
        return Path(DB_PATH)
    return Path.home() / ".symbi" / "progress.db"


def get_notification_duration_ms() -> int | None:
    """
    Get the configured notification display duration.

    Returns:
        Duration in milliseconds, or None to use the rarity-based defaults
    """
    if not NOTIFICATION_DURATION_MS:
        return None
    return int(NOTIFICATION_DURATION_MS)


def configure_logging() -> None:
    """Apply LOG_LEVEL to the root logger."""
    logging.basicConfig(
        level=LOG_LEVEL.upper() if LOG_LEVEL.upper() in VALID_LOG_LEVELS else "INFO",
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def validate_config():
    """Validate that configuration values are usable."""
    problems = []

    if LOG_LEVEL.upper() not in VALID_LOG_LEVELS:
        problems.append(f"SYMBI_LOG_LEVEL (got {LOG_LEVEL!r})")

    if NOTIFICATION_DURATION_MS:
        try:
            if int(NOTIFICATION_DURATION_MS) <= 0:
                problems.append("SYMBI_NOTIFICATION_DURATION_MS (must be positive)")
        except ValueError:
            problems.append(
                f"SYMBI_NOTIFICATION_DURATION_MS (got {NOTIFICATION_DURATION_MS!r})"
            )

    if problems:
        raise ValueError(
            f"Invalid configuration: {', '.join(problems)}\n"
            "Please check your .env file or environment variables."
        )
