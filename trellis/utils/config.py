"""Configuration utilities for loading environment variables."""

import logging
import os
from typing import Optional

from dotenv import load_dotenv

DEFAULT_MAX_ITERATIONS = 100
DEFAULT_SQLITE_PATH = "trellis_checkpoints.db"


def load_env(env_file: Optional[str] = None) -> None:
    """Load environment variables from .env file.

    Args:
        env_file: Optional path to .env file. If not specified, searches
                 for .env in current and parent directories.

    Example:
        >>> from trellis.utils.config import load_env
        >>> load_env()  # Loads from .env
        >>> get_max_iterations()
        100
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()


def get_config(key: str, default: Optional[str] = None) -> Optional[str]:
    """Get configuration value from environment.

    Args:
        key: Configuration key
        default: Default value if not found

    Returns:
        Configuration value or default
    """
    return os.getenv(key, default)


def get_max_iterations() -> int:
    """Iteration ceiling for one run (TRELLIS_MAX_ITERATIONS).

    Raises:
        ValueError: If the variable is set but is not a positive integer
    """
    raw = get_config("TRELLIS_MAX_ITERATIONS")
    if raw is None or raw == "":
        return DEFAULT_MAX_ITERATIONS
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"TRELLIS_MAX_ITERATIONS must be an integer, got: {raw!r}")
    if value < 1:
        raise ValueError("TRELLIS_MAX_ITERATIONS must be at least 1")
    return value


def get_sqlite_path() -> str:
    """Database file for ``SQLiteSaver`` (TRELLIS_SQLITE_PATH)."""
    return get_config("TRELLIS_SQLITE_PATH", DEFAULT_SQLITE_PATH)


def configure_logging(level: Optional[str] = None) -> None:
    """Set the log level of the ``trellis`` logger hierarchy.

    Args:
        level: Level name; defaults to TRELLIS_LOG_LEVEL or WARNING
    """
    level_name = (level or get_config("TRELLIS_LOG_LEVEL", "WARNING")).upper()
    logger = logging.getLogger("trellis")
    logger.setLevel(level_name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        logger.addHandler(handler)
