"""
Logging utilities for the quick-entry service.

Provides standardized logger configuration following privacy rules.

RULES:
- NEVER log Supabase Auth tokens, API keys, or secrets
- NEVER log entered amounts above DEBUG level
- NEVER log queued mutation variables (they carry the full transaction payload)

Acceptable logging:
- High-level events (e.g., "Offline queue drain started", "Transaction committed")
- Identifiers (transaction id, queued mutation id, session id)
- Error codes and sanitized error messages
"""

import logging
from typing import Optional

from quickentry.config import settings


def _default_level() -> int:
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    return level if isinstance(level, int) else logging.INFO


def get_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """
    Get a configured logger for the specified module.

    Args:
        name: Module name (typically __name__)
        level: Optional logging level (defaults to settings.LOG_LEVEL)

    Returns:
        Configured logger instance

    Usage:
        >>> from quickentry.utils.logging import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("High-level event occurred")
    """
    logger = logging.getLogger(name)

    if level is None:
        level = _default_level()

    logger.setLevel(level)

    # Add handler if not already configured (avoid duplicate handlers)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
