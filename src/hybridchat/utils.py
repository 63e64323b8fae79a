"""
HybridChat - Utility functions.

Provides timestamp, identifier, validation and formatting helpers.
"""

import logging
import re
import secrets
import threading
import time
from datetime import datetime

from .constants import MAX_USERNAME_LENGTH

logger = logging.getLogger(__name__)

_USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]+$")


class MonotonicClock:
    """
    Millisecond wall-clock timestamps that never go backwards.

    Two calls within the same millisecond, or across a backwards clock step,
    return the same value rather than a smaller one.
    """

    def __init__(self, source=time.time):
        self._source = source
        self._last = 0
        self._lock = threading.Lock()

    def now_millis(self) -> int:
        with self._lock:
            self._last = max(self._last, int(self._source() * 1000))
            return self._last


_default_clock = MonotonicClock()


def now_millis() -> int:
    """Process-wide monotonically non-decreasing timestamp in milliseconds."""
    return _default_clock.now_millis()


def generate_message_id(username: str, timestamp: int) -> str:
    """
    Generate a message ID.

    Format: {username}-{timestamp}-{10 lowercase hex characters}
    """
    return f"{username}-{timestamp}-{secrets.token_hex(5)}"


def validate_username(username: str) -> bool:
    """
    Validate a chat username.

    Args:
        username: Candidate username

    Returns:
        True if 1..MAX_USERNAME_LENGTH characters of letters, digits, '_', '.', '-'
    """
    if not isinstance(username, str) or not username:
        return False
    if len(username) > MAX_USERNAME_LENGTH:
        return False
    return bool(_USERNAME_PATTERN.match(username))


def format_millis(timestamp: int, format_str: str = "%H:%M:%S") -> str:
    """
    Format a millisecond timestamp in local time.

    Returns the number as a string if it cannot be converted.
    """
    try:
        return datetime.fromtimestamp(timestamp / 1000).strftime(format_str)
    except (OverflowError, OSError, ValueError, TypeError) as e:
        logger.debug(f"Failed to format timestamp {timestamp!r}: {e}")
        return str(timestamp)


def format_fingerprint(fingerprint: str) -> str:
    """Format a fingerprint for display with spaces every 4 characters."""
    return " ".join(fingerprint[i : i + 4] for i in range(0, len(fingerprint), 4))
