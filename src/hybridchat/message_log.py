"""
HybridChat - Bounded in-memory message log.

Messages are appended in arrival order and only the newest ``capacity``
entries are kept. Readers ask for everything newer than a timestamp cursor
and receive each encrypted message projected for themselves.

Thread safety:
- append and its truncation happen under one threading.Lock, so no reader
  ever observes more than ``capacity`` entries
"""

import logging
import threading
from collections import deque
from typing import Deque, List, Optional

from .constants import MESSAGE_LOG_CAPACITY
from .message import Message

logger = logging.getLogger(__name__)


class MessageLog:
    """Append-only, capacity-bounded sequence of messages."""

    def __init__(self, capacity: int = MESSAGE_LOG_CAPACITY):
        """
        Initialize message log.

        Args:
            capacity: Maximum number of messages retained
        """
        if capacity < 1:
            raise ValueError(f"Capacity must be positive, got {capacity}")

        self.capacity = capacity
        self._messages: Deque[Message] = deque()
        self._lock = threading.Lock()

    def append(self, message: Message) -> None:
        """Append a message, dropping the oldest entries beyond capacity."""
        with self._lock:
            self._messages.append(message)
            dropped = 0
            while len(self._messages) > self.capacity:
                self._messages.popleft()
                dropped += 1

        if dropped:
            logger.debug(f"Message log full, dropped {dropped} oldest message(s)")

    def since(self, timestamp: int, requesting_username: Optional[str] = None) -> List[Message]:
        """
        Messages newer than timestamp, in insertion order.

        Encrypted per-recipient messages are projected for
        requesting_username: its own bundle if it is a recipient, otherwise a
        placeholder. Other recipients' bundles are never returned.

        Args:
            timestamp: Exclusive lower bound
            requesting_username: Reader the results are projected for

        Returns:
            List of (projected) messages
        """
        with self._lock:
            matching = [msg for msg in self._messages if msg.timestamp > timestamp]

        return [msg.project_for(requesting_username) for msg in matching]

    def latest_timestamp(self) -> int:
        """Timestamp of the newest message, or 0 if the log is empty."""
        with self._lock:
            return self._messages[-1].timestamp if self._messages else 0

    def clear(self) -> None:
        with self._lock:
            self._messages.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)
