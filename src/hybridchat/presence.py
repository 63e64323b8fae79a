"""
HybridChat - Presence registry.

Tracks which usernames are active, their encoded public keys and when each
was last heard from. Entries silent for longer than the TTL are evicted
lazily, before every read that reports the active set, so staleness is
bounded by the polling interval rather than by a background timer.

Thread safety:
- All state is guarded by a threading.Lock
- snapshot() evicts and reads under one acquisition, so every caller within
  the same instant sees the same active set
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set

from .constants import PRESENCE_TTL

logger = logging.getLogger(__name__)


@dataclass
class PublicKeyRecord:
    """One active participant."""

    username: str
    public_key: str
    last_seen: float


@dataclass(frozen=True)
class PresenceSnapshot:
    """Active users and their keys as seen at one instant."""

    users: List[str]
    public_keys: Dict[str, str]


class PresenceRegistry:
    """
    In-memory registry of active participants.

    Attributes:
        ttl: Seconds of silence after which a participant is evicted
        clock: Callable returning the current time in seconds
    """

    def __init__(self, ttl: float = PRESENCE_TTL, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self.clock = clock
        self._records: Dict[str, PublicKeyRecord] = {}
        self._lock = threading.Lock()

    def join(self, username: str, encoded_public_key: str) -> None:
        """Insert or replace the record for username and refresh its last-seen time."""
        with self._lock:
            now = self.clock()
            existing = self._records.get(username)
            last_seen = max(now, existing.last_seen) if existing else now
            self._records[username] = PublicKeyRecord(username, encoded_public_key, last_seen)

        if existing is None:
            logger.info(f"{username} joined")
        elif existing.public_key != encoded_public_key:
            logger.info(f"{username} rejoined with a new public key")

    def touch(self, username: str) -> None:
        """Refresh last-seen for a registered username; unknown names are ignored."""
        with self._lock:
            record = self._records.get(username)
            if record is not None:
                record.last_seen = max(record.last_seen, self.clock())

    def evict_expired(self, now: Optional[float] = None, ttl: Optional[float] = None) -> List[str]:
        """
        Remove every record whose silence exceeds ttl.

        Args:
            now: Current time in seconds (defaults to the registry clock)
            ttl: Maximum silence in seconds (defaults to the registry TTL)

        Returns:
            Usernames that were evicted
        """
        with self._lock:
            return self._evict_locked(now, ttl)

    def _evict_locked(self, now: Optional[float], ttl: Optional[float]) -> List[str]:
        now = self.clock() if now is None else now
        ttl = self.ttl if ttl is None else ttl

        expired = [name for name, rec in self._records.items() if now - rec.last_seen > ttl]
        for name in expired:
            del self._records[name]

        if expired:
            logger.info(f"Evicted inactive users: {', '.join(expired)}")
        return expired

    def active_usernames(self) -> Set[str]:
        with self._lock:
            self._evict_locked(None, None)
            return set(self._records)

    def public_key_of(self, username: str) -> Optional[str]:
        with self._lock:
            self._evict_locked(None, None)
            record = self._records.get(username)
            return record.public_key if record else None

    def all_public_keys_except(self, username: Optional[str]) -> Dict[str, str]:
        with self._lock:
            self._evict_locked(None, None)
            return self._keys_except_locked(username)

    def _keys_except_locked(self, username: Optional[str]) -> Dict[str, str]:
        return {
            name: rec.public_key for name, rec in self._records.items() if name != username
        }

    def snapshot(self, exclude: Optional[str] = None) -> PresenceSnapshot:
        """
        Evict expired records, then read users and keys, atomically.

        Args:
            exclude: Username whose own key is left out of public_keys

        Returns:
            PresenceSnapshot with every active user and the keys of all but exclude
        """
        with self._lock:
            self._evict_locked(None, None)
            return PresenceSnapshot(
                users=list(self._records),
                public_keys=self._keys_except_locked(exclude),
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, username: str) -> bool:
        with self._lock:
            return username in self._records
