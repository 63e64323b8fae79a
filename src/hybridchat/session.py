"""
HybridChat - Client-side chat session.

Holds the local key pair and the latest view of the room (users, public
keys, poll cursor) and turns user input into send requests and poll
responses into displayable entries.

Outgoing policy:
- Other participants with known keys: hybrid-encrypt once for all of them
- Nobody else in the room: send plaintext
- Keys known but no bundle produced: refuse to send (never fall back to
  plaintext)

Incoming policy:
- Each message is decoded and decrypted on its own; a failure turns that one
  message into an "undecryptable" entry and never aborts the batch
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .constants import (
    ENCRYPTED_PLACEHOLDER,
    MAX_MESSAGE_LENGTH,
    UI_NOTIFICATION_TIMEOUT,
    UNDECRYPTABLE_PLACEHOLDER,
)
from .errors import (
    CryptoError,
    EncryptionPartialFailure,
    HybridChatError,
    MessageTooLargeError,
    ProtocolError,
)
from .fanout import FanoutEncoder
from .keys import KeyManager, KeyPair
from .message import PlaceholderPayload, PlaintextPayload
from .protocol import bundle_to_wire, message_from_poll_entry
from .utils import generate_message_id, now_millis, validate_username

logger = logging.getLogger(__name__)


class EntryStatus:
    """Display status of a chat entry."""

    OK = "ok"
    NOT_FOR_ME = "not_for_me"
    UNDECRYPTABLE = "undecryptable"


@dataclass
class ChatEntry:
    """A message ready for display."""

    message_id: str
    sender: str
    text: str
    timestamp: int
    encrypted: bool
    status: str = EntryStatus.OK


@dataclass
class Notice:
    """A short-lived, dismissible notice."""

    notice_id: int
    text: str
    level: str
    expires_at: float


class NoticeBoard:
    """Transient error and info notices that expire after a timeout."""

    def __init__(self, timeout: float = UI_NOTIFICATION_TIMEOUT, clock: Callable[[], float] = time.time):
        self.timeout = timeout
        self.clock = clock
        self._notices: List[Notice] = []
        self._next_id = 1

    def post(self, text: str, level: str = "error") -> Notice:
        notice = Notice(self._next_id, text, level, self.clock() + self.timeout)
        self._next_id += 1
        self._notices.append(notice)
        return notice

    def dismiss(self, notice_id: int) -> bool:
        before = len(self._notices)
        self._notices = [n for n in self._notices if n.notice_id != notice_id]
        return len(self._notices) != before

    def active(self) -> List[Notice]:
        now = self.clock()
        self._notices = [n for n in self._notices if n.expires_at > now]
        return list(self._notices)


@dataclass
class RoomState:
    """Latest view of the room as reported by the server."""

    users: List[str] = field(default_factory=list)
    public_keys: Dict[str, str] = field(default_factory=dict)


class ChatSession:
    """
    One user's end of the chat.

    Attributes:
        username: Local participant name
        key_pair: Local RSA key pair (None until start())
        room: Users and public keys from the last join or poll
        cursor: Timestamp of the newest message seen
        history: Entries shown so far, oldest first
        notices: Transient notices for failed sends and reads
    """

    def __init__(
        self,
        username: str,
        key_manager: Optional[KeyManager] = None,
        encoder: Optional[FanoutEncoder] = None,
        max_message_length: int = MAX_MESSAGE_LENGTH,
    ):
        if not validate_username(username):
            raise ValueError(f"Invalid username: {username!r}")

        self.username = username
        self.key_manager = key_manager or KeyManager()
        self.encoder = encoder or FanoutEncoder()
        self.max_message_length = max_message_length

        self.key_pair: Optional[KeyPair] = None
        self.encoded_public_key: Optional[str] = None
        self.room = RoomState()
        self.cursor = 0
        self.history: List[ChatEntry] = []
        self.notices = NoticeBoard()
        self._seen_ids = set()

    def start(self) -> str:
        """Generate the session key pair and return the encoded public key."""
        self.key_pair = self.key_manager.generate()
        self.encoded_public_key = KeyManager.export_public(self.key_pair)
        logger.info(
            f"Session key for {self.username}: "
            f"{KeyManager.fingerprint(self.encoded_public_key)[:16]}"
        )
        return self.encoded_public_key

    async def start_async(self) -> str:
        return await asyncio.to_thread(self.start)

    def join_params(self) -> Dict[str, str]:
        if self.encoded_public_key is None:
            raise RuntimeError("Session not started")
        return {"username": self.username, "publicKey": self.encoded_public_key}

    def apply_presence(self, response: Dict[str, Any]) -> None:
        """Update users and keys from a join or poll response."""
        users = response.get("users")
        keys = response.get("publicKeys")

        if isinstance(users, list):
            self.room.users = [u for u in users if isinstance(u, str)]
        if isinstance(keys, dict):
            self.room.public_keys = {
                name: key
                for name, key in keys.items()
                if isinstance(key, str) and name != self.username
            }

    def joined(self, response: Dict[str, Any]) -> None:
        """Record a successful join; only messages sent from now on are fetched."""
        self.apply_presence(response)
        # Messages stamped in the join millisecond are still newer than the cursor
        self.cursor = max(self.cursor, now_millis() - 1)

    def is_present(self, response: Dict[str, Any]) -> bool:
        """False when the server no longer lists this user (evicted, must rejoin)."""
        users = response.get("users")
        return not isinstance(users, list) or self.username in users

    def recipient_keys(self) -> Dict[str, str]:
        """Encoded keys of every other active participant."""
        active = set(self.room.users)
        return {
            name: key
            for name, key in self.room.public_keys.items()
            if name != self.username and name in active
        }

    def compose(self, text: str) -> Dict[str, Any]:
        """
        Build send-request params for one outgoing message.

        Raises:
            ValueError: If text is empty
            MessageTooLargeError: If text exceeds max_message_length characters
            EncryptionPartialFailure: If recipients exist but none could be encrypted for
        """
        if not text or not text.strip():
            raise ValueError("Message is empty")

        if len(text) > self.max_message_length:
            error = MessageTooLargeError(
                f"Message too long (max {self.max_message_length} characters)",
                {"length": len(text), "max_length": self.max_message_length},
            )
            self.notices.post(error.message)
            raise error

        recipients = self.recipient_keys()
        timestamp = now_millis()
        message_id = generate_message_id(self.username, timestamp)

        if recipients:
            bundles = self.encoder.encrypt_for_recipients(text, recipients)
            if not bundles:
                error = EncryptionPartialFailure(failed=sorted(recipients))
                self.notices.post("Encryption failed, message not sent")
                raise error

            skipped = sorted(set(recipients) - set(bundles))
            if skipped:
                self.notices.post(f"Could not encrypt for: {', '.join(skipped)}", level="warning")

            content: Any = {name: bundle_to_wire(bundle) for name, bundle in bundles.items()}
            encrypted = True
        else:
            content = text
            encrypted = False

        self._seen_ids.add(message_id)
        self.history.append(
            ChatEntry(message_id, self.username, text, timestamp, encrypted)
        )

        return {
            "id": message_id,
            "sender": self.username,
            "content": content,
            "encrypted": encrypted,
            "timestamp": str(timestamp),
        }

    async def compose_async(self, text: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self.compose, text)

    def ingest_poll(self, response: Dict[str, Any]) -> List[ChatEntry]:
        """
        Apply a poll response and return the new entries to display.

        Own messages already shown locally are skipped; the cursor advances
        to the newest timestamp in the batch.
        """
        self.apply_presence(response)

        entries = []
        for raw in response.get("messages") or []:
            entry = self._ingest_one(raw)
            if entry is not None:
                entries.append(entry)

        self.history.extend(entries)
        return entries

    async def ingest_poll_async(self, response: Dict[str, Any]) -> List[ChatEntry]:
        return await asyncio.to_thread(self.ingest_poll, response)

    def _ingest_one(self, raw: Any) -> Optional[ChatEntry]:
        raw_id = raw.get("id") if isinstance(raw, dict) else None
        if not isinstance(raw_id, str):
            raw_id = None
        if raw_id is not None and raw_id in self._seen_ids:
            self._advance_cursor(raw)
            return None

        try:
            message = message_from_poll_entry(raw)
        except ProtocolError as e:
            logger.warning(f"Skipping malformed message entry: {e}")
            return None
        except CryptoError as e:
            logger.warning(f"Undecodable message {raw_id}: {e}")
            self._advance_cursor(raw)
            if raw_id is not None:
                self._seen_ids.add(raw_id)
            self.notices.post("Failed to decrypt message")
            return ChatEntry(
                str(raw_id), str(raw.get("sender")), UNDECRYPTABLE_PLACEHOLDER,
                self._timestamp_of(raw), True, EntryStatus.UNDECRYPTABLE,
            )

        self.cursor = max(self.cursor, message.timestamp)
        self._seen_ids.add(message.message_id)

        payload = message.payload
        if isinstance(payload, PlaintextPayload):
            return ChatEntry(
                message.message_id, message.sender, payload.text, message.timestamp, False
            )

        if isinstance(payload, PlaceholderPayload):
            return ChatEntry(
                message.message_id, message.sender, ENCRYPTED_PLACEHOLDER,
                message.timestamp, True, EntryStatus.NOT_FOR_ME,
            )

        try:
            text = self.encoder.decrypt_own(payload.bundle, self.key_pair.private_key)
        except HybridChatError as e:
            logger.warning(f"Failed to decrypt message {message.message_id} from {message.sender}: {e}")
            self.notices.post("Failed to decrypt message")
            return ChatEntry(
                message.message_id, message.sender, UNDECRYPTABLE_PLACEHOLDER,
                message.timestamp, True, EntryStatus.UNDECRYPTABLE,
            )

        return ChatEntry(message.message_id, message.sender, text, message.timestamp, True)

    def _advance_cursor(self, raw: Dict[str, Any]) -> None:
        self.cursor = max(self.cursor, self._timestamp_of(raw))

    @staticmethod
    def _timestamp_of(raw: Dict[str, Any]) -> int:
        try:
            return int(raw.get("timestamp"))
        except (TypeError, ValueError):
            return 0
