"""
HybridChat - Message data model.

A message payload is one of a closed set of variants:

- PlaintextPayload: sent unencrypted, visible to every reader
- EncryptedPayload: one CipherBundle per intended recipient
- LegacyEncryptedPayload: a single opaque ciphertext string from the
  direct-RSA client generation

Reads served by the message log replace an EncryptedPayload with a
projection for the reader: RecipientPayload carrying only the reader's own
bundle, or PlaceholderPayload when the reader is not a recipient.
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping, Optional, Union


@dataclass(frozen=True)
class CipherBundle:
    """
    One recipient's view of an encrypted message.

    Hybrid bundles carry the AES-GCM body (ciphertext || tag), the session
    key wrapped under the recipient's RSA key, and the nonce. Legacy direct
    bundles carry only the RSA ciphertext.
    """

    ciphertext: bytes
    wrapped_key: Optional[bytes] = None
    nonce: Optional[bytes] = None

    def __post_init__(self):
        if (self.wrapped_key is None) != (self.nonce is None):
            raise ValueError("wrapped_key and nonce must be both present or both absent")

    @property
    def is_legacy(self) -> bool:
        """True for the direct-RSA form (no wrapped key, no nonce)."""
        return self.wrapped_key is None


@dataclass(frozen=True)
class PlaintextPayload:
    text: str


@dataclass(frozen=True)
class EncryptedPayload:
    bundles: Mapping[str, CipherBundle] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "bundles", MappingProxyType(dict(self.bundles)))

    def recipients(self):
        return set(self.bundles)


@dataclass(frozen=True)
class LegacyEncryptedPayload:
    ciphertext: str


@dataclass(frozen=True)
class RecipientPayload:
    bundle: CipherBundle


@dataclass(frozen=True)
class PlaceholderPayload:
    pass


Payload = Union[
    PlaintextPayload,
    EncryptedPayload,
    LegacyEncryptedPayload,
    RecipientPayload,
    PlaceholderPayload,
]

ENCRYPTED_PAYLOADS = (EncryptedPayload, LegacyEncryptedPayload, RecipientPayload, PlaceholderPayload)


@dataclass(frozen=True)
class Message:
    """A chat message as stored by the message log. Immutable once built."""

    message_id: str
    sender: str
    payload: Payload
    timestamp: int

    @property
    def is_encrypted(self) -> bool:
        return isinstance(self.payload, ENCRYPTED_PAYLOADS)

    def project_for(self, username: Optional[str]) -> "Message":
        """
        Return the view of this message that ``username`` may see.

        Per-recipient mappings collapse to the reader's own bundle, or to a
        placeholder when the reader is not a recipient. All other payloads
        are returned unchanged.
        """
        if not isinstance(self.payload, EncryptedPayload):
            return self

        bundle = self.payload.bundles.get(username) if username else None
        if bundle is None:
            return replace(self, payload=PlaceholderPayload())
        return replace(self, payload=RecipientPayload(bundle))
