"""
HybridChat - End-to-end encrypted multi-party chat

Messages are encrypted once with AES-256-GCM and the session key is wrapped
with RSA-OAEP for each participant. The relay server stores and forwards
opaque bundles and hands each reader only its own.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .cipher import HybridCipher
from .config import Config
from .constants import APP_NAME, VERSION
from .errors import (
    ConfigError,
    CryptoError,
    DecryptionError,
    EncryptionPartialFailure,
    ErrorCode,
    HybridChatError,
    IntegrityError,
    InvalidKeyEncodingError,
    KeyGenerationError,
    MessageTooLargeError,
    ProtocolError,
    UnwrapError,
)
from .fanout import FanoutEncoder
from .keys import KeyManager, KeyPair
from .message_log import MessageLog
from .presence import PresenceRegistry

__all__ = [
    "APP_NAME",
    "VERSION",
    "Config",
    "ConfigError",
    "CryptoError",
    "DecryptionError",
    "EncryptionPartialFailure",
    "ErrorCode",
    "FanoutEncoder",
    "HybridChatError",
    "HybridCipher",
    "IntegrityError",
    "InvalidKeyEncodingError",
    "KeyGenerationError",
    "KeyManager",
    "KeyPair",
    "MessageLog",
    "MessageTooLargeError",
    "PresenceRegistry",
    "ProtocolError",
    "UnwrapError",
    "__license__",
    "__version__",
]
