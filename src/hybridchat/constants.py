"""
HybridChat - Global Constants and Configuration Values

All magic numbers and configuration defaults are centralized here.
"""

# Version Information
VERSION = "1.0.0"
APP_NAME = "HybridChat"

# Network Constants
DEFAULT_SERVER_PORT = 5080
DEFAULT_HOST = "127.0.0.1"
CONNECTION_TIMEOUT = 5  # seconds
REQUEST_TIMEOUT = 10  # seconds
READ_CHUNK_SIZE = 4096
MAX_LINE_SIZE = 4 * 1024 * 1024  # 4 MB per JSON line

# Chat Protocol Constants
MESSAGE_LOG_CAPACITY = 200  # newest messages retained by the server
PRESENCE_TTL = 30  # seconds of silence before a user is evicted
POLL_INTERVAL = 1.0  # seconds between client polls
MAX_MESSAGE_LENGTH = 1000  # characters per outgoing message
MAX_USERNAME_LENGTH = 32
ENCRYPTED_PLACEHOLDER = "Encrypted message"
UNDECRYPTABLE_PLACEHOLDER = "[undecryptable message]"

# Cryptography Constants
RSA_KEY_SIZE = 2048  # bits, minimum accepted modulus
RSA_PUBLIC_EXPONENT = 65537
OAEP_HASH_SIZE = 32  # bytes, SHA-256 digest
SESSION_KEY_SIZE = 32  # 256 bits for AES-256-GCM
NONCE_SIZE = 12  # 96 bits for AES-GCM
GCM_TAG_SIZE = 16  # 128 bits

# Wire field names
WIRE_CIPHERTEXT = "encryptedMessage"
WIRE_WRAPPED_KEY = "encryptedKey"
WIRE_NONCE = "iv"

# UI Configuration
UI_NOTIFICATION_TIMEOUT = 3  # seconds
OUTBOX_MAX_SIZE = 100  # buffered outgoing messages while disconnected

# File Paths
DEFAULT_DATA_DIR = "~/.hybridchat"
CONFIG_FILENAME = "config.toml"

# Logging Configuration
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
