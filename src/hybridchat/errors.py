"""
HybridChat - Custom Exception Classes and Error Codes

This module defines all custom exceptions and error codes used throughout
HybridChat. Each error has a unique code for logging and debugging.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Enumeration of all HybridChat error codes."""

    # Crypto Errors (E100-E199)
    E100_CRYPTO_ERROR = "E100"
    E101_ENCRYPTION_FAILED = "E101"
    E102_DECRYPTION_FAILED = "E102"
    E103_INVALID_KEY = "E103"
    E104_KEY_GENERATION_FAILED = "E104"
    E105_INTEGRITY_CHECK_FAILED = "E105"
    E106_UNWRAP_FAILED = "E106"
    E107_MESSAGE_TOO_LARGE = "E107"
    E108_NO_RECIPIENT_ENCRYPTED = "E108"

    # Protocol Errors (E200-E299)
    E200_PROTOCOL_ERROR = "E200"
    E201_INVALID_REQUEST = "E201"
    E202_INVALID_PAYLOAD = "E202"
    E203_CONNECTION_FAILED = "E203"
    E204_NOT_CONNECTED = "E204"

    # Config Errors (E700-E799)
    E700_CONFIG_ERROR = "E700"
    E701_CONFIG_LOAD_FAILED = "E701"
    E702_CONFIG_SAVE_FAILED = "E702"
    E704_CONFIG_PARSE_ERROR = "E704"

    # Server Errors (E800-E899)
    E800_SERVER_ERROR = "E800"
    E804_INVALID_COMMAND = "E804"


class HybridChatError(Exception):
    """Base exception class for all HybridChat errors.

    Attributes:
        code: Error code from ErrorCode enum
        message: Human-readable error message
        details: Additional error details (optional)
    """

    def __init__(self, code: ErrorCode, message: str, details: Optional[Dict[str, Any]] = None):
        """Initialize a HybridChat error.

        Args:
            code: Error code from ErrorCode enum
            message: Human-readable error message
            details: Additional error context (optional)
        """
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization.

        Returns:
            Dictionary containing error information
        """
        return {"code": self.code.value, "message": self.message, "details": self.details}


class CryptoError(HybridChatError):
    """Exception raised for cryptographic operation failures."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E100_CRYPTO_ERROR,
        message: str = "Cryptographic operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class KeyGenerationError(CryptoError):
    """The keypair could not be generated."""

    def __init__(
        self,
        message: str = "Key generation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.E104_KEY_GENERATION_FAILED, message, details)


class InvalidKeyEncodingError(CryptoError):
    """An encoded public key could not be imported."""

    def __init__(
        self,
        message: str = "Invalid public key encoding",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.E103_INVALID_KEY, message, details)


class MessageTooLargeError(CryptoError):
    """Plaintext exceeds the capacity of the selected mode or the message limit."""

    def __init__(
        self,
        message: str = "Message too large",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.E107_MESSAGE_TOO_LARGE, message, details)


class IntegrityError(CryptoError):
    """Authentication tag or padding check failed.

    Raised instead of returning any plaintext when a ciphertext has been
    altered or was produced for another key.
    """

    def __init__(
        self,
        message: str = "Integrity check failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.E105_INTEGRITY_CHECK_FAILED, message, details)


class UnwrapError(CryptoError):
    """The private key could not unwrap a session key (wrong key or corrupted bundle)."""

    def __init__(
        self,
        message: str = "Failed to unwrap session key",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.E106_UNWRAP_FAILED, message, details)


class DecryptionError(CryptoError):
    """An encrypted payload could not be decoded into a decryptable form."""

    def __init__(
        self,
        message: str = "Decryption failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.E102_DECRYPTION_FAILED, message, details)


class EncryptionPartialFailure(CryptoError):
    """Session key could not be wrapped for some or all recipients.

    Attributes:
        failed: Usernames whose bundle could not be produced
    """

    def __init__(
        self,
        message: str = "Encryption failed for every recipient",
        failed: Optional[list] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.failed = list(failed or [])
        details = dict(details or {})
        details.setdefault("failed", self.failed)
        super().__init__(ErrorCode.E108_NO_RECIPIENT_ENCRYPTED, message, details)


class ProtocolError(HybridChatError):
    """Exception raised for malformed requests, responses, or wire payloads."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E200_PROTOCOL_ERROR,
        message: str = "Protocol error",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class ConfigError(HybridChatError):
    """Exception raised for configuration failures.

    This includes loading, parsing, and validating configuration files.
    """

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E700_CONFIG_ERROR,
        message: str = "Configuration operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)
