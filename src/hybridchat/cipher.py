"""
HybridChat - Hybrid RSA-OAEP / AES-256-GCM cryptographic operations.

Hybrid mode (default):
- Fresh 256-bit AES key and 96-bit random nonce per message
- AES-256-GCM encrypts the UTF-8 plaintext (ciphertext || 16-byte tag)
- RSA-OAEP (MGF1-SHA256, SHA-256) wraps the raw AES key per recipient

Legacy direct mode:
- RSA-OAEP encrypts the plaintext itself, no session key and no nonce
- Capacity is modulus_bytes - 2 * hash_len - 2 (190 bytes for RSA-2048)

All cryptographic operations use the cryptography library (Apache 2.0/BSD).
"""

import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .constants import NONCE_SIZE, OAEP_HASH_SIZE, SESSION_KEY_SIZE
from .errors import (
    CryptoError,
    DecryptionError,
    ErrorCode,
    IntegrityError,
    MessageTooLargeError,
    UnwrapError,
)
from .message import CipherBundle

logger = logging.getLogger(__name__)


def _oaep() -> padding.OAEP:
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=None,
    )


class HybridCipher:
    """
    Symmetric and asymmetric primitives behind every chat message.

    Instances hold no key material and may be shared between threads.
    """

    @staticmethod
    def generate_session_key() -> bytes:
        """Generate a random 256-bit AES key."""
        return AESGCM.generate_key(bit_length=SESSION_KEY_SIZE * 8)

    @staticmethod
    def generate_nonce() -> bytes:
        """Generate a random 96-bit nonce."""
        return os.urandom(NONCE_SIZE)

    @staticmethod
    def seal(session_key: bytes, nonce: bytes, plaintext: bytes) -> bytes:
        """AES-256-GCM encrypt, returning ciphertext with the tag appended."""
        if len(session_key) != SESSION_KEY_SIZE:
            raise CryptoError(
                ErrorCode.E101_ENCRYPTION_FAILED,
                f"Session key must be {SESSION_KEY_SIZE} bytes",
            )
        return AESGCM(session_key).encrypt(nonce, plaintext, None)

    @staticmethod
    def open(session_key: bytes, nonce: bytes, ciphertext: bytes) -> bytes:
        """
        AES-256-GCM decrypt and verify the tag.

        Raises:
            IntegrityError: If the tag does not verify; no plaintext is returned
        """
        if len(session_key) != SESSION_KEY_SIZE or len(nonce) != NONCE_SIZE:
            raise IntegrityError("Session key or nonce has the wrong length")
        try:
            return AESGCM(session_key).decrypt(nonce, ciphertext, None)
        except InvalidTag as e:
            raise IntegrityError("Authentication tag mismatch") from e

    @staticmethod
    def wrap_key(session_key: bytes, public_key: rsa.RSAPublicKey) -> bytes:
        """Encrypt the raw session key under a recipient's RSA public key."""
        try:
            return public_key.encrypt(session_key, _oaep())
        except (ValueError, TypeError, AttributeError) as e:
            raise CryptoError(
                ErrorCode.E101_ENCRYPTION_FAILED, f"Failed to wrap session key: {e}"
            ) from e

    @staticmethod
    def unwrap_key(wrapped_key: bytes, private_key: rsa.RSAPrivateKey) -> bytes:
        """
        Recover a session key with the local private key.

        Raises:
            UnwrapError: Wrong private key or corrupted wrapped key
        """
        try:
            session_key = private_key.decrypt(wrapped_key, _oaep())
        except ValueError as e:
            raise UnwrapError("Private key cannot unwrap this session key") from e

        if len(session_key) != SESSION_KEY_SIZE:
            raise UnwrapError(
                "Unwrapped session key has the wrong length", {"length": len(session_key)}
            )
        return session_key

    @staticmethod
    def max_direct_length(public_key: rsa.RSAPublicKey) -> int:
        """Largest plaintext, in bytes, that direct mode can carry for this key."""
        return public_key.key_size // 8 - 2 * OAEP_HASH_SIZE - 2

    def encrypt(self, plaintext: str, public_key: rsa.RSAPublicKey) -> CipherBundle:
        """Hybrid-encrypt a message for a single recipient."""
        session_key = self.generate_session_key()
        nonce = self.generate_nonce()
        ciphertext = self.seal(session_key, nonce, plaintext.encode("utf-8"))
        return CipherBundle(
            ciphertext=ciphertext,
            wrapped_key=self.wrap_key(session_key, public_key),
            nonce=nonce,
        )

    def encrypt_direct(self, plaintext: str, public_key: rsa.RSAPublicKey) -> CipherBundle:
        """
        Encrypt a short message directly with RSA-OAEP (legacy format).

        Raises:
            MessageTooLargeError: If the UTF-8 plaintext exceeds max_direct_length
        """
        data = plaintext.encode("utf-8")
        limit = self.max_direct_length(public_key)
        if len(data) > limit:
            raise MessageTooLargeError(
                f"Direct mode carries at most {limit} bytes, got {len(data)}",
                {"size": len(data), "max_size": limit},
            )
        return CipherBundle(ciphertext=public_key.encrypt(data, _oaep()))

    def decrypt(self, bundle: CipherBundle, private_key: rsa.RSAPrivateKey) -> str:
        """
        Decrypt a bundle addressed to the holder of private_key.

        Legacy bundles are recognised by the absence of wrapped key and nonce.

        Raises:
            UnwrapError: Session key cannot be unwrapped
            IntegrityError: Tag or OAEP padding check failed
            DecryptionError: Plaintext is not valid UTF-8
        """
        if bundle.is_legacy:
            try:
                data = private_key.decrypt(bundle.ciphertext, _oaep())
            except ValueError as e:
                raise IntegrityError("OAEP padding check failed") from e
        else:
            session_key = self.unwrap_key(bundle.wrapped_key, private_key)
            data = self.open(session_key, bundle.nonce, bundle.ciphertext)

        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted payload is not valid UTF-8") from e
