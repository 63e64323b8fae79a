"""
HybridChat - Asymmetric key management.

Each client generates one RSA keypair per session. The public half travels
as base64-encoded DER SubjectPublicKeyInfo; the private half never leaves
the process that created it.

RSA parameters:
- Modulus: 2048 bits (larger sizes accepted)
- Public exponent: 65537
- Padding: OAEP with MGF1-SHA256 and SHA-256
"""

import base64
import binascii
import logging
from typing import Optional

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from .constants import RSA_KEY_SIZE, RSA_PUBLIC_EXPONENT
from .errors import InvalidKeyEncodingError, KeyGenerationError

logger = logging.getLogger(__name__)


class KeyPair:
    """
    A client's RSA key pair.

    The private key is only reachable through this object; there is no
    method that serializes it.
    """

    def __init__(self, private_key: rsa.RSAPrivateKey):
        self._private_key = private_key
        self.public_key = private_key.public_key()

    @property
    def private_key(self) -> rsa.RSAPrivateKey:
        return self._private_key

    @property
    def key_size(self) -> int:
        return self._private_key.key_size

    def get_public_key_bytes(self) -> bytes:
        """Get public key as DER SubjectPublicKeyInfo."""
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )

    def __repr__(self) -> str:
        return f"KeyPair(rsa-{self.key_size})"


class KeyManager:
    """Generates key pairs and converts public keys to and from their wire encoding."""

    def __init__(self, key_size: int = RSA_KEY_SIZE):
        if key_size < RSA_KEY_SIZE:
            raise ValueError(f"RSA modulus must be at least {RSA_KEY_SIZE} bits, got {key_size}")
        self.key_size = key_size

    def generate(self) -> KeyPair:
        """
        Generate a fresh RSA key pair.

        Raises:
            KeyGenerationError: If the backend cannot produce a key
        """
        try:
            private_key = rsa.generate_private_key(
                public_exponent=RSA_PUBLIC_EXPONENT, key_size=self.key_size
            )
        except (ValueError, UnsupportedAlgorithm) as e:
            raise KeyGenerationError(
                f"RSA key generation failed: {e}", {"key_size": self.key_size}
            ) from e

        logger.debug(f"Generated RSA-{self.key_size} key pair")
        return KeyPair(private_key)

    @staticmethod
    def export_public(key_pair: KeyPair) -> str:
        """Export the public key as base64 of its DER SPKI encoding."""
        return base64.b64encode(key_pair.get_public_key_bytes()).decode("ascii")

    @staticmethod
    def import_public(encoded: str) -> rsa.RSAPublicKey:
        """
        Import a public key previously produced by export_public.

        The result is a public key object and can only be used to wrap or
        encrypt.

        Raises:
            InvalidKeyEncodingError: On bad base64, non-SPKI data, a non-RSA
                key or a modulus below the minimum size
        """
        if not isinstance(encoded, str) or not encoded:
            raise InvalidKeyEncodingError("Public key must be a non-empty string")

        try:
            der = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidKeyEncodingError(f"Public key is not valid base64: {e}") from e

        try:
            public_key = serialization.load_der_public_key(der)
        except (ValueError, UnsupportedAlgorithm) as e:
            raise InvalidKeyEncodingError(f"Public key is not a valid SPKI structure: {e}") from e

        if not isinstance(public_key, rsa.RSAPublicKey):
            raise InvalidKeyEncodingError(
                "Public key is not an RSA key", {"type": type(public_key).__name__}
            )

        if public_key.key_size < RSA_KEY_SIZE:
            raise InvalidKeyEncodingError(
                f"RSA modulus too small: {public_key.key_size} bits",
                {"key_size": public_key.key_size, "minimum": RSA_KEY_SIZE},
            )

        return public_key

    @staticmethod
    def fingerprint(encoded: str) -> Optional[str]:
        """
        SHA-256 fingerprint of an encoded public key, as 64 hex characters.

        Returns None if the key does not decode.
        """
        try:
            der = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError, TypeError):
            return None

        digest = hashes.Hash(hashes.SHA256())
        digest.update(der)
        return digest.finalize().hex()
