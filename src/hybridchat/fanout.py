"""
HybridChat - Per-recipient fan-out encryption.

One plaintext, one session key, one nonce and one AES-GCM pass per send;
only the 32-byte session key is wrapped once per recipient. Symmetric cost is
independent of the number of recipients and asymmetric cost is independent of
message length.
"""

import asyncio
import logging
from typing import Any, Dict, Mapping, Optional, Union

from cryptography.hazmat.primitives.asymmetric import rsa

from .cipher import HybridCipher
from .errors import CryptoError
from .keys import KeyManager
from .message import CipherBundle
from .protocol import bundle_from_wire

logger = logging.getLogger(__name__)

RecipientKey = Union[rsa.RSAPublicKey, str]


class FanoutEncoder:
    """Builds and opens per-recipient cipher bundles."""

    def __init__(self, cipher: Optional[HybridCipher] = None):
        self.cipher = cipher or HybridCipher()

    def encrypt_for_recipients(
        self, plaintext: str, recipient_keys: Mapping[str, RecipientKey]
    ) -> Dict[str, CipherBundle]:
        """
        Encrypt plaintext once and wrap its session key for every recipient.

        Args:
            plaintext: Message text
            recipient_keys: username -> RSA public key, or its base64 SPKI encoding

        Returns:
            username -> CipherBundle. A recipient whose key cannot be imported
            or used is left out; an empty result means nobody can read the
            message.

        Raises:
            ValueError: If recipient_keys is empty (send plaintext instead)
        """
        if not recipient_keys:
            raise ValueError("No recipients to encrypt for")

        session_key = self.cipher.generate_session_key()
        nonce = self.cipher.generate_nonce()
        ciphertext = self.cipher.seal(session_key, nonce, plaintext.encode("utf-8"))

        bundles: Dict[str, CipherBundle] = {}
        for username, key in recipient_keys.items():
            try:
                public_key = KeyManager.import_public(key) if isinstance(key, str) else key
                wrapped_key = self.cipher.wrap_key(session_key, public_key)
            except CryptoError as e:
                logger.warning(f"Failed to encrypt for {username}: {e}")
                continue

            bundles[username] = CipherBundle(
                ciphertext=ciphertext, wrapped_key=wrapped_key, nonce=nonce
            )

        skipped = len(recipient_keys) - len(bundles)
        if skipped:
            logger.warning(f"Encrypted for {len(bundles)} recipients, skipped {skipped}")
        else:
            logger.debug(f"Encrypted {len(ciphertext)} byte body for {len(bundles)} recipients")

        return bundles

    def decrypt_own(self, bundle_for_me: Any, private_key: rsa.RSAPrivateKey) -> str:
        """
        Decrypt the bundle addressed to this client.

        Accepts a CipherBundle or any of its wire forms: the hybrid object,
        the hybrid object serialized as a JSON string, or a bare base64
        direct-mode ciphertext.

        Raises:
            DecryptionError: If the wire value cannot be decoded
            IntegrityError: If the body or padding fails verification
            UnwrapError: If the session key cannot be unwrapped
        """
        if isinstance(bundle_for_me, CipherBundle):
            bundle = bundle_for_me
        else:
            bundle = bundle_from_wire(bundle_for_me)

        return self.cipher.decrypt(bundle, private_key)

    async def encrypt_for_recipients_async(
        self, plaintext: str, recipient_keys: Mapping[str, RecipientKey]
    ) -> Dict[str, CipherBundle]:
        """encrypt_for_recipients on a worker thread."""
        return await asyncio.to_thread(self.encrypt_for_recipients, plaintext, recipient_keys)

    async def decrypt_own_async(self, bundle_for_me: Any, private_key: rsa.RSAPrivateKey) -> str:
        """decrypt_own on a worker thread."""
        return await asyncio.to_thread(self.decrypt_own, bundle_for_me, private_key)
