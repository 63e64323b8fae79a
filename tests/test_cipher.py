"""
HybridChat - Hybrid cipher tests.

Tests AES-GCM sealing, RSA-OAEP key wrapping, tamper detection and the
legacy direct-RSA mode.
"""

import pytest

from hybridchat.cipher import HybridCipher
from hybridchat.constants import GCM_TAG_SIZE
from hybridchat.errors import CryptoError, IntegrityError, MessageTooLargeError, UnwrapError
from hybridchat.message import CipherBundle


@pytest.fixture
def cipher() -> HybridCipher:
    return HybridCipher()


def flip_bit(data: bytes, index: int) -> bytes:
    buf = bytearray(data)
    buf[index] ^= 0x01
    return bytes(buf)


def test_hybrid_roundtrip(cipher, alice_keys):
    """Encrypt and decrypt with the matching key pair."""
    plaintext = "Hello, World! Unicode: 你好世界 🔒"
    bundle = cipher.encrypt(plaintext, alice_keys.public_key)

    assert len(bundle.nonce) == 12
    assert len(bundle.wrapped_key) == 256
    # ciphertext || tag
    assert len(bundle.ciphertext) == len(plaintext.encode("utf-8")) + GCM_TAG_SIZE
    assert cipher.decrypt(bundle, alice_keys.private_key) == plaintext


def test_fresh_key_and_nonce_per_message(cipher, alice_keys):
    first = cipher.encrypt("same", alice_keys.public_key)
    second = cipher.encrypt("same", alice_keys.public_key)

    assert first.nonce != second.nonce
    assert first.ciphertext != second.ciphertext


def test_empty_and_long_messages(cipher, alice_keys):
    for plaintext in ("", "x" * 10_000):
        bundle = cipher.encrypt(plaintext, alice_keys.public_key)
        assert cipher.decrypt(bundle, alice_keys.private_key) == plaintext


def test_wrong_private_key_fails_unwrap(cipher, alice_keys, bob_keys):
    bundle = cipher.encrypt("for alice", alice_keys.public_key)
    with pytest.raises(UnwrapError):
        cipher.decrypt(bundle, bob_keys.private_key)


class TestTamperDetection:
    """Any modified bit in body, tag or nonce is rejected without output."""

    def test_flipped_body_bit(self, cipher, alice_keys):
        bundle = cipher.encrypt("attack at dawn", alice_keys.public_key)
        tampered = CipherBundle(flip_bit(bundle.ciphertext, 0), bundle.wrapped_key, bundle.nonce)

        with pytest.raises(IntegrityError):
            cipher.decrypt(tampered, alice_keys.private_key)

    def test_flipped_tag_bit(self, cipher, alice_keys):
        bundle = cipher.encrypt("attack at dawn", alice_keys.public_key)
        tampered = CipherBundle(flip_bit(bundle.ciphertext, -1), bundle.wrapped_key, bundle.nonce)

        with pytest.raises(IntegrityError):
            cipher.decrypt(tampered, alice_keys.private_key)

    def test_flipped_nonce_bit(self, cipher, alice_keys):
        bundle = cipher.encrypt("attack at dawn", alice_keys.public_key)
        tampered = CipherBundle(bundle.ciphertext, bundle.wrapped_key, flip_bit(bundle.nonce, 3))

        with pytest.raises(IntegrityError):
            cipher.decrypt(tampered, alice_keys.private_key)

    def test_corrupted_wrapped_key(self, cipher, alice_keys):
        bundle = cipher.encrypt("attack at dawn", alice_keys.public_key)
        tampered = CipherBundle(bundle.ciphertext, flip_bit(bundle.wrapped_key, 10), bundle.nonce)

        with pytest.raises(UnwrapError):
            cipher.decrypt(tampered, alice_keys.private_key)


class TestPrimitives:
    def test_seal_open(self, cipher):
        key = cipher.generate_session_key()
        nonce = cipher.generate_nonce()

        assert len(key) == 32
        sealed = cipher.seal(key, nonce, b"payload")
        assert cipher.open(key, nonce, sealed) == b"payload"

    def test_seal_rejects_short_key(self, cipher):
        with pytest.raises(CryptoError):
            cipher.seal(b"short", cipher.generate_nonce(), b"payload")

    def test_open_with_other_key(self, cipher):
        nonce = cipher.generate_nonce()
        sealed = cipher.seal(cipher.generate_session_key(), nonce, b"payload")

        with pytest.raises(IntegrityError):
            cipher.open(cipher.generate_session_key(), nonce, sealed)

    def test_wrap_unwrap(self, cipher, bob_keys):
        key = cipher.generate_session_key()
        wrapped = cipher.wrap_key(key, bob_keys.public_key)
        assert cipher.unwrap_key(wrapped, bob_keys.private_key) == key


class TestDirectMode:
    """Legacy direct RSA-OAEP encryption of the plaintext itself."""

    def test_capacity(self, cipher, alice_keys):
        assert cipher.max_direct_length(alice_keys.public_key) == 190

    def test_at_capacity(self, cipher, alice_keys):
        bundle = cipher.encrypt_direct("a" * 190, alice_keys.public_key)

        assert bundle.is_legacy
        assert len(bundle.ciphertext) == 256
        assert cipher.decrypt(bundle, alice_keys.private_key) == "a" * 190

    def test_over_capacity(self, cipher, alice_keys):
        with pytest.raises(MessageTooLargeError):
            cipher.encrypt_direct("a" * 191, alice_keys.public_key)

    def test_capacity_counts_utf8_bytes(self, cipher, alice_keys):
        # 64 three-byte characters = 192 bytes
        with pytest.raises(MessageTooLargeError):
            cipher.encrypt_direct("€" * 64, alice_keys.public_key)

    def test_wrong_key(self, cipher, alice_keys, bob_keys):
        bundle = cipher.encrypt_direct("short", alice_keys.public_key)
        with pytest.raises(IntegrityError):
            cipher.decrypt(bundle, bob_keys.private_key)


def test_bundle_requires_key_and_nonce_together():
    with pytest.raises(ValueError):
        CipherBundle(b"ct", wrapped_key=b"k")
    with pytest.raises(ValueError):
        CipherBundle(b"ct", nonce=b"n" * 12)
