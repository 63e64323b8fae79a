"""
HybridChat - Key management tests.

Tests RSA key pair generation and public key export/import.
"""

import base64

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from hybridchat.errors import InvalidKeyEncodingError
from hybridchat.keys import KeyManager


def test_keypair_generation(alice_keys):
    """Generated keys are RSA-2048 with exponent 65537."""
    assert alice_keys.key_size == 2048
    assert alice_keys.public_key.public_numbers().e == 65537
    assert isinstance(alice_keys.private_key, rsa.RSAPrivateKey)


def test_keypairs_are_distinct(alice_keys, bob_keys):
    assert alice_keys.get_public_key_bytes() != bob_keys.get_public_key_bytes()


def test_key_size_below_minimum_rejected():
    with pytest.raises(ValueError):
        KeyManager(key_size=1024)


def test_export_import_roundtrip(alice_keys):
    """An exported key imports back to the same public numbers."""
    encoded = KeyManager.export_public(alice_keys)

    # Standard base64 of DER SPKI
    der = base64.b64decode(encoded, validate=True)
    assert der == alice_keys.get_public_key_bytes()

    imported = KeyManager.import_public(encoded)
    assert imported.public_numbers() == alice_keys.public_key.public_numbers()


def test_imported_key_is_public_only(alice_keys):
    imported = KeyManager.import_public(KeyManager.export_public(alice_keys))
    assert isinstance(imported, rsa.RSAPublicKey)
    assert not hasattr(imported, "decrypt")


class TestInvalidImports:
    """Malformed public keys are rejected with InvalidKeyEncodingError."""

    @pytest.mark.parametrize("value", ["", None, 42, "not base64 at all!!"])
    def test_garbage(self, value):
        with pytest.raises(InvalidKeyEncodingError):
            KeyManager.import_public(value)

    def test_valid_base64_not_spki(self):
        with pytest.raises(InvalidKeyEncodingError):
            KeyManager.import_public(base64.b64encode(b"\x30\x03\x02\x01\x00").decode())

    def test_non_rsa_key(self):
        ec_key = ec.generate_private_key(ec.SECP256R1()).public_key()
        der = ec_key.public_bytes(
            serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
        )
        with pytest.raises(InvalidKeyEncodingError):
            KeyManager.import_public(base64.b64encode(der).decode())

    @pytest.mark.slow
    def test_small_modulus(self):
        small = rsa.generate_private_key(public_exponent=65537, key_size=1024).public_key()
        der = small.public_bytes(
            serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
        )
        with pytest.raises(InvalidKeyEncodingError):
            KeyManager.import_public(base64.b64encode(der).decode())


def test_fingerprint(encoded_keys):
    fp = KeyManager.fingerprint(encoded_keys["alice"])
    assert len(fp) == 64
    assert fp == KeyManager.fingerprint(encoded_keys["alice"])
    assert fp != KeyManager.fingerprint(encoded_keys["bob"])
    assert KeyManager.fingerprint("%%%") is None
