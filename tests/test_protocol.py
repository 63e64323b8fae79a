"""
HybridChat - Wire protocol tests.

Tests request validation, message serialization, poll entry decoding and
line framing.
"""

import json

import pytest

from hybridchat.errors import DecryptionError, ErrorCode, ProtocolError
from hybridchat.message import (
    CipherBundle,
    EncryptedPayload,
    LegacyEncryptedPayload,
    Message,
    PlaceholderPayload,
    PlaintextPayload,
    RecipientPayload,
)
from hybridchat.protocol import (
    b64,
    bundle_from_wire,
    decode_line,
    encode_line,
    error_response,
    message_from_poll_entry,
    message_from_send_request,
    message_to_wire,
    parse_timestamp,
)

WIRE_BUNDLE = {"encryptedMessage": b64(b"body+tag"), "encryptedKey": b64(b"k" * 256), "iv": b64(b"n" * 12)}


def send_params(**overrides):
    params = {"id": "alice-1-x", "sender": "alice", "content": "hi", "encrypted": False, "timestamp": "1000"}
    params.update(overrides)
    return params


class TestSendRequest:
    def test_plaintext(self):
        message = message_from_send_request(send_params())

        assert message.payload == PlaintextPayload("hi")
        assert message.timestamp == 1000
        assert not message.is_encrypted

    def test_per_recipient_mapping(self):
        message = message_from_send_request(
            send_params(content={"bob": WIRE_BUNDLE, "carol": WIRE_BUNDLE}, encrypted=True)
        )

        assert isinstance(message.payload, EncryptedPayload)
        assert message.payload.recipients() == {"bob", "carol"}
        assert message.payload.bundles["bob"].nonce == b"n" * 12

    def test_legacy_string(self):
        message = message_from_send_request(send_params(content="QUJD", encrypted=True))
        assert message.payload == LegacyEncryptedPayload("QUJD")

    def test_integer_timestamp(self):
        assert message_from_send_request(send_params(timestamp=42)).timestamp == 42

    @pytest.mark.parametrize(
        "overrides",
        [
            {"id": ""},
            {"sender": None},
            {"encrypted": "yes"},
            {"timestamp": "soon"},
            {"content": 5},
            {"content": {"bob": WIRE_BUNDLE}, "encrypted": False},
            {"content": {}, "encrypted": True},
            {"content": {"bob": "QUJD"}, "encrypted": True},
            {"content": {"bob": {"encryptedMessage": "QUJD"}}, "encrypted": True},
            {"content": {"bob": dict(WIRE_BUNDLE, iv="@@")}, "encrypted": True},
        ],
    )
    def test_rejected(self, overrides):
        with pytest.raises(ProtocolError):
            message_from_send_request(send_params(**overrides))


class TestMessageToWire:
    def test_recipient_projection(self):
        bundle = CipherBundle(b"body", b"key", b"n" * 12)
        wire = message_to_wire(Message("id", "alice", RecipientPayload(bundle), 7))

        assert wire == {
            "id": "id",
            "sender": "alice",
            "content": {"encryptedMessage": b64(b"body"), "encryptedKey": b64(b"key"), "iv": b64(b"n" * 12)},
            "encrypted": True,
            "timestamp": "7",
        }

    def test_placeholder(self):
        wire = message_to_wire(Message("id", "alice", PlaceholderPayload(), 7))

        assert wire["content"] == "Encrypted message"
        assert wire["encrypted"] is True
        assert wire["placeholder"] is True

    def test_plaintext(self):
        wire = message_to_wire(Message("id", "alice", PlaintextPayload("hello"), 7))
        assert wire["content"] == "hello"
        assert wire["encrypted"] is False
        assert "placeholder" not in wire


class TestPollEntry:
    def test_recipient_bundle(self):
        entry = {"id": "a", "sender": "bob", "content": WIRE_BUNDLE, "encrypted": True, "timestamp": "5"}
        message = message_from_poll_entry(entry)

        assert isinstance(message.payload, RecipientPayload)
        assert message.payload.bundle.ciphertext == b"body+tag"

    def test_json_string_bundle(self):
        entry = {"id": "a", "sender": "bob", "content": json.dumps(WIRE_BUNDLE), "encrypted": True, "timestamp": 5}
        message = message_from_poll_entry(entry)
        assert message.payload.bundle.wrapped_key == b"k" * 256

    def test_direct_ciphertext(self):
        entry = {"id": "a", "sender": "bob", "content": "QUJD", "encrypted": True, "timestamp": 5}
        message = message_from_poll_entry(entry)
        assert message.payload.bundle == CipherBundle(b"ABC")

    def test_placeholder(self):
        entry = {"id": "a", "sender": "bob", "content": "Encrypted message", "encrypted": True,
                 "placeholder": True, "timestamp": 5}
        assert isinstance(message_from_poll_entry(entry).payload, PlaceholderPayload)

    def test_plaintext(self):
        entry = {"id": "a", "sender": "bob", "content": "hi", "encrypted": False, "timestamp": 5}
        assert message_from_poll_entry(entry).payload == PlaintextPayload("hi")

    def test_undecodable_content(self):
        entry = {"id": "a", "sender": "bob", "content": {"iv": "x"}, "encrypted": True, "timestamp": 5}
        with pytest.raises(DecryptionError):
            message_from_poll_entry(entry)

    def test_missing_id(self):
        with pytest.raises(ProtocolError):
            message_from_poll_entry({"sender": "bob", "content": "hi", "timestamp": 5})


def test_empty_key_and_nonce_mean_direct_mode():
    bundle = bundle_from_wire({"encryptedMessage": "QUJD", "encryptedKey": "", "iv": ""})
    assert bundle.is_legacy


class TestTimestamps:
    def test_accepted(self):
        assert parse_timestamp(5) == 5
        assert parse_timestamp("1700000000000") == 1700000000000

    @pytest.mark.parametrize("value", [True, None, "1.5", "abc", 2.5, "--5", "²"])
    def test_rejected(self, value):
        with pytest.raises(ProtocolError):
            parse_timestamp(value)


class TestFraming:
    def test_encode_decode(self):
        line = encode_line({"command": "ping", "params": {}})

        assert line.endswith(b"\n")
        assert decode_line(line.rstrip(b"\n")) == {"command": "ping", "params": {}}

    @pytest.mark.parametrize("line", [b"not json", b"[1, 2]", b"\xff\xfe"])
    def test_invalid(self, line):
        with pytest.raises(ProtocolError) as exc_info:
            decode_line(line)
        assert exc_info.value.code == ErrorCode.E201_INVALID_REQUEST


def test_error_response():
    response = error_response(ProtocolError(ErrorCode.E202_INVALID_PAYLOAD, "bad payload"))
    assert response == {"success": False, "error": "bad payload", "code": "E202"}

    assert error_response("plain") == {"success": False, "error": "plain"}
