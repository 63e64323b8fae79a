"""
HybridChat - Wire protocol definitions.

Requests and responses are JSON objects, one per line:

    {"command": "join", "params": {"username": ..., "publicKey": ...}}
    {"success": true, "users": [...], "publicKeys": {...}}

This module converts between the JSON shapes and the payload variants in
``hybridchat.message``. Payload kinds are decided here, once, from the
``encrypted`` flag and a strict structural check of ``content``:

- hybrid bundle: object with encryptedMessage, encryptedKey and iv
- legacy hybrid: the same object serialized into a JSON string
- legacy direct: a bare base64 string
"""

import base64
import binascii
import json
from typing import Any, Dict, Optional, Union

from .constants import (
    ENCRYPTED_PLACEHOLDER,
    MAX_LINE_SIZE,
    WIRE_CIPHERTEXT,
    WIRE_NONCE,
    WIRE_WRAPPED_KEY,
)
from .errors import DecryptionError, ErrorCode, ProtocolError
from .message import (
    CipherBundle,
    EncryptedPayload,
    LegacyEncryptedPayload,
    Message,
    Payload,
    PlaceholderPayload,
    PlaintextPayload,
    RecipientPayload,
)


class Command:
    """Command names understood by the chat server."""

    JOIN = "join"
    MESSAGE = "message"
    POLL = "poll"
    PING = "ping"


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64d(data: str) -> bytes:
    return base64.b64decode(data, validate=True)


# Bundles


def bundle_to_wire(bundle: CipherBundle) -> Union[str, Dict[str, str]]:
    """Encode a bundle: object for hybrid mode, bare base64 string for direct mode."""
    if bundle.is_legacy:
        return b64(bundle.ciphertext)
    return {
        WIRE_CIPHERTEXT: b64(bundle.ciphertext),
        WIRE_WRAPPED_KEY: b64(bundle.wrapped_key),
        WIRE_NONCE: b64(bundle.nonce),
    }


def bundle_from_wire(value: Any) -> CipherBundle:
    """
    Decode any accepted wire form of a bundle.

    Raises:
        DecryptionError: If the value matches no accepted form
    """
    if isinstance(value, str):
        if value.lstrip().startswith("{"):
            # Older clients sent the hybrid object as a JSON string
            try:
                value = json.loads(value)
            except json.JSONDecodeError as e:
                raise DecryptionError(f"Malformed serialized bundle: {e}") from e
            if not isinstance(value, dict):
                raise DecryptionError("Serialized bundle is not an object")
        else:
            return CipherBundle(ciphertext=_decode_field(value, "ciphertext"))

    if not isinstance(value, dict):
        raise DecryptionError(
            "Bundle must be an object or a string", {"type": type(value).__name__}
        )

    ciphertext = value.get(WIRE_CIPHERTEXT)
    wrapped_key = value.get(WIRE_WRAPPED_KEY) or None
    nonce = value.get(WIRE_NONCE) or None

    if not isinstance(ciphertext, str) or not ciphertext:
        raise DecryptionError(f"Bundle is missing '{WIRE_CIPHERTEXT}'")

    if wrapped_key is None and nonce is None:
        return CipherBundle(ciphertext=_decode_field(ciphertext, WIRE_CIPHERTEXT))

    if wrapped_key is None or nonce is None:
        raise DecryptionError(
            f"Bundle must carry both '{WIRE_WRAPPED_KEY}' and '{WIRE_NONCE}' or neither"
        )

    return CipherBundle(
        ciphertext=_decode_field(ciphertext, WIRE_CIPHERTEXT),
        wrapped_key=_decode_field(wrapped_key, WIRE_WRAPPED_KEY),
        nonce=_decode_field(nonce, WIRE_NONCE),
    )


def _decode_field(value: Any, name: str) -> bytes:
    if not isinstance(value, str):
        raise DecryptionError(f"Bundle field '{name}' must be a string")
    try:
        return b64d(value)
    except (binascii.Error, ValueError) as e:
        raise DecryptionError(f"Bundle field '{name}' is not valid base64") from e


# Payloads and messages


def payload_to_wire(payload: Payload) -> Union[str, Dict[str, Any]]:
    if isinstance(payload, PlaintextPayload):
        return payload.text
    if isinstance(payload, EncryptedPayload):
        return {name: bundle_to_wire(bundle) for name, bundle in payload.bundles.items()}
    if isinstance(payload, LegacyEncryptedPayload):
        return payload.ciphertext
    if isinstance(payload, RecipientPayload):
        return bundle_to_wire(payload.bundle)
    if isinstance(payload, PlaceholderPayload):
        return ENCRYPTED_PLACEHOLDER
    raise ProtocolError(ErrorCode.E202_INVALID_PAYLOAD, f"Unknown payload type: {payload!r}")


def message_to_wire(message: Message) -> Dict[str, Any]:
    """Serialize a stored or projected message for the wire."""
    data = {
        "id": message.message_id,
        "sender": message.sender,
        "content": payload_to_wire(message.payload),
        "encrypted": message.is_encrypted,
        "timestamp": str(message.timestamp),
    }
    if isinstance(message.payload, PlaceholderPayload):
        data["placeholder"] = True
    return data


def parse_timestamp(value: Any) -> int:
    """Accept an integer or an integer-as-string."""
    if isinstance(value, bool):
        raise ProtocolError(ErrorCode.E201_INVALID_REQUEST, "Timestamp must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        try:
            return int(value.strip())
        except ValueError as e:
            raise ProtocolError(
                ErrorCode.E201_INVALID_REQUEST, f"Timestamp must be an integer, got {value!r}"
            ) from e
    raise ProtocolError(
        ErrorCode.E201_INVALID_REQUEST, f"Timestamp must be an integer, got {value!r}"
    )


def message_from_send_request(params: Dict[str, Any]) -> Message:
    """
    Build a stored message from a send request.

    Raises:
        ProtocolError: If a field is missing or content does not match the
            encrypted flag
    """
    message_id = params.get("id")
    sender = params.get("sender")
    content = params.get("content")
    encrypted = params.get("encrypted", False)

    if not isinstance(message_id, str) or not message_id:
        raise ProtocolError(ErrorCode.E201_INVALID_REQUEST, "Message id required")
    if not isinstance(sender, str) or not sender:
        raise ProtocolError(ErrorCode.E201_INVALID_REQUEST, "Sender required")
    if not isinstance(encrypted, bool):
        raise ProtocolError(ErrorCode.E201_INVALID_REQUEST, "'encrypted' must be a boolean")

    timestamp = parse_timestamp(params.get("timestamp"))

    if isinstance(content, str):
        payload = LegacyEncryptedPayload(content) if encrypted else PlaintextPayload(content)
    elif isinstance(content, dict):
        if not encrypted:
            raise ProtocolError(
                ErrorCode.E202_INVALID_PAYLOAD, "Per-recipient content requires encrypted=true"
            )
        if not content:
            raise ProtocolError(ErrorCode.E202_INVALID_PAYLOAD, "Encrypted content has no recipients")
        bundles = {}
        for username, wire_bundle in content.items():
            if not isinstance(wire_bundle, dict) or not all(
                k in wire_bundle for k in (WIRE_CIPHERTEXT, WIRE_WRAPPED_KEY, WIRE_NONCE)
            ):
                raise ProtocolError(
                    ErrorCode.E202_INVALID_PAYLOAD,
                    f"Bundle for '{username}' is not a hybrid bundle",
                )
            try:
                bundles[username] = bundle_from_wire(wire_bundle)
            except DecryptionError as e:
                raise ProtocolError(
                    ErrorCode.E202_INVALID_PAYLOAD, f"Bundle for '{username}': {e.message}"
                ) from e
        payload = EncryptedPayload(bundles)
    else:
        raise ProtocolError(ErrorCode.E202_INVALID_PAYLOAD, "Content must be a string or an object")

    return Message(message_id=message_id, sender=sender, payload=payload, timestamp=timestamp)


def message_from_poll_entry(entry: Dict[str, Any]) -> Message:
    """
    Build a client-side message from one entry of a poll response.

    Raises:
        ProtocolError: If the entry lacks id, sender or timestamp
        DecryptionError: If encrypted object content is not a valid bundle
    """
    if not isinstance(entry, dict):
        raise ProtocolError(ErrorCode.E202_INVALID_PAYLOAD, "Poll entry must be an object")

    message_id = entry.get("id")
    sender = entry.get("sender")
    if not isinstance(message_id, str) or not isinstance(sender, str):
        raise ProtocolError(ErrorCode.E202_INVALID_PAYLOAD, "Poll entry lacks id or sender")

    timestamp = parse_timestamp(entry.get("timestamp"))
    content = entry.get("content")
    encrypted = bool(entry.get("encrypted", False))

    if entry.get("placeholder"):
        payload: Payload = PlaceholderPayload()
    elif not encrypted:
        payload = PlaintextPayload(content if isinstance(content, str) else json.dumps(content))
    elif isinstance(content, (dict, str)):
        payload = RecipientPayload(bundle_from_wire(content))
    else:
        raise DecryptionError(
            "Encrypted content must be an object or a string", {"type": type(content).__name__}
        )

    return Message(message_id=message_id, sender=sender, payload=payload, timestamp=timestamp)


# Framing


def encode_line(data: Dict[str, Any]) -> bytes:
    return (json.dumps(data) + "\n").encode("utf-8")


def decode_line(line: bytes) -> Dict[str, Any]:
    """
    Decode one newline-delimited JSON object.

    Raises:
        ProtocolError: If the line is oversized, not JSON, or not an object
    """
    if len(line) > MAX_LINE_SIZE:
        raise ProtocolError(ErrorCode.E201_INVALID_REQUEST, f"Line too large: {len(line)} bytes")
    try:
        data = json.loads(line.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ProtocolError(ErrorCode.E201_INVALID_REQUEST, f"Invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ProtocolError(ErrorCode.E201_INVALID_REQUEST, "Expected a JSON object")
    return data


def error_response(error: Union[str, Exception], code: Optional[ErrorCode] = None) -> Dict[str, Any]:
    response: Dict[str, Any] = {"success": False, "error": getattr(error, "message", str(error))}
    error_code = code or getattr(error, "code", None)
    if error_code is not None:
        response["code"] = error_code.value
    return response
