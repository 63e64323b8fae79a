"""
Unit tests for hybridchat.utils module.

Tests timestamps, identifiers, validation and formatting helpers.
"""

from hybridchat.utils import (
    MonotonicClock,
    format_fingerprint,
    format_millis,
    generate_message_id,
    now_millis,
    validate_username,
)


class TestUsernameValidation:
    """Test username validation."""

    def test_valid_usernames(self):
        assert validate_username("alice") is True
        assert validate_username("Bob_2") is True
        assert validate_username("c.d-e") is True
        assert validate_username("x" * 32) is True

    def test_invalid_usernames(self):
        assert validate_username("") is False
        assert validate_username("x" * 33) is False
        assert validate_username("has space") is False
        assert validate_username("semi;colon") is False
        assert validate_username(None) is False
        assert validate_username(123) is False


class TestMonotonicClock:
    """Millisecond timestamps never decrease."""

    def test_converts_to_millis(self):
        clock = MonotonicClock(source=lambda: 1.5)
        assert clock.now_millis() == 1500

    def test_backwards_step_is_clamped(self):
        times = iter([10.0, 9.0, 11.0])
        clock = MonotonicClock(source=lambda: next(times))

        assert clock.now_millis() == 10000
        assert clock.now_millis() == 10000
        assert clock.now_millis() == 11000

    def test_module_clock(self):
        first = now_millis()
        assert now_millis() >= first


class TestMessageId:
    def test_format(self):
        message_id = generate_message_id("alice", 1700000000000)
        username, timestamp, suffix = message_id.split("-")

        assert username == "alice"
        assert timestamp == "1700000000000"
        assert len(suffix) == 10
        assert all(c in "0123456789abcdef" for c in suffix)

    def test_unique(self):
        assert len({generate_message_id("a", 1) for _ in range(100)}) == 100


class TestFormatting:
    """Test formatting helpers."""

    def test_format_millis(self):
        formatted = format_millis(1_700_000_000_000)
        assert len(formatted) == 8
        assert formatted.count(":") == 2

    def test_format_millis_invalid(self):
        assert format_millis("soon") == "soon"

    def test_format_fingerprint(self):
        assert format_fingerprint("abcdefgh") == "abcd efgh"
