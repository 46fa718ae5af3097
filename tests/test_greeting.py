"""
Unit tests for greeting parsing.
"""

import pytest

from tarantool_do.errors import DecodeError
from tarantool_do.greeting import GREETING_SIZE, parse_greeting
from tests.mock_server import DEFAULT_SALT, make_greeting


class TestParseGreeting:
    """Tests for parse_greeting."""

    def test_parses_server_and_salt(self):
        """Test that the version line and the salt are extracted."""
        greeting = parse_greeting(make_greeting())

        assert greeting.server.startswith("Tarantool 2.11.1 (Binary)")
        assert greeting.version == "2.11.1"
        assert greeting.salt == DEFAULT_SALT

    def test_salt_not_in_repr(self):
        """Test that the salt is kept out of repr()."""
        assert "salt" not in repr(parse_greeting(make_greeting()))

    def test_rejects_short_greeting(self):
        with pytest.raises(DecodeError):
            parse_greeting(make_greeting()[:GREETING_SIZE - 1])

    def test_rejects_other_servers(self):
        """Test that a non-Tarantool banner is rejected."""
        data = b"SSH-2.0-OpenSSH_9.0".ljust(63) + b"\n" + b" " * 63 + b"\n"

        with pytest.raises(DecodeError) as exc_info:
            parse_greeting(data)
        assert "Unable to recognize Tarantool server" in str(exc_info.value)

    def test_rejects_invalid_salt(self):
        """Test that a salt that is not base64 is rejected."""
        data = make_greeting()[:64] + b"!" * 63 + b"\n"

        with pytest.raises(DecodeError):
            parse_greeting(data)
