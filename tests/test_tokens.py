"""Tests for secure token helpers."""

from datetime import datetime, timedelta

from netmatch.security.tokens import (
    generate_secure_token,
    is_expired,
    issue_token,
    minutes_until,
    tokens_match,
)

NOW = datetime(2026, 3, 1, 12, 0, 0)


class TestTokens:
    def test_token_length_and_alphabet(self):
        token = generate_secure_token(32)
        assert len(token) == 64
        assert set(token) <= set("0123456789abcdef")
        assert len(generate_secure_token(16)) == 32

    def test_tokens_are_unique(self):
        assert len({generate_secure_token() for _ in range(50)}) == 50

    def test_issue_token_expiry(self):
        issued = issue_token(16, 1, NOW)
        assert issued.expires_at == NOW + timedelta(hours=1)
        assert len(issued.value) == 32

    def test_is_expired(self):
        assert not is_expired(NOW + timedelta(seconds=1), NOW)
        assert is_expired(NOW - timedelta(seconds=1), NOW)
        assert is_expired(None, NOW)

    def test_tokens_match(self):
        assert tokens_match("abc123", "abc123")
        assert not tokens_match("abc123", "abc124")
        assert not tokens_match("abc", "abc123")
        assert not tokens_match("", "")
        assert not tokens_match(None, "abc")

    def test_minutes_until_rounds_up(self):
        assert minutes_until(NOW + timedelta(minutes=4, seconds=1), NOW) == 5
        assert minutes_until(NOW + timedelta(minutes=15), NOW) == 15
        assert minutes_until(NOW + timedelta(seconds=5), NOW) == 1
        assert minutes_until(NOW - timedelta(minutes=3), NOW) == 1
