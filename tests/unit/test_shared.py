"""Unit tests for the shared/ package."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from shared import logging as shared_logging
from shared.crypto import hash_password, hash_token, tokens_match, verify_password
from shared.datetime_utils import ensure_utc, minutes_until, seconds_until, utcnow
from shared.generators import generate_otp_code
from shared.ip_utils import get_client_ip
from shared.validators import (
    get_password_requirements,
    normalize_email,
    validate_age,
    validate_email,
    validate_name_part,
    validate_otp_format,
    validate_password,
)


def _make_request(headers: dict | None = None, client_host: str | None = "127.0.0.1"):
    """Build a minimal mock of a starlette Request."""
    request = MagicMock()
    request.headers = headers or {}
    if client_host is None:
        request.client = None
    else:
        request.client = MagicMock()
        request.client.host = client_host
    return request


# ---------------------------------------------------------------------------
# shared.crypto
# ---------------------------------------------------------------------------


class TestHashPassword:
    def test_returns_argon2_hash(self):
        hashed = hash_password("Secret1!")
        assert hashed.startswith("$argon2")

    def test_same_password_hashes_differently(self):
        assert hash_password("Secret1!") != hash_password("Secret1!")


class TestVerifyPassword:
    def test_correct_password(self):
        hashed = hash_password("Secret1!")
        assert verify_password("Secret1!", hashed) is True

    def test_wrong_password(self):
        hashed = hash_password("Secret1!")
        assert verify_password("Secret2!", hashed) is False

    @pytest.mark.parametrize("stored", [None, ""], ids=["none", "empty"])
    def test_missing_hash(self, stored):
        assert verify_password("Secret1!", stored) is False

    def test_garbage_hash(self):
        assert verify_password("Secret1!", "not-a-hash") is False


class TestHashToken:
    def test_sha256_hex(self):
        digest = hash_token("123456")
        assert len(digest) == 64
        assert digest == hash_token("123456")

    def test_tokens_match(self):
        stored = hash_token("123456")
        assert tokens_match(stored, "123456") is True
        assert tokens_match(stored, "654321") is False


# ---------------------------------------------------------------------------
# shared.generators
# ---------------------------------------------------------------------------


class TestGenerateOtpCode:
    def test_six_digits_by_default(self):
        for _ in range(50):
            code = generate_otp_code()
            assert len(code) == 6
            assert code.isdigit()
            assert code[0] != "0"

    def test_custom_length(self):
        assert len(generate_otp_code(8)) == 8


# ---------------------------------------------------------------------------
# shared.validators
# ---------------------------------------------------------------------------


class TestEmailValidation:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("  User@Example.COM ", "user@example.com"),
            (None, ""),
            ("", ""),
        ],
        ids=["trim_lower", "none", "empty"],
    )
    def test_normalize(self, raw, expected):
        assert normalize_email(raw) == expected

    @pytest.mark.parametrize(
        "email,valid",
        [
            ("a@b.co", True),
            ("first.last@sub.example.org", True),
            ("no-at-sign.com", False),
            ("a@b", False),
            ("a b@c.com", False),
            ("", False),
        ],
        ids=["simple", "dotted", "no_at", "no_tld", "space", "empty"],
    )
    def test_validate(self, email, valid):
        assert validate_email(email) is valid


class TestOtpFormat:
    @pytest.mark.parametrize(
        "code,valid",
        [("123456", True), ("12345", False), ("1234567", False), ("12a456", False), ("", False)],
        ids=["ok", "short", "long", "alpha", "empty"],
    )
    def test_format(self, code, valid):
        assert validate_otp_format(code) is valid


class TestValidateAge:
    @pytest.mark.parametrize(
        "age,expected",
        [
            (13, 13),
            (120, 120),
            ("25", 25),
            (12, None),
            (121, None),
            ("abc", None),
            (None, None),
        ],
        ids=["min", "max", "string", "too_young", "too_old", "not_number", "none"],
    )
    def test_range(self, age, expected):
        assert validate_age(age) == expected


class TestValidateNamePart:
    def test_accepts_normal_name(self):
        assert validate_name_part("Ada") is True

    def test_rejects_blank(self):
        assert validate_name_part("   ") is False

    def test_rejects_too_long(self):
        assert validate_name_part("x" * 51) is False


class TestValidatePassword:
    def test_strong_password(self):
        ok, missing = validate_password("Str0ng!pass")
        assert ok is True
        assert missing == []

    def test_empty_password(self):
        ok, missing = validate_password("")
        assert ok is False
        assert missing == ["Password is required"]

    @pytest.mark.parametrize(
        "password,requirement",
        [
            ("Sh0rt!", "At least 8 characters"),
            ("A1!" + "a" * 130, "Maximum 128 characters"),
            ("lower1!case", "At least one uppercase letter"),
            ("UPPER1!CASE", "At least one lowercase letter"),
            ("NoDigits!!", "At least one number"),
            ("NoSpecial11", "At least one special character"),
        ],
        ids=["short", "long", "no_upper", "no_lower", "no_digit", "no_special"],
    )
    def test_reports_missing_requirement(self, password, requirement):
        ok, missing = validate_password(password)
        assert ok is False
        assert requirement in missing

    def test_requirements_list_covers_every_rule(self):
        assert len(get_password_requirements()) == 6


# ---------------------------------------------------------------------------
# shared.datetime_utils
# ---------------------------------------------------------------------------


class TestDatetimeUtils:
    def test_utcnow_is_aware(self):
        assert utcnow().tzinfo is not None

    def test_ensure_utc_naive(self):
        naive = datetime(2026, 1, 1, 12, 0)
        assert ensure_utc(naive) == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_ensure_utc_converts_offset(self):
        plus_two = timezone(timedelta(hours=2))
        value = ensure_utc(datetime(2026, 1, 1, 14, 0, tzinfo=plus_two))
        assert value == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert value.tzinfo == timezone.utc

    def test_ensure_utc_none(self):
        assert ensure_utc(None) is None

    def test_seconds_until_rounds_up(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert seconds_until(now + timedelta(milliseconds=1500), now) == 2

    def test_minutes_until(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert minutes_until(now + timedelta(minutes=29, seconds=1), now) == 30
        assert minutes_until(now - timedelta(minutes=5), now) == 0


# ---------------------------------------------------------------------------
# shared.ip_utils
# ---------------------------------------------------------------------------


class TestGetClientIp:
    @pytest.mark.parametrize(
        "headers,expected",
        [
            ({"CF-Connecting-IP": "1.1.1.1", "X-Forwarded-For": "2.2.2.2"}, "1.1.1.1"),
            ({"X-Forwarded-For": "3.3.3.3, 10.0.0.1"}, "3.3.3.3"),
            ({"X-Real-IP": "4.4.4.4"}, "4.4.4.4"),
            ({}, "127.0.0.1"),
        ],
        ids=["cloudflare_wins", "forwarded_first_hop", "real_ip", "direct"],
    )
    def test_header_precedence(self, headers, expected):
        assert get_client_ip(_make_request(headers)) == expected

    def test_proxy_headers_ignored_when_untrusted(self):
        request = _make_request({"X-Forwarded-For": "3.3.3.3"}, client_host="10.0.0.9")
        assert get_client_ip(request, trust_proxy_headers=False) == "10.0.0.9"

    def test_no_client(self):
        assert get_client_ip(_make_request(client_host=None)) == ""


# ---------------------------------------------------------------------------
# shared.logging
# ---------------------------------------------------------------------------


class TestRedaction:
    def test_sensitive_keys_are_redacted(self):
        event = {
            "event": "login_attempt",
            "password": "hunter2",
            "new_password": "hunter3",
            "jwt_token": "abc",
            "otp_code": "123456",
            "email": "a@b.co",
            "otp_type": "signup",
        }
        result = shared_logging.redact_sensitive_fields(None, "info", event)
        assert result["password"] == "***REDACTED***"
        assert result["new_password"] == "***REDACTED***"
        assert result["jwt_token"] == "***REDACTED***"
        assert result["otp_code"] == "***REDACTED***"
        assert result["email"] == "a@b.co"
        assert result["otp_type"] == "signup"
        assert result["event"] == "login_attempt"


class TestHashIp:
    def test_passthrough_outside_production(self, monkeypatch):
        monkeypatch.setattr(shared_logging, "_hash_ips", False)
        assert shared_logging.hash_ip("1.2.3.4") == "1.2.3.4"

    def test_hashed_in_production(self, monkeypatch):
        monkeypatch.setattr(shared_logging, "_hash_ips", True)
        hashed = shared_logging.hash_ip("1.2.3.4")
        assert hashed != "1.2.3.4"
        assert len(hashed) == 16

    def test_none(self):
        assert shared_logging.hash_ip(None) is None
