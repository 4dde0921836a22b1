"""Tests for log redaction helpers."""

import pytest

from leadflow.utils.logging_utils import redact_email, redact_ip, redact_pii


@pytest.mark.unit
class TestRedactEmail:
    def test_keeps_first_letter_and_domain(self):
        assert redact_email("jane.doe@example.com") == "j***@example.com"

    def test_short_local_part_is_hashed(self):
        redacted = redact_email("ab@example.com")
        assert redacted.startswith("hash:")
        assert redacted.endswith("@example.com")
        assert "ab@" not in redacted

    def test_hash_is_stable(self):
        assert redact_email("ab@example.com") == redact_email("ab@example.com")

    def test_malformed(self):
        assert redact_email("not-an-email").startswith("hash:")

    def test_none(self):
        assert redact_email(None) == "N/A"


@pytest.mark.unit
class TestRedactIp:
    def test_ipv4(self):
        assert redact_ip("192.168.1.100") == "192.168.1.***"

    def test_ipv6(self):
        assert redact_ip("2001:db8:85a3:0:0:8a2e:370:7334") == "2001:db8:85a3:***"

    def test_none(self):
        assert redact_ip(None) == "N/A"


@pytest.mark.unit
class TestRedactPii:
    def test_email_scrubbed(self):
        text = "duplicate key value for jane@example.com"
        assert redact_pii(text) == "duplicate key value for [REDACTED_EMAIL]"

    def test_otpauth_uri_scrubbed(self):
        text = "uri=otpauth://totp/Leadflow:jane?secret=JBSWY3DPEHPK3PXP&issuer=Leadflow"
        assert "JBSWY3DPEHPK3PXP" not in redact_pii(text)

    def test_token_scrubbed(self):
        text = "token=eyJhbGciOiJIUzI1NiJ9.payload.signature"
        assert "eyJhbGciOiJIUzI1NiJ9" not in redact_pii(text)

    def test_password_scrubbed(self):
        assert "hunter2" not in redact_pii("password: hunter2")

    def test_empty(self):
        assert redact_pii("") == ""
        assert redact_pii(None) is None
