"""Logging utilities for PII redaction."""

import hashlib
import re
from typing import Optional


def _short_hash(value: str) -> str:
    return hashlib.sha256(value.encode()).hexdigest()[:6]


def redact_email(email: Optional[str]) -> str:
    """
    Redact an email address for logging while keeping log lines correlatable.

    Examples:
        >>> redact_email("user@example.com")
        'u***@example.com'
        >>> redact_email("ab@example.com")  # doctest: +ELLIPSIS
        'hash:...@example.com'
        >>> redact_email(None)
        'N/A'
    """
    if not email:
        return "N/A"

    local, sep, domain = email.partition("@")
    if not sep or not domain:
        # Malformed email - hash it
        return f"hash:{_short_hash(email)}"

    # Local parts shorter than 3 chars would be almost fully exposed
    if len(local) < 3:
        return f"hash:{_short_hash(email)}@{domain}"

    return f"{local[0]}***@{domain}"


def redact_ip(ip_address: Optional[str]) -> str:
    """
    Redact the host part of an IP address.

    Examples:
        >>> redact_ip("192.168.1.100")
        '192.168.1.***'
        >>> redact_ip(None)
        'N/A'
    """
    if not ip_address:
        return "N/A"

    if "." in ip_address:
        parts = ip_address.split(".")
        if len(parts) == 4:
            return ".".join(parts[:3]) + ".***"

    if ":" in ip_address:
        parts = ip_address.split(":")
        if len(parts) >= 4:
            return ":".join(parts[:3]) + ":***"

    return f"hash:{_short_hash(ip_address)}"


# Patterns scrubbed from free-form text (exception messages, tracebacks)
_PII_PATTERNS = [
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[REDACTED_EMAIL]"),
    (re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b"), "[REDACTED_PHONE]"),
    (re.compile(r"otpauth://\S+"), "[REDACTED_OTPAUTH]"),
    (
        re.compile(r"(password|passwd|pwd)[\"']?\s*[:=]\s*[\"']?([^\"'\s]+)", re.IGNORECASE),
        r"\1=[REDACTED_PASSWORD]",
    ),
    (
        re.compile(r"(token|jwt|bearer|secret)[\"']?\s*[:=]\s*[\"']?([A-Za-z0-9_.-]{16,})", re.IGNORECASE),
        r"\1=[REDACTED_TOKEN]",
    ),
]


def redact_pii(text: Optional[str]) -> Optional[str]:
    """
    Scrub emails, phone numbers, OTP URIs and credentials from free text.

    Examples:
        >>> redact_pii("duplicate key for jane@example.com")
        'duplicate key for [REDACTED_EMAIL]'
    """
    if not text:
        return text
    for pattern, replacement in _PII_PATTERNS:
        text = pattern.sub(replacement, text)
    return text
