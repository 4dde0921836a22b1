"""Timezone-aware timestamp helpers.

Columns are ``TIMESTAMP WITHOUT TIME ZONE`` holding UTC, so every timestamp
written by the application goes through :func:`utc_now`.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """
    Current UTC time as an offset-naive datetime.

    Replaces the deprecated ``datetime.utcnow()``. Also usable directly as a
    SQLAlchemy ``default=`` / ``onupdate=`` callable.

    Example:
        >>> utc_now().tzinfo is None
        True
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)
