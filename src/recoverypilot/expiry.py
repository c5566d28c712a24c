"""Summary: Expiry policy for stored access tokens.

Importance: Lets callers skip the token endpoint unless expiry is near.
Alternatives: Refresh before every mailbox read.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum


class ExpiryStatus(Enum):
    VALID = "valid"
    EXPIRED_MUST_FAIL = "expired_must_fail"
    REFRESH_SOON = "refresh_soon"


def needs_refresh(
    expires_at: datetime | None,
    warning_window_minutes: int,
    now: datetime,
) -> ExpiryStatus:
    """Summary: Classify a token expiry against a warning window.

    Importance: Drives the refresh decision before any network call is made.
    Alternatives: Track refresh deadlines in a background scheduler.
    """

    if expires_at is None:
        return ExpiryStatus.EXPIRED_MUST_FAIL
    remaining = as_utc(expires_at) - as_utc(now)
    if remaining <= timedelta(0):
        return ExpiryStatus.EXPIRED_MUST_FAIL
    if remaining <= timedelta(minutes=warning_window_minutes):
        return ExpiryStatus.REFRESH_SOON
    return ExpiryStatus.VALID


def as_utc(value: datetime) -> datetime:
    """Summary: Normalize a datetime to timezone-aware UTC.

    Importance: Naive values from storage compare safely against aware ones.
    Alternatives: Store and compare only naive UTC datetimes.
    """

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
