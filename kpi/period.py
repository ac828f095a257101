"""
kpi/period.py

Reference-time and look-back window helpers.

Every period-sensitive metric accepts an optional ``now`` so tests (and
callers computing several metrics from one snapshot) can pin the clock.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def resolve_now(now: datetime | None = None) -> datetime:
    """Return *now* as an aware UTC datetime, defaulting to the current time."""
    if now is None:
        return datetime.now(tz=timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def normalize_period_days(period_days: int) -> int:
    """A non-positive look-back window is treated as one day."""
    return 1 if period_days <= 0 else period_days


def period_cutoff(now: datetime, period_days: int) -> datetime:
    """Start of the look-back window ending at *now*."""
    return now - timedelta(days=period_days)
