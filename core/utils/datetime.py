"""Datetime utilities for common operations."""

from datetime import datetime, date, time, timedelta, timezone


def now() -> datetime:
    """Get current datetime in UTC."""
    return datetime.now(timezone.utc)


def isoformat_now() -> str:
    """Current UTC time as an ISO-8601 string."""
    return now().isoformat()


def combine_utc(day: date, clock: time) -> datetime:
    """Join a calendar date and a wall-clock time into an aware UTC datetime."""
    return datetime.combine(day, clock).replace(tzinfo=timezone.utc)


def seconds_ago(seconds: int) -> datetime:
    """UTC instant ``seconds`` before now."""
    return now() - timedelta(seconds=seconds)
