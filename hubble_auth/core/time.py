"""Time helpers shared by models and services."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def as_aware(value: datetime) -> datetime:
    """SQLite drops tzinfo on round-trip; treat naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def expires_in(seconds: int) -> datetime:
    return utcnow() + timedelta(seconds=seconds)


__all__ = ["as_aware", "expires_in", "utcnow"]
