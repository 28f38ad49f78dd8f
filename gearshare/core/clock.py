"""Naive-UTC clock. Timestamps are stored without tzinfo."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)
