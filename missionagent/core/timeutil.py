"""
Time helpers. Every stored timestamp is naive UTC.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def minutes_between(start: datetime, end: datetime) -> float:
    """Elapsed minutes between two timestamps, rounded to 0.01."""
    return round((end - start).total_seconds() / 60.0, 2)
