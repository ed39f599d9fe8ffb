"""UTC timestamp helpers.

Timestamps are stored as naive UTC ISO-8601 strings with microsecond
precision so that string order matches chronological order.
"""
from datetime import datetime, timezone

from dateutil import parser as date_parser


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def to_iso(value: datetime) -> str:
    """Serialize a datetime the way it is stored."""
    return as_naive_utc(value).isoformat(timespec="microseconds")


def utcnow_iso() -> str:
    return to_iso(utcnow())


def parse_iso_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into a naive UTC datetime.

    Date-only values are read as midnight UTC. Raises ValueError when the
    value cannot be parsed.
    """
    return as_naive_utc(date_parser.isoparse(value.strip()))


def try_parse_iso_timestamp(value: str | None) -> datetime | None:
    """Parse a stored timestamp, returning None when it is empty or malformed."""
    if not value:
        return None
    try:
        return parse_iso_timestamp(value)
    except (ValueError, OverflowError):
        return None
