"""Datetime utilities."""

from datetime import datetime, timezone


def parse_datetime(value) -> datetime | None:
    """Parse datetime from ISO string or return as-is if already datetime.

    Naive datetimes are assumed to be UTC so that mixed inputs stay comparable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
