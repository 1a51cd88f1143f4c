"""Date/time helpers shared by the event model and codecs.

Event times are either a ``date`` (an all-day boundary) or a ``datetime``.
Naive datetimes are read as local time.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone

from gcal_utils.calendar.exceptions import InvalidArgument

TimeValue = datetime | date


def parse_time(value: TimeValue | str) -> TimeValue:
    """Accept a datetime, a date, or an ISO 8601 string.

    Raises:
        InvalidArgument: If the value cannot be read as a time.
    """
    if isinstance(value, (datetime, date)):
        return value
    if not isinstance(value, str):
        raise InvalidArgument(
            f"Time must be a datetime, date or ISO 8601 string, got {type(value).__name__}"
        )

    text = value.strip()
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError as e:
        raise InvalidArgument(f"Invalid time value: {value!r}") from e


def to_local(value: TimeValue) -> datetime:
    """Aware datetime in the local timezone; dates become local midnight."""
    if not isinstance(value, datetime):
        value = datetime.combine(value, time())
    return value.astimezone()


def format_datetime(value: TimeValue) -> str:
    """RFC 3339 timestamp with offset, seconds precision."""
    if not isinstance(value, datetime) or value.tzinfo is None:
        value = to_local(value)
    return value.isoformat(timespec="seconds")


def format_utc(value: TimeValue | str) -> str:
    """Compact UTC timestamp used for query bounds (``2012-03-31T07:00:00Z``)."""
    value = parse_time(value)
    return to_local(value).astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def local_date(value: TimeValue) -> date:
    """Calendar date of a time value in local time."""
    if not isinstance(value, datetime):
        return value
    return to_local(value).date()
