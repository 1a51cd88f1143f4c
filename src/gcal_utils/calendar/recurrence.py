"""Recurrence rule parsing and serialization.

Rules are handled as plain dicts with lowercase keys and values, e.g.
``{"freq": "weekly", "byday": "mo,we,fr", "interval": "2"}``. ``until`` is a
UTC ``datetime``. On the wire the same rule reads
``RRULE:FREQ=WEEKLY;BYDAY=MO,WE,FR;INTERVAL=2``.

Allowed keys:
    freq      daily, weekly, monthly or yearly (required for a recurring event)
    count     how many times the event occurs
    until     last possible occurrence (datetime)
    interval  every N periods
    byday     comma separated days, optionally with an ordinal ("2mo", "-1th")

``count`` and ``until`` are mutually exclusive.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from gcal_utils.calendar.exceptions import InvalidArgument

RRULE_PREFIX = "RRULE:"
UNTIL_FORMAT = "%Y%m%dT%H%M%SZ"
_UNTIL_INPUT_FORMATS = ("%Y%m%dT%H%M%SZ", "%Y%m%dT%H%M%S", "%Y%m%d")


def parse_until(value: str) -> datetime:
    """Parse an RRULE ``UNTIL`` value into a UTC datetime.

    Raises:
        InvalidArgument: If the value is not a compact RRULE timestamp.
    """
    text = value.strip().upper()
    for fmt in _UNTIL_INPUT_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    raise InvalidArgument(f"Invalid recurrence until value: {value!r}")


def format_until(value: datetime | date | str) -> str:
    """Format an ``until`` value in the fixed compact UTC form."""
    if isinstance(value, str):
        value = parse_until(value)
    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    elif value.tzinfo is None:
        value = value.astimezone()
    return value.astimezone(timezone.utc).strftime(UNTIL_FORMAT)


def canonicalize(rule: dict[str, Any]) -> dict[str, Any]:
    """Lowercase keys and values; normalize ``until`` to a UTC datetime."""
    result: dict[str, Any] = {}
    for key, value in rule.items():
        key = str(key).lower()
        if key == "until":
            result[key] = parse_until(format_until(value))
        else:
            result[key] = str(value).lower()
    return result


def is_recurring(rule: dict[str, Any] | None) -> bool:
    """A rule describes a recurring event once it has a frequency."""
    if not rule:
        return False
    return any(str(key).lower() == "freq" and value for key, value in rule.items())


def parse_rule(entries: list[str] | str | None) -> dict[str, Any]:
    """Parse the ``RRULE:`` entry of a recurrence list.

    Args:
        entries: A single rule string or the event's ``recurrence`` list
            (which may also hold EXDATE/RDATE lines).

    Returns:
        Canonical rule dict, empty if there is no RRULE.

    Raises:
        InvalidArgument: If the rule is malformed.
    """
    if not entries:
        return {}
    if isinstance(entries, str):
        entries = [entries]

    for entry in entries:
        index = entry.upper().find(RRULE_PREFIX)
        if index == -1:
            continue
        text = entry[index + len(RRULE_PREFIX):].strip()
        break
    else:
        return {}

    rule: dict[str, Any] = {}
    for part in filter(None, text.split(";")):
        key, sep, value = part.partition("=")
        if not sep or not key.strip():
            raise InvalidArgument(f"Malformed recurrence rule segment: {part!r}")
        key = key.strip().lower()
        value = value.strip()
        rule[key] = parse_until(value) if key == "until" else value.lower()
    return rule


def serialize_rule(rule: dict[str, Any]) -> str:
    """Build the ``RRULE:`` string for a rule dict.

    Raises:
        InvalidArgument: If the rule has no frequency, or sets both ``count``
            and ``until``.
    """
    canonical = canonicalize(rule)
    if "freq" not in canonical:
        raise InvalidArgument("Recurrence rule requires a freq")
    if "count" in canonical and "until" in canonical:
        raise InvalidArgument("Recurrence rule cannot set both count and until")

    parts = []
    for key, value in canonical.items():
        if key == "until":
            value = format_until(value)
        parts.append(f"{key}={value}".upper())
    return RRULE_PREFIX + ";".join(parts)
