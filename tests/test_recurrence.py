"""Tests for recurrence rule parsing and serialization."""

from datetime import date, datetime, timezone

import pytest

from gcal_utils.calendar import InvalidArgument
from gcal_utils.calendar.recurrence import (
    canonicalize,
    format_until,
    is_recurring,
    parse_rule,
    parse_until,
    serialize_rule,
)


class TestParseRule:
    """Test reading RRULE strings."""

    def test_lowercases_keys_and_values(self):
        """Should split on ';' and '=' and lowercase everything."""
        rule = parse_rule(["RRULE:FREQ=WEEKLY;BYDAY=MO,WE;INTERVAL=2"])
        assert rule == {"freq": "weekly", "byday": "mo,we", "interval": "2"}

    def test_until_becomes_datetime(self):
        """Should convert until into a UTC datetime."""
        rule = parse_rule("RRULE:FREQ=DAILY;UNTIL=20120415T000000Z")
        assert rule["until"] == datetime(2012, 4, 15, tzinfo=timezone.utc)

    def test_date_only_until(self):
        """Should accept a date-only until value."""
        rule = parse_rule("RRULE:FREQ=DAILY;UNTIL=20120415")
        assert rule["until"] == datetime(2012, 4, 15, tzinfo=timezone.utc)

    def test_skips_other_recurrence_lines(self):
        """Should find the RRULE among EXDATE lines."""
        rule = parse_rule(["EXDATE:20120407T100000Z", "RRULE:FREQ=MONTHLY;COUNT=3"])
        assert rule == {"freq": "monthly", "count": "3"}

    def test_no_rule(self):
        """Should return an empty rule when there is nothing to parse."""
        assert parse_rule(None) == {}
        assert parse_rule(["EXDATE:20120407T100000Z"]) == {}

    def test_malformed_segment(self):
        """Should reject a segment without '='."""
        with pytest.raises(InvalidArgument):
            parse_rule("RRULE:FREQ=DAILY;BOGUS")

    def test_malformed_until(self):
        """Should reject an unreadable until value."""
        with pytest.raises(InvalidArgument):
            parse_until("next tuesday")


class TestSerializeRule:
    """Test writing RRULE strings."""

    def test_serialize(self):
        """Should uppercase keys and values behind the RRULE prefix."""
        assert serialize_rule({"freq": "weekly", "byday": "mo,we"}) == "RRULE:FREQ=WEEKLY;BYDAY=MO,WE"

    def test_until_format(self):
        """Should write until in compact UTC form."""
        until = datetime(2012, 4, 15, 12, 30, tzinfo=timezone.utc)
        assert serialize_rule({"freq": "daily", "until": until}) == (
            "RRULE:FREQ=DAILY;UNTIL=20120415T123000Z"
        )

    def test_date_until(self):
        """Should accept a plain date for until."""
        assert format_until(date(2012, 4, 15)) == "20120415T000000Z"

    def test_requires_frequency(self):
        """Should reject a rule without freq."""
        with pytest.raises(InvalidArgument, match="freq"):
            serialize_rule({"count": 3})

    def test_count_and_until_are_exclusive(self):
        """Should reject a rule that sets both count and until."""
        until = datetime(2012, 4, 15, tzinfo=timezone.utc)
        with pytest.raises(InvalidArgument, match="count and until"):
            serialize_rule({"freq": "daily", "count": 3, "until": until})

    @pytest.mark.parametrize(
        "rule",
        [
            {"freq": "daily"},
            {"FREQ": "Weekly", "INTERVAL": 2, "BYDAY": "MO,FR"},
            {"freq": "monthly", "count": 5, "byday": "2mo"},
            {"freq": "yearly", "until": datetime(2014, 1, 1, 9, 15, tzinfo=timezone.utc)},
        ],
    )
    def test_parse_reverses_serialize(self, rule):
        """Should read back the canonical form of what it writes."""
        assert parse_rule(serialize_rule(rule)) == canonicalize(rule)


def test_is_recurring():
    """Should only call a rule with a frequency recurring."""
    assert is_recurring({"freq": "daily"}) is True
    assert is_recurring({"count": "3"}) is False
    assert is_recurring({}) is False
    assert is_recurring(None) is False
