"""Tests for the Event model."""

from datetime import date, datetime, timedelta, timezone

import pytest

from gcal_utils.calendar import CalendarIdMissing, Event, InvalidArgument


class TestIdentifier:
    """Test caller-assigned id validation."""

    def test_valid_id(self):
        """Should accept a base32hex id."""
        event = Event(id="fhru34kt6ikmr20knd2456l08n")
        assert event.id == "fhru34kt6ikmr20knd2456l08n"

    @pytest.mark.parametrize("bad_id", ["BAD ID!", "abcd", "wxyz12345", "ABCDE12345", "a" * 1025])
    def test_invalid_id(self, bad_id):
        """Should reject ids outside a-v0-9 or 5..1024 chars."""
        with pytest.raises(InvalidArgument):
            Event(id=bad_id)

    def test_assign_invalid_id_later(self):
        """Should validate on assignment too."""
        event = Event()
        with pytest.raises(InvalidArgument):
            event.id = "BAD ID!"

    def test_server_ids_skip_validation(self):
        """Should accept recurring-instance ids from the server."""
        event = Event()
        event.update_after_save({"id": "abc123_20120331T100000Z"})
        assert event.id == "abc123_20120331T100000Z"


class TestValidatedAttributes:
    """Test visibility and transparency."""

    @pytest.mark.parametrize("visibility", ["default", "public", "private", "confidential"])
    def test_valid_visibility(self, visibility):
        """Should accept the four visibility values."""
        assert Event(visibility=visibility).visibility == visibility

    def test_default_visibility(self):
        """Should default to default visibility."""
        assert Event().visibility == "default"

    def test_invalid_visibility(self):
        """Should reject unknown visibility values."""
        with pytest.raises(InvalidArgument, match="visibility"):
            Event(visibility="secret")

    @pytest.mark.parametrize("visibility", ["PUBLIC", "Private", " default"])
    def test_visibility_is_case_sensitive(self, visibility):
        """Should reject visibility values that differ only in case or spacing."""
        with pytest.raises(InvalidArgument, match="visibility"):
            Event(visibility=visibility)

    def test_transparency(self):
        """Should map booleans and names to transparency."""
        assert Event().transparency == "opaque"
        assert Event(transparency=True).is_transparent is True
        assert Event(transparency=False).is_opaque is True
        assert Event(transparency="TRANSPARENT").transparency == "transparent"

    def test_invalid_transparency(self):
        """Should reject unknown transparency values."""
        with pytest.raises(InvalidArgument):
            Event(transparency="see-through")


class TestTimes:
    """Test time parsing and the all-day rule."""

    def test_default_times(self):
        """Should start now and end an hour later when no times are given."""
        before = datetime.now(timezone.utc).replace(microsecond=0)
        event = Event()
        after = datetime.now(timezone.utc)

        assert before <= event.start_time <= after
        assert event.end_time - event.start_time <= timedelta(hours=1, seconds=1)
        assert event.duration in (3600, 3599, 3601)

    def test_parses_strings(self):
        """Should parse ISO 8601 strings and dates."""
        event = Event(start_time="2012-03-27T10:00:00-07:00", end_time="2012-03-31")
        assert event.start_time == datetime(2012, 3, 27, 17, 0, tzinfo=timezone.utc)
        assert event.end_time == date(2012, 3, 31)

    def test_invalid_time(self):
        """Should reject an unreadable time string."""
        with pytest.raises(InvalidArgument):
            Event(start_time="tomorrow at noon")

    def test_invalid_time_type(self):
        """Should reject values that are not times."""
        with pytest.raises(InvalidArgument):
            Event(start_time=12345)

    def test_pure_dates_are_all_day(self):
        """Should treat a one-day date range as all-day."""
        event = Event(start_time="2012-03-31", end_time="2012-04-01")
        assert event.all_day is True

    def test_multi_day_dates_are_all_day(self):
        """Should treat a multi-day date range as all-day."""
        event = Event(start_time="2012-03-31", end_time="2012-04-03")
        assert event.all_day is True

    def test_day_long_but_not_midnight(self):
        """Should not treat 24 hours starting mid-day as all-day."""
        event = Event(
            start_time="2012-03-27T10:00:00-07:00", end_time="2012-03-28T10:00:00-07:00"
        )
        assert event.all_day is False

    def test_midnight_to_midnight(self):
        """Should treat local midnight plus whole days as all-day."""
        event = Event(
            start_time=datetime(2012, 3, 31, tzinfo=timezone.utc),
            end_time=datetime(2012, 4, 2, tzinfo=timezone.utc),
        )
        assert event.all_day is True

    def test_zero_length_is_not_all_day(self):
        """Should not treat a zero-length event as all-day."""
        start = datetime(2012, 3, 31, tzinfo=timezone.utc)
        assert Event(start_time=start, end_time=start).all_day is False

    def test_all_day_follows_field_changes(self):
        """Should re-derive all-day from the current times."""
        event = Event(start_time="2012-03-31", end_time="2012-04-01")
        event.end_time = datetime(2012, 3, 31, 12, tzinfo=timezone.utc)
        assert event.all_day is False

    def test_set_all_day(self):
        """Should set start and end to one whole day."""
        event = Event(title="Holiday")
        event.set_all_day("2012-05-02T12:24:00")

        assert event.start_time == date(2012, 5, 2)
        assert event.end_time == date(2012, 5, 3)
        assert event.all_day is True
        assert event.duration == 86400

    def test_all_day_constructor_argument(self):
        """Should accept a day through the constructor."""
        event = Event(all_day=date(2012, 5, 2))
        assert (event.start_time, event.end_time) == (date(2012, 5, 2), date(2012, 5, 3))


class TestCollections:
    """Test reminders, recurrence and extended properties."""

    def test_reminder_list(self):
        """Should wrap a list of reminders as overrides."""
        event = Event(reminders=[{"minutes": 6}])
        assert event.reminders == {"useDefault": False, "overrides": [{"minutes": 6}]}

    def test_default_reminders(self):
        """Should use the calendar default reminders when none are given."""
        assert Event().reminders == {"useDefault": True}

    def test_recurrence_is_canonical(self):
        """Should store the recurrence rule in canonical form."""
        event = Event(recurrence={"FREQ": "Weekly", "BYDAY": "MO"})
        assert event.recurrence == {"freq": "weekly", "byday": "mo"}
        assert event.is_recurring is True
        assert Event().is_recurring is False

    def test_extended_properties_default(self):
        """Should default extended properties to an empty dict."""
        assert Event().extended_properties == {}


class TestPersistenceState:
    """Test the Unsaved/Saved/Deleted lifecycle flags."""

    def test_new_event(self):
        """Should be new until the server assigns an id."""
        event = Event(title="Test")
        assert event.is_new is True

        event.update_after_save({"id": "server1234", "html_link": "https://link"})
        assert event.is_new is False
        assert event.html_link == "https://link"

    def test_asserted_id_is_new(self):
        """Should stay new when the caller assigned the id for a create."""
        event = Event(id="abcde12345", new_event_with_id_specified=True)
        assert event.is_new is True

        event.update_after_save({"id": "abcde12345"})
        assert event.is_new is False
        assert event.new_event_with_id_specified is False

    def test_quickadd_only_before_first_save(self):
        """Should stop using quick-add once the event has an id."""
        event = Event(title="movie tomorrow 23:00", quickadd=True)
        assert event.use_quickadd is True

        event.update_after_save({"id": "server1234"})
        assert event.use_quickadd is False

    def test_save_without_calendar(self):
        """Should refuse to save an event that is not bound to a calendar."""
        with pytest.raises(CalendarIdMissing):
            Event(title="Orphan").save()

    def test_delete_unsaved_is_noop(self):
        """Should do nothing when deleting an event that was never saved."""
        Event(title="Unsaved").delete()

    def test_clear_after_delete(self):
        """Should clear the id so the event can be saved again as new."""
        event = Event(id="abcde12345")
        event.clear_after_delete()
        assert event.id is None
        assert event.is_new is True


def test_str():
    """Should summarize the event."""
    event = Event(id="abcde12345", title="Lunch", location="Cafe")
    text = str(event)
    assert text.startswith("Event Id 'abcde12345'")
    assert "Title: Lunch" in text
    assert "Location: Cafe" in text
