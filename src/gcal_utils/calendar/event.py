"""Calendar event model.

An ``Event`` holds typed attributes and a back-reference to the calendar it
belongs to. Persistence goes through the calendar:

    Unsaved (no id) --save()--> Saved --save()--> Saved
    Saved --delete()--> Deleted (id cleared, reusable as Unsaved)
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable

from gcal_utils.calendar.exceptions import CalendarIdMissing, InvalidArgument
from gcal_utils.calendar.recurrence import canonicalize, is_recurring
from gcal_utils.calendar.times import TimeValue, local_date, parse_time, to_local

if TYPE_CHECKING:
    from gcal_utils.calendar.client import Calendar

ID_PATTERN = re.compile(r"[a-v0-9]{5,1024}")
VISIBILITIES = ("default", "public", "private", "confidential")
TRANSPARENCIES = ("opaque", "transparent")
SECONDS_PER_DAY = 86400

EventMutator = Callable[["Event"], Any]


def validate_id(event_id: str) -> str:
    """Check a caller-assigned event id (base32hex, 5 to 1024 chars).

    Raises:
        InvalidArgument: If the id has the wrong alphabet or length.
    """
    if not isinstance(event_id, str) or not ID_PATTERN.fullmatch(event_id):
        raise InvalidArgument(
            f"Event id {event_id!r} must be 5-1024 characters from a-v and 0-9"
        )
    return event_id


class Event:
    """A single calendar event.

    Example:
        >>> event = calendar.new_event(title="Standup", start_time=start)
        >>> event.end_time = start + timedelta(minutes=15)
        >>> event.save()
    """

    def __init__(
        self,
        id: str | None = None,
        title: str | None = None,
        description: str | None = None,
        location: str | None = None,
        start_time: TimeValue | str | None = None,
        end_time: TimeValue | str | None = None,
        all_day: TimeValue | str | None = None,
        recurrence: dict[str, Any] | None = None,
        reminders: dict[str, Any] | list[dict[str, Any]] | None = None,
        attendees: list[dict[str, Any]] | None = None,
        transparency: bool | str | None = None,
        visibility: str | None = None,
        extended_properties: dict[str, dict[str, str]] | None = None,
        color_id: str | None = None,
        creator_name: str | None = None,
        time_zone: str | None = None,
        guests_can_invite_others: bool | None = None,
        guests_can_see_other_guests: bool | None = None,
        send_notifications: bool = False,
        quickadd: bool = False,
        new_event_with_id_specified: bool = False,
        calendar: Calendar | None = None,
    ):
        self._id: str | None = None
        if id is not None:
            self.id = id

        self.title = title
        self.description = description
        self.location = location
        self.start_time = start_time
        self.end_time = end_time
        self.recurrence = recurrence
        self.reminders = reminders
        self.attendees = attendees
        self.transparency = transparency
        self.visibility = visibility
        self.extended_properties = extended_properties
        self.color_id = color_id
        self.creator_name = creator_name
        self.time_zone = time_zone
        self.guests_can_invite_others = guests_can_invite_others
        self.guests_can_see_other_guests = guests_can_see_other_guests
        self.send_notifications = send_notifications
        self.quickadd = quickadd
        self.new_event_with_id_specified = new_event_with_id_specified
        self.calendar = calendar

        # Filled in from server responses
        self.status: str | None = None
        self.html_link: str | None = None
        self.raw: Any = None

        if all_day is not None:
            self.set_all_day(all_day)

    # =========================================================================
    # Identity
    # =========================================================================

    @property
    def id(self) -> str | None:
        return self._id

    @id.setter
    def id(self, value: str | None) -> None:
        self._id = None if value is None else validate_id(value)

    def assign_server_id(self, value: str | None) -> None:
        """Take an id from a server response without validating it.

        Recurring-event instances carry ids like ``abc123_20120331T100000Z``
        that fall outside the caller-assignable alphabet.
        """
        self._id = value

    @property
    def is_new(self) -> bool:
        """True until the server has stored the event."""
        return self._id is None or self.new_event_with_id_specified

    @property
    def use_quickadd(self) -> bool:
        """Quick-add applies only to events that were never saved."""
        return bool(self.quickadd) and self._id is None

    # =========================================================================
    # Times
    # =========================================================================

    @property
    def start_time(self) -> TimeValue:
        """Start time; a new event without one starts now."""
        if self._start_time is None:
            self._start_time = datetime.now(timezone.utc).replace(microsecond=0)
        return self._start_time

    @start_time.setter
    def start_time(self, value: TimeValue | str | None) -> None:
        self._start_time = None if value is None else parse_time(value)

    @property
    def end_time(self) -> TimeValue:
        """End time; a new event without one ends an hour from now."""
        if self._end_time is None:
            now = datetime.now(timezone.utc).replace(microsecond=0)
            self._end_time = now + timedelta(hours=1)
        return self._end_time

    @end_time.setter
    def end_time(self, value: TimeValue | str | None) -> None:
        self._end_time = None if value is None else parse_time(value)

    @property
    def all_day(self) -> bool:
        """Whether the event spans whole local days.

        Pure dates on both ends make an all-day event. Otherwise the event is
        all-day when it starts at local midnight and lasts a non-zero whole
        number of days.
        """
        start, end = self.start_time, self.end_time
        if not isinstance(start, datetime) and not isinstance(end, datetime):
            return end > start

        start, end = to_local(start), to_local(end)
        seconds = (end - start).total_seconds()
        if seconds <= 0 or seconds % SECONDS_PER_DAY:
            return False
        return start.hour == start.minute == start.second == start.microsecond == 0

    def set_all_day(self, day: TimeValue | str) -> None:
        """Make this a one-day all-day event on ``day``."""
        day = local_date(parse_time(day))
        self._start_time = day
        self._end_time = day + timedelta(days=1)

    @property
    def duration(self) -> int:
        """Length of the event in seconds."""
        return int((to_local(self.end_time) - to_local(self.start_time)).total_seconds())

    # =========================================================================
    # Validated attributes
    # =========================================================================

    @property
    def transparency(self) -> str:
        return self._transparency

    @transparency.setter
    def transparency(self, value: bool | str | None) -> None:
        # True marks the time as free, False (and the default) as busy
        if value is None or value is False:
            self._transparency = "opaque"
        elif value is True:
            self._transparency = "transparent"
        elif isinstance(value, str) and value.lower() in TRANSPARENCIES:
            self._transparency = value.lower()
        else:
            raise InvalidArgument(f"Invalid transparency: {value!r}")

    @property
    def is_transparent(self) -> bool:
        return self._transparency == "transparent"

    @property
    def is_opaque(self) -> bool:
        return self._transparency == "opaque"

    @property
    def visibility(self) -> str:
        return self._visibility

    @visibility.setter
    def visibility(self, value: str | None) -> None:
        if value is None:
            self._visibility = "default"
            return
        if value not in VISIBILITIES:
            raise InvalidArgument(
                f"Invalid visibility {value!r}, expected one of {', '.join(VISIBILITIES)}"
            )
        self._visibility = value

    @property
    def recurrence(self) -> dict[str, Any]:
        """Recurrence rule, see ``gcal_utils.calendar.recurrence``."""
        return self._recurrence

    @recurrence.setter
    def recurrence(self, value: dict[str, Any] | None) -> None:
        self._recurrence = canonicalize(value) if value else {}

    @property
    def is_recurring(self) -> bool:
        return is_recurring(self._recurrence)

    @property
    def reminders(self) -> dict[str, Any]:
        """``{"useDefault": bool, "overrides": [...]}``.

        Each override sets one of ``minutes``, ``hours`` or ``days`` and an
        optional ``method``.
        """
        return self._reminders

    @reminders.setter
    def reminders(self, value: dict[str, Any] | list[dict[str, Any]] | None) -> None:
        if value is None:
            self._reminders = {"useDefault": True}
        elif isinstance(value, list):
            self._reminders = {"useDefault": False, "overrides": list(value)}
        else:
            self._reminders = dict(value)

    @property
    def extended_properties(self) -> dict[str, dict[str, str]]:
        return self._extended_properties

    @extended_properties.setter
    def extended_properties(self, value: dict[str, dict[str, str]] | None) -> None:
        self._extended_properties = dict(value or {})

    # =========================================================================
    # Persistence
    # =========================================================================

    def save(self) -> Event:
        """Create or update the event on its calendar.

        Raises:
            CalendarIdMissing: If the event is not bound to a calendar.
        """
        return self._require_calendar().save_event(self)

    def delete(self) -> None:
        """Remove the event from its calendar and clear its id."""
        if self._id is None:
            return
        self._require_calendar().delete_event(self)

    def update_after_save(self, fields: dict[str, Any]) -> None:
        """Merge server-computed fields from a create/update response."""
        if fields.get("id"):
            self.assign_server_id(fields["id"])
        if fields.get("html_link"):
            self.html_link = fields["html_link"]
        if fields.get("status"):
            self.status = fields["status"]
        self.raw = fields.get("raw", self.raw)
        self.new_event_with_id_specified = False

    def clear_after_delete(self) -> None:
        self._id = None
        self.new_event_with_id_specified = False
        self.status = "cancelled"

    def _require_calendar(self) -> Calendar:
        if self.calendar is None:
            raise CalendarIdMissing("Event is not bound to a calendar")
        return self.calendar

    def __str__(self) -> str:
        lines = [
            f"Event Id '{self._id}'",
            f"\tStatus: {self.status}",
            f"\tTitle: {self.title}",
            f"\tStarts: {self.start_time}",
            f"\tEnds: {self.end_time}",
            f"\tLocation: {self.location}",
            f"\tDescription: {self.description}",
            f"\tColor: {self.color_id}",
        ]
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"Event(id={self._id!r}, title={self.title!r}, start_time={self.start_time!r})"
