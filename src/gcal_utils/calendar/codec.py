"""Wire codecs for calendar events.

``JsonEventCodec`` speaks the v3 JSON API; ``AtomEventCodec`` speaks the
legacy Atom/GData feeds. Both build structured payloads (dicts, or an
ElementTree) and leave serialization to the library.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any
from xml.etree import ElementTree as ET
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx

from gcal_utils.calendar.connection import json_body
from gcal_utils.calendar.event import Event
from gcal_utils.calendar.exceptions import InvalidArgument
from gcal_utils.calendar.recurrence import format_until, parse_rule, parse_until, serialize_rule
from gcal_utils.calendar.times import TimeValue, format_datetime, local_date, parse_time

if TYPE_CHECKING:
    from gcal_utils.calendar.client import Calendar

REMINDER_UNITS = {"minutes": 1, "hours": 60, "days": 1440}
DEFAULT_REMINDER_MINUTES = 10
ATTENDEE_FIELDS = ("displayName", "email", "responseStatus")
EXTENDED_PROPERTY_REALMS = ("shared", "private")


def reminder_offset(override: dict[str, Any]) -> tuple[str, int]:
    """Pick the unit and amount of a reminder override.

    Minutes win over hours, hours over days. No amount means 10 minutes.
    """
    for unit in REMINDER_UNITS:
        if override.get(unit) is not None:
            return unit, int(override[unit])
    return "minutes", DEFAULT_REMINDER_MINUTES


def reminder_overrides(event: Event) -> list[dict[str, Any]]:
    reminders = event.reminders
    if reminders.get("useDefault", False) and not reminders.get("overrides"):
        return []
    return list(reminders.get("overrides") or [])


def resolve_time_zone(event: Event) -> str | None:
    """Time zone name sent with timed start/end values."""
    if event.time_zone:
        return event.time_zone
    tzinfo = getattr(event.start_time, "tzinfo", None)
    key = getattr(tzinfo, "key", None)
    if key:
        return key
    # Recurring events need a zone to expand occurrences
    return "UTC" if event.is_recurring else None


class EventCodec(ABC):
    """Maps ``Event`` objects to and from one wire format."""

    reminder_method: str

    @abstractmethod
    def encode(self, event: Event) -> Any:
        """Build the request body for a create or update."""

    @abstractmethod
    def decode(self, item: Any, calendar: Calendar | None = None) -> Event:
        """Build an ``Event`` from one decoded wire item."""

    @abstractmethod
    def decode_response(
        self, response: httpx.Response, calendar: Calendar | None = None
    ) -> list[Event]:
        """All events in a feed or single-event response."""

    @abstractmethod
    def server_fields(self, response: httpx.Response) -> dict[str, Any]:
        """Server-computed fields of a create/update response."""


class JsonEventCodec(EventCodec):
    """Calendar API v3 JSON representation."""

    reminder_method = "popup"

    def encode(self, event: Event) -> dict[str, Any]:
        all_day = event.all_day
        time_zone = None if all_day else resolve_time_zone(event)

        body: dict[str, Any] = {
            "summary": event.title,
            "visibility": event.visibility,
            "transparency": event.transparency,
            "description": event.description,
            "location": event.location,
            "start": self._encode_time(event.start_time, all_day, time_zone),
            "end": self._encode_time(event.end_time, all_day, time_zone),
            "reminders": self._encode_reminders(event),
            "colorId": event.color_id,
            "guestsCanInviteOthers": event.guests_can_invite_others,
            "guestsCanSeeOtherGuests": event.guests_can_see_other_guests,
        }
        if event.id:
            body["id"] = event.id
        if event.is_recurring:
            body["recurrence"] = [serialize_rule(event.recurrence)]
        if event.attendees is not None:
            body["attendees"] = [
                {key: attendee[key] for key in ATTENDEE_FIELDS if attendee.get(key) is not None}
                for attendee in event.attendees
            ]
        extended = {
            realm: dict(event.extended_properties[realm])
            for realm in EXTENDED_PROPERTY_REALMS
            if event.extended_properties.get(realm)
        }
        if extended:
            body["extendedProperties"] = extended

        return {key: value for key, value in body.items() if value is not None}

    @staticmethod
    def _encode_time(value: TimeValue, all_day: bool, time_zone: str | None) -> dict[str, str]:
        if all_day:
            return {"date": local_date(value).isoformat()}
        result = {"dateTime": format_datetime(value)}
        if time_zone:
            result["timeZone"] = time_zone
        return result

    def _encode_reminders(self, event: Event) -> dict[str, Any]:
        overrides = reminder_overrides(event)
        if not overrides:
            return {"useDefault": bool(event.reminders.get("useDefault", True))}

        encoded = []
        for override in overrides:
            unit, amount = reminder_offset(override)
            encoded.append(
                {
                    "method": override.get("method") or self.reminder_method,
                    "minutes": amount * REMINDER_UNITS[unit],
                }
            )
        return {"useDefault": False, "overrides": encoded}

    def decode(self, item: dict[str, Any], calendar: Calendar | None = None) -> Event:
        """Build an ``Event`` from an API event resource.

        A missing start or end falls back to now / now + 1 hour, the same as a
        freshly constructed event.

        Raises:
            InvalidArgument: If a time or recurrence value is malformed.
        """
        start = item.get("start") or {}
        event = Event(
            title=item.get("summary"),
            description=item.get("description"),
            location=item.get("location"),
            start_time=self._decode_time(start),
            end_time=self._decode_time(item.get("end")),
            recurrence=parse_rule(item.get("recurrence")),
            reminders=item.get("reminders"),
            attendees=item.get("attendees"),
            transparency=item.get("transparency"),
            visibility=item.get("visibility"),
            extended_properties=item.get("extendedProperties"),
            color_id=item.get("colorId"),
            creator_name=(item.get("creator") or {}).get("displayName"),
            time_zone=start.get("timeZone"),
            guests_can_invite_others=item.get("guestsCanInviteOthers"),
            guests_can_see_other_guests=item.get("guestsCanSeeOtherGuests"),
            calendar=calendar,
        )
        event.update_after_save(self._fields(item))
        return event

    @staticmethod
    def _decode_time(value: dict[str, str] | None) -> TimeValue | None:
        if not value:
            return None
        if value.get("date"):
            return parse_time(value["date"])
        if value.get("dateTime"):
            return parse_time(value["dateTime"])
        return None

    def decode_feed(self, payload: dict[str, Any], calendar: Calendar | None = None) -> list[Event]:
        """Events in an ``items`` list, or the payload itself when it is one event."""
        if not payload:
            return []
        if "items" in payload:
            return [self.decode(item, calendar) for item in payload["items"] or []]
        if payload.get("kind") == "calendar#events":
            return []
        return [self.decode(payload, calendar)]

    def decode_response(
        self, response: httpx.Response, calendar: Calendar | None = None
    ) -> list[Event]:
        return self.decode_feed(json_body(response), calendar)

    def server_fields(self, response: httpx.Response) -> dict[str, Any]:
        return self._fields(json_body(response))

    @staticmethod
    def _fields(payload: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": payload.get("id"),
            "html_link": payload.get("htmlLink"),
            "status": payload.get("status"),
            "raw": payload,
        }


# =============================================================================
# Legacy Atom feeds
# =============================================================================

ATOM_NS = "http://www.w3.org/2005/Atom"
GD_NS = "http://schemas.google.com/g/2005"
GCAL_NS = "http://schemas.google.com/gCal/2005"

NS_MAP = {
    "": ATOM_NS,
    "gd": GD_NS,
    "gCal": GCAL_NS,
}

for _prefix, _uri in NS_MAP.items():
    ET.register_namespace(_prefix, _uri)

EVENT_KIND = f"{GD_NS}#event"
RESPONSE_STATUSES = {
    "accepted": "accepted",
    "declined": "declined",
    "tentative": "tentative",
    "invited": "needsAction",
}

_ICAL_TIME = re.compile(r"^(DTSTART|DTEND)((?:;[^:\r\n]*)?):(\S+)\s*$", re.MULTILINE)
_TZID = re.compile(r";TZID=([^;:]+)", re.IGNORECASE)


def _atom(tag: str) -> str:
    return f"{{{ATOM_NS}}}{tag}"


def _gd(tag: str) -> str:
    return f"{{{GD_NS}}}{tag}"


def _gcal(tag: str) -> str:
    return f"{{{GCAL_NS}}}{tag}"


def _kind_suffix(value: str | None) -> str | None:
    """``http://schemas.google.com/g/2005#event.opaque`` -> ``opaque``."""
    if not value:
        return None
    return value.rsplit(".", 1)[-1]


def _parse_ical_time(value: str, tzid: str | None = None) -> TimeValue:
    """Read a DTSTART/DTEND value; floating times take the TZID zone when given."""
    if len(value) == 8:
        return datetime.strptime(value, "%Y%m%d").date()
    if tzid and not value.upper().endswith("Z"):
        try:
            zone = ZoneInfo(tzid)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise InvalidArgument(f"Unknown recurrence time zone: {tzid!r}") from e
        try:
            return datetime.strptime(value, "%Y%m%dT%H%M%S").replace(tzinfo=zone)
        except ValueError as e:
            raise InvalidArgument(f"Invalid recurrence time: {value!r}") from e
    return parse_until(value)


class AtomEventCodec(EventCodec):
    """GData Atom entry representation used by the legacy feeds."""

    reminder_method = "alert"

    def encode(self, event: Event) -> str:
        all_day = event.all_day
        entry = ET.Element(_atom("entry"))
        ET.SubElement(entry, _atom("category"), {"scheme": f"{GD_NS}#kind", "term": EVENT_KIND})

        title = ET.SubElement(entry, _atom("title"), {"type": "text"})
        title.text = event.title or ""
        content = ET.SubElement(entry, _atom("content"), {"type": "text"})
        content.text = event.description or ""

        ET.SubElement(entry, _gd("transparency"), {"value": f"{EVENT_KIND}.{event.transparency}"})
        ET.SubElement(entry, _gd("visibility"), {"value": f"{EVENT_KIND}.{event.visibility}"})
        ET.SubElement(entry, _gd("where"), {"valueString": event.location or ""})

        if event.is_recurring:
            recurrence = ET.SubElement(entry, _gd("recurrence"))
            recurrence.text = self._recurrence_text(event, all_day)
            reminder_parent = entry
        else:
            reminder_parent = ET.SubElement(
                entry,
                _gd("when"),
                {
                    "startTime": self._format_time(event.start_time, all_day),
                    "endTime": self._format_time(event.end_time, all_day),
                },
            )

        for override in reminder_overrides(event):
            unit, amount = reminder_offset(override)
            ET.SubElement(
                reminder_parent,
                _gd("reminder"),
                {unit: str(amount), "method": override.get("method") or self.reminder_method},
            )

        for attendee in event.attendees or []:
            if not attendee.get("email"):
                continue
            who = ET.SubElement(
                entry,
                _gd("who"),
                {
                    "email": attendee["email"],
                    "rel": f"{EVENT_KIND}.attendee",
                    "valueString": attendee.get("displayName") or "",
                },
            )
            status = self._attendee_status(attendee.get("responseStatus"))
            if status:
                ET.SubElement(who, _gd("attendeeStatus"), {"value": f"{EVENT_KIND}.{status}"})

        for realm in EXTENDED_PROPERTY_REALMS:
            for name, value in (event.extended_properties.get(realm) or {}).items():
                ET.SubElement(entry, _gd("extendedProperty"), {"name": name, "value": str(value)})

        if event.color_id:
            ET.SubElement(entry, _gcal("color"), {"value": event.color_id})

        return ET.tostring(entry, encoding="unicode")

    def encode_quickadd(self, text: str) -> str:
        """Entry asking the server to parse ``text`` into an event."""
        entry = ET.Element(_atom("entry"))
        content = ET.SubElement(entry, _atom("content"), {"type": "html"})
        content.text = text
        ET.SubElement(entry, _gcal("quickadd"), {"value": "true"})
        return ET.tostring(entry, encoding="unicode")

    @staticmethod
    def _format_time(value: TimeValue, all_day: bool) -> str:
        if all_day:
            return local_date(value).isoformat()
        return format_datetime(value)

    @staticmethod
    def _recurrence_text(event: Event, all_day: bool) -> str:
        if all_day:
            lines = [
                f"DTSTART;VALUE=DATE:{local_date(event.start_time):%Y%m%d}",
                f"DTEND;VALUE=DATE:{local_date(event.end_time):%Y%m%d}",
            ]
        else:
            lines = [
                f"DTSTART:{format_until(event.start_time)}",
                f"DTEND:{format_until(event.end_time)}",
            ]
        lines.append(serialize_rule(event.recurrence))
        return "\r\n".join(lines) + "\r\n"

    @staticmethod
    def _attendee_status(value: str | None) -> str | None:
        for atom_status, json_status in RESPONSE_STATUSES.items():
            if value == json_status:
                return atom_status
        return None

    def decode(self, item: ET.Element, calendar: Calendar | None = None) -> Event:
        """Build an ``Event`` from an Atom ``entry`` element.

        Raises:
            InvalidArgument: If a time or recurrence value is malformed.
        """
        start: TimeValue | str | None = None
        end: TimeValue | str | None = None
        when = item.find(_gd("when"))
        if when is not None:
            start, end = when.get("startTime"), when.get("endTime")

        recurrence: dict[str, Any] = {}
        time_zone: str | None = None
        recurrence_text = item.findtext(_gd("recurrence"))
        if recurrence_text:
            recurrence = parse_rule(recurrence_text.splitlines())
            for name, params, value in _ICAL_TIME.findall(recurrence_text):
                match = _TZID.search(params)
                tzid = match.group(1) if match else None
                time_zone = time_zone or tzid
                if name == "DTSTART" and start is None:
                    start = _parse_ical_time(value, tzid)
                elif name == "DTEND" and end is None:
                    end = _parse_ical_time(value, tzid)

        reminders = [self._decode_reminder(element) for element in item.iter(_gd("reminder"))]

        transparency = item.find(_gd("transparency"))
        visibility = item.find(_gd("visibility"))
        where = item.find(_gd("where"))
        color = item.find(_gcal("color"))

        event = Event(
            title=item.findtext(_atom("title")),
            description=item.findtext(_atom("content")) or None,
            location=(where.get("valueString") or None) if where is not None else None,
            start_time=start,
            end_time=end,
            recurrence=recurrence,
            reminders=reminders or None,
            attendees=self._decode_attendees(item),
            transparency=_kind_suffix(transparency.get("value")) if transparency is not None else None,
            visibility=_kind_suffix(visibility.get("value")) if visibility is not None else None,
            extended_properties=self._decode_extended_properties(item),
            color_id=color.get("value") if color is not None else None,
            creator_name=item.findtext(f"{_atom('author')}/{_atom('name')}"),
            time_zone=time_zone,
            calendar=calendar,
        )
        event.update_after_save(self._fields(item))
        return event

    @staticmethod
    def _decode_reminder(element: ET.Element) -> dict[str, Any]:
        reminder: dict[str, Any] = {"method": element.get("method")}
        for unit in REMINDER_UNITS:
            if element.get(unit):
                reminder[unit] = int(element.get(unit))
        return reminder

    @staticmethod
    def _decode_attendees(item: ET.Element) -> list[dict[str, Any]] | None:
        attendees = []
        for who in item.findall(_gd("who")):
            if not who.get("email"):
                continue
            attendee = {"email": who.get("email")}
            if who.get("valueString"):
                attendee["displayName"] = who.get("valueString")
            status = who.find(_gd("attendeeStatus"))
            if status is not None:
                attendee["responseStatus"] = RESPONSE_STATUSES.get(
                    _kind_suffix(status.get("value")), "needsAction"
                )
            attendees.append(attendee)
        return attendees or None

    @staticmethod
    def _decode_extended_properties(item: ET.Element) -> dict[str, dict[str, str]] | None:
        shared = {
            prop.get("name"): prop.get("value", "")
            for prop in item.findall(_gd("extendedProperty"))
            if prop.get("name")
        }
        return {"shared": shared} if shared else None

    @staticmethod
    def _fields(item: ET.Element) -> dict[str, Any]:
        event_id = (item.findtext(_atom("id")) or "").rstrip("/").rsplit("/", 1)[-1] or None
        html_link = None
        for link in item.findall(_atom("link")):
            if link.get("rel") == "alternate":
                html_link = link.get("href")
                break
        status = item.find(_gd("eventStatus"))
        return {
            "id": event_id,
            "html_link": html_link,
            "status": _kind_suffix(status.get("value")) if status is not None else None,
            "raw": ET.tostring(item, encoding="unicode"),
        }

    def _entries(self, response: httpx.Response) -> list[ET.Element]:
        if not response.content:
            return []
        try:
            root = ET.fromstring(response.content)
        except ET.ParseError as e:
            raise InvalidArgument(f"Response is not a valid Atom document: {e}") from e
        if root.tag == _atom("entry"):
            return [root]
        return root.findall(_atom("entry"))

    def decode_response(
        self, response: httpx.Response, calendar: Calendar | None = None
    ) -> list[Event]:
        return [self.decode(entry, calendar) for entry in self._entries(response)]

    def server_fields(self, response: httpx.Response) -> dict[str, Any]:
        entries = self._entries(response)
        return self._fields(entries[0]) if entries else {}
