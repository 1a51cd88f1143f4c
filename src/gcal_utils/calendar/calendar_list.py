"""Calendar list and calendar metadata operations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

from gcal_utils.calendar.client import Calendar
from gcal_utils.calendar.connection import Connection, json_body
from gcal_utils.calendar.exceptions import NotFound

logger = logging.getLogger(__name__)


@dataclass
class CalendarListEntry:
    """A calendar on the user's calendar list."""

    id: str
    summary: str = ""
    description: str | None = None
    time_zone: str | None = None
    access_role: str | None = None
    primary: bool = False
    connection: Connection | None = field(default=None, repr=False, compare=False)

    @classmethod
    def from_payload(
        cls, data: dict[str, Any], connection: Connection | None = None
    ) -> CalendarListEntry:
        return cls(
            id=data["id"],
            summary=data.get("summaryOverride") or data.get("summary", ""),
            description=data.get("description"),
            time_zone=data.get("timeZone"),
            access_role=data.get("accessRole"),
            primary=data.get("primary", False),
            connection=connection,
        )

    def to_calendar(self) -> Calendar:
        """A ``Calendar`` for this entry over the same connection."""
        if self.connection is None:
            raise ValueError("Entry is not attached to a connection")
        return Calendar(self.connection, self.id)


@dataclass
class CalendarMetadata:
    """Secondary calendar metadata (``/calendars/{id}``)."""

    summary: str
    id: str | None = None
    description: str | None = None
    location: str | None = None
    time_zone: str | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> CalendarMetadata:
        return cls(
            id=data.get("id"),
            summary=data.get("summary", ""),
            description=data.get("description"),
            location=data.get("location"),
            time_zone=data.get("timeZone"),
        )

    def to_payload(self) -> dict[str, Any]:
        payload = {
            "summary": self.summary,
            "description": self.description,
            "location": self.location,
            "timeZone": self.time_zone,
        }
        return {key: value for key, value in payload.items() if value is not None}


class CalendarList:
    """Calendars visible to the authorized user.

    Usage:
        calendar_list = CalendarList(connection)
        for entry in calendar_list.fetch_entries():
            print(entry.summary)

        metadata = calendar_list.create_calendar("Team offsite", time_zone="Europe/Berlin")
    """

    def __init__(self, connection: Connection):
        self.connection = connection

    def fetch_entries(self) -> list[CalendarListEntry]:
        """All calendars on the user's calendar list."""
        response = self.connection.request("GET", "/users/me/calendarList")
        if not response.content:
            return []
        items = json_body(response).get("items") or []
        return [CalendarListEntry.from_payload(item, self.connection) for item in items]

    @staticmethod
    def _calendar_path(calendar_id: str) -> str:
        return f"/calendars/{quote(calendar_id, safe='')}"

    def create_calendar(
        self,
        summary: str,
        time_zone: str | None = None,
        description: str | None = None,
        location: str | None = None,
    ) -> CalendarMetadata:
        """Create a secondary calendar."""
        metadata = CalendarMetadata(
            summary=summary,
            description=description,
            location=location,
            time_zone=time_zone,
        )
        response = self.connection.request("POST", "/calendars", body=metadata.to_payload())
        created = CalendarMetadata.from_payload(json_body(response))
        logger.info(f"Created calendar {created.id}")
        return created

    def get_calendar(self, calendar_id: str) -> CalendarMetadata | None:
        """Metadata of a calendar, or None if it does not exist."""
        try:
            response = self.connection.request("GET", self._calendar_path(calendar_id))
        except NotFound:
            logger.warning(f"Calendar {calendar_id} not found")
            return None
        return CalendarMetadata.from_payload(json_body(response))

    def update_calendar(self, metadata: CalendarMetadata) -> CalendarMetadata:
        """Replace the metadata of an existing calendar.

        Raises:
            ValueError: If ``metadata`` has no id.
            NotFound: If the calendar does not exist.
        """
        if not metadata.id:
            raise ValueError("CalendarMetadata.id is required for an update")
        response = self.connection.request(
            "PUT", self._calendar_path(metadata.id), body=metadata.to_payload()
        )
        return CalendarMetadata.from_payload(json_body(response))

    def delete_calendar(self, calendar_id: str) -> None:
        """Delete a secondary calendar.

        Raises:
            NotFound: If the calendar does not exist.
        """
        self.connection.request("DELETE", self._calendar_path(calendar_id))
        logger.info(f"Deleted calendar {calendar_id}")
