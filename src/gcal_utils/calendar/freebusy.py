"""Free/busy queries."""

from __future__ import annotations

from datetime import datetime

from gcal_utils.calendar.connection import Connection, json_body
from gcal_utils.calendar.times import TimeValue, format_utc, parse_time

BusyBlock = dict[str, datetime]


class Freebusy:
    """Busy intervals of one or more calendars."""

    def __init__(self, connection: Connection):
        self.connection = connection

    def query(
        self,
        calendar_ids: list[str],
        start_time: TimeValue | str,
        end_time: TimeValue | str,
    ) -> dict[str, list[BusyBlock]]:
        """Busy blocks per calendar between ``start_time`` and ``end_time``.

        Args:
            calendar_ids: Calendars to check.
            start_time: Start of the window.
            end_time: End of the window.

        Returns:
            ``{calendar_id: [{"start": datetime, "end": datetime}, ...]}``.
            Calendars the server reports errors for map to an empty list.
        """
        body = {
            "timeMin": format_utc(start_time),
            "timeMax": format_utc(end_time),
            "items": [{"id": calendar_id} for calendar_id in calendar_ids],
        }
        response = self.connection.request("POST", "/freeBusy", body=body)
        calendars = json_body(response).get("calendars")
        if not isinstance(calendars, dict):
            return {}

        return {
            calendar_id: [
                {"start": parse_time(block["start"]), "end": parse_time(block["end"])}
                for block in (data.get("busy") or [])
            ]
            for calendar_id, data in calendars.items()
        }
