"""Calendar resource facade.

``Calendar`` works against the v3 JSON API. ``LegacyCalendar`` and
``PublicCalendar`` work against the Atom feeds through a legacy connection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import httpx

from gcal_utils.calendar.codec import AtomEventCodec, EventCodec, JsonEventCodec
from gcal_utils.calendar.connection import Connection, json_body
from gcal_utils.calendar.event import Event, EventMutator, validate_id
from gcal_utils.calendar.exceptions import (
    CalendarError,
    CalendarIdMissing,
    InvalidArgument,
    NotFound,
)
from gcal_utils.calendar.times import TimeValue, format_datetime, format_utc, parse_time
from gcal_utils.config import DEFAULT_TIMEOUT, OOB_REDIRECT_URL, CalendarSettings

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 25


@dataclass
class SyncResult:
    """One page of an incremental sync."""

    events: list[Event] = field(default_factory=list)
    next_sync_token: str | None = None
    next_page_token: str | None = None


@dataclass
class SaveRequest:
    """HTTP call that persists one event."""

    method: str
    path: str
    params: dict[str, Any] | None = None
    body: Any = None
    headers: dict[str, str] | None = None


class Calendar:
    """Events of one calendar through the JSON API.

    Usage:
        calendar = Calendar.from_credentials(
            client_id="...",
            client_secret="...",
            calendar_id="primary",
            refresh_token="...",
        )

        # Create an event
        event = calendar.create_event(lambda e: setattr(e, "title", "Lunch"))

        # Events in a window
        events = calendar.find_events_in_range(start, end)

        # Update by id, creating it if missing
        calendar.find_or_create_event_by_id("abcde12345", mutate)
    """

    codec_class: type[EventCodec] = JsonEventCodec

    def __init__(self, connection: Connection, calendar_id: str):
        if not calendar_id or not str(calendar_id).strip():
            raise CalendarIdMissing("A calendar id is required")
        self.connection = connection
        self.calendar_id = calendar_id
        self.codec = self.codec_class()

    @classmethod
    def from_credentials(
        cls,
        client_id: str,
        client_secret: str,
        calendar_id: str,
        redirect_url: str = OOB_REDIRECT_URL,
        refresh_token: str | None = None,
        transport: httpx.BaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> Calendar:
        """Calendar over a new OAuth 2.0 connection.

        Args:
            client_id: OAuth client id.
            client_secret: OAuth client secret.
            calendar_id: Calendar to work with (an email address or "primary").
            redirect_url: Where Google sends the user after consent.
            refresh_token: A refresh token saved from an earlier login.
            transport: Optional httpx transport.
            timeout: Request timeout in seconds.
        """
        connection = Connection.from_credentials(
            client_id=client_id,
            client_secret=client_secret,
            redirect_url=redirect_url,
            refresh_token=refresh_token,
            transport=transport,
            timeout=timeout,
        )
        return cls(connection, calendar_id)

    @classmethod
    def from_settings(
        cls,
        settings: CalendarSettings,
        transport: httpx.BaseTransport | None = None,
    ) -> Calendar:
        """Calendar configured from ``CalendarSettings``.

        Raises:
            CalendarIdMissing: If the settings carry no calendar id.
        """
        if not settings.calendar_id:
            raise CalendarIdMissing("CalendarSettings.calendar_id is not set")
        return cls(Connection.from_settings(settings, transport=transport), settings.calendar_id)

    # =========================================================================
    # Paths and query parameters
    # =========================================================================

    @property
    def events_path(self) -> str:
        return f"/calendars/{quote(self.calendar_id, safe='')}/events"

    def event_path(self, event_id: str) -> str:
        return f"{self.events_path}/{quote(event_id, safe='')}"

    @staticmethod
    def format_query_time(value: TimeValue | str) -> str:
        return format_utc(value)

    def range_params(
        self,
        start_min: TimeValue | str | None,
        start_max: TimeValue | str | None,
        max_results: int | None,
        order_by: str,
        expand_recurring_events: bool,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "orderBy": order_by,
            "maxResults": max_results,
            "singleEvents": "true" if expand_recurring_events else "false",
        }
        if start_min is not None:
            params["timeMin"] = self.format_query_time(start_min)
        if start_max is not None:
            params["timeMax"] = self.format_query_time(start_max)
        return params

    def extended_property_params(
        self,
        shared: dict[str, str] | None,
        private: dict[str, str] | None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {}
        if shared:
            params["sharedExtendedProperty"] = [f"{k}={v}" for k, v in shared.items()]
        if private:
            params["privateExtendedProperty"] = [f"{k}={v}" for k, v in private.items()]
        return params

    # =========================================================================
    # Queries
    # =========================================================================

    def _lookup(
        self, path: str | None = None, params: dict[str, Any] | None = None
    ) -> list[Event]:
        """GET events, treating a 404 as no events."""
        try:
            response = self.connection.request("GET", path or self.events_path, params=params)
        except NotFound:
            logger.warning(f"No events found at {path or self.events_path}")
            return []
        return self.codec.decode_response(response, calendar=self)

    def events(self, max_results: int | None = None) -> list[Event]:
        """All events of the calendar (the server's first page)."""
        return self._lookup(params={"maxResults": max_results})

    def find_events(self, query: str, max_results: int | None = None) -> list[Event]:
        """Events matching a free text query.

        Args:
            query: Text matched against title, description, location and attendees.
            max_results: Maximum number of events to return.
        """
        return self._lookup(params={"q": query, "maxResults": max_results})

    def find_events_in_range(
        self,
        start_min: TimeValue | str,
        start_max: TimeValue | str,
        max_results: int = DEFAULT_MAX_RESULTS,
        order_by: str = "startTime",
        expand_recurring_events: bool = True,
    ) -> list[Event]:
        """Events overlapping ``[start_min, start_max)``.

        Args:
            start_min: Inclusive lower bound.
            start_max: Exclusive upper bound.
            max_results: Maximum number of events to return.
            order_by: "startTime" or "updated".
            expand_recurring_events: Return single occurrences of recurring events.
        """
        params = self.range_params(
            start_min, start_max, max_results, order_by, expand_recurring_events
        )
        return self._lookup(params=params)

    def find_future_events(
        self,
        max_results: int = DEFAULT_MAX_RESULTS,
        order_by: str = "startTime",
        expand_recurring_events: bool = True,
    ) -> list[Event]:
        """Events ending after the current time."""
        now = datetime.now(timezone.utc)
        params = self.range_params(now, None, max_results, order_by, expand_recurring_events)
        return self._lookup(params=params)

    def find_events_by_extended_properties(
        self,
        shared: dict[str, str] | None = None,
        private: dict[str, str] | None = None,
        max_results: int | None = None,
    ) -> list[Event]:
        """Events whose extended properties match every given key/value."""
        if not shared and not private:
            raise InvalidArgument("At least one shared or private property is required")
        params = self.extended_property_params(shared, private)
        params["maxResults"] = max_results
        return self._lookup(params=params)

    def find_event_by_id(self, event_id: str | None) -> list[Event]:
        """The event with ``event_id`` as a one-element list, or [] if missing."""
        if not event_id:
            return []
        return self._lookup(path=self.event_path(event_id))

    def sync_events(
        self,
        sync_token: str | None = None,
        page_token: str | None = None,
        max_results: int | None = None,
    ) -> SyncResult:
        """Fetch changes since ``sync_token`` (or everything without one).

        Deleted events come back with status "cancelled". A 410 ``Gone`` means
        the token expired and a full sync is required.

        Raises:
            Gone: If the sync token is no longer valid.
        """
        params = {"syncToken": sync_token, "pageToken": page_token, "maxResults": max_results}
        try:
            response = self.connection.request("GET", self.events_path, params=params)
        except NotFound:
            logger.warning(f"No events found at {self.events_path}")
            return SyncResult()

        payload = json_body(response)
        return SyncResult(
            events=self.codec.decode_feed(payload, calendar=self),
            next_sync_token=payload.get("nextSyncToken"),
            next_page_token=payload.get("nextPageToken"),
        )

    # =========================================================================
    # Persistence
    # =========================================================================

    def new_event(self, **attributes: Any) -> Event:
        """Unsaved event bound to this calendar."""
        return Event(calendar=self, **attributes)

    def create_event(self, mutator: EventMutator | None = None, **attributes: Any) -> Event:
        """Build an event, let ``mutator`` fill it in, and save it."""
        event = self.new_event(**attributes)
        if mutator is not None:
            mutator(event)
        return event.save()

    def find_or_create_event_by_id(
        self,
        event_id: str,
        mutator: EventMutator | None = None,
    ) -> Event:
        """Update the event with ``event_id``, or create it with that id.

        Raises:
            InvalidArgument: If ``event_id`` is not a valid event id.
        """
        validate_id(event_id)
        found = self.find_event_by_id(event_id)
        if found:
            event = found[0]
        else:
            logger.info(f"Event {event_id} not found, creating it")
            event = self.new_event(id=event_id, new_event_with_id_specified=True)
        if mutator is not None:
            mutator(event)
        return event.save()

    def save_request(self, event: Event) -> SaveRequest:
        notify = {"sendNotifications": "true" if event.send_notifications else "false"}
        if event.use_quickadd:
            if not event.title:
                raise InvalidArgument("Quick-add needs the event text in title")
            params = {"text": event.title, **notify}
            return SaveRequest("POST", f"{self.events_path}/quickAdd", params)
        if event.is_new:
            return SaveRequest("POST", self.events_path, notify, self.codec.encode(event))
        return SaveRequest("PUT", self.event_path(event.id), notify, self.codec.encode(event))

    def save_event(self, event: Event) -> Event:
        """Create (no id yet, or a caller-asserted id) or update the event.

        Returns:
            The same event with server fields merged in.
        """
        if event.calendar is None:
            event.calendar = self
        request = self.save_request(event)
        logger.debug(f"Saving event {event.id or '(new)'} with {request.method}")

        response = self.connection.request(
            request.method,
            request.path,
            params=request.params,
            body=request.body,
            headers=request.headers,
        )
        event.update_after_save(self.codec.server_fields(response))
        return event

    def delete_headers(self) -> dict[str, str] | None:
        return None

    def delete_event(self, event: Event) -> None:
        """Remove the event on the server and clear its id.

        Raises:
            InvalidArgument: If the event was never saved.
            NotFound: If the server has no such event.
        """
        if not event.id:
            raise InvalidArgument("Cannot delete an event without an id")
        params = {"sendNotifications": "true" if event.send_notifications else "false"}
        self.connection.request(
            "DELETE", self.event_path(event.id), params=params, headers=self.delete_headers()
        )
        logger.info(f"Deleted event {event.id}")
        event.clear_after_delete()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(calendar_id={self.calendar_id!r})"


class LegacyCalendar(Calendar):
    """Events of one calendar through the Atom feeds.

    Usage:
        connection = Connection.legacy("me@example.com", "secret")
        calendar = LegacyCalendar(connection, "me@example.com")
    """

    codec_class = AtomEventCodec
    projection = "private"

    @property
    def events_path(self) -> str:
        return f"/{quote(self.calendar_id, safe='')}/{self.projection}/full"

    @staticmethod
    def format_query_time(value: TimeValue | str) -> str:
        return format_datetime(parse_time(value))

    def range_params(
        self,
        start_min: TimeValue | str | None,
        start_max: TimeValue | str | None,
        max_results: int | None,
        order_by: str,
        expand_recurring_events: bool,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "orderby": "lastmodified" if order_by == "updated" else "starttime",
            "max-results": max_results,
            "singleevents": "true" if expand_recurring_events else "false",
        }
        if start_min is not None:
            params["start-min"] = self.format_query_time(start_min)
        if start_max is not None:
            params["start-max"] = self.format_query_time(start_max)
        if expand_recurring_events:
            if start_min is not None:
                params["recurrence-expansion-start"] = params["start-min"]
            if start_max is not None:
                params["recurrence-expansion-end"] = params["start-max"]
        return params

    def events(self, max_results: int | None = None) -> list[Event]:
        return self._lookup(params={"max-results": max_results})

    def find_events(self, query: str, max_results: int | None = None) -> list[Event]:
        return self._lookup(params={"q": query, "max-results": max_results})

    def find_events_by_extended_properties(
        self,
        shared: dict[str, str] | None = None,
        private: dict[str, str] | None = None,
        max_results: int | None = None,
    ) -> list[Event]:
        # Atom feeds only know one extended property realm
        properties = {**(shared or {}), **(private or {})}
        if not properties:
            raise InvalidArgument("At least one shared or private property is required")
        extq = "".join(f"[{name}:{value}]" for name, value in properties.items())
        return self._lookup(params={"extq": extq, "max-results": max_results})

    def sync_events(
        self,
        sync_token: str | None = None,
        page_token: str | None = None,
        max_results: int | None = None,
    ) -> SyncResult:
        raise CalendarError("Incremental sync is only available through the JSON API")

    def save_request(self, event: Event) -> SaveRequest:
        if event.use_quickadd:
            if not event.title:
                raise InvalidArgument("Quick-add needs the event text in title")
            body = self.codec.encode_quickadd(event.title)
            return SaveRequest("POST", self.events_path, body=body)
        if event.is_new:
            return SaveRequest("POST", self.events_path, body=self.codec.encode(event))
        return SaveRequest(
            "PUT",
            self.event_path(event.id),
            body=self.codec.encode(event),
            headers={"If-Match": "*"},
        )

    def delete_headers(self) -> dict[str, str] | None:
        return {"If-Match": "*"}

    def delete_event(self, event: Event) -> None:
        if not event.id:
            raise InvalidArgument("Cannot delete an event without an id")
        self.connection.request("DELETE", self.event_path(event.id), headers=self.delete_headers())
        logger.info(f"Deleted event {event.id}")
        event.clear_after_delete()


class PublicCalendar(LegacyCalendar):
    """Read-only access to the public feed of a calendar.

    Works with an anonymous legacy connection (no username).
    """

    projection = "public"

    def save_event(self, event: Event) -> Event:
        raise CalendarError("Public calendar feeds are read-only")

    def delete_event(self, event: Event) -> None:
        raise CalendarError("Public calendar feeds are read-only")
