"""Google Calendar client with OAuth 2.0, service account and legacy feed access.

Usage:
    from gcal_utils.calendar import Calendar

    calendar = Calendar.from_credentials(
        client_id="...",
        client_secret="...",
        calendar_id="primary",
        refresh_token="...",
    )

    # Events this week
    events = calendar.find_events_in_range(monday, next_monday)

    # Create an event
    event = calendar.new_event(title="Team Meeting", start_time=start, end_time=end)
    event.save()

    # Quick add
    calendar.new_event(title="Movie tomorrow 23:00", quickadd=True).save()

OAuth Setup:
    1. Create an OAuth client in Google Cloud Console
    2. Send the user to Connection.transport.authorize_url()
    3. Exchange the code: Connection.transport.login_with_auth_code(code)
    4. Keep the returned refresh token for later sessions
"""

from __future__ import annotations

from gcal_utils.calendar.calendar_list import CalendarList, CalendarListEntry, CalendarMetadata
from gcal_utils.calendar.client import Calendar, LegacyCalendar, PublicCalendar, SyncResult
from gcal_utils.calendar.codec import AtomEventCodec, JsonEventCodec
from gcal_utils.calendar.connection import Connection
from gcal_utils.calendar.event import Event
from gcal_utils.calendar.exceptions import (
    AuthorizationFailed,
    BackendError,
    CalendarAPIError,
    CalendarError,
    CalendarIdMissing,
    CalendarUsageLimitExceeded,
    DailyLimitExceeded,
    Forbidden,
    Gone,
    IdentifierAlreadyExists,
    InvalidArgument,
    InvalidCredentials,
    NotFound,
    PreconditionFailed,
    RateLimitExceeded,
    RequestFailed,
    TooManyRedirections,
    UserRateLimitExceeded,
)
from gcal_utils.calendar.freebusy import Freebusy
from gcal_utils.calendar.transports import (
    JsonTransport,
    LegacyXmlTransport,
    ServiceAccountTransport,
    Transport,
)

__all__ = [
    "Calendar",
    "LegacyCalendar",
    "PublicCalendar",
    "SyncResult",
    "CalendarList",
    "CalendarListEntry",
    "CalendarMetadata",
    "Freebusy",
    "Event",
    "Connection",
    "Transport",
    "JsonTransport",
    "ServiceAccountTransport",
    "LegacyXmlTransport",
    "JsonEventCodec",
    "AtomEventCodec",
    "AuthorizationFailed",
    "CalendarError",
    "CalendarAPIError",
    "InvalidArgument",
    "CalendarIdMissing",
    "RequestFailed",
    "InvalidCredentials",
    "Forbidden",
    "DailyLimitExceeded",
    "UserRateLimitExceeded",
    "RateLimitExceeded",
    "CalendarUsageLimitExceeded",
    "NotFound",
    "IdentifierAlreadyExists",
    "Gone",
    "PreconditionFailed",
    "BackendError",
    "TooManyRedirections",
]
