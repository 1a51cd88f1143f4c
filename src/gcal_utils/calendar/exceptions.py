"""Calendar API exceptions."""

from gcal_utils.google.exceptions import AuthorizationFailed


class CalendarError(Exception):
    """Base exception for calendar errors."""

    pass


class InvalidArgument(CalendarError, ValueError):
    """Raised for a malformed identifier, visibility, time or recurrence value."""


class CalendarIdMissing(CalendarError, ValueError):
    """Raised when a calendar identifier is required but not supplied."""


class CalendarAPIError(CalendarError):
    """Raised when the resource server answers with an error status."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class RequestFailed(CalendarAPIError):
    """400: the request was malformed."""


class InvalidCredentials(CalendarAPIError):
    """401: the access token was rejected."""


class Forbidden(CalendarAPIError):
    """403 with an unrecognized or plain "Forbidden" message."""


class DailyLimitExceeded(Forbidden):
    """403: "Daily Limit Exceeded"."""


class UserRateLimitExceeded(Forbidden):
    """403: "User Rate Limit Exceeded"."""


class RateLimitExceeded(Forbidden):
    """403: "Rate Limit Exceeded"."""


class CalendarUsageLimitExceeded(Forbidden):
    """403: "Calendar usage limits exceeded."."""


class NotFound(CalendarAPIError):
    """404."""


class IdentifierAlreadyExists(CalendarAPIError):
    """409: an event with the requested id already exists."""


class Gone(CalendarAPIError):
    """410: stale sync token or an already deleted resource."""


class PreconditionFailed(CalendarAPIError):
    """412: the resource changed since it was read."""


class BackendError(CalendarAPIError):
    """500."""


class TooManyRedirections(CalendarAPIError):
    """Legacy transport redirected more times than allowed."""


__all__ = [
    "AuthorizationFailed",
    "CalendarError",
    "InvalidArgument",
    "CalendarIdMissing",
    "CalendarAPIError",
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
