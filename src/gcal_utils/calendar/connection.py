"""HTTP gateway to the calendar resource server.

``Connection`` sends authorized requests through a ``Transport`` and turns
error statuses into the exception classes in ``gcal_utils.calendar.exceptions``.
Nothing is retried; every classified failure reaches the caller.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, urljoin, urlsplit

import httpx

from gcal_utils.calendar.exceptions import (
    BackendError,
    CalendarAPIError,
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
from gcal_utils.calendar.transports import (
    JsonTransport,
    LegacyXmlTransport,
    ServiceAccountTransport,
    Transport,
)
from gcal_utils.config import (
    CLIENT_LOGIN_URL,
    DEFAULT_TIMEOUT,
    LEGACY_APP_NAME,
    OOB_REDIRECT_URL,
    CalendarSettings,
)
from gcal_utils.google.credential import Credential
from gcal_utils.google.oauth import TokenExchanger
from gcal_utils.google.service_account import ServiceAccountExchanger

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 10
SESSION_PARAM = "gsessionid"

STATUS_ERRORS: dict[int, type[CalendarAPIError]] = {
    400: RequestFailed,
    404: NotFound,
    409: IdentifierAlreadyExists,
    410: Gone,
    412: PreconditionFailed,
    500: BackendError,
}

FORBIDDEN_MESSAGES: dict[str, type[Forbidden]] = {
    "Forbidden": Forbidden,
    "Daily Limit Exceeded": DailyLimitExceeded,
    "User Rate Limit Exceeded": UserRateLimitExceeded,
    "Rate Limit Exceeded": RateLimitExceeded,
    "Calendar usage limits exceeded.": CalendarUsageLimitExceeded,
}


def error_message(response: httpx.Response) -> str | None:
    """Extract ``error.message`` from a Google JSON error body."""
    try:
        payload = response.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, dict):
        return error.get("message")
    return None



def json_body(response: httpx.Response) -> dict[str, Any]:
    """Decoded JSON object of a successful response; {} for an empty body.

    Raises:
        InvalidArgument: If the body is not a JSON object.
    """
    if not response.content:
        return {}
    try:
        payload = response.json()
    except ValueError as e:
        raise InvalidArgument(f"Response is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise InvalidArgument(f"Expected a JSON object, got {type(payload).__name__}")
    return payload

class Connection:
    """Authorized request/response channel to one calendar account.

    Example:
        >>> connection = Connection.from_credentials(
        ...     client_id="...", client_secret="...", refresh_token="..."
        ... )
        >>> response = connection.request("GET", "/users/me/calendarList")
    """

    def __init__(self, transport: Transport):
        self.transport = transport
        self._session_params: dict[str, str] = {}

    # =========================================================================
    # Factories
    # =========================================================================

    @classmethod
    def from_credentials(
        cls,
        client_id: str,
        client_secret: str,
        redirect_url: str = OOB_REDIRECT_URL,
        refresh_token: str | None = None,
        transport: httpx.BaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> Connection:
        """OAuth 2.0 connection to the JSON API.

        Args:
            client_id: OAuth client id from Google Cloud Console.
            client_secret: OAuth client secret.
            redirect_url: Where Google sends the user after consent.
            refresh_token: A refresh token saved from an earlier login.
            transport: Optional httpx transport shared by API and token calls.
            timeout: Request timeout in seconds.
        """
        credential = Credential(
            client_id=client_id,
            client_secret=client_secret,
            redirect_url=redirect_url,
            refresh_token=refresh_token,
        )
        exchanger = TokenExchanger(credential, transport=transport, timeout=timeout)
        http = httpx.Client(transport=transport, timeout=timeout)
        return cls(JsonTransport(credential, exchanger, http=http))

    @classmethod
    def from_settings(
        cls,
        settings: CalendarSettings,
        transport: httpx.BaseTransport | None = None,
    ) -> Connection:
        """OAuth 2.0 connection built from ``CalendarSettings``."""
        return cls.from_credentials(
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            redirect_url=settings.redirect_url,
            refresh_token=settings.refresh_token,
            transport=transport,
            timeout=settings.timeout,
        )

    @classmethod
    def with_service_account(
        cls,
        key_path: str | Path | None = None,
        info: dict[str, Any] | None = None,
        subject: str | None = None,
        transport: httpx.BaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> Connection:
        """Service account connection from a key file or parsed key.

        Args:
            key_path: Path to the service account JSON key.
            info: Parsed key, used when no path is given.
            subject: Optional user to impersonate.
            transport: Optional httpx transport shared by API and token calls.
            timeout: Request timeout in seconds.
        """
        http = httpx.Client(transport=transport, timeout=timeout)
        if key_path is not None:
            exchanger = ServiceAccountExchanger.from_file(key_path, subject=subject, http=http)
        elif info is not None:
            exchanger = ServiceAccountExchanger.from_info(info, subject=subject, http=http)
        else:
            raise ValueError("Either key_path or info is required")
        return cls(ServiceAccountTransport(exchanger, http=http))

    @classmethod
    def legacy(
        cls,
        username: str | None = None,
        password: str | None = None,
        transport: httpx.BaseTransport | None = None,
        auth_url: str = CLIENT_LOGIN_URL,
        app_name: str = LEGACY_APP_NAME,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> Connection:
        """ClientLogin connection to the Atom feed API."""
        http = httpx.Client(transport=transport, timeout=timeout)
        return cls(
            LegacyXmlTransport(
                username=username,
                password=password,
                http=http,
                auth_url=auth_url,
                app_name=app_name,
            )
        )

    # =========================================================================
    # Requests
    # =========================================================================

    @property
    def base_uri(self) -> str:
        return self.transport.base_uri

    @property
    def session_params(self) -> dict[str, str]:
        """Session continuation parameters captured from the legacy server."""
        return dict(self._session_params)

    def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        body: dict | list | str | bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send an authorized request and classify the response.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE).
            path: Path below the transport's base URI, or an absolute URI.
            params: Query parameters.
            body: Dict/list (JSON encoded), or a pre-serialized str/bytes.
            headers: Extra request headers.

        Returns:
            The successful httpx.Response.

        Raises:
            CalendarAPIError: Subclass matching the error status.
            TooManyRedirections: If the legacy server redirects too often.
        """
        method = method.upper()
        url = self._resolve(path)
        content = self._encode_body(body)
        query = {
            key: [str(item) for item in value] if isinstance(value, (list, tuple)) else str(value)
            for key, value in (params or {}).items()
            if value is not None
        }

        if self.transport.tracks_session:
            self._capture_session(url, query)

        redirects = 0
        while True:
            logger.debug(f"Calendar API request: {method} {url}")
            response = self.transport.send(
                method,
                url,
                params={**query, **self._session_params} or None,
                content=content,
                headers=headers,
            )
            logger.debug(f"Calendar API response: {response.status_code}")

            if not (self.transport.follows_redirects and self._is_redirect(response)):
                break
            if redirects >= MAX_REDIRECTS:
                raise TooManyRedirections(
                    f"More than {MAX_REDIRECTS} redirects for {method} {path}",
                    status_code=response.status_code,
                )

            redirects += 1
            url = urljoin(str(response.request.url), response.headers["location"])
            # The redirect target already carries the original query.
            query = {}
            self._capture_session(url)

        self.check_for_errors(response)
        return response

    def reload(self) -> None:
        """Forget the captured session and any cached login."""
        self._session_params = {}
        self.transport.reload()

    def close(self) -> None:
        """Close the underlying transport."""
        self.transport.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def _resolve(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_uri}{path}"

    @staticmethod
    def _encode_body(body: dict | list | str | bytes | None) -> bytes | None:
        if body is None:
            return None
        if isinstance(body, bytes):
            return body
        if isinstance(body, str):
            return body.encode("utf-8")
        return json.dumps(body).encode("utf-8")

    @staticmethod
    def _is_redirect(response: httpx.Response) -> bool:
        return 300 <= response.status_code < 400 and "location" in response.headers

    def _capture_session(self, url: str, query: dict[str, str] | None = None) -> None:
        """Remember the session id the first time one appears in a request or redirect."""
        if self._session_params:
            return
        values = parse_qs(urlsplit(url).query).get(SESSION_PARAM)
        if not values and query and query.get(SESSION_PARAM):
            values = [query[SESSION_PARAM]]
        if values:
            self._session_params = {SESSION_PARAM: values[0]}
            logger.info("Captured legacy session id")

    # =========================================================================
    # Status classification
    # =========================================================================

    def check_for_errors(self, response: httpx.Response) -> None:
        """Raise the exception matching an error status.

        Raises:
            CalendarAPIError: Subclass matching the status code.
        """
        status = response.status_code
        if status < 400:
            return

        body = response.text
        if status == 401:
            if not self.transport.raises_on_unauthorized:
                self.transport.handle_unauthorized(response)
            raise InvalidCredentials("Access token was rejected", status_code=401, body=body)
        if status == 403:
            self._raise_forbidden(response)

        error_class = STATUS_ERRORS.get(status, CalendarAPIError)
        message = error_message(response) or f"Calendar API returned {status}"
        raise error_class(message, status_code=status, body=body)

    @staticmethod
    def _raise_forbidden(response: httpx.Response) -> None:
        message = error_message(response)
        error_class = FORBIDDEN_MESSAGES.get(message or "", Forbidden)
        raise error_class(message or "Forbidden", status_code=403, body=response.text)
