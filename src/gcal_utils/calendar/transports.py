"""Transport strategies for the calendar ``Connection``.

A transport decides how requests are authorized and which legacy behaviours
(redirect following, sticky session ids) the connection applies:

- ``JsonTransport``: OAuth 2.0 bearer tokens against the JSON API.
- ``ServiceAccountTransport``: bearer tokens minted from a service account key.
- ``LegacyXmlTransport``: ClientLogin ``GoogleLogin`` header against Atom feeds.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import httpx

from gcal_utils.config import (
    API_BASE_URI,
    CLIENT_LOGIN_URL,
    DEFAULT_TIMEOUT,
    LEGACY_APP_NAME,
    LEGACY_BASE_URI,
)
from gcal_utils.google.credential import Credential
from gcal_utils.google.exceptions import AuthorizationFailed
from gcal_utils.google.oauth import TokenExchanger
from gcal_utils.google.service_account import ServiceAccountExchanger

logger = logging.getLogger(__name__)


class Transport(ABC):
    """Common contract: authorize and send one request."""

    base_uri: str = API_BASE_URI
    content_type: str = "application/json"
    follows_redirects: bool = False
    tracks_session: bool = False
    raises_on_unauthorized: bool = True

    def __init__(self, http: httpx.Client | None = None):
        self.http = http or httpx.Client(timeout=DEFAULT_TIMEOUT)

    @abstractmethod
    def auth_headers(self) -> dict[str, str]:
        """Headers that authorize the next request."""

    def send(
        self,
        method: str,
        url: str,
        params: dict[str, str] | None = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send a single request without following redirects."""
        merged = {"Content-Type": self.content_type, **self.auth_headers(), **(headers or {})}
        return self.http.request(
            method,
            url,
            params=params,
            content=content,
            headers=merged,
            follow_redirects=False,
        )

    def handle_unauthorized(self, response: httpx.Response) -> None:
        """Called on 401 when the connection does not map it itself."""

    def reload(self) -> None:
        """Drop any cached login state."""

    def close(self) -> None:
        """Close the HTTP client."""
        self.http.close()


class JsonTransport(Transport):
    """OAuth 2.0 bearer authorization for the JSON API.

    The access token is refreshed through the ``TokenExchanger`` only when
    the credential is stale.
    """

    def __init__(
        self,
        credential: Credential,
        exchanger: TokenExchanger | None = None,
        http: httpx.Client | None = None,
    ):
        super().__init__(http)
        self.credential = credential
        self.exchanger = exchanger or TokenExchanger(credential)

    def auth_headers(self) -> dict[str, str]:
        if self.credential.is_expired:
            if not self.credential.can_refresh:
                raise AuthorizationFailed(
                    "Not logged in. Use login_with_auth_code or login_with_refresh_token."
                )
            logger.info("Access token is stale, refreshing")
            self.exchanger.refresh_access_token()
        return {"Authorization": f"Bearer {self.credential.access_token}"}

    def authorize_url(self) -> str:
        """The URL a user visits to grant access to their calendars."""
        return self.exchanger.build_authorization_url()

    def login_with_auth_code(self, auth_code: str) -> str | None:
        """Exchange an authorization code and return the refresh token."""
        self.exchanger.exchange_authorization_code(auth_code)
        return self.credential.refresh_token

    def login_with_refresh_token(self, refresh_token: str) -> None:
        """Log in with a refresh token saved from an earlier session."""
        self.exchanger.refresh_access_token(refresh_token)

    @property
    def access_token(self) -> str | None:
        return self.credential.access_token

    @property
    def refresh_token(self) -> str | None:
        return self.credential.refresh_token

    @property
    def auth_code(self) -> str | None:
        return self.credential.auth_code

    def close(self) -> None:
        super().close()
        self.exchanger.close()


class ServiceAccountTransport(Transport):
    """Bearer authorization with a token minted from a signing key."""

    def __init__(self, exchanger: ServiceAccountExchanger, http: httpx.Client | None = None):
        super().__init__(http)
        self.exchanger = exchanger

    def auth_headers(self) -> dict[str, str]:
        if self.exchanger.is_expired:
            self.exchanger.fetch_access_token()
        return {"Authorization": f"Bearer {self.exchanger.access_token}"}


class LegacyXmlTransport(Transport):
    """ClientLogin authorization for the Atom feed API.

    Without a username the transport is anonymous and can only read public
    feeds.
    """

    base_uri = LEGACY_BASE_URI
    content_type = "application/atom+xml"
    follows_redirects = True
    tracks_session = True
    raises_on_unauthorized = False

    def __init__(
        self,
        username: str | None = None,
        password: str | None = None,
        http: httpx.Client | None = None,
        auth_url: str = CLIENT_LOGIN_URL,
        app_name: str = LEGACY_APP_NAME,
    ):
        super().__init__(http)
        self.username = username
        self.password = password
        self.auth_url = auth_url
        self.app_name = app_name
        self._token: str | None = None

    @property
    def is_anonymous(self) -> bool:
        return not self.username

    def login(self) -> str:
        """Post the account credentials and keep the returned auth token.

        Raises:
            AuthorizationFailed: If the login is rejected.
        """
        form = {
            "Email": self.username,
            "Passwd": self.password or "",
            "source": self.app_name,
            "accountType": "HOSTED_OR_GOOGLE",
            "service": "cl",
        }
        response = self.http.post(self.auth_url, data=form)
        if not response.is_success:
            raise AuthorizationFailed(
                f"ClientLogin rejected: {response.text.strip()}",
                status_code=response.status_code,
            )

        self._token = self._parse_auth_token(response.text)
        logger.info(f"Legacy login succeeded for {self.username}")
        return self._token

    @staticmethod
    def _parse_auth_token(body: str) -> str:
        """Pick ``Auth`` out of the ``Key=Value`` lines ClientLogin returns."""
        values = {}
        for line in body.strip().splitlines():
            key, _, value = line.partition("=")
            values[key.strip()] = value.strip()

        if values.get("Auth"):
            return values["Auth"]
        if not values:
            raise AuthorizationFailed("ClientLogin returned an empty body")
        return list(values.values())[-1]

    def auth_headers(self) -> dict[str, str]:
        if self.is_anonymous:
            return {}
        if self._token is None:
            self.login()
        return {"Authorization": f"GoogleLogin auth={self._token}"}

    def handle_unauthorized(self, response: httpx.Response) -> None:
        logger.warning("Legacy feed rejected the session (401)")
        raise AuthorizationFailed("Legacy session is no longer authorized", status_code=401)

    def reload(self) -> None:
        self._token = None
