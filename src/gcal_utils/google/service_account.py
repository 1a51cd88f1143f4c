"""Google Service Account token exchange.

Service accounts authenticate server-to-server by signing a JWT with their
private key and trading it for an access token. With domain-wide delegation
the account can act for a user (``subject``).

Example:
    >>> exchanger = ServiceAccountExchanger.from_file(
    ...     "service_account_key.json", subject="someone@example.com"
    ... )
    >>> exchanger.fetch_access_token()["access_token"]
"""

import json
import logging
from pathlib import Path
from typing import Any

import httpx
from google.auth import exceptions as google_exceptions
from google.auth import transport
from google.auth.crypt import RSASigner
from google.oauth2 import service_account

from gcal_utils.config import CALENDAR_SCOPE, DEFAULT_TIMEOUT, TOKEN_URL
from gcal_utils.google.exceptions import (
    AuthorizationFailed,
    CredentialsNotFoundError,
    GoogleAuthError,
)

logger = logging.getLogger(__name__)


class _HttpxResponse(transport.Response):
    """google-auth response view over an httpx response."""

    def __init__(self, response: httpx.Response):
        self._response = response

    @property
    def status(self) -> int:
        return self._response.status_code

    @property
    def headers(self):
        return self._response.headers

    @property
    def data(self) -> bytes:
        return self._response.content


class HttpxRequest(transport.Request):
    """google-auth request callable backed by an httpx client."""

    def __init__(self, http: httpx.Client):
        self.http = http

    def __call__(self, url, method="GET", body=None, headers=None, timeout=None, **kwargs):
        request_kwargs: dict[str, Any] = {"content": body, "headers": headers}
        if timeout is not None:
            request_kwargs["timeout"] = timeout
        try:
            response = self.http.request(method, url, **request_kwargs)
        except httpx.HTTPError as e:
            raise google_exceptions.TransportError(e) from e
        return _HttpxResponse(response)


class ServiceAccountExchanger:
    """Signed-JWT exchange for a service account.

    No user interaction is involved; the calendar must be shared with the
    service account email, or ``subject`` used under domain-wide delegation.
    """

    def __init__(
        self,
        client_email: str,
        private_key: str,
        subject: str | None = None,
        private_key_id: str | None = None,
        scopes: list[str] | None = None,
        token_uri: str = TOKEN_URL,
        http: httpx.Client | None = None,
    ):
        """Initialize the exchanger.

        Args:
            client_email: Service account email (the JWT issuer).
            private_key: PEM encoded RSA signing key.
            subject: Optional user to impersonate.
            private_key_id: Optional key id placed in the JWT header.
            scopes: OAuth scopes. Defaults to the calendar scope.
            token_uri: Token endpoint the assertion is posted to.
            http: Optional httpx client (tests inject one with a MockTransport).

        Raises:
            GoogleAuthError: If the signing key cannot be loaded.
        """
        if not client_email or not private_key:
            raise GoogleAuthError("client_email and private_key are required")

        self.client_email = client_email
        self.subject = subject
        self.scopes = scopes or [CALENDAR_SCOPE]
        self.http = http or httpx.Client(timeout=DEFAULT_TIMEOUT)

        try:
            signer = RSASigner.from_string(private_key, key_id=private_key_id)
        except ValueError as e:
            raise GoogleAuthError(f"Invalid signing key: {e}") from e

        self._credentials = service_account.Credentials(
            signer,
            client_email,
            token_uri,
            scopes=self.scopes,
            subject=subject,
        )
        logger.info(f"Service account initialized: {client_email}")

    @classmethod
    def from_info(cls, info: dict[str, Any], **kwargs) -> "ServiceAccountExchanger":
        """Build from a parsed service account key.

        Raises:
            GoogleAuthError: If the key is not a service account key.
        """
        if info.get("type", "service_account") != "service_account":
            raise GoogleAuthError(
                f"Invalid key file: expected type 'service_account', got '{info.get('type')}'"
            )
        return cls(
            client_email=info.get("client_email", ""),
            private_key=info.get("private_key", ""),
            private_key_id=info.get("private_key_id"),
            token_uri=info.get("token_uri", TOKEN_URL),
            **kwargs,
        )

    @classmethod
    def from_file(cls, key_path: str | Path, **kwargs) -> "ServiceAccountExchanger":
        """Build from a service account JSON key file.

        Raises:
            CredentialsNotFoundError: If the key file does not exist.
            GoogleAuthError: If the file is not valid JSON.
        """
        key_path = Path(key_path)
        if not key_path.exists():
            raise CredentialsNotFoundError(str(key_path))

        try:
            with open(key_path) as f:
                info = json.load(f)
        except json.JSONDecodeError as e:
            raise GoogleAuthError(f"Invalid JSON in key file: {e}") from e

        return cls.from_info(info, **kwargs)

    @property
    def access_token(self) -> str | None:
        return self._credentials.token

    @property
    def is_expired(self) -> bool:
        """Check whether a new token is needed."""
        return not self._credentials.valid

    def fetch_access_token(self) -> dict[str, Any]:
        """Sign an assertion and exchange it for an access token.

        Returns:
            Dict with ``access_token`` and ``expiry``.

        Raises:
            AuthorizationFailed: If the token endpoint rejects the assertion.
        """
        try:
            self._credentials.refresh(HttpxRequest(self.http))
        except google_exceptions.GoogleAuthError as e:
            raise AuthorizationFailed(f"Service account exchange rejected: {e}") from e

        logger.info(f"Fetched access token for service account {self.client_email}")
        return {"access_token": self._credentials.token, "expiry": self._credentials.expiry}

    def with_subject(self, subject_email: str) -> "ServiceAccountExchanger":
        """Create an exchanger that impersonates a user.

        Requires domain-wide delegation for the service account.
        """
        delegated = object.__new__(ServiceAccountExchanger)
        delegated.client_email = self.client_email
        delegated.subject = subject_email
        delegated.scopes = self.scopes
        delegated.http = self.http
        delegated._credentials = self._credentials.with_subject(subject_email)

        logger.info(f"Created delegated credentials for: {subject_email}")
        return delegated
