"""OAuth 2.0 token exchanges using Authlib.

This module turns a ``Credential`` into usable tokens:
- Authorization code -> access + refresh token
- Refresh token -> access token
- Authorization URL composition (no network)

Every exchange is a single attempt. A rejected exchange raises
``AuthorizationFailed`` and leaves the retry decision to the caller.
"""

import logging
from typing import Any
from urllib.parse import urlencode

import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import OAuth2Client

from gcal_utils.config import AUTHORIZE_URL, DEFAULT_TIMEOUT, TOKEN_URL
from gcal_utils.google.credential import Credential
from gcal_utils.google.exceptions import AuthorizationFailed

logger = logging.getLogger(__name__)


def _require_success(response: httpx.Response) -> httpx.Response:
    """Authlib compliance hook: any non-2xx token reply is a failed exchange."""
    if not response.is_success:
        raise AuthorizationFailed(
            f"Token endpoint returned {response.status_code}: {response.text}",
            status_code=response.status_code,
        )
    return response


class TokenExchanger:
    """Three-legged OAuth exchanges for one ``Credential``.

    Example:
        >>> credential = Credential(client_id, client_secret, OOB_REDIRECT_URL)
        >>> exchanger = TokenExchanger(credential)
        >>> print(f"Visit: {exchanger.build_authorization_url()}")
        >>> exchanger.exchange_authorization_code(input("Code: "))
        >>> credential.refresh_token  # keep this for next time
    """

    AUTHORIZE_URL = AUTHORIZE_URL
    TOKEN_URL = TOKEN_URL

    def __init__(
        self,
        credential: Credential,
        transport: httpx.BaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """Initialize the exchanger.

        Args:
            credential: Credential whose token fields are updated in place.
            transport: Optional httpx transport (tests inject a MockTransport).
            timeout: Request timeout in seconds.
        """
        self.credential = credential
        self.session = OAuth2Client(
            client_id=credential.client_id,
            client_secret=credential.client_secret,
            scope=credential.scope,
            redirect_uri=credential.redirect_url,
            token_endpoint_auth_method="client_secret_post",
            transport=transport,
            timeout=timeout,
        )
        self.session.register_compliance_hook("access_token_response", _require_success)
        self.session.register_compliance_hook("refresh_token_response", _require_success)

    def build_authorization_url(self) -> str:
        """Compose the URL a user visits to grant calendar access.

        Query parameters are sorted by key so the URL is deterministic.
        """
        params = {
            "access_type": "offline",
            "client_id": self.credential.client_id,
            "redirect_uri": self.credential.redirect_url,
            "response_type": "code",
            "scope": self.credential.scope,
        }
        if self.credential.state:
            params["state"] = self.credential.state

        return f"{self.AUTHORIZE_URL}?{urlencode(sorted(params.items()))}"

    def exchange_authorization_code(self, code: str | None = None) -> dict[str, Any]:
        """Trade a single-use authorization code for tokens.

        Args:
            code: The code Google returned. Defaults to ``credential.auth_code``.

        Returns:
            Dict with ``access_token`` and ``refresh_token``.

        Raises:
            AuthorizationFailed: If the authorization server rejects the code.
        """
        if code is not None:
            self.credential.auth_code = code
        if not self.credential.auth_code:
            raise AuthorizationFailed("No authorization code to exchange")

        token = self._exchange(
            self.session.fetch_token,
            self.TOKEN_URL,
            code=self.credential.auth_code,
            grant_type="authorization_code",
        )

        self.credential.apply_token(token)
        self.credential.auth_code = None
        logger.info("Exchanged authorization code for tokens")

        return {
            "access_token": self.credential.access_token,
            "refresh_token": self.credential.refresh_token,
        }

    def refresh_access_token(self, refresh_token: str | None = None) -> dict[str, Any]:
        """Mint a new access token from a refresh token.

        Args:
            refresh_token: Token to use. Defaults to ``credential.refresh_token``.

        Returns:
            Dict with ``access_token``.

        Raises:
            AuthorizationFailed: If there is no refresh token or it is rejected.
        """
        if refresh_token is not None:
            self.credential.refresh_token = refresh_token
        if not self.credential.refresh_token:
            raise AuthorizationFailed("No refresh token available")

        token = self._exchange(
            self.session.refresh_token,
            self.TOKEN_URL,
            refresh_token=self.credential.refresh_token,
        )

        self.credential.apply_token(token)
        logger.info("Refreshed access token")

        return {"access_token": self.credential.access_token}

    def _exchange(self, call, url: str, **kwargs) -> dict[str, Any]:
        """Run one Authlib exchange and translate its failures."""
        try:
            token = call(url, **kwargs)
        except AuthorizationFailed:
            raise
        except AuthlibBaseError as e:
            raise AuthorizationFailed(f"Token exchange rejected: {e}") from e
        except ValueError as e:
            raise AuthorizationFailed(f"Malformed token response: {e}") from e

        if not token or "access_token" not in token:
            raise AuthorizationFailed("Token response did not include an access token")
        return dict(token)

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()
