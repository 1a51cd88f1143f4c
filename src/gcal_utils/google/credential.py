"""OAuth client identity and token state.

A ``Credential`` only holds state. Network exchanges that fill it in live in
``gcal_utils.google.oauth``.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from gcal_utils.config import CALENDAR_SCOPE
from gcal_utils.google.exceptions import CredentialsNotFoundError

logger = logging.getLogger(__name__)

# Refresh slightly before the server-side expiry.
EXPIRY_LEEWAY = 60


@dataclass
class Credential:
    """OAuth 2.0 client identity plus the tokens obtained for one user.

    The refresh token is the durable identity. The access token is derived
    from an exchange and is never persisted.
    """

    client_id: str
    client_secret: str
    redirect_url: str
    refresh_token: str | None = None
    auth_code: str | None = None
    access_token: str | None = field(default=None, repr=False)
    expires_at: float | None = None
    scope: str = CALENDAR_SCOPE
    state: str | None = None

    def __post_init__(self):
        for name in ("client_id", "client_secret", "redirect_url"):
            value = getattr(self, name)
            if not value or not str(value).strip():
                raise ValueError(f"{name} is required")

    @property
    def is_expired(self) -> bool:
        """Check whether the access token is missing or about to expire."""
        if not self.access_token:
            return True
        if self.expires_at is None:
            return False
        return self.expires_at - EXPIRY_LEEWAY <= time.time()

    @property
    def can_refresh(self) -> bool:
        """Check whether a refresh token is available."""
        return bool(self.refresh_token)

    def apply_token(self, token: dict[str, Any]) -> None:
        """Store the result of a successful exchange."""
        self.access_token = token["access_token"]
        if token.get("refresh_token"):
            self.refresh_token = token["refresh_token"]

        expires_at = token.get("expires_at")
        if expires_at is None and token.get("expires_in") is not None:
            expires_at = time.time() + int(token["expires_in"])
        self.expires_at = expires_at

    def to_dict(self) -> dict[str, Any]:
        """Serializable form; excludes the access token and auth code."""
        return {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_url": self.redirect_url,
            "refresh_token": self.refresh_token,
            "scope": self.scope,
        }

    def save(self, path: str | Path) -> None:
        """Write the client identity and refresh token to a token file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info(f"Credential saved to {path}")

    @classmethod
    def load(cls, path: str | Path) -> "Credential":
        """Load a credential previously written with ``save``.

        Raises:
            CredentialsNotFoundError: If the file does not exist.
        """
        path = Path(path)
        if not path.exists():
            raise CredentialsNotFoundError(str(path))

        with open(path) as f:
            data = json.load(f)

        return cls(
            client_id=data.get("client_id", ""),
            client_secret=data.get("client_secret", ""),
            redirect_url=data.get("redirect_url", ""),
            refresh_token=data.get("refresh_token"),
            scope=data.get("scope", CALENDAR_SCOPE),
        )
