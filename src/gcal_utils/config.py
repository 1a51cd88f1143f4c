"""Endpoint constants and optional environment-driven settings.

The core never reads the environment on its own. Test harnesses and scripts
that want to keep client secrets out of source can call
``CalendarSettings.from_env()`` explicitly; it understands a ``.env`` file:

    GCAL_CLIENT_ID=...
    GCAL_CLIENT_SECRET=...
    GCAL_REDIRECT_URL=urn:ietf:wg:oauth:2.0:oob
    GCAL_REFRESH_TOKEN=...
    GCAL_CALENDAR_ID=primary
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

# Authorization server
AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar"
OOB_REDIRECT_URL = "urn:ietf:wg:oauth:2.0:oob"

# Resource server
API_BASE_URI = "https://www.googleapis.com/calendar/v3"
LEGACY_BASE_URI = "https://www.google.com/calendar/feeds"
CLIENT_LOGIN_URL = "https://www.google.com/accounts/ClientLogin"
LEGACY_APP_NAME = "gcal-utils-legacy-integration"

DEFAULT_TIMEOUT = 30.0


def load_env_file(env_path: Path) -> dict[str, str]:
    """Load environment variables from a file.

    Variables already present in the environment take precedence.

    Args:
        env_path: Path to .env file.

    Returns:
        Dictionary of loaded variables.
    """
    loaded = {}
    if not env_path.exists():
        return loaded

    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue

            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip()

            if (value.startswith('"') and value.endswith('"')) or (
                value.startswith("'") and value.endswith("'")
            ):
                value = value[1:-1]

            if key and key not in os.environ:
                os.environ[key] = value
                loaded[key] = value

    return loaded


@dataclass
class CalendarSettings:
    """Client identity and defaults for a calendar connection."""

    client_id: str
    client_secret: str
    redirect_url: str = OOB_REDIRECT_URL
    refresh_token: str | None = None
    calendar_id: str | None = None
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> CalendarSettings:
        """Build settings from ``GCAL_*`` environment variables.

        Args:
            env_file: Optional .env file loaded before reading the environment.

        Raises:
            KeyError: If the client id or secret is not set.
        """
        if env_file is not None:
            load_env_file(Path(env_file))

        timeout = os.environ.get("GCAL_TIMEOUT")
        return cls(
            client_id=os.environ["GCAL_CLIENT_ID"],
            client_secret=os.environ["GCAL_CLIENT_SECRET"],
            redirect_url=os.environ.get("GCAL_REDIRECT_URL", OOB_REDIRECT_URL),
            refresh_token=os.environ.get("GCAL_REFRESH_TOKEN") or None,
            calendar_id=os.environ.get("GCAL_CALENDAR_ID") or None,
            timeout=float(timeout) if timeout else DEFAULT_TIMEOUT,
        )
