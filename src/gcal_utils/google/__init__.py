"""Google OAuth 2.0 and service account token handling."""

from gcal_utils.google.credential import Credential
from gcal_utils.google.exceptions import (
    AuthorizationFailed,
    CredentialsNotFoundError,
    GoogleAuthError,
)
from gcal_utils.google.oauth import TokenExchanger
from gcal_utils.google.service_account import ServiceAccountExchanger

__all__ = [
    "Credential",
    "TokenExchanger",
    "ServiceAccountExchanger",
    "GoogleAuthError",
    "CredentialsNotFoundError",
    "AuthorizationFailed",
]
