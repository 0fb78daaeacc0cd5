"""Credential provider shared by the API client and the auth service.

The token lives on an explicitly passed provider instance rather than in a
module global. Its lifecycle: set on login/register/refresh, cleared on
logout. Request code only reads it.
"""

from typing import Optional

from recipe_client.utils.logger import logger


class CredentialProvider:
    """Holds the bearer token for the current user session."""

    def __init__(self, token: Optional[str] = None) -> None:
        self._token: Optional[str] = token or None

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None

    def set_token(self, token: Optional[str]) -> None:
        """Set the bearer token used on subsequent requests. Falsy values clear it."""
        self._token = token or None
        logger.debug(f"Credential token {'set' if self._token else 'cleared'}")

    def clear(self) -> None:
        self.set_token(None)

    def authorization_headers(self) -> dict[str, str]:
        if not self._token:
            return {}
        return {"Authorization": f"Bearer {self._token}"}
