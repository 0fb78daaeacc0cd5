"""Authentication calls against the resource server.

Endpoints:
- POST /auth/login      {email, password}
- POST /auth/register   {name?, email, password}
- POST /auth/refresh
- POST /auth/logout
- GET  /auth/me

Whenever a response carries a `token`, it is handed to the CredentialProvider.
Persisting the token across runs belongs to the caller.
"""

from typing import Any, Optional

from recipe_client.api.client import RecipeApiClient
from recipe_client.api.credentials import CredentialProvider
from recipe_client.utils.errors import RequestFailedError
from recipe_client.utils.logger import logger


class AuthService:
    """Login/logout lifecycle for the credential provider."""

    def __init__(self, api: RecipeApiClient, credentials: Optional[CredentialProvider] = None) -> None:
        self.api = api
        self.credentials = credentials or api.credentials

    def _store_token(self, payload: Any) -> Any:
        if isinstance(payload, dict) and payload.get("token"):
            self.credentials.set_token(payload["token"])
        return payload

    async def login(self, email: str, password: str) -> Any:
        """Log in with email/password. Returns the server payload (user and/or token)."""
        logger.info(f"Logging in as {email}")
        payload = await self.api.request("POST", "/auth/login", body={"email": email, "password": password})
        return self._store_token(payload)

    async def register(self, email: str, password: str, name: Optional[str] = None) -> Any:
        body = {"email": email, "password": password}
        if name:
            body["name"] = name
        payload = await self.api.request("POST", "/auth/register", body=body)
        return self._store_token(payload)

    async def refresh(self) -> Any:
        payload = await self.api.request("POST", "/auth/refresh")
        return self._store_token(payload)

    async def logout(self) -> None:
        """Log out on the server; the local token is cleared even if that call fails."""
        try:
            await self.api.request("POST", "/auth/logout")
        except RequestFailedError as e:
            logger.warning(f"Server logout failed, clearing local session anyway: {e}")
        finally:
            self.credentials.clear()

    async def current_user(self) -> Any:
        """Return the current user's profile, or None when not logged in."""
        if not self.credentials.is_authenticated:
            return None
        return await self.api.request("GET", "/auth/me")
